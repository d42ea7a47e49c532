"""Error taxonomy shared by the service, the API and the sync client."""


class GroupOrderError(Exception):
    """Base error with a stable machine-readable kind."""

    kind = "error"
    retryable = False
    status_code = 500

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.__class__.__doc__ or self.kind
        super().__init__(self.message)

    def to_dict(self) -> dict[str, object]:
        return {"kind": self.kind, "message": self.message, "retryable": self.retryable}


class ValidationError(GroupOrderError):
    """Invalid input."""

    kind = "validation_error"
    status_code = 422


class NotFound(GroupOrderError):
    """Session or order not found."""

    kind = "not_found"
    status_code = 404


class Unauthorized(GroupOrderError):
    """Only the host can do that."""

    kind = "unauthorized"
    status_code = 403


class Unauthenticated(Unauthorized):
    """Missing user identity."""

    status_code = 401


class SessionClosed(GroupOrderError):
    """Session is no longer accepting changes."""

    kind = "session_closed"
    status_code = 409


class Busy(GroupOrderError):
    """Session is busy, try again."""

    kind = "busy"
    retryable = True
    status_code = 503


class TransientIOError(GroupOrderError):
    """Storage is temporarily unavailable."""

    kind = "transient_io"
    retryable = True
    status_code = 503


class SettlementError(GroupOrderError):
    """Settlement invariant violated."""

    kind = "settlement_error"


ERRORS_BY_KIND: dict[str, type[GroupOrderError]] = {
    cls.kind: cls
    for cls in (
        ValidationError,
        NotFound,
        Unauthorized,
        SessionClosed,
        Busy,
        TransientIOError,
        SettlementError,
    )
}


def error_from_payload(payload: dict[str, object]) -> GroupOrderError:
    """Rebuild an error from its wire representation."""
    kind = str(payload.get("kind", "error"))
    message = payload.get("message")
    error_cls = ERRORS_BY_KIND.get(kind, GroupOrderError)
    return error_cls(str(message) if message is not None else None)
