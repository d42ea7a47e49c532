"""Events pushed to session subscribers."""

from dataclasses import dataclass
from enum import Enum


class EventKind(str, Enum):
    """Kinds of push events."""

    UPDATED = "updated"
    CLOSED = "closed"


@dataclass(frozen=True)
class SessionEvent:
    """A post-commit notification for one session."""

    session_id: str
    kind: EventKind
    payload: dict[str, object]

    def to_message(self) -> dict[str, object]:
        """Return the frame sent over the push channel."""
        return {"type": self.kind.value, "data": self.payload}
