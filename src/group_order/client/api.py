"""HTTP client for the session API."""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

import httpx

from group_order.domain.errors import (
    GroupOrderError,
    TransientIOError,
    error_from_payload,
)


class SessionApi(Protocol):
    """Request/response calls the sync client needs."""

    async def get_session(self, session_id: str) -> dict[str, object]:
        """Fetch the settled session."""


@dataclass
class HttpxSessionApi(SessionApi):
    """Session API client implemented with httpx."""

    base_url: str
    http_client: httpx.AsyncClient
    user_id: str | None = None
    user_name: str | None = None

    @classmethod
    def create(
        cls, base_url: str, user_id: str | None = None, user_name: str | None = None
    ) -> "HttpxSessionApi":
        """Create a client with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            http_client=httpx.AsyncClient(),
            user_id=user_id,
            user_name=user_name,
        )

    async def get_session(self, session_id: str) -> dict[str, object]:
        """Fetch the settled session."""
        return await self._request("GET", f"/api/sessions/{session_id}")

    async def submit_order(
        self, session_id: str, items: Sequence[dict[str, object]]
    ) -> dict[str, object]:
        """Submit or replace the current user's order."""
        return await self._request(
            "POST",
            f"/api/sessions/{session_id}/orders",
            json={"participantName": self.user_name, "items": list(items)},
        )

    async def update_payment(
        self, session_id: str, participant_id: str, sent: bool
    ) -> dict[str, object]:
        """Mark a payment as sent or pending."""
        return await self._request(
            "PATCH",
            f"/api/sessions/{session_id}/orders/{participant_id}/payment",
            json={"paymentSent": sent},
        )

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()

    async def _request(
        self, method: str, path: str, json: dict[str, object] | None = None
    ) -> dict[str, object]:
        headers = {}
        if self.user_id:
            headers["X-User-Id"] = self.user_id
        if self.user_name:
            headers["X-User-Name"] = self.user_name
        try:
            response = await self.http_client.request(
                method, f"{self.base_url}{path}", json=json, headers=headers, timeout=10
            )
        except httpx.TransportError as exc:
            raise TransientIOError(f"Request to {path} failed: {exc}") from exc
        if response.is_error:
            raise _error_from_response(response)
        return response.json()


def _error_from_response(response: httpx.Response) -> GroupOrderError:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        return error_from_payload(payload["error"])
    if response.status_code >= 500:
        return TransientIOError(f"Server error {response.status_code}")
    return GroupOrderError(f"Request failed with status {response.status_code}")
