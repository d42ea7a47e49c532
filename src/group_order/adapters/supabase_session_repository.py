"""Supabase-backed session repository."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from supabase import Client

from group_order.domain.restaurants import (
    MenuCategory,
    MenuItem,
    MenuVariant,
    RestaurantRef,
)
from group_order.domain.sessions import LineItem, Order, Session, SessionStatus
from group_order.services.store import SessionRepository

_COLUMNS = "id, host_id, status, participant_ids, created_at, payload_json"


@dataclass
class SupabaseSessionRepository(SessionRepository):
    """Stores each session aggregate as one JSON row in ``group_sessions``.

    Amounts are written as decimal strings so they survive the round trip at
    full precision.
    """

    client: Client

    def get_session(self, session_id: str) -> Session | None:
        """Return a session by id, if present."""
        response = (
            self.client.table("group_sessions")
            .select(_COLUMNS)
            .eq("id", session_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return session_from_json(response.data[0]["payload_json"])

    def save_session(self, session: Session) -> None:
        """Insert or replace the session row."""
        response = (
            self.client.table("group_sessions")
            .upsert(
                {
                    "id": session.id,
                    "host_id": session.host_id,
                    "status": session.status.value,
                    "participant_ids": list(session.orders),
                    "created_at": session.created_at.isoformat(),
                    "payload_json": session_to_json(session),
                },
                on_conflict="id",
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to save session")

    def list_active_sessions(self, limit: int) -> list[Session]:
        """Return the most recent active sessions."""
        response = (
            self.client.table("group_sessions")
            .select(_COLUMNS)
            .eq("status", SessionStatus.ACTIVE.value)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [session_from_json(row["payload_json"]) for row in response.data or []]

    def list_sessions_for_user(self, user_id: str, limit: int) -> list[Session]:
        """Return recent sessions hosted by or including the user."""
        response = (
            self.client.table("group_sessions")
            .select(_COLUMNS)
            .or_(f"host_id.eq.{user_id},participant_ids.cs.{{{user_id}}}")
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [session_from_json(row["payload_json"]) for row in response.data or []]


def session_to_json(session: Session) -> dict[str, object]:
    """Serialize a session aggregate for storage."""
    return {
        "id": session.id,
        "host_id": session.host_id,
        "host_name": session.host_name,
        "payment_info": session.payment_info,
        "delivery_fee": str(session.delivery_fee),
        "deadline": _iso(session.deadline),
        "status": session.status.value,
        "created_at": session.created_at.isoformat(),
        "closed_at": _iso(session.closed_at),
        "restaurant": _restaurant_to_json(session.restaurant),
        "orders": [
            {
                "participant_id": order.participant_id,
                "participant_name": order.participant_name,
                "items": [
                    {
                        "name": item.name,
                        "price": str(item.price),
                        "quantity": item.quantity,
                    }
                    for item in order.items
                ],
                "payment_sent": order.payment_sent,
                "submitted_at": order.submitted_at.isoformat(),
                "updated_at": order.updated_at.isoformat(),
            }
            for order in session.orders.values()
        ],
    }


def session_from_json(payload: dict) -> Session:
    """Rebuild a session aggregate from its stored JSON."""
    orders = {}
    for raw in payload.get("orders", []):
        order = Order(
            participant_id=raw["participant_id"],
            participant_name=raw.get("participant_name") or raw["participant_id"],
            items=tuple(
                LineItem(
                    name=item["name"],
                    price=Decimal(item["price"]),
                    quantity=int(item.get("quantity", 1)),
                )
                for item in raw.get("items", [])
            ),
            payment_sent=bool(raw.get("payment_sent", False)),
            submitted_at=datetime.fromisoformat(raw["submitted_at"]),
            updated_at=datetime.fromisoformat(raw["updated_at"]),
        )
        orders[order.participant_id] = order
    return Session(
        id=payload["id"],
        host_id=payload["host_id"],
        host_name=payload.get("host_name"),
        payment_info=payload.get("payment_info", ""),
        delivery_fee=Decimal(payload["delivery_fee"]),
        deadline=_parse_iso(payload.get("deadline")),
        status=SessionStatus(payload.get("status", SessionStatus.ACTIVE.value)),
        created_at=datetime.fromisoformat(payload["created_at"]),
        closed_at=_parse_iso(payload.get("closed_at")),
        restaurant=_restaurant_from_json(payload.get("restaurant")),
        orders=orders,
    )


def _restaurant_to_json(restaurant: RestaurantRef | None) -> dict | None:
    if restaurant is None:
        return None
    return {
        "id": restaurant.id,
        "name": restaurant.name,
        "address": restaurant.address,
        "categories": [
            {
                "name": category.name,
                "items": [
                    {
                        "name": item.name,
                        "variants": [
                            {"label": variant.label, "price": str(variant.price)}
                            for variant in item.variants
                        ],
                    }
                    for item in category.items
                ],
            }
            for category in restaurant.categories
        ],
    }


def _restaurant_from_json(payload: dict | None) -> RestaurantRef | None:
    if not payload:
        return None
    return RestaurantRef(
        id=payload["id"],
        name=payload["name"],
        address=payload.get("address"),
        categories=tuple(
            MenuCategory(
                name=category["name"],
                items=tuple(
                    MenuItem(
                        name=item["name"],
                        variants=tuple(
                            MenuVariant(
                                label=variant["label"], price=Decimal(variant["price"])
                            )
                            for variant in item.get("variants", [])
                        ),
                    )
                    for item in category.get("items", [])
                ),
            )
            for category in payload.get("categories", [])
        ),
    )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None
