"""Tests for Supabase adapter implementations."""

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal

import pytest

from group_order.adapters.supabase_restaurant_catalog import SupabaseRestaurantCatalog
from group_order.adapters.supabase_session_repository import (
    SupabaseSessionRepository,
    session_from_json,
    session_to_json,
)
from group_order.domain.sessions import LineItem, Order, Session, SessionStatus
from tests.conftest import START, noodle_house


@dataclass
class FakeResponse:
    data: list[dict[str, object]] | None


@dataclass
class FakeTable:
    name: str
    response_queue: dict[str, list[list[dict[str, object]]]] = field(
        default_factory=lambda: {"select": [], "upsert": []}
    )
    last_payload: object | None = None
    last_on_conflict: str | None = None
    last_filters: list[tuple[str, object]] = field(default_factory=list)

    def queue(self, action: str, data: list[dict[str, object]]) -> None:
        self.response_queue[action].append(data)

    def select(self, *_args) -> "FakeTable":
        self._action = "select"
        return self

    def upsert(
        self, payload: dict[str, object], on_conflict: str = ""
    ) -> "FakeTable":
        self._action = "upsert"
        self.last_payload = payload
        self.last_on_conflict = on_conflict
        return self

    def eq(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.last_filters.append((column, value))
        return self

    def or_(self, filters: str) -> "FakeTable":
        self.last_filters.append(("or", filters))
        return self

    def limit(self, _count: int) -> "FakeTable":
        return self

    def order(self, _column: str, desc: bool = False) -> "FakeTable":
        return self

    def execute(self) -> FakeResponse:
        action = getattr(self, "_action", "select")
        queue = self.response_queue.get(action, [])
        data = queue.pop(0) if queue else []
        return FakeResponse(data=data)


@dataclass
class FakeSupabaseClient:
    tables: dict[str, FakeTable] = field(default_factory=dict)

    def table(self, name: str) -> FakeTable:
        if name not in self.tables:
            self.tables[name] = FakeTable(name=name)
        return self.tables[name]


def _session() -> Session:
    order = Order(
        participant_id="alice",
        participant_name="Alice",
        items=(LineItem("Noodles", Decimal("12.345"), 2),),
        submitted_at=START,
        updated_at=START + timedelta(minutes=2),
        payment_sent=True,
    )
    return Session(
        id="s-1",
        host_id="host",
        host_name="Hana",
        payment_info="IBAN",
        delivery_fee=Decimal("10") / Decimal("3"),
        created_at=START,
        deadline=START + timedelta(hours=1),
        restaurant=noodle_house(),
        orders={"alice": order},
    )


def test_session_json_preserves_aggregate() -> None:
    session = _session()

    restored = session_from_json(session_to_json(session))

    assert restored == session
    assert restored.delivery_fee == Decimal("10") / Decimal("3")


def test_supabase_session_repository_save_upserts_row() -> None:
    client = FakeSupabaseClient()
    table = client.table("group_sessions")
    table.queue("upsert", [{"id": "s-1"}])

    SupabaseSessionRepository(client).save_session(_session())

    assert table.last_on_conflict == "id"
    assert table.last_payload["id"] == "s-1"
    assert table.last_payload["status"] == "active"
    assert table.last_payload["participant_ids"] == ["alice"]
    stored_order = table.last_payload["payload_json"]["orders"][0]
    assert stored_order["items"][0]["price"] == "12.345"


def test_supabase_session_repository_save_failure() -> None:
    client = FakeSupabaseClient()

    with pytest.raises(RuntimeError):
        SupabaseSessionRepository(client).save_session(_session())


def test_supabase_session_repository_reads() -> None:
    client = FakeSupabaseClient()
    table = client.table("group_sessions")
    row = {"id": "s-1", "payload_json": session_to_json(_session())}
    table.queue("select", [row])
    table.queue("select", [])
    table.queue("select", [row])
    table.queue("select", [row])
    repository = SupabaseSessionRepository(client)

    fetched = repository.get_session("s-1")
    missing = repository.get_session("s-2")
    active = repository.list_active_sessions(10)
    mine = repository.list_sessions_for_user("alice", 10)

    assert fetched is not None
    assert fetched.orders["alice"].payment_sent is True
    assert fetched.status is SessionStatus.ACTIVE
    assert missing is None
    assert [session.id for session in active] == ["s-1"]
    assert [session.id for session in mine] == ["s-1"]
    assert ("status", "active") in table.last_filters
    assert ("or", "host_id.eq.alice,participant_ids.cs.{alice}") in table.last_filters


def test_supabase_restaurant_catalog_groups_menu() -> None:
    client = FakeSupabaseClient()
    client.table("restaurants").queue(
        "select", [{"id": "r-1", "name": "Noodle House", "address": None}]
    )
    client.table("menu_items").queue(
        "select",
        [
            {"category": "Mains", "name": "Noodles", "price": 12.5, "variants": None},
            {
                "category": "Mains",
                "name": "Soup",
                "price": None,
                "variants": [
                    {"label": "Small", "price": "6"},
                    {"label": "Large", "price": "9.5"},
                ],
            },
            {"category": None, "name": "Tea", "price": "3", "variants": []},
        ],
    )

    restaurant = SupabaseRestaurantCatalog(client).get_restaurant("r-1")

    assert restaurant is not None
    assert restaurant.name == "Noodle House"
    mains, other = restaurant.categories
    assert [item.name for item in mains.items] == ["Noodles", "Soup"]
    assert mains.items[0].variants[0].price == Decimal("12.5")
    assert [variant.label for variant in mains.items[1].variants] == ["Small", "Large"]
    assert other.name == "Other"


def test_supabase_restaurant_catalog_missing() -> None:
    assert SupabaseRestaurantCatalog(FakeSupabaseClient()).get_restaurant("x") is None
