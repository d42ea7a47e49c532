"""Shared test fixtures."""

import time
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from group_order.adapters.memory_session_repository import InMemorySessionRepository
from group_order.config import Settings
from group_order.containers import AppContainer
from group_order.domain.restaurants import (
    MenuCategory,
    MenuItem,
    MenuVariant,
    RestaurantRef,
)
from group_order.domain.sessions import Session
from group_order.services.broadcaster import Broadcaster
from group_order.services.restaurants import RestaurantCatalog
from group_order.services.sessions import SessionService
from group_order.services.store import SessionStore

START = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)

TEA = {"name": "Tea", "price": "5", "quantity": 1}
NOODLES = {"name": "Noodles", "price": "12.5", "quantity": 2}
DUMPLINGS = {"name": "Dumplings", "price": "10", "quantity": 1}


@dataclass
class FakeClock:
    """Manually advanced clock."""

    now: datetime = START

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@dataclass
class InMemoryRestaurantCatalog(RestaurantCatalog):
    """In-memory restaurant catalog for tests."""

    restaurants: dict[str, RestaurantRef] = field(default_factory=dict)

    def get_restaurant(self, restaurant_id: str) -> RestaurantRef | None:
        return self.restaurants.get(restaurant_id)


@dataclass(eq=False)
class RecordingChannel:
    """Channel that records every message it receives."""

    messages: list[dict[str, object]] = field(default_factory=list)
    closed_with: int | None = None

    async def send(self, message: dict[str, object]) -> None:
        self.messages.append(message)

    async def close(self, code: int) -> None:
        self.closed_with = code

    def types(self) -> list[object]:
        return [message["type"] for message in self.messages]


@dataclass(eq=False)
class FailingChannel:
    """Channel whose sends always fail."""

    attempts: int = 0
    closed_with: int | None = None

    async def send(self, message: dict[str, object]) -> None:
        self.attempts += 1
        raise ConnectionError("client went away")

    async def close(self, code: int) -> None:
        self.closed_with = code


@dataclass
class FailingSessionRepository(InMemorySessionRepository):
    """Repository whose writes fail once ``fail_writes`` is set."""

    fail_writes: bool = False

    def save_session(self, session: Session) -> None:
        if self.fail_writes:
            raise ConnectionError("storage unavailable")
        super().save_session(session)


@dataclass
class SlowSessionRepository(FailingSessionRepository):
    """Repository whose reads take a moment, like a network round trip."""

    read_delay_seconds: float = 0.002

    def get_session(self, session_id: str) -> Session | None:
        time.sleep(self.read_delay_seconds)
        return super().get_session(session_id)


def noodle_house() -> RestaurantRef:
    return RestaurantRef(
        id="r-1",
        name="Noodle House",
        address="1 Main St",
        categories=(
            MenuCategory(
                name="Mains",
                items=(
                    MenuItem(
                        name="Noodles",
                        variants=(MenuVariant(label="", price=Decimal("12.5")),),
                    ),
                ),
            ),
        ),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repository() -> FailingSessionRepository:
    return FailingSessionRepository()


@pytest.fixture
def broadcaster() -> Broadcaster:
    return Broadcaster(send_timeout_seconds=0.5)


@pytest.fixture
def catalog() -> InMemoryRestaurantCatalog:
    return InMemoryRestaurantCatalog(restaurants={"r-1": noodle_house()})


@pytest.fixture
def service(
    repository: FailingSessionRepository,
    broadcaster: Broadcaster,
    catalog: InMemoryRestaurantCatalog,
    clock: FakeClock,
) -> SessionService:
    return SessionService(
        store=SessionStore(repository=repository, lock_timeout_seconds=0.2),
        broadcaster=broadcaster,
        restaurant_catalog=catalog,
        clock=clock,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        session_backend="memory",
        lock_timeout_seconds=0.5,
        broadcast_send_timeout_seconds=0.5,
        cors_allowed_origins=None,
    )


@pytest.fixture
def container(settings: Settings, service: SessionService) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        session_store=service.store,
        broadcaster=service.broadcaster,
        session_service=service,
        close_resources=close_resources,
    )
