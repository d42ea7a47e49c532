"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from group_order.adapters.memory_session_repository import InMemorySessionRepository
from group_order.adapters.supabase_restaurant_catalog import (
    SupabaseRestaurantCatalog,
)
from group_order.adapters.supabase_session_repository import (
    SupabaseSessionRepository,
)
from group_order.config import Settings
from group_order.services.broadcaster import Broadcaster
from group_order.services.restaurants import RestaurantCatalog
from group_order.services.sessions import SessionService
from group_order.services.store import SessionRepository, SessionStore


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    session_store: SessionStore
    broadcaster: Broadcaster
    session_service: SessionService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    repository: SessionRepository
    restaurant_catalog: RestaurantCatalog | None = None
    if resolved_settings.session_backend == "supabase":
        if not (
            resolved_settings.supabase_url and resolved_settings.supabase_service_key
        ):
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY are required for the "
                "supabase session backend"
            )
        supabase_client = create_client(
            resolved_settings.supabase_url, resolved_settings.supabase_service_key
        )
        repository = SupabaseSessionRepository(supabase_client)
        restaurant_catalog = SupabaseRestaurantCatalog(supabase_client)
    elif resolved_settings.session_backend == "memory":
        repository = InMemorySessionRepository()
    else:
        raise ValueError(
            f"Unknown session backend: {resolved_settings.session_backend}"
        )

    session_store = SessionStore(
        repository=repository,
        lock_timeout_seconds=resolved_settings.lock_timeout_seconds,
    )
    broadcaster = Broadcaster(
        send_timeout_seconds=resolved_settings.broadcast_send_timeout_seconds
    )
    session_service = SessionService(
        store=session_store,
        broadcaster=broadcaster,
        restaurant_catalog=restaurant_catalog,
        enforce_deadline=resolved_settings.enforce_deadline,
    )

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=resolved_settings,
        session_store=session_store,
        broadcaster=broadcaster,
        session_service=session_service,
        close_resources=close_resources,
    )
