"""Session lifecycle: orders, payments, fees and closing."""

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from uuid import uuid4

from group_order.domain.errors import (
    NotFound,
    SessionClosed,
    Unauthenticated,
    Unauthorized,
    ValidationError,
)
from group_order.domain.events import EventKind
from group_order.domain.sessions import LineItem, Order, Session, SessionStatus
from group_order.domain.settlement import ParticipantCost, SettledSession
from group_order.services.broadcaster import Broadcaster
from group_order.services.restaurants import RestaurantCatalog
from group_order.services.serialization import (
    closed_payload,
    settled_session_payload,
)
from group_order.services.settlement import settle_session
from group_order.services.store import SessionStore

logger = logging.getLogger(__name__)

Mutation = Callable[[Session, datetime], Session]

# Upper bounds keep every amount renderable as a finite JSON number.
MAX_AMOUNT = Decimal("1000000")
MAX_QUANTITY = 1000
MAX_ITEMS = 100


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True)
class HistoryEntry:
    """A past or current session seen from one user's perspective."""

    settled: SettledSession
    hosted: bool
    own_cost: ParticipantCost | None


@dataclass
class SessionService:
    """Applies session operations under the per-session lock and broadcasts them.

    Input validation and host checks happen before the lock is taken. The
    status and deadline checks run inside it, against the snapshot being
    mutated. Each commit is settled, persisted and then broadcast while the
    lock is still held, so subscribers see events in commit order.
    """

    store: SessionStore
    broadcaster: Broadcaster
    restaurant_catalog: RestaurantCatalog | None = None
    enforce_deadline: bool = True
    clock: Callable[[], datetime] = _utcnow

    async def create_session(  # noqa: PLR0913
        self,
        host_id: str,
        payment_info: str,
        delivery_fee: object,
        deadline: datetime | None = None,
        restaurant_id: str | None = None,
        host_name: str | None = None,
    ) -> SettledSession:
        """Create and persist a new active session."""
        host_id = _require_identity(host_id)
        fee = parse_fee(delivery_fee)
        now = self.clock()
        if deadline is not None:
            if deadline.tzinfo is None:
                raise ValidationError("Deadline must include a timezone")
            if deadline <= now:
                raise ValidationError("Deadline must be in the future")
        restaurant = None
        if restaurant_id:
            if self.restaurant_catalog is None:
                raise NotFound(f"Restaurant {restaurant_id} not found")
            restaurant = await asyncio.to_thread(
                self.restaurant_catalog.get_restaurant, restaurant_id
            )
            if restaurant is None:
                raise NotFound(f"Restaurant {restaurant_id} not found")

        session = Session(
            id=uuid4().hex,
            host_id=host_id,
            host_name=_clean_name(host_name),
            payment_info=(payment_info or "").strip(),
            delivery_fee=fee,
            deadline=deadline,
            restaurant=restaurant,
            created_at=now,
        )
        await self.store.put(session)
        logger.info(
            "Session created", extra={"session_id": session.id, "host_id": host_id}
        )
        return settle_session(session)

    async def get_session(self, session_id: str) -> SettledSession:
        """Return the current session with freshly computed costs."""
        return settle_session(await self.store.get(session_id))

    async def submit_order(
        self,
        session_id: str,
        participant_id: str,
        items: Sequence[Mapping[str, object]],
        participant_name: str | None = None,
    ) -> SettledSession:
        """Create or replace the caller's own order."""
        participant_id = _require_identity(participant_id)
        line_items = parse_line_items(items)
        name = _clean_name(participant_name) or participant_id

        def mutate(session: Session, now: datetime) -> Session:
            self._ensure_accepting_orders(session, now)
            previous = session.orders.get(participant_id)
            order = Order(
                participant_id=participant_id,
                participant_name=name,
                items=line_items,
                submitted_at=previous.submitted_at if previous else now,
                updated_at=now,
            )
            return _with_order(session, order)

        return await self._commit(session_id, "order_submitted", mutate)

    async def edit_order(
        self,
        session_id: str,
        actor_id: str,
        participant_id: str,
        items: Sequence[Mapping[str, object]],
    ) -> SettledSession:
        """Host replaces another participant's order."""
        await self._require_host(session_id, actor_id)
        line_items = parse_line_items(items)

        def mutate(session: Session, now: datetime) -> Session:
            self._ensure_accepting_orders(session, now)
            existing = _require_order(session, participant_id)
            return _with_order(
                session,
                replace(existing, items=line_items, updated_at=now, payment_sent=False),
            )

        return await self._commit(session_id, "order_edited", mutate)

    async def delete_order(
        self, session_id: str, actor_id: str, participant_id: str
    ) -> SettledSession:
        """Host removes a participant's order."""
        await self._require_host(session_id, actor_id)

        def mutate(session: Session, now: datetime) -> Session:
            self._ensure_accepting_orders(session, now)
            _require_order(session, participant_id)
            orders = {
                key: order
                for key, order in session.orders.items()
                if key != participant_id
            }
            return replace(session, orders=orders)

        return await self._commit(session_id, "order_deleted", mutate)

    async def update_payment(
        self,
        session_id: str,
        participant_id: str,
        sent: bool,
        actor_id: str | None = None,
    ) -> SettledSession:
        """Set a participant's payment flag.

        When ``actor_id`` is given it must be the participant or the host.
        """
        if actor_id is not None and actor_id != participant_id:
            await self._require_host(session_id, actor_id)

        def mutate(session: Session, now: datetime) -> Session:
            self._ensure_active(session)
            existing = _require_order(session, participant_id)
            return _with_order(
                session, replace(existing, payment_sent=bool(sent), updated_at=now)
            )

        return await self._commit(session_id, "payment_updated", mutate)

    async def update_delivery_fee(
        self, session_id: str, actor_id: str, fee: object
    ) -> SettledSession:
        """Host changes the delivery fee; shares are recomputed on settle."""
        await self._require_host(session_id, actor_id)
        new_fee = parse_fee(fee)

        def mutate(session: Session, now: datetime) -> Session:
            self._ensure_active(session)
            return replace(session, delivery_fee=new_fee)

        return await self._commit(session_id, "delivery_fee_updated", mutate)

    async def update_payment_info(
        self, session_id: str, actor_id: str, payment_info: str
    ) -> SettledSession:
        """Host changes where participants should send money."""
        await self._require_host(session_id, actor_id)
        cleaned = (payment_info or "").strip()

        def mutate(session: Session, now: datetime) -> Session:
            self._ensure_active(session)
            return replace(session, payment_info=cleaned)

        return await self._commit(session_id, "payment_info_updated", mutate)

    async def close_session(self, session_id: str, actor_id: str) -> SettledSession:
        """Host closes the session; subscribers receive a ``closed`` event."""
        await self._require_host(session_id, actor_id)

        async def apply(session: Session) -> SettledSession:
            self._ensure_active(session)
            closed = replace(
                session, status=SessionStatus.CLOSED, closed_at=self.clock()
            )
            settled = settle_session(closed)
            await self.store.put(closed)
            logger.info("Session closed", extra={"session_id": session_id})
            await self.broadcaster.publish(
                session_id, EventKind.CLOSED, closed_payload(closed)
            )
            return settled

        return await self.store.with_lock(session_id, apply)

    async def list_active_sessions(self, limit: int = 20) -> list[SettledSession]:
        """Return active sessions still open for orders."""
        now = self.clock()
        sessions = await self.store.list_active(limit)
        return [
            settle_session(session)
            for session in sessions
            if session.is_active
            and not (self.enforce_deadline and session.deadline_passed(now))
        ]

    async def list_history(self, user_id: str, limit: int = 20) -> list[HistoryEntry]:
        """Return sessions the user hosted or ordered in, newest first."""
        user_id = _require_identity(user_id)
        sessions = sorted(
            await self.store.list_for_user(user_id, limit),
            key=lambda session: session.created_at,
            reverse=True,
        )
        entries = []
        for session in sessions:
            if not session.involves(user_id):
                continue
            settled = settle_session(session)
            own_cost = next(
                (
                    cost
                    for cost in settled.settlement.per_participant
                    if cost.participant_id == user_id
                ),
                None,
            )
            entries.append(
                HistoryEntry(
                    settled=settled,
                    hosted=session.host_id == user_id,
                    own_cost=own_cost,
                )
            )
        return entries[:limit]

    async def _commit(
        self, session_id: str, action: str, mutate: Mutation
    ) -> SettledSession:
        async def apply(session: Session) -> SettledSession:
            updated = mutate(session, self.clock())
            settled = settle_session(updated)
            await self.store.put(updated)
            logger.info(
                "Session updated", extra={"session_id": session_id, "action": action}
            )
            await self.broadcaster.publish(
                session_id, EventKind.UPDATED, settled_session_payload(settled)
            )
            return settled

        return await self.store.with_lock(session_id, apply)

    async def _require_host(self, session_id: str, actor_id: str) -> None:
        actor_id = _require_identity(actor_id)
        # host_id never changes, so a lock-free read is enough here.
        session = await self.store.get(session_id)
        if session.host_id != actor_id:
            raise Unauthorized("Only the host can do that")

    def _ensure_active(self, session: Session) -> None:
        if not session.is_active:
            raise SessionClosed(f"Session {session.id} is closed")

    def _ensure_accepting_orders(self, session: Session, now: datetime) -> None:
        self._ensure_active(session)
        if self.enforce_deadline and session.deadline_passed(now):
            raise SessionClosed(f"The order deadline for session {session.id} passed")


def parse_line_items(items: Sequence[Mapping[str, object]]) -> tuple[LineItem, ...]:
    """Validate raw item payloads into line items."""
    if not items:
        raise ValidationError("An order needs at least one item")
    if len(items) > MAX_ITEMS:
        raise ValidationError(f"An order can have at most {MAX_ITEMS} items")
    parsed = []
    for index, raw in enumerate(items, start=1):
        name = str(raw.get("name") or "").strip()
        if not name:
            raise ValidationError(f"Item {index} needs a name")
        price = _parse_decimal(raw.get("price"), f"Item {index} price")
        if price <= 0:
            raise ValidationError(f"Item {index} price must be positive")
        if price > MAX_AMOUNT:
            raise ValidationError(f"Item {index} price cannot exceed {MAX_AMOUNT}")
        quantity = raw.get("quantity", 1)
        if quantity is None:
            quantity = 1
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError(f"Item {index} quantity must be a whole number")
        if quantity <= 0:
            raise ValidationError(f"Item {index} quantity must be positive")
        if quantity > MAX_QUANTITY:
            raise ValidationError(
                f"Item {index} quantity cannot exceed {MAX_QUANTITY}"
            )
        parsed.append(LineItem(name=name, price=price, quantity=quantity))
    return tuple(parsed)


def parse_fee(value: object) -> Decimal:
    """Validate a delivery fee."""
    fee = _parse_decimal(value, "Delivery fee")
    if fee < 0:
        raise ValidationError("Delivery fee cannot be negative")
    if fee > MAX_AMOUNT:
        raise ValidationError(f"Delivery fee cannot exceed {MAX_AMOUNT}")
    return fee


def _parse_decimal(value: object, label: str) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{label} must be a number")
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(f"{label} must be a number") from exc
    if not amount.is_finite():
        raise ValidationError(f"{label} must be a finite number")
    return amount


def _require_identity(user_id: str | None) -> str:
    cleaned = (user_id or "").strip()
    if not cleaned:
        raise Unauthenticated()
    return cleaned


def _require_order(session: Session, participant_id: str) -> Order:
    order = session.orders.get(participant_id)
    if order is None:
        raise NotFound(f"No order from {participant_id} in session {session.id}")
    return order


def _with_order(session: Session, order: Order) -> Session:
    orders = dict(session.orders)
    orders[order.participant_id] = order
    return replace(session, orders=orders)


def _clean_name(name: str | None) -> str | None:
    cleaned = (name or "").strip()
    return cleaned or None
