"""Domain models for group order sessions."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

from group_order.domain.restaurants import RestaurantRef


class SessionStatus(str, Enum):
    """Lifecycle states of a session."""

    ACTIVE = "active"
    CLOSED = "closed"


@dataclass(frozen=True)
class LineItem:
    """A named, priced and quantified entry in an order."""

    name: str
    price: Decimal
    quantity: int = 1

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity


@dataclass(frozen=True)
class Order:
    """One participant's order within a session."""

    participant_id: str
    participant_name: str
    items: tuple[LineItem, ...]
    submitted_at: datetime
    updated_at: datetime
    payment_sent: bool = False


@dataclass(frozen=True)
class Session:
    """Root aggregate for a host-created group order.

    Sessions are immutable values. Every mutation produces a new ``Session``
    that replaces the stored one as a whole, so a snapshot handed to a reader
    never changes underneath it.
    """

    id: str
    host_id: str
    payment_info: str
    delivery_fee: Decimal
    created_at: datetime
    status: SessionStatus = SessionStatus.ACTIVE
    host_name: str | None = None
    deadline: datetime | None = None
    restaurant: RestaurantRef | None = None
    orders: dict[str, Order] = field(default_factory=dict)
    closed_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE

    def deadline_passed(self, now: datetime) -> bool:
        """Return true when the session has a deadline and ``now`` is past it."""
        return self.deadline is not None and now > self.deadline

    def involves(self, user_id: str) -> bool:
        """Return true when the user hosts the session or has an order in it."""
        return self.host_id == user_id or user_id in self.orders
