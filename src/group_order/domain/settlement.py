"""Domain models for settled cost breakdowns."""

from dataclasses import dataclass
from decimal import Decimal

from group_order.domain.sessions import LineItem, Session


@dataclass(frozen=True)
class ParticipantCost:
    """Cost breakdown for one participant, kept at full precision."""

    participant_id: str
    participant_name: str
    items: tuple[LineItem, ...]
    items_total: Decimal
    delivery_share: Decimal
    total: Decimal
    payment_sent: bool


@dataclass(frozen=True)
class SettlementSummary:
    """Aggregate totals for a session."""

    total_food: Decimal
    total_delivery: Decimal
    grand_total: Decimal
    participant_count: int
    paid_count: int
    outstanding_total: Decimal


@dataclass(frozen=True)
class Settlement:
    """Per-participant costs plus the session summary."""

    per_participant: tuple[ParticipantCost, ...]
    summary: SettlementSummary


@dataclass(frozen=True)
class CombinedLine:
    """Identical line items aggregated across participants.

    ``ordered_by`` holds participant ids in the order they first appear;
    ``ordered_by_names`` holds their display names at the same positions.
    """

    name: str
    price: Decimal
    quantity: int
    ordered_by: tuple[str, ...]
    ordered_by_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class SettledSession:
    """A session snapshot together with the settlement computed from it."""

    session: Session
    settlement: Settlement
