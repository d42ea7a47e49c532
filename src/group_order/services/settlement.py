"""Settlement engine: cost breakdowns derived from session state.

Everything here is pure. Amounts are kept as full-precision ``Decimal``
values; rounding to cents happens only when rendering for display.
"""

from decimal import ROUND_HALF_UP, Decimal

from group_order.domain.errors import SettlementError
from group_order.domain.sessions import Order, Session
from group_order.domain.settlement import (
    CombinedLine,
    ParticipantCost,
    SettledSession,
    Settlement,
    SettlementSummary,
)

_CENT = Decimal("0.01")
_SHARE_TOLERANCE = Decimal("1e-20")


def settle(session: Session) -> Settlement:
    """Compute per-participant costs and totals for a session."""
    orders = list(session.orders.values())
    fee = session.delivery_fee
    # Fee stays unassigned when nobody has ordered yet.
    share = fee / len(orders) if orders else fee

    costs = tuple(_participant_cost(order, share) for order in orders)
    total_food = sum((cost.items_total for cost in costs), Decimal(0))
    if costs:
        _check_shares(costs, fee)

    summary = SettlementSummary(
        total_food=total_food,
        total_delivery=fee,
        grand_total=total_food + fee,
        participant_count=len(costs),
        paid_count=sum(1 for cost in costs if cost.payment_sent),
        outstanding_total=sum(
            (cost.total for cost in costs if not cost.payment_sent), Decimal(0)
        ),
    )
    return Settlement(per_participant=costs, summary=summary)


def settle_session(session: Session) -> SettledSession:
    """Return the session paired with a fresh settlement."""
    return SettledSession(session=session, settlement=settle(session))


def items_total(order: Order) -> Decimal:
    """Sum of unit price times quantity over an order's items."""
    return sum((item.subtotal for item in order.items), Decimal(0))


def combine_orders(session: Session) -> list[CombinedLine]:
    """Aggregate identical (name, price) lines across all participants."""
    combined: dict[tuple[str, Decimal], CombinedLine] = {}
    for order in session.orders.values():
        for item in order.items:
            key = (item.name, item.price)
            existing = combined.get(key)
            if existing is None:
                combined[key] = CombinedLine(
                    name=item.name,
                    price=item.price,
                    quantity=item.quantity,
                    ordered_by=(order.participant_id,),
                    ordered_by_names=(order.participant_name,),
                )
                continue
            ordered_by = existing.ordered_by
            names = existing.ordered_by_names
            if order.participant_id not in ordered_by:
                ordered_by = (*ordered_by, order.participant_id)
                names = (*names, order.participant_name)
            combined[key] = CombinedLine(
                name=existing.name,
                price=existing.price,
                quantity=existing.quantity + item.quantity,
                ordered_by=ordered_by,
                ordered_by_names=names,
            )
    return list(combined.values())


def format_combined_order(lines: list[CombinedLine]) -> str:
    """Format combined lines for pasting into a restaurant order."""
    return "\n".join(f"{line.name} x {line.quantity}" for line in lines)


def to_cents(amount: Decimal) -> Decimal:
    """Round an amount to two decimals for display."""
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


def _participant_cost(order: Order, share: Decimal) -> ParticipantCost:
    food = items_total(order)
    return ParticipantCost(
        participant_id=order.participant_id,
        participant_name=order.participant_name,
        items=order.items,
        items_total=food,
        delivery_share=share,
        total=food + share,
        payment_sent=order.payment_sent,
    )


def _check_shares(costs: tuple[ParticipantCost, ...], fee: Decimal) -> None:
    shares = sum((cost.delivery_share for cost in costs), Decimal(0))
    if abs(shares - fee) > _SHARE_TOLERANCE:
        raise SettlementError(
            f"Delivery shares sum to {shares}, expected delivery fee {fee}"
        )
