"""Conversion between domain objects and their JSON wire shape."""

from datetime import datetime
from decimal import Decimal

from group_order.domain.restaurants import RestaurantRef
from group_order.domain.sessions import LineItem, Order, Session
from group_order.domain.settlement import CombinedLine, ParticipantCost, SettledSession
from group_order.services.settlement import to_cents


def settled_session_payload(settled: SettledSession) -> dict[str, object]:
    """Render a settled session; also used as the ``updated`` event payload."""
    session = settled.session
    summary = settled.settlement.summary
    return {
        "id": session.id,
        "hostId": session.host_id,
        "hostName": session.host_name,
        "status": session.status.value,
        "paymentInfo": session.payment_info,
        "deliveryFee": _money(session.delivery_fee),
        "deadline": _timestamp(session.deadline),
        "createdAt": _timestamp(session.created_at),
        "closedAt": _timestamp(session.closed_at),
        "restaurant": restaurant_payload(session.restaurant),
        "orders": [_order_payload(order) for order in session.orders.values()],
        "perParticipant": [
            _cost_payload(cost) for cost in settled.settlement.per_participant
        ],
        "summary": {
            "totalFood": _money(summary.total_food),
            "totalDelivery": _money(summary.total_delivery),
            "grandTotal": _money(summary.grand_total),
            "participantCount": summary.participant_count,
            "paidCount": summary.paid_count,
            "outstandingTotal": _money(summary.outstanding_total),
        },
    }


def closed_payload(session: Session) -> dict[str, object]:
    return {"id": session.id}


def combined_payload(lines: list[CombinedLine]) -> list[dict[str, object]]:
    return [
        {
            "name": line.name,
            "price": _money(line.price),
            "quantity": line.quantity,
            "orderedBy": list(line.ordered_by),
            "orderedByNames": list(line.ordered_by_names),
        }
        for line in lines
    ]


def restaurant_payload(restaurant: RestaurantRef | None) -> dict[str, object] | None:
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
                            {"label": variant.label, "price": _money(variant.price)}
                            for variant in item.variants
                        ],
                    }
                    for item in category.items
                ],
            }
            for category in restaurant.categories
        ],
    }


def _order_payload(order: Order) -> dict[str, object]:
    return {
        "participantId": order.participant_id,
        "participantName": order.participant_name,
        "items": [_item_payload(item) for item in order.items],
        "paymentSent": order.payment_sent,
        "submittedAt": _timestamp(order.submitted_at),
        "updatedAt": _timestamp(order.updated_at),
    }


def _cost_payload(cost: ParticipantCost) -> dict[str, object]:
    return {
        "participantId": cost.participant_id,
        "participantName": cost.participant_name,
        "itemsTotal": _money(cost.items_total),
        "deliveryShare": _money(cost.delivery_share),
        "total": _money(cost.total),
        "paymentSent": cost.payment_sent,
    }


def _item_payload(item: LineItem) -> dict[str, object]:
    return {"name": item.name, "price": _money(item.price), "quantity": item.quantity}


def _money(amount: Decimal) -> float:
    return float(to_cents(amount))


def _timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
