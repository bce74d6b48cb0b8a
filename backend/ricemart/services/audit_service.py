# Overview: Append-only order audit trail.

from __future__ import annotations

from ..extensions import db
from ..models import Order, OrderEvent
"""
Order event invariants

- One row per order mutation (creation, status change, proof, review).
- Events are written inside the same DB transaction as the change they record.
- No updates or deletes of existing events.
"""


def record_order_event(
    order: Order,
    event_type: str,
    *,
    actor_user_id: int | None = None,
    from_status: str | None = None,
    to_status: str | None = None,
    note: str | None = None,
    payload: dict | None = None,
) -> OrderEvent:
    """Stage an event row on the current session; the caller commits."""
    if order.id is None:
        db.session.flush()

    ev = OrderEvent(
        order_id=order.id,
        event_type=event_type,
        from_status=from_status,
        to_status=to_status,
        actor_user_id=actor_user_id,
        note=note,
        payload=payload,
    )
    db.session.add(ev)
    return ev


def list_order_events(order_id: int) -> list[OrderEvent]:
    return (
        db.session.query(OrderEvent)
        .filter_by(order_id=order_id)
        .order_by(OrderEvent.occurred_at.asc(), OrderEvent.id.asc())
        .all()
    )
