# Overview: Append-only persistence of movements and time-ordered reads over them.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterator

from ..errors import ValidationError
from ..extensions import db
from ..models import Movement
from stockledger.time_utils import utcnow
from ..validation import parse_as_of
from .concurrency import UnitOfWork
from .movement_rules import Direction, MovementType

"""
Movement Store Invariants (authoritative)

- Movements are appended, never updated. Corrections are new movements.
- quantity is always positive; direction carries the sign.
- Reads are ordered ascending by (created_at, id), so equal timestamps keep
  insertion order.
- As-of filtering is inclusive: created_at <= as_of.
- Appends flush inside the caller's unit of work and never commit on their own.
"""

# Rows fetched per round trip while streaming history
STREAM_BATCH_SIZE = 500


def append(
    uow: UnitOfWork,
    *,
    product_id: int,
    movement_type: MovementType | str,
    direction: Direction | str,
    quantity: int,
    unit_cost: Decimal | None = None,
    location_id: int | None = None,
    transaction_id: int | None = None,
    transaction_item_id: int | None = None,
    count_result_id: int | None = None,
    reversal_of_id: int | None = None,
    reference: str | None = None,
    reason: str | None = None,
    created_by: int | None = None,
    created_at: datetime | None = None,
) -> Movement:
    try:
        movement_type = MovementType(movement_type)
    except ValueError:
        raise ValidationError(f"invalid movement_type: {movement_type!r}")
    try:
        direction = Direction(direction)
    except ValueError:
        raise ValidationError(f"invalid direction: {direction!r}")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("movement quantity must be a positive integer")

    movement = Movement(
        product_id=product_id,
        location_id=location_id,
        movement_type=movement_type.value,
        direction=direction.value,
        quantity=quantity,
        unit_cost=unit_cost,
        transaction_id=transaction_id,
        transaction_item_id=transaction_item_id,
        count_result_id=count_result_id,
        reversal_of_id=reversal_of_id,
        reference=reference,
        reason=reason,
        created_by=created_by if created_by is not None else uow.actor_id,
        created_at=created_at or utcnow(),
    )
    uow.add(movement)
    uow.flush()
    uow.record_movement(movement)
    return movement


def _product_query(product_id: int, as_of=None, location_id: int | None = None):
    as_of = parse_as_of(as_of)
    q = db.session.query(Movement).filter(Movement.product_id == product_id)
    if location_id is not None:
        q = q.filter(Movement.location_id == location_id)
    if as_of is not None:
        q = q.filter(Movement.created_at <= as_of)
    return q


def list_for_product(product_id: int, as_of=None, location_id: int | None = None) -> Iterator[Movement]:
    """
    Stream a product's movements oldest first.

    Each call issues a fresh query, so the sequence can be restarted by
    calling again. It is always finite.
    """
    q = _product_query(product_id, as_of, location_id).order_by(
        Movement.created_at.asc(), Movement.id.asc()
    )
    yield from q.yield_per(STREAM_BATCH_SIZE)


def list_for_transaction(transaction_id: int) -> list[Movement]:
    return (
        db.session.query(Movement)
        .filter(Movement.transaction_id == transaction_id)
        .order_by(Movement.id.asc())
        .all()
    )


def recent_for_product(
    product_id: int,
    *,
    limit: int = 50,
    location_id: int | None = None,
    as_of=None,
) -> list[Movement]:
    """Newest first; used for history listings."""
    limit = max(1, min(int(limit), 200))
    return (
        _product_query(product_id, as_of, location_id)
        .order_by(Movement.created_at.desc(), Movement.id.desc())
        .limit(limit)
        .all()
    )
