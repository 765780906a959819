# Overview: Derives stock on hand from movement history; stock is never stored.

from __future__ import annotations

from sqlalchemy import case, func

from ..extensions import db
from ..models import Movement
from ..validation import parse_as_of

"""
Stock Projection (authoritative)

- stock = SUM(quantity WHERE direction='in') - SUM(quantity WHERE direction='out')
- Computed by a single aggregate query so the result reflects one snapshot.
- Optional location and inclusive as-of filters (created_at <= as_of).
- A product with no movements has stock 0. Stock may be negative when
  non-sale outbound movements exceed receipts; callers that need a floor
  apply it themselves.
"""

_signed_quantity = case(
    (Movement.direction == "in", Movement.quantity),
    else_=-Movement.quantity,
)


def current_stock(product_id: int, location_id: int | None = None, as_of=None) -> int:
    as_of = parse_as_of(as_of)
    q = db.session.query(func.coalesce(func.sum(_signed_quantity), 0)).filter(
        Movement.product_id == product_id
    )
    if location_id is not None:
        q = q.filter(Movement.location_id == location_id)
    if as_of is not None:
        q = q.filter(Movement.created_at <= as_of)
    return int(q.scalar() or 0)


def stock_for_products(product_ids, as_of=None) -> dict[int, int]:
    """Stock for many products in one query; products without movements map to 0."""
    product_ids = list(product_ids)
    if not product_ids:
        return {}
    as_of = parse_as_of(as_of)
    q = db.session.query(
        Movement.product_id,
        func.coalesce(func.sum(_signed_quantity), 0),
    ).filter(Movement.product_id.in_(product_ids))
    if as_of is not None:
        q = q.filter(Movement.created_at <= as_of)
    rows = q.group_by(Movement.product_id).all()
    stock = {product_id: 0 for product_id in product_ids}
    stock.update({product_id: int(total or 0) for product_id, total in rows})
    return stock


def stock_by_location(product_id: int, as_of=None) -> dict[int | None, int]:
    """Per-location breakdown; movements without a location are keyed by None."""
    as_of = parse_as_of(as_of)
    q = db.session.query(
        Movement.location_id,
        func.coalesce(func.sum(_signed_quantity), 0),
    ).filter(Movement.product_id == product_id)
    if as_of is not None:
        q = q.filter(Movement.created_at <= as_of)
    rows = q.group_by(Movement.location_id).order_by(Movement.location_id).all()
    return {location_id: int(total or 0) for location_id, total in rows}
