# Overview: Valuation Engine; point-in-time inventory value under FIFO, LIFO or AVERAGE costing.

from __future__ import annotations

import enum
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from sqlalchemy import func

from ..errors import UnknownMethodError
from ..extensions import db
from ..models import Category, Movement, Product
from ..validation import parse_as_of
from stockledger.time_utils import to_utc_z, utcnow
from . import movement_store
from .catalog_service import get_product
from .movement_rules import Direction, MovementType
from .stock_service import current_stock, stock_for_products

"""
Valuation Semantics (authoritative)

- Cutoff is inclusive (created_at <= cutoff) and defaults to now.
- FIFO / LIFO replay the product's movements oldest first:
    inbound  -> push a layer (unit_cost, or the product's standard cost when
                the movement carries none)
    outbound -> consume from the oldest layer (FIFO) or newest (LIFO),
                splitting a partially consumed layer; consumption beyond the
                available layers stops at zero
  value = sum(layer.remaining * layer.cost)
- Transfer pairs move stock between locations without changing what the
  product is worth, so the replay skips them.
- AVERAGE: max(stock at cutoff, 0) * mean(unit_cost of inbound movements with
  a cost up to cutoff), falling back to the standard cost.
- All results are rounded half-up to cents.
"""

CENTS = Decimal("0.01")
ZERO = Decimal("0")


class CostingMethod(str, enum.Enum):
    FIFO = "FIFO"
    LIFO = "LIFO"
    AVERAGE = "AVERAGE"


def parse_method(value) -> CostingMethod:
    if isinstance(value, CostingMethod):
        return value
    try:
        return CostingMethod(str(value).strip().upper())
    except ValueError:
        raise UnknownMethodError(
            f"Unknown costing method: {value!r}",
            details={"allowed": [m.value for m in CostingMethod]},
        )


@dataclass
class Layer:
    quantity_remaining: int
    unit_cost: Decimal
    acquired_at: datetime | None = None


def _to_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def replay_layers(movements: Iterable[Movement], method, fallback_cost: Decimal) -> deque:
    """
    Rebuild the cost layers left after replaying movements in order.

    Pure: reads attributes off the movements (product rows are not touched)
    and returns a fresh deque of Layer objects.
    """
    method = parse_method(method)
    if method is CostingMethod.AVERAGE:
        raise UnknownMethodError("AVERAGE costing does not use layers")

    fallback = Decimal(fallback_cost or 0)
    layers: deque = deque()

    for movement in movements:
        if movement.movement_type == MovementType.TRANSFER.value:
            continue

        if movement.direction == Direction.IN.value:
            cost = Decimal(movement.unit_cost) if movement.unit_cost is not None else fallback
            layers.append(Layer(movement.quantity, cost, movement.created_at))
            continue

        remaining = movement.quantity
        while remaining > 0 and layers:
            layer = layers[0] if method is CostingMethod.FIFO else layers[-1]
            taken = min(layer.quantity_remaining, remaining)
            layer.quantity_remaining -= taken
            remaining -= taken
            if layer.quantity_remaining == 0:
                if method is CostingMethod.FIFO:
                    layers.popleft()
                else:
                    layers.pop()

    return layers


def layers_value(layers: Iterable[Layer]) -> Decimal:
    total = sum((layer.unit_cost * layer.quantity_remaining for layer in layers), ZERO)
    return _to_money(total)


def average_unit_cost(product_id: int, cutoff: datetime, fallback_cost: Decimal) -> Decimal:
    avg = (
        db.session.query(func.avg(Movement.unit_cost))
        .filter(
            Movement.product_id == product_id,
            Movement.direction == Direction.IN.value,
            Movement.unit_cost.isnot(None),
            Movement.created_at <= cutoff,
        )
        .scalar()
    )
    if avg is None:
        return Decimal(fallback_cost or 0)
    # SQLite returns a float for AVG; go through str to keep the decimal digits
    return Decimal(str(avg))


def _value_product(product: Product, method: CostingMethod, cutoff: datetime) -> Decimal:
    fallback = Decimal(product.standard_cost or 0)
    if method is CostingMethod.AVERAGE:
        stock = current_stock(product.id, as_of=cutoff)
        if stock <= 0:
            return _to_money(ZERO)
        return _to_money(average_unit_cost(product.id, cutoff, fallback) * stock)

    layers = replay_layers(movement_store.list_for_product(product.id, as_of=cutoff), method, fallback)
    return layers_value(layers)


def value_as_of(product_id: int, method, cutoff=None) -> Decimal:
    """Value of one product's stock at cutoff (inclusive, default now)."""
    method = parse_method(method)
    cutoff = parse_as_of(cutoff) or utcnow()
    product = get_product(product_id)
    return _value_product(product, method, cutoff)


def value_catalog(method, cutoff=None, category_id: int | None = None, *, include_inactive: bool = False) -> dict:
    """
    Inventory value report: grand total, one row per product, a
    per-category breakdown and stock metrics.

    Inactive products are left out unless include_inactive is set.
    """
    method = parse_method(method)
    cutoff = parse_as_of(cutoff) or utcnow()

    q = db.session.query(Product).order_by(Product.id.asc())
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)
    if not include_inactive:
        q = q.filter(Product.is_active.is_(True))
    products = q.all()

    stock = stock_for_products([p.id for p in products], as_of=cutoff)
    category_names = {c.id: c.name for c in db.session.query(Category).all()}

    rows = []
    by_category: dict = {}
    total_value = ZERO
    total_quantity = 0
    in_stock_count = 0
    for product in products:
        quantity = stock.get(product.id, 0)
        value = _value_product(product, method, cutoff)
        rows.append({
            "product_id": product.id,
            "sku": product.sku,
            "name": product.name,
            "category_id": product.category_id,
            "quantity": quantity,
            "value": str(value),
        })
        bucket = by_category.setdefault(product.category_id, {
            "category_id": product.category_id,
            "category_name": category_names.get(product.category_id),
            "product_count": 0,
            "quantity": 0,
            "value": ZERO,
        })
        bucket["product_count"] += 1
        bucket["quantity"] += quantity
        bucket["value"] += value
        total_value += value
        total_quantity += quantity
        if quantity > 0:
            in_stock_count += 1

    categories = []
    for bucket in by_category.values():
        categories.append({**bucket, "value": str(_to_money(bucket["value"]))})
    categories.sort(key=lambda b: (b["category_id"] is None, b["category_id"] or 0))

    product_count = len(rows)
    average_value = total_value / product_count if product_count else ZERO

    return {
        "method": method.value,
        "as_of": to_utc_z(cutoff),
        "category_id": category_id,
        "total_value": str(_to_money(total_value)),
        "total_quantity": total_quantity,
        "products": rows,
        "by_category": categories,
        "metrics": {
            "product_count": product_count,
            "in_stock_count": in_stock_count,
            "out_of_stock_count": product_count - in_stock_count,
            "average_value_per_product": str(_to_money(average_value)),
        },
        "include_inactive": include_inactive,
    }
