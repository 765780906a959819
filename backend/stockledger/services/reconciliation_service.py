# Overview: Reconciliation Engine; compares physical counts with ledger stock and posts corrections.

from __future__ import annotations

import logging
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app, has_app_context

from ..errors import ValidationError
from ..models import PhysicalCountResult
from ..validation import coerce_decimal, coerce_int
from . import movement_store
from .catalog_service import ensure_locations, get_product
from .concurrency import UnitOfWork, run_in_unit_of_work
from .movement_rules import Direction, MovementType
from .stock_service import current_stock

"""
Reconciliation Rules (authoritative)

- system   = current stock (at the location when one is given)
- difference = counted - system
- difference_percentage = |difference| / system   when system > 0
                        = |difference|            otherwise
- within_tolerance = difference_percentage <= tolerance

Tolerance only flags the result for review. When auto_adjust is set and the
difference is non-zero, exactly one adjustment movement of |difference| is
appended (direction 'in' when counted > system) regardless of tolerance.
The result row and the adjustment commit together.
"""

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = Decimal("0.05")
PERCENT_PLACES = Decimal("0.000001")


def _default_tolerance() -> Decimal:
    if has_app_context():
        return Decimal(str(current_app.config.get("RECONCILE_DEFAULT_TOLERANCE", DEFAULT_TOLERANCE)))
    return DEFAULT_TOLERANCE


def compute_variance(system_stock: int, counted_quantity: int, tolerance: Decimal) -> tuple[int, Decimal, bool]:
    """Return (difference, difference_percentage, within_tolerance)."""
    difference = counted_quantity - system_stock
    if system_stock > 0:
        percentage = Decimal(abs(difference)) / Decimal(system_stock)
    else:
        percentage = Decimal(abs(difference))
    within = percentage <= tolerance
    return difference, percentage.quantize(PERCENT_PLACES, rounding=ROUND_HALF_UP), within


def reconcile(
    product_id: int,
    *,
    counted_quantity,
    location_id: int | None = None,
    tolerance=None,
    auto_adjust: bool = True,
    actor_id: int | None = None,
    notes: str | None = None,
    after_commit=None,
) -> PhysicalCountResult:
    counted = coerce_int(counted_quantity, "counted_quantity")
    if counted < 0:
        raise ValidationError("counted_quantity must be >= 0")
    tol = _default_tolerance() if tolerance is None else coerce_decimal(tolerance, "tolerance")
    if tol < 0:
        raise ValidationError("tolerance must be >= 0")
    if notes is not None and len(notes) > 1000:
        raise ValidationError("notes must be at most 1000 characters")

    def _op(uow: UnitOfWork) -> PhysicalCountResult:
        ensure_locations(location_id)
        get_product(product_id, require_active=True, lock=True)

        system = current_stock(product_id, location_id=location_id)
        difference, percentage, within = compute_variance(system, counted, tol)
        adjust = auto_adjust and difference != 0

        result = PhysicalCountResult(
            product_id=product_id,
            location_id=location_id,
            system_stock=system,
            counted_quantity=counted,
            difference=difference,
            difference_percentage=percentage,
            tolerance=tol,
            within_tolerance=within,
            auto_adjusted=adjust,
            notes=notes,
            conducted_by=actor_id,
        )
        uow.add(result)
        uow.flush()

        if adjust:
            movement_store.append(
                uow,
                product_id=product_id,
                movement_type=MovementType.ADJUSTMENT,
                direction=Direction.IN if difference > 0 else Direction.OUT,
                quantity=abs(difference),
                location_id=location_id,
                count_result_id=result.id,
                reference=f"COUNT-{result.id}",
                reason=notes or "Physical count adjustment",
            )

        if difference != 0 and not within:
            logger.warning(
                "Count variance outside tolerance for product %s: system=%d counted=%d (%s > %s)",
                product_id, system, counted, percentage, tol,
            )
        return result

    return run_in_unit_of_work(_op, actor_id=actor_id, after_commit=after_commit)
