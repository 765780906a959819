# Overview: Transaction Ledger; records business transactions and their movements atomically.

from __future__ import annotations

import logging
from datetime import datetime

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Transaction, TransactionItem
from ..validation import TransactionRequest, build_transaction_request, coerce_int, parse_as_of
from . import movement_store
from .catalog_service import ensure_locations, lock_products
from .concurrency import UnitOfWork, run_in_unit_of_work
from .movement_rules import Direction, TransactionStatus, TransactionType, parse_transaction_type, rule_for
from .reference_service import assign_reference
from .stock_service import current_stock

"""
Transaction Ledger Invariants (authoritative)

- A transaction, its line items and its movements are written in ONE unit of
  work: all of them commit or none do.
- Line money: gross = qty * unit_price; discount = gross * pct / 100 (half-up
  to cents); net = gross - discount.
- total_amount = sum(net); total_items = sum(qty).
- Sales never take stock below zero: for each product, the summed quantity
  across lines must not exceed stock at the moment of the check. The check
  and the append happen inside the same locked unit.
- Movement directions come from the MOVEMENT_RULES table; adjustment lines
  carry their own direction; transfers emit out@from + in@to.
- Only purchase receipts carry a unit cost (net unit price).
"""

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200


def _validate_on_hand(request: TransactionRequest) -> None:
    product_totals: dict[int, int] = {}
    for item in request.items:
        product_totals[item.product_id] = product_totals.get(item.product_id, 0) + item.quantity

    insufficient = []
    for product_id in sorted(product_totals):
        qty = product_totals[product_id]
        on_hand = current_stock(product_id)
        if on_hand < qty:
            insufficient.append({
                "product_id": product_id,
                "requested_quantity": qty,
                "on_hand": on_hand,
            })

    if insufficient:
        raise InsufficientStockError(
            "Insufficient stock to record sale",
            details={"items": insufficient},
        )


def _append_line_movements(uow: UnitOfWork, txn: Transaction, line: TransactionItem, item, request: TransactionRequest) -> None:
    rule = rule_for(request.type)
    common = dict(
        product_id=line.product_id,
        quantity=line.quantity,
        transaction_id=txn.id,
        transaction_item_id=line.id,
        reference=txn.reference,
        reason=line.notes or request.notes,
    )

    if request.type is TransactionType.TRANSFER:
        movement_store.append(
            uow, movement_type=rule.movement_type, direction=Direction.OUT,
            location_id=request.from_location_id, **common,
        )
        movement_store.append(
            uow, movement_type=rule.movement_type, direction=Direction.IN,
            location_id=request.to_location_id, **common,
        )
        return

    direction = rule.direction or item.direction
    movement_store.append(
        uow,
        movement_type=rule.movement_type,
        direction=direction,
        unit_cost=item.net_unit_price if rule.costed else None,
        location_id=request.location_id,
        **common,
    )


def _record(uow: UnitOfWork, request: TransactionRequest) -> Transaction:
    ensure_locations(request.location_id, request.from_location_id, request.to_location_id)
    lock_products(request.product_ids)

    if request.type is TransactionType.SALE:
        _validate_on_hand(request)

    reference = assign_reference(request.type, request.reference)

    txn = Transaction(
        type=request.type.value,
        reference=reference,
        counterpart_type=request.counterpart_type,
        counterpart_id=request.counterpart_id,
        total_amount=request.total_amount,
        total_discount=request.total_discount,
        total_items=request.total_items,
        payment_method=request.payment_method,
        payment_status=request.payment_status,
        status=request.status.value,
        notes=request.notes,
        location_id=request.location_id,
        from_location_id=request.from_location_id,
        to_location_id=request.to_location_id,
        extra=request.metadata,
        created_by=request.created_by,
        updated_by=request.created_by,
    )
    uow.add(txn)
    uow.flush()

    for item in request.items:
        line = TransactionItem(
            transaction_id=txn.id,
            product_id=item.product_id,
            quantity=item.quantity,
            unit_price=item.unit_price,
            discount_percent=item.discount_percent,
            discount_amount=item.discount_amount,
            gross_total=item.gross_total,
            net_total=item.net_total,
            direction=item.direction.value if item.direction else None,
            notes=item.notes,
        )
        uow.add(line)
        uow.flush()
        _append_line_movements(uow, txn, line, item, request)

    logger.info(
        "Recorded %s %s (%d lines, %d movements)",
        txn.type, txn.reference, len(request.items), len(uow.movements),
    )
    return txn


def create_transaction(transaction_type, items, *, created_by=None, after_commit=None, **fields) -> Transaction:
    """
    Record a business transaction with its line items and movements.

    Input is validated before any storage work. Everything else runs in one
    unit of work; InsufficientStockError, NotFoundError and ValidationError
    leave no trace, StorageError means nothing was committed and the caller
    may retry.
    """
    request = build_transaction_request(transaction_type, items, created_by=created_by, **fields)

    def _op(uow: UnitOfWork) -> Transaction:
        return _record(uow, request)

    return run_in_unit_of_work(_op, actor_id=request.created_by, after_commit=after_commit)


def get_transaction(transaction_id: int) -> Transaction:
    txn = db.session.get(Transaction, transaction_id)
    if txn is None:
        raise NotFoundError("transaction", transaction_id)
    return txn


def get_transaction_by_reference(reference: str) -> Transaction:
    txn = db.session.query(Transaction).filter_by(reference=reference).first()
    if txn is None:
        raise NotFoundError("transaction", reference)
    return txn


def list_transactions(
    *,
    transaction_type=None,
    status=None,
    product_id=None,
    start: datetime | str | None = None,
    end: datetime | str | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[Transaction], int]:
    """
    Newest-first listing with optional filters.

    Returns (rows, total). limit is capped at MAX_PAGE_SIZE; the date range
    is inclusive on both ends.
    """
    page = coerce_int(page, "page")
    limit = coerce_int(limit, "limit")
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1:
        raise ValidationError("limit must be >= 1")
    limit = min(limit, MAX_PAGE_SIZE)

    q = db.session.query(Transaction)
    if transaction_type:
        try:
            q = q.filter(Transaction.type == parse_transaction_type(transaction_type).value)
        except ValueError:
            raise ValidationError(f"Invalid transaction type: {transaction_type!r}")
    if status:
        try:
            q = q.filter(Transaction.status == TransactionStatus(status).value)
        except ValueError:
            raise ValidationError(f"Invalid status: {status!r}")
    if product_id is not None:
        product_id = coerce_int(product_id, "product_id")
        q = q.filter(Transaction.items.any(TransactionItem.product_id == product_id))

    start_at = parse_as_of(start)
    end_at = parse_as_of(end)
    if start_at is not None:
        q = q.filter(Transaction.created_at >= start_at)
    if end_at is not None:
        q = q.filter(Transaction.created_at <= end_at)
    if start_at and end_at and start_at > end_at:
        raise ValidationError("start must be before end")

    total = q.count()
    rows = (
        q.order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total
