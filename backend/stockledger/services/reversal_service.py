# Overview: Reversal Engine; cancels transactions by appending inverse movements.

from __future__ import annotations

import logging

from ..errors import AlreadyCancelledError, NotCancellableError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Movement, Transaction
from stockledger.time_utils import utcnow
from . import movement_store
from .concurrency import UnitOfWork, lock_for_update, run_in_unit_of_work
from .movement_rules import Direction, TransactionStatus, rule_for

"""
Reversal Invariants (authoritative)

- Cancelling never edits or deletes movements. Each original movement of a
  reversible transaction gets one inverse-direction movement with the same
  product, location, quantity and unit cost, linked through reversal_of_id.
- After cancellation, stock for every touched product equals the stock it
  would have had without the transaction.
- Transfers and damage write-offs are not reversible: cancelling them only
  flips the status.
- A cancelled transaction cannot be cancelled again. Completed and paid
  transactions must be refunded instead.
- The transaction row is locked while the status is checked, so of two
  concurrent cancels exactly one writes reversals.
"""

logger = logging.getLogger(__name__)

CANCEL_REFERENCE_PREFIX = "CANCEL-"


def _check_cancellable(txn: Transaction) -> None:
    if txn.status == TransactionStatus.CANCELLED.value:
        raise AlreadyCancelledError(
            f"transaction {txn.reference} is already cancelled",
            details={"transaction_id": txn.id},
        )
    if txn.status == TransactionStatus.COMPLETED.value and txn.payment_status == "paid":
        raise NotCancellableError(
            f"transaction {txn.reference} is completed and paid; issue a refund instead",
            details={"transaction_id": txn.id},
        )


def _reverse_movements(uow: UnitOfWork, txn: Transaction, reason: str | None) -> int:
    originals = (
        db.session.query(Movement)
        .filter(Movement.transaction_id == txn.id, Movement.reversal_of_id.is_(None))
        .order_by(Movement.id.asc())
        .all()
    )
    reference = f"{CANCEL_REFERENCE_PREFIX}{txn.reference}"
    for original in originals:
        movement_store.append(
            uow,
            product_id=original.product_id,
            movement_type=original.movement_type,
            direction=Direction(original.direction).inverse,
            quantity=original.quantity,
            unit_cost=original.unit_cost,
            location_id=original.location_id,
            transaction_id=txn.id,
            transaction_item_id=original.transaction_item_id,
            reversal_of_id=original.id,
            reference=reference,
            reason=reason,
        )
    return len(originals)


def cancel_transaction(
    transaction_id: int,
    *,
    actor_id: int | None = None,
    reason: str | None = None,
    after_commit=None,
) -> Transaction:
    if reason is not None and len(reason) > 500:
        raise ValidationError("reason must be at most 500 characters")

    def _op(uow: UnitOfWork) -> Transaction:
        txn = lock_for_update(db.session.query(Transaction).filter_by(id=transaction_id)).first()
        if txn is None:
            raise NotFoundError("transaction", transaction_id)
        _check_cancellable(txn)

        reversed_count = 0
        if rule_for(txn.type).reversible:
            reversed_count = _reverse_movements(uow, txn, reason)
        else:
            logger.info("Transaction %s (%s) is not reversible; status only", txn.reference, txn.type)

        note = f"Cancelled: {reason}" if reason else "Cancelled"
        txn.notes = f"{txn.notes}\n{note}" if txn.notes else note
        txn.status = TransactionStatus.CANCELLED.value
        txn.updated_by = actor_id
        txn.updated_at = utcnow()
        uow.flush()

        logger.info("Cancelled %s; %d movements reversed", txn.reference, reversed_count)
        return txn

    return run_in_unit_of_work(_op, actor_id=actor_id, after_commit=after_commit)
