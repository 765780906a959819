from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..errors import ImmutableRecordError
from stockledger.time_utils import to_utc_z, utcnow


def _money(value) -> str | None:
    return str(value) if value is not None else None


class Transaction(db.Model):
    """
    A business event (sale, purchase, return, adjustment, transfer, damage).

    LIFECYCLE:
    - Created atomically together with its line items and movements.
    - Cancelled through the reversal path: status flips to "cancelled" and
      reversal movements are appended. Rows are never deleted.

    INVARIANTS:
    - total_amount == sum(item.net_total)
    - total_items == sum(item.quantity)
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_type_created", "type", "created_at"),
        db.Index("ix_transactions_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    reference = db.Column(db.String(64), nullable=False, unique=True)

    # Customer for sales/returns, supplier for purchases. Opaque to the ledger.
    counterpart_type = db.Column(db.String(16), nullable=True)
    counterpart_id = db.Column(db.Integer, nullable=True, index=True)

    total_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_discount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_items = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending")

    status = db.Column(db.String(24), nullable=False, default="pending", index=True)

    notes = db.Column(db.Text, nullable=True)

    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)
    from_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)
    to_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)

    # "metadata" is reserved on declarative classes
    extra = db.Column("metadata", db.JSON, nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    updated_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "TransactionItem",
        backref="transaction",
        lazy=True,
        order_by="TransactionItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} type={self.type} reference={self.reference!r} status={self.status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "type": self.type,
            "reference": self.reference,
            "counterpart_type": self.counterpart_type,
            "counterpart_id": self.counterpart_id,
            "total_amount": _money(self.total_amount),
            "total_discount": _money(self.total_discount),
            "total_items": self.total_items,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "status": self.status,
            "notes": self.notes,
            "location_id": self.location_id,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "metadata": self.extra,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class TransactionItem(db.Model):
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_transaction_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(14, 4), nullable=False)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    gross_total = db.Column(db.Numeric(14, 2), nullable=False)
    net_total = db.Column(db.Numeric(14, 2), nullable=False)

    # Only set for adjustment lines, where the caller decides the sign
    direction = db.Column(db.String(8), nullable=True)

    notes = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": _money(self.unit_price),
            "discount_percent": _money(self.discount_percent),
            "discount_amount": _money(self.discount_amount),
            "gross_total": _money(self.gross_total),
            "net_total": _money(self.net_total),
            "direction": self.direction,
            "notes": self.notes,
        }


class Movement(db.Model):
    """
    One atomic, immutable stock change.

    APPEND-ONLY: rows are never updated. Corrections (cancellations, count
    adjustments) are new movements. The only deletion path is a whole-product
    purge owned by product management, outside the ledger.

    movement_type describes what kind of event produced the row
    (in/out/adjustment/transfer). direction is the explicit sign marker that
    the stock projection sums; adjustment and transfer rows rely on it.
    """
    __tablename__ = "movements"
    __table_args__ = (
        db.Index("ix_movements_product_created", "product_id", "created_at", "id"),
        db.Index("ix_movements_product_location", "product_id", "location_id"),
        db.CheckConstraint("quantity > 0", name="ck_movements_quantity_positive"),
        db.CheckConstraint("direction IN ('in', 'out')", name="ck_movements_direction"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    direction = db.Column(db.String(8), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    # Null for non-costed movements; valuation falls back to standard cost
    unit_cost = db.Column(db.Numeric(14, 4), nullable=True)

    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True, index=True)
    transaction_item_id = db.Column(db.Integer, db.ForeignKey("transaction_items.id"), nullable=True)
    count_result_id = db.Column(db.Integer, db.ForeignKey("physical_count_results.id"), nullable=True, index=True)
    reversal_of_id = db.Column(db.Integer, db.ForeignKey("movements.id"), nullable=True, index=True)

    reference = db.Column(db.String(80), nullable=True, index=True)
    reason = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self) -> str:
        return (
            f"<Movement id={self.id} product_id={self.product_id} {self.movement_type}/"
            f"{self.direction} qty={self.quantity}>"
        )

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.direction == "in" else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "movement_type": self.movement_type,
            "direction": self.direction,
            "quantity": self.quantity,
            "unit_cost": _money(self.unit_cost),
            "transaction_id": self.transaction_id,
            "transaction_item_id": self.transaction_item_id,
            "count_result_id": self.count_result_id,
            "reversal_of_id": self.reversal_of_id,
            "reference": self.reference,
            "reason": self.reason,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class PhysicalCountResult(db.Model):
    """
    Outcome of comparing a physical count with the ledger-derived stock.

    Created once per reconciliation and never updated. within_tolerance flags
    the variance for review; whether an adjustment was posted is recorded
    independently in auto_adjusted.
    """
    __tablename__ = "physical_count_results"
    __table_args__ = (
        db.Index("ix_count_results_product_conducted", "product_id", "conducted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)

    system_stock = db.Column(db.Integer, nullable=False)
    counted_quantity = db.Column(db.Integer, nullable=False)
    difference = db.Column(db.Integer, nullable=False)
    difference_percentage = db.Column(db.Numeric(14, 6), nullable=False)
    tolerance = db.Column(db.Numeric(8, 6), nullable=False)
    within_tolerance = db.Column(db.Boolean, nullable=False)
    auto_adjusted = db.Column(db.Boolean, nullable=False, default=False)

    notes = db.Column(db.Text, nullable=True)
    conducted_by = db.Column(db.Integer, nullable=True)
    conducted_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    adjustments = db.relationship("Movement", backref="count_result", lazy=True)

    def to_dict(self) -> dict:
        adjustment = self.adjustments[0] if self.adjustments else None
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "system_stock": self.system_stock,
            "counted_quantity": self.counted_quantity,
            "difference": self.difference,
            "difference_percentage": str(self.difference_percentage),
            "tolerance": str(self.tolerance),
            "within_tolerance": self.within_tolerance,
            "requires_review": self.difference != 0 and not self.within_tolerance,
            "auto_adjusted": self.auto_adjusted,
            "adjustment_movement_id": adjustment.id if adjustment else None,
            "notes": self.notes,
            "conducted_by": self.conducted_by,
            "conducted_at": to_utc_z(self.conducted_at),
        }


@event.listens_for(Movement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise ImmutableRecordError(f"movement {target.id} is append-only")


@event.listens_for(PhysicalCountResult, "before_update")
def _reject_count_result_update(mapper, connection, target):
    raise ImmutableRecordError(f"count result {target.id} is immutable")
