# Overview: Pytest coverage for cancelling transactions through reversal movements.

from decimal import Decimal

import pytest

from stockledger.errors import AlreadyCancelledError, NotCancellableError, NotFoundError
from stockledger.models import AuditLog, Movement, Transaction
from stockledger.services import movement_store

from conftest import receive, sell


class TestCancelTransaction:
    """Reversal restores stock without touching existing movements."""

    def test_cancel_sale_restores_stock(self, engine, db_session, product):
        receive(engine, product.id, 10)
        sale = sell(engine, product.id, 4)
        assert engine.current_stock(product.id) == 6

        cancelled = engine.cancel_transaction(sale.id, actor_id=5, reason="customer changed mind")

        assert cancelled.status == "cancelled"
        assert cancelled.updated_by == 5
        assert "Cancelled: customer changed mind" in cancelled.notes
        assert engine.current_stock(product.id) == 10

        movements = movement_store.list_for_transaction(sale.id)
        original, reversal = movements
        assert original.direction == "out"
        assert reversal.direction == "in"
        assert reversal.reversal_of_id == original.id
        assert reversal.quantity == original.quantity
        assert reversal.reference == f"CANCEL-{sale.reference}"

    def test_cancel_purchase_copies_cost(self, engine, product):
        purchase = receive(engine, product.id, 10, unit_price="2.50")
        engine.cancel_transaction(purchase.id, reason="wrong supplier")

        original, reversal = movement_store.list_for_transaction(purchase.id)
        assert reversal.direction == "out"
        assert reversal.unit_cost == original.unit_cost == Decimal("2.5000")
        assert engine.current_stock(product.id) == 0

    def test_cancel_multi_line_adjustment(self, engine, product, other_product):
        receive(engine, product.id, 5)
        adjustment = engine.create_transaction("adjustment", [
            {"product_id": product.id, "quantity": 2, "unit_price": "1", "direction": "out"},
            {"product_id": other_product.id, "quantity": 3, "unit_price": "1", "direction": "in"},
        ])
        engine.cancel_transaction(adjustment.id)
        assert engine.current_stock(product.id) == 5
        assert engine.current_stock(other_product.id) == 0

    def test_original_movements_are_untouched(self, engine, db_session, product):
        receive(engine, product.id, 10)
        sale = sell(engine, product.id, 3)
        snapshot = [(m.id, m.direction, m.quantity) for m in movement_store.list_for_transaction(sale.id)]

        engine.cancel_transaction(sale.id)

        after = [(m.id, m.direction, m.quantity) for m in movement_store.list_for_transaction(sale.id)]
        assert after[: len(snapshot)] == snapshot

    def test_transfer_is_not_reversed(self, engine, db_session, product, main_location, back_location):
        receive(engine, product.id, 10, location_id=main_location.id)
        transfer = engine.create_transaction(
            "transfer",
            [{"product_id": product.id, "quantity": 4, "unit_price": "1"}],
            from_location_id=main_location.id,
            to_location_id=back_location.id,
        )
        engine.cancel_transaction(transfer.id)

        assert db_session.get(Transaction, transfer.id).status == "cancelled"
        assert len(movement_store.list_for_transaction(transfer.id)) == 2
        assert engine.current_stock(product.id, location_id=back_location.id) == 4

    def test_damage_is_not_reversed(self, engine, product):
        receive(engine, product.id, 10)
        damage = engine.create_transaction("damage", [{"product_id": product.id, "quantity": 2, "unit_price": "1"}])
        engine.cancel_transaction(damage.id)
        assert engine.current_stock(product.id) == 8

    def test_audit_entry_for_cancellation(self, engine, db_session, product):
        purchase = receive(engine, product.id, 2)
        engine.cancel_transaction(purchase.id, actor_id=9)
        entry = db_session.query(AuditLog).filter_by(action="transaction.cancelled").one()
        assert entry.entity_id == purchase.id
        assert entry.actor_id == 9
        assert len(entry.details["reversal_movement_ids"]) == 1


class TestCancelPreconditions:
    """State machine: pending/completed(unpaid) -> cancelled, once."""

    def test_missing_transaction(self, engine, db_session):
        with pytest.raises(NotFoundError):
            engine.cancel_transaction(12345)

    def test_second_cancel_fails_without_writing(self, engine, db_session, product):
        receive(engine, product.id, 10)
        sale = sell(engine, product.id, 4)
        engine.cancel_transaction(sale.id)
        movements_after_first = db_session.query(Movement).count()

        with pytest.raises(AlreadyCancelledError):
            engine.cancel_transaction(sale.id)

        assert db_session.query(Movement).count() == movements_after_first
        assert engine.current_stock(product.id) == 10

    def test_completed_and_paid_is_not_cancellable(self, engine, db_session, product):
        receive(engine, product.id, 10)
        sale = sell(engine, product.id, 4, status="completed", payment_status="paid")

        with pytest.raises(NotCancellableError):
            engine.cancel_transaction(sale.id)

        assert db_session.get(Transaction, sale.id).status == "completed"
        assert engine.current_stock(product.id) == 6

    def test_completed_but_unpaid_can_be_cancelled(self, engine, product):
        receive(engine, product.id, 10)
        sale = sell(engine, product.id, 4, status="completed", payment_status="pending")
        assert engine.cancel_transaction(sale.id).status == "cancelled"
