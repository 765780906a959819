# Overview: Pytest coverage for physical count reconciliation.

from decimal import Decimal

import pytest

from stockledger.errors import ImmutableRecordError, NotFoundError, ValidationError
from stockledger.models import AuditLog, Movement, PhysicalCountResult
from stockledger.services.reconciliation_service import compute_variance

from conftest import receive


class TestComputeVariance:
    """Variance arithmetic."""

    def test_shortfall(self):
        difference, percentage, within = compute_variance(10, 8, Decimal("0.05"))
        assert difference == -2
        assert percentage == Decimal("0.2")
        assert within is False

    def test_within_tolerance_boundary(self):
        difference, percentage, within = compute_variance(100, 105, Decimal("0.05"))
        assert difference == 5
        assert within is True

    def test_tolerance_compares_unrounded_ratio(self):
        # 1/3 rounds to 0.333333 but is still above that tolerance
        difference, percentage, within = compute_variance(3, 2, Decimal("0.333333"))
        assert difference == -1
        assert percentage == Decimal("0.333333")
        assert within is False

    def test_exact_ratio_equal_to_tolerance_is_within(self):
        difference, percentage, within = compute_variance(4, 3, Decimal("0.25"))
        assert percentage == Decimal("0.25")
        assert within is True

    def test_zero_system_stock_uses_absolute_difference(self):
        difference, percentage, within = compute_variance(0, 3, Decimal("0.05"))
        assert difference == 3
        assert percentage == Decimal("3")
        assert within is False


class TestReconcile:
    """Counts are recorded and corrected independently of tolerance."""

    def test_out_of_tolerance_still_adjusts(self, engine, db_session, product):
        receive(engine, product.id, 10)

        result = engine.reconcile(product.id, counted_quantity=8, actor_id=4, notes="cycle count")

        assert result.system_stock == 10
        assert result.difference == -2
        assert result.difference_percentage == Decimal("0.2")
        assert result.within_tolerance is False
        assert result.auto_adjusted is True
        assert engine.current_stock(product.id) == 8

        adjustment = db_session.query(Movement).filter_by(count_result_id=result.id).one()
        assert adjustment.movement_type == "adjustment"
        assert adjustment.direction == "out"
        assert adjustment.quantity == 2

        payload = result.to_dict()
        assert payload["requires_review"] is True
        assert payload["adjustment_movement_id"] == adjustment.id

    def test_surplus_adjusts_in(self, engine, db_session, product):
        receive(engine, product.id, 10)
        result = engine.reconcile(product.id, counted_quantity=13, tolerance="0.5")
        assert result.within_tolerance is True
        assert engine.current_stock(product.id) == 13

    def test_matching_count_posts_nothing(self, engine, db_session, product):
        receive(engine, product.id, 10)
        movements_before = db_session.query(Movement).count()

        result = engine.reconcile(product.id, counted_quantity=10)

        assert result.difference == 0
        assert result.within_tolerance is True
        assert result.auto_adjusted is False
        assert db_session.query(Movement).count() == movements_before

    def test_auto_adjust_disabled(self, engine, db_session, product):
        receive(engine, product.id, 10)
        result = engine.reconcile(product.id, counted_quantity=7, auto_adjust=False)
        assert result.auto_adjusted is False
        assert engine.current_stock(product.id) == 10
        assert db_session.query(PhysicalCountResult).count() == 1

    def test_location_scoped_count(self, engine, product, main_location, back_location):
        receive(engine, product.id, 10, location_id=main_location.id)
        receive(engine, product.id, 5, location_id=back_location.id)

        result = engine.reconcile(product.id, counted_quantity=4, location_id=back_location.id)

        assert result.system_stock == 5
        assert engine.current_stock(product.id, location_id=back_location.id) == 4
        assert engine.current_stock(product.id, location_id=main_location.id) == 10

    def test_default_tolerance_from_config(self, app, engine, product):
        receive(engine, product.id, 100)
        result = engine.reconcile(product.id, counted_quantity=96)
        assert result.tolerance == Decimal(app.config["RECONCILE_DEFAULT_TOLERANCE"])
        assert result.within_tolerance is True

    def test_audit_entry(self, engine, db_session, product):
        receive(engine, product.id, 10)
        result = engine.reconcile(product.id, counted_quantity=9, actor_id=2)
        entry = db_session.query(AuditLog).filter_by(action="inventory.counted").one()
        assert entry.entity_id == result.id
        assert entry.details["difference"] == -1

    @pytest.mark.parametrize("counted, tolerance", [(-1, None), (2.5, None), ("abc", None), (5, "-0.1")])
    def test_invalid_input(self, engine, db_session, product, counted, tolerance):
        with pytest.raises(ValidationError):
            engine.reconcile(product.id, counted_quantity=counted, tolerance=tolerance)
        assert db_session.query(PhysicalCountResult).count() == 0

    def test_unknown_product(self, engine, db_session):
        with pytest.raises(NotFoundError):
            engine.reconcile(999, counted_quantity=1)

    def test_inactive_product(self, engine, inactive_product):
        with pytest.raises(ValidationError):
            engine.reconcile(inactive_product.id, counted_quantity=1)

    def test_count_results_are_immutable(self, engine, db_session, product):
        result = engine.reconcile(product.id, counted_quantity=0)
        result.notes = "edited"
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()
