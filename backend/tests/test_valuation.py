# Overview: Pytest coverage for FIFO, LIFO and AVERAGE valuation.

from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from stockledger.errors import NotFoundError, UnknownMethodError
from stockledger.services import movement_store, valuation_service
from stockledger.services.concurrency import run_in_unit_of_work
from stockledger.services.valuation_service import layers_value, replay_layers
from stockledger.time_utils import utcnow

from conftest import receive, sell


def _mv(direction, quantity, unit_cost=None, movement_type=None):
    return SimpleNamespace(
        direction=direction,
        quantity=quantity,
        unit_cost=Decimal(unit_cost) if unit_cost is not None else None,
        movement_type=movement_type or direction,
        created_at=None,
    )


class TestReplayLayers:
    """Pure layer replay."""

    def test_fifo_consumes_oldest(self):
        layers = replay_layers([_mv("in", 10, "1"), _mv("in", 10, "2"), _mv("out", 12)], "FIFO", Decimal("0"))
        assert [(l.quantity_remaining, l.unit_cost) for l in layers] == [(8, Decimal("2"))]
        assert layers_value(layers) == Decimal("16.00")

    def test_lifo_consumes_newest(self):
        layers = replay_layers([_mv("in", 10, "1"), _mv("in", 10, "2"), _mv("out", 12)], "LIFO", Decimal("0"))
        assert [(l.quantity_remaining, l.unit_cost) for l in layers] == [(8, Decimal("1"))]
        assert layers_value(layers) == Decimal("8.00")

    def test_missing_cost_uses_fallback(self):
        layers = replay_layers([_mv("in", 4)], "FIFO", Decimal("2.25"))
        assert layers_value(layers) == Decimal("9.00")

    def test_over_consumption_stops_at_zero(self):
        layers = replay_layers([_mv("in", 3, "1"), _mv("out", 5), _mv("in", 2, "4")], "FIFO", Decimal("0"))
        assert [(l.quantity_remaining, l.unit_cost) for l in layers] == [(2, Decimal("4"))]

    def test_transfers_do_not_change_layers(self):
        moves = [
            _mv("in", 10, "1"),
            _mv("in", 10, "2"),
            _mv("out", 5, movement_type="transfer"),
            _mv("in", 5, movement_type="transfer"),
        ]
        assert layers_value(replay_layers(moves, "FIFO", Decimal("9"))) == Decimal("30.00")

    def test_method_is_case_insensitive(self):
        layers = replay_layers([_mv("in", 1, "1")], "fifo", Decimal("0"))
        assert layers_value(layers) == Decimal("1.00")

    def test_unknown_method(self):
        with pytest.raises(UnknownMethodError):
            replay_layers([], "HIFO", Decimal("0"))

    def test_input_movements_are_not_modified(self):
        moves = [_mv("in", 10, "1"), _mv("out", 4)]
        replay_layers(moves, "FIFO", Decimal("0"))
        assert [m.quantity for m in moves] == [10, 4]


class TestValueAsOf:
    """Valuation against stored movements."""

    def test_fifo_and_lifo_diverge(self, engine, product):
        receive(engine, product.id, 10, unit_price="1.00")
        receive(engine, product.id, 10, unit_price="2.00")
        sell(engine, product.id, 12)

        assert engine.value_as_of(product.id, "FIFO") == Decimal("16.00")
        assert engine.value_as_of(product.id, "LIFO") == Decimal("8.00")

    def test_average_uses_mean_receipt_cost(self, engine, product):
        receive(engine, product.id, 10, unit_price="1.00")
        receive(engine, product.id, 30, unit_price="2.00")
        sell(engine, product.id, 20)

        # mean(1.00, 2.00) * 20
        assert engine.value_as_of(product.id, "AVERAGE") == Decimal("30.00")

    def test_average_falls_back_to_standard_cost(self, engine, product):
        engine.create_transaction("adjustment", [
            {"product_id": product.id, "quantity": 4, "unit_price": "1", "direction": "in"},
        ])
        assert engine.value_as_of(product.id, "average") == Decimal("6.00")

    def test_average_with_no_stock_is_zero(self, engine, product):
        assert engine.value_as_of(product.id, "AVERAGE") == Decimal("0.00")

    def test_cutoff_is_inclusive(self, db_session, product):
        t0 = utcnow() - timedelta(days=2)

        def _seed(uow):
            movement_store.append(uow, product_id=product.id, movement_type="in", direction="in",
                                  quantity=10, unit_cost=Decimal("1"), created_at=t0)
            movement_store.append(uow, product_id=product.id, movement_type="in", direction="in",
                                  quantity=10, unit_cost=Decimal("3"), created_at=t0 + timedelta(days=1))

        run_in_unit_of_work(_seed)

        assert valuation_service.value_as_of(product.id, "FIFO", t0) == Decimal("10.00")
        assert valuation_service.value_as_of(product.id, "FIFO", t0 + timedelta(days=1)) == Decimal("40.00")
        assert valuation_service.value_as_of(product.id, "FIFO", t0 - timedelta(seconds=1)) == Decimal("0.00")

    def test_cached_value_refreshes_after_movement(self, engine, product):
        receive(engine, product.id, 10, unit_price="1.00")
        assert engine.value_as_of(product.id, "FIFO") == Decimal("10.00")
        receive(engine, product.id, 10, unit_price="2.00")
        assert engine.value_as_of(product.id, "FIFO") == Decimal("30.00")

    def test_unknown_method(self, engine, product):
        with pytest.raises(UnknownMethodError):
            engine.value_as_of(product.id, "NEWEST")

    def test_unknown_product(self, engine, db_session):
        with pytest.raises(NotFoundError):
            engine.value_as_of(9999, "FIFO")


class TestValueCatalog:
    """Inventory value report."""

    def test_totals_and_category_breakdown(self, engine, product, other_product, category):
        receive(engine, product.id, 10, unit_price="1.00")
        receive(engine, other_product.id, 2, unit_price="5.00")

        report = engine.value_catalog("FIFO")

        assert report["method"] == "FIFO"
        assert report["total_value"] == "20.00"
        assert report["total_quantity"] == 12
        by_product = {row["product_id"]: row for row in report["products"]}
        assert by_product[product.id]["value"] == "10.00"
        assert by_product[other_product.id]["value"] == "10.00"

        by_category = {row["category_id"]: row for row in report["by_category"]}
        assert by_category[category.id]["category_name"] == "Hardware"
        assert by_category[category.id]["value"] == "10.00"
        assert by_category[None]["quantity"] == 2

    def test_category_filter(self, engine, product, other_product, category):
        receive(engine, product.id, 10, unit_price="1.00")
        receive(engine, other_product.id, 2, unit_price="5.00")

        report = engine.value_catalog("LIFO", category_id=category.id)
        assert [row["product_id"] for row in report["products"]] == [product.id]
        assert report["total_value"] == "10.00"

    def test_inactive_products_excluded_by_default(self, engine, product, inactive_product):
        receive(engine, product.id, 4, unit_price="1.00")

        report = engine.value_catalog("FIFO")
        assert [row["product_id"] for row in report["products"]] == [product.id]
        assert report["include_inactive"] is False

        report = engine.value_catalog("FIFO", include_inactive=True)
        assert {row["product_id"] for row in report["products"]} == {product.id, inactive_product.id}
        assert report["metrics"]["product_count"] == 2

    def test_metrics(self, engine, product, other_product):
        receive(engine, product.id, 10, unit_price="1.00")

        metrics = engine.value_catalog("FIFO")["metrics"]
        assert metrics == {
            "product_count": 2,
            "in_stock_count": 1,
            "out_of_stock_count": 1,
            "average_value_per_product": "5.00",
        }

    def test_metrics_for_empty_catalog(self, engine, db_session):
        metrics = engine.value_catalog("AVERAGE")["metrics"]
        assert metrics["product_count"] == 0
        assert metrics["average_value_per_product"] == "0.00"
