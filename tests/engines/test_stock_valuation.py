"""Tests for stock valuation and moving average cost."""

from uuid import uuid4

from inventory_engines.stock_valuation import value_stock, weighted_average_cost
from inventory_kernel.domain.values import ScaledDecimal, money, quantity


class TestValueStock:

    def test_value_per_warehouse_and_total(self):
        a, b = uuid4(), uuid4()
        valuation = value_stock(
            uuid4(),
            money("2.5"),
            [(a, quantity("4"), money("2.0")), (b, quantity("1.5"), None)],
        )
        assert str(valuation.total_quantity) == "5.500000"
        assert str(valuation.total_value) == "13.7500"
        assert [str(w.value) for w in valuation.by_warehouse] == ["10.0000", "3.7500"]
        assert valuation.by_warehouse[1].average_cost is None
        assert valuation.is_value_known

    def test_missing_cost_price_is_unknown_not_zero(self):
        valuation = value_stock(uuid4(), None, [(uuid4(), quantity("3"), None)])
        assert valuation.total_value is None
        assert valuation.by_warehouse[0].value is None
        assert str(valuation.total_quantity) == "3.000000"
        assert valuation.to_snapshot()["total_value"] is None

    def test_no_holdings_values_to_zero(self):
        valuation = value_stock(uuid4(), money("1"), [])
        assert valuation.total_value.is_zero
        assert valuation.by_warehouse == ()


class TestWeightedAverageCost:

    def test_first_receipt_sets_average(self):
        result = weighted_average_cost(quantity("0"), None, quantity("10"), money("3.5"))
        assert str(result) == "3.5000"

    def test_blends_prior_stock(self):
        # (10 * 2 + 5 * 5) / 15 = 3
        result = weighted_average_cost(quantity("10"), money("2"), quantity("5"), money("5"))
        assert str(result) == "3.0000"

    def test_truncates_at_money_scale(self):
        # (1 * 1 + 2 * 0) / 3 = 0.3333...
        result = weighted_average_cost(quantity("1"), money("1"), quantity("2"), money("0"))
        assert str(result) == "0.3333"

    def test_negative_on_hand_resets_to_unit_cost(self):
        result = weighted_average_cost(
            ScaledDecimal.of("-4", 6), money("9"), quantity("6"), money("1.25")
        )
        assert str(result) == "1.2500"
