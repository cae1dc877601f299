"""
Tests for the BOM explosion engine.

Pure calculation: no database, no services.  BOMs are built directly
from the manufacturing domain models.
"""

from uuid import uuid4

import pytest
from hypothesis import given, strategies as st

from inventory_engines.bom_explosion import BomExplosionEngine
from inventory_kernel.domain.values import ScaledDecimal
from inventory_kernel.exceptions import DivisionByZeroError, ValidationFailedError
from inventory_modules.manufacturing.models import BillOfMaterials, BomLine


def make_line(quantity_required, waste_factor="0", sequence=1, component_id=None):
    return BomLine(
        id=uuid4(),
        component_id=component_id or uuid4(),
        quantity_required=quantity_required,
        waste_factor=waste_factor,
        sequence=sequence,
    )


def make_bom(quantity_produced, *lines):
    return BillOfMaterials(
        id=uuid4(),
        code=f"BOM-{uuid4().hex[:6]}",
        product_id=uuid4(),
        quantity_produced=quantity_produced,
        lines=lines,
    )


@pytest.fixture
def engine():
    return BomExplosionEngine()


class TestEffectiveQuantity:
    """Waste-inflated component quantities."""

    def test_waste_factor_inflates_requirement(self, engine):
        line = make_line("10.000000", "5.00")
        assert str(engine.effective_quantity(line)) == "10.500000"
        assert str(engine.waste_quantity(line)) == "0.500000"

    def test_zero_waste_is_exact(self, engine):
        line = make_line("3.333333", "0")
        assert engine.effective_quantity(line) == line.quantity_required
        assert engine.waste_quantity(line).is_zero

    def test_full_waste_doubles(self, engine):
        line = make_line("2.5", "100")
        assert str(engine.effective_quantity(line)) == "5.000000"

    def test_memoized_on_line_inputs(self, engine):
        line = make_line("7.25", "12.50")
        assert engine.effective_quantity(line) is engine.effective_quantity(line)

    def test_component_quantities_sums_per_component(self, engine):
        component = uuid4()
        bom = make_bom(
            "1",
            make_line("1", "10", sequence=1, component_id=component),
            make_line("2", "0", sequence=2),
        )
        totals = engine.component_quantities(bom)
        assert str(totals[component]) == "1.100000"
        assert len(totals) == 2


class TestProductionScaling:
    """Requirements for a production target."""

    def test_ratio_then_multiply(self, engine):
        line = make_line("10.000000", "5.00")
        bom = make_bom("100", line)
        assert str(engine.production_ratio(bom, "50")) == "0.500000"
        assert str(engine.required_quantity_for_production(bom, line, "50")) == "5.250000"

    def test_requirement_and_cost_use_distinct_orders(self, engine):
        """10 / 3 truncates differently depending on where the division happens."""
        line = make_line("10")
        bom = make_bom("3", line)
        assert str(engine.required_quantity_for_production(bom, line, "1")) == "3.333330"
        assert str(engine.unit_component_quantity(bom, line)) == "3.333333"
        assert str(engine.cost_for_quantity(bom, line, "1", ScaledDecimal.of("1"))) == "3.3333"

    def test_cost_for_quantity(self, engine):
        line = make_line("10.000000", "5.00")
        bom = make_bom("100", line)
        cost = engine.cost_for_quantity(bom, line, "50", ScaledDecimal.of("2.0000"))
        assert str(cost) == "10.5000"

    def test_unknown_cost_is_not_zero(self, engine):
        line = make_line("1")
        bom = make_bom("1", line)
        assert engine.cost_for_quantity(bom, line, "10", None) is None

    def test_zero_quantity_produced_divides_by_zero(self, engine):
        line = make_line("1")
        bom = make_bom("0", line)
        with pytest.raises(DivisionByZeroError):
            engine.required_quantity_for_production(bom, line, "5")


class TestExplode:
    """Full explosion with costs."""

    def test_explode_with_known_and_unknown_costs(self, engine):
        costed = make_line("2", "50", sequence=1)
        uncosted = make_line("1", "0", sequence=2)
        bom = make_bom("4", costed, uncosted)
        result = engine.explode(
            bom,
            quantity_to_produce="8",
            component_costs={costed.component_id: ScaledDecimal.of("1.5000")},
        )
        assert str(result.ratio) == "2.000000"
        first, second = result.requirements
        assert first.component_id == costed.component_id
        assert str(first.effective_quantity) == "3.000000"
        assert str(first.waste_quantity) == "1.000000"
        assert str(first.required_quantity) == "6.000000"
        # unit 0.75, qty 6, cost 9
        assert str(first.cost) == "9.0000"
        assert second.cost is None
        assert not second.is_cost_known
        assert result.has_unknown_costs
        assert result.unknown_cost_component_ids == (uncosted.component_id,)
        assert result.total_cost is None
        assert str(result.known_cost) == "9.0000"
        assert str(result.requirement_for(uncosted.component_id)) == "2.000000"

    def test_explode_rejects_non_positive_target(self, engine):
        bom = make_bom("1", make_line("1"))
        with pytest.raises(ValidationFailedError) as exc_info:
            engine.explode(bom, quantity_to_produce="0")
        assert exc_info.value.entity_type == "BillOfMaterials"

    def test_removed_lines_are_ignored(self, engine):
        from inventory_kernel.domain.record_state import RecordState
        from datetime import datetime, timezone

        removed = BomLine(
            id=uuid4(), component_id=uuid4(), quantity_required="5",
            state=RecordState.deleted(datetime(2024, 1, 1, tzinfo=timezone.utc)),
        )
        kept = make_line("1", sequence=2)
        bom = make_bom("1", removed, kept)
        result = engine.explode(bom, quantity_to_produce="1")
        assert [r.component_id for r in result.requirements] == [kept.component_id]


class TestCostSummary:
    """Batch and unit cost."""

    def test_total_and_unit_cost(self, engine):
        a = make_line("2", "10", sequence=1)
        b = make_line("4", "0", sequence=2)
        bom = make_bom("4", a, b)
        summary = engine.total_cost(
            bom, {a.component_id: ScaledDecimal.of("3"), b.component_id: ScaledDecimal.of("0.5")}
        )
        # 2.2 * 3 + 4 * 0.5 = 8.6
        assert str(summary.known_cost) == "8.6000"
        assert str(summary.unit_cost) == "2.1500"
        assert str(summary.total_cost) == "8.6000"

    def test_unknown_component_reported(self, engine):
        a = make_line("1")
        bom = make_bom("1", a)
        summary = engine.total_cost(bom, {a.component_id: None})
        assert summary.total_cost is None
        assert summary.unknown_cost_component_ids == (a.component_id,)


class TestAvailability:
    """Shortage messages."""

    def test_shortage_reported_with_label(self, engine):
        line = make_line("2", sequence=1)
        bom = make_bom("1", line)
        shortages = engine.check_availability(
            bom, "5", {line.component_id: ScaledDecimal.of("3")},
            labels={line.component_id: "Bolt (BLT-001)"},
        )
        assert shortages == (
            "Insufficient stock for component Bolt (BLT-001): "
            "required 10.000000, available 3.000000",
        )

    def test_enough_stock_has_no_shortages(self, engine):
        line = make_line("2")
        bom = make_bom("1", line)
        assert engine.check_availability(bom, "1", {line.component_id: ScaledDecimal.of("2")}) == ()


class TestExplosionProperties:
    """Properties over generated BOM lines."""

    @given(
        required_units=st.integers(min_value=1_000_000, max_value=10**12),
        waste_units=st.integers(min_value=0, max_value=10_000),
    )
    def test_effective_at_least_required(self, required_units, waste_units):
        engine = BomExplosionEngine()
        line = make_line(ScaledDecimal(required_units, 6), ScaledDecimal(waste_units, 2))
        effective = engine.effective_quantity(line)
        assert effective >= line.quantity_required
        assert (effective == line.quantity_required) == (waste_units == 0)

    @given(
        produced=st.integers(min_value=1, max_value=10_000),
        q1=st.integers(min_value=1, max_value=100_000),
        q2=st.integers(min_value=1, max_value=100_000),
        waste_units=st.integers(min_value=0, max_value=10_000),
    )
    def test_requirement_monotone_in_target(self, produced, q1, q2, waste_units):
        engine = BomExplosionEngine()
        line = make_line("1.234567", ScaledDecimal(waste_units, 2))
        bom = make_bom(str(produced), line)
        low, high = sorted((q1, q2))
        assert (
            engine.required_quantity_for_production(bom, line, low)
            <= engine.required_quantity_for_production(bom, line, high)
        )
