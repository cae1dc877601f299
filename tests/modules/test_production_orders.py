"""
Production order tests over both backends.

Planning, component reservation, recorded output with its stock effects,
completion, cancellation and the lifecycle guards.
"""

from datetime import date

import pytest

from inventory_kernel.exceptions import (
    EntityNotFoundError,
    InvalidTransitionError,
    OverProductionError,
    ValidationFailedError,
)
from inventory_modules.manufacturing import BomLineInput, ProductionStatus
from inventory_modules.stock.models import MovementReason


@pytest.fixture
def widget_bom(core, seed, actor):
    """Two widgets from 8 bolts (25% waste) and 2 panels."""
    return core.boms.create(
        "BOM-PROD",
        seed.widget.id,
        "2",
        [
            BomLineInput(seed.bolt.id, "8", waste_factor="25"),
            BomLineInput(seed.panel.id, "2"),
        ],
        actor=actor,
    )


@pytest.fixture
def stocked(core, seed, actor):
    core.ledger.apply_delta(seed.bolt.id, seed.main.id, "30", actor=actor)
    core.ledger.apply_delta(seed.panel.id, seed.main.id, "10", actor=actor)


@pytest.fixture
def order(core, seed, actor, widget_bom):
    """Four widgets from and into the main warehouse."""
    return core.production_orders.create(
        widget_bom.id,
        "4",
        actor=actor,
        source_warehouse_id=seed.main.id,
        destination_warehouse_id=seed.main.id,
    )


def levels(core, seed, product):
    level = core.ledger.stock_level(product.id, seed.main.id)
    return str(level.quantity_on_hand), str(level.quantity_reserved)


class TestCreate:

    def test_planned_for_bom_product(self, order, seed, widget_bom):
        assert order.status is ProductionStatus.PLANNED
        assert order.product_id == seed.widget.id
        assert order.bom_id == widget_bom.id
        assert order.order_number == f"PROD-20240601-{str(order.id)[:8].upper()}"
        assert str(order.quantity_produced) == "0.000000"

    def test_inactive_bom_and_bad_plan_rejected(self, core, widget_bom, actor):
        core.boms.deactivate(widget_bom.id, actor=actor)
        with pytest.raises(ValidationFailedError) as exc_info:
            core.production_orders.create(
                widget_bom.id,
                "0",
                actor=actor,
                planned_start_date=date(2024, 6, 10),
                planned_completion_date=date(2024, 6, 5),
            )
        assert exc_info.value.violations == (
            "bill of materials must be active",
            "quantity to produce must be positive",
            "planned start date is after planned completion date",
        )

    def test_unknown_bom_and_warehouse(self, core, seed, widget_bom, actor):
        with pytest.raises(EntityNotFoundError) as exc_info:
            core.production_orders.create(seed.widget.id, "1", actor=actor)
        assert exc_info.value.entity_type == "BillOfMaterials"

        with pytest.raises(EntityNotFoundError) as exc_info:
            core.production_orders.create(
                widget_bom.id, "1", actor=actor, source_warehouse_id=seed.widget.id
            )
        assert exc_info.value.entity_type == "Warehouse"

    def test_update_quantity_only_while_planned(self, core, order, stocked, actor):
        updated = core.production_orders.update(order.id, actor=actor, quantity_to_produce="2")
        assert str(updated.quantity_to_produce) == "2.000000"

        core.production_orders.reserve_components(order.id, actor=actor)
        with pytest.raises(ValidationFailedError):
            core.production_orders.update(order.id, actor=actor, quantity_to_produce="4")
        noted = core.production_orders.update(order.id, actor=actor, notes="second shift")
        assert noted.notes == "second shift"
        assert noted.status is ProductionStatus.RESERVED


class TestReservation:

    def test_reserves_full_requirement(self, core, seed, order, stocked, actor):
        reserved = core.production_orders.reserve_components(order.id, actor=actor)

        assert reserved.status is ProductionStatus.RESERVED
        assert str(reserved.reserved_for(seed.bolt.id)) == "20.000000"
        assert str(reserved.reserved_for(seed.panel.id)) == "4.000000"
        assert levels(core, seed, seed.bolt) == ("30.000000", "20.000000")
        assert levels(core, seed, seed.panel) == ("10.000000", "4.000000")

    def test_shortage_reserves_nothing(self, core, seed, order, actor):
        core.ledger.apply_delta(seed.bolt.id, seed.main.id, "10", actor=actor)
        core.ledger.apply_delta(seed.panel.id, seed.main.id, "10", actor=actor)

        with pytest.raises(ValidationFailedError) as exc_info:
            core.production_orders.reserve_components(order.id, actor=actor)

        (shortage,) = exc_info.value.violations
        assert shortage.startswith("Insufficient stock for component Bolt (BLT-001)")
        assert levels(core, seed, seed.panel) == ("10.000000", "0.000000")
        assert core.production_orders.get(order.id).status is ProductionStatus.PLANNED

    def test_source_warehouse_required(self, core, widget_bom, actor):
        unsourced = core.production_orders.create(widget_bom.id, "2", actor=actor)
        with pytest.raises(ValidationFailedError) as exc_info:
            core.production_orders.reserve_components(unsourced.id, actor=actor)
        assert exc_info.value.violations == (
            "a source warehouse is required to reserve components",
        )


class TestRecordProduction:

    def test_partial_output_draws_on_reservations(self, core, seed, order, stocked, actor):
        core.production_orders.reserve_components(order.id, actor=actor)
        core.production_orders.start(order.id, actor=actor)

        partial = core.production_orders.record_production(order.id, "1", actor=actor)

        assert partial.status is ProductionStatus.PARTIALLY_COMPLETED
        assert str(partial.quantity_produced) == "1.000000"
        assert str(partial.completion_percentage) == "25.00"
        assert str(partial.reserved_for(seed.bolt.id)) == "15.000000"
        assert levels(core, seed, seed.bolt) == ("25.000000", "15.000000")
        assert levels(core, seed, seed.panel) == ("9.000000", "3.000000")
        widget = core.ledger.stock_level(seed.widget.id, seed.main.id)
        assert str(widget.quantity_on_hand) == "1.000000"
        assert str(widget.average_cost) == "5.1250"

    def test_movements_reference_the_order(self, core, seed, order, stocked, actor):
        core.production_orders.start(order.id, actor=actor)
        core.production_orders.record_production(order.id, "2", actor=actor)

        consumed = [
            m for m in core.ledger.movements_for_product(seed.bolt.id)
            if m.reason is MovementReason.PRODUCTION_CONSUMPTION
        ]
        (output,) = core.ledger.movements_for_product(seed.widget.id)
        assert [str(m.quantity) for m in consumed] == ["-10.000000"]
        assert output.reason is MovementReason.PRODUCTION_OUTPUT
        assert output.source.source_type == "production_order"
        assert output.source.source_id == order.id
        assert output.notes == f"Production {order.order_number}"

    def test_reaching_target_completes(self, core, seed, order, stocked, actor):
        core.production_orders.reserve_components(order.id, actor=actor)
        core.production_orders.start(order.id, actor=actor)

        done = core.production_orders.record_production(order.id, "4", actor=actor)

        assert done.status is ProductionStatus.COMPLETED
        assert done.completed_at is not None
        assert done.reservations == ()
        assert levels(core, seed, seed.bolt) == ("10.000000", "0.000000")

    def test_over_production_rejected_without_trace(self, core, seed, order, stocked, actor):
        core.production_orders.start(order.id, actor=actor)
        core.production_orders.record_production(order.id, "3", actor=actor)

        with pytest.raises(OverProductionError) as exc_info:
            core.production_orders.record_production(order.id, "2", actor=actor)

        assert exc_info.value.code == "OVER_PRODUCTION"
        assert exc_info.value.quantity_produced == "3.000000"
        assert str(core.production_orders.get(order.id).quantity_produced) == "3.000000"
        assert levels(core, seed, seed.bolt)[0] == "15.000000"

    def test_requires_started_order(self, core, order, actor):
        with pytest.raises(InvalidTransitionError) as exc_info:
            core.production_orders.record_production(order.id, "1", actor=actor)
        assert exc_info.value.current_status == "planned"

    def test_non_positive_quantity(self, core, order, actor):
        core.production_orders.start(order.id, actor=actor)
        with pytest.raises(ValidationFailedError):
            core.production_orders.record_production(order.id, "0", actor=actor)


class TestCompleteCancelClose:

    def test_complete_records_remaining_output(self, core, seed, order, stocked, actor, activity_history):
        core.production_orders.reserve_components(order.id, actor=actor)
        core.production_orders.start(order.id, actor=actor)
        core.production_orders.record_production(order.id, "1", actor=actor)

        done = core.production_orders.complete(order.id, actor=actor)

        assert done.status is ProductionStatus.COMPLETED
        assert str(done.quantity_produced) == "4.000000"
        assert str(core.ledger.stock_level(seed.widget.id, seed.main.id).quantity_on_hand) == "4.000000"
        assert levels(core, seed, seed.panel) == ("6.000000", "0.000000")
        assert [h.action for h in activity_history("ProductionOrder", order.id)] == [
            "create", "reserve", "start", "record_production", "complete",
        ]

    def test_short_completion_releases_unused_reservations(self, core, seed, order, stocked, actor):
        core.production_orders.reserve_components(order.id, actor=actor)
        core.production_orders.start(order.id, actor=actor)

        done = core.production_orders.complete(order.id, actor=actor, quantity_produced="2")

        assert str(done.quantity_produced) == "2.000000"
        assert levels(core, seed, seed.bolt) == ("20.000000", "0.000000")
        assert levels(core, seed, seed.panel) == ("8.000000", "0.000000")

    def test_final_total_below_recorded_output(self, core, order, stocked, actor):
        core.production_orders.start(order.id, actor=actor)
        core.production_orders.record_production(order.id, "3", actor=actor)
        with pytest.raises(ValidationFailedError):
            core.production_orders.complete(order.id, actor=actor, quantity_produced="2")

    def test_cancel_releases_reservations(self, core, seed, order, stocked, actor):
        core.production_orders.reserve_components(order.id, actor=actor)

        cancelled = core.production_orders.cancel(order.id, actor=actor, reason="line down")

        assert cancelled.status is ProductionStatus.CANCELLED
        assert cancelled.cancellation_reason == "line down"
        assert cancelled.reservations == ()
        assert levels(core, seed, seed.bolt) == ("30.000000", "0.000000")

    def test_close_only_after_completion(self, core, order, stocked, actor):
        with pytest.raises(InvalidTransitionError):
            core.production_orders.close(order.id, actor=actor)
        core.production_orders.start(order.id, actor=actor)
        core.production_orders.complete(order.id, actor=actor)
        closed = core.production_orders.close(order.id, actor=actor)
        assert closed.status is ProductionStatus.CLOSED
        with pytest.raises(InvalidTransitionError):
            core.production_orders.cancel(order.id, actor=actor)


class TestQueries:

    def test_list_by_status_and_bom(self, core, order, widget_bom, actor):
        core.production_orders.start(order.id, actor=actor)
        assert [o.id for o in core.production_orders.list_by_status(ProductionStatus.IN_PROGRESS)] == [
            order.id
        ]
        assert core.production_orders.list_by_status(ProductionStatus.PLANNED) == []
        assert [o.id for o in core.production_orders.list_for_bom(widget_bom.id)] == [order.id]

    def test_overdue_excludes_finished_orders(self, core, widget_bom, actor):
        late = core.production_orders.create(
            widget_bom.id, "2", actor=actor, planned_completion_date=date(2024, 5, 30)
        )
        core.production_orders.create(
            widget_bom.id, "2", actor=actor, planned_completion_date=date(2024, 6, 3)
        )
        cancelled = core.production_orders.create(
            widget_bom.id, "2", actor=actor, planned_completion_date=date(2024, 5, 1)
        )
        core.production_orders.cancel(cancelled.id, actor=actor)

        assert [o.id for o in core.production_orders.list_overdue()] == [late.id]

    def test_explode_full_quantity(self, core, seed, order):
        explosion = core.production_orders.explode(order.id)
        assert str(explosion.requirement_for(seed.bolt.id)) == "20.000000"
        assert str(explosion.total_cost) == "20.5000"
