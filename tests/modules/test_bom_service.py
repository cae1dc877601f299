"""
BOM service tests over both backends.

Editing and validation, revisions, and explosion at current component
cost prices and stock levels.
"""

import pytest

from inventory_kernel.exceptions import EntityNotFoundError, ValidationFailedError
from inventory_modules.manufacturing import BomLineInput


@pytest.fixture
def widget_bom(core, seed, actor):
    """Two widgets from 8 bolts (25% waste) and 2 panels."""
    return core.boms.create(
        "BOM-WID",
        seed.widget.id,
        "2",
        [
            BomLineInput(seed.bolt.id, "8", waste_factor="25"),
            BomLineInput(seed.panel.id, "2"),
        ],
        actor=actor,
    )


class TestCreate:

    def test_lines_numbered_in_order(self, widget_bom, seed):
        assert [ln.sequence for ln in widget_bom.active_lines] == [1, 2]
        assert widget_bom.component_ids == (seed.bolt.id, seed.panel.id)
        assert widget_bom.revision == 1
        assert widget_bom.is_active

    def test_duplicate_code(self, core, seed, actor, widget_bom):
        with pytest.raises(ValidationFailedError) as exc_info:
            core.boms.create("BOM-WID", seed.widget.id, "1", actor=actor)
        assert exc_info.value.violations == ("BOM code 'BOM-WID' is already in use",)

    def test_every_violation_reported_and_nothing_saved(self, core, seed, actor):
        with pytest.raises(ValidationFailedError) as exc_info:
            core.boms.create(
                "BOM-BAD",
                seed.widget.id,
                "0",
                [
                    BomLineInput(seed.bolt.id, "1", waste_factor="150"),
                    BomLineInput(seed.bolt.id, "0"),
                    BomLineInput(seed.widget.id, "1"),
                ],
                actor=actor,
            )
        violations = exc_info.value.violations
        assert violations[0] == "quantity produced must be positive"
        assert "line 1: waste factor must be between 0 and 100.00" in violations
        assert "line 2: quantity required must be positive" in violations
        assert f"line 2: component {seed.bolt.id} already has an active line" in violations
        assert "line 3: a BOM cannot consume the product it produces" in violations
        assert core.boms.list_for_product(seed.widget.id) == []

    def test_validate_is_side_effect_free(self, core, widget_bom):
        assert core.boms.validate(widget_bom) == []


class TestEdit:

    def test_update_header(self, core, widget_bom, actor):
        updated = core.boms.update(widget_bom.id, actor=actor, quantity_produced="4", notes="v1")
        assert str(updated.quantity_produced) == "4.000000"
        assert updated.notes == "v1"

    def test_update_rejects_zero_output(self, core, widget_bom, actor):
        with pytest.raises(ValidationFailedError):
            core.boms.update(widget_bom.id, actor=actor, quantity_produced="0")
        assert str(core.boms.get(widget_bom.id).quantity_produced) == "2.000000"

    def test_add_and_remove_line(self, core, seed, widget_bom, actor):
        added = core.boms.add_line(widget_bom.id, BomLineInput(seed.uncosted.id, "1"), actor=actor)
        new_line = added.active_lines[-1]
        assert new_line.sequence == 3

        removed = core.boms.remove_line(widget_bom.id, new_line.id, actor=actor)
        assert seed.uncosted.id not in removed.component_ids

        with pytest.raises(EntityNotFoundError) as exc_info:
            core.boms.remove_line(widget_bom.id, new_line.id, actor=actor)
        assert exc_info.value.entity_type == "BomLine"

    def test_update_lines_replaces_active_set(self, core, seed, widget_bom, actor):
        updated = core.boms.update_lines(
            widget_bom.id, [BomLineInput(seed.panel.id, "5", waste_factor="10")], actor=actor
        )
        (line,) = updated.active_lines
        assert line.component_id == seed.panel.id
        assert line.sequence == 1
        assert str(line.waste_factor) == "10.00"

    def test_activate_and_deactivate(self, core, seed, widget_bom, actor):
        core.boms.deactivate(widget_bom.id, actor=actor)
        assert core.boms.list_for_product(seed.widget.id, active_only=True) == []
        core.boms.activate(widget_bom.id, actor=actor)
        assert [b.id for b in core.boms.list_for_product(seed.widget.id, active_only=True)] == [
            widget_bom.id
        ]

    def test_delete_is_soft(self, core, widget_bom, actor, activity_history):
        core.boms.delete(widget_bom.id, actor=actor)
        with pytest.raises(EntityNotFoundError):
            core.boms.get(widget_bom.id)
        deleted = core.boms.get(widget_bom.id, include_deleted=True)
        assert deleted.is_deleted
        assert deleted.active_lines == ()
        assert "delete" in [h.action for h in activity_history("BillOfMaterials", widget_bom.id)]


class TestRevisions:

    def test_clone_for_new_version(self, core, widget_bom, actor, activity_history):
        clone = core.boms.clone_for_new_version(widget_bom.id, actor=actor)

        assert clone.code == "BOM-WID-V2"
        assert clone.revision == 2
        assert clone.id != widget_bom.id
        assert [ln.component_id for ln in clone.active_lines] == [
            ln.component_id for ln in widget_bom.active_lines
        ]
        assert not {ln.id for ln in clone.lines} & {ln.id for ln in widget_bom.lines}
        assert core.boms.get(widget_bom.id).revision == 1
        (record,) = activity_history("BillOfMaterials", clone.id)
        assert record.action == "clone"
        assert record.context["source_bom_id"] == str(widget_bom.id)

    def test_clone_twice_collides(self, core, widget_bom, actor):
        core.boms.clone_for_new_version(widget_bom.id, actor=actor)
        with pytest.raises(ValidationFailedError):
            core.boms.clone_for_new_version(widget_bom.id, actor=actor)


class TestCalculation:

    def test_cost_summary(self, core, widget_bom):
        summary = core.boms.cost_summary(widget_bom.id)
        # 10 bolts at 0.125 and 2 panels at 4.50
        assert str(summary.known_cost) == "10.2500"
        assert str(summary.unit_cost) == "5.1250"

    def test_explode(self, core, seed, widget_bom):
        explosion = core.boms.explode(widget_bom.id, "4")
        assert str(explosion.ratio) == "2.000000"
        assert str(explosion.requirement_for(seed.bolt.id)) == "20.000000"
        assert str(explosion.requirement_for(seed.panel.id)) == "4.000000"
        assert [str(r.cost) for r in explosion.requirements] == ["2.5000", "18.0000"]
        assert str(explosion.total_cost) == "20.5000"

    def test_uncosted_component_leaves_total_unknown(self, core, seed, widget_bom, actor):
        core.boms.add_line(widget_bom.id, BomLineInput(seed.uncosted.id, "1"), actor=actor)
        explosion = core.boms.explode(widget_bom.id, "2")
        assert explosion.total_cost is None
        assert explosion.unknown_cost_component_ids == (seed.uncosted.id,)
        assert str(explosion.known_cost) == "10.2500"

    def test_cost_follows_catalog_price(self, core, seed, widget_bom, actor):
        core.catalog.update_cost_price(seed.panel.id, "5", actor=actor)
        assert str(core.boms.cost_summary(widget_bom.id).known_cost) == "11.2500"

    def test_availability_across_warehouses(self, core, seed, widget_bom, actor):
        core.ledger.apply_delta(seed.bolt.id, seed.main.id, "12", actor=actor)
        core.ledger.apply_delta(seed.bolt.id, seed.backorder.id, "10", actor=actor)

        shortages = core.boms.check_availability(widget_bom.id, "4")

        assert shortages == (
            "Insufficient stock for component Panel (PNL-001): "
            "required 4.000000, available 0.000000",
        )

    def test_availability_in_one_warehouse(self, core, seed, widget_bom, actor):
        core.ledger.apply_delta(seed.bolt.id, seed.main.id, "12", actor=actor)
        core.ledger.apply_delta(seed.bolt.id, seed.backorder.id, "10", actor=actor)
        core.ledger.apply_delta(seed.panel.id, seed.main.id, "4", actor=actor)

        shortages = core.boms.check_availability(widget_bom.id, "4", warehouse_id=seed.main.id)

        assert shortages == (
            "Insufficient stock for component Bolt (BLT-001): "
            "required 20.000000, available 12.000000",
        )

    def test_unknown_bom(self, core):
        from uuid import uuid4

        with pytest.raises(EntityNotFoundError):
            core.boms.explode(uuid4(), "1")
