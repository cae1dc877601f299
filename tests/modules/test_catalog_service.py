"""Catalog service tests over both backends."""

from uuid import uuid4

import pytest

from inventory_kernel.exceptions import EntityNotFoundError, ValidationFailedError


class TestRegister:

    def test_register_normalizes_cost(self, core, actor):
        product = core.catalog.register_product("GAS-001", "Gasket", actor=actor, cost_price="1.5")
        assert str(product.cost_price) == "1.5000"
        assert product.unit == "pcs"
        assert core.catalog.get_product(product.id) == product

    def test_duplicate_sku(self, core, seed, actor):
        with pytest.raises(ValidationFailedError) as exc_info:
            core.catalog.register_product("WID-001", "Widget again", actor=actor)
        assert exc_info.value.violations == ("sku 'WID-001' is already in use",)

    def test_negative_cost_rejected(self, core, actor):
        with pytest.raises(ValueError):
            core.catalog.register_product("NEG-001", "Negative", actor=actor, cost_price="-1")

    def test_unknown_product(self, core):
        with pytest.raises(EntityNotFoundError):
            core.catalog.get_product(uuid4())


class TestEdit:

    def test_update_cost_price(self, core, seed, actor, activity_history):
        updated = core.catalog.update_cost_price(seed.widget.id, "30", actor=actor)
        assert str(updated.cost_price) == "30.0000"
        (_, change) = sorted(activity_history("Product", seed.widget.id), key=lambda h: h.action)
        assert change.action == "update"
        assert change.old_values["cost_price"] == "25.0000"
        assert change.new_values["cost_price"] == "30.0000"

    def test_clear_cost_price(self, core, seed, actor):
        assert core.catalog.update_cost_price(seed.widget.id, None, actor=actor).cost_price is None

    def test_set_active(self, core, seed, actor):
        assert not core.catalog.set_active(seed.widget.id, False, actor=actor).is_active
        assert core.catalog.set_active(seed.widget.id, True, actor=actor).is_active


class TestDelete:
    """Products are soft-deleted once no stock references them."""

    def test_delete_unused_product(self, core, seed, actor):
        core.catalog.delete_product(seed.uncosted.id, actor=actor)
        with pytest.raises(EntityNotFoundError):
            core.catalog.get_product(seed.uncosted.id)
        assert core.catalog.get_product(seed.uncosted.id, include_deleted=True).is_deleted

    def test_stock_on_hand_blocks_delete(self, core, seed, actor):
        core.ledger.apply_delta(seed.widget.id, seed.main.id, "1", actor=actor)
        with pytest.raises(ValidationFailedError):
            core.catalog.delete_product(seed.widget.id, actor=actor)
        assert not core.catalog.get_product(seed.widget.id).is_deleted

    def test_delete_after_lookback_window(self, core, seed, actor, deterministic_clock):
        core.ledger.apply_delta(seed.widget.id, seed.main.id, "2", actor=actor)
        core.ledger.apply_delta(seed.widget.id, seed.main.id, "-2", actor=actor)
        with pytest.raises(ValidationFailedError):
            core.catalog.delete_product(seed.widget.id, actor=actor)

        deterministic_clock.advance(days=31)
        deleted = core.catalog.delete_product(seed.widget.id, actor=actor)
        assert deleted.is_deleted

    def test_deleted_product_cannot_be_edited(self, core, seed, actor):
        core.catalog.delete_product(seed.uncosted.id, actor=actor)
        with pytest.raises(EntityNotFoundError):
            core.catalog.update_cost_price(seed.uncosted.id, "1", actor=actor)
