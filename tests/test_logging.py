"""
Structured logging of inventory operations.

Service calls must emit one JSON object per event carrying the action
scope of the call (correlation id, actor, entity, action), kernel errors
must surface their code and fields, and ``configure_logging`` must own
exactly one handler however often it runs.
"""

import json
import logging
from datetime import date
from io import StringIO
from uuid import uuid4

import pytest

from inventory_kernel.db.memory import InMemoryStore
from inventory_kernel.domain.context import ActorContext
from inventory_kernel.domain.values import ScaledDecimal
from inventory_kernel.exceptions import NegativeStockRejectedError, OverReceiptError
from inventory_kernel.logging_config import (
    LOGGER_PREFIX,
    LogContext,
    StructuredFormatter,
    action_scope,
    configure_logging,
    get_logger,
    reset_logging,
)
from inventory_modules.procurement import POStatus, PurchaseOrderLineInput
from inventory_modules.stock.models import MovementReason
from inventory_services.core import build_inventory_core


def _structured_handlers() -> list[logging.Handler]:
    root = logging.getLogger(LOGGER_PREFIX)
    return [h for h in root.handlers if isinstance(h.formatter, StructuredFormatter)]


@pytest.fixture
def owned_logging():
    """Hand the structured handler over to the test, then restore the suite's."""
    reset_logging()
    yield
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())


@pytest.fixture
def memory_core(deterministic_clock):
    return build_inventory_core(
        backend="memory", clock=deterministic_clock, store=InMemoryStore(), setup_logging=False
    )


@pytest.fixture
def request_actor():
    return ActorContext(actor_id=uuid4(), ip_address="10.0.0.7", correlation_id="req-7f3a")


def _events(captured_logs, message):
    return [r for r in captured_logs() if r["message"] == message]


class TestServiceScope:
    """Every log line written inside a service call carries its scope."""

    def test_stock_delta_scope(self, memory_core, request_actor, captured_logs):
        product = memory_core.catalog.register_product("LOG-001", "Logged", actor=request_actor)
        warehouse = memory_core.ledger.register_warehouse("LOG", "Logging", actor=request_actor)

        memory_core.ledger.apply_delta(product.id, warehouse.id, "4", actor=request_actor)

        (applied,) = _events(captured_logs, "stock_delta_applied")
        assert applied["correlation_id"] == "req-7f3a"
        assert applied["actor_id"] == str(request_actor.actor_id)
        assert applied["entity_type"] == "Product"
        assert applied["entity_id"] == str(product.id)
        assert applied["action"] == "apply_delta"
        assert applied["quantity_on_hand"] == "4.000000"
        assert applied["reason"] == MovementReason.ADJUSTMENT.value

    def test_purchase_order_lifecycle_scope(self, memory_core, request_actor, captured_logs):
        product = memory_core.catalog.register_product("LOG-PO", "Ordered", actor=request_actor)
        order = memory_core.purchase_orders.create(
            uuid4(), [PurchaseOrderLineInput(product.id, "2", "5")], actor=request_actor
        )
        memory_core.purchase_orders.submit(order.id, actor=request_actor)
        memory_core.purchase_orders.approve(order.id, actor=request_actor)

        transitions = _events(captured_logs, "purchase_order_transitioned")
        assert [t["action"] for t in transitions] == ["submit", "approve"]
        assert [t["to_status"] for t in transitions] == [
            POStatus.PENDING_APPROVAL.value, POStatus.APPROVED.value,
        ]
        assert {t["entity_id"] for t in transitions} == {str(order.id)}
        assert {t["correlation_id"] for t in transitions} == {"req-7f3a"}

    def test_scope_ends_with_the_call(self, memory_core, request_actor, captured_logs):
        memory_core.catalog.register_product("LOG-END", "Scoped", actor=request_actor)
        get_logger("tests").info("after_call")

        (after,) = _events(captured_logs, "after_call")
        assert "correlation_id" not in after
        assert "action" not in after
        assert LogContext.get_all() == {}

    def test_no_correlation_id_without_one_on_the_actor(self, memory_core, actor, captured_logs):
        memory_core.catalog.register_product("LOG-ANON", "Anonymous", actor=actor)

        (registered,) = _events(captured_logs, "product_registered")
        assert "correlation_id" not in registered
        assert registered["actor_id"] == str(actor.actor_id)
        assert registered["action"] == "register_product"

    def test_rejected_delta_logged_in_scope(self, memory_core, request_actor, captured_logs):
        product = memory_core.catalog.register_product("LOG-NEG", "Short", actor=request_actor)
        warehouse = memory_core.ledger.register_warehouse("LNEG", "Strict", actor=request_actor)

        with pytest.raises(NegativeStockRejectedError):
            memory_core.ledger.apply_delta(product.id, warehouse.id, "-1", actor=request_actor)

        (rejected,) = _events(captured_logs, "negative_stock_rejected")
        assert rejected["level"] == "WARNING"
        assert rejected["action"] == "apply_delta"
        assert rejected["delta"] == "-1.000000"

    def test_correlation_id_reaches_activity_context(self, memory_core, request_actor):
        product = memory_core.catalog.register_product("LOG-ACT", "Audited", actor=request_actor)

        with memory_core.uow_factory() as uow:
            (created,) = uow.activity.history("Product", product.id)
        assert created.context["correlation_id"] == "req-7f3a"
        assert created.ip_address == "10.0.0.7"


class TestActionScope:

    def test_nested_scope_overrides_and_restores(self, request_actor):
        outer_id, inner_id = uuid4(), uuid4()
        with action_scope(request_actor, "PurchaseOrder", outer_id, "receive_full"):
            with action_scope(request_actor, "PurchaseOrder", inner_id, "receive"):
                assert LogContext.get_all()["entity_id"] == str(inner_id)
                assert LogContext.get_all()["action"] == "receive"
            assert LogContext.get_all()["action"] == "receive_full"
        assert LogContext.get_all() == {}

    def test_missing_entity_id_left_out(self, actor):
        with action_scope(actor, "Warehouse", None, "register_warehouse"):
            scope = LogContext.get_all()
        assert "entity_id" not in scope
        assert scope["entity_type"] == "Warehouse"

    def test_unknown_fields_ignored(self):
        with LogContext.bind(tenant="t-1", action="reserve"):
            assert LogContext.get_all() == {"action": "reserve"}


class TestFormatter:
    """JSON rendering of inventory values and kernel errors."""

    def test_over_receipt_fields(self, captured_logs):
        order_id, line_id = uuid4(), uuid4()
        try:
            raise OverReceiptError(order_id, line_id, "20", "12", "10")
        except OverReceiptError:
            get_logger("tests").error("receipt_failed", exc_info=True)

        (record,) = _events(captured_logs, "receipt_failed")
        assert record["exc_code"] == "OVER_RECEIPT"
        assert record["exc_type"] == "OverReceiptError"
        assert record["exc_order_id"] == str(order_id)
        assert record["exc_quantity_received"] == "12"
        assert "OverReceiptError" in record["traceback"]

    def test_inventory_values_serialized(self, captured_logs):
        get_logger("tests").info(
            "valued",
            extra={
                "quantity": ScaledDecimal.of("1.5", 6),
                "reason": MovementReason.PURCHASE_RECEIPT,
                "received_date": date(2024, 6, 1),
                "warehouse_id": uuid4(),
            },
        )

        (record,) = _events(captured_logs, "valued")
        assert record["quantity"] == "1.500000"
        assert record["reason"] == MovementReason.PURCHASE_RECEIPT.value
        assert record["received_date"] == "2024-06-01"

    def test_extra_cannot_overwrite_scope(self, request_actor, captured_logs):
        with action_scope(request_actor, "Product", uuid4(), "reserve"):
            get_logger("tests").info("clash", extra={"action": "spoofed"})

        (record,) = _events(captured_logs, "clash")
        assert record["action"] == "reserve"


class TestConfigureLogging:

    def test_repeated_configuration_installs_one_handler(self, owned_logging):
        configure_logging(stream=StringIO())
        configure_logging(stream=StringIO(), level=logging.DEBUG)
        build_inventory_core(backend="memory", store=InMemoryStore())

        assert len(_structured_handlers()) == 1
        assert logging.getLogger(LOGGER_PREFIX).level == logging.INFO

    def test_foreign_handlers_survive_reset(self, owned_logging):
        foreign = logging.NullHandler()
        root = logging.getLogger(LOGGER_PREFIX)
        root.addHandler(foreign)
        try:
            configure_logging(stream=StringIO())
            reset_logging()
            assert foreign in root.handlers
            assert _structured_handlers() == []
        finally:
            root.removeHandler(foreign)

    def test_service_logs_reach_configured_stream(self, owned_logging, deterministic_clock, actor):
        stream = StringIO()
        configure_logging(stream=stream)
        core = build_inventory_core(
            backend="memory", clock=deterministic_clock, store=InMemoryStore()
        )
        core.ledger.register_warehouse("CFG", "Configured", actor=actor)

        messages = [json.loads(line)["message"] for line in stream.getvalue().splitlines()]
        assert "inventory_core_built" in messages
        assert "warehouse_registered" in messages
