"""
Concurrent writers against one store.

Threads start together behind a barrier; row locks must serialize the
read-modify-write of stock locations and purchase order lines so that no
update is lost and no invariant is crossed.  The in-memory backend runs
everywhere, as does file-backed SQLite; the PostgreSQL variant needs
INVENTORY_TEST_POSTGRES_URL.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from uuid import uuid4

import pytest

from inventory_config.schema import InventoryConfig
from inventory_kernel.db.engine import build_engine, create_tables, drop_tables
from inventory_kernel.db.memory import InMemoryStore
from inventory_kernel.domain.values import ScaledDecimal
from inventory_kernel.exceptions import (
    InvalidTransitionError,
    NegativeStockRejectedError,
    OverReceiptError,
)
from inventory_modules.procurement import POStatus, ProcurementConfig, PurchaseOrderLineInput
from inventory_modules.stock.models import ALLOW_NEGATIVE_STOCK
from inventory_services.core import build_inventory_core

pytestmark = pytest.mark.concurrency

THREADS = 10


def run_together(count, fn):
    """Run ``fn(index)`` on ``count`` threads released at once; return outcomes."""
    barrier = threading.Barrier(count)

    def task(index):
        barrier.wait(timeout=10)
        try:
            return fn(index)
        except Exception as exc:
            return exc

    with ThreadPoolExecutor(max_workers=count) as pool:
        futures = [pool.submit(task, i) for i in range(count)]
        return [f.result(timeout=30) for f in futures]


@pytest.fixture
def memory_core(deterministic_clock):
    config = InventoryConfig(procurement=ProcurementConfig(receive_full_max_workers=4))
    return build_inventory_core(
        config, backend="memory", clock=deterministic_clock,
        store=InMemoryStore(), setup_logging=False,
    )


@pytest.fixture
def stocked(memory_core, actor):
    product = memory_core.catalog.register_product("CON-001", "Contended", actor=actor, cost_price="2")
    main = memory_core.ledger.register_warehouse("CMAIN", "Main", actor=actor)
    spare = memory_core.ledger.register_warehouse(
        "CSPARE", "Spare", actor=actor, settings={ALLOW_NEGATIVE_STOCK: True}
    )
    return product, main, spare


def ordered_po(core, actor, lines):
    order = core.purchase_orders.create(uuid4(), lines, actor=actor)
    core.purchase_orders.submit(order.id, actor=actor)
    core.purchase_orders.approve(order.id, actor=actor)
    return core.purchase_orders.mark_ordered(order.id, actor=actor)


class TestConcurrentStockDeltas:

    def test_no_lost_updates(self, memory_core, stocked, actor):
        product, main, _ = stocked

        outcomes = run_together(
            THREADS, lambda i: memory_core.ledger.apply_delta(product.id, main.id, "1", actor=actor)
        )

        assert not [o for o in outcomes if isinstance(o, Exception)]
        level = memory_core.ledger.stock_level(product.id, main.id)
        assert level.quantity_on_hand == ScaledDecimal.of(THREADS)
        assert len(memory_core.ledger.movements_for_product(product.id)) == THREADS

    def test_withdrawals_never_cross_zero(self, memory_core, stocked, actor):
        product, main, _ = stocked
        memory_core.ledger.apply_delta(product.id, main.id, "5", actor=actor)

        outcomes = run_together(
            THREADS, lambda i: memory_core.ledger.apply_delta(product.id, main.id, "-1", actor=actor)
        )

        rejected = [o for o in outcomes if isinstance(o, NegativeStockRejectedError)]
        assert len(rejected) == THREADS - 5
        assert memory_core.ledger.stock_level(product.id, main.id).quantity_on_hand.is_zero

    def test_opposing_transfers_do_not_deadlock(self, memory_core, stocked, actor):
        product, main, spare = stocked
        memory_core.ledger.apply_delta(product.id, main.id, "100", actor=actor)
        memory_core.ledger.apply_delta(product.id, spare.id, "100", actor=actor)

        def move(i):
            source, dest = (main, spare) if i % 2 == 0 else (spare, main)
            return memory_core.ledger.transfer(product.id, source.id, dest.id, "1", actor=actor)

        outcomes = run_together(THREADS, move)

        assert not [o for o in outcomes if isinstance(o, Exception)]
        total = ScaledDecimal.sum_of(
            (loc.quantity_on_hand for loc in memory_core.ledger.locations_for_product(product.id)), 6
        )
        assert total == ScaledDecimal.of("200")


class TestConcurrentReceipts:

    def test_racing_receipts_never_over_receive(self, memory_core, stocked, actor):
        product, main, _ = stocked
        order = ordered_po(memory_core, actor, [
            PurchaseOrderLineInput(product.id, "10", "2", warehouse_id=main.id),
        ])
        line_id = order.lines[0].id

        outcomes = run_together(
            THREADS,
            lambda i: memory_core.purchase_orders.receive(order.id, line_id, "2", actor=actor),
        )

        succeeded = [o for o in outcomes if not isinstance(o, Exception)]
        rejected = [o for o in outcomes if isinstance(o, (OverReceiptError, InvalidTransitionError))]
        assert len(succeeded) == 5
        assert len(rejected) == THREADS - 5
        final = memory_core.purchase_orders.get(order.id)
        assert final.status is POStatus.RECEIVED
        assert final.lines[0].quantity_received == ScaledDecimal.of("10")
        level = memory_core.ledger.stock_level(product.id, main.id)
        assert level.quantity_on_hand == ScaledDecimal.of("10")
        assert level.quantity_ordered.is_zero

    def test_parallel_receive_full(self, memory_core, actor, captured_logs):
        warehouse = memory_core.ledger.register_warehouse("PAR", "Parallel", actor=actor)
        products = [
            memory_core.catalog.register_product(f"PAR-{n:03d}", f"Part {n}", actor=actor)
            for n in range(6)
        ]
        order = ordered_po(memory_core, actor, [
            PurchaseOrderLineInput(p.id, str(n + 1), "1", warehouse_id=warehouse.id)
            for n, p in enumerate(products)
        ])

        final = memory_core.purchase_orders.receive_full(order.id, actor=actor)

        assert final.status is POStatus.RECEIVED
        for n, p in enumerate(products):
            level = memory_core.ledger.stock_level(p.id, warehouse.id)
            assert level.quantity_on_hand == ScaledDecimal.of(n + 1)
        received = [r for r in captured_logs() if r["message"] == "purchase_order_received"]
        assert len(received) == len(products)
        assert {r["actor_id"] for r in received} == {str(actor.actor_id)}


class TestConcurrentWritersSqliteFile:
    """A file-backed SQLite database accepts writers from many threads."""

    @pytest.fixture
    def file_core(self, tmp_path, deterministic_clock):
        engine = build_engine(f"sqlite:///{tmp_path / 'inventory.db'}")
        create_tables(engine)
        yield build_inventory_core(
            backend="sql", engine=engine, clock=deterministic_clock, setup_logging=False
        )
        drop_tables(engine)
        engine.dispose()

    def test_parallel_deltas_all_commit(self, file_core, actor):
        product = file_core.catalog.register_product("SQF-001", "Shared file", actor=actor)
        main = file_core.ledger.register_warehouse("SQFMAIN", "Main", actor=actor)

        outcomes = run_together(
            8, lambda i: file_core.ledger.apply_delta(product.id, main.id, "1", actor=actor)
        )

        assert [o for o in outcomes if isinstance(o, Exception)] == []
        level = file_core.ledger.stock_level(product.id, main.id)
        assert level.quantity_on_hand == ScaledDecimal.of(8)
        assert len(file_core.ledger.movements_for_product(product.id)) == 8

    def test_racing_receipts_stop_at_ordered_quantity(self, file_core, actor):
        product = file_core.catalog.register_product("SQF-002", "Shared receipt", actor=actor)
        main = file_core.ledger.register_warehouse("SQFRCV", "Receiving", actor=actor)
        order = ordered_po(file_core, actor, [
            PurchaseOrderLineInput(product.id, "4", "1", warehouse_id=main.id),
        ])
        line_id = order.lines[0].id

        outcomes = run_together(
            8, lambda i: file_core.purchase_orders.receive(order.id, line_id, "1", actor=actor)
        )

        assert len([o for o in outcomes if not isinstance(o, Exception)]) == 4
        assert all(
            isinstance(o, (OverReceiptError, InvalidTransitionError))
            for o in outcomes if isinstance(o, Exception)
        )
        level = file_core.ledger.stock_level(product.id, main.id)
        assert level.quantity_on_hand == ScaledDecimal.of(4)


@pytest.mark.postgres
class TestConcurrentReceiptsPostgres:

    def test_racing_receipts_never_over_receive(self, postgres_engine, deterministic_clock, actor):
        core = build_inventory_core(
            backend="sql", engine=postgres_engine, clock=deterministic_clock, setup_logging=False
        )
        product = core.catalog.register_product("PG-001", "Contended", actor=actor)
        main = core.ledger.register_warehouse("PGMAIN", "Main", actor=actor)
        order = ordered_po(core, actor, [
            PurchaseOrderLineInput(product.id, "10", "2", warehouse_id=main.id),
        ])
        line_id = order.lines[0].id

        outcomes = run_together(
            THREADS, lambda i: core.purchase_orders.receive(order.id, line_id, "2", actor=actor)
        )

        rejected = [o for o in outcomes if isinstance(o, (OverReceiptError, InvalidTransitionError))]
        assert len([o for o in outcomes if not isinstance(o, Exception)]) == 5
        assert len(rejected) == THREADS - 5
        final = core.purchase_orders.get(order.id)
        assert final.lines[0].quantity_received == ScaledDecimal.of("10")
        assert core.ledger.stock_level(product.id, main.id).quantity_on_hand == ScaledDecimal.of("10")
