"""
PurchaseOrderWorkflow -- purchase order lifecycle and goods receipt.

Responsibility:
    Drives a purchase order from draft to closed: editing while in draft,
    submit, approve, mark ordered, line receipts (posting incoming stock
    to the ledger), cancel, close and soft delete.

Architecture position:
    Modules > Procurement.  Transition rules come from
    ``PURCHASE_ORDER_WORKFLOW``; stock effects go through ``StockLedger``
    inside the same unit of work as the order change.

Invariants enforced:
    - Every action is checked against the workflow for the current
      status; a disallowed action raises InvalidTransitionError.
    - ``quantity_received <= quantity_ordered`` on every line.  An
      over-receipt raises OverReceiptError and is never clamped.
    - A receipt, its stock delta, its movement and its activity records
      commit together or not at all.
    - Receipts on one order are serialized by the order row lock, taken
      before any stock location lock.

Failure modes:
    - InvalidTransitionError, OverReceiptError, ValidationFailedError,
      EntityNotFoundError, NegativeStockRejectedError (from the ledger).
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import date
from typing import TYPE_CHECKING, Callable, Iterable
from uuid import UUID, uuid4

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.context import ActorContext
from inventory_kernel.domain.record_state import RecordState
from inventory_kernel.domain.values import QUANTITY_SCALE, ScaledDecimal, ScaledInput
from inventory_kernel.domain.workflow import Workflow
from inventory_kernel.exceptions import (
    EntityNotFoundError,
    InvalidTransitionError,
    OverReceiptError,
    ValidationFailedError,
)
from inventory_kernel.logging_config import action_scope, get_logger
from inventory_kernel.models.activity_log import ActivityAction
from inventory_modules.procurement.config import ProcurementConfig
from inventory_modules.procurement.models import (
    POStatus,
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseOrderLineInput,
)
from inventory_modules.procurement.workflows import PURCHASE_ORDER_WORKFLOW
from inventory_modules.stock.models import MovementReason, SourceReference

if TYPE_CHECKING:
    from inventory_modules.stock.service import StockLedger
    from inventory_services.unit_of_work import UnitOfWork, UnitOfWorkFactory

logger = get_logger("modules.procurement.service")

ENTITY = "PurchaseOrder"
SOURCE_TYPE = "purchase_order"


class PurchaseOrderWorkflow:
    """
    Purchase order lifecycle.

    Each public method is one unit of work, except ``receive_full``,
    which runs one unit of work per line so that each line receipt is
    atomic on its own.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        ledger: StockLedger,
        config: ProcurementConfig | None = None,
        clock: Clock | None = None,
        workflow: Workflow = PURCHASE_ORDER_WORKFLOW,
    ):
        self._uow_factory = uow_factory
        self._ledger = ledger
        self._config = config or ProcurementConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._workflow = workflow

    # ------------------------------------------------------------------
    # Creation and editing
    # ------------------------------------------------------------------

    def create(
        self,
        supplier_id: UUID,
        lines: Iterable[PurchaseOrderLineInput] = (),
        *,
        actor: ActorContext,
        order_date: date | None = None,
        expected_delivery_date: date | None = None,
        notes: str | None = None,
        order_id: UUID | None = None,
    ) -> PurchaseOrder:
        """Create a draft order numbered ``<prefix>-YYYYMMDD-XXXXXXXX``."""
        order_id = order_id or uuid4()
        order = PurchaseOrder(
            id=order_id,
            po_number=self._po_number(order_id),
            supplier_id=supplier_id,
            order_date=order_date or self._clock.today(),
            expected_delivery_date=expected_delivery_date,
            lines=self._build_lines(lines),
            notes=notes,
        )
        with action_scope(actor, ENTITY, order_id, "create"):
            with self._uow_factory() as uow:
                saved = uow.purchase_orders.save(order, actor.actor_id)
                uow.activity.record(
                    ActivityAction.CREATE, ENTITY, saved.id,
                    new_values=saved.to_snapshot(), actor=actor, context=actor.as_context(),
                )
                uow.commit()
            logger.info(
                "purchase_order_created",
                extra={"po_number": saved.po_number, "line_count": len(saved.lines)},
            )
        return saved

    def update(
        self,
        order_id: UUID,
        *,
        actor: ActorContext,
        lines: Iterable[PurchaseOrderLineInput] | None = None,
        supplier_id: UUID | None = None,
        expected_delivery_date: date | None = None,
        notes: str | None = None,
    ) -> PurchaseOrder:
        """
        Edit a draft order.

        ``lines``, when given, replaces the whole line set: every current
        line is removed and the new lines are added.  Omitted header
        fields keep their value.
        """
        new_lines = self._build_lines(lines) if lines is not None else None

        def change(order: PurchaseOrder) -> PurchaseOrder:
            return replace(
                order,
                supplier_id=supplier_id or order.supplier_id,
                expected_delivery_date=expected_delivery_date or order.expected_delivery_date,
                notes=order.notes if notes is None else notes,
                lines=order.lines if new_lines is None else new_lines,
            )

        return self._transition(order_id, "update", ActivityAction.UPDATE, actor, change)

    def get(self, order_id: UUID, include_deleted: bool = False) -> PurchaseOrder:
        with self._uow_factory() as uow:
            order = uow.purchase_orders.get(order_id, include_deleted=include_deleted)
        if order is None:
            raise EntityNotFoundError(ENTITY, order_id)
        return order

    def list_by_status(self, status: POStatus) -> list[PurchaseOrder]:
        with self._uow_factory() as uow:
            return uow.purchase_orders.list_by_status(status)

    def validate(self, order: PurchaseOrder) -> list[str]:
        """Every violation that blocks submission; empty when submittable."""
        violations = []
        if not order.lines:
            violations.append("order has no lines")
        for line in order.lines:
            label = f"line {line.sequence}"
            if not line.quantity_ordered.is_positive:
                violations.append(f"{label}: quantity ordered must be positive")
            if line.unit_price.is_negative:
                violations.append(f"{label}: unit price cannot be negative")
            if line.tax_rate.is_negative:
                violations.append(f"{label}: tax rate cannot be negative")
        return violations

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def submit(self, order_id: UUID, *, actor: ActorContext) -> PurchaseOrder:
        """Send a draft for approval; the order must validate."""
        def change(order: PurchaseOrder) -> PurchaseOrder:
            violations = self.validate(order)
            if violations:
                logger.warning(
                    "purchase_order_validation_failed",
                    extra={"order_id": str(order.id), "violations": violations},
                )
                raise ValidationFailedError(ENTITY, order.id, violations)
            return replace(order, status=POStatus.PENDING_APPROVAL)

        return self._transition(order_id, "submit", ActivityAction.SUBMIT, actor, change)

    def approve(self, order_id: UUID, *, actor: ActorContext) -> PurchaseOrder:
        def change(order: PurchaseOrder) -> PurchaseOrder:
            return replace(
                order,
                status=POStatus.APPROVED,
                approved_by_id=actor.actor_id,
                approved_at=self._clock.now(),
            )

        return self._transition(order_id, "approve", ActivityAction.APPROVE, actor, change)

    def mark_ordered(self, order_id: UUID, *, actor: ActorContext) -> PurchaseOrder:
        """Mark as sent to the supplier; open quantities become incoming stock."""
        def change(order: PurchaseOrder) -> PurchaseOrder:
            return replace(order, status=POStatus.ORDERED, ordered_at=self._clock.now())

        def after(uow: UnitOfWork, before: PurchaseOrder, saved: PurchaseOrder) -> None:
            self._adjust_incoming(uow, saved, actor, release=False)

        return self._transition(
            order_id, "mark_ordered", ActivityAction.MARK_ORDERED, actor, change, after
        )

    def cancel(
        self, order_id: UUID, *, actor: ActorContext, reason: str | None = None
    ) -> PurchaseOrder:
        """Cancel a non-terminal order; incoming quantities still open are released."""
        def change(order: PurchaseOrder) -> PurchaseOrder:
            return replace(
                order,
                status=POStatus.CANCELLED,
                cancellation_reason=reason,
                cancelled_at=self._clock.now(),
            )

        def after(uow: UnitOfWork, before: PurchaseOrder, saved: PurchaseOrder) -> None:
            if before.status in (POStatus.ORDERED, POStatus.PARTIALLY_RECEIVED):
                self._adjust_incoming(uow, saved, actor, release=True)

        return self._transition(order_id, "cancel", ActivityAction.CANCEL, actor, change, after)

    def close(self, order_id: UUID, *, actor: ActorContext) -> PurchaseOrder:
        return self._transition(
            order_id, "close", ActivityAction.CLOSE, actor,
            lambda order: replace(order, status=POStatus.CLOSED),
        )

    def delete(self, order_id: UUID, *, actor: ActorContext) -> PurchaseOrder:
        """Soft-delete a draft order; submitted orders are kept."""
        return self._transition(
            order_id, "delete", ActivityAction.DELETE, actor,
            lambda order: replace(order, state=RecordState.deleted(self._clock.now())),
        )

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    def receive(
        self,
        order_id: UUID,
        line_id: UUID,
        quantity: ScaledInput,
        *,
        actor: ActorContext,
        received_date: date | None = None,
        notes: str | None = None,
    ) -> PurchaseOrder:
        """
        Receive ``quantity`` on one line.

        Adds to the line's received quantity, posts the stock to the
        line's warehouse (if any) at the line's unit price, and moves the
        order to ``partially_received`` or ``received``.
        """
        with action_scope(actor, ENTITY, order_id, "receive"), self._uow_factory() as uow:
            saved = self._receive_in(uow, order_id, line_id, quantity, actor, received_date, notes)
            uow.commit()
        return saved

    def receive_full(
        self,
        order_id: UUID,
        *,
        actor: ActorContext,
        received_date: date | None = None,
        notes: str | None = None,
    ) -> PurchaseOrder:
        """
        Receive the remaining quantity of every open line.

        Each line is received in its own unit of work.  Lines run on a
        thread pool when ``receive_full_max_workers > 1``, which needs a
        PostgreSQL or file-backed SQLite engine on the SQL backend
        (in-memory SQLite shares one connection).  Every line is
        attempted; the first failure is re-raised once all have finished.
        """
        with action_scope(actor, ENTITY, order_id, "receive_full"):
            order = self.get(order_id)
            self._require_transition(order, "receive")
            line_ids = [ln.id for ln in order.lines if ln.can_receive_more]
            logger.info(
                "purchase_order_receive_full_started",
                extra={"open_line_count": len(line_ids)},
            )

            errors = self._receive_lines(order_id, line_ids, actor, received_date, notes)
            if errors:
                logger.error(
                    "purchase_order_receive_full_failed",
                    extra={"failed_line_count": len(errors)},
                )
                raise errors[0]
            final = self.get(order_id)
            logger.info(
                "purchase_order_received_full",
                extra={"status": final.status.value},
            )
        return final

    def _receive_lines(
        self,
        order_id: UUID,
        line_ids: list[UUID],
        actor: ActorContext,
        received_date: date | None,
        notes: str | None,
    ) -> list[Exception]:
        def receive_line(line_id: UUID) -> None:
            # Pool threads do not inherit the caller's log scope
            with action_scope(actor, ENTITY, order_id, "receive"), self._uow_factory() as uow:
                current = self._load_for_update(uow, order_id)
                line = current.line(line_id)
                if line is None or not line.can_receive_more:
                    return
                self._receive_in(
                    uow, order_id, line_id, line.open_quantity, actor, received_date, notes
                )
                uow.commit()

        errors: list[Exception] = []
        workers = self._config.receive_full_max_workers
        if workers > 1 and len(line_ids) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [pool.submit(receive_line, line_id) for line_id in line_ids]
                for future in futures:
                    exc = future.exception()
                    if exc is not None:
                        errors.append(exc)
        else:
            for line_id in line_ids:
                try:
                    receive_line(line_id)
                except Exception as exc:
                    errors.append(exc)
        return errors

    def _receive_in(
        self,
        uow: UnitOfWork,
        order_id: UUID,
        line_id: UUID,
        quantity: ScaledInput,
        actor: ActorContext,
        received_date: date | None,
        notes: str | None,
    ) -> PurchaseOrder:
        qty = ScaledDecimal.of(quantity, QUANTITY_SCALE)
        order = self._load_for_update(uow, order_id)
        self._require_transition(order, "receive")
        line = order.line(line_id)
        if line is None:
            raise EntityNotFoundError("PurchaseOrderLine", line_id)
        if not qty.is_positive:
            raise ValidationFailedError(ENTITY, order_id, ["receive quantity must be positive"])
        logger.info(
            "purchase_order_receive_started",
            extra={"line_id": str(line_id), "quantity": str(qty)},
        )

        new_received = line.quantity_received.add(qty, QUANTITY_SCALE)
        if new_received > line.quantity_ordered:
            logger.warning(
                "purchase_order_over_receipt_rejected",
                extra={
                    "line_id": str(line_id),
                    "quantity_ordered": str(line.quantity_ordered),
                    "quantity_received": str(line.quantity_received),
                    "attempted": str(qty),
                },
            )
            raise OverReceiptError(
                order_id, line_id, line.quantity_ordered, line.quantity_received, qty
            )

        receipt_date = received_date or self._clock.today()
        updated = order.with_line(
            replace(line, quantity_received=new_received, received_date=receipt_date)
        )
        status = updated.status_after_receipt()
        if status.value not in self._workflow.target_states(order.status.value, "receive"):
            raise InvalidTransitionError(ENTITY, order_id, "receive", order.status.value)
        updated = replace(
            updated,
            status=status,
            delivery_date=(
                order.delivery_date or receipt_date
                if status is POStatus.RECEIVED else order.delivery_date
            ),
        )
        saved = uow.purchase_orders.save(updated, actor.actor_id)

        if line.warehouse_id is not None:
            self._ledger.apply_delta_in(
                uow, line.product_id, line.warehouse_id, qty, MovementReason.PURCHASE_RECEIPT,
                actor=actor,
                unit_cost=line.unit_price,
                source=SourceReference(SOURCE_TYPE, order_id, line_id),
                notes=notes or f"Receipt {order.po_number}",
            )
            if self._config.track_incoming_quantities:
                self._ledger.adjust_ordered_in(
                    uow, line.product_id, line.warehouse_id, qty.negate(), actor=actor
                )

        uow.activity.record(
            ActivityAction.RECEIVE, ENTITY, order_id,
            old_values=order.to_snapshot(), new_values=saved.to_snapshot(), actor=actor,
            context={**actor.as_context(), "line_id": str(line_id), "quantity": str(qty)},
        )
        logger.info(
            "purchase_order_received",
            extra={
                "line_id": str(line_id),
                "quantity": str(qty),
                "status": saved.status.value,
            },
        )
        return saved

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(
        self,
        order_id: UUID,
        action: str,
        activity: ActivityAction,
        actor: ActorContext,
        change: Callable[[PurchaseOrder], PurchaseOrder],
        after: Callable[[UnitOfWork, PurchaseOrder, PurchaseOrder], None] | None = None,
    ) -> PurchaseOrder:
        with action_scope(actor, ENTITY, order_id, action):
            with self._uow_factory() as uow:
                order = self._load_for_update(uow, order_id)
                self._require_transition(order, action)
                saved = uow.purchase_orders.save(change(order), actor.actor_id)
                if after is not None:
                    after(uow, order, saved)
                uow.activity.record(
                    activity, ENTITY, order_id,
                    old_values=order.to_snapshot(), new_values=saved.to_snapshot(),
                    actor=actor, context=actor.as_context(),
                )
                uow.commit()
            logger.info(
                "purchase_order_transitioned",
                extra={"from_status": order.status.value, "to_status": saved.status.value},
            )
        return saved

    def _require_transition(self, order: PurchaseOrder, action: str) -> None:
        if self._workflow.allows(order.status.value, action):
            return
        logger.warning(
            "purchase_order_invalid_transition",
            extra={
                "order_id": str(order.id),
                "attempted_action": action,
                "status": order.status.value,
            },
        )
        raise InvalidTransitionError(ENTITY, order.id, action, order.status.value)

    def _adjust_incoming(
        self, uow: UnitOfWork, order: PurchaseOrder, actor: ActorContext, release: bool
    ) -> None:
        if not self._config.track_incoming_quantities:
            return
        open_lines = [
            ln for ln in order.lines if ln.warehouse_id is not None and ln.can_receive_more
        ]
        # Stock locations after the order row, in key order
        for line in sorted(open_lines, key=lambda ln: (str(ln.product_id), str(ln.warehouse_id))):
            delta = line.open_quantity.negate() if release else line.open_quantity
            self._ledger.adjust_ordered_in(
                uow, line.product_id, line.warehouse_id, delta, actor=actor
            )

    def _build_lines(
        self, inputs: Iterable[PurchaseOrderLineInput] | None
    ) -> tuple[PurchaseOrderLine, ...]:
        return tuple(
            PurchaseOrderLine(
                id=uuid4(),
                product_id=spec.product_id,
                quantity_ordered=spec.quantity_ordered,
                unit_price=spec.unit_price,
                tax_rate=spec.tax_rate,
                warehouse_id=spec.warehouse_id,
                sequence=index,
                expected_date=spec.expected_date,
                notes=spec.notes,
            )
            for index, spec in enumerate(inputs or (), start=1)
        )

    def _po_number(self, order_id: UUID) -> str:
        stamp = self._clock.today().strftime("%Y%m%d")
        return f"{self._config.po_number_prefix}-{stamp}-{str(order_id)[:8].upper()}"

    @staticmethod
    def _load_for_update(uow: UnitOfWork, order_id: UUID) -> PurchaseOrder:
        order = uow.purchase_orders.get_for_update(order_id)
        if order is None or order.is_deleted:
            raise EntityNotFoundError(ENTITY, order_id)
        return order
