"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the inventory core (API layers, batch jobs, schedulers) must be
able to tell a caller bug from a legitimate business rejection without
parsing message strings.  Every error therefore:

  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (entity ids, attempted action, current state)

Example - WRONG way to handle errors:
    try:
        workflow.receive(order_id, line_id, qty, actor=actor)
    except Exception as e:
        if "exceed" in str(e):  # FRAGILE - message might change
            ...

Example - RIGHT way:
    try:
        workflow.receive(order_id, line_id, qty, actor=actor)
    except OverReceiptError as e:
        api_response(code=e.code, line=e.line_id, remaining=e.remaining)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from InventoryKernelError:

    InventoryKernelError (base)
    |
    +-- ArithmeticDomainError
    |   +-- DivisionByZeroError
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |
    +-- ReceiptError
    |   +-- OverReceiptError
    |
    +-- ProductionError
    |   +-- OverProductionError
    |
    +-- StockError
    |   +-- NegativeStockRejectedError
    |   +-- InsufficientAvailableStockError
    |   +-- ReservationUnderflowError
    |
    +-- ValidationError
    |   +-- ValidationFailedError
    |
    +-- NotFoundError
    |   +-- EntityNotFoundError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|---------------------------------------
Arithmetic      | DIVISION_BY_ZERO              | Scaled division with a zero divisor
----------------|-------------------------------|---------------------------------------
Workflow        | INVALID_TRANSITION            | Lifecycle action not allowed in state
----------------|-------------------------------|---------------------------------------
Receipt         | OVER_RECEIPT                  | Receipt exceeds remaining line quantity
----------------|-------------------------------|---------------------------------------
Production      | OVER_PRODUCTION               | Output exceeds remaining order quantity
----------------|-------------------------------|---------------------------------------
Stock           | NEGATIVE_STOCK_REJECTED       | Delta would drive on-hand below zero
                | INSUFFICIENT_AVAILABLE_STOCK  | Reservation exceeds available stock
                | RESERVATION_UNDERFLOW         | Release exceeds reserved quantity
----------------|-------------------------------|---------------------------------------
Validation      | VALIDATION_FAILED             | Aggregate violates structural rules
----------------|-------------------------------|---------------------------------------
Not found       | ENTITY_NOT_FOUND              | Referenced entity does not exist
----------------|-------------------------------|---------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT      | Concurrent modification detected

===============================================================================
PROPAGATION
===============================================================================

Domain errors are deterministic given the same state and input.  Services
roll back the unit of work and re-raise; nothing in the core retries.
Only ConcurrencyError is a candidate for a caller-side retry.
"""

from __future__ import annotations

from typing import Any, Iterable


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"

    def log_fields(self) -> dict[str, Any]:
        """Structured attributes for log output, keyed by attribute name."""
        return {k: v for k, v in vars(self).items() if not k.startswith("_")}


# Arithmetic


class ArithmeticDomainError(InventoryKernelError):
    """Base exception for fixed-point arithmetic errors."""

    code: str = "ARITHMETIC_ERROR"


class DivisionByZeroError(ArithmeticDomainError):
    """Scaled division with a zero divisor."""

    code: str = "DIVISION_BY_ZERO"

    def __init__(self, dividend: Any, scale: int):
        self.dividend = str(dividend)
        self.scale = scale
        super().__init__(f"Division by zero: {dividend} / 0 at scale {scale}")


# Workflow


class WorkflowError(InventoryKernelError):
    """Base exception for lifecycle errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """Attempted lifecycle action violates the current-state guard."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        action: str,
        current_status: str,
        reason: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.action = action
        self.current_status = current_status
        self.reason = reason
        message = (
            f"Cannot {action} {entity_type} {entity_id} "
            f"in status '{current_status}'"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# Receipt


class ReceiptError(InventoryKernelError):
    """Base exception for goods receipt errors."""

    code: str = "RECEIPT_ERROR"


class OverReceiptError(ReceiptError):
    """Receive quantity exceeds the remaining quantity on a line."""

    code: str = "OVER_RECEIPT"

    def __init__(
        self,
        order_id: Any,
        line_id: Any,
        quantity_ordered: Any,
        quantity_received: Any,
        attempted: Any,
    ):
        self.order_id = str(order_id)
        self.line_id = str(line_id)
        self.quantity_ordered = str(quantity_ordered)
        self.quantity_received = str(quantity_received)
        self.attempted = str(attempted)
        super().__init__(
            f"Receiving {attempted} on line {line_id} would exceed ordered "
            f"quantity {quantity_ordered} (already received {quantity_received})"
        )


# Production


class ProductionError(InventoryKernelError):
    """Base exception for production order errors."""

    code: str = "PRODUCTION_ERROR"


class OverProductionError(ProductionError):
    """Recorded output exceeds the quantity still to produce."""

    code: str = "OVER_PRODUCTION"

    def __init__(
        self,
        order_id: Any,
        quantity_to_produce: Any,
        quantity_produced: Any,
        attempted: Any,
    ):
        self.order_id = str(order_id)
        self.quantity_to_produce = str(quantity_to_produce)
        self.quantity_produced = str(quantity_produced)
        self.attempted = str(attempted)
        super().__init__(
            f"Producing {attempted} on order {order_id} would exceed quantity to "
            f"produce {quantity_to_produce} (already produced {quantity_produced})"
        )


# Stock


class StockError(InventoryKernelError):
    """Base exception for stock ledger errors."""

    code: str = "STOCK_ERROR"


class NegativeStockRejectedError(StockError):
    """Stock delta would make on-hand negative where the warehouse disallows it."""

    code: str = "NEGATIVE_STOCK_REJECTED"

    def __init__(
        self,
        product_id: Any,
        warehouse_id: Any,
        quantity_on_hand: Any,
        delta: Any,
    ):
        self.product_id = str(product_id)
        self.warehouse_id = str(warehouse_id)
        self.quantity_on_hand = str(quantity_on_hand)
        self.delta = str(delta)
        super().__init__(
            f"Applying {delta} to on-hand {quantity_on_hand} of product "
            f"{product_id} in warehouse {warehouse_id} would go negative"
        )


class InsufficientAvailableStockError(StockError):
    """Reservation exceeds available (on hand minus reserved) stock."""

    code: str = "INSUFFICIENT_AVAILABLE_STOCK"

    def __init__(
        self,
        product_id: Any,
        warehouse_id: Any,
        available: Any,
        requested: Any,
    ):
        self.product_id = str(product_id)
        self.warehouse_id = str(warehouse_id)
        self.available = str(available)
        self.requested = str(requested)
        super().__init__(
            f"Cannot reserve {requested} of product {product_id} in warehouse "
            f"{warehouse_id}: only {available} available"
        )


class ReservationUnderflowError(StockError):
    """Release exceeds the currently reserved quantity."""

    code: str = "RESERVATION_UNDERFLOW"

    def __init__(
        self,
        product_id: Any,
        warehouse_id: Any,
        reserved: Any,
        requested: Any,
    ):
        self.product_id = str(product_id)
        self.warehouse_id = str(warehouse_id)
        self.reserved = str(reserved)
        self.requested = str(requested)
        super().__init__(
            f"Cannot release {requested} of product {product_id} in warehouse "
            f"{warehouse_id}: only {reserved} reserved"
        )


# Validation


class ValidationError(InventoryKernelError):
    """Base exception for aggregate validation errors."""

    code: str = "VALIDATION_ERROR"


class ValidationFailedError(ValidationError):
    """
    Aggregate-level structural violations.

    All violations are reported at once in ``violations``.
    """

    code: str = "VALIDATION_FAILED"

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        violations: Iterable[str],
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id) if entity_id is not None else None
        self.violations = tuple(violations)
        subject = entity_type if entity_id is None else f"{entity_type} {entity_id}"
        super().__init__(f"{subject} failed validation: " + "; ".join(self.violations))


# Lookup


class NotFoundError(InventoryKernelError):
    """Base exception for missing references."""

    code: str = "NOT_FOUND"


class EntityNotFoundError(NotFoundError):
    """Referenced entity does not exist (or is soft-deleted)."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


# Concurrency


class ConcurrencyError(InventoryKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )
