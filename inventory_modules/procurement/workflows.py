"""
Procurement Workflows.

State machine for purchase orders.  The service asks this workflow
whether an action is allowed from the current status; guards name the
extra conditions the service evaluates.
"""

from inventory_kernel.domain.workflow import Guard, Transition, Workflow
from inventory_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_LINES = Guard(
    name="has_lines",
    description="Order has at least one line and passes validation",
)

QUANTITY_WITHIN_OPEN = Guard(
    name="quantity_within_open",
    description="Received quantity is positive and within the line's open quantity",
)

ALL_LINES_RECEIVED = Guard(
    name="all_lines_received",
    description="Every line is fully received",
)


# -----------------------------------------------------------------------------
# Purchase Order Workflow
# -----------------------------------------------------------------------------

PURCHASE_ORDER_WORKFLOW = Workflow(
    name="purchase_order",
    description="Purchase order lifecycle from draft to closed",
    initial_state="draft",
    states=(
        "draft",
        "pending_approval",
        "approved",
        "ordered",
        "partially_received",
        "received",
        "closed",
        "cancelled",
    ),
    transitions=(
        Transition("draft", "draft", action="update"),
        Transition("draft", "draft", action="delete"),
        Transition("draft", "pending_approval", action="submit", guard=HAS_LINES),
        Transition("pending_approval", "approved", action="approve"),
        Transition("approved", "ordered", action="mark_ordered"),
        Transition("ordered", "partially_received", action="receive", guard=QUANTITY_WITHIN_OPEN),
        Transition("ordered", "received", action="receive", guard=ALL_LINES_RECEIVED),
        Transition("partially_received", "partially_received", action="receive", guard=QUANTITY_WITHIN_OPEN),
        Transition("partially_received", "received", action="receive", guard=ALL_LINES_RECEIVED),
        Transition("received", "closed", action="close"),
        Transition("draft", "cancelled", action="cancel"),
        Transition("pending_approval", "cancelled", action="cancel"),
        Transition("approved", "cancelled", action="cancel"),
        Transition("ordered", "cancelled", action="cancel"),
        Transition("partially_received", "cancelled", action="cancel"),
    ),
    terminal_states=("closed", "cancelled"),
)

logger.info(
    "procurement_po_workflow_registered",
    extra={
        "workflow_name": PURCHASE_ORDER_WORKFLOW.name,
        "state_count": len(PURCHASE_ORDER_WORKFLOW.states),
        "transition_count": len(PURCHASE_ORDER_WORKFLOW.transitions),
        "initial_state": PURCHASE_ORDER_WORKFLOW.initial_state,
    },
)
