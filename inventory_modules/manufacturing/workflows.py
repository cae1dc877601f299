"""
Manufacturing Workflows.

State machine for production orders.  Recording output moves an order
to ``partially_completed`` until the target quantity is reached, then to
``completed``.
"""

from inventory_kernel.domain.workflow import Guard, Transition, Workflow
from inventory_kernel.logging_config import get_logger

logger = get_logger("modules.manufacturing.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

COMPONENTS_AVAILABLE = Guard(
    name="components_available",
    description="Source warehouse holds the available stock every component needs",
)

OUTPUT_WITHIN_REMAINING = Guard(
    name="output_within_remaining",
    description="Recorded output is positive and within the quantity still to produce",
)

TARGET_REACHED = Guard(
    name="target_reached",
    description="Quantity produced equals quantity to produce",
)


# -----------------------------------------------------------------------------
# Production Order Workflow
# -----------------------------------------------------------------------------

PRODUCTION_ORDER_WORKFLOW = Workflow(
    name="production_order",
    description="Production order lifecycle from planned to closed",
    initial_state="planned",
    states=(
        "planned",
        "reserved",
        "in_progress",
        "partially_completed",
        "completed",
        "closed",
        "cancelled",
    ),
    transitions=(
        Transition("planned", "planned", action="update"),
        Transition("reserved", "reserved", action="update"),
        Transition("planned", "reserved", action="reserve", guard=COMPONENTS_AVAILABLE),
        Transition("planned", "in_progress", action="start"),
        Transition("reserved", "in_progress", action="start"),
        Transition("in_progress", "partially_completed", action="record_production", guard=OUTPUT_WITHIN_REMAINING),
        Transition("in_progress", "completed", action="record_production", guard=TARGET_REACHED),
        Transition("partially_completed", "partially_completed", action="record_production", guard=OUTPUT_WITHIN_REMAINING),
        Transition("partially_completed", "completed", action="record_production", guard=TARGET_REACHED),
        Transition("in_progress", "completed", action="complete"),
        Transition("partially_completed", "completed", action="complete"),
        Transition("completed", "closed", action="close"),
        Transition("planned", "cancelled", action="cancel"),
        Transition("reserved", "cancelled", action="cancel"),
        Transition("in_progress", "cancelled", action="cancel"),
        Transition("partially_completed", "cancelled", action="cancel"),
    ),
    terminal_states=("closed", "cancelled"),
)

logger.info(
    "manufacturing_production_workflow_registered",
    extra={
        "workflow_name": PRODUCTION_ORDER_WORKFLOW.name,
        "state_count": len(PRODUCTION_ORDER_WORKFLOW.states),
        "transition_count": len(PRODUCTION_ORDER_WORKFLOW.transitions),
        "initial_state": PRODUCTION_ORDER_WORKFLOW.initial_state,
    },
)
