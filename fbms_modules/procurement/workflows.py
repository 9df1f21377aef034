"""
Procurement Workflows.

The purchase order status graph, declared as data.
"""

from fbms_kernel.domain.workflow import Guard, Transition, Workflow
from fbms_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

ORDER_COMPLETE = Guard(
    name="order_complete",
    description="Order has a supplier, at least one item and a positive total",
)

APPROVER_PRESENT = Guard(
    name="approver_present",
    description="An approving actor is recorded",
)

GOODS_RECEIVED = Guard(
    name="goods_received",
    description="Status is computed from a validated receiving batch",
)

ALL_ITEMS_RECEIVED = Guard(
    name="all_items_received",
    description="Every item's cumulative received quantity equals its ordered quantity",
)


# -----------------------------------------------------------------------------
# Purchase Order Workflow
# -----------------------------------------------------------------------------

PURCHASE_ORDER_WORKFLOW = Workflow(
    name="purchase_order",
    description="Purchase order lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "pending_approval",
        "approved",
        "sent",
        "partially_received",
        "received",
        "cancelled",
    ),
    transitions=(
        Transition("draft", "pending_approval", action="submit", guard=ORDER_COMPLETE),
        Transition("pending_approval", "approved", action="approve", guard=APPROVER_PRESENT),
        Transition("approved", "sent", action="send"),
        # Receiving an approved order that was never marked sent
        Transition("approved", "partially_received", action="receive", guard=GOODS_RECEIVED, posts_entry=True),
        Transition("approved", "received", action="receive", guard=ALL_ITEMS_RECEIVED, posts_entry=True),
        Transition("sent", "partially_received", action="receive", guard=GOODS_RECEIVED, posts_entry=True),
        Transition("sent", "received", action="receive", guard=ALL_ITEMS_RECEIVED, posts_entry=True),
        Transition("partially_received", "partially_received", action="receive", guard=GOODS_RECEIVED, posts_entry=True),
        Transition("partially_received", "received", action="receive", guard=ALL_ITEMS_RECEIVED, posts_entry=True),
        Transition("draft", "cancelled", action="cancel"),
        Transition("pending_approval", "cancelled", action="cancel"),
        Transition("approved", "cancelled", action="cancel"),
        Transition("sent", "cancelled", action="cancel"),
        Transition("partially_received", "cancelled", action="cancel"),
    ),
    terminal_states=("received", "cancelled"),
)

RECEIVING_STATES: frozenset[str] = frozenset({"partially_received", "received"})

logger.debug(
    "procurement_po_workflow_registered",
    extra={
        "workflow_name": PURCHASE_ORDER_WORKFLOW.name,
        "state_count": len(PURCHASE_ORDER_WORKFLOW.states),
        "transition_count": len(PURCHASE_ORDER_WORKFLOW.transitions),
        "initial_state": PURCHASE_ORDER_WORKFLOW.initial_state,
    },
)
