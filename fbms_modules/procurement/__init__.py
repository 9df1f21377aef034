"""
Procurement Module (``fbms_modules.procurement``).

Purchase orders, the status graph they move along, and the pure state
machine that validates transitions and plans receiving batches.
"""

from fbms_modules.procurement.models import (
    POStatus,
    PurchaseOrder,
    PurchaseOrderItem,
    ReceivedItem,
    StatusTransition,
)
from fbms_modules.procurement.state_machine import (
    InvalidQuantity,
    InvalidTransition,
    NoOp,
    OverReceipt,
    ProductNotInOrder,
    ReceiptPlan,
    TransitionPlan,
    allowed_transitions,
    plan_receipt,
    plan_transition,
    validate_transition,
)
from fbms_modules.procurement.workflows import PURCHASE_ORDER_WORKFLOW

__all__ = [
    "POStatus",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "ReceivedItem",
    "StatusTransition",
    "InvalidQuantity",
    "InvalidTransition",
    "NoOp",
    "OverReceipt",
    "ProductNotInOrder",
    "ReceiptPlan",
    "TransitionPlan",
    "allowed_transitions",
    "plan_receipt",
    "plan_transition",
    "validate_transition",
    "PURCHASE_ORDER_WORKFLOW",
]
