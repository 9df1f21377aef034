"""
Procurement Domain Models.

The nouns of purchasing: purchase orders, their items, receiving batches
and the status transition audit trail.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from fbms_kernel.db.types import ZERO, round_money
from fbms_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.models")


class POStatus(str, Enum):
    """Purchase order lifecycle states."""
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    SENT = "sent"
    PARTIALLY_RECEIVED = "partially_received"
    RECEIVED = "received"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PurchaseOrderItem:
    """A line item on a purchase order."""
    product_id: UUID
    quantity_ordered: int
    unit_cost: Decimal
    quantity_received: int = 0

    def __post_init__(self):
        if self.quantity_ordered < 0 or self.quantity_received < 0:
            raise ValueError("purchase order quantities cannot be negative")
        if self.quantity_received > self.quantity_ordered:
            logger.warning(
                "po_item_over_receipt",
                extra={
                    "product_id": str(self.product_id),
                    "quantity_ordered": self.quantity_ordered,
                    "quantity_received": self.quantity_received,
                },
            )
            raise ValueError(
                f"quantity_received ({self.quantity_received}) "
                f"cannot exceed quantity_ordered ({self.quantity_ordered})"
            )

    @property
    def outstanding(self) -> int:
        return self.quantity_ordered - self.quantity_received

    @property
    def is_fully_received(self) -> bool:
        return self.quantity_received == self.quantity_ordered

    @property
    def line_total(self) -> Decimal:
        return round_money(self.quantity_ordered * self.unit_cost)


@dataclass(frozen=True)
class PurchaseOrder:
    """A purchase order.

    ``received_date`` is set if and only if ``status`` is RECEIVED.
    """
    id: UUID
    po_number: str
    supplier_id: UUID | None
    created_by: UUID
    items: tuple[PurchaseOrderItem, ...] = field(default_factory=tuple)
    status: POStatus = POStatus.DRAFT
    received_date: datetime | None = None
    notes: str = ""
    version: int = 0

    def __post_init__(self):
        if (self.status is POStatus.RECEIVED) != (self.received_date is not None):
            raise ValueError(
                f"Purchase order {self.po_number}: received_date must be set "
                f"iff status is received (status={self.status.value})"
            )

    @property
    def total(self) -> Decimal:
        return round_money(sum((item.line_total for item in self.items), ZERO))

    @property
    def is_fully_received(self) -> bool:
        return bool(self.items) and all(item.is_fully_received for item in self.items)

    def item_for(self, product_id: UUID) -> PurchaseOrderItem | None:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    def unit_cost_of(self, product_id: UUID) -> Decimal:
        item = self.item_for(product_id)
        if item is None:
            raise ValueError(f"Product {product_id} is not on purchase order {self.po_number}")
        return item.unit_cost


@dataclass(frozen=True)
class ReceivedItem:
    """One line of a receiving batch."""
    product_id: UUID
    quantity: int


@dataclass(frozen=True)
class StatusTransition:
    """Append-only audit record of a purchase order status change."""
    id: UUID
    purchase_order_id: UUID
    from_status: POStatus
    to_status: POStatus
    timestamp: datetime
    performed_by: UUID
    reason: str = ""
