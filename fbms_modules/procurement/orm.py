"""
Module: fbms_modules.procurement.orm
Responsibility: SQLAlchemy ORM persistence for purchase orders, their items
    and the status transition audit trail.

Invariants enforced:
    - ``purchase_orders.version`` is SQLAlchemy's ``version_id_col``: two
      concurrent receipts against one order cannot both commit.
    - Status transitions are append-only (ORM immutability listeners).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fbms_kernel.db.base import TrackedBase
from fbms_kernel.db.immutability import mark_append_only
from fbms_modules.procurement.models import (
    POStatus,
    PurchaseOrder,
    PurchaseOrderItem,
    StatusTransition,
)


class PurchaseOrderModel(TrackedBase):
    """
    ORM model for a purchase order header.

    Maps to: fbms_modules.procurement.models.PurchaseOrder (frozen dataclass).
    """

    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("po_number", name="uq_purchase_order_number"),
        Index("idx_purchase_order_status", "status"),
        Index("idx_purchase_order_supplier", "supplier_id"),
    )

    po_number: Mapped[str] = mapped_column(String(50), nullable=False)
    supplier_id: Mapped[UUID | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default=POStatus.DRAFT.value)
    received_date: Mapped[datetime | None] = mapped_column(nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    items: Mapped[list["PurchaseOrderItemModel"]] = relationship(
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchaseOrderItemModel.line_number",
    )

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self) -> PurchaseOrder:
        """Convert ORM model (with items) to frozen PurchaseOrder DTO."""
        return PurchaseOrder(
            id=self.id,
            po_number=self.po_number,
            supplier_id=self.supplier_id,
            created_by=self.created_by_id,
            items=tuple(item.to_dto() for item in self.items),
            status=POStatus(self.status),
            received_date=self.received_date,
            notes=self.notes,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: PurchaseOrder) -> "PurchaseOrderModel":
        """Create ORM model (with items) from frozen PurchaseOrder DTO."""
        model = cls(
            id=dto.id,
            po_number=dto.po_number,
            supplier_id=dto.supplier_id,
            status=dto.status.value,
            received_date=dto.received_date,
            notes=dto.notes,
            created_by_id=dto.created_by,
        )
        model.items = [
            PurchaseOrderItemModel.from_dto(item, number, dto.created_by)
            for number, item in enumerate(dto.items, start=1)
        ]
        return model

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.po_number} status={self.status} v{self.version}>"


class PurchaseOrderItemModel(TrackedBase):
    """ORM model for one purchase order item."""

    __tablename__ = "purchase_order_items"

    __table_args__ = (
        UniqueConstraint("purchase_order_id", "product_id", name="uq_po_item_product"),
        Index("idx_po_item_order", "purchase_order_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_ordered: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_received: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)

    purchase_order: Mapped["PurchaseOrderModel"] = relationship(back_populates="items")

    def to_dto(self) -> PurchaseOrderItem:
        return PurchaseOrderItem(
            product_id=self.product_id,
            quantity_ordered=self.quantity_ordered,
            unit_cost=self.unit_cost,
            quantity_received=self.quantity_received,
        )

    @classmethod
    def from_dto(
        cls, dto: PurchaseOrderItem, line_number: int, created_by_id: UUID,
    ) -> "PurchaseOrderItemModel":
        return cls(
            product_id=dto.product_id,
            line_number=line_number,
            quantity_ordered=dto.quantity_ordered,
            quantity_received=dto.quantity_received,
            unit_cost=dto.unit_cost,
            created_by_id=created_by_id,
        )


class StatusTransitionModel(TrackedBase):
    """
    ORM model for the purchase order status audit trail.

    Maps to: fbms_modules.procurement.models.StatusTransition (frozen dataclass).
    """

    __tablename__ = "po_status_transitions"

    __table_args__ = (
        Index("idx_po_transition_order", "purchase_order_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    from_status: Mapped[str] = mapped_column(String(30), nullable=False)
    to_status: Mapped[str] = mapped_column(String(30), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    def to_dto(self) -> StatusTransition:
        return StatusTransition(
            id=self.id,
            purchase_order_id=self.purchase_order_id,
            from_status=POStatus(self.from_status),
            to_status=POStatus(self.to_status),
            timestamp=self.timestamp,
            performed_by=self.created_by_id,
            reason=self.reason,
        )

    @classmethod
    def from_dto(cls, dto: StatusTransition) -> "StatusTransitionModel":
        return cls(
            id=dto.id,
            purchase_order_id=dto.purchase_order_id,
            from_status=dto.from_status.value,
            to_status=dto.to_status.value,
            timestamp=dto.timestamp,
            reason=dto.reason,
            created_by_id=dto.performed_by,
        )


mark_append_only(StatusTransitionModel, "StatusTransition")
