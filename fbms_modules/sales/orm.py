"""
Module: fbms_modules.sales.orm
Responsibility: SQLAlchemy ORM persistence for recorded sales and their
    lines.  Sales are written once by the TransactionCoordinator and never
    updated.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fbms_kernel.db.base import TrackedBase
from fbms_kernel.db.immutability import mark_append_only
from fbms_modules.sales.models import PaymentMethod, Sale, SaleLine


class SaleModel(TrackedBase):
    """
    ORM model for a recorded sale.

    Maps to: fbms_modules.sales.models.Sale (frozen dataclass).
    """

    __tablename__ = "sales"

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_sale_invoice_number"),
        Index("idx_sale_cashier", "created_by_id"),
    )

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    discount: Mapped[Decimal] = mapped_column(nullable=False)
    tax: Mapped[Decimal] = mapped_column(nullable=False)
    total: Mapped[Decimal] = mapped_column(nullable=False)
    sold_at: Mapped[datetime] = mapped_column(nullable=False)

    lines: Mapped[list["SaleLineModel"]] = relationship(
        back_populates="sale",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SaleLineModel.line_number",
    )

    def to_dto(self) -> Sale:
        return Sale(
            id=self.id,
            invoice_number=self.invoice_number,
            payment_method=PaymentMethod(self.payment_method),
            subtotal=self.subtotal,
            discount=self.discount,
            tax=self.tax,
            total=self.total,
            cashier_id=self.created_by_id,
            created_at=self.sold_at,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    @classmethod
    def from_dto(cls, dto: Sale) -> "SaleModel":
        model = cls(
            id=dto.id,
            invoice_number=dto.invoice_number,
            payment_method=dto.payment_method.value,
            subtotal=dto.subtotal,
            discount=dto.discount,
            tax=dto.tax,
            total=dto.total,
            sold_at=dto.created_at,
            created_by_id=dto.cashier_id,
        )
        model.lines = [
            SaleLineModel(
                product_id=line.product_id,
                sku=line.sku,
                line_number=number,
                quantity=line.quantity,
                unit_price=line.unit_price,
                unit_cost=line.unit_cost,
                quantity_issued=line.quantity_issued,
                created_by_id=dto.cashier_id,
            )
            for number, line in enumerate(dto.lines, start=1)
        ]
        return model

    def __repr__(self) -> str:
        return f"<SaleModel {self.invoice_number} total={self.total}>"


class SaleLineModel(TrackedBase):
    """ORM model for one sale line, with cost captured at sale time."""

    __tablename__ = "sale_lines"

    __table_args__ = (
        Index("idx_sale_line_sale", "sale_id"),
        Index("idx_sale_line_product", "product_id"),
    )

    sale_id: Mapped[UUID] = mapped_column(ForeignKey("sales.id"), nullable=False)
    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    sku: Mapped[str] = mapped_column(String(64), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)
    quantity_issued: Mapped[int | None] = mapped_column(Integer, nullable=True)

    sale: Mapped["SaleModel"] = relationship(back_populates="lines")

    def to_dto(self) -> SaleLine:
        return SaleLine(
            product_id=self.product_id,
            sku=self.sku,
            quantity=self.quantity,
            unit_price=self.unit_price,
            unit_cost=self.unit_cost,
            quantity_issued=self.quantity_issued,
        )


mark_append_only(SaleModel, "Sale")
mark_append_only(SaleLineModel, "SaleLine")
