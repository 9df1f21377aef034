"""
Module: fbms_modules.inventory.orm
Responsibility: SQLAlchemy ORM persistence for products and stock movements.
    Maps the frozen DTOs in inventory.models to relational tables.

Invariants enforced:
    - ``products.version`` is SQLAlchemy's ``version_id_col``: an UPDATE
      against a stale version raises StaleDataError.
    - Stock movements are append-only (ORM immutability listeners).
    - (product_id, sequence) is unique, so two writers cannot record the
      same movement slot for one product.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fbms_kernel.db.base import TrackedBase
from fbms_kernel.db.immutability import mark_append_only
from fbms_modules.inventory.models import MovementReason, Product, StockMovement


class ProductModel(TrackedBase):
    """
    ORM model for a stocked product.

    Maps to: fbms_modules.inventory.models.Product (frozen dataclass).
    """

    __tablename__ = "products"

    __table_args__ = (
        UniqueConstraint("sku", name="uq_product_sku"),
        Index("idx_product_active", "is_active"),
    )

    sku: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cost: Mapped[Decimal] = mapped_column(nullable=False)
    price: Mapped[Decimal] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self) -> Product:
        """Convert ORM model to frozen Product DTO."""
        return Product(
            id=self.id,
            sku=self.sku,
            name=self.name,
            stock=self.stock,
            min_stock=self.min_stock,
            cost=self.cost,
            price=self.price,
            is_active=self.is_active,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: Product, created_by_id: UUID) -> "ProductModel":
        """Create ORM model from frozen Product DTO."""
        return cls(
            id=dto.id,
            sku=dto.sku,
            name=dto.name,
            stock=dto.stock,
            min_stock=dto.min_stock,
            cost=dto.cost,
            price=dto.price,
            is_active=dto.is_active,
            created_by_id=created_by_id,
        )

    def apply_dto(self, dto: Product, updated_by_id: UUID) -> None:
        """Copy mutable fields from a DTO onto this row."""
        self.name = dto.name
        self.stock = dto.stock
        self.min_stock = dto.min_stock
        self.cost = dto.cost
        self.price = dto.price
        self.is_active = dto.is_active
        self.updated_by_id = updated_by_id

    def __repr__(self) -> str:
        return f"<ProductModel {self.sku} stock={self.stock} v{self.version}>"


class StockMovementModel(TrackedBase):
    """
    ORM model for one append-only stock movement.

    Maps to: fbms_modules.inventory.models.StockMovement (frozen dataclass).
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        UniqueConstraint("product_id", "sequence", name="uq_stock_movement_sequence"),
        Index("idx_stock_movement_product", "product_id"),
        Index("idx_stock_movement_reference", "reference_id"),
    )

    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(20), nullable=False)
    reference_id: Mapped[UUID | None] = mapped_column(nullable=True)
    resulting_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    note: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    def to_dto(self) -> StockMovement:
        return StockMovement(
            id=self.id,
            product_id=self.product_id,
            delta=self.delta,
            reason=MovementReason(self.reason),
            reference_id=self.reference_id,
            resulting_stock=self.resulting_stock,
            timestamp=self.timestamp,
            actor_id=self.created_by_id,
            sequence=self.sequence,
            note=self.note,
        )

    @classmethod
    def from_dto(cls, dto: StockMovement) -> "StockMovementModel":
        return cls(
            id=dto.id,
            product_id=dto.product_id,
            delta=dto.delta,
            reason=dto.reason.value,
            reference_id=dto.reference_id,
            resulting_stock=dto.resulting_stock,
            timestamp=dto.timestamp,
            sequence=dto.sequence,
            note=dto.note,
            created_by_id=dto.actor_id,
        )

    def __repr__(self) -> str:
        return (
            f"<StockMovementModel {self.product_id} #{self.sequence} "
            f"{self.reason} {self.delta:+d} -> {self.resulting_stock}>"
        )


mark_append_only(StockMovementModel, "StockMovement")
