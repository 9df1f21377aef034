"""
Module: fbms_kernel.models.account
Responsibility: ORM persistence for the chart of accounts -- the target of
    every journal line.
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - ``code`` is unique.
    - At most one ACTIVE account per role is expected; the AccountRegistry
      raises DuplicateAccountRoleError when that does not hold.

Audit relevance:
    Account rows give journal lines their meaning.  Accounts are looked up
    by ``role``, never by name, so renaming an account is always safe.
"""

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fbms_kernel.db.base import TrackedBase
from fbms_kernel.domain.accounts import Account, AccountRole, AccountType

if TYPE_CHECKING:
    from fbms_kernel.models.journal import JournalLineModel


class AccountModel(TrackedBase):
    """
    Chart of accounts entry.

    Maps to: fbms_kernel.domain.accounts.Account (frozen dataclass).
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("code", name="uq_account_code"),
        Index("idx_account_role", "role"),
        Index("idx_account_active", "is_active"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Stable role tag used for automatic postings (null = manual only)
    role: Mapped[str | None] = mapped_column(String(50), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    journal_lines: Mapped[list["JournalLineModel"]] = relationship(
        back_populates="account",
        lazy="dynamic",
    )

    def to_dto(self) -> Account:
        """Convert ORM model to frozen Account DTO."""
        return Account(
            id=self.id,
            code=self.code,
            name=self.name,
            account_type=AccountType(self.account_type),
            role=AccountRole(self.role) if self.role else None,
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto: Account, created_by_id: UUID) -> "AccountModel":
        """Create ORM model from frozen Account DTO."""
        return cls(
            id=dto.id,
            code=dto.code,
            name=dto.name,
            account_type=dto.account_type.value,
            role=dto.role.value if dto.role else None,
            is_active=dto.is_active,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<AccountModel {self.code}: {self.name} role={self.role}>"
