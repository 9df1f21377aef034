"""
Module: fbms_kernel.models.journal
Responsibility: ORM persistence for journal entries and journal lines -- the
    single source of financial truth.
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - Balance is checked by the JournalLedger before an entry is added to
      the session; ``is_balanced`` here is a read-side convenience.
    - Immutability: ORM listeners in db/immutability.py reject every UPDATE
      and DELETE of entries and lines.
    - At most one reversal per entry: UNIQUE constraint on reversal_of_id.

Failure modes:
    - IntegrityError on duplicate entry_number or second reversal.
    - ImmutabilityViolationError on UPDATE/DELETE of an entry or line.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fbms_kernel.db.base import TrackedBase, UUIDString
from fbms_kernel.db.types import ZERO
from fbms_kernel.domain.journal import JournalEntry, JournalLine, JournalSourceType

if TYPE_CHECKING:
    from fbms_kernel.models.account import AccountModel


class JournalEntryModel(TrackedBase):
    """
    Journal entry header.

    Maps to: fbms_kernel.domain.journal.JournalEntry (frozen dataclass).
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("entry_number", name="uq_journal_entry_number"),
        UniqueConstraint("reversal_of_id", name="uq_journal_reversal_of"),
        Index("idx_journal_source", "source_type", "source_id"),
        Index("idx_journal_entry_date", "entry_date"),
    )

    entry_number: Mapped[str] = mapped_column(String(40), nullable=False)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    reference: Mapped[str] = mapped_column(String(100), nullable=False)
    source_type: Mapped[str] = mapped_column(String(30), nullable=False)
    source_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    # If this is a reversal, points to the original entry
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    lines: Mapped[list["JournalLineModel"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="JournalLineModel.line_number",
    )

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    def to_dto(self) -> JournalEntry:
        """Convert ORM model (with lines) to frozen JournalEntry DTO."""
        return JournalEntry(
            id=self.id,
            entry_number=self.entry_number,
            entry_date=self.entry_date,
            reference=self.reference,
            source_type=JournalSourceType(self.source_type),
            source_id=self.source_id,
            description=self.description,
            lines=tuple(line.to_dto() for line in self.lines),
            created_by=self.created_by_id,
            created_at=self.created_at,
            reversal_of_id=self.reversal_of_id,
        )

    @classmethod
    def from_dto(cls, dto: JournalEntry) -> "JournalEntryModel":
        """Create ORM model (with lines) from frozen JournalEntry DTO."""
        model = cls(
            id=dto.id,
            entry_number=dto.entry_number,
            entry_date=dto.entry_date,
            reference=dto.reference,
            source_type=dto.source_type.value,
            source_id=dto.source_id,
            description=dto.description,
            reversal_of_id=dto.reversal_of_id,
            created_at=dto.created_at,
            updated_at=dto.created_at,
            created_by_id=dto.created_by,
        )
        model.lines = [
            JournalLineModel.from_dto(line, dto.created_by, dto.created_at)
            for line in dto.lines
        ]
        return model

    def __repr__(self) -> str:
        return f"<JournalEntryModel {self.entry_number} ref={self.reference}>"


class JournalLineModel(TrackedBase):
    """
    Individual debit or credit line within a journal entry.

    Exactly one of ``debit`` / ``credit`` is nonzero; the JournalLine DTO
    enforces that before a row is ever built.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        Index("idx_line_entry", "journal_entry_id"),
        Index("idx_line_account", "account_id"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )
    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )
    account_code: Mapped[str] = mapped_column(String(50), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    debit: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    credit: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    entry: Mapped["JournalEntryModel"] = relationship(back_populates="lines")
    account: Mapped["AccountModel"] = relationship(back_populates="journal_lines")

    def to_dto(self) -> JournalLine:
        return JournalLine(
            line_number=self.line_number,
            account_id=self.account_id,
            account_code=self.account_code,
            debit=self.debit,
            credit=self.credit,
            description=self.description,
        )

    @classmethod
    def from_dto(
        cls, dto: JournalLine, created_by_id: UUID, created_at: datetime,
    ) -> "JournalLineModel":
        return cls(
            account_id=dto.account_id,
            account_code=dto.account_code,
            line_number=dto.line_number,
            debit=dto.debit,
            credit=dto.credit,
            description=dto.description,
            created_at=created_at,
            updated_at=created_at,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<JournalLineModel #{self.line_number} {self.account_code} "
            f"Dr={self.debit} Cr={self.credit}>"
        )
