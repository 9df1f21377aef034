"""
Journal domain types (``fbms_kernel.domain.journal``).

Responsibility
--------------
Frozen value objects for journal entries and their lines, plus the
role-based posting intent that the JournalLedger turns into an entry.

Invariants enforced
-------------------
* Every ``JournalLine`` has exactly one nonzero side; neither side is
  negative.  Amounts are quantized to centavos on construction.
* ``JournalEntry.assert_balanced()`` raises ``UnbalancedEntryError`` when
  sum(debit) != sum(credit).  The JournalLedger calls it before any entry
  reaches storage.

Failure modes
-------------
* ``InvalidJournalLineError`` -- mixed, negative or all-zero line.
* ``UnbalancedEntryError`` -- a bug in line construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from fbms_kernel.db.types import ZERO, round_money
from fbms_kernel.domain.accounts import AccountRole
from fbms_kernel.exceptions import InvalidJournalLineError, UnbalancedEntryError


class JournalSourceType(str, Enum):
    """Business event that produced a journal entry."""

    SALE = "sale"
    PURCHASE_RECEIPT = "purchase_receipt"
    STOCK_ADJUSTMENT = "stock_adjustment"
    REVERSAL = "reversal"


def _check_sides(line_number: int, debit: Decimal, credit: Decimal) -> None:
    if debit < 0 or credit < 0:
        raise InvalidJournalLineError(line_number, "amounts must not be negative")
    if debit > 0 and credit > 0:
        raise InvalidJournalLineError(line_number, "line has both debit and credit")
    if debit == 0 and credit == 0:
        raise InvalidJournalLineError(line_number, "line has no amount")


@dataclass(frozen=True)
class JournalLine:
    """One single-sided line of a journal entry."""
    line_number: int
    account_id: UUID
    account_code: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str = ""

    def __post_init__(self) -> None:
        debit = round_money(self.debit)
        credit = round_money(self.credit)
        _check_sides(self.line_number, debit, credit)
        object.__setattr__(self, "debit", debit)
        object.__setattr__(self, "credit", credit)

    @property
    def is_debit(self) -> bool:
        return self.debit > 0


@dataclass(frozen=True)
class JournalEntry:
    """
    A balanced, immutable journal entry.

    Corrections are new reversing entries (``reversal_of_id`` set), never
    edits.
    """
    id: UUID
    entry_number: str
    entry_date: date
    reference: str
    source_type: JournalSourceType
    source_id: UUID
    description: str
    lines: tuple[JournalLine, ...]
    created_by: UUID
    created_at: datetime
    reversal_of_id: UUID | None = None

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    @property
    def total(self) -> Decimal:
        return self.total_debits

    def assert_balanced(self) -> None:
        """Raise ``UnbalancedEntryError`` unless debits equal credits."""
        if not self.lines or not self.is_balanced:
            raise UnbalancedEntryError(
                reference=self.reference,
                debits=str(self.total_debits),
                credits=str(self.total_credits),
            )

    def lines_for(self, account_id: UUID) -> tuple[JournalLine, ...]:
        return tuple(line for line in self.lines if line.account_id == account_id)


# -----------------------------------------------------------------------------
# Posting intents (role-based, before account resolution)
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class IntentLine:
    """A debit or credit against an account ROLE."""
    role: AccountRole
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str = ""

    @classmethod
    def dr(cls, role: AccountRole, amount: Decimal, description: str = "") -> IntentLine:
        return cls(role=role, debit=round_money(amount), description=description)

    @classmethod
    def cr(cls, role: AccountRole, amount: Decimal, description: str = "") -> IntentLine:
        return cls(role=role, credit=round_money(amount), description=description)


@dataclass(frozen=True)
class PostingIntent:
    """What a business event wants posted, expressed in account roles."""
    reference: str
    source_type: JournalSourceType
    source_id: UUID
    description: str
    entry_date: date
    lines: tuple[IntentLine, ...] = field(default_factory=tuple)

    @property
    def roles(self) -> tuple[AccountRole, ...]:
        seen: dict[AccountRole, None] = {}
        for line in self.lines:
            seen.setdefault(line.role, None)
        return tuple(seen)


# -----------------------------------------------------------------------------
# Skipped posting result
# -----------------------------------------------------------------------------

SKIP_MISSING_ACCOUNTS = "missing-accounts"
SKIP_NOTHING_RECEIVED = "nothing-received"
SKIP_ZERO_VALUE = "zero-value"


@dataclass(frozen=True)
class Skipped:
    """A posting that was deliberately not made.

    Falsy, so ``if result:`` distinguishes a posted entry from a skip.
    """
    reason: str
    missing_roles: tuple[AccountRole, ...] = ()

    def __bool__(self) -> bool:
        return False
