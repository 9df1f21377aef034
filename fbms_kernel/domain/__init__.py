"""Pure domain types for the ledger kernel. Zero I/O."""

from fbms_kernel.domain.accounts import (
    Account,
    AccountNotFound,
    AccountRole,
    AccountType,
    RoleResolution,
)
from fbms_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fbms_kernel.domain.journal import (
    SKIP_MISSING_ACCOUNTS,
    SKIP_NOTHING_RECEIVED,
    SKIP_ZERO_VALUE,
    IntentLine,
    JournalEntry,
    JournalLine,
    JournalSourceType,
    PostingIntent,
    Skipped,
)

__all__ = [
    "Account",
    "AccountNotFound",
    "AccountRole",
    "AccountType",
    "RoleResolution",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "IntentLine",
    "JournalEntry",
    "JournalLine",
    "JournalSourceType",
    "PostingIntent",
    "Skipped",
    "SKIP_MISSING_ACCOUNTS",
    "SKIP_NOTHING_RECEIVED",
    "SKIP_ZERO_VALUE",
]
