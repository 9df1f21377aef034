"""Kernel services: account resolution and journal posting."""

from fbms_kernel.services.account_registry import AccountRegistry, AccountSource
from fbms_kernel.services.journal_ledger import JournalLedger, JournalStore

__all__ = [
    "AccountRegistry",
    "AccountSource",
    "JournalLedger",
    "JournalStore",
]
