"""Kernel ORM models: chart of accounts and journal."""

from fbms_kernel.models.account import AccountModel
from fbms_kernel.models.journal import JournalEntryModel, JournalLineModel

__all__ = [
    "AccountModel",
    "JournalEntryModel",
    "JournalLineModel",
]
