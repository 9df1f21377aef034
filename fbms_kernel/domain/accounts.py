"""
Account domain types (``fbms_kernel.domain.accounts``).

Responsibility
--------------
The typed vocabulary of the chart of accounts: account roles, account types,
the frozen ``Account`` value object and the explicit ``AccountNotFound``
resolution result.

Accounts are looked up by ``AccountRole``, never by matching words in the
display name, so renaming "Sales Revenue" to "Benta" changes nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class AccountRole(str, Enum):
    """Stable role tags the ledger resolves accounts by."""

    CASH = "cash"
    ACCOUNTS_RECEIVABLE = "accounts_receivable"
    INVENTORY = "inventory"
    ACCOUNTS_PAYABLE = "accounts_payable"
    SALES_REVENUE = "sales_revenue"
    SALES_DISCOUNTS = "sales_discounts"
    VAT_PAYABLE = "vat_payable"
    COGS = "cogs"
    INVENTORY_ADJUSTMENT = "inventory_adjustment"
    EXPENSE = "expense"


class AccountType(str, Enum):
    """Financial statement classification."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSE = "expense"


@dataclass(frozen=True)
class Account:
    """A chart-of-accounts entry.

    ``role`` is optional: accounts without a role exist for manual
    bookkeeping but are never picked by automatic postings.
    """
    id: UUID
    code: str
    name: str
    account_type: AccountType
    role: AccountRole | None = None
    is_active: bool = True


@dataclass(frozen=True)
class AccountNotFound:
    """Explicit "no active account for this role" result.

    Falsy, so ``if registry.resolve(role):`` reads naturally.
    """
    role: AccountRole

    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True)
class RoleResolution:
    """Outcome of resolving several roles at once."""
    accounts: dict[AccountRole, Account]
    missing: tuple[AccountRole, ...]

    @property
    def is_complete(self) -> bool:
        return not self.missing

    def __getitem__(self, role: AccountRole) -> Account:
        return self.accounts[role]
