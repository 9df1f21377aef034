"""
Ledger Invariants Contract.

These invariants are structural law for the FBMS ledger.  Configuration
(VAT rate, payment-method mapping, negative-stock policy) may change *what*
gets posted, never *whether* these rules apply.

This module declares them explicitly.  Enforcement is distributed across
JournalLedger, InventoryLedger, the purchase order state machine, the ORM
immutability listeners, and the TransactionCoordinator.
"""

from enum import Enum, unique


@unique
class LedgerInvariant(str, Enum):
    """Non-configurable invariants enforced by the ledger."""

    DOUBLE_ENTRY_BALANCE = "double_entry_balance"
    """Debits equal credits in every journal entry, to the centavo.
    Enforced by JournalEntry.assert_balanced() before persistence."""

    SINGLE_SIDED_LINES = "single_sided_lines"
    """Every journal line carries exactly one nonzero side.
    Enforced by JournalLine construction."""

    IMMUTABILITY = "immutability"
    """Journal entries, journal lines and stock movements are append-only.
    Enforced by ORM listeners (fbms_kernel.db.immutability)."""

    STOCK_REPLAY = "stock_replay"
    """Replaying a product's stock movements from zero reproduces its
    current stock.  Enforced by InventoryLedger being the only stock writer."""

    FORWARD_ONLY_STATUS = "forward_only_status"
    """Purchase order status moves only along the allowed graph, and
    received_date is set iff the status is received."""

    NO_OVER_RECEIPT = "no_over_receipt"
    """Cumulative received quantity never exceeds the ordered quantity."""


ALL_LEDGER_INVARIANTS: frozenset[LedgerInvariant] = frozenset(LedgerInvariant)

# The kernel package may not import from these packages.
# Enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "fbms_services",
    "fbms_config",
    "fbms_modules",
)
