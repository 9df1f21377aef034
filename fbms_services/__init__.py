"""
fbms_services -- Stateful services over the kernel and the business modules.

The LedgerRepository is the persistence boundary; the TransactionCoordinator
runs every ledger-changing operation as one unit of work on top of it.
"""

from fbms_services.repository import LedgerRepository, SqlAlchemyLedgerRepository
from fbms_services.transaction_coordinator import (
    AdjustResult,
    OperationStatus,
    ReceiveResult,
    ReversalResult,
    SaleResult,
    TransactionCoordinator,
    TransitionResult,
    build_transaction_coordinator,
)

__all__ = [
    "AdjustResult",
    "LedgerRepository",
    "OperationStatus",
    "ReceiveResult",
    "ReversalResult",
    "SaleResult",
    "SqlAlchemyLedgerRepository",
    "TransactionCoordinator",
    "TransitionResult",
    "build_transaction_coordinator",
]
