"""
Typed Exception Hierarchy for the FBMS Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers branch on the exception TYPE and read structured attributes; they
never parse message strings.  Every class carries a ``code`` class attribute
that is machine-readable and safe to put in an API response or a log line.

Validation problems a cashier or receiving clerk can cause (over-receipt,
invalid status transition, negative quantity) are NOT exceptions.  They are
returned as typed results by the state machine and the coordinator.  The
exceptions below are for configuration errors, programming errors, storage
failures, and concurrency conflicts.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FbmsLedgerError (base)
    |
    +-- PostingError
    |   +-- UnbalancedEntryError
    |   +-- InvalidJournalLineError
    |
    +-- AccountError
    |   +-- DuplicateAccountRoleError
    |
    +-- ReversalError
    |   +-- EntryNotFoundError
    |   +-- EntryAlreadyReversedError
    |   +-- ReversalOfReversalError
    |
    +-- InventoryError
    |   +-- ProductNotFoundError
    |   +-- NegativeStockError
    |
    +-- SaleError
    |   +-- DuplicateInvoiceError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- RepositoryError
        +-- RepositoryTransportError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Posting         | UNBALANCED_ENTRY            | Debits != Credits (programming error)
                | INVALID_JOURNAL_LINE        | Mixed, negative or empty line
----------------|-----------------------------|-----------------------------------------
Account         | DUPLICATE_ACCOUNT_ROLE      | Two active accounts share one role
----------------|-----------------------------|-----------------------------------------
Reversal        | ENTRY_NOT_FOUND             | Journal entry id doesn't exist
                | ENTRY_ALREADY_REVERSED      | Entry already has a reversal
                | REVERSAL_OF_REVERSAL        | Reversing a reversing entry
----------------|-----------------------------|-----------------------------------------
Inventory       | PRODUCT_NOT_FOUND           | Product id doesn't exist
                | NEGATIVE_STOCK              | Adjustment would take stock below 0
----------------|-----------------------------|-----------------------------------------
Sale            | DUPLICATE_INVOICE           | Invoice number already recorded
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Concurrent modification detected
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying an append-only record
----------------|-----------------------------|-----------------------------------------
Repository      | REPOSITORY_TRANSPORT_ERROR  | Storage unreachable, timed out, dropped

===============================================================================
HANDLING PATTERNS
===============================================================================

1. PROGRAMMING ERRORS ARE NOT RETRIED:

    except (UnbalancedEntryError, InvalidJournalLineError):
        logger.error("ledger_defect_detected", exc_info=True)
        # roll back; report the defect; do not retry

2. CONCURRENCY ERRORS ARE RETRIED AS A WHOLE OPERATION:

    except OptimisticLockError:
        session.rollback()
        # re-read state and run the entire unit of work again

3. TRANSPORT ERRORS ON READS MAY BE RETRIED, WRITES MAY NOT:

    A failed write may have partially reached the store; only a fresh
    unit of work that re-reads state is safe.
"""


class FbmsLedgerError(Exception):
    """
    Base exception for all FBMS ledger errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "FBMS_LEDGER_ERROR"


# Posting-related exceptions


class PostingError(FbmsLedgerError):
    """Base exception for posting-related errors."""

    code: str = "POSTING_ERROR"


class UnbalancedEntryError(PostingError):
    """Journal entry debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, reference: str, debits: str, credits: str):
        self.reference = reference
        self.debits = debits
        self.credits = credits
        super().__init__(
            f"Unbalanced entry {reference}: debits={debits}, credits={credits}"
        )


class InvalidJournalLineError(PostingError):
    """A journal line is not a single-sided, non-negative amount."""

    code: str = "INVALID_JOURNAL_LINE"

    def __init__(self, line_number: int, reason: str):
        self.line_number = line_number
        self.reason = reason
        super().__init__(f"Invalid journal line {line_number}: {reason}")


# Account-related exceptions


class AccountError(FbmsLedgerError):
    """Base exception for chart-of-accounts errors."""

    code: str = "ACCOUNT_ERROR"


class DuplicateAccountRoleError(AccountError):
    """More than one active account is bound to the same role."""

    code: str = "DUPLICATE_ACCOUNT_ROLE"

    def __init__(self, role: str, account_codes: list[str]):
        self.role = role
        self.account_codes = account_codes
        super().__init__(
            f"Role '{role}' is bound to more than one active account: "
            f"{', '.join(account_codes)}"
        )


# Reversal-related exceptions


class ReversalError(FbmsLedgerError):
    """Base exception for reversal errors."""

    code: str = "REVERSAL_ERROR"


class EntryNotFoundError(ReversalError):
    """Journal entry with given ID was not found."""

    code: str = "ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Journal entry not found: {entry_id}")


class EntryAlreadyReversedError(ReversalError):
    """Entry has already been reversed."""

    code: str = "ENTRY_ALREADY_REVERSED"

    def __init__(self, entry_id: str, reversal_entry_id: str):
        self.entry_id = entry_id
        self.reversal_entry_id = reversal_entry_id
        super().__init__(
            f"Journal entry {entry_id} already reversed by {reversal_entry_id}"
        )


class ReversalOfReversalError(ReversalError):
    """A reversing entry cannot itself be reversed; post a new entry instead."""

    code: str = "REVERSAL_OF_REVERSAL"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Journal entry {entry_id} is a reversal and cannot be reversed")


# Inventory-related exceptions


class InventoryError(FbmsLedgerError):
    """Base exception for inventory errors."""

    code: str = "INVENTORY_ERROR"


class ProductNotFoundError(InventoryError):
    """Product with given ID was not found."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class NegativeStockError(InventoryError):
    """A manual adjustment would take stock below zero."""

    code: str = "NEGATIVE_STOCK"

    def __init__(self, product_id: str, current_stock: int, delta: int):
        self.product_id = product_id
        self.current_stock = current_stock
        self.delta = delta
        super().__init__(
            f"Adjustment of {delta} on product {product_id} would take stock "
            f"from {current_stock} below zero"
        )


# Sale-related exceptions


class SaleError(FbmsLedgerError):
    """Base exception for sale recording errors."""

    code: str = "SALE_ERROR"


class DuplicateInvoiceError(SaleError):
    """A sale with this invoice number is already recorded."""

    code: str = "DUPLICATE_INVOICE"

    def __init__(self, invoice_number: str):
        self.invoice_number = invoice_number
        super().__init__(f"Invoice number already used: {invoice_number}")


# Concurrency-related exceptions


class ConcurrencyError(FbmsLedgerError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Concurrent modification detected on a versioned row."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}"
        )


# Immutability-related exceptions


class ImmutabilityError(FbmsLedgerError):
    """Base exception for immutability errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempt to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Repository-related exceptions


class RepositoryError(FbmsLedgerError):
    """Base exception for storage-layer errors."""

    code: str = "REPOSITORY_ERROR"


class RepositoryTransportError(RepositoryError):
    """
    The store could not be reached, timed out, or dropped the connection.

    Distinct from validation: the request may be perfectly valid.
    """

    code: str = "REPOSITORY_TRANSPORT_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Repository call '{operation}' failed: {detail}")


# Exceptions that signal a bug in line construction, never a user mistake.
LEDGER_DEFECT_ERRORS: tuple[type[FbmsLedgerError], ...] = (
    UnbalancedEntryError,
    InvalidJournalLineError,
    ImmutabilityViolationError,
)
