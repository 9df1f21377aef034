"""
LedgerRepository -- the persistence boundary of the ledger.

Responsibility:
    One interface through which every ledger component reads and writes
    accounts, products, stock movements, journal entries, purchase orders,
    status transitions and sales.  ``SqlAlchemyLedgerRepository`` implements
    it on a SQLAlchemy ``Session``.

Architecture position:
    Services layer.  Satisfies the kernel's ``AccountSource`` and
    ``JournalStore`` protocols and the inventory module's ``StockStore``.

Invariants enforced:
    - ``transaction()`` is the only place that commits.  Any exception
      inside it rolls the whole unit of work back.
    - Every write flushes immediately so that constraint, immutability and
      version conflicts surface inside the operation that caused them.

Failure modes:
    - StaleDataError (version_id_col mismatch) -> OptimisticLockError.
    - OperationalError / InterfaceError -> RepositoryTransportError.  Reads
      are retried with exponential backoff first; writes never are, since
      a failed write may have partially reached the store.
    - A second sale with an existing invoice number -> DuplicateInvoiceError.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Mapping
from contextlib import AbstractContextManager, contextmanager
from datetime import datetime
from typing import TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from fbms_kernel.domain.accounts import Account
from fbms_kernel.domain.journal import JournalEntry
from fbms_kernel.exceptions import (
    DuplicateInvoiceError,
    OptimisticLockError,
    RepositoryTransportError,
)
from fbms_kernel.logging_config import get_logger
from fbms_kernel.models.account import AccountModel
from fbms_kernel.models.journal import JournalEntryModel
from fbms_modules.inventory.models import Product, StockMovement
from fbms_modules.inventory.orm import ProductModel, StockMovementModel
from fbms_modules.procurement.models import POStatus, PurchaseOrder, StatusTransition
from fbms_modules.procurement.orm import PurchaseOrderModel, StatusTransitionModel
from fbms_modules.sales.models import Sale
from fbms_modules.sales.orm import SaleModel

logger = get_logger("services.repository")

T = TypeVar("T")
M = TypeVar("M")

TRANSPORT_ERRORS = (OperationalError, InterfaceError)


class LedgerRepository(ABC):
    """Abstract persistence boundary.  Any call may raise
    ``RepositoryTransportError``."""

    @abstractmethod
    def transaction(self) -> AbstractContextManager[LedgerRepository]:
        """Context manager: commit on success, roll back on any exception."""

    # Accounts
    @abstractmethod
    def load_accounts(self) -> list[Account]: ...

    @abstractmethod
    def save_account(self, account: Account, actor_id: UUID) -> Account: ...

    # Products and stock
    @abstractmethod
    def load_product(self, product_id: UUID) -> Product | None: ...

    @abstractmethod
    def save_product(self, product: Product, actor_id: UUID) -> Product: ...

    @abstractmethod
    def list_products(self, active_only: bool = True) -> list[Product]: ...

    @abstractmethod
    def save_stock_movement(self, movement: StockMovement) -> None: ...

    @abstractmethod
    def list_stock_movements(self, product_id: UUID) -> list[StockMovement]: ...

    @abstractmethod
    def last_stock_movement_sequence(self, product_id: UUID) -> int: ...

    # Journal
    @abstractmethod
    def save_journal_entry(self, entry: JournalEntry) -> None: ...

    @abstractmethod
    def load_journal_entry(self, entry_id: UUID) -> JournalEntry | None: ...

    @abstractmethod
    def find_reversal_of(self, entry_id: UUID) -> JournalEntry | None: ...

    @abstractmethod
    def list_journal_entries(self, source_id: UUID | None = None) -> list[JournalEntry]: ...

    # Purchase orders
    @abstractmethod
    def load_purchase_order(self, po_id: UUID) -> PurchaseOrder | None: ...

    @abstractmethod
    def save_purchase_order(self, po: PurchaseOrder) -> PurchaseOrder: ...

    @abstractmethod
    def save_purchase_order_status(
        self,
        po_id: UUID,
        status: POStatus,
        received_date: datetime | None,
        actor_id: UUID | None = None,
    ) -> None: ...

    @abstractmethod
    def save_received_quantities(
        self, po_id: UUID, received: Mapping[UUID, int], actor_id: UUID,
    ) -> None: ...

    @abstractmethod
    def save_status_transition(self, transition: StatusTransition) -> None: ...

    @abstractmethod
    def list_status_transitions(self, po_id: UUID) -> list[StatusTransition]: ...

    # Sales
    @abstractmethod
    def save_sale(self, sale: Sale) -> None: ...

    @abstractmethod
    def load_sale(self, sale_id: UUID) -> Sale | None: ...


class SqlAlchemyLedgerRepository(LedgerRepository):
    """
    ``LedgerRepository`` on a SQLAlchemy ``Session``.

    Args:
        session: The unit-of-work session; this repository owns its commits.
        read_retries: Extra attempts for a read that hit a transport error.
        retry_backoff_seconds: First backoff delay; doubles per attempt.
        sleep: Injected for tests.
    """

    def __init__(
        self,
        session: Session,
        read_retries: int = 2,
        retry_backoff_seconds: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session = session
        self._read_retries = read_retries
        self._backoff = retry_backoff_seconds
        self._sleep = sleep

    @property
    def session(self) -> Session:
        return self._session

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[SqlAlchemyLedgerRepository]:
        try:
            yield self
            self._session.commit()
        except StaleDataError as exc:
            self._session.rollback()
            raise OptimisticLockError("unknown", str(exc)) from exc
        except TRANSPORT_ERRORS as exc:
            self._session.rollback()
            logger.warning("repository_commit_failed", extra={"detail": str(exc)})
            raise RepositoryTransportError("commit", str(exc)) from exc
        except BaseException:
            self._session.rollback()
            raise

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _read(self, operation: str, fn: Callable[[], T]) -> T:
        attempt = 0
        while True:
            try:
                return fn()
            except TRANSPORT_ERRORS as exc:
                if attempt >= self._read_retries:
                    logger.error(
                        "repository_read_failed",
                        extra={"operation": operation, "attempts": attempt + 1},
                    )
                    raise RepositoryTransportError(operation, str(exc)) from exc
                delay = self._backoff * (2 ** attempt)
                logger.warning(
                    "repository_read_retry",
                    extra={
                        "operation": operation,
                        "attempt": attempt + 1,
                        "max_retries": self._read_retries,
                        "delay_seconds": delay,
                    },
                )
                self._sleep(delay)
                attempt += 1

    def _flush(self, operation: str, entity_type: str, entity_id: UUID) -> None:
        try:
            self._session.flush()
        except StaleDataError as exc:
            logger.warning(
                "optimistic_lock_conflict",
                extra={"entity_type": entity_type, "entity_id": str(entity_id)},
            )
            raise OptimisticLockError(entity_type, str(entity_id)) from exc
        except TRANSPORT_ERRORS as exc:
            raise RepositoryTransportError(operation, str(exc)) from exc

    def _lookup(self, operation: str, model_cls: type[M], entity_id: UUID) -> M | None:
        """Fetch a row that is about to be written.

        Pending changes are flushed by the write itself, never by this
        read, so a failed flush is reported once and under ``operation``.
        Not retried: it belongs to a write.
        """
        with self._session.no_autoflush:
            try:
                return self._session.get(model_cls, entity_id)
            except TRANSPORT_ERRORS as exc:
                raise RepositoryTransportError(operation, str(exc)) from exc

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def load_accounts(self) -> list[Account]:
        def query() -> list[Account]:
            rows = self._session.scalars(select(AccountModel).order_by(AccountModel.code))
            return [row.to_dto() for row in rows]

        return self._read("load_accounts", query)

    def save_account(self, account: Account, actor_id: UUID) -> Account:
        model = self._lookup("save_account", AccountModel, account.id)
        if model is None:
            model = AccountModel.from_dto(account, actor_id)
            self._session.add(model)
        else:
            model.code = account.code
            model.name = account.name
            model.account_type = account.account_type.value
            model.role = account.role.value if account.role else None
            model.is_active = account.is_active
            model.updated_by_id = actor_id
        self._flush("save_account", "Account", account.id)
        return model.to_dto()

    # ------------------------------------------------------------------
    # Products and stock
    # ------------------------------------------------------------------

    def load_product(self, product_id: UUID) -> Product | None:
        def query() -> Product | None:
            model = self._session.get(ProductModel, product_id)
            return model.to_dto() if model is not None else None

        return self._read("load_product", query)

    def save_product(self, product: Product, actor_id: UUID) -> Product:
        model = self._lookup("save_product", ProductModel, product.id)
        if model is None:
            model = ProductModel.from_dto(product, actor_id)
            self._session.add(model)
        else:
            if product.version and model.version != product.version:
                raise OptimisticLockError("Product", str(product.id))
            model.apply_dto(product, actor_id)
        self._flush("save_product", "Product", product.id)
        return model.to_dto()

    def list_products(self, active_only: bool = True) -> list[Product]:
        def query() -> list[Product]:
            stmt = select(ProductModel).order_by(ProductModel.sku)
            if active_only:
                stmt = stmt.where(ProductModel.is_active.is_(True))
            return [row.to_dto() for row in self._session.scalars(stmt)]

        return self._read("list_products", query)

    def save_stock_movement(self, movement: StockMovement) -> None:
        self._session.add(StockMovementModel.from_dto(movement))
        try:
            self._flush("save_stock_movement", "StockMovement", movement.id)
        except IntegrityError as exc:
            # Another writer took this (product, sequence) slot
            raise OptimisticLockError("Product", str(movement.product_id)) from exc

    def list_stock_movements(self, product_id: UUID) -> list[StockMovement]:
        def query() -> list[StockMovement]:
            stmt = (
                select(StockMovementModel)
                .where(StockMovementModel.product_id == product_id)
                .order_by(StockMovementModel.sequence)
            )
            return [row.to_dto() for row in self._session.scalars(stmt)]

        return self._read("list_stock_movements", query)

    def last_stock_movement_sequence(self, product_id: UUID) -> int:
        def query() -> int:
            stmt = select(func.max(StockMovementModel.sequence)).where(
                StockMovementModel.product_id == product_id
            )
            return self._session.scalar(stmt) or 0

        return self._read("last_stock_movement_sequence", query)

    # ------------------------------------------------------------------
    # Journal
    # ------------------------------------------------------------------

    def save_journal_entry(self, entry: JournalEntry) -> None:
        self._session.add(JournalEntryModel.from_dto(entry))
        self._flush("save_journal_entry", "JournalEntry", entry.id)

    def load_journal_entry(self, entry_id: UUID) -> JournalEntry | None:
        def query() -> JournalEntry | None:
            model = self._session.get(JournalEntryModel, entry_id)
            return model.to_dto() if model is not None else None

        return self._read("load_journal_entry", query)

    def find_reversal_of(self, entry_id: UUID) -> JournalEntry | None:
        def query() -> JournalEntry | None:
            model = self._session.scalars(
                select(JournalEntryModel).where(JournalEntryModel.reversal_of_id == entry_id)
            ).first()
            return model.to_dto() if model is not None else None

        return self._read("find_reversal_of", query)

    def list_journal_entries(self, source_id: UUID | None = None) -> list[JournalEntry]:
        def query() -> list[JournalEntry]:
            stmt = select(JournalEntryModel).order_by(
                JournalEntryModel.created_at, JournalEntryModel.entry_number,
            )
            if source_id is not None:
                stmt = stmt.where(JournalEntryModel.source_id == source_id)
            return [row.to_dto() for row in self._session.scalars(stmt)]

        return self._read("list_journal_entries", query)

    # ------------------------------------------------------------------
    # Purchase orders
    # ------------------------------------------------------------------

    def load_purchase_order(self, po_id: UUID) -> PurchaseOrder | None:
        def query() -> PurchaseOrder | None:
            model = self._session.get(PurchaseOrderModel, po_id)
            return model.to_dto() if model is not None else None

        return self._read("load_purchase_order", query)

    def save_purchase_order(self, po: PurchaseOrder) -> PurchaseOrder:
        model = PurchaseOrderModel.from_dto(po)
        self._session.add(model)
        self._flush("save_purchase_order", "PurchaseOrder", po.id)
        return model.to_dto()

    def _po_model(self, po_id: UUID) -> PurchaseOrderModel:
        model = self._lookup("load_purchase_order_for_update", PurchaseOrderModel, po_id)
        if model is None:
            raise LookupError(f"Purchase order {po_id} does not exist")
        return model

    def save_purchase_order_status(
        self,
        po_id: UUID,
        status: POStatus,
        received_date: datetime | None,
        actor_id: UUID | None = None,
    ) -> None:
        model = self._po_model(po_id)
        model.status = POStatus(status).value
        model.received_date = received_date
        if actor_id is not None:
            model.updated_by_id = actor_id
        # Bump the version even when the status value is unchanged
        flag_modified(model, "status")
        self._flush("save_purchase_order_status", "PurchaseOrder", po_id)

    def save_received_quantities(
        self, po_id: UUID, received: Mapping[UUID, int], actor_id: UUID,
    ) -> None:
        """Set cumulative received quantities for the given products."""
        model = self._po_model(po_id)
        for item in model.items:
            if item.product_id in received:
                item.quantity_received = received[item.product_id]
                item.updated_by_id = actor_id
        model.updated_by_id = actor_id
        flag_modified(model, "status")
        self._flush("save_received_quantities", "PurchaseOrder", po_id)

    def save_status_transition(self, transition: StatusTransition) -> None:
        self._session.add(StatusTransitionModel.from_dto(transition))
        self._flush("save_status_transition", "StatusTransition", transition.id)

    def list_status_transitions(self, po_id: UUID) -> list[StatusTransition]:
        def query() -> list[StatusTransition]:
            stmt = (
                select(StatusTransitionModel)
                .where(StatusTransitionModel.purchase_order_id == po_id)
                .order_by(StatusTransitionModel.timestamp, StatusTransitionModel.created_at)
            )
            return [row.to_dto() for row in self._session.scalars(stmt)]

        return self._read("list_status_transitions", query)

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def save_sale(self, sale: Sale) -> None:
        self._session.add(SaleModel.from_dto(sale))
        try:
            self._flush("save_sale", "Sale", sale.id)
        except IntegrityError as exc:
            # Only uq_sale_invoice_number can fail for a well-formed sale
            logger.warning(
                "duplicate_invoice_number",
                extra={"invoice_number": sale.invoice_number, "sale_id": str(sale.id)},
            )
            raise DuplicateInvoiceError(sale.invoice_number) from exc

    def load_sale(self, sale_id: UUID) -> Sale | None:
        def query() -> Sale | None:
            model = self._session.get(SaleModel, sale_id)
            return model.to_dto() if model is not None else None

        return self._read("load_sale", query)


__all__ = [
    "LedgerRepository",
    "SqlAlchemyLedgerRepository",
    "TRANSPORT_ERRORS",
]
