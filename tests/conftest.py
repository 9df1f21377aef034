"""
Pytest fixtures for the FBMS ledger test suite.

Provides:
- A fresh in-memory SQLite database per test (StaticPool, one connection)
- A SqlAlchemyLedgerRepository and TransactionCoordinator over it
- The Philippine retail chart of accounts, seeded from fbms_config
- A deterministic clock and captured structured log records
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from fbms_config import get_active_config, seed_chart_of_accounts
from fbms_kernel.db.engine import (
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from fbms_kernel.db.immutability import unregister_immutability_listeners
from fbms_kernel.domain.clock import DeterministicClock
from fbms_kernel.logging_config import LogContext, StructuredFormatter
from fbms_kernel.services.account_registry import AccountRegistry
from fbms_modules._orm_registry import create_all_tables
from fbms_modules.inventory import InventoryLedger, Product
from fbms_modules.procurement import POStatus, PurchaseOrder, PurchaseOrderItem
from fbms_services.repository import SqlAlchemyLedgerRepository
from fbms_services.transaction_coordinator import TransactionCoordinator

TEST_ACTOR_ID = UUID("00000000-0000-0000-0000-0000000000aa")
TEST_SUPPLIER_ID = UUID("00000000-0000-0000-0000-0000000000bb")


# =============================================================================
# Logging capture
# =============================================================================


class _ListHandler(logging.Handler):
    """Collects formatted JSON records for assertions."""

    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.setFormatter(StructuredFormatter())
        self.records: list[dict] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(json.loads(self.format(record)))


class CapturedLogs:
    def __init__(self, handler: _ListHandler):
        self._handler = handler

    @property
    def records(self) -> list[dict]:
        return self._handler.records

    def messages(self) -> list[str]:
        return [r["message"] for r in self.records]

    def find(self, message: str) -> list[dict]:
        return [r for r in self.records if r["message"] == message]


@pytest.fixture
def captured_logs() -> Generator[CapturedLogs, None, None]:
    """Capture every record emitted under the ``fbms`` logger."""
    fbms_logger = logging.getLogger("fbms")
    previous_level = fbms_logger.level
    handler = _ListHandler()
    fbms_logger.addHandler(handler)
    fbms_logger.setLevel(logging.DEBUG)
    try:
        yield CapturedLogs(handler)
    finally:
        fbms_logger.removeHandler(handler)
        fbms_logger.setLevel(previous_level)


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine():
    """Fresh in-memory database with every table and immutability listener."""
    engine = init_engine_from_url("sqlite://", timeout_seconds=1.0)
    create_all_tables()
    yield engine
    unregister_immutability_listeners()
    drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    sess = get_session()
    try:
        yield sess
    finally:
        sess.close()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 6, 3, 9, 30, 0, tzinfo=timezone.utc))


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def ledger_config():
    return get_active_config()


@pytest.fixture
def repo(session) -> SqlAlchemyLedgerRepository:
    return SqlAlchemyLedgerRepository(session, sleep=lambda _: None)


@pytest.fixture
def seeded_repo(repo, ledger_config, test_actor_id) -> SqlAlchemyLedgerRepository:
    """Repository with the default chart of accounts committed."""
    with repo.transaction():
        seed_chart_of_accounts(repo, ledger_config, test_actor_id)
    return repo


@pytest.fixture
def registry(seeded_repo) -> AccountRegistry:
    return AccountRegistry.from_repository(seeded_repo)


@pytest.fixture
def coordinator(seeded_repo, registry, clock, ledger_config) -> TransactionCoordinator:
    return TransactionCoordinator(
        seeded_repo, registry=registry, clock=clock, settings=ledger_config.settings,
    )


# =============================================================================
# Data builders
# =============================================================================


@pytest.fixture
def make_product(seeded_repo, clock, test_actor_id):
    """Create and commit a product with opening stock."""
    inventory = InventoryLedger(seeded_repo, clock=clock)

    def _make(
        sku: str,
        cost: str,
        price: str,
        stock: int = 0,
        min_stock: int = 0,
    ) -> Product:
        with seeded_repo.transaction():
            return inventory.open_product(
                sku=sku,
                name=f"Product {sku}",
                cost=Decimal(cost),
                price=Decimal(price),
                actor_id=test_actor_id,
                opening_stock=stock,
                min_stock=min_stock,
            )

    return _make


@pytest.fixture
def make_purchase_order(seeded_repo, test_actor_id):
    """Create and commit a purchase order in the given status."""
    counter = {"n": 0}

    def _make(
        items: list[tuple[Product, int, str]],
        status: POStatus = POStatus.SENT,
    ) -> PurchaseOrder:
        counter["n"] += 1
        po = PurchaseOrder(
            id=uuid4(),
            po_number=f"PO-2024-{counter['n']:04d}",
            supplier_id=TEST_SUPPLIER_ID,
            created_by=test_actor_id,
            items=tuple(
                PurchaseOrderItem(
                    product_id=product.id,
                    quantity_ordered=quantity,
                    unit_cost=Decimal(unit_cost),
                )
                for product, quantity, unit_cost in items
            ),
            status=status,
        )
        with seeded_repo.transaction():
            return seeded_repo.save_purchase_order(po)

    return _make


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
