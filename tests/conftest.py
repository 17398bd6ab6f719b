"""
Pytest Configuration and Centralized Fixtures.

Provides wired services built on the fakes in ``fakes.py``:
- In-memory key-value store and a loaded ledger
- Payment queue and catalog lookup fakes
- Catalog cache and coordinator with accepting hooks
"""

import os

import pytest

# Set environment variables BEFORE importing purchasekit modules
os.environ.setdefault("PURCHASEKIT_DATABASE_URL", "sqlite://")
os.environ.setdefault("PURCHASEKIT_LOG_FORMAT", "console")

from fakes import (
    LEDGER_KEY,
    FakeCatalogLookup,
    FakePaymentQueue,
    RecordingPurchaseObserver,
)

from purchasekit.services.catalog import CatalogCache
from purchasekit.services.coordinator import TransactionCoordinator
from purchasekit.services.ledger import ReceiptLedger
from purchasekit.services.storage import InMemoryKeyValueStore


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    """Empty in-memory key-value store."""
    return InMemoryKeyValueStore()


@pytest.fixture
def ledger(store: InMemoryKeyValueStore) -> ReceiptLedger:
    """Ledger over the in-memory store, already loaded."""
    ledger = ReceiptLedger(store, storage_key=LEDGER_KEY)
    ledger.load()
    return ledger


@pytest.fixture
def queue() -> FakePaymentQueue:
    return FakePaymentQueue()


@pytest.fixture
def lookup() -> FakeCatalogLookup:
    return FakeCatalogLookup()


@pytest.fixture
def catalog(lookup: FakeCatalogLookup) -> CatalogCache:
    return CatalogCache(lookup)


@pytest.fixture
def reported_errors() -> list[str]:
    """Messages received by the coordinator's error reporter."""
    return []


@pytest.fixture
def coordinator(
    queue: FakePaymentQueue, ledger: ReceiptLedger, reported_errors: list[str]
) -> TransactionCoordinator:
    """Coordinator with both hooks configured to accept everything."""
    return TransactionCoordinator(
        queue,
        ledger,
        validation_hook=lambda transaction: True,
        unlock_hook=lambda transaction: True,
        error_reporter=reported_errors.append,
    )


@pytest.fixture
def purchase_observer(coordinator: TransactionCoordinator) -> RecordingPurchaseObserver:
    """Observer registered on the coordinator (kept alive by the fixture)."""
    observer = RecordingPurchaseObserver()
    coordinator.add_observer(observer)
    return observer
