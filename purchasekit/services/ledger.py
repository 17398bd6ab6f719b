"""
Receipt Ledger - Durable set of purchased product identifiers.

Keeps an in-memory set backed by a ``KeyValueStore``. The set only grows:
once a product is recorded it is never removed.

The in-memory set is authoritative for the session. If the store fails,
the failure is logged and counted, and the ledger keeps working from memory.
"""

import threading
from typing import Protocol

from structlog import get_logger

from purchasekit.config import settings
from purchasekit.exceptions import PersistenceError
from purchasekit.models.domain import ErrorKind, ProductIdentifier
from purchasekit.observability.metrics import metrics
from purchasekit.services.observers import ObserverRegistry, Subscription
from purchasekit.services.storage import KeyValueStore

logger = get_logger(__name__)


class LedgerObserver(Protocol):
    """Observer of the receipt ledger."""

    def loaded(self, product_ids: frozenset[ProductIdentifier]) -> None:
        """Called after ``load`` with the full set of purchased products."""
        ...

    def purchase_recorded(self, product_id: ProductIdentifier) -> None:
        """Called after a product has been recorded as purchased."""
        ...


class ReceiptLedger:
    """
    Record of which products have been purchased or restored.

    Usage:
        ledger = ReceiptLedger(store)
        ledger.load()  # at application start
        if not ledger.already_purchased("pro_upgrade"):
            ...
    """

    def __init__(self, store: KeyValueStore, storage_key: str | None = None) -> None:
        """
        Initialize ledger.

        Args:
            store: Backend holding the persisted identifier list
            storage_key: Key of the persisted list (defaults to settings)
        """
        self.store = store
        self.storage_key = storage_key or settings.ledger_storage_key
        self._purchased: set[ProductIdentifier] = set()
        self._observers: ObserverRegistry[LedgerObserver] = ObserverRegistry("ledger")
        self._lock = threading.RLock()

    def load(self) -> None:
        """
        Load the in-memory set from the store.

        A missing key means nothing has been purchased yet. Observers are
        notified with the full resulting set.
        """
        with self._lock:
            try:
                stored = self.store.get_string_list(self.storage_key)
            except PersistenceError as exc:
                self._log_persistence_failure("load", exc)
            else:
                self._purchased = set(stored) if stored is not None else set()
                logger.info(
                    "ledger_loaded",
                    key=self.storage_key,
                    count=len(self._purchased),
                    key_present=stored is not None,
                )

            snapshot = frozenset(self._purchased)
            self._observers.notify(lambda observer: observer.loaded(snapshot))

    def already_purchased(self, product_id: ProductIdentifier) -> bool:
        """Check if a product was already purchased. Never touches the store."""
        return product_id in self._purchased

    def record_purchase(self, product_id: ProductIdentifier) -> None:
        """
        Record that a product was purchased.

        Idempotent: recording the same product again rewrites the same set.
        The full set is persisted before observers are notified.
        """
        with self._lock:
            is_new = product_id not in self._purchased
            self._purchased.add(product_id)

            try:
                self.store.set_string_list(self.storage_key, sorted(self._purchased))
            except PersistenceError as exc:
                self._log_persistence_failure("record_purchase", exc)
            else:
                metrics.record_ledger_write()

            logger.info(
                "purchase_recorded",
                product_id=product_id,
                is_new=is_new,
                count=len(self._purchased),
            )
            self._observers.notify(lambda observer: observer.purchase_recorded(product_id))

    def purchased_products(self) -> frozenset[ProductIdentifier]:
        """Snapshot of all purchased product identifiers."""
        with self._lock:
            return frozenset(self._purchased)

    def add_observer(self, observer: LedgerObserver) -> Subscription:
        """Register an observer of the ledger (held weakly)."""
        return self._observers.add_observer(observer)

    def _log_persistence_failure(self, operation: str, exc: PersistenceError) -> None:
        metrics.record_error(ErrorKind.PERSISTENCE_UNAVAILABLE.value, operation)
        logger.error(
            "ledger_persistence_failed",
            error_kind=ErrorKind.PERSISTENCE_UNAVAILABLE.value,
            operation=operation,
            key=exc.key,
            error=exc.message,
        )
