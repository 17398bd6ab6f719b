"""
Composition Root - Builds the long-lived purchase services.

Construct one ``PurchaseKit`` at application start and pass it (or its
members) to whatever needs it, instead of reaching for global instances.
"""

from dataclasses import dataclass

from structlog import get_logger

from purchasekit.config import settings
from purchasekit.db.session import get_session_factory
from purchasekit.services.catalog import CatalogCache, CatalogLookup
from purchasekit.services.coordinator import (
    ErrorReporter,
    TransactionCoordinator,
    TransactionHook,
    accept_all_transactions,
    log_error_reporter,
)
from purchasekit.services.ledger import ReceiptLedger
from purchasekit.services.payment_queue import PaymentQueue
from purchasekit.services.storage import KeyValueStore, SqlKeyValueStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class PurchaseKit:
    """The wired purchase services of one process."""

    ledger: ReceiptLedger
    catalog: CatalogCache
    coordinator: TransactionCoordinator


def build_purchase_kit(
    queue: PaymentQueue,
    lookup: CatalogLookup,
    store: KeyValueStore | None = None,
    validation_hook: TransactionHook | None = accept_all_transactions,
    unlock_hook: TransactionHook | None = None,
    error_reporter: ErrorReporter = log_error_reporter,
    load_ledger: bool = True,
) -> PurchaseKit:
    """
    Build and wire ledger, catalog cache and coordinator.

    Args:
        queue: Platform payment queue
        lookup: Platform catalog lookup
        store: Ledger backend (defaults to the SQL store at settings.database_url)
        validation_hook: Transaction validation hook
        unlock_hook: Entitlement unlock hook
        error_reporter: Receives messages of failed transactions
        load_ledger: Load the ledger from the store before returning

    Returns:
        The wired services
    """
    if store is None:
        store = SqlKeyValueStore(get_session_factory())

    ledger = ReceiptLedger(store)
    catalog = CatalogCache(lookup)
    coordinator = TransactionCoordinator(
        queue,
        ledger,
        validation_hook=validation_hook,
        unlock_hook=unlock_hook,
        error_reporter=error_reporter,
    )

    if load_ledger:
        ledger.load()

    logger.info(
        "purchase_kit_built",
        storage_key=ledger.storage_key,
        store=type(store).__name__,
        unlock_hook_configured=unlock_hook is not None,
        version=settings.version,
    )
    return PurchaseKit(ledger=ledger, catalog=catalog, coordinator=coordinator)
