"""
Transaction Coordinator - Drives purchases through the platform payment queue.

The payment queue keeps delivering a transaction until it is finished, so
finishing is the only terminal action and happens exactly once, after the
transaction has been fully processed:

- purchasing / deferred: informational, never finished.
- purchased: validation and unlock hooks must both pass; then the product is
  recorded in the ledger, observers are notified and the transaction is
  finished. Otherwise it is parked and retried on re-delivery or when a
  hook is installed. A purchased transaction without an identifier breaks
  the queue contract: it is logged and left unfinished, and the rest of
  the batch is still processed.
- restored: same gate as purchased, but requires the original transaction.
  Restores without one are left unfinished. Restores without an identifier
  are never parked; only re-delivery retries them.
- failed: reported unless the user cancelled, and always finished.

Anything the coordinator is unsure about is left unfinished; the queue will
deliver it again.
"""

import threading
import time
from collections.abc import Callable, Sequence
from typing import Protocol

from structlog import get_logger

from purchasekit.config import settings
from purchasekit.exceptions import RestoreInProgressError, TransactionContractError
from purchasekit.models.catalog import CatalogEntry
from purchasekit.models.domain import (
    ErrorKind,
    ProductIdentifier,
    Transaction,
    TransactionError,
    TransactionState,
)
from purchasekit.observability.logging import log_context
from purchasekit.observability.metrics import metrics
from purchasekit.services.ledger import ReceiptLedger
from purchasekit.services.observers import ObserverRegistry, Subscription
from purchasekit.services.payment_queue import PaymentQueue

logger = get_logger(__name__)

TransactionHook = Callable[[Transaction], bool]
ErrorReporter = Callable[[str], None]
RestoreCompletion = Callable[[TransactionError | None], None]


class PurchaseObserver(Protocol):
    """Observer of completed purchases."""

    def finished_purchase(
        self, transaction_identifier: str, product_id: ProductIdentifier
    ) -> None:
        """Called after a purchase was recorded and before it is finished."""
        ...


def accept_all_transactions(transaction: Transaction) -> bool:
    """Default validation hook: trust every transaction."""
    return True


def log_error_reporter(message: str) -> None:
    """Default error reporter: log the platform message."""
    logger.error("transaction_error_reported", message=message)


class TransactionCoordinator:
    """
    Owns the purchase lifecycle.

    Usage:
        coordinator = TransactionCoordinator(queue, ledger)
        coordinator.set_unlock_hook(grant_entitlement)
        coordinator.buy_product("pro_upgrade")
        # the queue later calls coordinator.on_transactions_updated([...])
    """

    def __init__(
        self,
        queue: PaymentQueue,
        ledger: ReceiptLedger,
        validation_hook: TransactionHook | None = accept_all_transactions,
        unlock_hook: TransactionHook | None = None,
        error_reporter: ErrorReporter = log_error_reporter,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize coordinator.

        Args:
            queue: Platform payment queue
            ledger: Ledger that records completed purchases
            validation_hook: Decides whether a transaction is legitimate
            unlock_hook: Grants the entitlement; purchases stay pending until set
            error_reporter: Receives messages of failed transactions
            clock: Monotonic clock used for the payment capability re-check
        """
        self.queue = queue
        self.ledger = ledger
        self.error_reporter = error_reporter
        self.user_cancelled_error_code = settings.user_cancelled_error_code
        self.payments_recheck_seconds = settings.payments_recheck_seconds

        self._validation_hook = validation_hook
        self._unlock_hook = unlock_hook
        self._clock = clock
        self._observers: ObserverRegistry[PurchaseObserver] = ObserverRegistry("coordinator")
        self._lock = threading.RLock()

        # Parked purchased/restored transactions, keyed by transaction identifier.
        # Finished identifiers are kept for the life of the coordinator so a
        # re-delivered settled transaction is never finished twice.
        self._pending: dict[str, Transaction] = {}
        self._finished: set[str] = set()

        self._can_make_payments: bool | None = None
        self._payments_checked_at: float = 0.0

        self._restore_in_flight = False
        self._restore_completion: RestoreCompletion | None = None

    # ========================================================================
    # Configuration
    # ========================================================================

    @property
    def validation_hook(self) -> TransactionHook | None:
        return self._validation_hook

    @property
    def unlock_hook(self) -> TransactionHook | None:
        return self._unlock_hook

    def set_validation_hook(self, hook: TransactionHook | None) -> None:
        """Install (or remove) the validation hook and retry parked transactions."""
        with self._lock:
            self._validation_hook = hook
            logger.info("validation_hook_configured", configured=hook is not None)
            if hook is not None:
                self.retry_pending()

    def set_unlock_hook(self, hook: TransactionHook | None) -> None:
        """Install (or remove) the unlock hook and retry parked transactions."""
        with self._lock:
            self._unlock_hook = hook
            logger.info("unlock_hook_configured", configured=hook is not None)
            if hook is not None:
                self.retry_pending()

    def add_observer(self, observer: PurchaseObserver) -> Subscription:
        """Register an observer of completed purchases (held weakly)."""
        return self._observers.add_observer(observer)

    # ========================================================================
    # Application-facing operations
    # ========================================================================

    def buy_product(self, product: CatalogEntry | ProductIdentifier) -> None:
        """Submit a payment for a product to the queue."""
        product_id = product.product_id if isinstance(product, CatalogEntry) else product
        logger.info("buying_product", product_id=product_id)
        self.queue.submit(product_id)

    def can_make_payments(self) -> bool:
        """
        Check if payments are allowed on this device.

        The answer is cached. With ``payments_recheck_seconds`` unset it is
        cached for the lifetime of the process.
        """
        with self._lock:
            now = self._clock()
            if self._can_make_payments is not None and (
                self.payments_recheck_seconds is None
                or now - self._payments_checked_at < self.payments_recheck_seconds
            ):
                return self._can_make_payments

            self._can_make_payments = self.queue.can_submit_payments()
            self._payments_checked_at = now
            logger.info("payment_capability_checked", can_make_payments=self._can_make_payments)
            return self._can_make_payments

    def restore_purchases(self, completion: RestoreCompletion | None = None) -> None:
        """
        Ask the queue to restore previously completed transactions.

        ``completion`` is called once the queue signals the restore finished.

        Raises:
            RestoreInProgressError: If a restore is already in flight
        """
        with self._lock:
            if self._restore_in_flight:
                logger.warning("restore_rejected_in_progress")
                raise RestoreInProgressError()
            self._restore_in_flight = True
            self._restore_completion = completion

        logger.info("restoring_purchases")
        try:
            self.queue.restore_completed_transactions()
        except Exception:
            with self._lock:
                self._restore_in_flight = False
                self._restore_completion = None
            raise

    def pending_transactions(self) -> list[Transaction]:
        """Transactions parked until a hook passes or the queue re-delivers them."""
        with self._lock:
            return list(self._pending.values())

    def retry_pending(self) -> None:
        """Re-evaluate every parked transaction."""
        with self._lock:
            pending = list(self._pending.values())
            if not pending:
                return
            logger.info("retrying_pending_transactions", count=len(pending))
            for transaction in pending:
                self._process(transaction)
            metrics.set_pending(len(self._pending))

    # ========================================================================
    # Queue-facing callbacks
    # ========================================================================

    def on_transactions_updated(self, transactions: Sequence[Transaction]) -> None:
        """Process a batch delivered by the queue, in order."""
        with self._lock:
            logger.info("transactions_updated", count=len(transactions))
            for transaction in transactions:
                metrics.record_transaction(transaction.state.value)
                self._process(transaction)
            metrics.set_pending(len(self._pending))

    def on_restore_completed(self, error: TransactionError | None = None) -> None:
        """Called by the queue when the restore batch has been delivered."""
        with self._lock:
            completion = self._restore_completion
            in_flight = self._restore_in_flight
            self._restore_completion = None
            self._restore_in_flight = False

        if not in_flight:
            logger.warning("restore_completed_without_request")
            return

        if error is None:
            logger.info("restore_completed")
        else:
            logger.warning("restore_failed", code=error.code, error=error.message)

        if completion is not None:
            completion(error)

    # ========================================================================
    # Processing
    # ========================================================================

    def _process(self, transaction: Transaction) -> None:
        with log_context(
            transaction_identifier=transaction.transaction_identifier,
            product_id=transaction.product_id,
            state=transaction.state.value,
        ):
            if (
                transaction.is_settled
                and transaction.transaction_identifier in self._finished
            ):
                logger.info("transaction_already_finished")
                return

            try:
                if transaction.state == TransactionState.PURCHASED:
                    self._complete(transaction)
                elif transaction.state == TransactionState.RESTORED:
                    self._restore(transaction)
                elif transaction.state == TransactionState.FAILED:
                    self._fail(transaction)
                elif transaction.state == TransactionState.DEFERRED:
                    # Waiting on external approval such as a parent's consent
                    logger.info("transaction_deferred")
                else:
                    logger.debug("transaction_purchasing")
            except TransactionContractError as exc:
                # Left unfinished; the rest of the batch still runs
                metrics.record_error(
                    ErrorKind.TRANSACTION_CONTRACT_VIOLATION.value, transaction.state.value
                )
                logger.error(
                    "transaction_contract_violated",
                    error_kind=ErrorKind.TRANSACTION_CONTRACT_VIOLATION.value,
                    error=exc.message,
                )

    def _complete(self, transaction: Transaction) -> None:
        transaction_identifier = transaction.transaction_identifier
        if transaction_identifier is None:
            raise TransactionContractError(
                f"purchased transaction for {transaction.product_id} has no identifier"
            )

        if not self._passes_hooks(transaction):
            return

        self.ledger.record_purchase(transaction.product_id)
        self._observers.notify(
            lambda observer: observer.finished_purchase(
                transaction_identifier, transaction.product_id
            )
        )
        self._finish(transaction)

    def _restore(self, transaction: Transaction) -> None:
        restored_product_id = transaction.restored_product_id
        if restored_product_id is None:
            metrics.record_error(ErrorKind.UNPROCESSABLE_RESTORE.value, "restore")
            logger.warning(
                "restore_unprocessable",
                error_kind=ErrorKind.UNPROCESSABLE_RESTORE.value,
            )
            return

        if not self._passes_hooks(transaction):
            return

        logger.info("restoring_transaction", restored_product_id=restored_product_id)
        self.ledger.record_purchase(transaction.product_id)

        transaction_identifier = transaction.transaction_identifier
        if transaction_identifier is not None:
            self._observers.notify(
                lambda observer: observer.finished_purchase(
                    transaction_identifier, transaction.product_id
                )
            )
        self._finish(transaction)

    def _fail(self, transaction: Transaction) -> None:
        error = transaction.error
        if error is None:
            logger.warning("transaction_failed_without_error")
        elif error.code == self.user_cancelled_error_code:
            logger.info(
                "transaction_cancelled_by_user",
                error_kind=ErrorKind.TRANSACTION_FAILED_CANCELLED.value,
            )
        else:
            metrics.record_error(ErrorKind.TRANSACTION_FAILED_OTHER.value, "purchase")
            logger.warning(
                "transaction_failed",
                error_kind=ErrorKind.TRANSACTION_FAILED_OTHER.value,
                code=error.code,
                error=error.message,
            )
            try:
                self.error_reporter(error.message)
            except Exception:
                logger.exception("error_reporter_failed")

        self._finish(transaction)

    def _passes_hooks(self, transaction: Transaction) -> bool:
        validation_hook = self._validation_hook
        unlock_hook = self._unlock_hook

        if validation_hook is None or unlock_hook is None:
            self._park(
                transaction,
                ErrorKind.HOOK_UNAVAILABLE.value,
                validation_hook=validation_hook is not None,
                unlock_hook=unlock_hook is not None,
            )
            return False

        try:
            if not validation_hook(transaction):
                self._park(transaction, "validation_rejected")
                return False
            if not unlock_hook(transaction):
                self._park(transaction, "unlock_declined")
                return False
        except Exception:
            logger.exception("transaction_hook_failed")
            self._park(transaction, "hook_error")
            return False

        return True

    def _park(self, transaction: Transaction, reason: str, **context: object) -> None:
        transaction_identifier = transaction.transaction_identifier
        if transaction_identifier is None:
            # Only re-delivery can retry it
            logger.info("transaction_awaiting_redelivery", reason=reason, **context)
            return

        self._pending[transaction_identifier] = transaction
        metrics.record_parked(reason, len(self._pending))
        logger.info("transaction_parked", reason=reason, pending=len(self._pending), **context)

    def _finish(self, transaction: Transaction) -> None:
        self.queue.finish(transaction)

        if transaction.transaction_identifier is not None:
            self._pending.pop(transaction.transaction_identifier, None)
            self._finished.add(transaction.transaction_identifier)

        metrics.record_finished(transaction.state.value)
        logger.info("transaction_finished")
