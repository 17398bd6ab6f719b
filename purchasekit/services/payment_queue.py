"""
Payment Queue Protocol - Platform-agnostic interface to the purchase queue.

The platform queue is the source of truth for in-flight transactions. It
delivers batches of transaction updates back to the coordinator
(``TransactionCoordinator.on_transactions_updated``) and keeps re-delivering
a transaction until it has been finished.
"""

from typing import Protocol

from purchasekit.models.domain import ProductIdentifier, Transaction


class PaymentQueue(Protocol):
    """
    Payment queue protocol.

    Any platform purchase queue (StoreKit, Play Billing, a local emulator)
    must implement this interface.
    """

    def submit(self, product_id: ProductIdentifier) -> None:
        """
        Submit a payment for a product.

        The outcome is delivered later as transaction updates.
        """
        ...

    def finish(self, transaction: Transaction) -> None:
        """
        Acknowledge a transaction, removing it from the queue permanently.
        """
        ...

    def can_submit_payments(self) -> bool:
        """
        Check if this device is allowed to make payments.

        Returns:
            False when payments are restricted (e.g. parental controls)
        """
        ...

    def restore_completed_transactions(self) -> None:
        """
        Ask the platform to re-deliver previously completed transactions.

        Restored transactions arrive as updates in the ``restored`` state,
        followed by a restore-completed signal.
        """
        ...
