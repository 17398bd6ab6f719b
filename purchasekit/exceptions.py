"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""

from collections.abc import Iterable


class PurchaseKitError(Exception):
    """Base exception for all purchase tracking errors."""

    pass


class PersistenceError(PurchaseKitError):
    """Raised when the key-value store cannot be read or written."""

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        self.message = message
        super().__init__(f"Persistence unavailable for {key}: {message}")


class CatalogLookupError(PurchaseKitError):
    """Raised when the platform catalog lookup fails."""

    def __init__(self, product_ids: Iterable[str], message: str) -> None:
        self.product_ids = frozenset(product_ids)
        self.message = message
        super().__init__(f"Catalog lookup failed: {message}")


class TransactionContractError(PurchaseKitError):
    """Raised when the payment queue delivers a transaction it should never deliver."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Transaction contract violated: {message}")


class RestoreInProgressError(PurchaseKitError):
    """Raised when a restore is requested while another one is still running."""

    def __init__(self) -> None:
        super().__init__("A restore of completed transactions is already in progress")
