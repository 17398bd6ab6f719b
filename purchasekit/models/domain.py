"""
Domain Models - Purchase queue transactions as immutable dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum

ProductIdentifier = str


class TransactionState(str, Enum):
    """States a platform transaction can be reported in."""

    PURCHASING = "purchasing"
    PURCHASED = "purchased"
    FAILED = "failed"
    RESTORED = "restored"
    DEFERRED = "deferred"


class PurchaseErrorCode(IntEnum):
    """Error codes attached to failed transactions by the platform."""

    UNKNOWN = 0
    CLIENT_INVALID = 1
    PAYMENT_CANCELLED = 2
    PAYMENT_INVALID = 3
    PAYMENT_NOT_ALLOWED = 4
    STORE_PRODUCT_NOT_AVAILABLE = 5
    CLOUD_SERVICE_PERMISSION_DENIED = 6
    CLOUD_SERVICE_NETWORK_CONNECTION_FAILED = 7
    CLOUD_SERVICE_REVOKED = 8


class ErrorKind(str, Enum):
    """Error kinds used as log fields and metric labels."""

    PERSISTENCE_UNAVAILABLE = "persistence_unavailable"
    CATALOG_LOOKUP_FAILED = "catalog_lookup_failed"
    TRANSACTION_FAILED_CANCELLED = "transaction_failed_cancelled"
    TRANSACTION_FAILED_OTHER = "transaction_failed_other"
    UNPROCESSABLE_RESTORE = "unprocessable_restore"
    HOOK_UNAVAILABLE = "hook_unavailable"
    TRANSACTION_CONTRACT_VIOLATION = "transaction_contract_violation"


@dataclass(frozen=True)
class TransactionError:
    """Error reported by the platform for a failed transaction."""

    code: int
    message: str


@dataclass(frozen=True)
class Transaction:
    """One unit of purchase activity delivered by the payment queue.

    ``original`` is only set for restored transactions and points at the
    transaction being restored. ``transaction_identifier`` is only set once
    the platform has durably recorded the transaction.
    """

    product_id: ProductIdentifier
    state: TransactionState
    transaction_identifier: str | None = None
    original: "Transaction | None" = None
    error: TransactionError | None = None

    def __post_init__(self) -> None:
        """Validate transaction fields."""
        if not self.product_id:
            raise ValueError("product_id cannot be empty")

    @property
    def is_settled(self) -> bool:
        """Check if the state is one the coordinator acts on."""
        return self.state in (
            TransactionState.PURCHASED,
            TransactionState.RESTORED,
            TransactionState.FAILED,
        )

    @property
    def restored_product_id(self) -> ProductIdentifier | None:
        """Product id of the original transaction, if this is a restore."""
        if self.original is None:
            return None
        return self.original.product_id
