"""
Catalog Cache - In-memory cache of validated product descriptors.

Wraps the platform catalog lookup. Candidate product identifiers are
validated against the platform; the products it knows about are cached and
observers are told the cache was ``updated``. A failed lookup leaves the
cache untouched and observers are told the load failed.

Only the most recent ``load`` counts. Starting a new lookup cancels the
outstanding one, and every response is checked against the token of the
current request so a late answer to a superseded request is dropped.
"""

import asyncio
import itertools
from collections.abc import Iterable
from typing import Protocol

from structlog import get_logger

from purchasekit.exceptions import CatalogLookupError
from purchasekit.models.catalog import CatalogEntry
from purchasekit.models.domain import ErrorKind, ProductIdentifier
from purchasekit.observability.metrics import metrics, track_catalog_load
from purchasekit.services.observers import ObserverRegistry, Subscription

logger = get_logger(__name__)


class CatalogLookup(Protocol):
    """
    Platform catalog lookup protocol.

    Validates candidate identifiers and returns the products the platform
    knows about. Unknown identifiers are simply absent from the result.
    """

    async def request_products(
        self, product_ids: frozenset[ProductIdentifier]
    ) -> list[CatalogEntry]:
        """
        Look up products.

        Raises:
            CatalogLookupError: If the lookup fails (other exceptions are wrapped)
        """
        ...


class CatalogObserver(Protocol):
    """Observer of the catalog cache."""

    def updated(self, products: list[CatalogEntry]) -> None:
        """Called with the new product list after a successful load."""
        ...

    def load_failed(self, error: CatalogLookupError) -> None:
        """Called when the most recent load failed."""
        ...


class CatalogCache:
    """
    Cache of the products returned by the most recent successful lookup.

    Usage:
        catalog = CatalogCache(lookup)
        await catalog.load({"pro_upgrade", "remove_ads"})
        product = catalog.fetch("pro_upgrade")
    """

    def __init__(self, lookup: CatalogLookup) -> None:
        """Initialize catalog cache with a lookup collaborator."""
        self.lookup = lookup
        self._products: list[CatalogEntry] = []
        self._observers: ObserverRegistry[CatalogObserver] = ObserverRegistry("catalog")
        self._tokens = itertools.count(1)
        self._current_token: int | None = None
        self._current_task: asyncio.Task[None] | None = None

    @property
    def is_loading(self) -> bool:
        """Check if a lookup is outstanding."""
        return self._current_token is not None

    def load(self, product_ids: Iterable[ProductIdentifier]) -> asyncio.Task[None]:
        """
        Start a lookup for exactly ``product_ids``.

        Any outstanding lookup is cancelled first. Must be called from a
        running event loop; the returned task can be awaited by callers that
        want to wait for the result.
        """
        loop = asyncio.get_running_loop()
        ids = frozenset(product_ids)
        self.cancel()

        token = next(self._tokens)
        self._current_token = token
        self._current_task = loop.create_task(self._run(token, ids), name=f"catalog-lookup-{token}")

        logger.info("catalog_load_started", request=token, product_ids=sorted(ids))
        return self._current_task

    def cancel(self) -> None:
        """Cancel the outstanding lookup, if any."""
        task = self._current_task
        token = self._current_token
        self._current_task = None
        self._current_token = None

        if task is not None and not task.done():
            task.cancel()
            logger.info("catalog_load_cancelled", request=token)

    def all(self) -> list[CatalogEntry]:
        """All products from the most recent successful load."""
        return list(self._products)

    def fetch(self, product_id: ProductIdentifier) -> CatalogEntry | None:
        """Find a cached product by exact identifier (None if not cached)."""
        for product in self._products:
            if product.product_id == product_id:
                return product
        return None

    def add_observer(self, observer: CatalogObserver) -> Subscription:
        """Register an observer of the catalog cache (held weakly)."""
        return self._observers.add_observer(observer)

    async def _run(self, token: int, product_ids: frozenset[ProductIdentifier]) -> None:
        with track_catalog_load() as tracker:
            try:
                products = await self.lookup.request_products(product_ids)
            except asyncio.CancelledError:
                tracker.set_outcome("cancelled")
                raise
            except CatalogLookupError as exc:
                tracker.set_outcome(self._fail(token, exc))
                return
            except Exception as exc:
                error = CatalogLookupError(product_ids, str(exc))
                error.__cause__ = exc
                tracker.set_outcome(self._fail(token, error))
                return

            tracker.set_outcome(self._succeed(token, products))

    def _succeed(self, token: int, products: list[CatalogEntry]) -> str:
        if token != self._current_token:
            logger.info("catalog_stale_response_discarded", request=token, outcome="success")
            return "stale"

        self._products = list(products)
        self._current_token = None
        self._current_task = None

        logger.info("catalog_loaded", request=token, count=len(self._products))
        for product in self._products:
            logger.debug(
                "catalog_product_found",
                product_id=product.product_id,
                title=product.title,
                price=str(product.price),
            )

        snapshot = list(self._products)
        self._observers.notify(lambda observer: observer.updated(snapshot))
        return "success"

    def _fail(self, token: int, error: CatalogLookupError) -> str:
        if token != self._current_token:
            logger.info("catalog_stale_response_discarded", request=token, outcome="failure")
            return "stale"

        self._current_token = None
        self._current_task = None

        metrics.record_error(ErrorKind.CATALOG_LOOKUP_FAILED.value, "catalog_load")
        logger.warning(
            "catalog_load_failed",
            request=token,
            error_kind=ErrorKind.CATALOG_LOOKUP_FAILED.value,
            error=error.message,
        )
        self._observers.notify(lambda observer: observer.load_failed(error))
        return "failure"
