"""
Observer Registry - Weakly held subscriber lists.

Ledger, catalog cache and coordinator all fan notifications out through an
``ObserverRegistry``. Observers are held by weak reference so that
registering never keeps a subscriber alive; once its owner releases it, the
registry silently drops it on the next notification. ``add_observer``
also returns a ``Subscription`` for explicit unregistration.
"""

import itertools
import threading
import weakref
from collections.abc import Callable
from typing import Generic, TypeVar

from structlog import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class Subscription:
    """Handle returned by ``ObserverRegistry.add_observer``."""

    def __init__(self, registry: "ObserverRegistry", token: int) -> None:
        self._registry = registry
        self._token = token

    @property
    def active(self) -> bool:
        """Check if the observer is still registered and alive."""
        return self._registry._is_live(self._token)

    def cancel(self) -> None:
        """Unregister the observer. Calling more than once is a no-op."""
        self._registry._remove(self._token)


class ObserverRegistry(Generic[T]):
    """
    Ordered list of weakly referenced observers.

    Usage:
        registry: ObserverRegistry[LedgerObserver] = ObserverRegistry("ledger")
        subscription = registry.add_observer(screen)
        registry.notify(lambda observer: observer.purchase_recorded("pro_upgrade"))
        subscription.cancel()
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._refs: dict[int, Callable[[], T | None]] = {}
        self._tokens = itertools.count(1)
        self._lock = threading.Lock()

    def add_observer(self, observer: T) -> Subscription:
        """Register ``observer`` without taking ownership of it."""
        ref: Callable[[], T | None]
        if hasattr(observer, "__self__") and hasattr(observer, "__func__"):
            ref = weakref.WeakMethod(observer)  # type: ignore[arg-type]
        else:
            ref = weakref.ref(observer)

        with self._lock:
            token = next(self._tokens)
            self._refs[token] = ref

        logger.debug("observer_added", registry=self.name, token=token)
        return Subscription(self, token)

    def notify(self, callback: Callable[[T], None]) -> None:
        """
        Call ``callback`` with every live observer, in registration order.

        A failing observer is logged and skipped; the remaining observers
        still receive the notification.
        """
        for token, observer in self._live_observers():
            try:
                callback(observer)
            except Exception:
                logger.exception(
                    "observer_notification_failed",
                    registry=self.name,
                    token=token,
                )

    def __len__(self) -> int:
        return len(self._live_observers())

    def _live_observers(self) -> list[tuple[int, T]]:
        live: list[tuple[int, T]] = []
        with self._lock:
            for token, ref in list(self._refs.items()):
                observer = ref()
                if observer is None:
                    del self._refs[token]
                    continue
                live.append((token, observer))
        return live

    def _is_live(self, token: int) -> bool:
        with self._lock:
            ref = self._refs.get(token)
            return ref is not None and ref() is not None

    def _remove(self, token: int) -> None:
        with self._lock:
            removed = self._refs.pop(token, None)
        if removed is not None:
            logger.debug("observer_removed", registry=self.name, token=token)
