"""
Key-Value Store - Local persistence for string lists.

The ledger only needs "get a string list" and "set a string list" for a
single key, so any backend implementing ``KeyValueStore`` can hold it.
"""

from collections.abc import Sequence
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from structlog import get_logger

from purchasekit.db.models import StoredValue
from purchasekit.exceptions import PersistenceError

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    """
    Key-value store protocol.

    A missing key is reported as ``None``, which is distinct from an empty list.
    Implementations raise ``PersistenceError`` when the backend is unavailable.
    """

    def get_string_list(self, key: str) -> list[str] | None:
        """Read the list stored under ``key`` (None if the key is absent)."""
        ...

    def set_string_list(self, key: str, values: Sequence[str]) -> None:
        """Replace the list stored under ``key``."""
        ...


class InMemoryKeyValueStore:
    """Process-local store, used in tests and as a throwaway backend."""

    def __init__(self, initial: dict[str, list[str]] | None = None) -> None:
        self._values: dict[str, list[str]] = {
            key: list(values) for key, values in (initial or {}).items()
        }

    def get_string_list(self, key: str) -> list[str] | None:
        values = self._values.get(key)
        return None if values is None else list(values)

    def set_string_list(self, key: str, values: Sequence[str]) -> None:
        self._values[key] = list(values)


class SqlKeyValueStore:
    """
    SQLAlchemy backed store.

    Each write is committed before returning, so callers can treat it as
    synchronous and durable.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        """Initialize store with a session factory."""
        self.session_factory = session_factory

    def get_string_list(self, key: str) -> list[str] | None:
        try:
            with self.session_factory() as session:
                row = session.execute(
                    select(StoredValue).where(StoredValue.key == key)
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("stored_value_read_failed", key=key, error=str(exc))
            raise PersistenceError(key, str(exc)) from exc

        if row is None:
            return None
        return list(row.value)

    def set_string_list(self, key: str, values: Sequence[str]) -> None:
        try:
            with self.session_factory() as session:
                row = session.get(StoredValue, key)
                if row is None:
                    session.add(StoredValue(key=key, value=list(values)))
                else:
                    row.value = list(values)
                session.commit()
        except SQLAlchemyError as exc:
            logger.error("stored_value_write_failed", key=key, error=str(exc))
            raise PersistenceError(key, str(exc)) from exc

        logger.debug("stored_value_written", key=key, count=len(values))
