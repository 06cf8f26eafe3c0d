"""
Key-value persistence for the ledger and its derived caches.

Public API:
  KeyValueStore              get / set / delete contract over string blobs
  MemoryKeyValueStore        dict-backed store with an optional byte quota
  SqlKeyValueStore           SQLAlchemy-backed store (kv_store table)
  StateRepository            JSON encode/decode on top of any store

Storage keys:
  ledger            list of EventRecord dicts (the source of truth)
  bucket_stats      BucketTable
  betting_history   BettingHistory
  model_state       ModelState
  session           {"start_index": int}   offset of the current session
"""

import json
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from race_edge.exceptions import StorageCorruptionError, StorageError, StorageQuotaError
from race_edge.models import KeyValueEntry, SessionLocal

logger = logging.getLogger(__name__)


class StorageKeys(str, Enum):
    LEDGER = "ledger"
    BUCKET_STATS = "bucket_stats"
    BETTING_HISTORY = "betting_history"
    MODEL_STATE = "model_state"
    SESSION = "session"


# ---------------------------------------------------------------------------
# Store contract
# ---------------------------------------------------------------------------

class KeyValueStore(ABC):
    """Durable string blobs addressed by key.

    ``set`` must be durable when it returns: the rebuild reads the ledger
    immediately after an append.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...


class MemoryKeyValueStore(KeyValueStore):
    """In-process store.  ``quota_bytes`` caps the total size of all values."""

    def __init__(self, quota_bytes: Optional[int] = None):
        self._data: Dict[str, str] = {}
        self.quota_bytes = quota_bytes

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            used = sum(len(v.encode("utf-8")) for k, v in self._data.items() if k != key)
            if used + len(value.encode("utf-8")) > self.quota_bytes:
                raise StorageQuotaError(key)
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SqlKeyValueStore(KeyValueStore):
    """Store backed by the ``kv_store`` table.

    Every call opens its own session and commits before returning.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        db = self._session_factory()
        try:
            entry = db.get(KeyValueEntry, key)
            return entry.value if entry is not None else None
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read {key}: {exc}", key) from exc
        finally:
            db.close()

    def set(self, key: str, value: str) -> None:
        db = self._session_factory()
        try:
            entry = db.get(KeyValueEntry, key)
            if entry is None:
                db.add(KeyValueEntry(key=key, value=value))
            else:
                entry.value = value
            db.commit()
        except OperationalError as exc:
            db.rollback()
            if "full" in str(exc.orig).lower():
                raise StorageQuotaError(key) from exc
            raise StorageError(f"Failed to write {key}: {exc}", key) from exc
        except SQLAlchemyError as exc:
            db.rollback()
            raise StorageError(f"Failed to write {key}: {exc}", key) from exc
        finally:
            db.close()

    def delete(self, key: str) -> None:
        db = self._session_factory()
        try:
            db.query(KeyValueEntry).filter(KeyValueEntry.key == key).delete()
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StorageError(f"Failed to delete {key}: {exc}", key) from exc
        finally:
            db.close()


# ---------------------------------------------------------------------------
# JSON repository
# ---------------------------------------------------------------------------

class StateRepository:
    """Typed JSON read/write over a :class:`KeyValueStore`."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def read(self, key: StorageKeys, decode: Callable[[Any], Any] = lambda d: d) -> Any:
        """Return the decoded value at ``key``, or ``None`` if absent.

        Raises:
            StorageCorruptionError: The blob is not valid JSON or ``decode``
                rejected its shape.
        """
        raw = self.store.get(key.value)
        if raw is None:
            return None
        try:
            return decode(json.loads(raw))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.error("Failed to read %s from storage: %s", key.value, exc)
            raise StorageCorruptionError(key.value) from exc

    def write(self, key: StorageKeys, data: Any) -> None:
        serialized = json.dumps(data, sort_keys=True)
        self.store.set(key.value, serialized)

    def delete(self, key: StorageKeys) -> None:
        self.store.delete(key.value)
