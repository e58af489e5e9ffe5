"""
Durable key-value storage for cache snapshots.

Storage is best effort: every operation reports failure through a
StorageResult instead of raising, and cache code decides what to do with
a failed result (always: treat it as a miss and carry on).
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from grimoire.models import StorageRecord

logger = logging.getLogger("cache.storage")


@dataclass(frozen=True)
class StorageResult:
    """Outcome of a storage operation."""
    ok: bool
    value: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: Optional[str] = None) -> "StorageResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "StorageResult":
        return cls(ok=False, error=error)


class KeyValueStorage(Protocol):
    """Capability interface for persisted cache snapshots."""

    def read(self, key: str) -> StorageResult:
        """Read the value under key. A missing key is ok with value None."""
        ...

    def write(self, key: str, value: str) -> StorageResult:
        ...

    def remove(self, key: str) -> StorageResult:
        ...


def discard_storage_failure(result: StorageResult, operation: str, key: str) -> None:
    """
    Boundary handler for failed storage operations.

    Failures never reach cache consumers; the cache degrades to a miss.
    """
    if not result.ok:
        logger.warning(f"Storage {operation} failed for '{key}' (ignored): {result.error}")


class MemoryStorage:
    """Dict-backed storage. Lives as long as the instance does."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def read(self, key: str) -> StorageResult:
        return StorageResult.success(self._data.get(key))

    def write(self, key: str, value: str) -> StorageResult:
        self._data[key] = value
        return StorageResult.success()

    def remove(self, key: str) -> StorageResult:
        self._data.pop(key, None)
        return StorageResult.success()

    def __contains__(self, key: str) -> bool:
        return key in self._data


class SqlStorage:
    """
    Storage backed by the cache_storage table.

    Each operation opens and closes its own session so that a failed
    write cannot poison a session shared with request handlers.

    Operations are synchronous and run on the caller's thread, including
    from the caches' async paths, so every snapshot read or write blocks
    the event loop for one small keyed statement. That is fine for the
    local SQLite default; a remote database should use "memory" storage
    or move snapshot writes off the loop.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def read(self, key: str) -> StorageResult:
        db = self._session_factory()
        try:
            record = db.get(StorageRecord, key)
            return StorageResult.success(record.value if record else None)
        except SQLAlchemyError as e:
            return StorageResult.failure(str(e))
        finally:
            db.close()

    def write(self, key: str, value: str) -> StorageResult:
        db = self._session_factory()
        try:
            record = db.get(StorageRecord, key)
            if record is None:
                db.add(StorageRecord(key=key, value=value))
            else:
                record.value = value
                record.updated_at = datetime.utcnow()
            db.commit()
            return StorageResult.success()
        except SQLAlchemyError as e:
            db.rollback()
            return StorageResult.failure(str(e))
        finally:
            db.close()

    def remove(self, key: str) -> StorageResult:
        db = self._session_factory()
        try:
            record = db.get(StorageRecord, key)
            if record is not None:
                db.delete(record)
                db.commit()
            return StorageResult.success()
        except SQLAlchemyError as e:
            db.rollback()
            return StorageResult.failure(str(e))
        finally:
            db.close()
