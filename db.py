from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import json
import os

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine, select

from exceptions import StorageError
from logger import get_logger
from models import StorageEntry

logger = get_logger()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///donations.db")
SQL_ECHO = os.getenv("SQL_ECHO", "").strip().lower() in ("1", "true", "yes")

# Table keys in the key-value substrate
RECORDS_TABLE = "dms_donation_records"
FOOD_TABLE = "dms_food_donations"
CLOTHES_TABLE = "dms_clothes_donations"
MONEY_TABLE = "dms_money_donations"
NOTIFICATIONS_TABLE = "dms_notifications"
USERS_TABLE = "dms_users"


def make_engine(url: str = DATABASE_URL, echo: bool = SQL_ECHO):
    """Create an engine; in-memory SQLite shares one connection across sessions."""
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, echo=echo)


engine = make_engine()


def create_db_and_tables(bind=None) -> None:
    """Create all tables in the database if they don't exist."""
    SQLModel.metadata.create_all(bind or engine)


class StorageBackend(ABC):
    """Textual key-value substrate: every value is a string."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove_item(self, key: str) -> None:
        ...

    @abstractmethod
    def keys(self) -> List[str]:
        ...


class MemoryStorage(StorageBackend):
    """
    Process-local storage. With quota_bytes set, a write that would push the
    total size over the quota raises StorageError and keeps the old value.
    """

    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        self._items: Dict[str, str] = {}
        self.quota_bytes = quota_bytes

    def _size_with(self, key: str, value: str) -> int:
        total = len(key) + len(value)
        for k, v in self._items.items():
            if k != key:
                total += len(k) + len(v)
        return total

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.quota_bytes is not None and self._size_with(key, value) > self.quota_bytes:
            raise StorageError(f"Storage quota exceeded writing {key!r}")
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items)


class SQLStorage(StorageBackend):
    """Storage kept in the storageentry table, one row per key."""

    def __init__(self, bind=None) -> None:
        self._engine = bind or engine

    def get_item(self, key: str) -> Optional[str]:
        try:
            with Session(self._engine) as session:
                entry = session.get(StorageEntry, key)
                return entry.value if entry is not None else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read {key!r}: {e}") from e

    def set_item(self, key: str, value: str) -> None:
        try:
            with Session(self._engine) as session:
                entry = session.get(StorageEntry, key)
                if entry is None:
                    entry = StorageEntry(key=key, value=value)
                else:
                    entry.value = value
                session.add(entry)
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write {key!r}: {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            with Session(self._engine) as session:
                entry = session.get(StorageEntry, key)
                if entry is not None:
                    session.delete(entry)
                    session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to remove {key!r}: {e}") from e

    def keys(self) -> List[str]:
        try:
            with Session(self._engine) as session:
                return list(session.exec(select(StorageEntry.key)).all())
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list keys: {e}") from e


class TableRepository:
    """
    Whole-table access over a StorageBackend.

    Each table is a JSON array of flat objects. Every write replaces the
    entire table, so callers load, mutate a copy and write the result back.
    """

    def __init__(self, storage: StorageBackend) -> None:
        self.storage = storage

    def load(self, table: str) -> List[Dict[str, Any]]:
        raw = self.storage.get_item(table)
        if raw is None:
            return []
        try:
            rows = json.loads(raw)
        except ValueError:
            logger.warning("Table %s holds unreadable JSON; treating as empty", table)
            return []
        if not isinstance(rows, list):
            logger.warning("Table %s is not a list; treating as empty", table)
            return []
        return [r for r in rows if isinstance(r, dict)]

    def replace(self, table: str, rows: List[Dict[str, Any]]) -> None:
        self.storage.set_item(table, json.dumps(rows))
