"""
Persistent key-value store for state that must survive the redirect round-trip
(return location, pending authorization flows).
SqlKeyValueStore keeps entries in SQLite via SQLAlchemy; MemoryKeyValueStore is for tests and scripts.
"""
import logging
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import DateTime, String, Text, create_engine, select
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class KeyValueStore(Protocol):
    def set(self, key: str, value: str) -> None: ...

    def get(self, key: str) -> str | None: ...

    def remove(self, key: str) -> None: ...

    def keys(self, prefix: str = "") -> list[str]: ...


class MemoryKeyValueStore:
    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        return [k for k in self._data if k.startswith(prefix)]


class Base(DeclarativeBase):
    pass


class KeyValueEntry(Base):
    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)


def make_engine(database_url: str):
    # SQLite: in-memory needs StaticPool so all connections share the same DB (for tests)
    # File-based SQLite needs check_same_thread=False (renewal timer runs on its own thread)
    if database_url.startswith("sqlite:///:memory:"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    connect_args = {"check_same_thread": False} if "sqlite" in database_url else {}
    return create_engine(database_url, connect_args=connect_args)


class SqlKeyValueStore:
    """Key-value entries in a single table; set() overwrites any prior value."""

    def __init__(self, database_url: str):
        self.engine = make_engine(database_url)
        Base.metadata.create_all(bind=self.engine)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def set(self, key: str, value: str) -> None:
        db = self._session_factory()
        try:
            entry = db.get(KeyValueEntry, key)
            if entry is None:
                db.add(KeyValueEntry(key=key, value=value))
            else:
                entry.value = value
            db.commit()
        finally:
            db.close()

    def get(self, key: str) -> str | None:
        db = self._session_factory()
        try:
            return db.execute(select(KeyValueEntry.value).where(KeyValueEntry.key == key)).scalar_one_or_none()
        finally:
            db.close()

    def remove(self, key: str) -> None:
        db = self._session_factory()
        try:
            entry = db.get(KeyValueEntry, key)
            if entry is not None:
                db.delete(entry)
                db.commit()
                logger.debug("Removed store entry %s", key)
        finally:
            db.close()

    def keys(self, prefix: str = "") -> list[str]:
        db = self._session_factory()
        try:
            stmt = select(KeyValueEntry.key)
            if prefix:
                stmt = stmt.where(KeyValueEntry.key.startswith(prefix, autoescape=True))
            return list(db.execute(stmt).scalars())
        finally:
            db.close()
