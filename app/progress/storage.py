"""
Key/value stores for watch progress.

The progress bridge only needs string get/set, like browser localStorage.
`InMemoryKeyValueStore` backs tests; `SQLAlchemyKeyValueStore` persists to
a database (SQLite by default), namespaced per viewer.
"""
import logging
import threading
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

logger = logging.getLogger("progress.storage")

Base = declarative_base()


class KeyValueItem(Base):
    """
    One stored JSON document.
    Unique per (namespace, key).
    """
    __tablename__ = "kv_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    namespace = Column(String, nullable=False, index=True)
    key = Column(String, nullable=False)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("namespace", "key", name="uq_kv_namespace_key"),
    )

    def __repr__(self):
        return f"<KeyValueItem(namespace='{self.namespace}', key='{self.key}')>"


class KeyValueStore:
    """Interface: string keys to string values."""

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError

    def for_namespace(self, namespace: str) -> "KeyValueStore":
        """Sibling store isolated under another namespace (viewer)."""
        raise NotImplementedError


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._namespaces: Dict[str, "InMemoryKeyValueStore"] = {}
        self._lock = threading.Lock()

    def for_namespace(self, namespace: str) -> "InMemoryKeyValueStore":
        with self._lock:
            if namespace not in self._namespaces:
                self._namespaces[namespace] = InMemoryKeyValueStore()
            return self._namespaces[namespace]

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class SQLAlchemyKeyValueStore(KeyValueStore):
    """
    Database-backed store scoped to one namespace (viewer).

    Several stores may share one session factory; use `for_namespace` to get
    a sibling store for another viewer.
    """

    def __init__(self, session_factory: sessionmaker, namespace: str = "default"):
        self._session_factory = session_factory
        self.namespace = namespace

    def for_namespace(self, namespace: str) -> "SQLAlchemyKeyValueStore":
        return SQLAlchemyKeyValueStore(self._session_factory, namespace)

    def get_item(self, key: str) -> Optional[str]:
        db = self._session_factory()
        try:
            item = (
                db.query(KeyValueItem)
                .filter(KeyValueItem.namespace == self.namespace, KeyValueItem.key == key)
                .first()
            )
            return item.value if item else None
        finally:
            db.close()

    def set_item(self, key: str, value: str) -> None:
        db = self._session_factory()
        try:
            item = (
                db.query(KeyValueItem)
                .filter(KeyValueItem.namespace == self.namespace, KeyValueItem.key == key)
                .first()
            )
            if item is None:
                db.add(KeyValueItem(namespace=self.namespace, key=key, value=value))
            else:
                item.value = value
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def remove_item(self, key: str) -> None:
        db = self._session_factory()
        try:
            (
                db.query(KeyValueItem)
                .filter(KeyValueItem.namespace == self.namespace, KeyValueItem.key == key)
                .delete()
            )
            db.commit()
        finally:
            db.close()


def create_session_factory(database_url: str) -> sessionmaker:
    """
    Create engine + session factory and make sure tables exist.
    Safe to call multiple times (won't recreate existing tables).
    """
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    engine = create_engine(database_url, connect_args=connect_args, echo=False)
    Base.metadata.create_all(bind=engine)
    logger.info(f"Progress storage initialized at: {database_url}")
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
