# cyber_hub/kv_store.py

import threading
from typing import Dict, Optional, Protocol

from sqlalchemy.orm import Session, sessionmaker

from cyber_hub.entities import Base, StorageRecord


class KeyValueStore(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class SqlKeyValueStore:
    """
    Key/value records in the `hub_storage` table.

    Each call opens and closes its own session, so a write is either committed
    in full or not at all.
    """

    def __init__(self, engine):
        self.engine = engine
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)

    def get_item(self, key: str) -> Optional[str]:
        session: Session = self.Session()
        try:
            record = session.get(StorageRecord, str(key))
            if record is None:
                return None
            return record.value
        finally:
            session.close()

    def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise ValueError("set_item value must be a string")

        session: Session = self.Session()
        try:
            record = session.get(StorageRecord, str(key))
            if record is None:
                session.add(StorageRecord(key=str(key), value=value))
            else:
                record.value = value
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def remove_item(self, key: str) -> None:
        session: Session = self.Session()
        try:
            record = session.get(StorageRecord, str(key))
            if record is not None:
                session.delete(record)
                session.commit()
        finally:
            session.close()


class InMemoryKeyValueStore:
    """
    Process-local store; nothing survives a restart.
    """

    def __init__(self, initial: Dict[str, str] | None = None) -> None:
        self._lock = threading.Lock()
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(str(key))

    def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise ValueError("set_item value must be a string")
        with self._lock:
            self._items[str(key)] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(str(key), None)
