# cyber_hub/hub_storage.py

import json
import logging
from typing import Optional

from pydantic import ValidationError

from cyber_hub.kv_store import KeyValueStore
from cyber_hub.models import HubSnapshot

logger = logging.getLogger("cyber_hub")


class HubStorage:
    """
    Reads and writes the whole hub snapshot as a single JSON record.

    `load` never raises: a missing record and a corrupted one both come back
    as None and the caller applies defaults.
    """

    def __init__(self, store: KeyValueStore, storage_key: str):
        if not storage_key:
            raise ValueError("HubStorage needs a non-empty storage key")
        self.store = store
        self.storage_key = storage_key

    def load(self) -> Optional[HubSnapshot]:
        try:
            saved = self.store.get_item(self.storage_key)
        except Exception as e:
            logger.error(f"Storage read failed for key '{self.storage_key}': {e}")
            return None

        if saved is None or saved == "":
            return None

        try:
            data = json.loads(saved)
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            return HubSnapshot.model_validate(data)
        except (ValueError, ValidationError) as e:
            logger.error(f"Storage corruption detected under '{self.storage_key}': {e}")
            return None

    def save(self, snapshot: HubSnapshot) -> None:
        text = snapshot.model_dump_json(exclude_none=True)
        self.store.set_item(self.storage_key, text)

    def purge(self) -> None:
        self.store.remove_item(self.storage_key)
        logger.info(f"Purged stored hub record '{self.storage_key}'")
