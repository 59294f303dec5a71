"""
Persistent key/value storage backed by the embedded database.

Holds the API key, the item type cache, and the latest aggregated result.
"""

import json
import time
from typing import Dict, Any, Iterable

from tornstock.database import Database
from tornstock.db_models import LocalStorageEntry


class LocalStorage:
    """
    JSON key/value store.

    Mirrors a browser extension's local storage area: values are read and
    written by key and each write replaces the previous value.
    """

    def __init__(self, db: Database):
        """
        Initialize storage.

        Args:
            db: Database holding the `local_storage` table
        """
        self.db = db

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a stored value.

        Args:
            key: Storage key
            default: Returned when the key is absent

        Returns:
            Decoded value or `default`
        """
        with self.db.session() as session:
            entry = session.get(LocalStorageEntry, key)
            if entry is None:
                return default
            return json.loads(entry.value)

    def get_many(self, keys: Iterable[str]) -> Dict[str, Any]:
        """Get several keys at once; absent keys are omitted."""
        keys = list(keys)
        with self.db.session() as session:
            entries = session.query(LocalStorageEntry).filter(LocalStorageEntry.key.in_(keys)).all()
            return {entry.key: json.loads(entry.value) for entry in entries}

    def set(self, key: str, value: Any):
        """
        Set a value.

        Args:
            key: Storage key
            value: Value to store (will be JSON serialized)
        """
        self.set_many({key: value})

    def set_many(self, values: Dict[str, Any]):
        """Write several keys in a single transaction."""
        timestamp = int(time.time() * 1000)
        with self.db.session() as session:
            for key, value in values.items():
                value_json = json.dumps(value)

                # Check if entry exists
                entry = session.get(LocalStorageEntry, key)

                if entry:
                    # Update existing entry
                    entry.value = value_json
                    entry.updated_at = timestamp
                else:
                    # Create new entry
                    session.add(LocalStorageEntry(key=key, value=value_json, updated_at=timestamp))
