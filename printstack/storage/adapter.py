"""Snapshot persistence over a string key-value store.

Provides:
- environment namespacing (``printstack_<environment>_<key>``)
- an in-memory fallback when the host store is missing or failing
- rescue of keys written by older versions of the application
- per-entity mirror keys for older readers
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from printstack.config import get_settings
from printstack.errors import PersistenceError, SchemaError
from printstack.schema.entities import Snapshot
from printstack.schema.migration import SnapshotMigrator
from printstack.storage.kv import KeyValueStore, MemoryStore
from printstack.utils import get_logger, utc_now

logger = get_logger("storage.adapter")

SNAPSHOT_KEY = "snapshot"

# Snapshot document field -> mirror key
MIRROR_KEYS = {
    "filaments": "filaments",
    "models": "models",
    "prints": "prints",
    "materialTypes": "materialTypes",
    "categories": "modelCategories",
}

# Keys written by earlier releases -> base key under the namespace
LEGACY_KEYS = {
    "printstack_filaments": "filaments",
    "printstack_models": "models",
    "printstack_prints": "prints",
    "printstack_materialTypes": "materialTypes",
    "printstack_categories": "modelCategories",
    "printstack_modelCategories": "modelCategories",
    "filaments": "filaments",
    "models": "models",
    "prints": "prints",
    "materialTypes": "materialTypes",
    "modelCategories": "modelCategories",
}

ENVIRONMENT_PREFIXES = (
    "printstack_development_",
    "printstack_production_",
    "printstack_test_",
    "printstack_dev_",
    "printstack_prod_",
)

_CHECK_KEY = "__printstack_storage_test__"


@dataclass
class StorageStats:
    """Usage of the current namespace."""

    namespace: str
    key_count: int
    total_bytes: int
    keys: List[str] = field(default_factory=list)
    using_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "namespace": self.namespace,
            "keyCount": self.key_count,
            "totalBytes": self.total_bytes,
            "keys": list(self.keys),
            "usingFallback": self.using_fallback,
        }


@dataclass
class RescueResult:
    """Outcome of adopting legacy keys."""

    migrated: List[Tuple[str, str]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class PersistenceAdapter:
    """
    Loads and saves inventory snapshots through a key-value store.

    If the given store is absent or rejects a test write, an in-memory store is
    used instead. A store that fails a save later stays the primary store:
    the snapshot is kept in the in-memory fallback, ``PersistenceError`` is
    raised, and the next save tries the primary store again.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        namespace: Optional[str] = None,
        application: Optional[str] = None,
    ):
        """
        Initialize the adapter.

        Args:
            store: Host key-value store (in-memory fallback if None)
            namespace: Key prefix (default: from settings)
            application: Application identifier written into documents
        """
        settings = get_settings()
        self.namespace = namespace or settings.namespace
        self.application = application or settings.application_name
        self.fallback = MemoryStore()
        self.primary: Optional[KeyValueStore] = None
        if store is not None and self._accepts_writes(store):
            self.primary = store
        elif store is None:
            logger.warning("No key-value store provided, using in-memory storage")
        self.store = self.primary if self.primary is not None else self.fallback
        self.migration_report: List[str] = []
        self._rescued = False

    @property
    def using_fallback(self) -> bool:
        return self.store is self.fallback

    @staticmethod
    def _accepts_writes(store: KeyValueStore) -> bool:
        """Check that a store accepts writes."""
        try:
            store.set_item(_CHECK_KEY, "test")
            store.remove_item(_CHECK_KEY)
            return True
        except Exception as e:
            logger.warning(f"Key-value store not available, using in-memory storage: {e}")
            return False

    # -- keys -------------------------------------------------------------

    def namespaced_key(self, key: str) -> str:
        """Map a base key to its key under the current namespace."""
        if key.startswith(ENVIRONMENT_PREFIXES):
            return key
        if key.startswith("printstack_"):
            key = key[len("printstack_"):]
        return f"{self.namespace}{key}"

    def strip_namespace(self, key: str) -> str:
        """Remove any environment prefix from a key."""
        for prefix in ENVIRONMENT_PREFIXES:
            if key.startswith(prefix):
                return key[len(prefix):]
        return key

    # -- raw access with fallback -----------------------------------------

    def _switch_to_fallback(self, error: Exception) -> None:
        if self.using_fallback:
            raise PersistenceError(f"Fallback storage failed: {error}") from error
        logger.warning(f"Key-value store failed, using in-memory storage until the next save: {error}")
        self.store = self.fallback

    def _read(self, key: str) -> Optional[str]:
        try:
            return self.store.get_item(key)
        except Exception as e:
            self._switch_to_fallback(e)
            return self.store.get_item(key)

    def _write(self, key: str, value: str) -> None:
        try:
            self.store.set_item(key, value)
        except Exception as e:
            self._switch_to_fallback(e)
            try:
                self.store.set_item(key, value)
            except Exception as fallback_error:
                raise PersistenceError(f"Fallback storage failed: {fallback_error}") from fallback_error

    def _remove(self, key: str) -> None:
        try:
            self.store.remove_item(key)
        except Exception as e:
            self._switch_to_fallback(e)
            self.store.remove_item(key)

    def _keys(self) -> List[str]:
        try:
            return list(self.store.keys())
        except Exception as e:
            self._switch_to_fallback(e)
            return list(self.store.keys())

    # -- legacy rescue ----------------------------------------------------

    def rescue_legacy_keys(self) -> RescueResult:
        """
        Adopt values stored under legacy keys into the current namespace.

        A legacy key is moved only when the namespaced key does not exist yet;
        otherwise it is left untouched and reported as skipped.

        Returns:
            Keys moved and keys skipped
        """
        result = RescueResult()
        existing = set(self._keys())

        for legacy_key in list(existing):
            if legacy_key.startswith(ENVIRONMENT_PREFIXES) or legacy_key == _CHECK_KEY:
                continue
            if legacy_key in LEGACY_KEYS:
                base = LEGACY_KEYS[legacy_key]
            elif legacy_key.startswith("printstack_"):
                base = legacy_key[len("printstack_"):]
            else:
                continue

            target = self.namespaced_key(base)
            if target in existing:
                result.skipped.append(legacy_key)
                continue

            value = self._read(legacy_key)
            if value is None:
                continue
            self._write(target, value)
            self._remove(legacy_key)
            existing.add(target)
            result.migrated.append((legacy_key, target))

        if result.migrated:
            logger.info(f"Moved {len(result.migrated)} legacy keys into {self.namespace}")
        return result

    # -- snapshot I/O -----------------------------------------------------

    def _read_json(self, key: str) -> Any:
        raw = self._read(self.namespaced_key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring unreadable key {key}: {e}")
            return None

    def _read_mirrors(self) -> Optional[Dict[str, Any]]:
        """Rebuild a legacy flat document from per-entity keys."""
        found = {}
        for doc_key, mirror_key in MIRROR_KEYS.items():
            value = self._read_json(mirror_key)
            if isinstance(value, list):
                found[doc_key] = value
        if not found:
            return None
        blob = {"filaments": [], "models": [], "prints": []}
        blob.update(found)
        return blob

    def load(self) -> Optional[Snapshot]:
        """
        Load the stored snapshot.

        Legacy keys are rescued on the first call. When the snapshot key is
        absent, the snapshot is rebuilt from the per-entity keys.

        Returns:
            Migrated snapshot, or None when nothing is stored

        Raises:
            SchemaError: If stored data exists but cannot be recognised
        """
        if not self._rescued:
            self.rescue_legacy_keys()
            self._rescued = True

        migrator = SnapshotMigrator()
        raw = self._read(self.namespaced_key(SNAPSHOT_KEY))
        if raw is not None:
            try:
                snapshot = migrator.migrate(raw)
                self.migration_report = list(migrator.report)
                return snapshot
            except SchemaError as e:
                logger.error(f"Stored snapshot unreadable, trying per-entity keys: {e}")
                if self._read_mirrors() is None:
                    raise

        blob = self._read_mirrors()
        if blob is None:
            self.migration_report = []
            return None

        snapshot = migrator.migrate(blob)
        self.migration_report = list(migrator.report)
        logger.info("Rebuilt snapshot from per-entity keys")
        return snapshot

    def save(self, snapshot: Snapshot) -> str:
        """
        Write the snapshot and its per-entity mirrors.

        Args:
            snapshot: Snapshot to persist

        Returns:
            Save timestamp

        Raises:
            PersistenceError: If the primary store rejects the write (the
                snapshot is then held by the fallback until the next save) or
                the fallback fails too
        """
        saved_at = utc_now()
        document = snapshot.to_document(self.application, exported_at=saved_at)
        document["savedAt"] = saved_at

        entries = [(self.namespaced_key(SNAPSHOT_KEY), json.dumps(document))]
        for doc_key, mirror_key in MIRROR_KEYS.items():
            entries.append((self.namespaced_key(mirror_key), json.dumps(document["data"][doc_key])))

        if self.primary is None:
            self._write_fallback(entries)
            return saved_at

        try:
            for key, value in entries:
                self.primary.set_item(key, value)
        except Exception as e:
            logger.warning(f"Key-value store write failed, keeping changes in memory: {e}")
            self._write_fallback(entries)
            self.store = self.fallback
            raise PersistenceError(f"Key-value store write failed: {e}") from e

        if self.using_fallback:
            logger.info("Key-value store accepts writes again, leaving in-memory storage")
            self.store = self.primary
        logger.debug(f"Saved snapshot ({snapshot.counts()}) to {self.namespace}")
        return saved_at

    def _write_fallback(self, entries: List[Tuple[str, str]]) -> None:
        try:
            for key, value in entries:
                self.fallback.set_item(key, value)
        except Exception as e:
            raise PersistenceError(f"Fallback storage failed: {e}") from e

    def export(self, snapshot: Optional[Snapshot] = None) -> str:
        """
        Serialize a snapshot as an export document.

        Args:
            snapshot: Snapshot to export (default: the stored one)

        Returns:
            JSON text
        """
        if snapshot is None:
            snapshot = self.load() or Snapshot()
        document = snapshot.to_document(self.application, exported_at=utc_now())
        return json.dumps(document, indent=2)

    # -- maintenance ------------------------------------------------------

    def clear_namespace(self) -> int:
        """
        Remove every key under the current namespace.

        Returns:
            Number of keys removed
        """
        keys = [k for k in self._keys() if k.startswith(self.namespace)]
        for key in keys:
            self._remove(key)
        logger.info(f"Cleared {len(keys)} keys from {self.namespace}")
        return len(keys)

    def stats(self) -> StorageStats:
        """Get key count and size of the current namespace."""
        keys = []
        total = 0
        for key in self._keys():
            if not key.startswith(self.namespace):
                continue
            value = self._read(key) or ""
            keys.append(self.strip_namespace(key))
            total += len(key.encode("utf-8")) + len(value.encode("utf-8"))
        return StorageStats(
            namespace=self.namespace,
            key_count=len(keys),
            total_bytes=total,
            keys=keys,
            using_fallback=self.using_fallback,
        )
