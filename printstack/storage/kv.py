"""String key-value stores.

The persistence adapter only needs four operations from its host store, so
any object providing ``get_item``, ``set_item``, ``remove_item`` and ``keys``
can back it.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Union

from printstack.utils import get_logger

logger = get_logger("storage.kv")


class KeyValueStore(Protocol):
    """Minimal string store interface."""

    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...

    def keys(self) -> List[str]:
        ...


class MemoryStore:
    """In-memory store used for tests and as the fallback store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove_item(self, key: str) -> None:
        self.data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self.data.keys())

    def clear(self) -> None:
        self.data.clear()


class JsonFileStore:
    """
    Store persisted as a single JSON object on disk.

    A file that cannot be parsed is left untouched and every write is
    refused, so the adapter runs on its in-memory store instead.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._data: Dict[str, str] = {}
        self.load_error: Optional[str] = None
        self._load()

    def _load(self) -> None:
        """Load store contents from disk."""
        if not self.path.exists():
            return
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("not a JSON object")
        except (OSError, ValueError) as e:
            self.load_error = f"{self.path} is unreadable: {e}"
            logger.error(f"{self.load_error}; leaving it untouched")
            return
        self._data = {str(k): str(v) for k, v in data.items()}
        logger.debug(f"Loaded {len(self._data)} keys from {self.path}")

    def _flush(self) -> None:
        """Write store contents to disk through a temporary file."""
        if self.load_error is not None:
            raise OSError(self.load_error)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2)
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value
        self._flush()

    def remove_item(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._flush()

    def keys(self) -> List[str]:
        return list(self._data.keys())
