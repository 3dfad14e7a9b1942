import json
import logging
import os
import re
import tempfile
import uuid
from typing import Dict, Iterable, Optional

from errors import StoreError

logger = logging.getLogger(__name__)

# Well-known keys
IDENTITY_KEY = "user"
WELCOMED_KEY = "welcomed"

_CLIENT_ID_RE = re.compile(r"[0-9a-f]{32}")


def ensure_base_dir(base_dir: str) -> None:
    """Ensure that the base data directory exists."""
    os.makedirs(base_dir, exist_ok=True)


def new_client_id() -> str:
    return uuid.uuid4().hex


def is_client_id(value) -> bool:
    """True only for ids shaped like new_client_id() output."""
    return isinstance(value, str) and _CLIENT_ID_RE.fullmatch(value) is not None


def get_client_dir(base_dir: str, client_id: str) -> str:
    """Return the directory holding one browser's store, creating it if necessary."""
    if not is_client_id(client_id):
        raise ValueError(f"invalid client id: {client_id!r}")
    directory = os.path.join(base_dir, client_id)
    os.makedirs(directory, exist_ok=True)
    return directory


def load_json(path: str, default):
    """Load JSON from a file, returning default on error or if the file does not exist."""
    if not os.path.exists(path):
        return default
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Could not read %s, treating it as empty: %s", path, e)
        return default


def atomic_write_json(path: str, obj) -> None:
    """Write JSON to a temp file next to `path`, then move it into place."""
    parent = os.path.dirname(path) or "."
    os.makedirs(parent, exist_ok=True)

    fd, tmp = tempfile.mkstemp(prefix=".tmp_store_", dir=parent, text=True)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(obj, f, ensure_ascii=False, indent=2)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.remove(tmp)
        raise


class MemoryStore:
    """Key-value store kept in process memory. Same contract as JsonFileStore."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def remove_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)


class JsonFileStore:
    """
    Persistent, synchronous, string-keyed store.

    All keys live in a single JSON object on disk. A missing or unreadable
    file reads as an empty store; every write replaces the file atomically.
    """

    def __init__(self, path: str):
        self.path = path

    def _load(self) -> Dict[str, str]:
        data = load_json(self.path, {})
        if not isinstance(data, dict):
            logger.warning("Store file %s does not hold an object, ignoring it", self.path)
            return {}
        return data

    def _save(self, data: Dict[str, str]) -> None:
        try:
            atomic_write_json(self.path, data)
        except OSError as e:
            raise StoreError(f"Could not save local data: {e}") from e

    def get(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        self.remove_many([key])

    def remove_many(self, keys: Iterable[str]) -> None:
        """Drop several keys with a single write: either all of them go or none do."""
        data = self._load()
        present = [key for key in keys if key in data]
        if not present:
            return
        for key in present:
            del data[key]
        self._save(data)
