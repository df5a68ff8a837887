"""Persisted key/value text storage for the cache entry and colour map."""

import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from service_map.core.config import get_settings

logger = logging.getLogger(__name__)

_store: Optional["KeyValueStore"] = None


class KeyValueStore:
    """One text file per key. Each write is atomic per key; there is no cross-key consistency."""

    def __init__(self, directory: str) -> None:
        self.directory = Path(directory)

    def _path_for(self, key: str) -> Path:
        safe_key = "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in key)
        return self.directory / f"{safe_key}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Failed to read storage key %s: %s", key, exc)
            return None

    def set_item(self, key: str, value: str) -> bool:
        path = self._path_for(key)
        try:
            with _atomic_writer(path) as fh:
                fh.write(value)
        except OSError as exc:
            logger.warning("Failed to write storage key %s: %s", key, exc)
            return False
        logger.debug("Stored %d chars under %s", len(value), key)
        return True

    def remove_item(self, key: str) -> None:
        try:
            self._path_for(key).unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.warning("Failed to remove storage key %s: %s", key, exc)


@contextmanager
def _atomic_writer(path: Path) -> Iterator:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=path.name, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            yield fh
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


def init_store(directory: Optional[str] = None) -> KeyValueStore:
    """Initialise and return the shared store."""
    global _store
    if _store is None:
        _store = KeyValueStore(directory or get_settings().storage_dir)
        logger.info("Key/value store initialised at %s", _store.directory)
    return _store
