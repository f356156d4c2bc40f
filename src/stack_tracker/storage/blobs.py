"""Fixed-key JSON blob persistence for the local stores."""

import json
import logging
import os
import tempfile
from pathlib import Path

from ..errors import PersistenceError

logger = logging.getLogger(__name__)


class JsonBlobStorage:
    """Stores whole JSON documents under fixed keys in a directory.

    Each key maps to ``<key>.json``. Writes replace the file in full, so a
    crash mid-write leaves the previous version intact.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def read(self, key: str, default=None):
        """Return the value stored under ``key``, or ``default`` if absent."""
        path = self._path(key)
        if not path.exists():
            return default
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to load %s from %s: %s", key, path, e)
            return default

    def write(self, key: str, value) -> None:
        """Serialize ``value`` and replace whatever is stored under ``key``."""
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(value, f, indent=2)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to save %s to %s: %s", key, path, e)
            raise PersistenceError(f"Failed to save {key}") from e
