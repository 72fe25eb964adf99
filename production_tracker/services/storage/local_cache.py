"""
Local durable key-value store.

Device storage for the record cache and the user settings. Each key is a
JSON file in the data directory. Keys carry a version suffix: bumping the
version is the migration strategy, old files are simply ignored.

Reads and writes are synchronous and never suspend the caller.
"""

import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Optional

from production_tracker.audit import get_logger


RECORDS_KEY = "netuno-jarvis-data-v2"
SETTINGS_KEY = "netuno-jarvis-settings-v1"
DELETED_QUEUE_KEY = "netuno-deleted-queue-v1"
USER_ID_KEY = "netuno-device-user-id"

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")

logger = get_logger(__name__)


class LocalKeyValueStore:
    """
    JSON values stored under string keys, one file per key.

    Writes go to a temporary file first and are then renamed over the
    target, so a crash never leaves a half-written value behind.
    """

    def __init__(self, data_dir: Path):
        self._data_dir = Path(data_dir)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._data_dir / f"{key}.json"

    def get_text(self, key: str) -> Optional[str]:
        """Raw stored text, or None if the key was never written."""
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set_text(self, key: str, text: str) -> None:
        """Replace the stored text for `key`."""
        path = self._path(key)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._data_dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get_json(self, key: str, default: Any = None) -> Any:
        """
        Decoded JSON value for `key`.

        Missing or corrupt values read as `default`.
        """
        text = self.get_text(key)
        if text is None:
            return default
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning("local_value_corrupt", key=key, error=str(e))
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set_text(key, json.dumps(value, ensure_ascii=False))

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
