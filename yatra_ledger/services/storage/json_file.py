"""
JSON File Key-Value Store

DESIGN DECISION: Reminder bookkeeping is tiny and local, so a single JSON
file is enough. The whole file is rewritten on each change through a
temporary file and an atomic rename, so a crash mid-write leaves either
the old or the new content, never a torn file.

A corrupt or unreadable file reads as empty: reminders then start a fresh
baseline instead of crashing the app.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

import structlog

from yatra_ledger.services.storage.interface import KeyValueStore, StorageError


logger = structlog.get_logger(__name__)


class JsonFileKeyValueStore(KeyValueStore):
    """Durable key-value store in one JSON document."""

    def __init__(self, path: Path):
        self._path = Path(path)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create reminder store directory: {e}")

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, Any]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise StorageError(f"Cannot read {self._path}: {e}")

        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("kv_store_corrupt", path=str(self._path), error=str(e))
            return {}
        if not isinstance(data, dict):
            logger.warning("kv_store_corrupt", path=str(self._path), error="not an object")
            return {}
        return data

    def _write(self, data: dict[str, Any]) -> None:
        try:
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self._path.name}.",
                dir=str(self._path.parent),
            )
        except OSError as e:
            raise StorageError(f"Cannot write {self._path}: {e}")

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, sort_keys=True)
            os.replace(tmp_path, self._path)
        except (OSError, TypeError, ValueError) as e:
            Path(tmp_path).unlink(missing_ok=True)
            raise StorageError(f"Cannot write {self._path}: {e}")

    def get(self, key: str) -> Optional[Any]:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)
