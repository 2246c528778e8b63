"""Device-local plaintext mood history persisted as a JSON object."""
from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Dict, Optional

from pydantic import ValidationError

from moodledger.core.config import settings
from moodledger.core.errors import StorageCorruption
from moodledger.schemas.mood import LocalMoodEntry

LOGGER = logging.getLogger(__name__)


class JsonFileStorage:
    """Key/value string storage in a single JSON file (browser-storage analogue)."""

    def __init__(self, path: Path | str = settings.LOCAL_STORAGE_PATH) -> None:
        self.path = Path(path)

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.warning("Storage file %s unreadable (%s); starting empty", self.path, exc)
            return {}
        if not isinstance(data, dict):
            LOGGER.warning("Storage file %s is not a JSON object; starting empty", self.path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def get_item(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def _write_all(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
        tmp.replace(self.path)

    def set_item(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove_item(self, key: str) -> None:
        data = self._read_all()
        if data.pop(key, None) is not None:
            self._write_all(data)


class MemoryStorage:
    def __init__(self) -> None:
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


def serialize_entries(entries: Dict[int, LocalMoodEntry]) -> str:
    """Day index (as string) -> {emoji, message, timestamp}."""
    payload = {
        str(day): {"emoji": entry.emoji, "message": entry.message, "timestamp": entry.timestamp}
        for day, entry in sorted(entries.items())
    }
    return json.dumps(payload, ensure_ascii=False)


def deserialize_entries(raw: Optional[str]) -> Dict[int, LocalMoodEntry]:
    """Parse stored history. Raises StorageCorruption if the payload is unusable.

    Individual malformed entries are skipped rather than failing the whole map.
    """
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise StorageCorruption(f"mood history is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise StorageCorruption("mood history is not a JSON object")
    entries: Dict[int, LocalMoodEntry] = {}
    for key, value in data.items():
        try:
            day = int(key)
            entries[day] = LocalMoodEntry(day_index=day, **value)
        except (TypeError, ValueError, ValidationError):
            LOGGER.warning("Skipping malformed mood history entry %r", key)
    return entries


class LocalMoodCache:
    def __init__(self, storage=None, storage_key: str = settings.LOCAL_STORAGE_KEY) -> None:
        self.storage = storage if storage is not None else JsonFileStorage()
        self.storage_key = storage_key

    def load(self) -> Dict[int, LocalMoodEntry]:
        try:
            return deserialize_entries(self.storage.get_item(self.storage_key))
        except StorageCorruption as exc:
            LOGGER.warning("Failed to load mood history from storage: %s", exc)
            return {}

    def get(self, day_index: int) -> Optional[LocalMoodEntry]:
        return self.load().get(day_index)

    def put(self, day_index: int, emoji: int, message: str, timestamp: Optional[int] = None) -> LocalMoodEntry:
        entry = LocalMoodEntry(
            day_index=day_index,
            emoji=emoji,
            message=message,
            timestamp=timestamp if timestamp is not None else int(time.time() * 1000),
        )
        entries = self.load()
        entries[day_index] = entry
        self.storage.set_item(self.storage_key, serialize_entries(entries))
        return entry
