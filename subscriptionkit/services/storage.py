"""
Key-Value Storage - Persistence protocol plus the bundled implementations.

Writes are whole-key overwrites. JsonFileStorage replaces its file atomically,
so every individual key write is atomic on disk.
"""

import base64
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal, Protocol

from pydantic import BaseModel, ValidationError
from structlog import get_logger

logger = get_logger(__name__)


class KeyValueStorage(Protocol):
    """
    Persistent storage protocol.

    Any backing store (platform preferences, keychain, a file) must implement
    this interface. Getters return None for missing keys or values of another type.
    """

    def get_bytes(self, key: str) -> bytes | None: ...

    def set_bytes(self, key: str, value: bytes) -> None: ...

    def get_string(self, key: str) -> str | None: ...

    def set_string(self, key: str, value: str) -> None: ...

    def get_timestamp(self, key: str) -> datetime | None: ...

    def set_timestamp(self, key: str, value: datetime) -> None: ...

    def remove(self, key: str) -> None: ...


class StoredValue(BaseModel):
    """A single typed value; bytes are base64 and timestamps ISO 8601."""

    kind: Literal["bytes", "string", "timestamp"]
    value: str


class StorageFile(BaseModel):
    """On-disk layout of JsonFileStorage."""

    entries: dict[str, StoredValue] = {}


class InMemoryStorage:
    """Process-local storage. Nothing survives a restart."""

    def __init__(self) -> None:
        self._entries: dict[str, StoredValue] = {}

    def _read(self, key: str, kind: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None or entry.kind != kind:
            return None
        return entry.value

    def _write(self, key: str, entry: StoredValue) -> None:
        self._entries[key] = entry

    def get_bytes(self, key: str) -> bytes | None:
        raw = self._read(key, "bytes")
        if raw is None:
            return None
        return base64.b64decode(raw)

    def set_bytes(self, key: str, value: bytes) -> None:
        self._write(
            key, StoredValue(kind="bytes", value=base64.b64encode(value).decode("ascii"))
        )

    def get_string(self, key: str) -> str | None:
        return self._read(key, "string")

    def set_string(self, key: str, value: str) -> None:
        self._write(key, StoredValue(kind="string", value=value))

    def get_timestamp(self, key: str) -> datetime | None:
        raw = self._read(key, "timestamp")
        if raw is None:
            return None
        parsed = datetime.fromisoformat(raw)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed

    def set_timestamp(self, key: str, value: datetime) -> None:
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        self._write(key, StoredValue(kind="timestamp", value=value.isoformat()))

    def remove(self, key: str) -> None:
        self._entries.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._entries)


class JsonFileStorage(InMemoryStorage):
    """
    Storage persisted to a single JSON file.

    The file is loaded once at construction and rewritten on every change.
    A missing or corrupt file starts empty.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            stored = StorageFile.model_validate_json(self.path.read_bytes())
        except (OSError, ValidationError) as exc:
            logger.warning("storage_file_unreadable", path=str(self.path), error=str(exc))
            return
        self._entries = dict(stored.entries)

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = StorageFile(entries=self._entries).model_dump_json()
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_path, self.path)
        except OSError:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def _write(self, key: str, entry: StoredValue) -> None:
        super()._write(key, entry)
        self._flush()

    def remove(self, key: str) -> None:
        if key in self._entries:
            super().remove(key)
            self._flush()


def build_storage(storage_path: str | None) -> KeyValueStorage:
    """Storage for the configured path; in-memory when no path is set."""
    if storage_path:
        return JsonFileStorage(storage_path)
    return InMemoryStorage()
