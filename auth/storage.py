from __future__ import annotations

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

STORAGE_UNAVAILABLE_MESSAGE = (
    "Unable to store authentication data. Please enable cookies and retry."
)


class StorageUnavailable(RuntimeError):
    def __init__(self, message: str = STORAGE_UNAVAILABLE_MESSAGE) -> None:
        super().__init__(message)


class KeyValueStorage(ABC):
    """Async string key-value area scoped to the login flows of one deployment."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def take(self, key: str) -> str | None:
        """Return the value for ``key`` and remove it in one step."""
        raise NotImplementedError


class MemoryStorage(KeyValueStorage):
    def __init__(self, max_entries: int | None = None) -> None:
        self._values: dict[str, str] = {}
        self._max_entries = max_entries

    def __len__(self) -> int:
        return len(self._values)

    async def get(self, key: str) -> str | None:
        return self._values.get(key)

    async def set(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        del ttl_seconds
        if (
            self._max_entries is not None
            and key not in self._values
            and len(self._values) >= self._max_entries
        ):
            raise StorageUnavailable(
                f"Storage quota exceeded ({self._max_entries} entries)."
            )
        self._values[key] = value

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)

    async def take(self, key: str) -> str | None:
        return self._values.pop(key, None)


class FileStorage(KeyValueStorage):
    """JSON file backed storage for a single process.

    Entries do not expire on their own; readers check expiry themselves.
    Use ``RedisStorage`` when several workers serve the same callbacks.
    """

    def __init__(self, path: str | Path = ".pkce_verifiers.json") -> None:
        self._path = Path(path)

    async def get(self, key: str) -> str | None:
        return self._read_all().get(key)

    async def set(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        del ttl_seconds
        all_values = self._read_all()
        all_values[key] = value
        self._write_all(all_values)

    async def delete(self, key: str) -> None:
        all_values = self._read_all()
        if all_values.pop(key, None) is not None:
            self._write_all(all_values)

    async def take(self, key: str) -> str | None:
        all_values = self._read_all()
        value = all_values.pop(key, None)
        if value is not None:
            self._write_all(all_values)
        return value

    def _read_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as error:
            raise StorageUnavailable(f"Storage file is unreadable: {error}") from error
        if not isinstance(raw, dict):
            raise StorageUnavailable("Storage file is invalid; expected top-level JSON object.")
        # Non-string values are dropped here and vanish on the next write.
        return {key: value for key, value in raw.items() if isinstance(value, str)}

    def _write_all(self, payload: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f"{self._path.name}.",
                suffix=".tmp",
                dir=self._path.parent,
            )
        except OSError as error:
            raise StorageUnavailable(f"Storage file is not writable: {error}") from error
        tmp_path = Path(tmp_name)

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=True)
            os.replace(tmp_path, self._path)
        except OSError as error:
            raise StorageUnavailable(f"Storage file is not writable: {error}") from error
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
