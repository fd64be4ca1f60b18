"""
Persistent key/value media and the TTL store on top of them.

A medium behaves like browser ``localStorage``: string keys, string values,
one shared key space. ``TTLStore`` keeps JSON envelopes
``{data, stored_at, expires_at}`` in it (epoch milliseconds) and expires them
lazily on read. The store is best-effort: every medium failure is logged and
reads as a cache miss.
"""
from __future__ import annotations

import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

from pydantic import BaseModel, ValidationError, model_validator

logger = logging.getLogger("blogstate.store")


class StorageError(Exception):
    pass


class StorageQuotaExceeded(StorageError):
    def __init__(self, needed: int, limit: int):
        super().__init__(f"Storage quota exceeded: {needed} bytes needed, limit is {limit}")
        self.needed = needed
        self.limit = limit


class Storage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def clear(self) -> None: ...

    def keys(self) -> List[str]: ...


def _encoded_size(items: Dict[str, str]) -> int:
    return len(json.dumps(items, ensure_ascii=False).encode("utf-8"))


class MemoryStorage:
    def __init__(self, max_bytes: Optional[int] = None):
        self.max_bytes = max_bytes
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.max_bytes is not None:
            needed = _encoded_size({**self._items, key: value})
            if needed > self.max_bytes:
                raise StorageQuotaExceeded(needed, self.max_bytes)
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()

    def keys(self) -> List[str]:
        return list(self._items)


_path_locks: Dict[Path, threading.Lock] = {}
_path_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = path.resolve()
    with _path_locks_guard:
        return _path_locks.setdefault(key, threading.Lock())


class JsonFileStorage:
    """
    The whole key space lives in one UTF-8 JSON file.

    The file is re-read on every access so that several processes sharing it
    see each other's writes. Within a process every read-modify-write holds a
    per-file lock, and the file is replaced atomically so readers never see a
    half-written key space. Writers in different processes still race and the
    last one wins.
    """

    def __init__(self, path: str | Path, max_bytes: Optional[int] = None):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.max_bytes = max_bytes
        self._lock = _lock_for(self.path)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Local storage file %s is unreadable, starting empty: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _persist(self, items: Dict[str, str]) -> None:
        payload = json.dumps(items, ensure_ascii=False, indent=2)
        if self.max_bytes is not None:
            needed = len(payload.encode("utf-8"))
            if needed > self.max_bytes:
                raise StorageQuotaExceeded(needed, self.max_bytes)
        tmp_path = self.path.with_name(f".{self.path.name}.{os.getpid()}.tmp")
        try:
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise StorageError(f"Failed to write {self.path}: {exc}") from exc

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            items = self._read()
            items[key] = value
            self._persist(items)

    def remove_item(self, key: str) -> None:
        with self._lock:
            items = self._read()
            if items.pop(key, None) is not None:
                self._persist(items)

    def clear(self) -> None:
        with self._lock:
            self._persist({})

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._read())


class CacheEntry(BaseModel):
    data: Any
    stored_at: int
    expires_at: int

    @model_validator(mode="after")
    def _expires_after_store(self) -> "CacheEntry":
        if self.expires_at <= self.stored_at:
            raise ValueError("expires_at must be later than stored_at")
        return self

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.expires_at


class TTLStore:
    def __init__(self, storage: Optional[Storage], clock: Callable[[], float] = time.time):
        # storage=None means no persistent medium is available here
        self.storage = storage
        self.clock = clock

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds, replacing any entry."""
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        if self.storage is None:
            logger.debug("No local storage, skipping cache write for %s", key)
            return
        now = self._now_ms()
        entry = CacheEntry(data=value, stored_at=now, expires_at=now + max(1, int(ttl * 1000)))
        try:
            self.storage.set_item(key, json.dumps(entry.model_dump(), ensure_ascii=False))
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to cache %s: %s", key, exc)

    def get(self, key: str) -> Any:
        if self.storage is None:
            return None
        try:
            raw = self.storage.get_item(key)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to read cache %s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            entry = CacheEntry.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Dropping corrupt cache entry %s: %s", key, exc.errors()[0].get("msg"))
            self.remove(key)
            return None
        if entry.is_expired(self._now_ms()):
            logger.debug("Cache entry %s expired", key)
            self.remove(key)
            return None
        return entry.data

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def remove(self, key: str) -> None:
        if self.storage is None:
            return
        try:
            self.storage.remove_item(key)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to remove cache %s: %s", key, exc)

    def clear(self) -> None:
        if self.storage is None:
            return
        try:
            self.storage.clear()
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to clear local storage: %s", exc)
