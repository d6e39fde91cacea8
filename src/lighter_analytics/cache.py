from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Pattern, TypeVar

from lighter_analytics.storage.sqlite_store import KeyValueStorage, MemoryStorage, SqliteStorage, StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_NAMESPACE = "lighter-cache:"
DEFAULT_TTL_SECONDS = 5 * 60.0
_PROBE_KEY = "__storage_probe__"


@dataclass(frozen=True)
class CacheEntry:
    data: Any
    timestamp: float
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


class CacheManager:
    """TTL cache with stale-while-revalidate reads over a string key-value store.

    The store is probed once at construction; if it cannot be written the
    cache falls back to process memory for its whole lifetime.
    """

    def __init__(
        self,
        storage: KeyValueStorage | None = None,
        *,
        namespace: str = DEFAULT_NAMESPACE,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._namespace = namespace
        self._default_ttl = default_ttl
        self._clock = clock
        self._storage, self._persistent = _select_storage(storage)
        self._inflight: dict[str, asyncio.Future[Any]] = {}

    @property
    def persistent(self) -> bool:
        return self._persistent

    def set(self, key: str, data: Any, ttl: float | None = None) -> None:
        now = self._clock()
        lifetime = self._default_ttl if ttl is None else ttl
        try:
            text = json.dumps({"data": data, "timestamp": now, "expires_at": now + lifetime})
        except (TypeError, ValueError) as exc:
            logger.warning("cache value for %s is not serializable: %s", key, exc)
            return
        self._write(self._storage_key(key), text)

    def get(self, key: str, stale_ok: bool = False) -> Any | None:
        entry = self._read_entry(key)
        if entry is None:
            return None
        if entry.is_fresh(self._clock()):
            return entry.data
        if stale_ok:
            return entry.data
        self._remove(self._storage_key(key))
        return None

    def has(self, key: str) -> bool:
        entry = self._read_entry(key)
        if entry is None:
            return False
        if entry.is_fresh(self._clock()):
            return True
        self._remove(self._storage_key(key))
        return False

    def invalidate(self, key: str) -> None:
        self._remove(self._storage_key(key))

    def invalidate_pattern(self, pattern: str | Pattern[str]) -> None:
        compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
        for storage_key in self._namespaced_keys():
            if compiled.search(storage_key[len(self._namespace):]):
                self._remove(storage_key)

    def clear(self) -> None:
        for storage_key in self._namespaced_keys():
            self._remove(storage_key)

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        entries = []
        for storage_key in self._namespaced_keys():
            key = storage_key[len(self._namespace):]
            entry = self._read_entry(key)
            if entry is None:
                continue
            entries.append({"key": key, "age": now - entry.timestamp, "ttl": entry.expires_at - now})
        return {"size": len(entries), "persistent": self._persistent, "entries": entries}

    async def cached_fetch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        *,
        ttl: float | None = None,
        stale_while_revalidate: bool = False,
    ) -> T:
        entry = self._read_entry(key)
        if entry is not None and entry.is_fresh(self._clock()):
            logger.debug("cache hit: %s", key)
            return entry.data
        if entry is not None and stale_while_revalidate:
            logger.debug("cache stale, revalidating: %s", key)
            task = self._refresh(key, fetcher, ttl)
            task.add_done_callback(_log_background_failure(key))
            return entry.data
        logger.debug("cache miss: %s", key)
        return await asyncio.shield(self._refresh(key, fetcher, ttl))

    def _refresh(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl: float | None,
    ) -> asyncio.Future[Any]:
        # Concurrent callers for one key share a single fetch.
        pending = self._inflight.get(key)
        if pending is not None and not pending.done():
            return pending
        task = asyncio.ensure_future(self._fetch_and_store(key, fetcher, ttl))
        self._inflight[key] = task
        task.add_done_callback(lambda done: self._forget(key, done))
        return task

    async def _fetch_and_store(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl: float | None,
    ) -> T:
        data = await fetcher()
        self.set(key, data, ttl)
        return data

    def _forget(self, key: str, task: asyncio.Future[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    def _read_entry(self, key: str) -> CacheEntry | None:
        storage_key = self._storage_key(key)
        text = self._read(storage_key)
        if text is None:
            return None
        entry = _parse_entry(text)
        if entry is None:
            logger.warning("evicting corrupt cache entry: %s", key)
            self._remove(storage_key)
        return entry

    def _storage_key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    def _namespaced_keys(self) -> list[str]:
        try:
            keys = self._storage.keys()
        except StorageError as exc:
            logger.warning("cache storage keys failed: %s", exc)
            return []
        return [key for key in keys if key.startswith(self._namespace)]

    def _read(self, storage_key: str) -> str | None:
        try:
            return self._storage.get_item(storage_key)
        except StorageError as exc:
            logger.warning("cache storage read failed for %s: %s", storage_key, exc)
            return None

    def _write(self, storage_key: str, text: str) -> None:
        try:
            self._storage.set_item(storage_key, text)
        except StorageError as exc:
            logger.warning("cache storage write failed for %s: %s", storage_key, exc)

    def _remove(self, storage_key: str) -> None:
        try:
            self._storage.remove_item(storage_key)
        except StorageError as exc:
            logger.warning("cache storage delete failed for %s: %s", storage_key, exc)


def create_cache(
    db_path: Path | None,
    *,
    namespace: str = DEFAULT_NAMESPACE,
    default_ttl: float = DEFAULT_TTL_SECONDS,
) -> CacheManager:
    storage: KeyValueStorage | None = None
    if db_path is not None:
        try:
            storage = SqliteStorage(db_path)
        except StorageError as exc:
            logger.warning("persistent cache unavailable, using memory: %s", exc)
    return CacheManager(storage, namespace=namespace, default_ttl=default_ttl)


def _select_storage(storage: KeyValueStorage | None) -> tuple[KeyValueStorage, bool]:
    if storage is None:
        return MemoryStorage(), False
    try:
        storage.set_item(_PROBE_KEY, "1")
        storage.remove_item(_PROBE_KEY)
    except StorageError as exc:
        logger.warning("cache storage probe failed, using memory: %s", exc)
        return MemoryStorage(), False
    return storage, not isinstance(storage, MemoryStorage)


def _parse_entry(text: str) -> CacheEntry | None:
    try:
        raw = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(raw, dict) or "data" not in raw:
        return None
    try:
        return CacheEntry(
            data=raw["data"],
            timestamp=float(raw["timestamp"]),
            expires_at=float(raw["expires_at"]),
        )
    except (KeyError, TypeError, ValueError):
        return None


def _log_background_failure(key: str) -> Callable[[asyncio.Future[Any]], None]:
    def _callback(task: asyncio.Future[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("background refresh failed for %s: %s", key, exc)

    return _callback
