import asyncio
import json
import os
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable

from ledger_bot.logger import get_logger

logger = get_logger(__name__)


class CacheStore(ABC):
    """Key/value store with optional per-key expiry."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value for ``key`` or None when absent or expired."""

    @abstractmethod
    async def put(self, key: str, value: str, ttl: float | None = None) -> None:
        """Store ``value``, replacing any previous value. ``ttl`` is in seconds."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``; removing an absent key is not an error."""

    async def get_many(self, keys: Iterable[str]) -> dict[str, str | None]:
        return {key: await self.get(key) for key in keys}

    async def aclose(self) -> None:
        return None


class MemoryCacheStore(CacheStore):
    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.time
        self._lock = asyncio.Lock()
        # key -> (value, expires_at or None)
        self._entries: dict[str, tuple[str, float | None]] = {}

    def size(self) -> int:
        """Number of keys held, including expired keys not yet purged."""
        return len(self._entries)

    def _is_expired(self, expires_at: float | None) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    def _purge_expired(self) -> int:
        expired = [key for key, (_, expires_at) in self._entries.items() if self._is_expired(expires_at)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("[CACHE] Purged %d expired keys.", len(expired))
        return len(expired)

    async def get(self, key: str) -> str | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._is_expired(expires_at):
                logger.debug("[CACHE] Key %s expired.", key)
                del self._entries[key]
                await self._on_change()
                return None
            return value

    async def put(self, key: str, value: str, ttl: float | None = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        async with self._lock:
            # Records nobody reads again would otherwise stay forever.
            self._purge_expired()
            self._entries[key] = (value, expires_at)
            await self._on_change()

    async def delete(self, key: str) -> None:
        async with self._lock:
            if self._entries.pop(key, None) is not None:
                await self._on_change()

    async def _on_change(self) -> None:
        """Hook for subclasses; called with the lock held after every mutation."""


class FileCacheStore(MemoryCacheStore):
    """Memory store mirrored to a JSON file so entries survive restarts."""

    def __init__(self, data_path: str = "cache.json", clock: Callable[[], float] | None = None) -> None:
        super().__init__(clock=clock)
        self.data_path = data_path
        self.load()

    def load(self) -> None:
        if not os.path.exists(self.data_path):
            return
        try:
            with open(self.data_path, encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("[CACHE] Could not read %s (%s); starting empty.", self.data_path, exc)
            return
        if not isinstance(raw, dict):
            logger.warning("[CACHE] Unexpected content in %s; starting empty.", self.data_path)
            return

        entries: dict[str, tuple[str, float | None]] = {}
        for key, item in raw.items():
            if not isinstance(item, dict) or not isinstance(item.get("value"), str):
                continue
            expires_at = item.get("expires_at")
            if expires_at is not None and not isinstance(expires_at, (int, float)):
                continue
            if self._is_expired(expires_at):
                continue
            entries[key] = (item["value"], expires_at)
        self._entries = entries

    def _snapshot(self) -> dict[str, dict]:
        return {
            key: {"value": value, "expires_at": expires_at}
            for key, (value, expires_at) in self._entries.items()
        }

    def _write(self, payload: dict[str, dict]) -> None:
        tmp_path = f"{self.data_path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self.data_path)

    async def _on_change(self) -> None:
        self._purge_expired()
        await asyncio.to_thread(self._write, self._snapshot())


def create_cache_store(backend: str, data_dir: str = ".") -> CacheStore:
    if backend == "file":
        path = os.path.join(data_dir, "cache.json")
        logger.info("[CACHE] Using file cache at %s.", path)
        return FileCacheStore(data_path=path)
    if backend != "memory":
        logger.warning("[CACHE] Unknown CACHE_BACKEND '%s'; using memory.", backend)
    return MemoryCacheStore()
