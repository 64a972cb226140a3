"""
Key-value response cache keyed by (entity type, entity id).

``ResponseCache`` is the capability the fetchers depend on. ``FileResponseCache``
persists one file per key under a scratch directory partitioned by entity type;
``InMemoryResponseCache`` has the same semantics and backs unit tests.

Reads never raise: a missing or unreadable entry is a miss. Writes never raise
either: the caller already holds the value in memory, so a failed write is only
logged.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from pathlib import Path

from .exceptions import InvalidCacheKeyError

logger = logging.getLogger(__name__)

EntityId = int | str


class ResponseCache(ABC):
    """Abstract response cache with per-key locking."""

    def __init__(self) -> None:
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._lock_users: dict[tuple[str, str], int] = {}

    @staticmethod
    def _normalize(entity_type: str, entity_id: EntityId) -> tuple[str, str]:
        key_id = str(entity_id)
        for part in (entity_type, key_id):
            if not part or part in {".", ".."} or "/" in part or os.sep in part:
                raise InvalidCacheKeyError(entity_type, entity_id)
        return entity_type, key_id

    @asynccontextmanager
    async def lock(self, entity_type: str, entity_id: EntityId) -> AsyncIterator[None]:
        """Hold the lock guarding fetch-and-write for one key.

        Concurrent callers fetching the same key serialize on this lock, so only
        the first performs the live request and the rest read its cached result.
        The lock is dropped once no caller holds or awaits it.
        """
        key = self._normalize(entity_type, entity_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    @abstractmethod
    async def get(self, entity_type: str, entity_id: EntityId) -> bytes | None:
        """Return the raw cached payload, or None on a miss."""

    @abstractmethod
    async def put(self, entity_type: str, entity_id: EntityId, payload: bytes) -> bool:
        """Store a raw payload. Returns False when the write failed."""

    @abstractmethod
    async def purge(self, entity_types: Iterable[str]) -> None:
        """Drop every entry of the given entity types."""


class FileResponseCache(ResponseCache):
    """File-backed cache: ``<root>/<entity_type>/<entity_id>.json``."""

    def __init__(self, root: str | os.PathLike[str]) -> None:
        super().__init__()
        self.root = Path(root)

    def path_for(self, entity_type: str, entity_id: EntityId) -> Path:
        entity_type, key_id = self._normalize(entity_type, entity_id)
        return self.root / entity_type / f"{key_id}.json"

    async def get(self, entity_type: str, entity_id: EntityId) -> bytes | None:
        path = self.path_for(entity_type, entity_id)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Cache read failed for {path}: {e}")
            return None

    async def put(self, entity_type: str, entity_id: EntityId, payload: bytes) -> bool:
        path = self.path_for(entity_type, entity_id)
        try:
            await asyncio.to_thread(self._write, path, payload)
        except OSError as e:
            logger.warning(f"Cache write failed for {path}: {e}")
            return False
        return True

    @staticmethod
    def _write(path: Path, payload: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)

    async def purge(self, entity_types: Iterable[str]) -> None:
        for entity_type in entity_types:
            directory = self.root / self._normalize(entity_type, "_")[0]
            if not directory.exists():
                continue
            logger.debug(f"Purging cache directory {directory}")
            try:
                await asyncio.to_thread(shutil.rmtree, directory)
            except OSError as e:
                logger.warning(f"Cache purge failed for {directory}: {e}")


class InMemoryResponseCache(ResponseCache):
    """Dictionary-backed cache with the same semantics as the file cache."""

    def __init__(self) -> None:
        super().__init__()
        self.entries: dict[tuple[str, str], bytes] = {}

    async def get(self, entity_type: str, entity_id: EntityId) -> bytes | None:
        return self.entries.get(self._normalize(entity_type, entity_id))

    async def put(self, entity_type: str, entity_id: EntityId, payload: bytes) -> bool:
        self.entries[self._normalize(entity_type, entity_id)] = bytes(payload)
        return True

    async def purge(self, entity_types: Iterable[str]) -> None:
        purged = set(entity_types)
        for key in [key for key in self.entries if key[0] in purged]:
            del self.entries[key]
