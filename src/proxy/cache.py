"""Memory and disk tiers for package metadata."""

from __future__ import annotations

import json
import logging
import os
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import aiofiles
import aiofiles.os

from common.logging_utils import extra_context
from .models import PackageMetadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """Metadata snapshot with the time it was stored.

    Entries are replaced wholesale on refresh and never mutated, so readers
    need no locking.
    """

    metadata: PackageMetadata
    timestamp: float
    ttl: float

    def is_outdated(self, now: float) -> bool:
        """Check if this entry is older than its TTL."""
        return now - self.timestamp > self.ttl


class MemoryCache:
    """In-process metadata tier with a fixed time-to-live.

    Outdated entries are not dropped: they keep being served while a
    background refresh replaces them.
    """

    def __init__(
        self,
        ttl: float = 1.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        """Initialize the memory cache.

        Args:
            ttl: Seconds after which an entry is considered outdated.
            clock: Monotonic time source; injectable for tests.
        """
        self._ttl = ttl
        self._clock = clock or time.monotonic
        self._cache: Dict[str, CacheEntry] = {}

    def is_cached(self, fullname: str) -> bool:
        return fullname in self._cache

    def get(self, fullname: str) -> CacheEntry:
        """Get a cached entry.

        Raises:
            KeyError: If the package is not cached.
        """
        entry = self._cache.get(fullname)
        if entry is None:
            raise KeyError(f"Package {fullname} not cached")
        return entry

    def is_outdated(self, fullname: str) -> bool:
        return self.get(fullname).is_outdated(self._clock())

    def set(self, fullname: str, metadata: Optional[PackageMetadata]) -> None:
        """Store ``metadata`` for ``fullname``; ``None`` evicts the entry."""
        if metadata is None:
            self._cache.pop(fullname, None)
            return
        self._cache[fullname] = CacheEntry(
            metadata=metadata,
            timestamp=self._clock(),
            ttl=self._ttl,
        )

    def clear(self) -> None:
        """Clear all cached entries."""
        self._cache.clear()

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        now = self._clock()
        outdated = sum(1 for e in self._cache.values() if e.is_outdated(now))
        return {
            "total_entries": len(self._cache),
            "outdated_entries": outdated,
            "ttl": self._ttl,
        }


class DiskCache:
    """On-disk tier: metadata snapshots and package archives.

    Layout under ``storage``::

        {scope}/{name}.json
        {scope}/{name}-{version}.tgz

    Files are written to a temporary sibling and renamed into place, so a
    reader never sees a partially written file under its canonical name.
    """

    def __init__(self, storage: str = "./packages"):
        self._storage = storage

    @property
    def storage(self) -> str:
        return self._storage

    def metadata_path(self, fullname: str) -> str:
        return os.path.join(self._storage, f"{fullname}.json")

    def archive_path(self, fullname: str, version: str) -> str:
        return os.path.join(self._storage, f"{fullname}-{version}.tgz")

    def temp_path(self, path: str) -> str:
        """Unique sibling of ``path`` to write into before renaming."""
        return f"{path}.{uuid.uuid4().hex}.tmp"

    async def is_cached(self, fullname: str) -> bool:
        return await aiofiles.os.path.isfile(self.metadata_path(fullname))

    async def get(self, fullname: str) -> Optional[PackageMetadata]:
        """Load the metadata snapshot.

        Returns:
            The metadata, or None when the file is missing or unreadable.
        """
        path = self.metadata_path(fullname)
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                document = json.loads(await f.read())
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.error(
                "Unable to read metadata file for package %s: %s",
                fullname,
                e,
                extra=extra_context(event="disk_cache_error", component="disk_cache", target=path),
            )
            return None
        if not isinstance(document, dict):
            logger.error("Metadata file for package %s is not a JSON object", fullname)
            return None
        return PackageMetadata(document)

    async def set(self, fullname: str, metadata: Optional[PackageMetadata]) -> None:
        """Persist ``metadata``; ``None`` removes the snapshot."""
        path = self.metadata_path(fullname)
        if metadata is None:
            try:
                await aiofiles.os.remove(path)
            except FileNotFoundError:
                pass
            return

        await self.ensure_parent(path)
        tmp_path = self.temp_path(path)
        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(metadata.document, indent=2))
            await aiofiles.os.replace(tmp_path, path)
        except BaseException:
            await self.discard(tmp_path)
            raise

    async def ensure_parent(self, path: str) -> None:
        await aiofiles.os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

    async def discard(self, path: str) -> None:
        """Remove a temporary file, ignoring a missing one."""
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove temporary file %s: %s", path, e)
