"""Read-through metadata resolution: memory, then disk, then the registry."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict

from common.logging_utils import extra_context
from constants import LockKeys
from .cache import DiskCache, MemoryCache
from .errors import PackageNotFound, ServeError
from .locks import LockRegistry
from .models import PackageMetadata
from .upstream import OriginClient

logger = logging.getLogger(__name__)


class MetadataResolver:
    """Answers metadata lookups through the cache tiers.

    A fresh memory entry is returned without I/O. An outdated one is returned
    as well, while a single background refresh per package replaces it. Disk
    snapshots warm the memory tier after a restart, and only a cold miss waits
    on the registry, single-flighted per package.
    """

    def __init__(
        self,
        memory: MemoryCache,
        disk: DiskCache,
        origin: OriginClient,
        locks: LockRegistry,
    ):
        self._memory = memory
        self._disk = disk
        self._origin = origin
        self._locks = locks
        self._refreshes: Dict[str, asyncio.Task] = {}

    async def resolve(self, fullname: str) -> PackageMetadata:
        """Get metadata for ``fullname``.

        Raises:
            PackageNotFound: The registry does not know the package.
            UpstreamError: The registry could not be queried on a cold miss.
        """
        if not fullname:
            raise PackageNotFound(fullname)

        if self._memory.is_cached(fullname):
            entry = self._memory.get(fullname)
            if self._memory.is_outdated(fullname):
                self.schedule_refresh(fullname)
            return entry.metadata

        if await self._disk.is_cached(fullname):
            metadata = await self._disk.get(fullname)
            if metadata is not None:
                logger.debug("Fetching metadata of package %s from local disk cache", fullname)
                self._memory.set(fullname, metadata)
                return metadata

        logger.debug("Fetching metadata of package %s from npm registry", fullname)
        lock = self._locks.get(fullname)
        return await lock.run(LockKeys.METADATA.value, lambda: self._load(fullname))

    async def _load(self, fullname: str) -> PackageMetadata:
        # A fetch that finished while this caller checked the disk already
        # populated memory.
        if self._memory.is_cached(fullname):
            return self._memory.get(fullname).metadata
        return await self._fetch(fullname)

    async def _fetch(self, fullname: str) -> PackageMetadata:
        metadata = await self._origin.get_metadata(fullname)
        await self._disk.set(fullname, metadata)
        self._memory.set(fullname, metadata)
        logger.debug("Package metadata %s updated", fullname)
        return metadata

    def schedule_refresh(self, fullname: str) -> None:
        """Start a background refresh unless one is already in flight."""
        lock = self._locks.get(fullname)
        if fullname in self._refreshes or lock.is_busy(LockKeys.METADATA.value):
            return
        task = asyncio.ensure_future(self._refresh(fullname))
        self._refreshes[fullname] = task
        task.add_done_callback(lambda _: self._refreshes.pop(fullname, None))

    async def _refresh(self, fullname: str) -> None:
        lock = self._locks.get(fullname)
        try:
            await lock.run(LockKeys.METADATA.value, lambda: self._fetch(fullname))
        except PackageNotFound:
            logger.info("Package %s no longer exists upstream, dropping cached metadata", fullname)
            self._memory.set(fullname, None)
            await self._disk.set(fullname, None)
        except (ServeError, OSError) as e:
            logger.warning(
                "Background refresh of %s failed, keeping cached metadata: %s",
                fullname,
                e,
                extra=extra_context(event="refresh_failed", component="metadata", package=fullname),
            )

    @property
    def pending_refreshes(self) -> int:
        return len(self._refreshes)

    async def close(self) -> None:
        """Cancel background refreshes still running."""
        tasks = list(self._refreshes.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
