"""npm-serve package server.

This package provides the HTTP server that resolves package coordinates,
answers from the memory and disk caches when possible, fetches metadata and
archives from the upstream npm registry otherwise, and streams single files
out of package archives.
"""

from .coordinates import PackageCoordinates, parse_coordinates
from .cache import CacheEntry, DiskCache, MemoryCache
from .locks import LockRegistry, PackageLock
from .upstream import OriginClient
from .metadata import MetadataResolver
from .archive import ArchiveStore
from .server import PackageServer, ServeConfig

__all__ = [
    "PackageCoordinates",
    "parse_coordinates",
    "CacheEntry",
    "DiskCache",
    "MemoryCache",
    "LockRegistry",
    "PackageLock",
    "OriginClient",
    "MetadataResolver",
    "ArchiveStore",
    "PackageServer",
    "ServeConfig",
]
