"""Package archive download and single-file extraction.

Archives are gzip-compressed tarballs whose files live under ``package/``.
Extraction never unpacks to disk: the archive is decompressed and scanned as
it is read, entries before the requested one are skipped, and the requested
entry's bytes are yielded as they become available.
"""

from __future__ import annotations

import hashlib
import logging
import posixpath
import tarfile
import zlib
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

import aiofiles
import aiofiles.os

from constants import Constants, LockKeys
from .cache import DiskCache
from .coordinates import PackageCoordinates
from .errors import ArchiveCorrupted, ArchiveNotFound, EntryNotFound
from .locks import LockRegistry
from .upstream import OriginClient

logger = logging.getLogger(__name__)

BLOCK_SIZE = tarfile.BLOCKSIZE


def normalize_entry_path(path: str) -> str:
    """Normalize a path within a package (drop ``./``, leading ``/``, ``a/../``)."""
    normalized = posixpath.normpath("/" + path.replace("\\", "/")).lstrip("/")
    return "" if normalized == "." else normalized


def archive_entry_name(path: str) -> str:
    """Name the file at ``path`` has inside a package archive."""
    return f"{Constants.ARCHIVE_ROOT}/{normalize_entry_path(path)}"


async def _gunzip(source) -> AsyncIterator[bytes]:
    """Decompress an open binary file incrementally."""
    decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)
    while not decompressor.eof:
        chunk = await source.read(Constants.CHUNK_SIZE)
        if not chunk:
            break
        try:
            data = decompressor.decompress(chunk)
        except zlib.error as e:
            raise ArchiveCorrupted(f"Archive is not valid gzip: {e}") from e
        if data:
            yield data
    if not decompressor.eof:
        raise ArchiveCorrupted("Archive is truncated: gzip stream ended early")
    tail = decompressor.flush()
    if tail:
        yield tail


def _parse_pax_path(data: bytes) -> Optional[str]:
    """Extract the ``path`` record from a pax extended header."""
    pos = 0
    path = None
    while pos < len(data):
        space = data.find(b" ", pos)
        if space == -1:
            break
        try:
            length = int(data[pos:space])
        except ValueError as e:
            raise ArchiveCorrupted("Malformed pax header") from e
        if length <= 0:
            raise ArchiveCorrupted("Malformed pax header")
        record = data[space + 1:pos + length - 1]
        key, _, value = record.partition(b"=")
        if key == b"path":
            path = value.decode("utf-8", "surrogateescape")
        pos += length
    return path


class _TarReader:
    """Sequential reader over decompressed tar bytes."""

    def __init__(self, chunks: AsyncIterator[bytes]):
        self._chunks = chunks.__aiter__()
        self._buffer = bytearray()
        self._eof = False

    async def _fill(self, size: int) -> None:
        while len(self._buffer) < size and not self._eof:
            try:
                self._buffer.extend(await self._chunks.__anext__())
            except StopAsyncIteration:
                self._eof = True

    async def _read(self, size: int) -> bytes:
        await self._fill(size)
        if len(self._buffer) < size:
            raise ArchiveCorrupted("Archive is truncated")
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    async def _skip(self, size: int) -> None:
        while size > 0:
            await self._fill(1)
            if not self._buffer:
                raise ArchiveCorrupted("Archive is truncated")
            count = min(size, len(self._buffer))
            del self._buffer[:count]
            size -= count

    async def _next_header(self) -> Optional[tarfile.TarInfo]:
        await self._fill(BLOCK_SIZE)
        if not self._buffer:
            return None
        if len(self._buffer) < BLOCK_SIZE:
            raise ArchiveCorrupted("Archive is truncated: partial tar header")
        block = await self._read(BLOCK_SIZE)
        try:
            return tarfile.TarInfo.frombuf(block, "utf-8", "surrogateescape")
        except (tarfile.EmptyHeaderError, tarfile.EOFHeaderError):
            # Zero block marks the end of the archive.
            return None
        except tarfile.HeaderError as e:
            raise ArchiveCorrupted(f"Invalid tar header: {e}") from e

    async def find(self, target: str) -> Optional[tarfile.TarInfo]:
        """Advance to the regular file named ``target``.

        Returns:
            Its header, positioned at the start of its data, or None when the
            archive ends first.
        """
        long_name = None
        while True:
            info = await self._next_header()
            if info is None:
                return None
            padded = -(-info.size // BLOCK_SIZE) * BLOCK_SIZE

            if info.type in (tarfile.GNUTYPE_LONGNAME, tarfile.XHDTYPE):
                data = await self._read(padded)
                if info.type == tarfile.GNUTYPE_LONGNAME:
                    long_name = data[:info.size].rstrip(b"\0").decode("utf-8", "surrogateescape")
                else:
                    long_name = _parse_pax_path(data[:info.size]) or long_name
                continue

            name = long_name or info.name
            long_name = None
            if info.isreg() and normalize_entry_path(name) == target:
                return info
            logger.debug("Skipping %s", name)
            await self._skip(padded)

    async def stream(self, size: int) -> AsyncIterator[bytes]:
        """Yield the next ``size`` bytes of entry data."""
        while size > 0:
            await self._fill(1)
            if not self._buffer:
                raise ArchiveCorrupted("Archive is truncated")
            count = min(size, len(self._buffer))
            yield bytes(self._buffer[:count])
            del self._buffer[:count]
            size -= count


class ArchiveStore:
    """Downloads package archives once and serves files out of them."""

    def __init__(
        self,
        disk: DiskCache,
        origin: OriginClient,
        locks: LockRegistry,
        download_timeout: float = Constants.DOWNLOAD_WAIT_TIMEOUT,
    ):
        self._disk = disk
        self._origin = origin
        self._locks = locks
        self._download_timeout = download_timeout

    def archive_path(self, fullname: str, version: str) -> str:
        return self._disk.archive_path(fullname, version)

    async def is_downloaded(self, fullname: str, version: str) -> bool:
        return await aiofiles.os.path.isfile(self.archive_path(fullname, version))

    async def download(self, coordinates: PackageCoordinates, version: str) -> str:
        """Make sure the archive of ``version`` is on disk.

        Concurrent callers for the same package version share one transfer;
        waiters give up with :class:`LockTimeout` after ``download_timeout``.

        Returns:
            Path of the archive.
        """
        fullname = coordinates.fullname
        path = self.archive_path(fullname, version)
        if await aiofiles.os.path.isfile(path):
            return path

        async def _download() -> str:
            if await aiofiles.os.path.isfile(path):
                return path
            return await self._origin.download_archive(fullname, coordinates.name, version, self._disk)

        lock = self._locks.get(fullname)
        return await lock.run(
            f"{LockKeys.TARBALL.value}:{version}",
            _download,
            timeout=self._download_timeout,
        )

    async def etag(self, fullname: str, version: str) -> str:
        """Fingerprint of the archive, derived from its modification time."""
        stats = await aiofiles.os.stat(self.archive_path(fullname, version))
        mtime = datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc)
        stamp = mtime.strftime("%Y-%m-%dT%H:%M:%S.") + f"{mtime.microsecond // 1000:03d}Z"
        return hashlib.sha1(stamp.encode("utf-8")).hexdigest()

    async def iter_entry(self, fullname: str, version: str, path: str) -> AsyncIterator[bytes]:
        """Yield the bytes of ``path`` from the archive of ``fullname@version``.

        Raises:
            ArchiveNotFound: The archive is not on disk.
            EntryNotFound: The archive has no such file.
            ArchiveCorrupted: The archive cannot be decompressed or parsed.
        """
        archive = self.archive_path(fullname, version)
        target = archive_entry_name(path)
        try:
            async with aiofiles.open(archive, "rb") as f:
                reader = _TarReader(_gunzip(f))
                info = await reader.find(target)
                if info is None:
                    raise EntryNotFound(fullname, version, path)
                logger.debug("File %s found in %s - streaming", target, archive)
                async for chunk in reader.stream(info.size):
                    yield chunk
        except FileNotFoundError as e:
            raise ArchiveNotFound(fullname, version) from e
        logger.debug("File %s has been transferred successfully", target)

    async def extract(self, fullname: str, version: str, path: str, output) -> int:
        """Write the file at ``path`` to ``output``.

        Args:
            output: Object with an async ``write(bytes)`` method.

        Returns:
            Number of bytes written.
        """
        written = 0
        async for chunk in self.iter_entry(fullname, version, path):
            await output.write(chunk)
            written += len(chunk)
        return written
