"""Upstream client for the npm registry."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Dict, Optional

import aiohttp
import aiofiles
import aiofiles.os

from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from constants import Constants
from .cache import DiskCache
from .errors import ArchiveNotFound, PackageNotFound, UpstreamError
from .models import PackageMetadata

logger = logging.getLogger(__name__)


class OriginClient:
    """Fetches packuments and archives from the upstream registry."""

    def __init__(
        self,
        registry: str = Constants.REGISTRY_URL_NPM,
        timeout: int = Constants.REQUEST_TIMEOUT,
    ):
        """Initialize the origin client.

        Args:
            registry: Base URL of the upstream registry.
            timeout: Request timeout in seconds.
        """
        self._registry = registry.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def registry(self) -> str:
        return self._registry

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            connector = aiohttp.TCPConnector(limit=100)
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                connector=connector,
                headers=self._build_request_headers(),
            )

    async def stop(self) -> None:
        """Stop the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    def metadata_url(self, fullname: str) -> str:
        return f"{self._registry}/{fullname}"

    def archive_url(self, fullname: str, name: str, version: str) -> str:
        """Tarball URL; the file name never carries the scope."""
        return f"{self._registry}/{fullname}/-/{name}-{version}.tgz"

    def _build_request_headers(self) -> Dict[str, str]:
        return {
            "User-Agent": Constants.USER_AGENT,
            "Accept": "*/*",
        }

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            await self.start()
        assert self._session is not None
        return self._session

    async def get_metadata(self, fullname: str) -> PackageMetadata:
        """Fetch the packument for ``fullname``.

        Raises:
            PackageNotFound: The registry answered 404 or an error payload.
            UpstreamError: Network failure, server error or malformed JSON.
        """
        session = await self._ensure_session()
        url = self.metadata_url(fullname)
        target = safe_url(url)
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(event="http_request", component="origin", action="GET", target=target),
            )

        with Timer() as t:
            try:
                async with session.get(url, headers={"Accept": "application/json"}) as response:
                    status = response.status
                    body = await response.read()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.error(
                    "Registry request for %s failed: %s",
                    fullname,
                    e,
                    extra=extra_context(event="http_error", component="origin", target=target),
                )
                raise UpstreamError(f"Registry request for {fullname} failed: {e}") from e

        logger.debug(
            "Registry answered %s for %s in %sms",
            status,
            fullname,
            t.duration_ms(),
            extra=extra_context(event="http_response", component="origin", status_code=status, target=target),
        )

        if status == 404:
            raise PackageNotFound(fullname)
        if status != 200:
            raise UpstreamError(f"Registry answered {status} for {fullname}")

        try:
            document = json.loads(body)
        except ValueError as e:
            raise UpstreamError(f"Registry sent malformed metadata for {fullname}") from e
        if not isinstance(document, dict):
            raise UpstreamError(f"Registry sent malformed metadata for {fullname}")

        metadata = PackageMetadata(document)
        if metadata.is_error:
            raise PackageNotFound(fullname)
        return metadata

    async def download_archive(
        self,
        fullname: str,
        name: str,
        version: str,
        disk: DiskCache,
    ) -> str:
        """Stream the archive to its canonical path in ``disk``.

        Bytes go to a temporary file that is renamed into place only after the
        whole body arrived, so an interrupted transfer never looks complete.

        Returns:
            Path of the stored archive.

        Raises:
            ArchiveNotFound: The registry has no such archive.
            UpstreamError: Network failure or unexpected status.
        """
        session = await self._ensure_session()
        url = self.archive_url(fullname, name, version)
        path = disk.archive_path(fullname, version)
        await disk.ensure_parent(path)
        tmp_path = disk.temp_path(path)
        logger.debug("Downloading file %s to %s", safe_url(url), path)

        with Timer() as t:
            try:
                async with session.get(url) as response:
                    if response.status == 404:
                        raise ArchiveNotFound(fullname, version)
                    if response.status != 200:
                        raise UpstreamError(f"Registry answered {response.status} for {url}")
                    size = 0
                    async with aiofiles.open(tmp_path, "wb") as f:
                        async for chunk in response.content.iter_chunked(Constants.CHUNK_SIZE):
                            await f.write(chunk)
                            size += len(chunk)
                await aiofiles.os.replace(tmp_path, path)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                await disk.discard(tmp_path)
                raise UpstreamError(f"Downloading {url} failed: {e}") from e
            except BaseException:
                await disk.discard(tmp_path)
                raise

        logger.debug(
            "File %s downloaded to %s (%s bytes in %sms)",
            safe_url(url),
            path,
            size,
            t.duration_ms(),
        )
        return path

    async def __aenter__(self) -> "OriginClient":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.stop()
