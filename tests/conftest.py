"""Shared fixtures: tarball builder and a fake upstream registry."""

import asyncio
import io
import json
import tarfile
from typing import Dict, Optional, Tuple

import pytest
from aiohttp import web


def build_tarball(files: Dict[str, bytes], fmt: int = tarfile.PAX_FORMAT) -> bytes:
    """Build a gzip-compressed tar archive in memory."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz", format=fmt) as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mtime = 1700000000
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class FakeRegistry:
    """Minimal npm registry serving packuments and tarballs, counting hits."""

    def __init__(self) -> None:
        self.packages: Dict[str, dict] = {}
        self.tarballs: Dict[Tuple[str, str], bytes] = {}
        self.metadata_hits: Dict[str, int] = {}
        self.tarball_hits: Dict[Tuple[str, str], int] = {}
        self.delay = 0.0
        self.fail_metadata = False

    def add_package(self, fullname: str, document: dict) -> None:
        self.packages[fullname] = document

    def add_tarball(self, fullname: str, version: str, files: Dict[str, bytes]) -> bytes:
        name = fullname.split("/")[-1]
        data = build_tarball(files)
        self.tarballs[(fullname, f"{name}-{version}.tgz")] = data
        return data

    async def _metadata(self, request: web.Request) -> web.Response:
        fullname = request.match_info["fullname"]
        self.metadata_hits[fullname] = self.metadata_hits.get(fullname, 0) + 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_metadata:
            return web.Response(status=503, text="unavailable")
        document = self.packages.get(fullname)
        if document is None:
            return web.json_response({"error": "Not found"}, status=404)
        return web.Response(body=json.dumps(document).encode(), content_type="application/json")

    async def _tarball(self, request: web.Request) -> web.Response:
        key = (request.match_info["fullname"], request.match_info["filename"])
        self.tarball_hits[key] = self.tarball_hits.get(key, 0) + 1
        if self.delay:
            await asyncio.sleep(self.delay)
        data = self.tarballs.get(key)
        if data is None:
            return web.Response(status=404, text="Not found")
        return web.Response(body=data, content_type="application/octet-stream")

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/{fullname:.+}/-/{filename}", self._tarball)
        app.router.add_get("/{fullname:.+}", self._metadata)
        return app


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def tarball_factory():
    return build_tarball


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


class FakeOrigin:
    """Stand-in for OriginClient without network access."""

    def __init__(self, metadata=None, error: Optional[Exception] = None, delay: float = 0.0):
        self.metadata = metadata
        self.error = error
        self.delay = delay
        self.metadata_calls = 0
        self.download_calls = 0
        self.archive: Optional[bytes] = None

    async def get_metadata(self, fullname):
        self.metadata_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.metadata

    async def download_archive(self, fullname, name, version, disk):
        self.download_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        path = disk.archive_path(fullname, version)
        await disk.ensure_parent(path)
        with open(path, "wb") as f:
            f.write(self.archive or b"")
        return path


@pytest.fixture
def fake_origin_factory():
    return FakeOrigin
