"""Package file server using aiohttp."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import signal
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from aiohttp import web

from constants import Constants
from versioning.matching import max_version
from .archive import ArchiveStore, normalize_entry_path
from .cache import DiskCache, MemoryCache
from .coordinates import PackageCoordinates, parse_coordinates
from .errors import NotFound, ServeError, UnprocessableRequest
from .locks import LockRegistry
from .metadata import MetadataResolver
from .models import PackageMetadata
from .upstream import OriginClient

logger = logging.getLogger(__name__)

mimetypes.add_type("text/javascript", ".mjs")
mimetypes.add_type("text/javascript", ".cjs")
mimetypes.add_type("application/json", ".map")


def normalize_prefix(prefix: str) -> str:
    """Ensure the serving prefix starts and ends with a slash."""
    prefix = prefix or "/"
    if not prefix.startswith("/"):
        prefix = "/" + prefix
    if not prefix.endswith("/"):
        prefix = prefix + "/"
    return prefix


def content_type_for(path: str) -> str:
    content_type, _ = mimetypes.guess_type(path)
    return content_type or "application/octet-stream"


@dataclass
class ServeConfig:
    """Configuration for the package server."""

    host: str = Constants.DEFAULT_HOST
    port: int = Constants.DEFAULT_PORT
    prefix: str = Constants.DEFAULT_PREFIX
    storage: str = Constants.DEFAULT_STORAGE
    registry: str = Constants.REGISTRY_URL_NPM
    max_age: int = Constants.DEFAULT_MAX_AGE
    update_interval: float = Constants.DEFAULT_UPDATE_INTERVAL
    cors: bool = False
    cors_origin: Optional[str] = None
    timeout: int = Constants.REQUEST_TIMEOUT
    download_timeout: float = Constants.DOWNLOAD_WAIT_TIMEOUT
    document_root: Optional[str] = None

    def __post_init__(self) -> None:
        self.prefix = normalize_prefix(self.prefix)

    @classmethod
    def from_args(cls, args: Any, overrides: Optional[Dict[str, Any]] = None) -> "ServeConfig":
        """Create config from CLI arguments.

        Values from ``overrides`` (the ``serve`` section of a config file) are
        applied first; options given on the command line win over them.

        Args:
            args: Parsed CLI arguments namespace.
            overrides: Optional mapping of field name to value.

        Returns:
            ServeConfig instance.
        """
        config = cls()
        known = set(cls.__dataclass_fields__)  # pylint: disable=no-member
        for key, value in (overrides or {}).items():
            key = key.replace("-", "_")
            if key not in known:
                logger.warning("Ignoring unknown configuration key: %s", key)
                continue
            setattr(config, key, value)

        cli_values = {
            "host": getattr(args, "HOST", None),
            "port": getattr(args, "PORT", None),
            "prefix": getattr(args, "PREFIX", None),
            "storage": getattr(args, "STORAGE", None),
            "registry": getattr(args, "REGISTRY", None),
            "max_age": getattr(args, "MAX_AGE", None),
            "update_interval": getattr(args, "UPDATE_INTERVAL", None),
            "cors_origin": getattr(args, "CORS_ORIGIN", None),
            "timeout": getattr(args, "TIMEOUT", None),
            "download_timeout": getattr(args, "DOWNLOAD_TIMEOUT", None),
            "document_root": getattr(args, "DOCUMENT_ROOT", None),
        }
        for key, value in cli_values.items():
            if value is not None:
                setattr(config, key, value)
        if getattr(args, "CORS", False) is True:
            config.cors = True

        config.prefix = normalize_prefix(config.prefix)
        return config


class PackageServer:
    """HTTP server answering file requests out of npm packages.

    Requests are ``GET {prefix}[@scope/]name[@version][/path]``. Loose
    requests (dist-tag, partial version, missing path) are redirected to the
    fully-qualified coordinates; fully-qualified ones are streamed out of
    the cached archive with caching headers.
    """

    def __init__(self, config: ServeConfig):
        """Initialize the package server.

        Args:
            config: Server configuration.
        """
        self._config = config
        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None

        self._locks = LockRegistry()
        self._memory = MemoryCache(ttl=config.update_interval)
        self._disk = DiskCache(config.storage)
        self._origin = OriginClient(registry=config.registry, timeout=config.timeout)
        self._metadata = MetadataResolver(self._memory, self._disk, self._origin, self._locks)
        self._archives = ArchiveStore(
            self._disk,
            self._origin,
            self._locks,
            download_timeout=config.download_timeout,
        )

    def _create_app(self) -> web.Application:
        """Create the aiohttp application."""
        middlewares = [self._cors_preflight] if self._config.cors else []
        app = web.Application(middlewares=middlewares)
        app.router.add_get(Constants.HEALTH_PATH, self._health_check)
        app.router.add_get(self._config.prefix + "{coordinates:.*}", self._handle_package)
        if self._config.document_root:
            app.router.add_static("/", self._config.document_root)
        if self._config.cors:
            app.on_response_prepare.append(self._add_cors_headers)
        app.on_startup.append(self._on_startup)
        app.on_cleanup.append(self._on_cleanup)
        return app

    async def _on_startup(self, app: web.Application) -> None:
        """Called when the server starts."""
        await self._origin.start()
        logger.info("Package server starting on %s:%s", self._config.host, self._config.port)

    async def _on_cleanup(self, app: web.Application) -> None:
        """Called when the server stops."""
        await self._metadata.close()
        await self._origin.stop()
        logger.info("Package server stopped")

    async def _health_check(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({
            "status": "ok",
            "registry": self._config.registry,
            "cache": self.cache_stats(),
        })

    @web.middleware
    async def _cors_preflight(self, request: web.Request, handler) -> web.StreamResponse:
        """Answer CORS preflight requests without touching the handlers."""
        if request.method == "OPTIONS":
            return web.Response(status=204)
        return await handler(request)

    async def _add_cors_headers(self, request: web.Request, response: web.StreamResponse) -> None:
        origin = self._config.cors_origin or request.headers.get("Origin")
        response.headers["Access-Control-Allow-Private-Network"] = "true"
        if origin:
            response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Access-Control-Allow-Headers"] = "Origin, Content-Type"
        response.headers["Access-Control-Allow-Methods"] = "GET, OPTIONS"

    async def _handle_package(self, request: web.Request) -> web.StreamResponse:
        """Handle a package file request.

        Args:
            request: Incoming HTTP request.

        Returns:
            HTTP response.
        """
        coordinates = parse_coordinates(request.match_info["coordinates"])
        logger.debug("Requested %s", request.path_qs)

        try:
            return await self._serve(request, coordinates)
        except NotFound as e:
            logger.info("%s", e.message)
            return web.Response(status=e.status, text=e.message)
        except ServeError as e:
            if e.status >= 500:
                logger.error("Request %s failed: %s", request.path, e.message)
            else:
                logger.info("Request %s rejected: %s", request.path, e.message)
            return web.Response(status=e.status, text=e.message)
        except ConnectionError:
            # Response already started; let aiohttp drop the connection.
            raise
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.exception("Unexpected error serving %s", request.path)
            return web.Response(status=500, text=str(e))

    def resolve_target(
        self,
        coordinates: PackageCoordinates,
        metadata: PackageMetadata,
    ) -> Tuple[str, str]:
        """Pick the concrete version and path a request refers to.

        The version is a dist-tag lookup (an absent version means
        ``latest``), falling back to the greatest published version matching
        the request, falling back to ``latest``. The path is the requested one
        or the version's declared entry point.

        Raises:
            NotFound: No version could be resolved.
            UnprocessableRequest: No path requested and no entry point declared.
        """
        requested = coordinates.version or "latest"
        version = metadata.dist_tags.get(requested)
        if not version:
            version = max_version(coordinates.version, metadata.versions, metadata.latest)
        if not version:
            raise NotFound(f"No version of {coordinates.fullname} matches {requested}")

        path = coordinates.path
        if not path:
            main = metadata.main(version)
            path = normalize_entry_path(main) if main else None
        if not path:
            raise UnprocessableRequest(
                f"No path requested and {coordinates.fullname}@{version} declares no entry point"
            )
        return version, path

    async def _serve(self, request: web.Request, coordinates: PackageCoordinates) -> web.StreamResponse:
        fullname = coordinates.fullname
        metadata = await self._metadata.resolve(fullname)
        version, path = self.resolve_target(coordinates, metadata)

        if version != coordinates.version or path != coordinates.path:
            # Templated request: only fully-qualified coordinates are served so
            # every cacheable response maps to exactly one archive entry.
            location = self._config.prefix + coordinates.qualified(version, path)
            logger.debug("Redirecting %s to %s", request.path, location)
            return web.Response(status=302, headers={"Location": location})

        await self._archives.download(coordinates, version)
        etag = await self._archives.etag(fullname, version)
        headers = {"Cache-Control": f"max-age={self._config.max_age}"}
        if any(tag.value in (etag, "*") for tag in request.if_none_match or ()):
            response = web.Response(status=304, headers=headers)
            response.etag = etag
            return response

        headers["Content-Type"] = content_type_for(path)
        return await self._stream(request, coordinates, version, path, etag, headers)

    async def _stream(
        self,
        request: web.Request,
        coordinates: PackageCoordinates,
        version: str,
        path: str,
        etag: str,
        headers: Dict[str, str],
    ) -> web.StreamResponse:
        """Stream the archive entry, preparing the response on first data.

        Until the entry is found nothing is sent, so a missing entry still
        produces a clean 404.
        """
        response = web.StreamResponse(status=200, headers=headers)
        response.etag = etag
        chunks = self._archives.iter_entry(coordinates.fullname, version, path)
        try:
            async for chunk in chunks:
                if not response.prepared:
                    await response.prepare(request)
                await response.write(chunk)
        except (ServeError, OSError) as e:
            if not response.prepared:
                raise
            logger.error("Streaming %s@%s/%s aborted: %s", coordinates.fullname, version, path, e)
            raise ConnectionAbortedError(str(e)) from e
        finally:
            await chunks.aclose()

        if not response.prepared:
            await response.prepare(request)
        await response.write_eof()
        return response

    def cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dict with memory cache, lock and refresh stats.
        """
        return {
            "memory_cache": self._memory.stats(),
            "locks": self._locks.stats(),
            "pending_refreshes": self._metadata.pending_refreshes,
            "storage": self._disk.storage,
        }

    async def start(self) -> None:
        """Start the package server."""
        self._app = self._create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        site = web.TCPSite(
            self._runner,
            self._config.host,
            self._config.port,
        )
        await site.start()

        logger.info(
            "npm-serve listening on http://%s:%s%s",
            self._config.host, self._config.port, self._config.prefix,
        )
        logger.info("Storage: %s", self._config.storage)
        logger.info("Upstream registry: %s", self._config.registry)

    async def stop(self) -> None:
        """Stop the package server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._app = None


def run_server_sync(config: ServeConfig) -> None:
    """Run the package server synchronously.

    Installs signal handlers for SIGTERM and SIGINT for clean shutdown.

    Args:
        config: Server configuration.
    """
    server = PackageServer(config)
    loop = asyncio.new_event_loop()

    async def run():
        await server.start()
        stop_event = asyncio.Event()
        running_loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            running_loop.add_signal_handler(sig, stop_event.set)
        await stop_event.wait()
        logger.info("Shutdown signal received, stopping...")
        await server.stop()

    try:
        loop.run_until_complete(run())
    except KeyboardInterrupt:
        # Fallback for platforms where signal handlers don't work (Windows)
        loop.run_until_complete(server.stop())
    finally:
        loop.close()
        logger.info("Package server shutdown complete")
