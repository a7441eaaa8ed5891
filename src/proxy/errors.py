"""Error taxonomy for package requests.

Each error carries the HTTP status the request handler answers with, so the
coordinator can translate failures without inspecting their type.
"""

from __future__ import annotations


class ServeError(Exception):
    """Base class for failures surfaced to the HTTP caller."""

    status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(ServeError):
    """Something the request names does not exist."""

    status = 404


class PackageNotFound(NotFound):
    """The registry does not know the package."""

    def __init__(self, fullname: str):
        super().__init__(f"Package {fullname} not found")
        self.fullname = fullname


class ArchiveNotFound(NotFound):
    """The registry has no archive for the resolved version."""

    def __init__(self, fullname: str, version: str):
        super().__init__(f"Archive for {fullname}@{version} not found")
        self.fullname = fullname
        self.version = version


class EntryNotFound(NotFound):
    """The requested path is not inside the package archive."""

    def __init__(self, fullname: str, version: str, path: str):
        super().__init__(f"Not found (in archive): {fullname}@{version}/{path}")
        self.path = path


class UnprocessableRequest(ServeError):
    """No path was requested and the version declares no entry point."""

    status = 422


class UpstreamError(ServeError):
    """The registry was unreachable or answered with unusable data."""


class ArchiveCorrupted(ServeError):
    """The cached archive could not be decompressed or parsed."""


class LockTimeout(ServeError):
    """Waiting on another request's in-flight operation took too long."""

    def __init__(self, name: str, key: str, timeout: float):
        super().__init__(f"Timed out after {timeout}s waiting for {key} of {name}")
        self.name = name
        self.key = key
