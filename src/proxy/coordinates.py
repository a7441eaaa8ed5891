"""Parser for package coordinates in request paths.

Coordinates look like ``[@scope/]name[@version][/path/within/package]``::

    @scope/package-name@1.2.3/dist/index.js

parses into scope ``@scope``, name ``package-name``, version ``1.2.3`` and
path ``dist/index.js``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PackageCoordinates:
    """Result of parsing a coordinates string.

    Absent fields are ``None``: an absent version resolves to the latest
    release, an absent path to the package's declared entry point.
    """

    name: str
    scope: Optional[str] = None
    version: Optional[str] = None
    path: Optional[str] = None

    @property
    def fullname(self) -> str:
        """``scope/name`` for scoped packages, else ``name``."""
        if self.scope:
            return f"{self.scope}/{self.name}"
        return self.name

    def qualified(self, version: str, path: str) -> str:
        """Canonical coordinates pinned to ``version`` and ``path``."""
        return f"{self.fullname}@{version}/{path}"


def parse_coordinates(coordinates: str) -> PackageCoordinates:
    """Parse a coordinates string.

    Never raises; malformed input gives a mostly-empty result that metadata
    resolution rejects later.

    Args:
        coordinates: The path segment after the serving prefix.

    Returns:
        PackageCoordinates with absent fields set to None.
    """
    parts = [p for p in coordinates.split("/") if p]
    if not parts:
        return PackageCoordinates(name="")

    scope = None
    if parts[0].startswith("@"):
        scope = parts.pop(0)

    if parts:
        name, _, version = parts[0].partition("@")
        path = "/".join(parts[1:])
    else:
        name, version, path = "", "", ""

    return PackageCoordinates(
        name=name,
        scope=scope,
        version=version or None,
        path=path or None,
    )
