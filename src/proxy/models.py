"""Registry metadata document wrapper."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class PackageMetadata:
    """Read-only view over a registry packument.

    The raw JSON document is kept as-is so it can be written back to disk
    unchanged; accessors tolerate missing sections.
    """

    document: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        """True for the registry's ``{"error": ...}`` not-found payload."""
        return "error" in self.document and "versions" not in self.document

    @property
    def dist_tags(self) -> Dict[str, str]:
        tags = self.document.get("dist-tags")
        return tags if isinstance(tags, dict) else {}

    @property
    def versions(self) -> List[str]:
        versions = self.document.get("versions")
        return list(versions.keys()) if isinstance(versions, dict) else []

    @property
    def latest(self) -> Optional[str]:
        return self.dist_tags.get("latest")

    def manifest(self, version: Optional[str]) -> Dict[str, Any]:
        """Manifest of ``version``, or an empty mapping when unknown."""
        versions = self.document.get("versions")
        if not version or not isinstance(versions, dict):
            return {}
        manifest = versions.get(version)
        return manifest if isinstance(manifest, dict) else {}

    def main(self, version: Optional[str]) -> Optional[str]:
        """Declared entry point of ``version``, if any."""
        main = self.manifest(version).get("main")
        return main if isinstance(main, str) and main else None
