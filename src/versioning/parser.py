"""Version string parsing and formatting."""

import re
from typing import Optional

from .models import Version

# major[.minor[.patch]][-tag[.x]*][+meta[.x]*]; for repeated identifiers the
# last one is captured as iteration/build.
_IDENT = r"(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
_VERSION_PATTERN = re.compile(
    r"^(0|[1-9]\d*)"
    r"(?:\.(0|[1-9]\d*))?"
    r"(?:\.(0|[1-9]\d*))?"
    rf"(?:-({_IDENT})(?:\.({_IDENT}))*)?"
    r"(?:\+([0-9a-zA-Z-]+)(?:\.([0-9a-zA-Z-]+))*)?$"
)


def parse(text: Optional[str]) -> Version:
    """Parse a version string into a :class:`Version`.

    A bare integer becomes ``Version(major=n)``. Anything the pattern does not
    accept (including ``None``, dist-tag names and ranges) yields an empty
    ``Version``; it is never coerced to zero.
    """
    if text is None:
        return Version()
    text = text.strip()
    if text.isdigit():
        return Version(major=int(text))

    match = _VERSION_PATTERN.match(text)
    if match is None:
        return Version()

    major, minor, patch, tag, iteration, meta, build = match.groups()
    return Version(
        major=int(major),
        minor=int(minor) if minor is not None else None,
        patch=int(patch) if patch is not None else None,
        tag=tag or None,
        iteration=iteration or None,
        meta=meta or None,
        build=build or None,
    )


def stringify(version: Version) -> str:
    """Reassemble the present fields of ``version``, skipping absent ones."""
    parts = []
    for value, separator in (
        (version.major, ""),
        (version.minor, "."),
        (version.patch, "."),
        (version.tag, "-"),
        (version.iteration, "."),
        (version.meta, "+"),
        (version.build, "."),
    ):
        if value is None:
            continue
        if parts:
            parts.append(separator)
        parts.append(str(value))
    return "".join(parts)
