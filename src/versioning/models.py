"""Data models for versioning and package resolution."""

from dataclasses import dataclass, fields
from functools import total_ordering
from typing import Optional


@total_ordering
@dataclass(frozen=True)
class Version:
    """Structured form of ``major.minor.patch-tag.iteration+meta.build``.

    Every field is optional. ``None`` means the field was not present in the
    source text, which is distinct from ``0`` or an empty string: a template
    with ``minor=None`` matches any minor, one with ``minor=0`` only zero.
    """
    major: Optional[int] = None
    minor: Optional[int] = None
    patch: Optional[int] = None
    tag: Optional[str] = None
    iteration: Optional[str] = None
    meta: Optional[str] = None
    build: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        """True when nothing was parsed (no constraint / not resolvable)."""
        return all(getattr(self, f.name) is None for f in fields(self))

    @property
    def is_prerelease(self) -> bool:
        return self.tag is not None

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return compare(self, other) < 0


def _compare_numeric(a: Optional[int], b: Optional[int]) -> int:
    # An absent component sorts below any present one.
    if a == b:
        return 0
    if a is None:
        return -1
    if b is None:
        return 1
    return 1 if a > b else -1


def _compare_label(a: Optional[str], b: Optional[str]) -> int:
    # A present label sorts before an absent one, then plain string order.
    if a is not None and b is None:
        return -1
    if a is None and b is not None:
        return 1
    if a is None or a == b:
        return 0
    return -1 if a < b else 1


def compare(a: Version, b: Version) -> int:
    """Order two versions.

    Numeric parts decide first (higher wins). With equal numbers a
    pre-release (tagged) version sorts before the release, after which tag,
    iteration, meta and build break ties in that order.

    Returns:
        int: -1 if ``a < b``, 1 if ``a > b``, 0 otherwise.
    """
    for left, right in ((a.major, b.major), (a.minor, b.minor), (a.patch, b.patch)):
        result = _compare_numeric(left, right)
        if result:
            return result
    for left, right in (
        (a.tag, b.tag),
        (a.iteration, b.iteration),
        (a.meta, b.meta),
        (a.build, b.build),
    ):
        result = _compare_label(left, right)
        if result:
            return result
    return 0
