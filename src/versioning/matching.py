"""Template matching and best-candidate selection for requested versions."""

from typing import Iterable, Optional

from .models import Version
from .parser import parse, stringify


def match(template: Version, version: Version) -> bool:
    """Check whether ``version`` satisfies the partial ``template``.

    Fields the template leaves unset match anything. The tag is the
    exception: template and candidate must agree on whether a tag is present,
    so an untagged template never selects a pre-release and vice versa.
    """
    if template.is_prerelease != version.is_prerelease:
        return False
    for name in ("major", "minor", "patch", "tag", "iteration", "meta", "build"):
        expected = getattr(template, name)
        if expected is not None and expected != getattr(version, name):
            return False
    return True


def max_version(
    requested: Optional[str],
    candidates: Iterable[str],
    fallback: Optional[str],
) -> Optional[str]:
    """Return the greatest candidate matching ``requested``.

    Args:
        requested: Loose version request, e.g. ``"2"``, ``"2.3"`` or ``None``.
        candidates: Concrete version strings available for the package.
        fallback: Value returned when no candidate matches.

    Returns:
        The stringified greatest match, or ``fallback``.
    """
    template = parse(requested)
    matching = [v for v in (parse(c) for c in candidates) if not v.is_empty and match(template, v)]
    if not matching:
        return fallback
    return stringify(max(matching))
