"""Structured package versions: parsing, ordering and template matching."""

from .models import Version, compare
from .parser import parse, stringify
from .matching import match, max_version

__all__ = [
    "Version",
    "compare",
    "parse",
    "stringify",
    "match",
    "max_version",
]
