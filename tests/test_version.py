"""Tests for the version model: parsing, ordering, matching."""

import pytest

from src.versioning.models import Version, compare
from src.versioning.parser import parse, stringify
from src.versioning.matching import match, max_version


class TestVersionParse:
    """Tests for parse()."""

    def test_bare_integer_is_major_only(self):
        assert parse("2") == Version(major=2)

    def test_full_version(self):
        result = parse("1.2.3-beta.4+build.5")
        assert result == Version(major=1, minor=2, patch=3, tag="beta", iteration="4", meta="build", build="5")

    def test_partial_version(self):
        assert parse("2.3") == Version(major=2, minor=3)

    def test_prerelease_without_iteration(self):
        result = parse("2.3.5-beta")
        assert result.tag == "beta"
        assert result.iteration is None

    def test_zero_components_are_present(self):
        result = parse("0.0.0")
        assert result == Version(major=0, minor=0, patch=0)
        assert not result.is_empty

    @pytest.mark.parametrize("text", ["beta", "latest", "", None, "^1.2.3", "1.2.3.4", "01.2.3"])
    def test_unparseable_is_empty(self, text):
        assert parse(text).is_empty


class TestVersionStringify:
    """Tests for stringify()."""

    @pytest.mark.parametrize("text", ["1", "1.2", "1.2.3", "1.2.3-beta", "1.2.3-beta.0", "1.0.0+meta.7", "2.0.0-rc.1+sha.abc"])
    def test_inverse_of_parse(self, text):
        assert stringify(parse(text)) == text

    def test_empty_version(self):
        assert stringify(Version()) == ""

    def test_skips_absent_fields(self):
        assert stringify(Version(major=1, patch=3)) == "1.3"


class TestVersionCompare:
    """Tests for compare() and ordering."""

    @pytest.mark.parametrize("text", ["1", "1.2", "1.2.3", "1.2.3-beta.1", "1.2.3+meta.1", "0.0.0"])
    def test_reflexive(self, text):
        assert compare(parse(text), parse(text)) == 0

    def test_numeric_parts(self):
        assert compare(parse("2.0.0"), parse("1.9.9")) == 1
        assert compare(parse("1.10.0"), parse("1.9.0")) == 1
        assert compare(parse("1.2.3"), parse("1.2.4")) == -1

    def test_prerelease_sorts_before_release(self):
        assert compare(parse("1.0.0-beta"), parse("1.0.0")) == -1
        assert compare(parse("1.0.0"), parse("1.0.0-beta")) == 1

    def test_tags_compare_as_strings(self):
        assert compare(parse("1.0.0-alpha"), parse("1.0.0-beta")) == -1

    def test_iteration_breaks_tie(self):
        assert compare(parse("1.0.0-beta.1"), parse("1.0.0-beta.2")) == -1

    def test_sorting(self):
        versions = [parse(v) for v in ["2.0.0", "1.0.0-beta", "1.0.0", "0.9.1"]]
        assert [stringify(v) for v in sorted(versions)] == ["0.9.1", "1.0.0-beta", "1.0.0", "2.0.0"]


class TestVersionMatch:
    """Tests for match()."""

    def test_partial_template_matches(self):
        assert match(parse("2.3"), parse("2.3.9")) is True

    def test_partial_template_rejects(self):
        assert match(parse("2.3"), parse("2.4.0")) is False

    def test_empty_template_matches_release(self):
        assert match(parse(None), parse("5.1.0")) is True

    def test_release_template_rejects_prerelease(self):
        assert match(parse("2"), parse("2.1.0-beta.1")) is False

    def test_prerelease_template_requires_same_tag(self):
        assert match(parse("2.1.0-beta"), parse("2.1.0-beta.3")) is True
        assert match(parse("2.1.0-beta"), parse("2.1.0-rc.1")) is False
        assert match(parse("2.1.0-beta"), parse("2.1.0")) is False


class TestMaxVersion:
    """Tests for max_version()."""

    def test_picks_greatest_match(self):
        assert max_version("2", ["1.9.0", "2.0.0", "2.3.4", "3.0.0"], "1.0.0") == "2.3.4"

    def test_fallback_when_nothing_matches(self):
        assert max_version("9", ["1.0.0"], "1.0.0") == "1.0.0"

    def test_skips_prereleases_for_release_template(self):
        assert max_version("1", ["1.0.0", "1.1.0-beta.0"], None) == "1.0.0"

    def test_exact_version(self):
        assert max_version("1.0.0", ["1.0.0", "1.0.1"], None) == "1.0.0"

    def test_ignores_unparseable_candidates(self):
        assert max_version(None, ["garbage", "0.1.0"], "x") == "0.1.0"

    def test_no_candidates(self):
        assert max_version("1", [], None) is None
