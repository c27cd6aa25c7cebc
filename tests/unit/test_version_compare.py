"""Tests for semver parsing and constraint matching."""

from __future__ import annotations

import pytest

from helm_expander.core.errors import ConfigError
from helm_expander.utils.version_compare import (
    highest_matching,
    is_concrete_version,
    parse_constraint,
    parse_version,
)


class TestParseVersion:
    def test_plain(self) -> None:
        assert str(parse_version("1.2.3")) == "1.2.3"

    def test_leading_v(self) -> None:
        assert str(parse_version("v1.2.3")) == "1.2.3"

    def test_garbage(self) -> None:
        assert parse_version("latest") is None


class TestIsConcreteVersion:
    @pytest.mark.parametrize("value", ["0.1.0", "v1.2.3", "1.2", "1.0.0-rc.1"])
    def test_concrete(self, value: str) -> None:
        assert is_concrete_version(value)

    @pytest.mark.parametrize("value", ["", "*", ">=0.1.0", "^1.2", "1.x", "~1.2.3"])
    def test_ranges(self, value: str) -> None:
        assert not is_concrete_version(value)


class TestConstraint:
    @pytest.mark.parametrize(
        ("constraint", "version", "expected"),
        [
            ("", "1.2.3", True),
            ("*", "0.0.1", True),
            ("1.2.3", "1.2.3", True),
            ("1.2.3", "1.2.4", False),
            ("=1.2", "1.2.9", True),
            ("=1.2", "1.3.0", False),
            ("!=1.2.3", "1.2.3", False),
            ("!=1.2.3", "1.2.4", True),
            (">1.2.3", "1.2.4", True),
            (">1.2", "1.2.9", False),
            (">1.2", "1.3.0", True),
            (">=1.2.3", "1.2.3", True),
            ("<1.2.3", "1.2.3", False),
            ("<=1.2", "1.2.9", True),
            ("<=1.2", "1.3.0", False),
            ("~1.2.3", "1.2.9", True),
            ("~1.2.3", "1.3.0", False),
            ("~1", "1.9.0", True),
            ("~1", "2.0.0", False),
            ("^1.2.3", "1.9.9", True),
            ("^1.2.3", "2.0.0", False),
            ("^0.2.3", "0.2.9", True),
            ("^0.2.3", "0.3.0", False),
            ("^0.0.3", "0.0.4", False),
            ("1.2.x", "1.2.7", True),
            ("1.x", "2.0.0", False),
            (">=1.0.0 <2.0.0", "1.5.0", True),
            (">=1.0.0, <2.0.0", "2.0.0", False),
            ("> 1.0.0", "1.0.1", True),
            ("1.0 - 1.4.5", "1.4.5", True),
            ("1.0 - 1.4.5", "1.4.6", False),
            ("<1.0.0 || >=3.0.0", "3.1.0", True),
            ("<1.0.0 || >=3.0.0", "2.0.0", False),
        ],
    )
    def test_allows(self, constraint: str, version: str, expected: bool) -> None:
        assert parse_constraint(constraint).allows(version) is expected

    def test_prerelease_excluded_without_prerelease_comparator(self) -> None:
        assert not parse_constraint(">=1.0.0").allows("1.1.0-rc.1")

    def test_prerelease_included_with_prerelease_comparator(self) -> None:
        assert parse_constraint(">=1.1.0-rc.0").allows("1.1.0-rc.1")

    @pytest.mark.parametrize("constraint", ["not-a-version", ">=", "1.2.3.4.5", "||"])
    def test_malformed(self, constraint: str) -> None:
        with pytest.raises(ConfigError):
            parse_constraint(constraint)


class TestHighestMatching:
    def test_picks_highest_satisfying(self) -> None:
        tags = ["0.1.0", "0.2.0", "1.0.0", "latest"]
        assert highest_matching(tags, "<1.0.0") == "0.2.0"

    def test_empty_constraint_means_any(self) -> None:
        assert highest_matching(["0.1.0", "0.10.0", "0.9.0"], "") == "0.10.0"

    def test_keeps_original_spelling(self) -> None:
        assert highest_matching(["v1.0.0", "v1.1.0"], "^1") == "v1.1.0"

    def test_no_match(self) -> None:
        assert highest_matching(["0.1.0"], ">=1") is None
