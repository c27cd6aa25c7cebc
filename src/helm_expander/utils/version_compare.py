"""Semver parsing and constraint matching utilities.

Constraints follow the syntax understood by Helm and Flux:

* comparators ``=``, ``!=``, ``>``, ``>=``, ``<``, ``<=``, ``~``, ``~>`` and ``^``
* wildcards ``x``, ``X`` and ``*`` in any version position (``1.2.x``)
* hyphen ranges (``1.2 - 1.4.5``)
* AND groups separated by commas or spaces, OR groups separated by ``||``

A pre-release version only satisfies an AND group in which at least one
comparator carries a pre-release itself.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from packaging.version import InvalidVersion, Version

from helm_expander.core.errors import ConfigError

_SEMVER = re.compile(
    r"^v?(?P<major>\d+)(?:\.(?P<minor>\d+))?(?:\.(?P<patch>\d+))?"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?(?:\+(?P<build>[0-9A-Za-z.-]+))?$"
)
_PARTIAL = re.compile(
    r"^v?(?P<major>\d+|[xX*])(?:\.(?P<minor>\d+|[xX*]))?(?:\.(?P<patch>\d+|[xX*]))?"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?(?:\+(?P<build>[0-9A-Za-z.-]+))?$"
)
_COMPARATOR = re.compile(r"^(?P<op>~>|>=|<=|!=|=|>|<|~|\^)?(?P<version>.*)$")
_OP_SPACING = re.compile(r"(~>|>=|<=|!=|=|>|<|~|\^)\s+")
_HYPHEN = re.compile(r"(\S+)\s+-\s+(\S+)")
_WILDCARDS = ("x", "X", "*")


def parse_version(v: str) -> Version | None:
    """Parse a version string, returning None on failure."""
    try:
        return Version(v)
    except InvalidVersion:
        # Try stripping leading 'v'
        if v.startswith("v"):
            try:
                return Version(v[1:])
            except InvalidVersion:
                pass
    return None


def is_concrete_version(v: str) -> bool:
    """True if ``v`` names one semantic version rather than a range."""
    return bool(_SEMVER.match(v.strip())) and parse_version(v.strip()) is not None


@dataclass(frozen=True)
class _Bound:
    op: str
    version: Version

    def allows(self, v: Version) -> bool:
        if self.op == ">=":
            return v >= self.version
        if self.op == ">":
            return v > self.version
        if self.op == "<":
            return v < self.version
        if self.op == "<=":
            return v <= self.version
        if self.op == "!=":
            return v != self.version
        return v == self.version


@dataclass(frozen=True)
class _Comparator:
    """One comparator expanded into version bounds.

    ``negate`` inverts the whole bound set (``!=1.2.x``).
    """

    bounds: tuple[_Bound, ...]
    prerelease: bool
    negate: bool = False

    def allows(self, v: Version) -> bool:
        inside = all(b.allows(v) for b in self.bounds)
        return not inside if self.negate else inside


def _make_version(parts: list[int], pre: str | None = None) -> Version:
    text = ".".join(str(p) for p in parts)
    if pre:
        text = f"{text}-{pre}"
    try:
        return Version(text)
    except InvalidVersion as e:
        raise ConfigError(f"unsupported version {text!r} in constraint") from e


def _bump(parts: list[int], index: int) -> Version:
    bumped = parts[:index] + [parts[index] + 1] + [0] * (2 - index)
    return _make_version(bumped)


def _parse_comparator(text: str, constraint: str) -> _Comparator:
    m = _COMPARATOR.match(text)
    op = (m.group("op") if m else None) or "="
    raw = m.group("version") if m else text
    pm = _PARTIAL.match(raw)
    if not pm:
        raise ConfigError(f"invalid version constraint {constraint!r}")

    given = 0
    parts: list[int] = []
    for name in ("major", "minor", "patch"):
        value = pm.group(name)
        if value is None or value in _WILDCARDS:
            break
        parts.append(int(value))
        given += 1
    pre = pm.group("pre") if given == 3 else None
    padded = parts + [0] * (3 - given)

    if given == 0:
        # "*", "x", ">=*" and friends match every release
        if op in ("<", "!="):
            return _Comparator(bounds=(), prerelease=False, negate=True)
        return _Comparator(bounds=(), prerelease=False)

    lower = _make_version(padded, pre)
    exact = given == 3

    if op == "=":
        if exact:
            bounds = (_Bound("==", lower),)
        else:
            bounds = (_Bound(">=", lower), _Bound("<", _bump(padded, given - 1)))
    elif op == "!=":
        if exact:
            bounds = (_Bound("!=", lower),)
        else:
            return _Comparator(
                bounds=(_Bound(">=", lower), _Bound("<", _bump(padded, given - 1))),
                prerelease=bool(pre),
                negate=True,
            )
    elif op == ">":
        bounds = (_Bound(">", lower),) if exact else (_Bound(">=", _bump(padded, given - 1)),)
    elif op == ">=":
        bounds = (_Bound(">=", lower),)
    elif op == "<":
        bounds = (_Bound("<", lower),)
    elif op == "<=":
        bounds = (_Bound("<=", lower),) if exact else (_Bound("<", _bump(padded, given - 1)),)
    elif op in ("~", "~>"):
        upper = _bump(padded, 1) if given >= 2 else _bump(padded, 0)
        bounds = (_Bound(">=", lower), _Bound("<", upper))
    else:  # ^
        if padded[0] > 0 or given == 1:
            upper = _bump(padded, 0)
        elif padded[1] > 0 or given == 2:
            upper = _bump(padded, 1)
        else:
            upper = _bump(padded, 2)
        bounds = (_Bound(">=", lower), _Bound("<", upper))
    return _Comparator(bounds=bounds, prerelease=bool(pre))


class VersionConstraint:
    """A parsed constraint such as ``>=1.2.0 <2.0.0 || ^3``."""

    def __init__(self, text: str):
        self.text = text
        source = text.strip() or "*"
        self._groups: list[list[_Comparator]] = []
        for group in source.split("||"):
            group = _HYPHEN.sub(r">=\1 <=\2", group.strip())
            group = _OP_SPACING.sub(r"\1", group)
            tokens = [t for t in re.split(r"[\s,]+", group) if t]
            if not tokens:
                raise ConfigError(f"invalid version constraint {text!r}")
            self._groups.append([_parse_comparator(t, text) for t in tokens])

    def allows(self, version: str | Version) -> bool:
        v = parse_version(version) if isinstance(version, str) else version
        if v is None:
            return False
        for group in self._groups:
            if v.is_prerelease and not any(c.prerelease for c in group):
                continue
            if all(c.allows(v) for c in group):
                return True
        return False

    def __str__(self) -> str:
        return self.text or "*"


def parse_constraint(text: str) -> VersionConstraint:
    """Parse a constraint string; an empty string means any version."""
    return VersionConstraint(text)


def highest_matching(candidates: Iterable[str], constraint: str) -> str | None:
    """Return the highest candidate satisfying ``constraint``.

    Candidates that do not parse as versions are ignored.
    """
    parsed = parse_constraint(constraint)
    best: tuple[Version, str] | None = None
    for candidate in candidates:
        v = parse_version(candidate)
        if v is None or not parsed.allows(v):
            continue
        if best is None or v > best[0]:
            best = (v, candidate)
    return best[1] if best else None
