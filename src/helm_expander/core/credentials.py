"""Credential selection for chart repositories.

The credentials file maps a repository URL, or a bare ``host[:port]``, to a
bag of authentication values::

    https://charts.example.com/stable/:
      credentials:
        username: robot
        password: $CHARTS_PASSWORD
    git.example.com:
      credentials:
        identity: ${DEPLOY_KEY}
        known_hosts: ...

Placeholders are kept verbatim when the file is read and expanded against
the environment each time a repository looks its credentials up.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import IO, Mapping
from urllib.parse import urlsplit

import yaml

from helm_expander.core.errors import ConfigError

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$(?:\{(?P<braced>[A-Za-z_][A-Za-z0-9_]*)\}|(?P<bare>[A-Za-z_][A-Za-z0-9_]*))")

KNOWN_KEYS = frozenset({"identity", "known_hosts", "username", "password", "bearerToken", "caFile"})


def expand_placeholders(value: str, environ: Mapping[str, str]) -> str:
    """Replace ``$VAR`` and ``${VAR}`` with values from ``environ``.

    Unknown variables expand to the empty string.
    """
    return _PLACEHOLDER.sub(
        lambda m: environ.get(m.group("braced") or m.group("bare"), ""),
        value,
    )


@dataclass
class RepositoryCredentials:
    credentials: dict[str, str] = field(default_factory=dict)

    def get(self, key: str) -> str:
        return self.credentials.get(key, "")

    @property
    def identity(self) -> str:
        return self.get("identity")

    @property
    def known_hosts(self) -> str:
        return self.get("known_hosts")

    @property
    def username(self) -> str:
        return self.get("username")

    @property
    def password(self) -> str:
        return self.get("password")

    @property
    def bearer_token(self) -> str:
        return self.get("bearerToken")

    @property
    def ca_file(self) -> str:
        return self.get("caFile")

    def expanded(self, environ: Mapping[str, str]) -> RepositoryCredentials:
        return RepositoryCredentials(
            credentials={k: expand_placeholders(v, environ) for k, v in self.credentials.items()}
        )


@dataclass
class Credentials:
    """Parsed credentials file, keyed by repository URL or host."""

    entries: dict[str, RepositoryCredentials] = field(default_factory=dict)

    def find_for_repo(
        self,
        url: str,
        environ: Mapping[str, str] | None = None,
    ) -> RepositoryCredentials | None:
        """Return the credentials for ``url`` with placeholders expanded.

        An entry keyed by the full URL wins over one keyed by its host.
        ``None`` when nothing matches.
        """
        entry = self._lookup(url)
        if entry is None:
            return None
        return entry.expanded(os.environ if environ is None else environ)

    def _lookup(self, url: str) -> RepositoryCredentials | None:
        wanted = url.rstrip("/")
        for key, entry in self.entries.items():
            if key.rstrip("/") == wanted:
                logger.debug("Using credentials for %s", key)
                return entry

        parts = urlsplit(url)
        hostname = parts.hostname or ""
        if not hostname:
            return None
        candidates = [hostname]
        try:
            port = parts.port
        except ValueError:
            port = None
        if port is not None:
            candidates.insert(0, f"{hostname}:{port}")
        for candidate in candidates:
            entry = self.entries.get(candidate)
            if entry is not None:
                logger.debug("Using host credentials %s for %s", candidate, url)
                return entry
        return None


def parse_credentials(data: object, source: str = "<credentials>") -> Credentials:
    if data is None:
        return Credentials()
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: top level must be a mapping of repository to credentials")

    entries: dict[str, RepositoryCredentials] = {}
    for key, entry in data.items():
        if not isinstance(entry, dict):
            raise ConfigError(f"{source}: entry {key!r} must be a mapping")
        bag = entry.get("credentials") or {}
        if not isinstance(bag, dict):
            raise ConfigError(f"{source}: credentials of {key!r} must be a mapping")
        values: dict[str, str] = {}
        for name, value in bag.items():
            if not isinstance(value, str):
                raise ConfigError(f"{source}: credential {name!r} of {key!r} must be a string")
            if name not in KNOWN_KEYS:
                logger.warning("Ignoring unknown credential %r for %s", name, key)
                continue
            values[name] = value
        entries[str(key)] = RepositoryCredentials(credentials=values)
    return Credentials(entries=entries)


def read_credentials(stream: IO[str], source: str = "<credentials>") -> Credentials:
    """Read a YAML credentials file without expanding placeholders."""
    try:
        data = yaml.safe_load(stream)
    except yaml.YAMLError as e:
        raise ConfigError(f"unable to parse {source}: {e}") from e
    return parse_credentials(data, source)
