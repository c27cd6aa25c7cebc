"""Shallow Git checkouts using GitPython."""

from __future__ import annotations

import base64
import logging
import os
import shlex
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Protocol

from git import Git, Repo
from git.exc import CommandError

from helm_expander.core.errors import TransportError
from helm_expander.models.repo import GitReference

logger = logging.getLogger(__name__)


@dataclass
class GitAuth:
    username: str = ""
    password: str = ""
    bearer_token: str = ""
    ca_file: str = ""
    identity: str = ""
    known_hosts: str = ""


class GitClient(Protocol):
    def clone(self, url: str, dest: Path, ref: GitReference, auth: GitAuth, timeout: float) -> None:
        """Check out ``ref`` of ``url`` into the empty directory ``dest``."""

    def list_tags(self, url: str, auth: GitAuth, timeout: float) -> list[str]:
        """Return the tag names of the remote repository."""


def fetch_target(ref: GitReference) -> str:
    """Refspec source fetched for ``ref``; commit wins over name, tag and branch."""
    if ref.commit:
        return ref.commit
    if ref.name:
        return ref.name
    if ref.tag:
        return f"refs/tags/{ref.tag}"
    return f"refs/heads/{ref.branch}"


class GitPythonClient:
    """Git client driving the ``git`` binary through GitPython."""

    def clone(self, url: str, dest: Path, ref: GitReference, auth: GitAuth, timeout: float) -> None:
        target = fetch_target(ref)
        logger.debug("Cloning %s (%s) into %s", url, target, dest)
        with _environment(auth) as env:
            try:
                repo = Repo.init(dest)
                with repo.git.custom_environment(**env):
                    repo.create_remote("origin", url)
                    repo.git.fetch("--depth=1", "origin", target, kill_after_timeout=timeout)
                    repo.git.checkout("--detach", "FETCH_HEAD", kill_after_timeout=timeout)
            except CommandError as e:
                raise TransportError(f"unable to clone {url} at {target}: {e}") from e

    def list_tags(self, url: str, auth: GitAuth, timeout: float) -> list[str]:
        with _environment(auth) as env:
            git = Git()
            try:
                with git.custom_environment(**env):
                    output = git.ls_remote("--tags", "--refs", url, kill_after_timeout=timeout)
            except CommandError as e:
                raise TransportError(f"unable to list tags of {url}: {e}") from e
        tags: list[str] = []
        for line in output.splitlines():
            _, _, refname = line.partition("\t")
            if refname.startswith("refs/tags/"):
                tags.append(refname[len("refs/tags/"):])
        return tags


@contextmanager
def _environment(auth: GitAuth) -> Iterator[dict[str, str]]:
    """Yield git environment variables carrying ``auth``.

    SSH key material is written to a private temporary directory that is
    removed when the context exits.
    """
    env = {"GIT_TERMINAL_PROMPT": "0"}
    headers: list[str] = []
    if auth.bearer_token:
        headers.append(f"Authorization: Bearer {auth.bearer_token}")
    elif auth.username or auth.password:
        token = base64.b64encode(f"{auth.username}:{auth.password}".encode()).decode()
        headers.append(f"Authorization: Basic {token}")
    for index, header in enumerate(headers):
        env[f"GIT_CONFIG_KEY_{index}"] = "http.extraHeader"
        env[f"GIT_CONFIG_VALUE_{index}"] = header
    if headers:
        env["GIT_CONFIG_COUNT"] = str(len(headers))
    if auth.ca_file:
        env["GIT_SSL_CAINFO"] = auth.ca_file

    if not auth.identity:
        yield env
        return

    with tempfile.TemporaryDirectory(prefix="hexpand-ssh-") as tmp:
        identity = Path(tmp) / "identity"
        identity.write_text(auth.identity.rstrip("\n") + "\n", encoding="utf-8")
        os.chmod(identity, 0o600)
        known_hosts = Path(tmp) / "known_hosts"
        known_hosts.write_text(auth.known_hosts, encoding="utf-8")
        env["GIT_SSH_COMMAND"] = " ".join([
            "ssh",
            "-i", shlex.quote(str(identity)),
            "-o", "IdentitiesOnly=yes",
            "-o", f"UserKnownHostsFile={shlex.quote(str(known_hosts))}",
            "-o", "StrictHostKeyChecking=yes",
        ])
        yield env
