"""Chart loading from Git repositories."""

from __future__ import annotations

import logging
import os
import shutil
import stat
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

from helm_expander.config.settings import settings
from helm_expander.core.chart_loader import load_dir
from helm_expander.core.credentials import RepositoryCredentials
from helm_expander.core.errors import AuthError, CacheCorruptionError, ConfigError, ExpanderError, NotFoundError
from helm_expander.core.git_client import GitAuth
from helm_expander.core.loader_base import ChartLoader
from helm_expander.models import RepositoryKind
from helm_expander.models.chart import Chart, ChartContext
from helm_expander.models.repo import ChartIdentity, GitReference, RepositoryRef
from helm_expander.utils.version_compare import highest_matching

logger = logging.getLogger(__name__)

_SUBSTITUTION_FORMAT = "<repo-url>#[<branch>#]<path>"


@dataclass(frozen=True)
class GitRepoSubstitution:
    """A local working copy standing in for a remote Git repository."""

    url: str
    branch: str
    path: Path

    @classmethod
    def parse(cls, value: str) -> GitRepoSubstitution | None:
        """Parse ``<repo-url>#[<branch>#]<path>``; empty input means no substitution."""
        if not value:
            return None
        parts = value.split("#")
        if len(parts) == 2:
            url, branch, path = parts[0], "", parts[1]
        elif len(parts) == 3:
            url, branch, path = parts
        else:
            raise ConfigError(f"invalid git repo substitution {value}, expected {_SUBSTITUTION_FORMAT}")
        if not url or not path:
            raise ConfigError(f"invalid git repo substitution {value}, expected {_SUBSTITUTION_FORMAT}")
        try:
            st = os.stat(path)
        except OSError as e:
            raise ConfigError(f"unable to access working copy path {path}: {e}") from e
        if not stat.S_ISDIR(st.st_mode):
            raise ConfigError(f"working copy path {path} is not a directory")
        return cls(url=url, branch=branch, path=Path(path))

    def matches(self, url: str, ref: GitReference) -> bool:
        if url != self.url:
            return False
        if self.branch:
            return ref.branch == self.branch
        return ref in (
            GitReference(branch=settings.default_git_branch),
            GitReference(branch="main"),
        )


def _git_auth(creds: RepositoryCredentials | None) -> GitAuth:
    if creds is None:
        return GitAuth()
    return GitAuth(
        username=creds.username,
        password=creds.password,
        bearer_token=creds.bearer_token,
        ca_file=creds.ca_file,
        identity=creds.identity,
        known_hosts=creds.known_hosts,
    )


def _https_url(url: str) -> str:
    """Same host and path over HTTPS, without user info or port."""
    parts = urlsplit(url)
    return urlunsplit(("https", parts.hostname or "", parts.path, parts.query, parts.fragment))


class GitLoader(ChartLoader):
    """Loads charts from a shallow checkout of a Git repository.

    Checkouts of pinned references (commit, tag, semver, ``refs/tags/...``)
    are kept in the persistent cache. Checkouts of branches live in the
    ephemeral subtree and only serve repeated lookups within one expansion.
    """

    kind = RepositoryKind.GIT

    def load_chart(
        self,
        repository: RepositoryRef,
        chart_name: str,
        version: str,
        context: ChartContext | None = None,
    ) -> Chart:
        ref = repository.git_ref.normalized(settings.default_git_branch)
        url = repository.url
        identity = ChartIdentity(url=url, chart=chart_name, ref=ref.slots())
        chart = self.cache.get(identity)
        if chart is not None:
            return chart

        logger.debug("Loading chart %s from Git repository %s (%s)", chart_name, url, ref)
        if context is not None:
            repo_path = context.local_path
        else:
            repo_path = self._checkout(repository, ref)

        try:
            chart = load_dir(repo_path / chart_name)
        except ExpanderError as e:
            raise e.wrap(f"unable to load chart {chart_name} from {repository}") from e

        try:
            self.resolve_dependencies(
                chart,
                ChartContext(local_path=repo_path, chart_name=chart_name, loader=self, repository=repository),
            )
        except ExpanderError as e:
            raise e.wrap(f"unable to load chart dependencies for {chart_name}/{chart.version} in {url}") from e

        self.cache.put(identity, chart)
        logger.debug("Finished loading chart %s version %s", chart_name, chart.version)
        return chart

    def _checkout(self, repository: RepositoryRef, ref: GitReference) -> Path:
        url = repository.url
        substitution = self.config.git_substitution
        if substitution is not None and substitution.matches(url, ref):
            logger.debug("Using working copy %s for %s", substitution.path, url)
            return substitution.path

        repo_path = self.cache.repo_path(url, ephemeral=not ref.is_pinned) / ref.dir_name
        if repo_path.is_dir():
            logger.debug("Using cached Git checkout %s", repo_path)
            return repo_path

        creds = self.config.find_credentials(url)
        clone_url = url
        if (
            creds is not None
            and urlsplit(url).scheme == "ssh"
            and creds.password
            and not creds.identity
        ):
            clone_url = _https_url(url)
            logger.debug("Cloning %s over HTTPS as %s", url, clone_url)
        auth = _git_auth(creds)

        if urlsplit(clone_url).scheme == "ssh":
            if not auth.identity:
                raise AuthError(f"unable to clone Git repository {url}: 'identity' is required")
            if not auth.known_hosts:
                raise AuthError(f"unable to clone Git repository {url}: 'known_hosts' is required")

        timeout = repository.timeout if repository.timeout is not None else self.config.git_timeout
        client = self.config.git_client_factory()

        target = ref
        if ref.semver and not ref.commit and not ref.name:
            tags = client.list_tags(clone_url, auth, timeout)
            tag = highest_matching(tags, ref.semver)
            if tag is None:
                raise NotFoundError(f"no tag of {url} matches semver constraint {ref.semver}")
            logger.debug("Resolved semver %s of %s to tag %s", ref.semver, url, tag)
            target = GitReference(tag=tag)

        try:
            repo_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheCorruptionError(f"unable to create cache directory {repo_path.parent}: {e}") from e
        try:
            client.clone(clone_url, repo_path, target, auth, timeout)
        except Exception:
            shutil.rmtree(repo_path, ignore_errors=True)
            raise
        return repo_path
