"""HTTP downloads for chart repositories using requests."""

from __future__ import annotations

import logging
from typing import Protocol

import requests

from helm_expander.core.credentials import RepositoryCredentials
from helm_expander.core.errors import AuthError, NotFoundError, TransportError

logger = logging.getLogger(__name__)


class HttpGetter(Protocol):
    def get(self, url: str) -> bytes:
        """Return the body of ``url``."""


class RequestsGetter:
    """Fetches repository indexes and chart archives over HTTP(S)."""

    def __init__(self, creds: RepositoryCredentials | None = None, timeout: float | None = None):
        self.timeout = timeout
        self.session = requests.Session()
        if creds is not None:
            if creds.bearer_token:
                self.session.headers["Authorization"] = f"Bearer {creds.bearer_token}"
            elif creds.username or creds.password:
                self.session.auth = (creds.username, creds.password)
            if creds.ca_file:
                self.session.verify = creds.ca_file

    def get(self, url: str) -> bytes:
        logger.debug("GET %s", url)
        try:
            r = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"unable to fetch {url}: {e}") from e
        if r.status_code in (401, 403):
            raise AuthError(f"access to {url} denied with status {r.status_code}")
        if r.status_code == 404:
            raise NotFoundError(f"{url} not found")
        try:
            r.raise_for_status()
        except requests.HTTPError as e:
            raise TransportError(f"unable to fetch {url}: {e}") from e
        return r.content
