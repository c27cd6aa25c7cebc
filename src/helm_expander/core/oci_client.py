"""OCI registry access for Helm charts using oras."""

from __future__ import annotations

import logging
from typing import Protocol

import requests
from oras.client import OrasClient

from helm_expander.core.errors import AuthError, NotFoundError, TransportError

logger = logging.getLogger(__name__)

HELM_CHART_LAYER = "application/vnd.cncf.helm.chart.content.v1.tar+gzip"

_REGISTRY_ERRORS = (requests.RequestException, ValueError, OSError)


class RegistryClient(Protocol):
    def login(self, host: str, username: str, password: str) -> None: ...

    def tags(self, chart_ref: str) -> list[str]:
        """List tags of ``host/path/chart``."""

    def get(self, chart_ref: str) -> bytes:
        """Return the chart archive stored at ``host/path/chart:version``."""


class OrasRegistryClient:
    """Registry client pulling the chart layer of Helm OCI artifacts."""

    def __init__(self, insecure: bool = False):
        self.insecure = insecure
        self.client = OrasClient(insecure=insecure)

    def login(self, host: str, username: str, password: str) -> None:
        logger.debug("Logging in to registry %s as %s", host, username)
        try:
            self.client.login(
                username=username,
                password=password,
                hostname=host,
                insecure=self.insecure,
            )
        except _REGISTRY_ERRORS as e:
            raise AuthError(f"unable to log in to registry {host}: {e}") from e

    def tags(self, chart_ref: str) -> list[str]:
        try:
            return list(self.client.get_tags(chart_ref) or [])
        except _REGISTRY_ERRORS as e:
            raise TransportError(f"unable to fetch tags for {chart_ref}: {e}") from e

    def get(self, chart_ref: str) -> bytes:
        try:
            manifest = self.client.get_manifest(chart_ref)
        except _REGISTRY_ERRORS as e:
            raise TransportError(f"unable to fetch manifest of {chart_ref}: {e}") from e

        layers = [
            layer for layer in manifest.get("layers", [])
            if layer.get("mediaType") == HELM_CHART_LAYER
        ]
        if not layers:
            raise NotFoundError(f"{chart_ref} is not a Helm chart artifact")

        try:
            r = self.client.get_blob(chart_ref, layers[0]["digest"])
            r.raise_for_status()
        except _REGISTRY_ERRORS as e:
            raise TransportError(f"unable to download chart {chart_ref}: {e}") from e
        return r.content
