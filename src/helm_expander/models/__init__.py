"""Data models for Helm Expander."""

from __future__ import annotations

import enum


class RepositoryKind(enum.Enum):
    GIT = "git"
    HELM = "helm"
    OCI = "oci"


RELEASE_GROUP = "helm.toolkit.fluxcd.io"
RELEASE_KIND = "HelmRelease"
