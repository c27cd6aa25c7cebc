"""Default the namespace of rendered resources."""

from __future__ import annotations

from typing import Iterable

from helm_expander.models.resource import ResourceNode

CLUSTER_SCOPED_KINDS: frozenset[str] = frozenset({
    "APIService",
    "CertificateSigningRequest",
    "ClusterRole",
    "ClusterRoleBinding",
    "ComponentStatus",
    "CSIDriver",
    "CSINode",
    "IngressClass",
    "CustomResourceDefinition",
    "Namespace",
    "PersistentVolume",
    "Node",
    "StorageClass",
    "PriorityClass",
    "RuntimeClass",
    "MutatingWebhookConfiguration",
    "ValidatingWebhookConfiguration",
    "ValidatingAdmissionPolicy",
    "ValidatingAdmissionPolicyBinding",
    "VolumeAttachment",
    "PodSecurityPolicy",
})


def is_cluster_scoped(kind: str) -> bool:
    if kind in CLUSTER_SCOPED_KINDS:
        return True
    # Heuristic: unknown Cluster*-prefixed kinds (ClusterIssuer, ClusterPolicy...)
    return kind.startswith("Cluster")


def apply_namespace_if_unset(nodes: Iterable[ResourceNode], namespace: str) -> list[ResourceNode]:
    """Set ``metadata.namespace`` on namespaced resources that lack one.

    The namespace is added as the last key of ``metadata``. Resources that
    already declare a namespace are left alone.
    """
    result: list[ResourceNode] = []
    for node in nodes:
        if namespace and not node.namespace and not is_cluster_scoped(node.kind):
            metadata = node.raw.get("metadata")
            if not isinstance(metadata, dict):
                metadata = {}
                node.raw["metadata"] = metadata
            metadata.pop("namespace", None)
            metadata["namespace"] = namespace
        result.append(node)
    return result
