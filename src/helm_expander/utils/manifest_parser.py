"""Read and write multi-document YAML streams of Kubernetes resources."""

from __future__ import annotations

from typing import IO, Any, Iterable

import yaml

from helm_expander.core.errors import ConfigError
from helm_expander.models.resource import ResourceNode


class _BlockStyleDumper(yaml.SafeDumper):
    """Safe dumper that keeps multi-line strings readable."""


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.Node:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_BlockStyleDumper.add_representer(str, _represent_str)


def parse_manifest(manifest: str | IO[str], source: str = "<input>") -> list[ResourceNode]:
    """Parse a multi-document YAML string or stream into resource nodes.

    Empty documents are skipped. Any other non-mapping document is an error.
    """
    nodes: list[ResourceNode] = []
    if not manifest:
        return nodes
    try:
        for index, doc in enumerate(yaml.safe_load_all(manifest)):
            if doc is None:
                continue
            if not isinstance(doc, dict):
                raise ConfigError(f"document {index} of {source} is not a mapping")
            nodes.append(ResourceNode(raw=doc))
    except yaml.YAMLError as e:
        raise ConfigError(f"unable to parse YAML from {source}: {e}") from e
    return nodes


def read_documents(stream: IO[str], source: str = "<input>") -> list[ResourceNode]:
    return parse_manifest(stream.read(), source)


def dump_node(node: ResourceNode) -> str:
    text = yaml.dump(
        node.raw,
        Dumper=_BlockStyleDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )
    if node.head_comment:
        head = "".join(f"# {line}\n" for line in node.head_comment.splitlines())
        text = head + text
    return text


def write_documents(nodes: Iterable[ResourceNode], stream: IO[str]) -> None:
    """Write nodes as one YAML stream, ``---`` separating documents."""
    first = True
    for node in nodes:
        if not first:
            stream.write("---\n")
        stream.write(dump_node(node))
        first = False


def resource_counts(nodes: Iterable[ResourceNode]) -> dict[str, int]:
    """Count resources by kind."""
    counts: dict[str, int] = {}
    for node in nodes:
        counts[node.kind] = counts.get(node.kind, 0) + 1
    return counts


def as_mapping(value: Any, what: str) -> dict[str, Any]:
    """Return ``value`` if it is a mapping, ``{}`` for None, else raise."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{what} must be a mapping, got {type(value).__name__}")
    return value
