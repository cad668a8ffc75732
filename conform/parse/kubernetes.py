"""Kubernetes YAML parser.

Every non-empty YAML document in a multi-document stream is one resource.
A ``kind: List`` document expands into its ``items``. The resource kind is
the manifest's ``kind`` and the name is ``metadata.name``; the whole
manifest becomes the field tree, so rule paths read the same as the YAML
(``spec.containers[*].securityContext.privileged``).

Documents are composed one at a time from the stream, so earlier
resources are available before a later document is even read.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import yaml

from conform.parse.models import (
    Dialect,
    ParsedResource,
    PolicySyntaxError,
    SourceLocation,
)


def _error_at(mark: Any, message: str, source: str) -> PolicySyntaxError:
    line = mark.line + 1 if mark is not None else 1
    column = mark.column + 1 if mark is not None else 1
    return PolicySyntaxError(
        message,
        source=source,
        line=line,
        column=column,
        dialect=Dialect.KUBERNETES_YAML,
    )


def _from_yaml_error(e: yaml.YAMLError, source: str) -> PolicySyntaxError:
    """Convert a PyYAML error into a position-annotated syntax error."""
    if isinstance(e, yaml.MarkedYAMLError):
        mark = e.problem_mark or e.context_mark
        problem = e.problem or e.context or "invalid YAML"
        return _error_at(mark, f"Invalid YAML: {problem}", source)
    return _error_at(None, f"Invalid YAML: {e}", source)


def _check_depth(node: yaml.Node, max_depth: int, source: str) -> None:
    """Reject node trees nested deeper than max_depth.

    Alias-shared nodes are walked again only when reached at a greater
    depth than before, so anchor fan-out stays linear. An alias that
    refers back to one of its own ancestors is rejected.
    """
    checked: dict[int, int] = {}
    active: set[int] = set()

    def walk(current: yaml.Node, depth: int) -> None:
        if isinstance(current, yaml.MappingNode):
            children = [child for pair in current.value for child in pair]
        elif isinstance(current, yaml.SequenceNode):
            children = list(current.value)
        else:
            return

        key = id(current)
        if key in active:
            raise _error_at(
                current.start_mark,
                "Recursive alias: a node contains a reference to itself",
                source,
            )
        if checked.get(key, -1) >= depth:
            return

        if depth + 1 > max_depth:
            raise _error_at(
                current.start_mark,
                f"Nesting exceeds the maximum depth of {max_depth}",
                source,
            )
        active.add(key)
        for child in children:
            walk(child, depth + 1)
        active.discard(key)
        checked[key] = depth

    walk(node, 0)


def _child_node(node: yaml.Node, key: str) -> yaml.Node | None:
    if isinstance(node, yaml.MappingNode):
        for key_node, value_node in node.value:
            if isinstance(key_node, yaml.ScalarNode) and key_node.value == key:
                return value_node
    return None


def _manifest_resource(
    manifest: Any, node: yaml.Node, source: str
) -> ParsedResource:
    if not isinstance(manifest, dict):
        raise _error_at(
            node.start_mark,
            f"Each YAML document must be a mapping (a Kubernetes manifest), "
            f"got {type(manifest).__name__}",
            source,
        )
    kind = manifest.get("kind")
    if not isinstance(kind, str) or not kind:
        raise _error_at(
            node.start_mark,
            "Kubernetes manifest has no 'kind' field",
            source,
        )

    name = None
    metadata = manifest.get("metadata")
    if isinstance(metadata, dict) and metadata.get("name") is not None:
        name = str(metadata["name"])

    return ParsedResource(
        kind=kind,
        name=name,
        fields=manifest,
        location=SourceLocation(
            source, node.start_mark.line + 1, node.start_mark.column + 1
        ),
        dialect=Dialect.KUBERNETES_YAML,
    )


def parse_kubernetes(
    text: str, source: str, max_depth: int
) -> Iterator[ParsedResource]:
    """Parse a (multi-document) Kubernetes YAML stream.

    Args:
        text: The YAML text.
        source: Label used in locations and errors.
        max_depth: Maximum mapping/sequence nesting depth.

    Yields:
        ParsedResource per manifest (ordinal not yet assigned).

    Raises:
        PolicySyntaxError: On invalid YAML, non-mapping documents, missing
            'kind', or excessive nesting.
    """
    loader = yaml.SafeLoader(text)
    try:
        while True:
            try:
                if not loader.check_node():
                    return
                node = loader.get_node()
            except yaml.YAMLError as e:
                raise _from_yaml_error(e, source) from e

            if node is None:
                continue
            _check_depth(node, max_depth, source)

            try:
                manifest = loader.construct_document(node)
            except yaml.YAMLError as e:
                raise _from_yaml_error(e, source) from e

            if manifest is None:
                continue

            if isinstance(manifest, dict) and manifest.get("kind") == "List":
                items = manifest.get("items") or []
                items_node = _child_node(node, "items")
                item_nodes = (
                    list(items_node.value)
                    if isinstance(items_node, yaml.SequenceNode)
                    else []
                )
                for idx, item in enumerate(items):
                    item_node = item_nodes[idx] if idx < len(item_nodes) else node
                    yield _manifest_resource(item, item_node, source)
                continue

            yield _manifest_resource(manifest, node, source)
    finally:
        loader.dispose()
