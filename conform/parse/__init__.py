"""Policy document parsing.

Converts Terraform HCL, Kubernetes YAML and Rego text into a uniform
sequence of ParsedResource objects for the evaluator.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterator
from pathlib import Path

from conform.parse.hcl import parse_hcl
from conform.parse.kubernetes import parse_kubernetes
from conform.parse.models import (
    Dialect,
    ParsedResource,
    PolicySyntaxError,
    SourceLocation,
    UnsupportedDialectError,
)
from conform.parse.rego import parse_rego

__all__ = [
    "DEFAULT_MAX_DEPTH",
    "Dialect",
    "ParsedResource",
    "PolicySyntaxError",
    "SourceLocation",
    "UnsupportedDialectError",
    "detect_dialect",
    "parse",
    "resolve_dialect",
]

DEFAULT_MAX_DEPTH = 64

_PARSERS: dict[Dialect, Callable[[str, str, int], Iterator[ParsedResource]]] = {
    Dialect.TERRAFORM_HCL: parse_hcl,
    Dialect.KUBERNETES_YAML: parse_kubernetes,
    Dialect.REGO: parse_rego,
}

_EXTENSIONS: dict[str, Dialect] = {
    ".tf": Dialect.TERRAFORM_HCL,
    ".hcl": Dialect.TERRAFORM_HCL,
    ".yaml": Dialect.KUBERNETES_YAML,
    ".yml": Dialect.KUBERNETES_YAML,
    ".rego": Dialect.REGO,
}


def resolve_dialect(dialect: str | Dialect) -> Dialect:
    """Normalize a dialect name.

    Raises:
        UnsupportedDialectError: If the name is not a recognized dialect.
    """
    if isinstance(dialect, Dialect):
        return dialect
    try:
        return Dialect(dialect.strip().lower())
    except ValueError:
        raise UnsupportedDialectError(dialect) from None


def detect_dialect(path: Path) -> Dialect:
    """Guess a document's dialect from its file extension.

    Raises:
        UnsupportedDialectError: If the extension is not recognized.
    """
    dialect = _EXTENSIONS.get(path.suffix.lower())
    if dialect is None:
        raise UnsupportedDialectError(path.suffix or path.name)
    return dialect


def parse(
    document_text: str,
    dialect: str | Dialect,
    *,
    source: str = "<string>",
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Iterator[ParsedResource]:
    """Parse a policy document into resources.

    The dialect is validated immediately; the document itself is parsed
    lazily as the returned iterator is consumed. Calling parse() again on
    the same text yields an equal sequence.

    Args:
        document_text: The policy document text.
        dialect: One of "terraform-hcl", "kubernetes-yaml", "rego".
        source: Label for locations and error messages (usually the path).
        max_depth: Maximum nesting depth before the document is rejected.

    Returns:
        An iterator of ParsedResource, one per resource block, with
        per-kind ordinals assigned in document order.

    Raises:
        UnsupportedDialectError: If the dialect is not recognized.
        PolicySyntaxError: During iteration, on malformed input.
    """
    resolved = resolve_dialect(dialect)
    return _with_ordinals(_PARSERS[resolved](document_text, source, max_depth))


def _with_ordinals(resources: Iterator[ParsedResource]) -> Iterator[ParsedResource]:
    counts: dict[str, int] = {}
    for resource in resources:
        ordinal = counts.get(resource.kind, 0)
        counts[resource.kind] = ordinal + 1
        yield dataclasses.replace(resource, ordinal=ordinal)
