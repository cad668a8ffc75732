"""Data models for the policy parser.

Pure data structures with no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Dialect(str, Enum):
    """Policy document dialects the parser understands."""

    TERRAFORM_HCL = "terraform-hcl"
    KUBERNETES_YAML = "kubernetes-yaml"
    REGO = "rego"


@dataclass(frozen=True)
class SourceLocation:
    """Where a resource starts in its document.

    Attributes:
        source: Label of the document (usually the file path).
        line: 1-based line number.
        column: 1-based column number.
    """

    source: str
    line: int
    column: int = 1

    def __str__(self) -> str:
        return f"{self.source}:{self.line}:{self.column}"


@dataclass(frozen=True)
class ParsedResource:
    """One resource instance found in a policy document.

    Attributes:
        kind: Resource kind (Terraform resource type, Kubernetes kind,
              or Rego construct: "package", "import", "rule").
        fields: Nested mapping of the resource's fields.
        location: Where the resource starts.
        ordinal: 0-based position among resources of the same kind
                 within the document.
        name: Resource name, when the dialect provides one.
        dialect: The dialect the resource was parsed from.
    """

    kind: str
    fields: dict[str, Any] = field(hash=False)
    location: SourceLocation
    ordinal: int = 0
    name: str | None = None
    dialect: Dialect | None = None


class PolicySyntaxError(SyntaxError):
    """Raised when a policy document is malformed.

    A ``SyntaxError`` subclass, so ``lineno``, ``offset`` and ``filename``
    carry the position of the problem.

    Attributes:
        source: The document label.
        line: 1-based line of the problem.
        column: 1-based column of the problem.
        dialect: The dialect being parsed.
    """

    def __init__(
        self,
        message: str,
        *,
        source: str,
        line: int,
        column: int,
        dialect: Dialect | None = None,
        text: str | None = None,
    ) -> None:
        super().__init__(message, (source, line, column, text))
        self.source = source
        self.line = line
        self.column = column
        self.dialect = dialect

    def __str__(self) -> str:
        return f"{self.source}:{self.line}:{self.column}: {self.msg}"


class UnsupportedDialectError(ValueError):
    """Raised when a dialect name is not one of the recognized set."""

    def __init__(self, dialect: str) -> None:
        self.dialect = dialect
        supported = ", ".join(d.value for d in Dialect)
        super().__init__(
            f"Unsupported dialect: '{dialect}'. Supported dialects: {supported}."
        )
