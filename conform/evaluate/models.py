"""Verdict data models.

Pure data structures produced by the evaluator and consumed by the
comparator and the report builder.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from conform.parse.models import ParsedResource, SourceLocation


class Outcome(str, Enum):
    """Result of checking one rule against one resource."""

    PASS = "pass"
    FAIL = "fail"
    NOT_APPLICABLE = "not_applicable"


class NotApplicableWarning(UserWarning):
    """A resource was skipped because no rule targets its kind."""


@dataclass(frozen=True)
class ResourceRef:
    """Identity of the resource a verdict is about.

    Attributes:
        kind: Resource kind.
        ordinal: Position among resources of the same kind in the document.
        name: Resource name, when the dialect provides one.
        location: Where the resource starts.
    """

    kind: str
    ordinal: int
    name: str | None
    location: SourceLocation

    @classmethod
    def of(cls, resource: ParsedResource) -> ResourceRef:
        return cls(
            kind=resource.kind,
            ordinal=resource.ordinal,
            name=resource.name,
            location=resource.location,
        )

    @property
    def label(self) -> str:
        """Short display label, e.g. ``aws_s3_bucket.logs`` or ``Pod#0``."""
        if self.name:
            return f"{self.kind}.{self.name}"
        return f"{self.kind}#{self.ordinal}"


ABSENT = "absent"


def format_observed(value: Any, present: bool = True) -> str:
    """Render an observed value for messages ("absent" when missing)."""
    if not present:
        return ABSENT
    try:
        return json.dumps(value, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return repr(value)


@dataclass(frozen=True)
class Evidence:
    """What the evaluator saw at one field path.

    Attributes:
        path: Concrete field path (wildcards expanded), or the rule path
              when nothing matched.
        expected: Human-readable description of the expected value.
        observed: The observed value (None when absent).
        present: Whether the path resolved to anything.
        forbidden: True when this evidence comes from a forbidden override.
        satisfied: Whether this piece of evidence is compliant.
    """

    path: str
    expected: str
    observed: Any = field(default=None, hash=False)
    present: bool = True
    forbidden: bool = False
    satisfied: bool = True

    @property
    def observed_text(self) -> str:
        return format_observed(self.observed, self.present)


@dataclass(frozen=True)
class Verdict:
    """The outcome of one rule against one resource.

    Attributes:
        rule_id: The rule that was checked.
        resource: The resource that was checked.
        outcome: PASS, FAIL or NOT_APPLICABLE.
        evidence: Field-level evidence, failing evidence first.
        observation: Free-text summary.
        optional: True for non-blocking (reviewer-judgment) rules.
    """

    rule_id: str
    resource: ResourceRef
    outcome: Outcome
    evidence: tuple[Evidence, ...] = ()
    observation: str = ""
    optional: bool = False

    @property
    def failing_evidence(self) -> tuple[Evidence, ...]:
        return tuple(e for e in self.evidence if not e.satisfied)

    @property
    def blocking(self) -> bool:
        """True if this verdict decides the overall outcome."""
        return not self.optional and self.outcome != Outcome.NOT_APPLICABLE
