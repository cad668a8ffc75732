"""Pydantic v2 models for compliance rule files.

A rules file is YAML:

  version: "1"
  settings:
    max_depth: 64
  rules:
    - id: bucket-encryption
      description: Buckets must be encrypted with AES256
      kind: aws_s3_bucket
      require:
        - path: server_side_encryption_configuration.rule.apply_server_side_encryption_by_default.sse_algorithm
          equals: AES256
      forbid:
        - path: acl
          one_of: [public-read, public-read-write]

``require``, ``forbid`` and ``when`` each accept three equivalent forms:

  1. List of conditions:  ``- {path: a.b, equals: 1}``
  2. List of bare paths:  ``- a.b``              (must be present / present at all)
  3. Mapping shorthand:   ``a.b: 1``             (equals)
                          ``a.b: {minimum: 3}``  (predicate)
"""

from __future__ import annotations

import json
import re
from collections.abc import Hashable
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

from conform.config import EvaluatorSettings
from conform.paths import parse_path

_PREDICATE_KEYS = frozenset({
    "equals",
    "not_equals",
    "one_of",
    "none_of",
    "contains",
    "matches",
    "minimum",
    "maximum",
    "exists",
})

# Predicates for which an explicit null is a meaningful value.
_NULLABLE_KEYS = frozenset({"equals", "not_equals", "contains"})


def _same(a: Any, b: Any) -> bool:
    """Equality that keeps booleans distinct from 0/1."""
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    return a == b


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _show(value: Any) -> str:
    return json.dumps(value, default=str)


class RuleSeverity(str, Enum):
    """How serious a violation of the rule is (used for display and SARIF)."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FieldCondition(BaseModel):
    """A field path plus a predicate on the value found there.

    All specified predicate parts must hold (AND logic). With no predicate
    parts, a requirement means "present and not null" and a forbidden
    override means "present at all".
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str
    equals: Any | None = None
    not_equals: Any | None = None
    one_of: tuple[Any, ...] | None = None
    none_of: tuple[Any, ...] | None = None
    contains: Any | None = None
    matches: str | None = None
    minimum: float | None = None
    maximum: float | None = None
    exists: bool | None = None

    @model_validator(mode="before")
    @classmethod
    def parse_bare_path(cls, data: Any) -> Any:
        """Accept a bare path string as a presence condition."""
        if isinstance(data, str):
            return {"path": data}
        return data

    @field_validator("path")
    @classmethod
    def valid_path(cls, value: str) -> str:
        parse_path(value)
        return value

    @field_validator("matches")
    @classmethod
    def valid_regex(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                re.compile(value)
            except re.error as e:
                msg = f"Invalid regular expression {value!r}: {e}"
                raise ValueError(msg) from None
        return value

    def given(self, key: str) -> bool:
        """Whether a predicate part was specified.

        An explicit null counts for ``equals``, ``not_equals`` and
        ``contains``; the other parts ignore a null.
        """
        if key not in self.model_fields_set:
            return False
        return key in _NULLABLE_KEYS or getattr(self, key) is not None

    @property
    def has_predicate(self) -> bool:
        return any(self.given(key) for key in _PREDICATE_KEYS)

    def check(self, value: Any) -> bool:
        """Check a present value against every predicate part.

        Args:
            value: The value found at the path (may be None for an
                   explicit null).

        Returns:
            True if all specified predicate parts hold.
        """
        if not self.has_predicate:
            return value is not None

        if self.given("exists") and (value is not None) != self.exists:
            return False
        if self.given("equals") and not _same(value, self.equals):
            return False
        if self.given("not_equals") and _same(value, self.not_equals):
            return False
        if self.given("one_of") and not any(_same(value, o) for o in self.one_of):
            return False
        if self.given("none_of") and any(_same(value, o) for o in self.none_of):
            return False
        if self.given("contains") and not self._contains(value):
            return False
        if self.given("matches"):
            if value is None or not re.search(self.matches, str(value)):
                return False
        if self.given("minimum") or self.given("maximum"):
            number = _number(value)
            if number is None:
                return False
            if self.given("minimum") and number < self.minimum:
                return False
            if self.given("maximum") and number > self.maximum:
                return False
        return True

    def _contains(self, value: Any) -> bool:
        if isinstance(value, str):
            return isinstance(self.contains, str) and self.contains in value
        if isinstance(value, (list, tuple)):
            return any(_same(item, self.contains) for item in value)
        if isinstance(value, dict):
            return isinstance(self.contains, Hashable) and self.contains in value
        return False

    def absent_ok(self) -> bool:
        """Whether a requirement on this path is met when the path is absent."""
        return self.exists is False

    def describe(self) -> str:
        """Describe the predicate, e.g. ``== "AES256"`` or ``>= 3``."""
        parts: list[str] = []
        if self.given("exists"):
            parts.append("present" if self.exists else "absent")
        if self.given("equals"):
            parts.append(f"== {_show(self.equals)}")
        if self.given("not_equals"):
            parts.append(f"!= {_show(self.not_equals)}")
        if self.given("one_of"):
            parts.append(f"one of {_show(list(self.one_of))}")
        if self.given("none_of"):
            parts.append(f"none of {_show(list(self.none_of))}")
        if self.given("contains"):
            parts.append(f"contains {_show(self.contains)}")
        if self.given("matches"):
            parts.append(f"matches /{self.matches}/")
        if self.given("minimum"):
            parts.append(f">= {self.minimum:g}")
        if self.given("maximum"):
            parts.append(f"<= {self.maximum:g}")
        return " and ".join(parts) if parts else "present"

    def describe_forbidden(self) -> str:
        """Describe what a compliant value looks like for a forbidden override."""
        if not self.has_predicate:
            return "absent"
        given = {key for key in _PREDICATE_KEYS if self.given(key)}
        if given == {"equals"}:
            return f"!= {_show(self.equals)}"
        if given == {"one_of"}:
            return f"none of {_show(list(self.one_of))}"
        return f"not ({self.describe()})"


def _normalize_conditions(value: Any, field_name: str) -> Any:
    """Expand the mapping shorthand into the list-of-conditions form."""
    if value is None:
        return []
    if isinstance(value, dict):
        items: list[dict[str, Any]] = []
        for path, spec in value.items():
            if isinstance(spec, dict) and spec and set(spec) <= _PREDICATE_KEYS:
                items.append({"path": path, **spec})
            elif spec is None and field_name == "forbid":
                items.append({"path": path})
            else:
                items.append({"path": path, "equals": spec})
        return items
    return value


class Rule(BaseModel):
    """One compliance requirement with machine-checkable conditions.

    Attributes:
        id: Unique rule identifier.
        description: Human-readable statement of the requirement.
        kind: Resource kind the rule targets (exact match).
        require: Conditions that must all hold.
        forbid: Override paths that disable enforcement; any match fails
                the rule regardless of ``require``.
        when: Applicability conditions; when any does not hold, the rule
              is not applicable to the resource.
        optional: Non-blocking rule (advisory / reviewer judgment).
        severity: Display and SARIF severity.
        remediation: Optional fix hint appended to recommendations.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1)
    description: str = Field(min_length=1)
    kind: str = Field(min_length=1)
    require: tuple[FieldCondition, ...] = ()
    forbid: tuple[FieldCondition, ...] = ()
    when: tuple[FieldCondition, ...] = ()
    optional: bool = False
    severity: RuleSeverity = RuleSeverity.MEDIUM
    remediation: str | None = None

    @field_validator("require", "forbid", "when", mode="before")
    @classmethod
    def normalize_conditions(cls, value: Any, info: ValidationInfo) -> Any:
        return _normalize_conditions(value, info.field_name)

    @model_validator(mode="after")
    def has_conditions(self) -> Rule:
        """A blocking rule must check something."""
        if not self.optional and not self.require and not self.forbid:
            msg = (
                f"Rule '{self.id}' has neither 'require' nor 'forbid' conditions. "
                f"Add conditions, or mark it 'optional: true' to make it a "
                f"reviewer-judgment item."
            )
            raise ValueError(msg)
        return self

    @property
    def is_review_item(self) -> bool:
        """True for reviewer-judgment items with nothing to check mechanically."""
        return not self.require and not self.forbid


class RuleSet(BaseModel):
    """Top-level model for a rules file."""

    version: str
    settings: EvaluatorSettings = Field(default_factory=EvaluatorSettings)
    rules: list[Rule] = Field(min_length=1)

    @field_validator("version", mode="before")
    @classmethod
    def version_as_string(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @model_validator(mode="after")
    def unique_ids(self) -> RuleSet:
        seen: set[str] = set()
        duplicates: list[str] = []
        for rule in self.rules:
            if rule.id in seen:
                duplicates.append(rule.id)
            seen.add(rule.id)
        if duplicates:
            msg = f"Duplicate rule id(s): {', '.join(sorted(set(duplicates)))}"
            raise ValueError(msg)
        return self
