"""Rule evaluation engine.

Takes parsed resources and a rule registry, and yields one Verdict per
(resource, applicable rule) pair: PASS, FAIL or NOT_APPLICABLE.

Decision order for one rule against one resource:
  1. Any ``when`` condition that does not hold → NOT_APPLICABLE.
  2. An optional rule with no conditions → NOT_APPLICABLE (reviewer judgment).
  3. Any forbidden override present with a matching value → FAIL.
  4. Any required path absent, or present with a non-matching value → FAIL.
  5. Otherwise → PASS.

Business-level non-compliance never raises; it is reported as a FAIL.
"""

from __future__ import annotations

import warnings
from collections.abc import Iterable, Iterator

from conform.evaluate.models import (
    Evidence,
    NotApplicableWarning,
    Outcome,
    ResourceRef,
    Verdict,
    format_observed,
)
from conform.parse.models import ParsedResource
from conform.paths import WILDCARD, Segment, format_path, parse_path, resolve
from conform.rules.registry import RuleRegistry
from conform.rules.schema import FieldCondition, Rule


def evaluate(
    resources: Iterable[ParsedResource],
    rules: RuleRegistry | Iterable[Rule],
) -> Iterator[Verdict]:
    """Evaluate every applicable rule against every resource.

    Verdicts are yielded lazily, in resource order and then rule order.
    A resource whose kind no rule targets is skipped with a
    NotApplicableWarning.

    Args:
        resources: Parsed resources, typically from ``conform.parse.parse``.
        rules: A RuleRegistry, or any iterable of rules.

    Yields:
        One Verdict per (resource, rule targeting its kind).
    """
    registry = rules if isinstance(rules, RuleRegistry) else RuleRegistry(rules)

    for resource in resources:
        applicable = registry.rules_for_kind(resource.kind)
        if not applicable:
            warnings.warn(
                f"No rule targets resource kind '{resource.kind}': "
                f"{ResourceRef.of(resource).label} at {resource.location} was skipped.",
                NotApplicableWarning,
                stacklevel=2,
            )
            continue
        for rule in applicable:
            yield evaluate_rule(rule, resource)


def evaluate_rule(rule: Rule, resource: ParsedResource) -> Verdict:
    """Evaluate a single rule against a single resource.

    Args:
        rule: The rule to check. Its kind is assumed to match the resource.
        resource: The resource to check.

    Returns:
        The Verdict for this pair.
    """
    ref = ResourceRef.of(resource)

    for condition in rule.when:
        evidence = _requirement_evidence(condition, resource.fields)
        if not all(e.satisfied for e in evidence):
            found = "; ".join(f"{e.path} is {e.observed_text}" for e in evidence if not e.satisfied)
            return Verdict(
                rule_id=rule.id,
                resource=ref,
                outcome=Outcome.NOT_APPLICABLE,
                observation=(
                    f"Not applicable: rule applies when {condition.path} is "
                    f"{condition.describe()}, but {found}."
                ),
                optional=rule.optional,
            )

    if rule.is_review_item:
        return Verdict(
            rule_id=rule.id,
            resource=ref,
            outcome=Outcome.NOT_APPLICABLE,
            observation=f"Requires reviewer judgment: {rule.description}.",
            optional=rule.optional,
        )

    forbidden: list[Evidence] = []
    for condition in rule.forbid:
        forbidden.extend(_forbidden_evidence(condition, resource.fields))

    required: list[Evidence] = []
    for condition in rule.require:
        required.extend(_requirement_evidence(condition, resource.fields))

    evidence = forbidden + required
    # Stable sort: failing evidence first, forbidden overrides before requirements.
    evidence.sort(key=lambda e: e.satisfied)

    failing = [e for e in evidence if not e.satisfied]
    outcome = Outcome.FAIL if failing else Outcome.PASS

    return Verdict(
        rule_id=rule.id,
        resource=ref,
        outcome=outcome,
        evidence=tuple(evidence),
        observation=_observation(rule, failing, len(rule.require), len(rule.forbid)),
        optional=rule.optional,
    )


def _requirement_evidence(condition: FieldCondition, fields: dict) -> list[Evidence]:
    """Check a requirement at every location its path addresses.

    For wildcard paths, each element the last wildcard expands to must
    carry the remainder of the path; an element missing it is absent
    evidence rather than being silently skipped.
    """
    expected = condition.describe()
    evidence: list[Evidence] = []
    for path, present, value in _expand(parse_path(condition.path), fields, condition.path):
        if present:
            satisfied = condition.check(value)
        else:
            satisfied = condition.absent_ok()
        evidence.append(Evidence(
            path=path,
            expected=expected,
            observed=value,
            present=present,
            satisfied=satisfied,
        ))
    return evidence


def _forbidden_evidence(condition: FieldCondition, fields: dict) -> list[Evidence]:
    """Check a forbidden override; any matching value is a violation."""
    expected = condition.describe_forbidden()
    matches = resolve(fields, condition.path)
    if not matches:
        return [Evidence(
            path=condition.path,
            expected=expected,
            present=False,
            forbidden=True,
            satisfied=True,
        )]

    evidence: list[Evidence] = []
    for path, value in matches:
        hit = condition.check(value) if condition.has_predicate else True
        evidence.append(Evidence(
            path=path,
            expected=expected,
            observed=value,
            forbidden=True,
            satisfied=not hit,
        ))
    return evidence


def _expand(
    segments: tuple[Segment, ...],
    fields: dict,
    rule_path: str,
) -> list[tuple[str, bool, object]]:
    """Resolve a path into (concrete_path, present, value) triples."""
    last_wildcard = max(
        (i for i, seg in enumerate(segments) if seg is WILDCARD),
        default=-1,
    )
    if last_wildcard < 0:
        matches = resolve(fields, segments)
        if not matches:
            return [(rule_path, False, None)]
        return [(path, True, value) for path, value in matches]

    prefix = segments[:last_wildcard + 1]
    suffix = segments[last_wildcard + 1:]
    elements = resolve(fields, prefix)
    if not elements:
        return [(rule_path, False, None)]

    results: list[tuple[str, bool, object]] = []
    for element_path, element in elements:
        if not suffix:
            results.append((element_path, True, element))
            continue
        matches = resolve(element, suffix)
        if not matches:
            results.append((_join(element_path, format_path(suffix)), False, None))
        for path, value in matches:
            results.append((_join(element_path, path), True, value))
    return results


def _join(prefix: str, rest: str) -> str:
    if not rest:
        return prefix
    if rest.startswith("["):
        return prefix + rest
    return f"{prefix}.{rest}"


def _observation(rule: Rule, failing: list[Evidence], n_require: int, n_forbid: int) -> str:
    """Summarize a verdict's evidence in one line."""
    if not failing:
        parts = []
        if n_require:
            parts.append(f"{n_require} requirement(s) satisfied")
        if n_forbid:
            parts.append("no forbidden override present")
        return f"{rule.description}: " + ", ".join(parts) + "."

    notes: list[str] = []
    for e in failing:
        if e.forbidden:
            notes.append(f"forbidden override at {e.path} ({format_observed(e.observed)})")
        elif not e.present:
            notes.append(f"required field {e.path} is absent")
        else:
            notes.append(f"{e.path} is {e.observed_text}, expected {e.expected}")
    return f"{rule.description}: " + "; ".join(notes) + "."
