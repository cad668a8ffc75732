"""Reference comparison.

Pairs the verdicts of a candidate policy with those of a reference policy
and reports every rule whose outcome differs. Resources are paired by kind
plus ordinal position (default) or by kind plus resource name.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from conform.config import MatchStrategy
from conform.evaluate.models import Outcome, ResourceRef, Verdict


class AmbiguousMatchError(Exception):
    """Raised when candidate and reference resources cannot be paired.

    Attributes:
        kind: The resource kind that could not be paired.
    """

    def __init__(self, kind: str, message: str) -> None:
        self.kind = kind
        super().__init__(message)


@dataclass(frozen=True)
class Divergence:
    """A rule whose outcome differs between candidate and reference.

    Attributes:
        rule_id: The rule whose outcome differs.
        kind: Resource kind of the paired resources.
        match_key: How the resources were paired ("#0" for ordinal, else the name).
        candidate: Candidate outcome, or None when the candidate has no verdict.
        reference: Reference outcome, or None when the reference has no verdict.
        candidate_resource: The candidate resource, if any.
        reference_resource: The reference resource, if any.
    """

    rule_id: str
    kind: str
    match_key: str
    candidate: Outcome | None
    reference: Outcome | None
    candidate_resource: ResourceRef | None = None
    reference_resource: ResourceRef | None = None

    @property
    def description(self) -> str:
        cand = self.candidate.value if self.candidate else "no verdict"
        ref = self.reference.value if self.reference else "no verdict"
        return (
            f"{self.rule_id} on {self.kind}{_key_suffix(self.match_key)}: "
            f"candidate {cand}, reference {ref}"
        )


def compare(
    candidate_verdicts: Iterable[Verdict],
    reference_verdicts: Iterable[Verdict],
    *,
    match_by: MatchStrategy | str = MatchStrategy.ORDINAL,
) -> list[Divergence]:
    """Compare candidate verdicts against reference verdicts.

    Args:
        candidate_verdicts: Verdicts for the policy under review.
        reference_verdicts: Verdicts for the known-good reference policy.
        match_by: "ordinal" (kind + position) or "name" (kind + resource name).

    Returns:
        Divergences in candidate order, followed by reference-only
        verdicts. Empty when both sides agree on every rule.

    Raises:
        AmbiguousMatchError: If the resources of some kind cannot be
            paired one-to-one.
    """
    strategy = MatchStrategy(match_by)
    candidate = list(candidate_verdicts)
    reference = list(reference_verdicts)

    cand_resources = _resources_by_kind(candidate)
    ref_resources = _resources_by_kind(reference)

    for kind in _ordered_union(cand_resources, ref_resources):
        cand = cand_resources.get(kind, [])
        ref = ref_resources.get(kind, [])
        if len(cand) != len(ref):
            raise AmbiguousMatchError(
                kind,
                f"Cannot pair '{kind}' resources: candidate has {len(cand)}, "
                f"reference has {len(ref)}.",
            )
        if strategy == MatchStrategy.NAME:
            _check_names(kind, cand, ref)

    cand_index = _index(candidate, strategy)
    ref_index = _index(reference, strategy)

    divergences: list[Divergence] = []
    for key in _ordered_union(cand_index, ref_index):
        kind, match_key = key
        cand_verdicts = cand_index.get(key, {})
        ref_verdicts = ref_index.get(key, {})
        for rule_id in _ordered_union(cand_verdicts, ref_verdicts):
            cv = cand_verdicts.get(rule_id)
            rv = ref_verdicts.get(rule_id)
            cand_outcome = cv.outcome if cv else None
            ref_outcome = rv.outcome if rv else None
            if cand_outcome == ref_outcome:
                continue
            divergences.append(Divergence(
                rule_id=rule_id,
                kind=kind,
                match_key=match_key,
                candidate=cand_outcome,
                reference=ref_outcome,
                candidate_resource=cv.resource if cv else None,
                reference_resource=rv.resource if rv else None,
            ))
    return divergences


def _resources_by_kind(verdicts: list[Verdict]) -> dict[str, list[ResourceRef]]:
    """Distinct resources per kind, in first-seen order."""
    seen: dict[tuple[str, int], ResourceRef] = {}
    for v in verdicts:
        seen.setdefault((v.resource.kind, v.resource.ordinal), v.resource)
    grouped: dict[str, list[ResourceRef]] = {}
    for ref in seen.values():
        grouped.setdefault(ref.kind, []).append(ref)
    return grouped


def _check_names(kind: str, cand: list[ResourceRef], ref: list[ResourceRef]) -> None:
    for side, refs in (("candidate", cand), ("reference", ref)):
        unnamed = [r for r in refs if not r.name]
        if unnamed:
            raise AmbiguousMatchError(
                kind,
                f"Cannot pair '{kind}' resources by name: {side} resource "
                f"{unnamed[0].label} at {unnamed[0].location} has no name. "
                f"Use ordinal matching instead.",
            )
        names = [r.name for r in refs]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise AmbiguousMatchError(
                kind,
                f"Cannot pair '{kind}' resources by name: {side} has duplicate "
                f"name(s) {', '.join(duplicates)}.",
            )
    missing = sorted({r.name for r in ref} - {r.name for r in cand})
    extra = sorted({r.name for r in cand} - {r.name for r in ref})
    if missing or extra:
        details = []
        if missing:
            details.append(f"missing from candidate: {', '.join(missing)}")
        if extra:
            details.append(f"not in reference: {', '.join(extra)}")
        raise AmbiguousMatchError(
            kind,
            f"Cannot pair '{kind}' resources by name ({'; '.join(details)}).",
        )


def _index(
    verdicts: list[Verdict],
    strategy: MatchStrategy,
) -> dict[tuple[str, str], dict[str, Verdict]]:
    index: dict[tuple[str, str], dict[str, Verdict]] = {}
    for v in verdicts:
        if strategy == MatchStrategy.NAME:
            match_key = v.resource.name or ""
        else:
            match_key = f"#{v.resource.ordinal}"
        index.setdefault((v.resource.kind, match_key), {})[v.rule_id] = v
    return index


def _ordered_union(first: dict, second: dict) -> list:
    return list(first) + [k for k in second if k not in first]


def _key_suffix(match_key: str) -> str:
    return match_key if match_key.startswith("#") else f".{match_key}"
