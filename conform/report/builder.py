"""Report building.

Aggregates verdicts and divergences into a Report with an overall
outcome, one recommendation per failing verdict, and pluggable scores.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass

from conform.evaluate.compare import Divergence
from conform.evaluate.models import Outcome, ResourceRef, Verdict
from conform.report.scoring import ScoringStrategy, get_strategy


@dataclass(frozen=True)
class Recommendation:
    """An actionable fix for one failing verdict.

    Attributes:
        rule_id: The failing rule.
        resource: The non-compliant resource.
        message: ``"<rule id>: expected <predicate> at <path>, found <observed>."``
        optional: True when the failing rule is advisory.
    """

    rule_id: str
    resource: ResourceRef
    message: str
    optional: bool = False


@dataclass(frozen=True)
class Report:
    """The outcome of a conformance review.

    Attributes:
        verdicts: Every verdict, in evaluation order.
        divergences: Differences from the reference policy, if one was given.
        recommendations: One per failing verdict, in verdict order.
        warnings: Non-fatal notes (skipped resources, skipped comparison).
    """

    verdicts: tuple[Verdict, ...]
    divergences: tuple[Divergence, ...] = ()
    recommendations: tuple[Recommendation, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def passed(self) -> bool:
        """True iff every blocking verdict passes and nothing diverges."""
        if self.divergences:
            return False
        return all(v.outcome == Outcome.PASS for v in self.verdicts if v.blocking)

    @property
    def counts(self) -> dict[Outcome, int]:
        """Number of verdicts per outcome (every outcome present)."""
        tally = Counter(v.outcome for v in self.verdicts)
        return {outcome: tally.get(outcome, 0) for outcome in Outcome}

    @property
    def failures(self) -> tuple[Verdict, ...]:
        return tuple(v for v in self.verdicts if v.outcome == Outcome.FAIL)

    def score(self, strategy: str | ScoringStrategy = "pass-fail") -> float | None:
        """Average per-verdict score under a scoring strategy.

        Args:
            strategy: A registered strategy name or a strategy function.

        Returns:
            The mean of every non-None verdict score, or None when no
            verdict is scored.
        """
        fn = get_strategy(strategy) if isinstance(strategy, str) else strategy
        scores = [s for s in (fn(v) for v in self.verdicts) if s is not None]
        if not scores:
            return None
        return sum(scores) / len(scores)


def build(
    verdicts: Iterable[Verdict],
    divergences: Iterable[Divergence] | None = None,
    *,
    warnings: Iterable[str] = (),
) -> Report:
    """Build a report from evaluation results.

    Args:
        verdicts: Verdicts for the candidate policy.
        divergences: Divergences from the reference policy, or None when
                     no reference was compared.
        warnings: Non-fatal notes to carry into the report.

    Returns:
        The assembled Report.
    """
    verdict_list = tuple(verdicts)
    return Report(
        verdicts=verdict_list,
        divergences=tuple(divergences or ()),
        recommendations=tuple(
            recommend(v) for v in verdict_list if v.outcome == Outcome.FAIL
        ),
        warnings=tuple(warnings),
    )


def recommend(verdict: Verdict) -> Recommendation:
    """Turn a failing verdict into a recommendation.

    The message names the first failing piece of evidence, which is a
    forbidden override when one fired.
    """
    failing = verdict.failing_evidence
    if failing:
        e = failing[0]
        message = f"{verdict.rule_id}: expected {e.expected} at {e.path}, found {e.observed_text}."
    else:
        message = f"{verdict.rule_id}: {verdict.observation}"
    return Recommendation(
        rule_id=verdict.rule_id,
        resource=verdict.resource,
        message=message,
        optional=verdict.optional,
    )
