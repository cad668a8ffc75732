"""Scoring strategies.

A strategy maps one verdict to a numeric score (or None to leave it
unscored). Reports average the per-verdict scores, so the binary
pass/fail rubric and the 1-5 review scale both apply to the same verdicts.
"""

from __future__ import annotations

from collections.abc import Callable

from conform.evaluate.models import Outcome, Verdict

ScoringStrategy = Callable[[Verdict], "float | None"]

_REGISTRY: dict[str, ScoringStrategy] = {}


def register_strategy(name: str, strategy: ScoringStrategy) -> None:
    """Register a scoring strategy under a name."""
    _REGISTRY[name.lower()] = strategy


def get_strategy(name: str) -> ScoringStrategy:
    """Look up a scoring strategy.

    Raises:
        ValueError: If no strategy is registered under the name.
    """
    key = name.lower()
    if key not in _REGISTRY:
        available = ", ".join(sorted(_REGISTRY)) or "(none)"
        msg = f"Unknown scoring strategy: '{name}'. Available strategies: {available}."
        raise ValueError(msg)
    return _REGISTRY[key]


def available_strategies() -> list[str]:
    """Return sorted list of registered strategy names."""
    return sorted(_REGISTRY)


def pass_fail(verdict: Verdict) -> float | None:
    """1 for pass, 0 for fail; not-applicable verdicts are unscored."""
    if verdict.outcome == Outcome.PASS:
        return 1.0
    if verdict.outcome == Outcome.FAIL:
        return 0.0
    return None


def five_point(verdict: Verdict) -> float | None:
    """Review-scale score: 5 for pass, 1 for a blocking fail.

    An optional (advisory) failure scores 3, and a failing verdict that
    satisfied some of its requirements scores 2.
    """
    if verdict.outcome == Outcome.PASS:
        return 5.0
    if verdict.outcome == Outcome.NOT_APPLICABLE:
        return None
    if verdict.optional:
        return 3.0
    if any(e.satisfied for e in verdict.evidence):
        return 2.0
    return 1.0


register_strategy("pass-fail", pass_fail)
register_strategy("five-point", five_point)
