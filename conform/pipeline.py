"""End-to-end evaluation: parse, evaluate, compare, build the report.

Parsing is fully materialized before any rule is evaluated, so a
malformed document never produces a partial report.
"""

from __future__ import annotations

import warnings
from pathlib import Path

from conform.audit.logger import EvaluationLogger
from conform.config import EvaluatorSettings
from conform.evaluate.compare import AmbiguousMatchError, compare
from conform.evaluate.engine import evaluate
from conform.evaluate.models import NotApplicableWarning, Verdict
from conform.parse import Dialect, ParsedResource, parse, resolve_dialect
from conform.report.builder import Report, build
from conform.rules.loader import load_rules
from conform.rules.packs import PACK_PREFIX, get_pack
from conform.rules.registry import RuleRegistry


def resolve_rules(spec: str | Path) -> RuleRegistry:
    """Load rules from a YAML path or a built-in ``pack:<name>``.

    Raises:
        FileNotFoundError: If the rules file doesn't exist.
        MalformedRuleError: If the rules file is invalid.
        ValueError: If the pack name is unknown.
    """
    text = str(spec)
    if text.startswith(PACK_PREFIX):
        return get_pack(text)
    return load_rules(Path(spec))


def run_evaluation(
    rules: RuleRegistry,
    policy_text: str,
    dialect: Dialect | str,
    *,
    source: str = "<string>",
    reference_text: str | None = None,
    reference_source: str = "<reference>",
    settings: EvaluatorSettings | None = None,
    logger: EvaluationLogger | None = None,
) -> Report:
    """Evaluate a policy document and build its report.

    Args:
        rules: The rules to evaluate.
        policy_text: The policy document under review.
        dialect: The policy's dialect (shared by the reference).
        source: Label for the policy in locations and logs.
        reference_text: A known-good reference policy to compare with.
        reference_source: Label for the reference policy.
        settings: Effective settings (defaults to the rules file's).
        logger: Optional audit logger.

    Returns:
        The assembled Report.

    Raises:
        UnsupportedDialectError: If the dialect is unknown.
        PolicySyntaxError: If either document is malformed.
    """
    settings = settings or rules.settings
    resources = list(parse(policy_text, dialect, source=source, max_depth=settings.max_depth))
    reference: list[ParsedResource] | None = None
    if reference_text is not None:
        reference = list(
            parse(reference_text, dialect, source=reference_source, max_depth=settings.max_depth)
        )

    if logger is not None:
        logger.log_start(
            rules_source=rules.source,
            policy_source=source,
            dialect=resolve_dialect(dialect).value,
            rule_count=len(rules),
            reference_source=reference_source if reference is not None else None,
        )

    notes: list[str] = []
    verdicts = _evaluate_recording(resources, rules, notes)

    divergences = None
    if reference is not None:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", NotApplicableWarning)
            reference_verdicts = list(evaluate(reference, rules))
        try:
            divergences = compare(verdicts, reference_verdicts, match_by=settings.match_by)
        except AmbiguousMatchError as e:
            notes.append(f"Comparison skipped: {e}")

    report = build(verdicts, divergences, warnings=notes)

    if logger is not None:
        for verdict in report.verdicts:
            logger.log_verdict(verdict)
        for divergence in report.divergences:
            logger.log_divergence(divergence)
        for note in report.warnings:
            logger.log_warning(note)
        logger.log_end(report.passed, report.counts, report.score(settings.scoring))

    return report


def _evaluate_recording(
    resources: list[ParsedResource],
    rules: RuleRegistry,
    notes: list[str],
) -> list[Verdict]:
    """Evaluate, turning NotApplicableWarnings into report notes."""
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", NotApplicableWarning)
        verdicts = list(evaluate(resources, rules))
    for w in caught:
        if issubclass(w.category, NotApplicableWarning):
            notes.append(str(w.message))
        else:
            warnings.warn_explicit(w.message, w.category, w.filename, w.lineno)
    return verdicts
