"""Report rendering: rich terminal output and JSON.

The terminal report has a summary panel followed by Observations,
Scores, Recommendations and (when a reference was compared) Divergences.
"""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

import conform
from conform.evaluate.models import Outcome, ResourceRef
from conform.report.builder import Report
from conform.report.scoring import available_strategies
from conform.rules.registry import RuleRegistry

_OUTCOME_STYLES = {
    Outcome.PASS: "#00ff88",
    Outcome.FAIL: "#ff3366",
    Outcome.NOT_APPLICABLE: "dim",
}

_OUTCOME_LABELS = {
    Outcome.PASS: "PASS",
    Outcome.FAIL: "FAIL",
    Outcome.NOT_APPLICABLE: "N/A",
}


def _outcome_cell(outcome: Outcome | None) -> str:
    if outcome is None:
        return "[dim]—[/dim]"
    style = _OUTCOME_STYLES[outcome]
    return f"[bold {style}]{_OUTCOME_LABELS[outcome]}[/bold {style}]"


def _table(title: str) -> Table:
    return Table(
        title=title,
        show_header=True,
        header_style="bold dim",
        border_style="#333333",
        title_style="#5eead4 bold",
        expand=True,
    )


def render_report(
    report: Report,
    console: Console,
    *,
    scoring: str = "pass-fail",
    rules: RuleRegistry | None = None,
) -> None:
    """Render a report to the terminal using rich.

    Args:
        report: The assembled report.
        console: A rich Console instance.
        scoring: The primary scoring strategy, shown in the summary.
        rules: The evaluated rules, used to show remediation hints.
    """
    counts = report.counts
    score = report.score(scoring)
    score_text = f"{score:.2f}" if score is not None else "n/a"

    if report.passed:
        headline = "[bold #00ff88]PASS[/bold #00ff88]"
    else:
        headline = "[bold #ff3366]FAIL[/bold #ff3366]"
    parts = [
        headline,
        f"[bold]{counts[Outcome.PASS]}[/bold] passed",
        f"[bold]{counts[Outcome.FAIL]}[/bold] failed",
        f"[bold]{counts[Outcome.NOT_APPLICABLE]}[/bold] not applicable",
        f"score {score_text} ({scoring})",
    ]
    if report.divergences:
        parts.append(f"[bold yellow]{len(report.divergences)} divergence(s)[/bold yellow]")
    console.print(Panel(" · ".join(parts), title="Conformance Report", border_style="#5eead4"))

    # --- Observations ---
    if report.verdicts:
        table = _table("Observations")
        table.add_column("Resource", style="cyan", ratio=2, no_wrap=True)
        table.add_column("Location", style="dim", ratio=2, no_wrap=True)
        table.add_column("Rule", ratio=2, no_wrap=True)
        table.add_column("Outcome", justify="center", ratio=1)
        table.add_column("Observation", ratio=5)
        for v in report.verdicts:
            rule_id = escape(v.rule_id)
            rule_cell = f"{rule_id} [dim](optional)[/dim]" if v.optional else rule_id
            table.add_row(
                escape(v.resource.label),
                escape(str(v.resource.location)),
                rule_cell,
                _outcome_cell(v.outcome),
                escape(v.observation),
            )
        console.print(table)
        console.print()

    # --- Scores ---
    table = _table("Scores")
    table.add_column("Strategy", style="cyan")
    table.add_column("Score", justify="right")
    for name in available_strategies():
        value = report.score(name)
        label = f"[bold]{name}[/bold]" if name == scoring else name
        table.add_row(label, f"{value:.2f}" if value is not None else "n/a")
    console.print(table)
    console.print()

    # --- Recommendations ---
    if report.recommendations:
        table = _table("Recommendations")
        table.add_column("", width=2, no_wrap=True)
        table.add_column("Resource", style="cyan", ratio=1, no_wrap=True)
        table.add_column("Recommendation", ratio=4)
        for rec in report.recommendations:
            icon = "[bold yellow]![/bold yellow]" if rec.optional else "[bold red]!![/bold red]"
            text = escape(rec.message)
            if rules is not None and rec.rule_id in rules:
                hint = rules.get_rule(rec.rule_id).remediation
                if hint:
                    text += f"\n[dim]{escape(hint)}[/dim]"
            table.add_row(icon, escape(rec.resource.label), text)
        console.print(table)
        console.print()

    # --- Divergences ---
    if report.divergences:
        table = _table("Divergences from Reference")
        table.add_column("Rule", ratio=2, no_wrap=True)
        table.add_column("Resource", style="cyan", ratio=2)
        table.add_column("Candidate", justify="center", ratio=1)
        table.add_column("Reference", justify="center", ratio=1)
        for d in report.divergences:
            resource = d.candidate_resource or d.reference_resource
            table.add_row(
                escape(d.rule_id),
                escape(resource.label if resource else d.kind),
                _outcome_cell(d.candidate),
                _outcome_cell(d.reference),
            )
        console.print(table)
        console.print()

    for note in report.warnings:
        console.print(f"[#ffcc00]Warning:[/#ffcc00] {escape(note)}", highlight=False)


def render_report_json(report: Report, *, scoring: str = "pass-fail") -> dict[str, Any]:
    """Convert a report to a JSON-serializable dict.

    Args:
        report: The assembled report.
        scoring: The primary scoring strategy.

    Returns:
        A dict suitable for json.dumps().
    """
    verdicts = []
    for v in report.verdicts:
        verdicts.append({
            "rule_id": v.rule_id,
            "resource": _resource_json(v.resource),
            "outcome": v.outcome.value,
            "optional": v.optional,
            "observation": v.observation,
            "evidence": [
                {
                    "path": e.path,
                    "expected": e.expected,
                    "observed": e.observed if e.present else None,
                    "present": e.present,
                    "forbidden": e.forbidden,
                    "satisfied": e.satisfied,
                }
                for e in v.evidence
            ],
        })

    return {
        "version": conform.__version__,
        "passed": report.passed,
        "scoring": scoring,
        "score": report.score(scoring),
        "scores": {name: report.score(name) for name in available_strategies()},
        "counts": {outcome.value: n for outcome, n in report.counts.items()},
        "verdicts": verdicts,
        "recommendations": [
            {"rule_id": r.rule_id, "resource": r.resource.label, "message": r.message}
            for r in report.recommendations
        ],
        "divergences": [
            {
                "rule_id": d.rule_id,
                "kind": d.kind,
                "match_key": d.match_key,
                "candidate": d.candidate.value if d.candidate else None,
                "reference": d.reference.value if d.reference else None,
            }
            for d in report.divergences
        ],
        "warnings": list(report.warnings),
    }


def _resource_json(ref: ResourceRef) -> dict[str, Any]:
    return {
        "kind": ref.kind,
        "name": ref.name,
        "ordinal": ref.ordinal,
        "source": ref.location.source,
        "line": ref.location.line,
        "column": ref.location.column,
    }
