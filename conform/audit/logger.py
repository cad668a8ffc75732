"""Structured audit logging for conformance evaluations.

Logs every verdict and divergence as structured JSON. Writes to stderr
(via rich) for human-readable progress, and optionally to a JSON Lines
file for machine consumption and review archives.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any

from rich.console import Console
from rich.markup import escape

from conform.evaluate.compare import Divergence
from conform.evaluate.models import Outcome, Verdict

# All CLI/log output goes to stderr; stdout is reserved for JSON/SARIF reports
_console = Console(stderr=True)


class EvaluationLogger:
    """Logs evaluation lifecycle events, verdicts and divergences.

    Attributes:
        log_file: Optional open file handle for JSON Lines output.
    """

    def __init__(
        self,
        log_path: Path | None = None,
        *,
        verbose: bool = False,
        console: Console | None = None,
    ) -> None:
        """Initialize the evaluation logger.

        Args:
            log_path: Optional path to write a JSON Lines audit log.
                      If None, only logs to stderr via rich console.
            verbose: Print every verdict to stderr, not just failures.
            console: Console for human-readable output (stderr by default).
        """
        self._log_file: IO[str] | None = None
        self._log_path = log_path
        self._verbose = verbose
        self._console = console or _console
        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            self._log_file = open(log_path, "a", encoding="utf-8")  # noqa: SIM115

    def close(self) -> None:
        """Flush and close the log file if open."""
        if self._log_file is not None:
            self._log_file.flush()
            self._log_file.close()
            self._log_file = None

    def __enter__(self) -> EvaluationLogger:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def log_start(
        self,
        rules_source: str,
        policy_source: str,
        dialect: str,
        rule_count: int,
        reference_source: str | None = None,
    ) -> None:
        """Log the start of an evaluation.

        Args:
            rules_source: Where the rules came from (path or pack:<name>).
            policy_source: The policy document under review.
            dialect: The policy dialect.
            rule_count: Number of rules loaded.
            reference_source: The reference policy, if comparing.
        """
        entry: dict[str, Any] = {
            "timestamp": _now_iso(),
            "event": "evaluation_start",
            "rules": rules_source,
            "policy": policy_source,
            "dialect": dialect,
            "rule_count": rule_count,
        }
        if reference_source is not None:
            entry["reference"] = reference_source
        self._write_entry(entry)

        self._console.print(
            f"[bold #5eead4]Evaluating[/bold #5eead4] {escape(policy_source)} "
            f"[dim]({dialect}, {rule_count} rules from {escape(rules_source)})[/dim]",
            highlight=False,
        )

    def log_verdict(self, verdict: Verdict) -> None:
        """Log one verdict.

        Args:
            verdict: The verdict produced by the evaluator.
        """
        entry: dict[str, Any] = {
            "timestamp": _now_iso(),
            "event": "verdict",
            "rule_id": verdict.rule_id,
            "kind": verdict.resource.kind,
            "name": verdict.resource.name,
            "ordinal": verdict.resource.ordinal,
            "location": str(verdict.resource.location),
            "outcome": verdict.outcome.value,
        }
        if verdict.optional:
            entry["optional"] = True
        failing = verdict.failing_evidence
        if failing:
            entry["failing_paths"] = [e.path for e in failing]
        self._write_entry(entry)

        if verdict.outcome == Outcome.FAIL:
            tag = "[#ffcc00]! ADVISORY[/#ffcc00]" if verdict.optional else "[bold red]✗ FAIL[/bold red]"
            self._console.print(
                f"  {tag} {escape(verdict.rule_id)} {escape(verdict.resource.label)}",
                highlight=False,
            )
            self._console.print(f"    [dim]{escape(verdict.observation)}[/dim]", highlight=False)
        elif self._verbose:
            style = "#00ff88" if verdict.outcome == Outcome.PASS else "dim"
            mark = "✓ PASS" if verdict.outcome == Outcome.PASS else "- N/A"
            self._console.print(
                f"  [{style}]{mark}[/{style}] {escape(verdict.rule_id)} "
                f"{escape(verdict.resource.label)}",
                highlight=False,
            )

    def log_divergence(self, divergence: Divergence) -> None:
        """Log a difference from the reference policy.

        Args:
            divergence: The divergence found by the comparator.
        """
        entry = {
            "timestamp": _now_iso(),
            "event": "divergence",
            "rule_id": divergence.rule_id,
            "kind": divergence.kind,
            "match_key": divergence.match_key,
            "candidate": divergence.candidate.value if divergence.candidate else None,
            "reference": divergence.reference.value if divergence.reference else None,
        }
        self._write_entry(entry)

        self._console.print(
            f"  [#ffcc00]≠ DIVERGES[/#ffcc00] {escape(divergence.description)}",
            highlight=False,
        )

    def log_warning(self, message: str) -> None:
        """Log a non-fatal warning (skipped resource, skipped comparison)."""
        self._write_entry({
            "timestamp": _now_iso(),
            "event": "warning",
            "message": message,
        })
        self._console.print(f"  [#ffcc00]Warning:[/#ffcc00] {escape(message)}", highlight=False)

    def log_end(self, passed: bool, counts: dict[Outcome, int], score: float | None) -> None:
        """Log the end of an evaluation.

        Args:
            passed: The overall outcome.
            counts: Verdict counts per outcome.
            score: The primary score, if any verdict was scored.
        """
        entry = {
            "timestamp": _now_iso(),
            "event": "evaluation_end",
            "passed": passed,
            "counts": {outcome.value: n for outcome, n in counts.items()},
            "score": score,
        }
        self._write_entry(entry)

    def _write_entry(self, entry: dict[str, Any]) -> None:
        """Write a structured JSON entry to the log file.

        If the write fails (disk full, permission error, etc.), logs the
        failure to stderr and stops writing; the evaluation itself
        continues.

        Args:
            entry: The log entry as a dictionary.
        """
        if self._log_file is not None:
            try:
                self._log_file.write(json.dumps(entry, default=str) + "\n")
                self._log_file.flush()
            except (OSError, ValueError) as e:
                # OSError: disk full, permission denied, etc.
                # ValueError: I/O operation on closed file
                self._console.print(
                    f"[bold red]Audit log write failed:[/bold red] {e}",
                    highlight=False,
                )
                try:
                    self._log_file.close()
                except (OSError, ValueError):
                    pass
                self._log_file = None


def _now_iso() -> str:
    """Return the current UTC timestamp in ISO 8601 format."""
    return datetime.now(timezone.utc).isoformat()
