"""conform CLI entry point.

Provides the `conform` command with subcommands:
  - evaluate: Check a policy document against compliance rules
  - parse: Show the resources a policy document parses into
  - rules: Show a rules file or built-in pack, or list the packs

Exit codes for `evaluate`: 0 on pass, 1 on evaluation failure, 2 on
input errors (unreadable rules, malformed policy, unknown dialect,
missing file).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from conform import __version__
from conform.audit.logger import EvaluationLogger
from conform.config import EvaluatorSettings, OutputFormat
from conform.parse import (
    Dialect,
    PolicySyntaxError,
    UnsupportedDialectError,
    detect_dialect,
    parse,
    resolve_dialect,
)
from conform.pipeline import resolve_rules, run_evaluation
from conform.report.render import render_report, render_report_json
from conform.report.sarif import generate_sarif
from conform.rules.loader import MalformedRuleError
from conform.rules.packs import available_packs
from conform.rules.registry import RuleRegistry

app = typer.Typer(
    name="conform",
    help="Review infrastructure-as-code policies against structured compliance rules.",
    no_args_is_help=True,
)

_console = Console(stderr=True)

EXIT_FAIL = 1
EXIT_INPUT_ERROR = 2


def _version_callback(value: bool) -> None:
    if value:
        _console.print(f"conform {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """conform: policy conformance evaluator for Terraform, Kubernetes and Rego."""


def _input_error(message: str) -> typer.Exit:
    _console.print(f"[bold red]Error:[/bold red] {escape(message)}", highlight=False)
    return typer.Exit(EXIT_INPUT_ERROR)


def _load_registry(rules: str) -> RuleRegistry:
    try:
        return resolve_rules(rules)
    except (FileNotFoundError, MalformedRuleError, ValueError) as e:
        raise _input_error(str(e)) from None


def _read_document(path: Path, what: str) -> str:
    if not path.is_file():
        raise _input_error(f"{what} not found: {path}")
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise _input_error(f"Cannot read {what.lower()} {path}: {e}") from None


def _pick_dialect(dialect: str | None, path: Path) -> Dialect:
    if dialect is not None:
        try:
            return resolve_dialect(dialect)
        except UnsupportedDialectError as e:
            raise _input_error(str(e)) from None
    try:
        return detect_dialect(path)
    except UnsupportedDialectError as e:
        raise _input_error(f"{e} Pass --dialect explicitly.") from None


def _settings_error(e: ValidationError) -> typer.Exit:
    lines = [
        f"  - {' → '.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
    ]
    return _input_error("Invalid option(s):\n" + "\n".join(lines))


# ---------------------------------------------------------------------------
# evaluate command
# ---------------------------------------------------------------------------


@app.command()
def evaluate(
    rules: Annotated[
        str,
        typer.Argument(help="Path to a YAML rules file, or a built-in pack as pack:<name>."),
    ],
    policy: Annotated[
        Path,
        typer.Argument(help="Policy document to review (.tf, .hcl, .yaml, .yml, .rego)."),
    ],
    dialect: Annotated[
        Optional[str],
        typer.Option(
            "--dialect",
            "-d",
            help="Policy dialect: terraform-hcl, kubernetes-yaml or rego. "
            "Detected from the file extension when omitted.",
        ),
    ] = None,
    reference: Annotated[
        Optional[Path],
        typer.Option(
            "--reference",
            "-r",
            help="Known-good reference policy (same dialect) to compare outcomes against.",
        ),
    ] = None,
    fmt: Annotated[
        Optional[str],
        typer.Option("--format", "-f", help="Report format: text, json or sarif."),
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write the report to a file instead of the terminal."),
    ] = None,
    match_by: Annotated[
        Optional[str],
        typer.Option(
            "--match-by",
            help="How to pair resources with the reference: ordinal (default) or name. "
            "Overrides settings.match_by in the rules file.",
        ),
    ] = None,
    scoring: Annotated[
        Optional[str],
        typer.Option(
            "--scoring",
            help="Scoring strategy: pass-fail (default) or five-point. "
            "Overrides settings.scoring in the rules file.",
        ),
    ] = None,
    max_depth: Annotated[
        Optional[int],
        typer.Option(
            "--max-depth",
            help="Reject documents nested deeper than this. "
            "Overrides settings.max_depth in the rules file.",
        ),
    ] = None,
    log: Annotated[
        Optional[Path],
        typer.Option(
            "--log",
            "-l",
            help="Path to write a structured JSON Lines audit log.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Print every verdict while evaluating, not just failures."),
    ] = False,
) -> None:
    """Evaluate a policy document against compliance rules.

    Examples:
      conform evaluate rules.yaml main.tf
      conform evaluate pack:k8s-pod-security deploy.yaml --format json
      conform evaluate rules.yaml policy.rego --reference golden.rego --match-by name
      conform evaluate pack:tf-storage main.tf --format sarif -o conform.sarif
    """
    registry = _load_registry(rules)
    try:
        settings = registry.settings.merged(
            max_depth=max_depth,
            match_by=match_by,
            scoring=scoring,
            format=fmt,
        )
    except ValidationError as e:
        raise _settings_error(e) from None

    policy_text = _read_document(policy, "Policy file")
    resolved = _pick_dialect(dialect, policy)
    reference_text = _read_document(reference, "Reference file") if reference else None

    # Machine-readable reports go to stdout; keep stderr progress out of them.
    machine = settings.format != OutputFormat.TEXT
    progress = Console(stderr=True, quiet=machine and output is None)
    try:
        logger = EvaluationLogger(log, verbose=verbose, console=progress)
    except OSError as e:
        raise _input_error(f"Cannot open audit log {log}: {e}") from None
    try:
        report = run_evaluation(
            registry,
            policy_text,
            resolved,
            source=str(policy),
            reference_text=reference_text,
            reference_source=str(reference) if reference else "<reference>",
            settings=settings,
            logger=logger,
        )
    except PolicySyntaxError as e:
        raise _input_error(f"Malformed policy: {e}") from None
    finally:
        logger.close()

    if settings.format == OutputFormat.TEXT:
        if output is not None:
            try:
                with output.open("w", encoding="utf-8") as fh:
                    file_console = Console(file=fh, width=120, color_system=None)
                    render_report(report, file_console, scoring=settings.scoring, rules=registry)
            except OSError as e:
                raise _input_error(f"Cannot write report to {output}: {e}") from None
        else:
            render_report(report, _console, scoring=settings.scoring, rules=registry)
    else:
        if settings.format == OutputFormat.JSON:
            content = json.dumps(
                render_report_json(report, scoring=settings.scoring), indent=2, default=str
            )
        else:
            content = generate_sarif(report, registry)
        if output is not None:
            try:
                output.write_text(content + "\n", encoding="utf-8")
            except OSError as e:
                raise _input_error(f"Cannot write report to {output}: {e}") from None
        else:
            Console().print_json(content)

    if output is not None:
        _console.print(
            f"[#00ff88]✓[/#00ff88] Report written to {escape(str(output))}",
            highlight=False,
        )

    if not report.passed:
        raise typer.Exit(EXIT_FAIL)


# ---------------------------------------------------------------------------
# parse command
# ---------------------------------------------------------------------------


@app.command("parse")
def parse_command(
    policy: Annotated[
        Path,
        typer.Argument(help="Policy document to parse."),
    ],
    dialect: Annotated[
        Optional[str],
        typer.Option("--dialect", "-d", help="Policy dialect (detected from extension when omitted)."),
    ] = None,
    max_depth: Annotated[
        int,
        typer.Option("--max-depth", help="Reject documents nested deeper than this."),
    ] = EvaluatorSettings().max_depth,
    output_json: Annotated[
        bool,
        typer.Option("--json", help="Print the parsed resources as JSON."),
    ] = False,
) -> None:
    """Show the resources a policy document parses into.

    Useful for writing rule paths: every field shown under a resource can
    be addressed by a dotted path.
    """
    text = _read_document(policy, "Policy file")
    resolved = _pick_dialect(dialect, policy)
    try:
        resources = list(parse(text, resolved, source=str(policy), max_depth=max_depth))
    except PolicySyntaxError as e:
        raise _input_error(f"Malformed policy: {e}") from None

    if output_json:
        data: list[dict[str, Any]] = [
            {
                "kind": r.kind,
                "name": r.name,
                "ordinal": r.ordinal,
                "location": str(r.location),
                "fields": r.fields,
            }
            for r in resources
        ]
        Console().print_json(json.dumps(data, default=str))
        return

    table = Table(
        title=f"{escape(str(policy))} ({resolved.value})",
        show_header=True,
        header_style="bold dim",
        border_style="#333333",
        title_style="#5eead4 bold",
    )
    table.add_column("Kind", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("#", justify="right")
    table.add_column("Location", style="dim")
    table.add_column("Top-level fields", ratio=3)
    for r in resources:
        table.add_row(
            escape(r.kind),
            escape(r.name or "—"),
            str(r.ordinal),
            escape(str(r.location)),
            escape(", ".join(sorted(map(str, r.fields)))),
        )
    _console.print(table)
    _console.print(f"[dim]{len(resources)} resource(s)[/dim]")


# ---------------------------------------------------------------------------
# rules command
# ---------------------------------------------------------------------------


@app.command("rules")
def rules_command(
    rules: Annotated[
        Optional[str],
        typer.Argument(
            help="Path to a YAML rules file, or pack:<name>. Lists built-in packs when omitted.",
        ),
    ] = None,
) -> None:
    """Validate and show a rules file or built-in pack."""
    if rules is None:
        _console.print("[bold #5eead4]Built-in rule packs:[/bold #5eead4]")
        for name in available_packs():
            _console.print(f"  pack:{name}", highlight=False)
        return

    registry = _load_registry(rules)
    table = Table(
        title=f"{escape(registry.source)} ({len(registry)} rules)",
        show_header=True,
        header_style="bold dim",
        border_style="#333333",
        title_style="#5eead4 bold",
        expand=True,
    )
    table.add_column("Rule", style="cyan", no_wrap=True)
    table.add_column("Kind", no_wrap=True)
    table.add_column("Severity", justify="center")
    table.add_column("Checks", ratio=3)
    for rule in registry:
        checks = [f"require {c.path} {c.describe()}" for c in rule.require]
        checks += [f"forbid {c.path} (compliant: {c.describe_forbidden()})" for c in rule.forbid]
        checks += [f"when {c.path} {c.describe()}" for c in rule.when]
        if rule.is_review_item:
            checks.append("reviewer judgment")
        rule_cell = f"{escape(rule.id)} [dim](optional)[/dim]" if rule.optional else escape(rule.id)
        table.add_row(
            rule_cell,
            escape(rule.kind),
            rule.severity.value,
            escape("\n".join(checks)),
        )
    _console.print(table)
    _console.print(f"[#00ff88]✓[/#00ff88] {len(registry)} rule(s) valid", highlight=False)
