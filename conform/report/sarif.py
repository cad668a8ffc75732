"""SARIF (Static Analysis Results Interchange Format) report generator.

Produces a SARIF v2.1.0 report from a conformance report, suitable for
upload to GitHub's Security tab via the `github/codeql-action/upload-sarif`
action. Every failing verdict becomes a result located at the resource.

SARIF spec: https://docs.oasis-open.org/sarif/sarif/v2.1.0/sarif-v2.1.0.html
"""

from __future__ import annotations

import json
from typing import Any

import conform
from conform.evaluate.models import Outcome
from conform.report.builder import Report
from conform.rules.registry import RuleRegistry
from conform.rules.schema import RuleSeverity

# Mapping from rule severity to SARIF level.
_SARIF_LEVEL = {
    RuleSeverity.CRITICAL: "error",
    RuleSeverity.HIGH: "error",
    RuleSeverity.MEDIUM: "warning",
    RuleSeverity.LOW: "note",
}


def generate_sarif(report: Report, rules: RuleRegistry | None = None) -> str:
    """Generate a SARIF v2.1.0 report.

    Args:
        report: The assembled conformance report.
        rules: The evaluated rules, used for rule metadata and levels.
               Without them, blocking failures are errors and advisory
               failures are notes.

    Returns:
        JSON string of the SARIF report.
    """
    sarif_rules: list[dict[str, Any]] = []
    results: list[dict[str, Any]] = []
    rule_ids: set[str] = set()

    for verdict in report.verdicts:
        if verdict.outcome != Outcome.FAIL:
            continue

        rule = rules.get_rule(verdict.rule_id) if rules and verdict.rule_id in rules else None
        if rule is not None:
            level = _SARIF_LEVEL[rule.severity]
        else:
            level = "error"
        if verdict.optional:
            level = "note"

        if verdict.rule_id not in rule_ids:
            rule_ids.add(verdict.rule_id)
            entry: dict[str, Any] = {
                "id": verdict.rule_id,
                "shortDescription": {
                    "text": rule.description if rule else verdict.rule_id,
                },
                "defaultConfiguration": {"level": level},
            }
            if rule is not None and rule.remediation:
                entry["help"] = {"text": rule.remediation}
            sarif_rules.append(entry)

        location = verdict.resource.location
        results.append({
            "ruleId": verdict.rule_id,
            "level": level,
            "message": {"text": verdict.observation},
            "locations": [{
                "physicalLocation": {
                    "artifactLocation": {"uri": location.source},
                    "region": {
                        "startLine": location.line,
                        "startColumn": location.column,
                    },
                },
                "logicalLocations": [{
                    "name": verdict.resource.label,
                    "kind": "resource",
                }],
            }],
        })

    sarif = {
        "$schema": "https://schemastore.azurewebsites.net/schemas/json/sarif-2.1.0-rtm.5.json",
        "version": "2.1.0",
        "runs": [{
            "tool": {
                "driver": {
                    "name": "conform",
                    "version": conform.__version__,
                    "rules": sarif_rules,
                },
            },
            "results": results,
        }],
    }

    return json.dumps(sarif, indent=2)
