"""Rego authorization baseline.

Structural checks for generated OPA authorization policies:

- The package is namespaced
- ``default allow`` is false (deny by default)
- Every ``allow`` rule has a body (no unconditional allow)
- No ``allow`` rule matches a wildcard principal
- ``deny`` rules produce a message
"""

from __future__ import annotations

from conform.rules.packs import register_pack
from conform.rules.schema import Rule, RuleSeverity

REGO_AUTHZ_RULES: list[Rule] = [
    Rule(
        id="rego-namespaced-package",
        description="Policies must live in a namespaced package",
        kind="package",
        require=[{"path": "path", "matches": r"^[A-Za-z_][\w]*(\.[A-Za-z_][\w]*)+$"}],
        severity=RuleSeverity.LOW,
    ),
    Rule(
        id="rego-default-deny",
        description="The default allow decision must be false",
        kind="rule",
        when=[{"path": "name", "equals": "allow"}, {"path": "default", "equals": True}],
        require={"value": False},
        severity=RuleSeverity.CRITICAL,
        remediation="Declare `default allow := false`.",
    ),
    Rule(
        id="rego-conditional-allow",
        description="Every allow rule must have at least one condition",
        kind="rule",
        when=[{"path": "name", "equals": "allow"}, {"path": "default", "equals": False}],
        require=["body[0]"],
        severity=RuleSeverity.HIGH,
    ),
    Rule(
        id="rego-no-wildcard-principal",
        description="Allow rules must not grant access to a wildcard principal",
        kind="rule",
        when=[{"path": "name", "equals": "allow"}],
        forbid=[{"path": "body[*]", "matches": r"==\s*\"\*\""}],
        severity=RuleSeverity.CRITICAL,
    ),
    Rule(
        id="rego-deny-message",
        description="Deny rules must produce a message for the caller",
        kind="rule",
        when=[{"path": "name", "equals": "deny"}],
        require=["key"],
        severity=RuleSeverity.LOW,
    ),
    Rule(
        id="rego-import-review",
        description="Imported data documents need reviewer sign-off",
        kind="import",
        when=[{"path": "path", "matches": r"^data\."}],
        optional=True,
        severity=RuleSeverity.LOW,
    ),
]

# Register on import
register_pack("rego-authz", REGO_AUTHZ_RULES)
