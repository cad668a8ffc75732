"""Kubernetes pod security baseline.

Covers the container hardening checks reviewers apply to generated
workload manifests:

- No privileged containers or privilege escalation
- Containers run as non-root
- No host namespaces (network, PID, IPC)
- Memory and CPU limits set on every container
- Images pinned to a tag other than ``latest``
- Deployments keep more than one replica (advisory)
"""

from __future__ import annotations

from conform.rules.packs import register_pack
from conform.rules.schema import Rule, RuleSeverity


def _container_rules(kind: str, prefix: str, slug: str) -> list[Rule]:
    """Container checks for a workload whose pod spec lives at ``prefix``."""
    containers = f"{prefix}.containers[*]"
    return [
        Rule(
            id=f"{slug}-no-privileged",
            description=f"{kind} containers must not run privileged",
            kind=kind,
            forbid=[
                {"path": f"{containers}.securityContext.privileged", "equals": True},
                {"path": f"{containers}.securityContext.allowPrivilegeEscalation", "equals": True},
            ],
            severity=RuleSeverity.CRITICAL,
            remediation="Set securityContext.privileged and allowPrivilegeEscalation to false.",
        ),
        Rule(
            id=f"{slug}-run-as-non-root",
            description=f"{kind} containers must run as a non-root user",
            kind=kind,
            require=[
                {"path": f"{containers}.securityContext.runAsNonRoot", "equals": True},
            ],
            forbid=[
                {"path": f"{containers}.securityContext.runAsUser", "equals": 0},
            ],
            severity=RuleSeverity.HIGH,
        ),
        Rule(
            id=f"{slug}-no-host-namespaces",
            description=f"{kind} must not share host network, PID or IPC namespaces",
            kind=kind,
            forbid=[
                {"path": f"{prefix}.hostNetwork", "equals": True},
                {"path": f"{prefix}.hostPID", "equals": True},
                {"path": f"{prefix}.hostIPC", "equals": True},
            ],
            severity=RuleSeverity.HIGH,
        ),
        Rule(
            id=f"{slug}-resource-limits",
            description=f"{kind} containers must declare memory and CPU limits",
            kind=kind,
            require=[
                f"{containers}.resources.limits.memory",
                f"{containers}.resources.limits.cpu",
            ],
            severity=RuleSeverity.MEDIUM,
            remediation="Add resources.limits.memory and resources.limits.cpu to every container.",
        ),
        Rule(
            id=f"{slug}-pinned-image",
            description=f"{kind} container images must be pinned to a tag other than latest",
            kind=kind,
            require=[
                {"path": f"{containers}.image", "matches": r":[A-Za-z0-9_.-]+$|@sha256:"},
            ],
            forbid=[
                {"path": f"{containers}.image", "matches": r":latest$"},
            ],
            severity=RuleSeverity.MEDIUM,
        ),
    ]


K8S_POD_SECURITY_RULES: list[Rule] = [
    *_container_rules("Pod", "spec", "pod"),
    *_container_rules("Deployment", "spec.template.spec", "deployment"),
    Rule(
        id="deployment-replicas",
        description="Deployments should run more than one replica",
        kind="Deployment",
        require=[{"path": "spec.replicas", "minimum": 2}],
        optional=True,
        severity=RuleSeverity.LOW,
    ),
    Rule(
        id="service-type-review",
        description="Externally exposed Services need reviewer sign-off",
        kind="Service",
        when=[{"path": "spec.type", "one_of": ["LoadBalancer", "NodePort"]}],
        optional=True,
        severity=RuleSeverity.LOW,
    ),
]

# Register on import
register_pack("k8s-pod-security", K8S_POD_SECURITY_RULES)
