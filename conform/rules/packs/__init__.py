"""Built-in rule packs.

Each pack (Kubernetes pod security, Terraform storage, etc.) registers a
list of Rule objects. Packs are plain data: adding a new baseline means
adding a new rules list, no new evaluation logic.
"""

from __future__ import annotations

from conform.rules.registry import RuleRegistry
from conform.rules.schema import Rule

PACK_PREFIX = "pack:"

_REGISTRY: dict[str, list[Rule]] = {}


def register_pack(name: str, rules: list[Rule]) -> None:
    """Register a built-in rule pack.

    Args:
        name: Pack identifier (e.g., "k8s-pod-security").
        rules: Rules in evaluation order.
    """
    _REGISTRY[name.lower()] = rules


def get_pack(name: str) -> RuleRegistry:
    """Get a registry for a built-in pack.

    Args:
        name: Pack identifier, with or without the ``pack:`` prefix.

    Returns:
        A RuleRegistry over the pack's rules with default settings.

    Raises:
        ValueError: If the pack is not registered.
    """
    key = name.lower()
    if key.startswith(PACK_PREFIX):
        key = key[len(PACK_PREFIX):]
    if key not in _REGISTRY:
        available = ", ".join(sorted(_REGISTRY.keys())) or "(none)"
        msg = f"Unknown rule pack: '{name}'. Available packs: {available}."
        raise ValueError(msg)
    return RuleRegistry(_REGISTRY[key], source=f"{PACK_PREFIX}{key}")


def available_packs() -> list[str]:
    """Return sorted list of registered pack names."""
    return sorted(_REGISTRY.keys())


# Register on import
from conform.rules.packs import kubernetes, rego, terraform  # noqa: E402, F401
