"""YAML rule loading and validation.

Loads rules files, validates them against the pydantic schema, and
returns a RuleRegistry. Errors are always actionable.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from conform.rules.registry import RuleRegistry
from conform.rules.schema import RuleSet


class MalformedRuleError(Exception):
    """Raised when a rules file is malformed or fails validation.

    Attributes:
        source: Where the rules came from (path or "<string>").
        details: Structured error details from pydantic validation.
    """

    def __init__(self, source: str, details: list[dict[str, Any]], message: str) -> None:
        self.source = source
        self.details = details
        super().__init__(message)


def load_rules(source: Path | str | Mapping[str, Any]) -> RuleRegistry:
    """Load and validate compliance rules.

    Args:
        source: A path to a YAML rules file, YAML text, or an already
                decoded mapping.

    Returns:
        A RuleRegistry holding the rules (in file order) and the file's
        settings.

    Raises:
        FileNotFoundError: If a path is given and doesn't exist.
        MalformedRuleError: If the YAML is malformed or fails validation.
    """
    if isinstance(source, Path):
        label = str(source)
        if not source.exists():
            raise FileNotFoundError(
                f"Rules file not found at {source}. "
                f"Pass a YAML rules file, or a built-in pack as pack:<name>."
            )
        raw_data = _parse_yaml(source.read_text(encoding="utf-8"), label)
    elif isinstance(source, str):
        label = "<string>"
        raw_data = _parse_yaml(source, label)
    else:
        label = "<mapping>"
        raw_data = dict(source)

    if raw_data is None:
        raise MalformedRuleError(
            source=label,
            details=[{"type": "empty_file"}],
            message=f"Rules file {label} is empty. It must contain 'version' and 'rules'.",
        )

    if not isinstance(raw_data, dict):
        raise MalformedRuleError(
            source=label,
            details=[{"type": "not_a_mapping", "got": type(raw_data).__name__}],
            message=(
                f"Rules file {label} must contain a YAML mapping (key-value pairs) "
                f"at the top level, got {type(raw_data).__name__}."
            ),
        )

    try:
        rule_set = RuleSet.model_validate(raw_data)
    except ValidationError as e:
        error_details = e.errors()
        error_lines = []
        for err in error_details:
            loc = " → ".join(_loc_label(raw_data, err["loc"]))
            error_lines.append(f"  - {loc or '(root)'}: {err['msg']}")

        summary = "\n".join(error_lines)
        raise MalformedRuleError(
            source=label,
            details=error_details,
            message=f"Rule validation failed for {label}:\n{summary}",
        ) from e

    return RuleRegistry(rule_set.rules, settings=rule_set.settings, source=label)


def _parse_yaml(text: str, label: str) -> Any:
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise MalformedRuleError(
            source=label,
            details=[{"type": "yaml_parse_error", "msg": str(e)}],
            message=f"Failed to parse YAML in {label}: {e}",
        ) from e


def _loc_label(raw_data: dict[str, Any], loc: tuple[Any, ...]) -> list[str]:
    """Render an error location, naming rules by id instead of list index."""
    parts: list[str] = []
    for idx, part in enumerate(loc):
        if (
            idx == 1
            and loc[0] == "rules"
            and isinstance(part, int)
            and isinstance(raw_data.get("rules"), list)
            and part < len(raw_data["rules"])
            and isinstance(raw_data["rules"][part], dict)
            and raw_data["rules"][part].get("id")
        ):
            parts.append(f"{part} ({raw_data['rules'][part]['id']})")
        else:
            parts.append(str(part))
    return parts
