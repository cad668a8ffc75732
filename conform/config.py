"""Evaluator settings.

Settings come from three places, highest priority first:
  1. CLI flags (``--max-depth``, ``--match-by``, ``--scoring``, ``--format``)
  2. The ``settings:`` section of the rules file
  3. The defaults below
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from conform.report.scoring import available_strategies


class MatchStrategy(str, Enum):
    """How the comparator pairs candidate and reference resources.

    ORDINAL: Same kind, same position among resources of that kind.
    NAME:    Same kind, same resource name (requires named resources).
    """

    ORDINAL = "ordinal"
    NAME = "name"


class OutputFormat(str, Enum):
    """Report output format."""

    TEXT = "text"
    JSON = "json"
    SARIF = "sarif"


class EvaluatorSettings(BaseModel):
    """Tunable evaluator behavior."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_depth: int = Field(
        default=64,
        ge=1,
        description="Documents nested deeper than this are rejected as malformed.",
    )
    match_by: MatchStrategy = MatchStrategy.ORDINAL
    scoring: str = Field(
        default="pass-fail",
        description="Scoring strategy name. See conform.report.scoring.",
    )
    format: OutputFormat = OutputFormat.TEXT

    @field_validator("scoring")
    @classmethod
    def known_scoring(cls, value: str) -> str:
        if value not in available_strategies():
            available = ", ".join(available_strategies())
            msg = f"Unknown scoring strategy '{value}'. Available: {available}"
            raise ValueError(msg)
        return value

    def merged(self, **overrides: Any) -> EvaluatorSettings:
        """Return a copy with every non-None override applied.

        Overrides go through validation, so a bad CLI value raises
        pydantic.ValidationError just like a bad rules file would.
        """
        data = self.model_dump()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return EvaluatorSettings.model_validate(data)
