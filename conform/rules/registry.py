"""In-memory rule registry.

Holds a loaded rule set in definition order, indexed by id and by target
resource kind.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from conform.config import EvaluatorSettings
from conform.rules.schema import Rule


class RuleNotFoundError(KeyError):
    """Raised when a rule id is not in the registry."""

    def __init__(self, rule_id: str, available: list[str]) -> None:
        self.rule_id = rule_id
        shown = ", ".join(available[:10])
        if len(available) > 10:
            shown += ", ..."
        super().__init__(f"Unknown rule id: '{rule_id}'. Known rules: {shown or '(none)'}")

    def __str__(self) -> str:
        return str(self.args[0])


class RuleRegistry:
    """An immutable collection of rules.

    Attributes:
        settings: Evaluator settings from the rules file (defaults if none).
        source: Where the rules came from.
    """

    def __init__(
        self,
        rules: Iterable[Rule],
        settings: EvaluatorSettings | None = None,
        source: str = "<rules>",
    ) -> None:
        self._rules: tuple[Rule, ...] = tuple(rules)
        self.settings = settings or EvaluatorSettings()
        self.source = source
        self._by_id: dict[str, Rule] = {}
        self._by_kind: dict[str, list[Rule]] = {}
        for rule in self._rules:
            if rule.id in self._by_id:
                msg = f"Duplicate rule id '{rule.id}' in {source}"
                raise ValueError(msg)
            self._by_id[rule.id] = rule
            self._by_kind.setdefault(rule.kind, []).append(rule)

    def get_rule(self, rule_id: str) -> Rule:
        """Look up a rule by id.

        Raises:
            RuleNotFoundError: If no rule has this id.
        """
        try:
            return self._by_id[rule_id]
        except KeyError:
            raise RuleNotFoundError(rule_id, list(self._by_id)) from None

    def rules_for_kind(self, kind: str) -> tuple[Rule, ...]:
        """Rules targeting a resource kind, in definition order."""
        return tuple(self._by_kind.get(kind, ()))

    @property
    def kinds(self) -> frozenset[str]:
        return frozenset(self._by_kind)

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._by_id
