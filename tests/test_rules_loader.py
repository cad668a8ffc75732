"""Tests for rules file loading, the registry, and built-in packs."""

from __future__ import annotations

from pathlib import Path

import pytest

from conform.config import MatchStrategy
from conform.rules.loader import MalformedRuleError, load_rules
from conform.rules.packs import available_packs, get_pack
from conform.rules.registry import RuleNotFoundError, RuleRegistry
from conform.rules.schema import Rule

FIXTURES = Path(__file__).parent / "fixtures"

_MINIMAL = """\
version: "1"
rules:
  - id: bucket-encryption
    description: Buckets are encrypted with AES256
    kind: bucket
    require:
      - path: encryption.algorithm
        equals: AES256
    forbid:
      - path: encryption.disabled
        equals: true
"""


class TestLoadRules:
    def test_load_fixture(self) -> None:
        registry = load_rules(FIXTURES / "storage_rules.yaml")
        assert len(registry) == 5
        assert registry.source.endswith("storage_rules.yaml")
        assert registry.settings.scoring == "five-point"
        assert registry.settings.match_by == MatchStrategy.ORDINAL
        assert [r.id for r in registry] == [
            "bucket-encryption",
            "bucket-not-public",
            "bucket-versioning",
            "db-backups",
            "db-naming-review",
        ]

    def test_load_string(self) -> None:
        registry = load_rules(_MINIMAL)
        rule = registry.get_rule("bucket-encryption")
        assert rule.kind == "bucket"
        assert rule.require[0].equals == "AES256"
        assert rule.forbid[0].equals is True
        assert registry.source == "<string>"

    def test_load_mapping(self) -> None:
        registry = load_rules({
            "version": "1",
            "rules": [{"id": "a", "description": "d", "kind": "k", "require": ["x"]}],
        })
        assert "a" in registry

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="not found"):
            load_rules(tmp_path / "nope.yaml")

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        with pytest.raises(MalformedRuleError, match="is empty"):
            load_rules(path)

    def test_invalid_yaml(self) -> None:
        with pytest.raises(MalformedRuleError, match="Failed to parse YAML") as exc_info:
            load_rules("rules: [")
        assert exc_info.value.details[0]["type"] == "yaml_parse_error"

    def test_not_a_mapping(self) -> None:
        with pytest.raises(MalformedRuleError, match="mapping"):
            load_rules("- a\n- b\n")

    def test_missing_version(self) -> None:
        with pytest.raises(MalformedRuleError, match="version"):
            load_rules("rules:\n  - {id: a, description: d, kind: k, require: [x]}\n")

    def test_rule_without_conditions_names_rule(self) -> None:
        with pytest.raises(MalformedRuleError) as exc_info:
            load_rules(FIXTURES / "invalid_rules.yaml")
        message = str(exc_info.value)
        assert "no-conditions" in message
        assert "neither 'require' nor 'forbid'" in message
        assert exc_info.value.source.endswith("invalid_rules.yaml")
        assert exc_info.value.details

    def test_invalid_predicate(self) -> None:
        with pytest.raises(MalformedRuleError, match="Invalid regular expression"):
            load_rules(
                "version: 1\nrules:\n"
                "  - {id: a, description: d, kind: k, require: [{path: x, matches: '('}]}\n"
            )

    def test_invalid_path(self) -> None:
        with pytest.raises(MalformedRuleError, match="field path"):
            load_rules("version: 1\nrules:\n  - {id: a, description: d, kind: k, require: ['x[']}\n")

    def test_duplicate_ids(self) -> None:
        rule = "  - {id: a, description: d, kind: k, require: [x]}\n"
        with pytest.raises(MalformedRuleError, match="Duplicate rule id"):
            load_rules("version: 1\nrules:\n" + rule + rule)


class TestRuleRegistry:
    @pytest.fixture
    def registry(self) -> RuleRegistry:
        return load_rules(FIXTURES / "storage_rules.yaml")

    def test_rules_for_kind_in_order(self, registry: RuleRegistry) -> None:
        assert [r.id for r in registry.rules_for_kind("aws_s3_bucket")] == [
            "bucket-encryption",
            "bucket-not-public",
            "bucket-versioning",
        ]
        assert registry.rules_for_kind("aws_iam_role") == ()

    def test_kinds(self, registry: RuleRegistry) -> None:
        assert registry.kinds == frozenset({"aws_s3_bucket", "aws_db_instance"})

    def test_get_rule_missing(self, registry: RuleRegistry) -> None:
        with pytest.raises(RuleNotFoundError, match="Unknown rule id: 'nope'"):
            registry.get_rule("nope")
        with pytest.raises(KeyError):
            registry.get_rule("nope")

    def test_duplicate_ids_rejected(self) -> None:
        rule = Rule(id="a", description="d", kind="k", require=["x"])
        with pytest.raises(ValueError, match="Duplicate rule id"):
            RuleRegistry([rule, rule])


class TestPacks:
    def test_available(self) -> None:
        assert available_packs() == ["k8s-pod-security", "rego-authz", "tf-storage"]

    @pytest.mark.parametrize("name", ["tf-storage", "pack:tf-storage", "TF-Storage"])
    def test_get_pack(self, name: str) -> None:
        registry = get_pack(name)
        assert registry.source == "pack:tf-storage"
        assert "s3-encryption" in registry

    def test_unknown_pack(self) -> None:
        with pytest.raises(ValueError, match="Available packs"):
            get_pack("pack:nope")

    def test_pack_rules_target_expected_kinds(self) -> None:
        assert {"Pod", "Deployment", "Service"} <= get_pack("k8s-pod-security").kinds
        assert {"package", "rule", "import"} == get_pack("rego-authz").kinds
        assert "aws_s3_bucket" in get_pack("tf-storage").kinds
