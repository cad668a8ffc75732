"""Tests for report building, scoring, and rendering."""

from __future__ import annotations

import io
import json
import warnings
from pathlib import Path

import pytest
from rich.console import Console

from conform.evaluate.compare import compare
from conform.evaluate.engine import evaluate
from conform.evaluate.models import NotApplicableWarning, Outcome, ResourceRef, Verdict
from conform.parse import parse
from conform.report.builder import Report, build, recommend
from conform.report.render import render_report, render_report_json
from conform.report.sarif import generate_sarif
from conform.report.scoring import available_strategies, get_strategy, register_strategy
from conform.rules.loader import load_rules
from conform.rules.registry import RuleRegistry

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def registry() -> RuleRegistry:
    return load_rules(FIXTURES / "storage_rules.yaml")


def _verdicts(name: str, registry: RuleRegistry) -> list[Verdict]:
    text = (FIXTURES / name).read_text()
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", NotApplicableWarning)
        return list(evaluate(parse(text, "terraform-hcl", source=name), registry))


@pytest.fixture
def report(registry: RuleRegistry) -> Report:
    return build(_verdicts("storage.tf", registry), warnings=["No rule targets resource kind 'provider'"])


@pytest.fixture
def clean_report(registry: RuleRegistry) -> Report:
    verdicts = [v for v in _verdicts("storage.tf", registry) if v.resource.name == "logs"]
    return build(verdicts)


class TestBuild:
    def test_counts(self, report: Report) -> None:
        assert report.counts == {
            Outcome.PASS: 3,
            Outcome.FAIL: 4,
            Outcome.NOT_APPLICABLE: 1,
        }
        assert len(report.failures) == 4

    def test_failed(self, report: Report) -> None:
        assert report.passed is False

    def test_passed(self, clean_report: Report) -> None:
        assert clean_report.passed is True
        assert clean_report.recommendations == ()

    def test_empty_report_passes(self) -> None:
        assert build([]).passed is True

    def test_optional_failure_does_not_fail(self, registry: RuleRegistry) -> None:
        verdicts = [
            v for v in _verdicts("storage.tf", registry)
            if v.rule_id in {"bucket-versioning", "db-naming-review"}
        ]
        report = build(verdicts)
        assert report.counts[Outcome.FAIL] == 1
        assert report.passed is True

    def test_divergence_fails_report(self, registry: RuleRegistry) -> None:
        cand = [v for v in _verdicts("storage.tf", registry) if v.resource.name == "logs"]
        ref = [v for v in _verdicts("storage_reference.tf", registry) if v.resource.name == "logs"]
        report = build(cand, compare(cand, ref))
        assert len(report.divergences) == 1
        assert report.passed is False

    def test_warnings_carried(self, report: Report) -> None:
        assert report.warnings == ("No rule targets resource kind 'provider'",)


class TestRecommendations:
    def test_one_per_failure_in_order(self, report: Report) -> None:
        assert [r.rule_id for r in report.recommendations] == [
            "bucket-encryption",
            "bucket-not-public",
            "bucket-versioning",
            "db-backups",
        ]
        assert [r.optional for r in report.recommendations] == [False, False, True, False]

    def test_messages(self, report: Report) -> None:
        messages = [r.message for r in report.recommendations]
        assert messages[0] == (
            'bucket-encryption: expected == "AES256" at server_side_encryption_configuration.'
            "rule.apply_server_side_encryption_by_default.sse_algorithm, found absent."
        )
        assert messages[1] == (
            'bucket-not-public: expected none of ["public-read", "public-read-write"] '
            'at acl, found "public-read".'
        )
        assert messages[3] == "db-backups: expected >= 7 at backup_retention_period, found 3."

    def test_recommend_without_evidence(self) -> None:
        verdict = Verdict(
            rule_id="r",
            resource=_any_ref(),
            outcome=Outcome.FAIL,
            observation="something is off",
        )
        assert recommend(verdict).message == "r: something is off"


def _any_ref() -> ResourceRef:
    resource = next(iter(parse('resource "a" "b" {\n}\n', "terraform-hcl")))
    return ResourceRef.of(resource)


class TestScoring:
    def test_pass_fail(self, report: Report) -> None:
        assert report.score("pass-fail") == pytest.approx(3 / 7)

    def test_five_point(self, report: Report) -> None:
        # 5+5+5 for the compliant bucket, 1+1 for blocking failures,
        # 3 for the advisory failure, 1 for the short backup window.
        assert report.score("five-point") == pytest.approx(3.0)

    def test_partial_failure_scores_two(self) -> None:
        rules = load_rules(
            'version: "1"\nrules:\n'
            "  - {id: r, description: d, kind: aws_s3_bucket, require: [acl, bucket]}\n"
        )
        verdicts = list(evaluate(parse('resource "aws_s3_bucket" "b" {\n  acl = "x"\n}\n', "terraform-hcl"), rules))
        assert build(verdicts).score("five-point") == 2.0

    def test_unscored_report(self, registry: RuleRegistry) -> None:
        verdicts = [v for v in _verdicts("storage.tf", registry) if v.rule_id == "db-naming-review"]
        assert build(verdicts).score() is None

    def test_callable_strategy(self, report: Report) -> None:
        assert report.score(lambda v: 10.0) == 10.0

    def test_unknown_strategy(self, report: Report) -> None:
        with pytest.raises(ValueError, match="Available strategies"):
            report.score("letter-grade")

    def test_registry(self) -> None:
        assert {"pass-fail", "five-point"} <= set(available_strategies())
        register_strategy("Strict", lambda v: 1.0 if v.outcome == Outcome.PASS else 0.0)
        assert get_strategy("strict") is get_strategy("STRICT")


class TestRender:
    def _render(self, report: Report, **kwargs) -> str:
        console = Console(record=True, width=160, file=io.StringIO())
        render_report(report, console, **kwargs)
        return console.export_text()

    def test_sections(self, report: Report, registry: RuleRegistry) -> None:
        text = self._render(report, scoring="five-point", rules=registry)
        assert "Conformance Report" in text
        assert "FAIL" in text
        assert "Observations" in text
        assert "Scores" in text
        assert "Recommendations" in text
        assert "Divergences from Reference" not in text
        assert "Warning:" in text

    def test_remediation_hint(self, report: Report, registry: RuleRegistry) -> None:
        text = self._render(report, rules=registry)
        assert "server_side_encryption_configuration block" in text

    def test_wildcard_paths_survive_markup(self) -> None:
        rules = load_rules(
            'version: "1"\nrules:\n'
            "  - {id: r, description: d, kind: Pod, require: ['spec.containers[*].image']}\n"
        )
        verdicts = list(evaluate(parse("kind: Pod\nspec:\n  containers: []\n", "kubernetes-yaml"), rules))
        text = self._render(build(verdicts))
        assert "spec.containers[*].image" in text

    def test_ids_and_names_are_not_markup(self) -> None:
        rules = load_rules(
            'version: "1"\nrules:\n'
            "  - {id: 'deny[bold]', description: d, kind: Pod, forbid: [spec.hostNetwork]}\n"
        )
        text_in = "kind: Pod\nmetadata: {name: 'web[bold]'}\nspec: {hostNetwork: true}\n"
        verdicts = list(evaluate(parse(text_in, "kubernetes-yaml"), rules))
        text = self._render(build(verdicts))
        assert text.count("deny[bold]") == 2
        assert text.count("Pod.web[bold]") == 2

    def test_divergences_section(self, registry: RuleRegistry) -> None:
        cand = _verdicts("storage.tf", registry)
        ref = _verdicts("storage_reference.tf", registry)
        text = self._render(build(cand, compare(cand, ref)))
        assert "Divergences from Reference" in text
        assert "3 divergence(s)" in text

    def test_passing_report(self, clean_report: Report) -> None:
        text = self._render(clean_report)
        assert "PASS" in text
        assert "Recommendations" not in text


class TestJson:
    def test_structure(self, report: Report) -> None:
        data = render_report_json(report, scoring="five-point")
        json.dumps(data)
        assert data["passed"] is False
        assert data["scoring"] == "five-point"
        assert data["score"] == pytest.approx(3.0)
        assert data["scores"]["pass-fail"] == pytest.approx(3 / 7)
        assert data["counts"] == {"pass": 3, "fail": 4, "not_applicable": 1}
        assert len(data["verdicts"]) == 8
        assert len(data["recommendations"]) == 4
        assert data["divergences"] == []
        assert data["warnings"] == ["No rule targets resource kind 'provider'"]

    def test_verdict_entry(self, report: Report) -> None:
        entry = render_report_json(report)["verdicts"][4]
        assert entry["rule_id"] == "bucket-not-public"
        assert entry["resource"]["name"] == "public"
        assert entry["resource"]["source"] == "storage.tf"
        assert entry["outcome"] == "fail"
        assert entry["evidence"][0]["observed"] == "public-read"
        assert entry["evidence"][0]["forbidden"] is True


class TestSarif:
    def test_levels(self, report: Report, registry: RuleRegistry) -> None:
        sarif = json.loads(generate_sarif(report, registry))
        assert sarif["version"] == "2.1.0"
        run = sarif["runs"][0]
        assert run["tool"]["driver"]["name"] == "conform"
        levels = {r["ruleId"]: r["level"] for r in run["results"]}
        assert levels == {
            "bucket-encryption": "error",
            "bucket-not-public": "error",
            "bucket-versioning": "note",
            "db-backups": "warning",
        }

    def test_locations(self, report: Report, registry: RuleRegistry) -> None:
        sarif = json.loads(generate_sarif(report, registry))
        result = sarif["runs"][0]["results"][0]
        physical = result["locations"][0]["physicalLocation"]
        assert physical["artifactLocation"]["uri"] == "storage.tf"
        assert physical["region"]["startLine"] > 6

    def test_rule_metadata(self, report: Report, registry: RuleRegistry) -> None:
        sarif = json.loads(generate_sarif(report, registry))
        rules = {r["id"]: r for r in sarif["runs"][0]["tool"]["driver"]["rules"]}
        assert "help" in rules["bucket-encryption"]
        assert rules["db-backups"]["shortDescription"]["text"] == "Databases keep a week of backups"

    def test_without_registry(self, report: Report) -> None:
        sarif = json.loads(generate_sarif(report))
        levels = {r["ruleId"]: r["level"] for r in sarif["runs"][0]["results"]}
        assert levels["db-backups"] == "error"
        assert levels["bucket-versioning"] == "note"

    def test_clean_report_has_no_results(self, clean_report: Report) -> None:
        sarif = json.loads(generate_sarif(clean_report))
        assert sarif["runs"][0]["results"] == []
