"""Tests for the Terraform HCL parser."""

from __future__ import annotations

from pathlib import Path

import pytest

from conform.parse import (
    Dialect,
    PolicySyntaxError,
    UnsupportedDialectError,
    detect_dialect,
    parse,
)

FIXTURES = Path(__file__).parent / "fixtures"


def _parse(text: str, **kwargs):
    return list(parse(text, "terraform-hcl", **kwargs))


@pytest.fixture
def storage() -> list:
    text = (FIXTURES / "storage.tf").read_text()
    return list(parse(text, Dialect.TERRAFORM_HCL, source="storage.tf"))


class TestBlocks:
    def test_kinds_names_ordinals(self, storage: list) -> None:
        assert [(r.kind, r.name, r.ordinal) for r in storage] == [
            ("provider", "aws", 0),
            ("aws_s3_bucket", "logs", 0),
            ("aws_s3_bucket", "public", 1),
            ("aws_db_instance", "main", 0),
        ]

    def test_locations(self, storage: list) -> None:
        assert storage[0].location.line == 2
        assert storage[1].location.line == 6
        assert storage[1].location.column == 1
        assert str(storage[1].location) == "storage.tf:6:1"

    def test_dialect_recorded(self, storage: list) -> None:
        assert all(r.dialect == Dialect.TERRAFORM_HCL for r in storage)

    def test_nested_blocks(self, storage: list) -> None:
        logs = storage[1].fields
        sse = logs["server_side_encryption_configuration"]["rule"][
            "apply_server_side_encryption_by_default"
        ]
        assert sse == {"sse_algorithm": "AES256"}
        assert logs["versioning"] == {"enabled": True}

    def test_object_with_reference(self, storage: list) -> None:
        assert storage[1].fields["tags"] == {"Team": "platform", "Env": "${var.env}"}

    def test_data_block(self) -> None:
        (res,) = _parse('data "aws_iam_policy_document" "p" {}\n')
        assert res.kind == "data.aws_iam_policy_document"
        assert res.name == "p"
        assert res.fields == {}

    def test_unlabelled_block(self) -> None:
        (res,) = _parse("locals {\n  env = \"prod\"\n}\n")
        assert res.kind == "locals"
        assert res.name is None
        assert res.fields == {"env": "prod"}

    def test_repeated_blocks_become_list(self) -> None:
        text = (
            'resource "aws_security_group" "web" {\n'
            "  ingress {\n    from_port = 80\n  }\n"
            "  ingress {\n    from_port = 443\n  }\n"
            "}\n"
        )
        (res,) = _parse(text)
        assert res.fields["ingress"] == [{"from_port": 80}, {"from_port": 443}]

    def test_labelled_nested_block(self) -> None:
        text = (
            'resource "aws_security_group" "web" {\n'
            '  dynamic "ingress" {\n    for_each = var.ports\n  }\n'
            "}\n"
        )
        (res,) = _parse(text)
        assert res.fields["dynamic"]["ingress"] == {"for_each": "${var.ports}"}

    def test_single_line_block(self) -> None:
        (res,) = _parse('resource "a" "b" { x = 1 }\n')
        assert res.fields == {"x": 1}


class TestExpressions:
    def _value(self, expr: str):
        (res,) = _parse(f'resource "t" "n" {{\n  v = {expr}\n}}\n')
        return res.fields["v"]

    def test_literals(self) -> None:
        assert self._value('"text"') == "text"
        assert self._value("42") == 42
        assert self._value("1.5") == 1.5
        assert self._value("-3") == -3
        assert self._value("true") is True
        assert self._value("false") is False
        assert self._value("null") is None

    def test_list(self) -> None:
        assert self._value('[1, "a", true]') == [1, "a", True]

    def test_multiline_list(self) -> None:
        assert self._value('[\n    "a",\n    "b",\n  ]') == ["a", "b"]

    def test_escapes(self) -> None:
        assert self._value(r'"a\"b\n"') == 'a"b\n'

    def test_interpolation_kept(self) -> None:
        assert self._value('"${var.prefix}-logs"') == "${var.prefix}-logs"

    def test_escaped_interpolation(self) -> None:
        assert self._value('"$${literal}"') == "${literal}"

    def test_function_call_kept(self) -> None:
        assert self._value("length(var.subnets)") == "${length(var.subnets)}"

    def test_conditional_kept(self) -> None:
        assert self._value('var.prod ? "a" : "b"') == '${var.prod ? "a" : "b"}'

    def test_for_expression_kept(self) -> None:
        assert self._value("[for s in var.list : upper(s)]") == "${[for s in var.list : upper(s)]}"

    def test_heredoc(self) -> None:
        text = (
            'resource "t" "n" {\n'
            "  policy = <<-EOT\n"
            "    {\n"
            '      "a": 1\n'
            "    }\n"
            "    EOT\n"
            "  after = 1\n"
            "}\n"
        )
        (res,) = _parse(text)
        assert res.fields["policy"] == '{\n  "a": 1\n}\n'
        assert res.fields["after"] == 1

    def test_comments_ignored(self) -> None:
        text = (
            "# header\n"
            'resource "t" "n" { // trailing\n'
            "  /* block\n     comment */\n"
            "  v = 1\n"
            "}\n"
        )
        (res,) = _parse(text)
        assert res.fields == {"v": 1}


class TestErrors:
    def test_malformed_fixture(self) -> None:
        text = (FIXTURES / "malformed.tf").read_text()
        with pytest.raises(PolicySyntaxError) as exc_info:
            list(parse(text, "terraform-hcl", source="malformed.tf"))
        assert exc_info.value.source == "malformed.tf"
        assert exc_info.value.line >= 1
        assert "malformed.tf:" in str(exc_info.value)

    def test_is_syntax_error(self) -> None:
        with pytest.raises(SyntaxError):
            _parse('resource "a" "b" {\n')

    def test_top_level_attribute(self) -> None:
        with pytest.raises(PolicySyntaxError, match="top-level attribute"):
            _parse("x = 1\n")

    def test_duplicate_attribute(self) -> None:
        with pytest.raises(PolicySyntaxError, match="more than once"):
            _parse('resource "a" "b" {\n  x = 1\n  x = 2\n}\n')

    def test_resource_needs_two_labels(self) -> None:
        with pytest.raises(PolicySyntaxError, match="type and a name"):
            _parse('resource "a" {\n}\n')

    def test_unterminated_string(self) -> None:
        with pytest.raises(PolicySyntaxError, match="Unterminated string"):
            _parse('resource "a" "b" {\n  x = "oops\n}\n')

    def test_error_position(self) -> None:
        with pytest.raises(PolicySyntaxError) as exc_info:
            _parse('resource "a" "b" {\n  x = 1\n  @\n}\n')
        assert exc_info.value.line == 3
        assert exc_info.value.column == 3

    def test_depth_limit(self) -> None:
        text = "a {\n b {\n  c {\n   d {\n   }\n  }\n }\n}\n"
        with pytest.raises(PolicySyntaxError, match="maximum depth"):
            _parse(text, max_depth=3)
        assert len(_parse(text, max_depth=4)) == 1

    def test_depth_limit_in_expressions(self) -> None:
        with pytest.raises(PolicySyntaxError, match="maximum depth"):
            _parse('resource "a" "b" {\n  x = [[[[1]]]]\n}\n', max_depth=3)


class TestIteration:
    def test_lazy(self) -> None:
        """Resources before a syntax error are yielded first."""
        it = parse('resource "a" "b" {\n}\n}\n', "terraform-hcl")
        first = next(it)
        assert first.kind == "a"
        with pytest.raises(PolicySyntaxError):
            next(it)

    def test_restartable(self) -> None:
        text = (FIXTURES / "storage.tf").read_text()
        assert _parse(text) == _parse(text)

    def test_unsupported_dialect_is_eager(self) -> None:
        with pytest.raises(UnsupportedDialectError, match="terraform-hcl"):
            parse("anything", "json")

    def test_dialect_names_case_insensitive(self) -> None:
        assert len(list(parse('locals {\n}\n', "Terraform-HCL"))) == 1

    def test_detect_dialect(self) -> None:
        assert detect_dialect(Path("main.tf")) == Dialect.TERRAFORM_HCL
        assert detect_dialect(Path("x.hcl")) == Dialect.TERRAFORM_HCL
        assert detect_dialect(Path("pod.yml")) == Dialect.KUBERNETES_YAML
        assert detect_dialect(Path("authz.rego")) == Dialect.REGO
        with pytest.raises(UnsupportedDialectError):
            detect_dialect(Path("policy.json"))
