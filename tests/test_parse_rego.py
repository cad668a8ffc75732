"""Tests for the Rego parser."""

from __future__ import annotations

from pathlib import Path

import pytest

from conform.parse import PolicySyntaxError, parse

FIXTURES = Path(__file__).parent / "fixtures"


def _parse(text: str, **kwargs):
    return list(parse(text, "rego", **kwargs))


@pytest.fixture
def authz() -> list:
    return _parse((FIXTURES / "authz.rego").read_text(), source="authz.rego")


class TestModule:
    def test_statement_kinds(self, authz: list) -> None:
        assert [(r.kind, r.name, r.ordinal) for r in authz] == [
            ("package", "authz.http", 0),
            ("import", "if", 0),
            ("import", "roles", 1),
            ("rule", "allow", 0),
            ("rule", "allow", 1),
            ("rule", "allow", 2),
            ("rule", "deny", 3),
        ]

    def test_package(self, authz: list) -> None:
        assert authz[0].fields == {"path": "authz.http"}
        assert authz[0].location.line == 1

    def test_imports(self, authz: list) -> None:
        assert authz[1].fields == {"path": "future.keywords.if", "alias": None}
        assert authz[2].fields == {"path": "data.roles", "alias": "roles"}

    def test_default_rule(self, authz: list) -> None:
        rule = authz[3]
        assert rule.fields["default"] is True
        assert rule.fields["value"] is False
        assert rule.fields["body"] == []
        assert rule.fields["head"] == "allow := false"
        assert rule.location.line == 6

    def test_braced_if_body(self, authz: list) -> None:
        rule = authz[4]
        assert rule.fields["default"] is False
        assert rule.fields["value"] is True
        assert rule.fields["body"] == ['input.user.role == "admin"']

    def test_single_line_if_body(self, authz: list) -> None:
        assert authz[5].fields["body"] == ['input.method == "GET"']

    def test_partial_set_contains(self, authz: list) -> None:
        rule = authz[6]
        assert rule.fields["key"] == "msg"
        assert rule.fields["body"] == ["not input.user", 'msg := "anonymous access"']


class TestRules:
    def test_legacy_partial_set(self) -> None:
        (_, rule) = _parse('package p\ndeny[msg] {\n  msg := "no"; true\n}\n')
        assert rule.fields["name"] == "deny"
        assert rule.fields["key"] == "msg"
        assert rule.fields["body"] == ['msg := "no"', "true"]

    def test_else_chain(self) -> None:
        (_, rule) = _parse(
            "package p\n"
            "level := 1 if { input.a } else := 2 if { input.b } else := 3\n"
        )
        assert rule.fields["value"] == 1
        assert rule.fields["body"] == ["input.a"]
        assert rule.fields["else"] == [
            {"value": 2, "body": ["input.b"]},
            {"value": 3, "body": []},
        ]

    def test_function(self) -> None:
        (_, rule) = _parse("package p\nadd(a, b) := a + b\n")
        assert rule.fields["name"] == "add"
        assert rule.fields["args"] == ["a", "b"]
        assert rule.fields["value"] == "a + b"

    def test_object_value(self) -> None:
        (_, rule) = _parse('package p\nlimits := {"cpu": 2, "tags": ["a"]}\n')
        assert rule.fields["value"] == {"cpu": 2, "tags": ["a"]}

    def test_raw_string_value(self) -> None:
        (_, rule) = _parse("package p\npattern := `^[a-z]+$`\n")
        assert rule.fields["value"] == "^[a-z]+$"

    def test_multiline_body_with_nesting(self) -> None:
        (_, rule) = _parse(
            "package p\n"
            "allow if {\n"
            "  some role in input.roles\n"
            "  role in {\"admin\", \"ops\"}\n"
            "}\n"
        )
        assert rule.fields["body"] == ["some role in input.roles", 'role in {"admin", "ops"}']


class TestErrors:
    def test_missing_package(self) -> None:
        with pytest.raises(PolicySyntaxError, match="package"):
            _parse("allow := true\n")

    def test_empty_module(self) -> None:
        with pytest.raises(PolicySyntaxError, match="package"):
            _parse("# only a comment\n")

    def test_duplicate_package(self) -> None:
        with pytest.raises(PolicySyntaxError, match="Duplicate 'package'"):
            _parse("package a\npackage b\n")

    def test_unterminated_string(self) -> None:
        with pytest.raises(PolicySyntaxError, match="Unterminated string") as exc_info:
            _parse('package p\nx := "abc\n')
        assert exc_info.value.line == 2

    def test_unbalanced_bracket(self) -> None:
        with pytest.raises(PolicySyntaxError):
            _parse("package p\nx := [1, 2\n")

    def test_unterminated_body(self) -> None:
        with pytest.raises(PolicySyntaxError, match="expected '}'"):
            _parse("package p\nallow if {\n  true\n")

    def test_depth_limit(self) -> None:
        with pytest.raises(PolicySyntaxError, match="maximum depth"):
            _parse("package p\nx := [[[[1]]]]\n", max_depth=3)
        assert len(_parse("package p\nx := [[[1]]]\n", max_depth=3)) == 2
