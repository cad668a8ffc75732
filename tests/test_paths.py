"""Tests for field path parsing and resolution."""

from __future__ import annotations

import pytest

from conform.paths import WILDCARD, FieldPathError, format_path, parse_path, resolve


class TestParsePath:
    def test_dotted(self) -> None:
        assert parse_path("spec.template.spec") == ("spec", "template", "spec")

    def test_index_and_wildcard(self) -> None:
        assert parse_path("spec.containers[*].ports[0].containerPort") == (
            "spec", "containers", WILDCARD, "ports", 0, "containerPort",
        )

    def test_quoted_key_keeps_dots(self) -> None:
        assert parse_path('metadata.labels["app.kubernetes.io/name"]') == (
            "metadata", "labels", "app.kubernetes.io/name",
        )

    def test_single_quoted_key(self) -> None:
        assert parse_path("tags['cost-center']") == ("tags", "cost-center")

    @pytest.mark.parametrize(
        "path",
        ["", "   ", "a..b", "a.", ".a", "a[x]", "a[0", "a[0]b"],
    )
    def test_malformed(self, path: str) -> None:
        with pytest.raises(FieldPathError):
            parse_path(path)

    def test_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            parse_path("a..b")


class TestFormatPath:
    def test_round_trip_concrete(self) -> None:
        assert format_path(("spec", "ports", 0, "port")) == "spec.ports[0].port"

    def test_quotes_keys_with_dots(self) -> None:
        assert format_path(("labels", "app.kubernetes.io/name")) == 'labels["app.kubernetes.io/name"]'

    def test_wildcard(self) -> None:
        assert format_path(("containers", WILDCARD, "image")) == "containers[*].image"


class TestResolve:
    def test_nested_key(self) -> None:
        assert resolve({"a": {"b": 1}}, "a.b") == [("a.b", 1)]

    def test_absent(self) -> None:
        assert resolve({"a": {"b": 1}}, "a.c") == []
        assert resolve({"a": 1}, "a.b") == []

    def test_explicit_null_is_present(self) -> None:
        assert resolve({"a": None}, "a") == [("a", None)]

    def test_wildcard_over_list(self) -> None:
        fields = {"c": [{"x": 1}, {"y": 2}, {"x": 3}]}
        assert resolve(fields, "c[*].x") == [("c[0].x", 1), ("c[2].x", 3)]

    def test_wildcard_over_single_block(self) -> None:
        """A block that appears once is a mapping, not a list."""
        assert resolve({"c": {"x": 1}}, "c[*].x") == [("c[0].x", 1)]

    def test_index_zero_on_mapping(self) -> None:
        assert resolve({"c": {"x": 1}}, "c[0].x") == [("c[0].x", 1)]
        assert resolve({"c": {"x": 1}}, "c[1].x") == []

    def test_index_out_of_range(self) -> None:
        assert resolve({"c": [1, 2]}, "c[5]") == []

    def test_negative_index(self) -> None:
        assert resolve({"c": [1, 2]}, "c[-1]") == [("c[-1]", 2)]

    def test_pre_parsed_segments(self) -> None:
        assert resolve({"a": [{"b": 1}]}, ("a", WILDCARD, "b")) == [("a[0].b", 1)]
