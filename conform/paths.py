"""Field path parsing and resolution.

Rules address values inside a parsed resource with dotted paths:

  encryption.algorithm
  spec.containers[*].securityContext.privileged
  spec.ports[0].port
  metadata.labels["app.kubernetes.io/name"]

A ``[*]`` wildcard fans out over every element of a list. Applied to a
mapping it behaves like a one-element list, so the same path works for an
HCL nested block whether it appears once or repeatedly.
"""

from __future__ import annotations

from typing import Any, Union


class _Wildcard:
    """Sentinel for the ``[*]`` path segment."""

    def __repr__(self) -> str:
        return "WILDCARD"


WILDCARD = _Wildcard()

Segment = Union[str, int, _Wildcard]


class FieldPathError(ValueError):
    """Raised when a field path string cannot be parsed."""


def parse_path(path: str) -> tuple[Segment, ...]:
    """Split a field path string into segments.

    Args:
        path: The dotted path (e.g., "spec.containers[*].image").

    Returns:
        A tuple of segments: str keys, int indices, or WILDCARD.

    Raises:
        FieldPathError: If the path is empty or malformed.
    """
    if not path or not path.strip():
        raise FieldPathError("Field path is empty")

    segments: list[Segment] = []
    i = 0
    n = len(path)
    expect_key = True

    while i < n:
        ch = path[i]
        if ch == "[":
            close = path.find("]", i)
            if close == -1:
                raise FieldPathError(f"Unclosed '[' in field path '{path}'")
            inner = path[i + 1:close].strip()
            if inner == "*":
                segments.append(WILDCARD)
            elif len(inner) >= 2 and inner[0] == inner[-1] and inner[0] in ("'", '"'):
                segments.append(inner[1:-1])
            else:
                try:
                    segments.append(int(inner))
                except ValueError:
                    raise FieldPathError(
                        f"Invalid index '[{inner}]' in field path '{path}'. "
                        f"Use an integer, '*', or a quoted key."
                    ) from None
            i = close + 1
            expect_key = False
        elif ch == ".":
            if expect_key:
                raise FieldPathError(f"Empty segment in field path '{path}'")
            i += 1
            expect_key = True
            if i == n:
                raise FieldPathError(f"Field path '{path}' ends with '.'")
        else:
            if not expect_key:
                raise FieldPathError(
                    f"Expected '.' or '[' at position {i} in field path '{path}'"
                )
            start = i
            while i < n and path[i] not in ".[":
                i += 1
            key = path[start:i].strip()
            if not key:
                raise FieldPathError(f"Empty segment in field path '{path}'")
            segments.append(key)
            expect_key = False

    return tuple(segments)


def format_path(segments: tuple[Segment, ...] | list[Segment]) -> str:
    """Render segments back into a concrete path string."""
    parts: list[str] = []
    for seg in segments:
        if isinstance(seg, _Wildcard):
            parts.append("[*]")
        elif isinstance(seg, int):
            parts.append(f"[{seg}]")
        elif "." in seg or "[" in seg:
            parts.append(f'["{seg}"]')
        elif parts:
            parts.append(f".{seg}")
        else:
            parts.append(seg)
    return "".join(parts)


def resolve(fields: Any, path: str | tuple[Segment, ...]) -> list[tuple[str, Any]]:
    """Find every value addressed by a path.

    Args:
        fields: The nested mapping of a parsed resource.
        path: A path string or pre-parsed segments.

    Returns:
        A list of (concrete_path, value) pairs, in document order. Empty
        when the path addresses nothing (the field is absent).
    """
    segments = parse_path(path) if isinstance(path, str) else path
    matches: list[tuple[list[Segment], Any]] = [([], fields)]

    for seg in segments:
        next_matches: list[tuple[list[Segment], Any]] = []
        for trail, value in matches:
            if isinstance(seg, _Wildcard):
                if isinstance(value, list):
                    for idx, item in enumerate(value):
                        next_matches.append((trail + [idx], item))
                elif isinstance(value, dict):
                    next_matches.append((trail + [0], value))
            elif isinstance(seg, int):
                if isinstance(value, list) and -len(value) <= seg < len(value):
                    next_matches.append((trail + [seg], value[seg]))
                elif isinstance(value, dict) and seg == 0:
                    next_matches.append((trail + [0], value))
            elif isinstance(value, dict) and seg in value:
                next_matches.append((trail + [seg], value[seg]))
        matches = next_matches
        if not matches:
            break

    return [(format_path(trail), value) for trail, value in matches]

