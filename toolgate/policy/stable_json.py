"""Canonical JSON serialization of tool-call arguments.

Argument patterns in policy rules are matched against a string, so the
string has to be the same for every semantically equal input. Mapping keys
are sorted, callables and undefined values are dropped the way JSON drops
them, and cycles are cut with a ``"[Circular]"`` marker so that a crafted
argument cannot hang or crash the engine.

Usage:
    >>> stable_stringify({"b": 2, "a": 1})
    '{"a":1,"b":2}'
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping, Sequence
from typing import Any, Callable

from pydantic import BaseModel

CIRCULAR_MARKER = '"[Circular]"'
TRUNCATED_MARKER = '"[Truncated]"'

# Deep enough for any realistic tool-call payload, shallow enough to stay
# well inside the interpreter's recursion limit.
MAX_DEPTH = 100

# Largest integral float written without a fraction, as JSON numbers do
_MAX_SAFE_INTEGER = 2**53


class _Undefined:
    """Marker for a value that is absent rather than null."""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


def is_undefined(value: Any) -> bool:
    """Check if a value is the absent-value marker."""
    return value is UNDEFINED


def _is_skippable(value: Any) -> bool:
    """Values JSON treats as non-data: undefined and callables."""
    return value is UNDEFINED or callable(value)


def _conversion_hook(value: Any) -> Callable[[], Any] | None:
    """Return the custom JSON conversion for ``value``, if it has one."""
    if isinstance(value, BaseModel):
        return value.model_dump
    try:
        hook = getattr(value, "to_json", None)
    except Exception:
        # A raising attribute lookup counts as having no hook
        return None
    return hook if callable(hook) else None


def _stringify_primitive(value: Any) -> str | None:
    """Encode scalars; returns None for anything composite."""
    if value is None or value is UNDEFINED:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(int(value))
    if isinstance(value, float):
        if not math.isfinite(value):
            return "null"
        if value.is_integer() and abs(value) < _MAX_SAFE_INTEGER:
            return str(int(value))
        return json.dumps(value)
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, (bytes, bytearray)):
        return json.dumps(bytes(value).decode("utf-8", errors="replace"), ensure_ascii=False)
    if callable(value):
        return "null"
    return None


class _Stringifier:
    """Walks one value, tracking the ancestors on the current path."""

    def __init__(self, max_depth: int):
        self.max_depth = max_depth
        self._ancestors: set[int] = set()

    def stringify(self, value: Any, depth: int = 0) -> str:
        try:
            primitive = _stringify_primitive(value)
        except Exception:
            return _opaque(value)
        if primitive is not None:
            return primitive

        if depth >= self.max_depth:
            return TRUNCATED_MARKER

        key = id(value)
        if key in self._ancestors:
            return CIRCULAR_MARKER

        self._ancestors.add(key)
        try:
            hook = _conversion_hook(value)
            if hook is not None:
                try:
                    converted = hook()
                except Exception:
                    # Fall back to the raw object below
                    pass
                else:
                    return self.stringify(converted, depth + 1)
            return self._stringify_composite(value, depth)
        except Exception:
            # Objects whose attribute access or iteration raises
            return _opaque(value)
        finally:
            self._ancestors.discard(key)

    def _stringify_composite(self, value: Any, depth: int) -> str:
        if isinstance(value, Mapping):
            return self._stringify_mapping(value, depth)
        if isinstance(value, (set, frozenset)):
            items = sorted(self.stringify(item, depth + 1) for item in value)
            return "[" + ",".join(items) + "]"
        if isinstance(value, Sequence):
            return self._stringify_sequence(value, depth)
        if hasattr(value, "__dict__"):
            return self._stringify_mapping(vars(value), depth)
        return json.dumps(_safe_str(value), ensure_ascii=False)

    def _stringify_sequence(self, value: Sequence, depth: int) -> str:
        items = []
        for item in value:
            if _is_skippable(item):
                # Position matters in an array, so keep the slot
                items.append("null")
            else:
                items.append(self.stringify(item, depth + 1))
        return "[" + ",".join(items) + "]"

    def _stringify_mapping(self, value: Mapping, depth: int) -> str:
        entries = []
        for k, item in value.items():
            if _is_skippable(item):
                continue
            entries.append((str(k), type(k).__name__, self.stringify(item, depth + 1)))
        # Keys such as 1 and "1" share a string form; the key type and the
        # encoded value break the tie so insertion order never shows through
        entries.sort()
        pairs = [json.dumps(name, ensure_ascii=False) + ":" + encoded for name, _, encoded in entries]
        return "{" + ",".join(pairs) + "}"


def _opaque(value: Any) -> str:
    return json.dumps(f"<{type(value).__name__}>", ensure_ascii=False)


def _safe_str(value: Any) -> str:
    try:
        return str(value)
    except Exception:
        return f"<{type(value).__name__}>"


def stable_stringify(value: Any, max_depth: int = MAX_DEPTH) -> str:
    """Serialize a value to a deterministic single-line JSON string.

    Mapping keys are sorted by their string form (then by key type and
    encoded value when string forms collide, as with ``1`` and ``"1"``), so
    two mappings with the same items always produce the same output
    regardless of insertion order. Integral floats are written without a
    fraction (``1.0`` -> ``1``), as JSON has a single number type. Objects
    that raise on attribute access are rendered as ``"<TypeName>"``.
    Undefined values and callables are omitted from mappings and rendered as
    ``null`` inside sequences. Objects exposing ``to_json()`` (and pydantic
    models, through ``model_dump()``) are serialized via that hook; if the
    hook raises, the object is serialized as a plain composite instead.

    A composite value that is already being serialized further up the
    current path is rendered as ``"[Circular]"``. The same object reached
    through two separate branches is serialized in full both times. Nesting
    beyond ``max_depth`` is rendered as ``"[Truncated]"``.

    This function never raises.

    Args:
        value: Any Python value, possibly cyclic
        max_depth: Maximum composite nesting before truncating

    Returns:
        Canonical JSON text with ``,`` and ``:`` separators and no whitespace
    """
    return _Stringifier(max_depth).stringify(value)


__all__ = [
    "CIRCULAR_MARKER",
    "MAX_DEPTH",
    "TRUNCATED_MARKER",
    "UNDEFINED",
    "is_undefined",
    "stable_stringify",
]
