"""Rendering of runtime values as `write`/`display` text."""

import math
from fractions import Fraction
from typing import Any

from .types import NIL, VOID, Pair, Symbol

# Applied in order to every line shown to the user.
RACKET_REPLACEMENTS = (
    ("#t", "true"),
    ("#f", "false"),
    ("()", "empty"),
    ("null", "empty"),
    (" struct-instance", ""),
)


def _number(x: Any) -> str:
    if isinstance(x, Fraction):
        return f"{x.numerator}/{x.denominator}"
    if isinstance(x, float):
        if math.isnan(x):
            return "+nan.0"
        if math.isinf(x):
            return "+inf.0" if x > 0 else "-inf.0"
        return repr(x)
    return str(x)


def _escape(s: str) -> str:
    return '"' + s.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n") + '"'


def _render(x: Any, quote_strings: bool) -> str:
    if x is True:
        return "#t"
    if x is False:
        return "#f"
    if x is NIL:
        return "()"
    if x is VOID:
        return "#<void>"
    if isinstance(x, (int, float, Fraction)):
        return _number(x)
    if isinstance(x, str):
        return _escape(x) if quote_strings else x
    if isinstance(x, Symbol):
        return x.name
    if isinstance(x, Pair):
        parts = []
        node: Any = x
        while isinstance(node, Pair):
            parts.append(_render(node.car, quote_strings))
            node = node.cdr
        if node is not NIL:
            parts.append(".")
            parts.append(_render(node, quote_strings))
        return "(" + " ".join(parts) + ")"
    return repr(x)


def write_value(x: Any) -> str:
    """Machine-readable form: strings are quoted."""
    return _render(x, True)


def display_value(x: Any) -> str:
    """Human form: strings are shown raw."""
    return _render(x, False)


def racket_text(text: str) -> str:
    for old, new in RACKET_REPLACEMENTS:
        text = text.replace(old, new)
    return text
