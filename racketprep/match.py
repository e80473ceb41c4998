"""`match` rewriting: each clause becomes a `cond` clause over a let-bound scrutinee.

    (match e [(cons a _) a] [_ 0])
    =>
    (let ([__match_val_0 e])
      (cond
        [(pair? __match_val_0) (let ([a (car __match_val_0)]) a)]
        [#t 0]
        [else (error "match: no matching clause")]))

Clauses are tried in order. Sub-patterns of `cons` and `list` may be any
pattern; they add tests on `(car v)`, `(cdr v)` or `(list-ref v i)`.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Union

from .config import MAX_REWRITE_ITERATIONS
from .scanner import find_close, find_form, read_data

logger = logging.getLogger(__name__)

NO_MATCH_CLAUSE = '[else (error "match: no matching clause")]'
VALUE_PREFIX = "__match_val_"

_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?(/\d+)?$")
_IDENT_RE = re.compile(r"^[^\s()\[\]\"';`,#|\d][^\s()\[\]\"';`,|]*$")
_BOOLEANS = {"#t", "#f", "#true", "#false"}


# --- Pattern AST ---

@dataclass(frozen=True)
class Wildcard:
    pass


@dataclass(frozen=True)
class EmptyList:
    pass


@dataclass(frozen=True)
class QuotedLiteral:
    text: str  # includes the leading quote


@dataclass(frozen=True)
class Literal:
    text: str  # numbers, strings, booleans and unrecognised shapes


@dataclass(frozen=True)
class Predicate:
    name: str
    var: Optional[str] = None


@dataclass(frozen=True)
class ConsPattern:
    car: "Pattern"
    cdr: "Pattern"


@dataclass(frozen=True)
class ListPattern:
    elements: tuple["Pattern", ...]


@dataclass(frozen=True)
class Variable:
    name: str


Pattern = Union[Wildcard, EmptyList, QuotedLiteral, Literal, Predicate, ConsPattern, ListPattern, Variable]


@dataclass(frozen=True)
class MatchClause:
    pattern: Pattern
    body: str


def parse_pattern(text: str) -> Pattern:
    text = text.strip()
    if text == "_":
        return Wildcard()
    if text in ("'()", "()", "'[]", "[]"):
        return EmptyList()
    if text.startswith("'"):
        return QuotedLiteral(text)
    if text[:1] in ("(", "["):
        parts = read_data(text[1:-1])
        head = parts[0].text if parts else ""
        if head == "?" and len(parts) in (2, 3):
            var = parts[2].text if len(parts) == 3 else None
            return Predicate(parts[1].text, var)
        if head == "cons" and len(parts) == 3:
            return ConsPattern(parse_pattern(parts[1].text), parse_pattern(parts[2].text))
        if head == "list":
            return ListPattern(tuple(parse_pattern(p.text) for p in parts[1:]))
        return Literal(text)
    if text in _BOOLEANS or _NUMBER_RE.match(text) or text.startswith('"'):
        return Literal(text)
    if _IDENT_RE.match(text):
        return Variable(text)
    return Literal(text)


# --- Compilation ---

def _compile(pattern: Pattern, value: str, tests: list[str], bindings: list[str]) -> None:
    if isinstance(pattern, Wildcard):
        return
    if isinstance(pattern, EmptyList):
        tests.append(f"(null? {value})")
    elif isinstance(pattern, QuotedLiteral):
        tests.append(f"(equal? {value} {pattern.text})")
    elif isinstance(pattern, Literal):
        tests.append(f"(equal? {value} '{pattern.text})")
    elif isinstance(pattern, Predicate):
        tests.append(f"({pattern.name} {value})")
        if pattern.var and pattern.var != "_":
            bindings.append(f"[{pattern.var} {value}]")
    elif isinstance(pattern, ConsPattern):
        tests.append(f"(pair? {value})")
        _compile(pattern.car, f"(car {value})", tests, bindings)
        _compile(pattern.cdr, f"(cdr {value})", tests, bindings)
    elif isinstance(pattern, ListPattern):
        tests.append(f"(list? {value})")
        tests.append(f"(= (length {value}) {len(pattern.elements)})")
        for i, element in enumerate(pattern.elements):
            _compile(element, f"(list-ref {value} {i})", tests, bindings)
    elif isinstance(pattern, Variable):
        bindings.append(f"[{pattern.name} {value}]")


def compile_clause(pattern: Pattern, body: str, value: str) -> str:
    """One `cond` clause testing `value` against `pattern`."""
    tests: list[str] = []
    bindings: list[str] = []
    _compile(pattern, value, tests, bindings)
    if not tests:
        condition = "#t"
    elif len(tests) == 1:
        condition = tests[0]
    else:
        condition = f"(and {' '.join(tests)})"
    if bindings:
        body = f"(let ({' '.join(bindings)}) {body})"
    return f"[{condition} {body}]"


def parse_match(form: str) -> Optional[tuple[str, list[MatchClause]]]:
    """Scrutinee text and clauses of a `(match e [pat body ...] ...)` form."""
    data = read_data(form[1:-1])
    if len(data) < 3 or data[0].text != "match":
        return None
    clauses = []
    for clause in data[2:]:
        if not clause.is_list or clause.text[0] in "'`,#":
            return None
        parts = read_data(clause.inner)
        if len(parts) < 2:
            return None
        body = " ".join(p.text for p in parts[1:])
        clauses.append(MatchClause(parse_pattern(parts[0].text), body))
    return data[1].text, clauses


def rewrite_match(form: str, value: str) -> Optional[str]:
    parsed = parse_match(form)
    if parsed is None:
        return None
    expr, clauses = parsed
    lines = [f"(let ([{value} {expr}])", "  (cond"]
    for clause in clauses:
        lines.append("    " + compile_clause(clause.pattern, clause.body, value))
    lines.append(f"    {NO_MATCH_CLAUSE}))")
    return "\n".join(lines)


def expand_match(source: str, max_iterations: int = MAX_REWRITE_ITERATIONS) -> str:
    """Rewrite `match` forms, outermost first, until none remain or the cap is hit."""
    counter = 0

    def fresh(text: str) -> str:
        nonlocal counter
        while True:
            name = f"{VALUE_PREFIX}{counter}"
            counter += 1
            if name not in text:
                return name

    text = source
    pos = 0
    for _ in range(max_iterations):
        start = find_form(text, "match", pos)
        if start < 0:
            return text
        close = find_close(text, start)
        if close < 0:
            return text
        rewritten = rewrite_match(text[start:close + 1], fresh(text))
        if rewritten is None:
            logger.debug("leaving malformed match at offset %d", start)
            pos = close + 1
            continue
        text = text[:start] + rewritten + text[close + 1:]
        pos = start
    if find_form(text, "match", pos) >= 0:
        logger.warning("match expansion stopped after %d iterations", max_iterations)
    return text
