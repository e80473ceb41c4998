"""Built-in procedures: Racket-style arithmetic, lists, strings, output and testing."""

import functools
import math
import random
from fractions import Fraction
from typing import Any, Callable

from .evaluator import Primitive, SchemeError, UserError, is_procedure
from .parser import parse
from .printer import display_value, write_value
from .types import NIL, VOID, Failure, Pair, Symbol, from_list, is_list

Number = (int, float, Fraction)


# --- Equality ---

def is_number(x: Any) -> bool:
    return isinstance(x, Number) and not isinstance(x, bool)


def is_eqv(a: Any, b: Any) -> bool:
    if a is b:
        return True
    if is_number(a) and is_number(b):
        return isinstance(a, float) == isinstance(b, float) and a == b
    return False


def is_equal(a: Any, b: Any) -> bool:
    while isinstance(a, Pair) and isinstance(b, Pair):
        if not is_equal(a.car, b.car):
            return False
        a, b = a.cdr, b.cdr
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    return is_eqv(a, b)


# --- Argument checks ---

def _contract(who: str, expected: str, given: Any) -> SchemeError:
    return SchemeError(f"{who}: contract violation; expected: {expected}, given: {write_value(given)}")


def _num(x: Any, who: str) -> Any:
    if not is_number(x):
        raise _contract(who, "number?", x)
    return x


def _int(x: Any, who: str) -> int:
    if isinstance(x, float) and x.is_integer():
        return int(x)
    if not isinstance(x, int) or isinstance(x, bool):
        raise _contract(who, "integer?", x)
    return x


def _str(x: Any, who: str) -> str:
    if not isinstance(x, str):
        raise _contract(who, "string?", x)
    return x


def _symbol(x: Any, who: str) -> Symbol:
    if not isinstance(x, Symbol):
        raise _contract(who, "symbol?", x)
    return x


def _pair(x: Any, who: str) -> Pair:
    if not isinstance(x, Pair):
        raise _contract(who, "pair?", x)
    return x


def to_pylist(x: Any, who: str) -> list:
    out = []
    node = x
    while isinstance(node, Pair):
        out.append(node.car)
        node = node.cdr
    if node is not NIL:
        raise _contract(who, "list?", x)
    return out


def _norm(x: Any) -> Any:
    if isinstance(x, Fraction) and x.denominator == 1:
        return x.numerator
    return x


# --- Arithmetic ---

def _add(*args: Any) -> Any:
    total: Any = 0
    for a in args:
        total += _num(a, "+")
    return _norm(total)


def _sub(first: Any, *rest: Any) -> Any:
    _num(first, "-")
    if not rest:
        return -first
    for a in rest:
        first -= _num(a, "-")
    return _norm(first)


def _mul(*args: Any) -> Any:
    total: Any = 1
    for a in args:
        total *= _num(a, "*")
    return _norm(total)


def _div(first: Any, *rest: Any) -> Any:
    _num(first, "/")
    if not rest:
        rest = (first,)
        first = 1
    result = Fraction(first) if not isinstance(first, float) else first
    for a in rest:
        _num(a, "/")
        if a == 0:
            raise SchemeError("/: division by zero")
        if isinstance(a, float) or isinstance(result, float):
            result = float(result) / float(a)
        else:
            result = result / a
    return _norm(result)


def _quotient(a: Any, b: Any) -> int:
    a, b = _int(a, "quotient"), _int(b, "quotient")
    if b == 0:
        raise SchemeError("quotient: undefined for 0")
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


def _remainder(a: Any, b: Any) -> int:
    ia, ib = _int(a, "remainder"), _int(b, "remainder")
    if ib == 0:
        raise SchemeError("remainder: undefined for 0")
    return ia - ib * _quotient(ia, ib)


def _modulo(a: Any, b: Any) -> int:
    ia, ib = _int(a, "modulo"), _int(b, "modulo")
    if ib == 0:
        raise SchemeError("modulo: undefined for 0")
    return ia % ib


def _compare(name: str, op: Callable[[Any, Any], bool]) -> Callable[..., bool]:
    def compare(*args: Any) -> bool:
        for a in args:
            _num(a, name)
        return all(op(a, b) for a, b in zip(args, args[1:]))
    return compare


def _expt(base: Any, power: Any) -> Any:
    _num(base, "expt")
    _num(power, "expt")
    if isinstance(power, int) and power < 0 and not isinstance(base, float):
        if base == 0:
            raise SchemeError("expt: undefined for 0 with negative exponent")
        return _norm(Fraction(1) / Fraction(base) ** -power)
    return _norm(base ** power)


def _sqrt(x: Any) -> Any:
    _num(x, "sqrt")
    if x < 0:
        raise SchemeError("sqrt: negative argument")
    if isinstance(x, int):
        r = math.isqrt(x)
        if r * r == x:
            return r
    return math.sqrt(x)


def _rounder(name: str, fn: Callable[[Any], Any]) -> Callable[[Any], Any]:
    def rnd(x: Any) -> Any:
        _num(x, name)
        if isinstance(x, float):
            return float(fn(x))
        return int(fn(x))
    return rnd


def _integer_p(x: Any) -> bool:
    if isinstance(x, float):
        return x.is_integer()
    return isinstance(x, int) and not isinstance(x, bool)


def _random(*args: Any) -> Any:
    if not args:
        return random.random()
    n = _int(args[0], "random")
    if n <= 0:
        raise _contract("random", "positive integer", n)
    return random.randrange(n)


def _number_to_string(x: Any) -> str:
    return display_value(_num(x, "number->string"))


def _string_to_number(s: Any) -> Any:
    try:
        value = parse(_str(s, "string->number"))
    except SyntaxError:
        return False
    return value if is_number(value) else False


# --- Lists ---

def _cxr(path: str) -> Callable[[Any], Any]:
    name = f"c{path}r"

    def cxr(x: Any) -> Any:
        for step in reversed(path):
            x = _pair(x, name)
            x = x.car if step == "a" else x.cdr
        return x
    return cxr


def _nth(n: int, name: str) -> Callable[[Any], Any]:
    def nth(lst: Any) -> Any:
        items = to_pylist(lst, name)
        if len(items) <= n:
            raise SchemeError(f"{name}: list contains too few elements: {write_value(lst)}")
        return items[n]
    return nth


def _list_ref(lst: Any, k: Any) -> Any:
    k = _int(k, "list-ref")
    node = lst
    for _ in range(k):
        node = _pair(node, "list-ref").cdr
    return _pair(node, "list-ref").car


def _list_tail(lst: Any, k: Any) -> Any:
    node = lst
    for _ in range(_int(k, "list-tail")):
        node = _pair(node, "list-tail").cdr
    return node


def _append(*lists: Any) -> Any:
    if not lists:
        return NIL
    result = lists[-1]
    for lst in reversed(lists[:-1]):
        result = from_list(to_pylist(lst, "append"), result)
    return result


def _last(lst: Any) -> Any:
    items = to_pylist(lst, "last")
    if not items:
        raise _contract("last", "(and/c list? (not/c empty?))", lst)
    return items[-1]


def _list_star(*args: Any) -> Any:
    if not args:
        raise SchemeError("list*: arity mismatch")
    return from_list(args[:-1], args[-1])


def _member(item: Any, lst: Any) -> bool:
    return any(is_equal(item, x) for x in to_pylist(lst, "member"))


def _remove(item: Any, lst: Any) -> Any:
    return from_list([x for x in to_pylist(lst, "remove") if not is_equal(item, x)])


def _assoc(key: Any, lst: Any) -> Any:
    for entry in to_pylist(lst, "assoc"):
        if isinstance(entry, Pair) and is_equal(entry.car, key):
            return entry
    return False


def _range(*args: Any) -> Any:
    if len(args) == 1:
        start, end, step = 0, args[0], 1
    elif len(args) == 2:
        start, end, step = args[0], args[1], 1
    elif len(args) == 3:
        start, end, step = args
    else:
        raise SchemeError("range: arity mismatch")
    for a in (start, end, step):
        _num(a, "range")
    if step == 0:
        raise SchemeError("range: step must not be zero")
    out = []
    i = start
    while (i < end) if step > 0 else (i > end):
        out.append(i)
        i += step
    return from_list(out)


def _take(lst: Any, n: Any) -> Any:
    items = to_pylist(lst, "take")
    n = _int(n, "take")
    if n > len(items):
        raise SchemeError(f"take: contract violation; list too short for {n} elements")
    return from_list(items[:n])


def _drop(lst: Any, n: Any) -> Any:
    n = _int(n, "drop")
    node = lst
    for _ in range(n):
        node = _pair(node, "drop").cdr
    return node


# --- Strings and symbols ---

def _string_append(*args: Any) -> str:
    return "".join(_str(a, "string-append") for a in args)


def _substring(s: Any, start: Any, end: Any = None) -> str:
    s = _str(s, "substring")
    start = _int(start, "substring")
    end = len(s) if end is None else _int(end, "substring")
    if not 0 <= start <= end <= len(s):
        raise SchemeError(f"substring: index out of range for {write_value(s)}")
    return s[start:end]


def _string_compare(name: str, op: Callable[[str, str], bool]) -> Callable[..., bool]:
    def compare(*args: Any) -> bool:
        for a in args:
            _str(a, name)
        return all(op(a, b) for a, b in zip(args, args[1:]))
    return compare


def _symbol_to_string(s: Any) -> str:
    if not isinstance(s, Symbol):
        raise _contract("symbol->string", "symbol?", s)
    return s.name


def format_text(fmt: Any, *args: Any) -> str:
    """Racket `format`: ~a display, ~s/~v write, ~n/~% newline, ~~ tilde."""
    fmt = _str(fmt, "format")
    out = []
    rest = list(args)
    i = 0
    while i < len(fmt):
        ch = fmt[i]
        if ch == "~" and i + 1 < len(fmt):
            d = fmt[i + 1].lower()
            i += 2
            if d in "asv":
                if not rest:
                    raise SchemeError("format: ill-formed pattern string; not enough arguments")
                value = rest.pop(0)
                out.append(display_value(value) if d == "a" else write_value(value))
            elif d in "n%":
                out.append("\n")
            elif d == "~":
                out.append("~")
            else:
                raise SchemeError(f"format: ill-formed pattern string; unknown directive ~{d}")
            continue
        out.append(ch)
        i += 1
    if rest:
        raise SchemeError("format: ill-formed pattern string; too many arguments")
    return "".join(out)


def _error(*args: Any) -> Any:
    if not args:
        raise UserError("error")
    head, rest = args[0], args[1:]
    if isinstance(head, Symbol):
        if rest and isinstance(rest[0], str):
            msg = format_text(rest[0], *rest[1:]) if "~" in rest[0] else " ".join(
                [rest[0]] + [write_value(a) for a in rest[1:]])
            raise UserError(f"{head.name}: {msg}")
        raise UserError(" ".join([head.name] + [write_value(a) for a in rest]))
    if isinstance(head, str):
        raise UserError(" ".join([head] + [write_value(a) for a in rest]))
    raise UserError(" ".join(write_value(a) for a in args))


def _within(actual: Any, expected: Any, tolerance: Any) -> bool:
    if is_number(actual) and is_number(expected):
        return abs(actual - expected) <= tolerance
    if isinstance(actual, Pair) and isinstance(expected, Pair):
        return _within(actual.car, expected.car, tolerance) and _within(actual.cdr, expected.cdr, tolerance)
    return is_equal(actual, expected)


_PURE: dict[str, Callable[..., Any]] = {
    # Arithmetic
    "+": _add,
    "-": _sub,
    "*": _mul,
    "/": _div,
    "quotient": _quotient,
    "remainder": _remainder,
    "modulo": _modulo,
    "=": _compare("=", lambda a, b: a == b),
    "<": _compare("<", lambda a, b: a < b),
    ">": _compare(">", lambda a, b: a > b),
    "<=": _compare("<=", lambda a, b: a <= b),
    ">=": _compare(">=", lambda a, b: a >= b),
    "abs": lambda x: abs(_num(x, "abs")),
    "min": lambda *xs: min(_num(x, "min") for x in xs),
    "max": lambda *xs: max(_num(x, "max") for x in xs),
    "gcd": lambda *xs: math.gcd(*(_int(x, "gcd") for x in xs)),
    "lcm": lambda *xs: math.lcm(*(_int(x, "lcm") for x in xs)),
    "expt": _expt,
    "sqrt": _sqrt,
    "sqr": lambda x: _num(x, "sqr") * x,
    "add1": lambda x: _num(x, "add1") + 1,
    "sub1": lambda x: _num(x, "sub1") - 1,
    "exp": lambda x: math.exp(_num(x, "exp")),
    "log": lambda x: math.log(_num(x, "log")),
    "sin": lambda x: math.sin(_num(x, "sin")),
    "cos": lambda x: math.cos(_num(x, "cos")),
    "tan": lambda x: math.tan(_num(x, "tan")),
    "atan": lambda *xs: math.atan2(*xs) if len(xs) == 2 else math.atan(_num(xs[0], "atan")),
    "floor": _rounder("floor", math.floor),
    "ceiling": _rounder("ceiling", math.ceil),
    "round": _rounder("round", round),
    "truncate": _rounder("truncate", math.trunc),
    "exact->inexact": lambda x: float(_num(x, "exact->inexact")),
    "inexact->exact": lambda x: _norm(Fraction(_num(x, "inexact->exact"))),
    "exact?": lambda x: not isinstance(_num(x, "exact?"), float),
    "inexact?": lambda x: isinstance(_num(x, "inexact?"), float),
    "number?": is_number,
    "integer?": _integer_p,
    "rational?": lambda x: is_number(x) and not (isinstance(x, float) and not math.isfinite(x)),
    "zero?": lambda x: _num(x, "zero?") == 0,
    "positive?": lambda x: _num(x, "positive?") > 0,
    "negative?": lambda x: _num(x, "negative?") < 0,
    "even?": lambda x: _int(x, "even?") % 2 == 0,
    "odd?": lambda x: _int(x, "odd?") % 2 == 1,
    "random": _random,
    "number->string": _number_to_string,
    "string->number": _string_to_number,
    # Booleans and equality
    "not": lambda x: x is False,
    "boolean?": lambda x: isinstance(x, bool),
    "eq?": is_eqv,
    "eqv?": is_eqv,
    "equal?": is_equal,
    # Pairs and lists
    "cons": Pair,
    "car": lambda x: _pair(x, "car").car,
    "cdr": lambda x: _pair(x, "cdr").cdr,
    "caar": _cxr("aa"),
    "cadr": _cxr("ad"),
    "cdar": _cxr("da"),
    "cddr": _cxr("dd"),
    "caddr": _cxr("add"),
    "cdddr": _cxr("ddd"),
    "cadddr": _cxr("addd"),
    "first": _nth(0, "first"),
    "second": _nth(1, "second"),
    "third": _nth(2, "third"),
    "fourth": _nth(3, "fourth"),
    "fifth": _nth(4, "fifth"),
    "rest": lambda x: _pair(x, "rest").cdr,
    "last": _last,
    "list": lambda *xs: from_list(xs),
    "list*": _list_star,
    "length": lambda x: len(to_pylist(x, "length")),
    "list-ref": _list_ref,
    "list-tail": _list_tail,
    "append": _append,
    "reverse": lambda x: from_list(reversed(to_pylist(x, "reverse"))),
    "take": _take,
    "drop": _drop,
    "null?": lambda x: x is NIL,
    "empty?": lambda x: x is NIL,
    "pair?": lambda x: isinstance(x, Pair),
    "cons?": lambda x: isinstance(x, Pair),
    "list?": is_list,
    "member": _member,
    "member?": _member,
    "remove": _remove,
    "assoc": _assoc,
    "range": _range,
    # Strings and symbols
    "string?": lambda x: isinstance(x, str),
    "symbol?": lambda x: isinstance(x, Symbol),
    "symbol=?": lambda a, b: _symbol(a, "symbol=?") is _symbol(b, "symbol=?"),
    "string-append": _string_append,
    "string-length": lambda s: len(_str(s, "string-length")),
    "substring": _substring,
    "string=?": _string_compare("string=?", lambda a, b: a == b),
    "string<?": _string_compare("string<?", lambda a, b: a < b),
    "string>?": _string_compare("string>?", lambda a, b: a > b),
    "string-upcase": lambda s: _str(s, "string-upcase").upper(),
    "string-downcase": lambda s: _str(s, "string-downcase").lower(),
    "string-contains?": lambda s, sub: _str(sub, "string-contains?") in _str(s, "string-contains?"),
    "string->symbol": lambda s: Symbol(_str(s, "string->symbol")),
    "symbol->string": _symbol_to_string,
    "format": format_text,
    "procedure?": is_procedure,
    "void": lambda *_: VOID,
    "error": _error,
}


def install(interp: Any) -> None:
    """Define every primitive in the interpreter's global environment."""
    env = interp.global_env

    def prim(name: str, fn: Callable[..., Any]) -> None:
        env.define(Symbol(name), Primitive(name, fn))

    for name, fn in _PURE.items():
        prim(name, fn)
    env.define(Symbol("pi"), math.pi)

    call = interp.apply

    def _proc(p: Any, who: str) -> Any:
        if not is_procedure(p):
            raise _contract(who, "procedure?", p)
        return p

    # --- Higher-order ---

    def _map(f: Any, *lists: Any) -> Any:
        _proc(f, "map")
        cols = [to_pylist(lst, "map") for lst in lists]
        if len({len(c) for c in cols}) > 1:
            raise SchemeError("map: all lists must have same size")
        return from_list([call(f, list(args)) for args in zip(*cols)])

    def _for_each(f: Any, *lists: Any) -> Any:
        _proc(f, "for-each")
        for args in zip(*(to_pylist(lst, "for-each") for lst in lists)):
            call(f, list(args))
        return VOID

    def _filter(f: Any, lst: Any) -> Any:
        _proc(f, "filter")
        return from_list([x for x in to_pylist(lst, "filter") if call(f, [x]) is not False])

    def _foldl(f: Any, init: Any, lst: Any) -> Any:
        _proc(f, "foldl")
        acc = init
        for x in to_pylist(lst, "foldl"):
            acc = call(f, [x, acc])
        return acc

    def _foldr(f: Any, init: Any, lst: Any) -> Any:
        _proc(f, "foldr")
        acc = init
        for x in reversed(to_pylist(lst, "foldr")):
            acc = call(f, [x, acc])
        return acc

    def _andmap(f: Any, lst: Any) -> Any:
        _proc(f, "andmap")
        result: Any = True
        for x in to_pylist(lst, "andmap"):
            result = call(f, [x])
            if result is False:
                return False
        return result

    def _ormap(f: Any, lst: Any) -> Any:
        _proc(f, "ormap")
        for x in to_pylist(lst, "ormap"):
            result = call(f, [x])
            if result is not False:
                return result
        return False

    def _apply(f: Any, *args: Any) -> Any:
        _proc(f, "apply")
        if not args:
            raise SchemeError("apply: arity mismatch")
        return call(f, list(args[:-1]) + to_pylist(args[-1], "apply"))

    def _build_list(n: Any, f: Any) -> Any:
        _proc(f, "build-list")
        return from_list([call(f, [i]) for i in range(_int(n, "build-list"))])

    def _sort(lst: Any, less: Any) -> Any:
        _proc(less, "sort")

        def cmp(a: Any, b: Any) -> int:
            if call(less, [a, b]) is not False:
                return -1
            if call(less, [b, a]) is not False:
                return 1
            return 0
        return from_list(sorted(to_pylist(lst, "sort"), key=functools.cmp_to_key(cmp)))

    # --- Output ---

    def _display(x: Any) -> Any:
        interp.write(display_value(x))
        return VOID

    def _write(x: Any) -> Any:
        interp.write(write_value(x))
        return VOID

    def _newline() -> Any:
        interp.write("\n")
        return VOID

    def _printf(fmt: Any, *args: Any) -> Any:
        interp.write(format_text(fmt, *args))
        return VOID

    # --- Testing ---

    session = interp.session

    def _check_expect(actual: Any, expected: Any) -> bool:
        if is_equal(actual, expected):
            session.record_pass()
            return True
        session.record_failure(Failure("check-expect", actual, expected))
        return False

    def _check_within(actual: Any, expected: Any, tolerance: Any) -> bool:
        _num(tolerance, "check-within")
        if _within(actual, expected, tolerance):
            session.record_pass()
            return True
        session.record_failure(Failure("check-within", actual, expected, tolerance))
        return False

    def _reset_test_results() -> Any:
        session.reset()
        return VOID

    for name, fn in {
        "map": _map,
        "for-each": _for_each,
        "filter": _filter,
        "foldl": _foldl,
        "foldr": _foldr,
        "andmap": _andmap,
        "every?": _andmap,
        "ormap": _ormap,
        "apply": _apply,
        "build-list": _build_list,
        "sort": _sort,
        "display": _display,
        "write": _write,
        "newline": _newline,
        "printf": _printf,
        "check-expect": _check_expect,
        "check-within": _check_within,
        "reset-test-results": _reset_test_results,
    }.items():
        prim(name, fn)
