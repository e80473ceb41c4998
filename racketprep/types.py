from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional

# Runtime values: int, float, Fraction, bool, str (strings), Symbol, Pair,
# NIL, VOID, Procedure (evaluator.py) and Python callables for primitives.


class Symbol:
    """Interned symbol. Two symbols with the same name are the same object."""

    __slots__ = ("name",)
    _table: dict[str, "Symbol"] = {}

    def __new__(cls, name: str) -> "Symbol":
        sym = cls._table.get(name)
        if sym is None:
            sym = super().__new__(cls)
            sym.name = name
            cls._table[name] = sym
        return sym

    def __repr__(self) -> str:
        return f"Symbol({self.name!r})"

    def __str__(self) -> str:
        return self.name

    def __reduce__(self):
        return (Symbol, (self.name,))


class _Nil:
    __slots__ = ()

    def __repr__(self) -> str:
        return "NIL"

    def __bool__(self) -> bool:
        return False

    def __iter__(self) -> Iterator[Any]:
        return iter(())


class _Void:
    __slots__ = ()

    def __repr__(self) -> str:
        return "VOID"


NIL = _Nil()
VOID = _Void()


class Pair:
    __slots__ = ("car", "cdr")

    def __init__(self, car: Any, cdr: Any):
        self.car = car
        self.cdr = cdr

    def __iter__(self) -> Iterator[Any]:
        node: Any = self
        while isinstance(node, Pair):
            yield node.car
            node = node.cdr

    def __repr__(self) -> str:
        return f"Pair({self.car!r}, {self.cdr!r})"


def from_list(items: Iterable[Any], tail: Any = NIL) -> Any:
    """Build a proper (or dotted, with `tail`) list out of Python items."""
    result = tail
    for item in reversed(list(items)):
        result = Pair(item, result)
    return result


def is_list(x: Any) -> bool:
    while isinstance(x, Pair):
        x = x.cdr
    return x is NIL


@dataclass
class Failure:
    kind: str  # "check-expect" | "check-within"
    actual: Any
    expected: Any
    tolerance: Optional[Any] = None


@dataclass
class TestSession:
    """Pass/fail counters of one interpreter. Reset before every graded run."""

    __test__ = False  # not a pytest class

    passed: int = 0
    failed: int = 0
    failures: list[Failure] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.passed + self.failed

    def reset(self) -> None:
        self.passed = 0
        self.failed = 0
        self.failures = []

    def record_pass(self) -> None:
        self.passed += 1

    def record_failure(self, failure: Failure) -> None:
        self.failed += 1
        self.failures.append(failure)


@dataclass(frozen=True)
class CaseResult:
    passed: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class GradingResult:
    points: float
    passed: int
    total: int
    results: tuple[CaseResult, ...] = ()
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "points": self.points,
            "passed": self.passed,
            "total": self.total,
            "results": [{"passed": r.passed} for r in self.results],
        }
        if self.reason is not None:
            out["reason"] = self.reason
        return out
