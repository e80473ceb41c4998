"""Tree-walk evaluator for the teaching dialect. Tail calls, step hook, depth metering."""

import logging
import sys
import threading
from typing import Any, Callable, Optional

from .parser import parse_all
from .types import NIL, VOID, Pair, Symbol, TestSession, from_list

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 50_000

# Python frames per nesting level, with room for primitives that call back in
_FRAMES_PER_LEVEL = 4
_EVAL_STACK_SIZE = 512 * 1024 * 1024
_deep = threading.local()


class SchemeError(RuntimeError):
    pass


class UserError(SchemeError):
    """Raised by `(error ...)` in user code."""


class StepLimitExceeded(SchemeError):
    pass


class DepthExceeded(SchemeError):
    pass


class ExecutionCancelled(SchemeError):
    pass


_UNASSIGNED = object()

_QUOTE = Symbol("quote")
_IF = Symbol("if")
_DEFINE = Symbol("define")
_SET = Symbol("set!")
_LAMBDA = Symbol("lambda")
_LAMBDA_GLYPH = Symbol("λ")
_LET = Symbol("let")
_LET_STAR = Symbol("let*")
_LETREC = Symbol("letrec")
_LETREC_STAR = Symbol("letrec*")
_COND = Symbol("cond")
_CASE = Symbol("case")
_ELSE = Symbol("else")
_AND = Symbol("and")
_OR = Symbol("or")
_WHEN = Symbol("when")
_UNLESS = Symbol("unless")
_BEGIN = Symbol("begin")
_DOT = Symbol(".")

SPECIAL_FORMS = frozenset({
    _QUOTE, _IF, _DEFINE, _SET, _LAMBDA, _LAMBDA_GLYPH, _LET, _LET_STAR,
    _LETREC, _LETREC_STAR, _COND, _CASE, _AND, _OR, _WHEN, _UNLESS, _BEGIN,
})


class Environment:
    __slots__ = ("vars", "outer")

    def __init__(self, vars: Optional[dict] = None, outer: Optional["Environment"] = None):
        self.vars = vars if vars is not None else {}
        self.outer = outer

    def lookup(self, sym: Symbol) -> Any:
        env: Optional[Environment] = self
        while env is not None:
            value = env.vars.get(sym, _UNASSIGNED)
            if value is not _UNASSIGNED:
                return value
            if sym in env.vars:
                raise SchemeError(f"{sym.name}: undefined; cannot use before initialization")
            env = env.outer
        raise SchemeError(f"{sym.name}: undefined; cannot reference an identifier before its definition")

    def define(self, sym: Symbol, value: Any) -> None:
        self.vars[sym] = value

    def set(self, sym: Symbol, value: Any) -> None:
        env: Optional[Environment] = self
        while env is not None:
            if sym in env.vars:
                env.vars[sym] = value
                return
            env = env.outer
        raise SchemeError(f"set!: assignment disallowed; cannot set variable before its definition: {sym.name}")


class Procedure:
    """A closure created by `lambda` or `define`."""

    __slots__ = ("params", "rest", "body", "env", "name")

    def __init__(self, params: tuple, rest: Optional[Symbol], body: list, env: Environment,
                 name: Optional[str] = None):
        self.params = params
        self.rest = rest
        self.body = body
        self.env = env
        self.name = name

    def __repr__(self) -> str:
        return f"#<procedure:{self.name}>" if self.name else "#<procedure>"


class Primitive:
    """A built-in procedure implemented in Python."""

    __slots__ = ("name", "fn")

    def __init__(self, name: str, fn: Callable[..., Any]):
        self.name = name
        self.fn = fn

    def __call__(self, *args: Any) -> Any:
        return self.fn(*args)

    def __repr__(self) -> str:
        return f"#<procedure:{self.name}>"


def is_procedure(x: Any) -> bool:
    return isinstance(x, (Procedure, Primitive))


def truthy(v: Any) -> bool:
    return v is not False


def to_datum(x: Any) -> Any:
    """Turn quoted reader output into runtime data (lists become Pair chains)."""
    if isinstance(x, list):
        if len(x) >= 3 and x[-2] is _DOT:
            return from_list([to_datum(i) for i in x[:-2]], to_datum(x[-1]))
        return from_list([to_datum(i) for i in x])
    return x


def call_with_deep_stack(fn: Callable[..., Any], *args: Any, depth: int) -> Any:
    """Run `fn(*args)` on a thread whose stack and recursion limit fit `depth` nesting levels.

    Non-tail calls recurse in Python, so the main thread's default stack is far
    too small for structurally recursive programs over long lists. Exceptions
    raised by `fn` are re-raised in the caller.
    """
    limit = depth * _FRAMES_PER_LEVEL + 1000
    if sys.getrecursionlimit() < limit:
        sys.setrecursionlimit(limit)
    outcome: dict[str, Any] = {}

    def target() -> None:
        _deep.active = True
        try:
            outcome["value"] = fn(*args)
        except BaseException as e:
            outcome["error"] = e

    previous = threading.stack_size(_EVAL_STACK_SIZE)
    try:
        worker = threading.Thread(target=target, name="racketprep-eval", daemon=True)
        worker.start()
    finally:
        threading.stack_size(previous)
    worker.join()
    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]


def _params(formals: Any, who: str) -> tuple[tuple, Optional[Symbol]]:
    if isinstance(formals, Symbol):
        return (), formals
    if not isinstance(formals, list):
        raise SchemeError(f"{who}: bad syntax (not an identifier sequence)")
    params = []
    rest = None
    items = list(formals)
    if len(items) >= 2 and items[-2] is _DOT:
        rest = items[-1]
        items = items[:-2]
        if not isinstance(rest, Symbol):
            raise SchemeError(f"{who}: bad syntax (not an identifier)")
    for p in items:
        if not isinstance(p, Symbol) or p is _DOT:
            raise SchemeError(f"{who}: bad syntax (not an identifier)")
        params.append(p)
    return tuple(params), rest


def _bindings(formals: Any, who: str) -> list[tuple[Symbol, Any]]:
    if not isinstance(formals, list):
        raise SchemeError(f"{who}: bad syntax (not a sequence of bindings)")
    out = []
    for b in formals:
        if not (isinstance(b, list) and len(b) == 2 and isinstance(b[0], Symbol)):
            raise SchemeError(f"{who}: bad syntax (not an identifier and expression for a binding)")
        out.append((b[0], b[1]))
    return out


class Interpreter:
    """One evaluator instance: global environment, test session, output sink.

    `on_step` is called with the running step count on every reduction step;
    it may raise to abort evaluation (the interactive step ceiling does).
    """

    def __init__(
        self,
        *,
        output: Any = None,
        on_step: Optional[Callable[[int], None]] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        prelude: bool = True,
    ):
        from .primitives import install
        from .prelude import load_prelude

        self.global_env = Environment()
        self.session = TestSession()
        self.output = output
        self.on_step = None
        self.max_depth = max_depth
        self.steps = 0
        self._depth = 0
        self._cancelled = False
        install(self)
        if prelude:
            load_prelude(self)
            self.steps = 0
        self.on_step = on_step

    # --- Host API ---

    def evaluate(self, source: str) -> Any:
        """Read and evaluate every datum in `source`; return the last value.

        Reader failures raise SyntaxError before anything is evaluated.
        """
        result: Any = VOID
        for datum in parse_all(source):
            result = self.eval_datum(datum)
        return result

    def eval_datum(self, datum: Any) -> Any:
        return self._run(self._eval, datum, self.global_env)

    def lookup(self, name: str) -> Any:
        return self.global_env.lookup(Symbol(name))

    def define(self, name: str, value: Any) -> None:
        if callable(value) and not is_procedure(value):
            value = Primitive(name, value)
        self.global_env.define(Symbol(name), value)

    def cancel(self) -> None:
        """Make the next reduction step raise ExecutionCancelled."""
        self._cancelled = True

    def write(self, text: str) -> None:
        out = self.output
        if out is None:
            sys.stdout.write(text)
        elif callable(out):
            out(text)
        else:
            out.write(text)

    def apply(self, proc: Any, args: list) -> Any:
        """Call a procedure value from Python (used by higher-order primitives)."""
        return self._run(self._apply, proc, list(args))

    # --- Evaluation ---

    def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        if getattr(_deep, "active", False):
            return fn(*args)
        self._depth = 0
        try:
            return call_with_deep_stack(fn, *args, depth=self.max_depth)
        except RecursionError:
            raise DepthExceeded("max nesting depth exceeded") from None

    def _apply(self, proc: Any, args: list) -> Any:
        if isinstance(proc, Procedure):
            env = self._bind(proc, list(args))
            return self._eval(self._body(proc.body, env), env)
        return self._call_primitive(proc, list(args))

    def _step(self) -> None:
        self.steps += 1
        if self._cancelled:
            raise ExecutionCancelled("execution cancelled")
        if self.on_step is not None:
            self.on_step(self.steps)

    def _body(self, body: list, env: Environment) -> Any:
        for form in body[:-1]:
            self._eval(form, env)
        return body[-1]

    def _bind(self, proc: Procedure, args: list) -> Environment:
        n = len(proc.params)
        if len(args) != n and (proc.rest is None or len(args) < n):
            expected = f"at least {n}" if proc.rest is not None else str(n)
            raise SchemeError(
                f"{proc.name or 'procedure'}: arity mismatch; expected {expected} arguments, given {len(args)}"
            )
        frame = dict(zip(proc.params, args))
        if proc.rest is not None:
            frame[proc.rest] = from_list(args[n:])
        return Environment(frame, proc.env)

    def _call_primitive(self, proc: Any, args: list) -> Any:
        if not isinstance(proc, Primitive):
            from .printer import write_value
            raise SchemeError(f"application: not a procedure; given: {write_value(proc)}")
        try:
            return proc.fn(*args)
        except SchemeError:
            raise
        except RecursionError:
            raise
        except (TypeError, ValueError, ZeroDivisionError, IndexError, AttributeError,
                KeyError, OverflowError) as e:
            raise SchemeError(f"{proc.name}: {e}") from None

    def _lambda(self, x: list, env: Environment, name: Optional[str] = None) -> Procedure:
        if len(x) < 3:
            raise SchemeError("lambda: bad syntax (missing body)")
        params, rest = _params(x[1], "lambda")
        return Procedure(params, rest, x[2:], env, name)

    def _eval(self, x: Any, env: Environment) -> Any:
        self._depth += 1
        try:
            if self._depth > self.max_depth:
                raise DepthExceeded("max nesting depth exceeded")
            while True:
                self._step()
                if isinstance(x, Symbol):
                    return env.lookup(x)
                if not isinstance(x, list):
                    return x
                if not x:
                    raise SchemeError("#%app: missing procedure expression")
                op = x[0]

                if isinstance(op, Symbol) and op in SPECIAL_FORMS:
                    # --- Quotation ---
                    if op is _QUOTE:
                        if len(x) != 2:
                            raise SchemeError("quote: bad syntax")
                        return to_datum(x[1])

                    # --- Conditionals ---
                    if op is _IF:
                        if len(x) not in (3, 4):
                            raise SchemeError("if: bad syntax")
                        if truthy(self._eval(x[1], env)):
                            x = x[2]
                        elif len(x) == 4:
                            x = x[3]
                        else:
                            return VOID
                        continue

                    if op is _COND:
                        chosen = None
                        for clause in x[1:]:
                            if not isinstance(clause, list) or not clause:
                                raise SchemeError("cond: bad syntax (clause is not a test-value pair)")
                            if clause[0] is _ELSE:
                                chosen = clause[1:]
                                break
                            test = self._eval(clause[0], env)
                            if truthy(test):
                                if len(clause) == 1:
                                    return test
                                chosen = clause[1:]
                                break
                        if chosen is None:
                            return VOID
                        if not chosen:
                            raise SchemeError("cond: bad syntax (empty clause body)")
                        x = self._body(chosen, env)
                        continue

                    if op is _CASE:
                        from .primitives import is_equal
                        key = self._eval(x[1], env)
                        chosen = None
                        for clause in x[2:]:
                            if not isinstance(clause, list) or len(clause) < 2:
                                raise SchemeError("case: bad syntax")
                            if clause[0] is _ELSE or any(
                                is_equal(key, to_datum(d)) for d in clause[0]
                            ):
                                chosen = clause[1:]
                                break
                        if chosen is None:
                            return VOID
                        x = self._body(chosen, env)
                        continue

                    if op is _AND:
                        if len(x) == 1:
                            return True
                        for a in x[1:-1]:
                            if not truthy(self._eval(a, env)):
                                return False
                        x = x[-1]
                        continue

                    if op is _OR:
                        if len(x) == 1:
                            return False
                        for a in x[1:-1]:
                            v = self._eval(a, env)
                            if truthy(v):
                                return v
                        x = x[-1]
                        continue

                    if op is _WHEN or op is _UNLESS:
                        if len(x) < 3:
                            raise SchemeError(f"{op.name}: bad syntax")
                        test = truthy(self._eval(x[1], env))
                        if test != (op is _WHEN):
                            return VOID
                        x = self._body(x[2:], env)
                        continue

                    if op is _BEGIN:
                        if len(x) == 1:
                            return VOID
                        x = self._body(x[1:], env)
                        continue

                    # --- Binding ---
                    if op is _DEFINE:
                        if len(x) < 3:
                            raise SchemeError("define: bad syntax")
                        target = x[1]
                        if isinstance(target, list):
                            if not target or not isinstance(target[0], Symbol):
                                raise SchemeError("define: bad syntax (not an identifier)")
                            name = target[0]
                            formals = target[1:]
                            proc = self._lambda([_LAMBDA, formals, *x[2:]], env, name.name)
                            env.define(name, proc)
                            return VOID
                        if not isinstance(target, Symbol) or len(x) != 3:
                            raise SchemeError("define: bad syntax")
                        value = self._eval(x[2], env)
                        if isinstance(value, Procedure) and value.name is None:
                            value.name = target.name
                        env.define(target, value)
                        return VOID

                    if op is _SET:
                        if len(x) != 3 or not isinstance(x[1], Symbol):
                            raise SchemeError("set!: bad syntax")
                        env.set(x[1], self._eval(x[2], env))
                        return VOID

                    if op is _LAMBDA or op is _LAMBDA_GLYPH:
                        return self._lambda(x, env)

                    if op is _LET:
                        if len(x) < 3:
                            raise SchemeError("let: bad syntax")
                        if isinstance(x[1], Symbol):
                            # named let
                            if len(x) < 4:
                                raise SchemeError("let: bad syntax")
                            bindings = _bindings(x[2], "let")
                            loop_env = Environment(outer=env)
                            loop = Procedure(tuple(b[0] for b in bindings), None, x[3:], loop_env, x[1].name)
                            loop_env.define(x[1], loop)
                            args = []
                            for _, init in bindings:
                                args.append(self._eval(init, env))
                            env = self._bind(loop, args)
                            x = self._body(loop.body, env)
                            continue
                        bindings = _bindings(x[1], "let")
                        frame = {}
                        for sym, init in bindings:
                            frame[sym] = self._eval(init, env)
                        env = Environment(frame, env)
                        x = self._body(x[2:], env)
                        continue

                    if op is _LET_STAR:
                        if len(x) < 3:
                            raise SchemeError("let*: bad syntax")
                        for sym, init in _bindings(x[1], "let*"):
                            env = Environment({sym: self._eval(init, env)}, env)
                        x = self._body(x[2:], env)
                        continue

                    if op is _LETREC or op is _LETREC_STAR:
                        if len(x) < 3:
                            raise SchemeError(f"{op.name}: bad syntax")
                        bindings = _bindings(x[1], op.name)
                        env = Environment({sym: _UNASSIGNED for sym, _ in bindings}, env)
                        for sym, init in bindings:
                            value = self._eval(init, env)
                            if isinstance(value, Procedure) and value.name is None:
                                value.name = sym.name
                            env.vars[sym] = value
                        x = self._body(x[2:], env)
                        continue

                # --- Application ---
                proc = self._eval(op, env)
                args = []
                for a in x[1:]:
                    args.append(self._eval(a, env))
                if isinstance(proc, Procedure):
                    env = self._bind(proc, args)
                    x = self._body(proc.body, env)
                    continue
                return self._call_primitive(proc, args)
        finally:
            self._depth -= 1
