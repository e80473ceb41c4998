"""Grading harness and interactive runner.

`grade_code` scores a submission against hidden test cases, all-or-nothing,
under a wall-clock timeout. `run_interactive` runs a submission the way the
practice page does: output and results are collected, a step ceiling stops
runaway loops, and passing every hidden case marks the problem complete.
"""

import enum
import io
import logging
import re
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from .config import Config
from .documents import Problem
from .evaluator import Interpreter, SchemeError, StepLimitExceeded
from .parser import parse_all
from .pipeline import preprocess
from .printer import display_value, racket_text, write_value
from .splitter import split_forms
from .store import Store, is_problem_completed, mark_problem_completed
from .structs import StructRegistry
from .types import VOID, CaseResult, GradingResult, TestSession

logger = logging.getLogger(__name__)

INCOMPLETE = "Incomplete code"
SYNTAX_ERROR = "Syntax error in code"
EXECUTION_ERROR = "Execution error"
TIMED_OUT = "Execution timed out"
STEP_LIMIT_MESSAGE = "Execution step limit exceeded"

_REQUIRED_FUNCTION_RE = re.compile(r"\(define\s+\(([^\s\)]+)")


class Stage(enum.Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    PRECODE = "evaluating precode"
    USER_CODE = "evaluating user code"
    RUNNING_CASES = "running cases"
    SCORING = "scoring"
    DONE = "done"
    FAILED = "failed"


class StepCeiling:
    """Step hook that aborts evaluation once `max_steps` is exceeded."""

    def __init__(self, max_steps: int):
        self.max_steps = max_steps

    def __call__(self, steps: int) -> None:
        if steps > self.max_steps:
            raise StepLimitExceeded(STEP_LIMIT_MESSAGE)


def is_incomplete(code: str) -> bool:
    """Empty source, or source still ending in a `...` placeholder."""
    text = code.strip()
    return not text or text.endswith("...") or text.endswith("...)")


def _all_failed(reason: str, total: int) -> GradingResult:
    return GradingResult(
        points=0,
        passed=0,
        total=total,
        results=tuple(CaseResult(False, reason) for _ in range(total)),
        reason=reason,
    )


class GradingRun:
    """One grading invocation against one fresh interpreter. Not reusable."""

    def __init__(self, interp: Interpreter, code: str, cases: list[str], *,
                 precode: str = "", max_points: float = 1, config: Config):
        self.interp = interp
        self.code = code
        self.cases = cases
        self.precode = precode
        self.max_points = max_points
        self.config = config
        self.registry = StructRegistry()
        self.stage = Stage.IDLE

    def _enter(self, stage: Stage) -> None:
        logger.debug("grading: %s -> %s", self.stage.value, stage.value)
        self.stage = stage

    def _fail(self, reason: str) -> GradingResult:
        self._enter(Stage.FAILED)
        return _all_failed(reason, len(self.cases))

    def _read(self, source: str) -> list:
        pre = preprocess(source, self.registry, max_iterations=self.config.max_rewrite_iterations)
        return parse_all(pre.full_source)

    def __call__(self) -> GradingResult:
        interp = self.interp
        session = interp.session

        self._enter(Stage.VALIDATING)
        if is_incomplete(self.code):
            return self._fail(INCOMPLETE)
        session.reset()

        if self.precode.strip():
            self._enter(Stage.PRECODE)
            try:
                for datum in self._read(self.precode):
                    interp.eval_datum(datum)
            except (SyntaxError, SchemeError) as e:
                logger.debug("precode failed: %s", e)
                return self._fail(EXECUTION_ERROR)

        self._enter(Stage.USER_CODE)
        try:
            data = self._read(self.code)
        except SyntaxError as e:
            logger.debug("user code rejected by reader: %s", e)
            return self._fail(SYNTAX_ERROR)
        try:
            for datum in data:
                interp.eval_datum(datum)
        except SchemeError as e:
            return self._fail(f"Code error: {e}")

        self._enter(Stage.RUNNING_CASES)
        # only hidden cases are counted
        session.reset()
        results = []
        for case in self.cases:
            passed, failed = session.passed, session.failed
            error = None
            try:
                for datum in self._read(case):
                    interp.eval_datum(datum)
            except (SyntaxError, SchemeError) as e:
                error = str(e)
            ok = error is None and session.passed > passed and session.failed == failed
            results.append(CaseResult(ok, error))

        self._enter(Stage.SCORING)
        total = len(self.cases)
        full = session.failed == 0 and session.passed == total
        result = GradingResult(
            points=self.max_points if full else 0,
            passed=session.passed,
            total=total,
            results=tuple(results),
        )
        self._enter(Stage.DONE)
        return result


def grade_code(
    code: str,
    hidden_cases: Iterable[str],
    *,
    precode: str = "",
    max_points: float = 1,
    config: Optional[Config] = None,
) -> GradingResult:
    """Grade `code` against `hidden_cases` (check-expect forms), all-or-nothing.

    Never raises for anything the submission does: incomplete code, syntax
    and runtime errors and timeouts all come back as a result with `reason`
    set.
    """
    config = config or Config()
    cases = list(hidden_cases)
    if is_incomplete(code):
        return _all_failed(INCOMPLETE, len(cases))
    if not cases:
        return GradingResult(points=0, passed=0, total=0)

    interp = Interpreter(output=io.StringIO(), max_depth=config.max_depth)
    run = GradingRun(interp, code, cases, precode=precode, max_points=max_points, config=config)
    future: Future = Future()

    def work() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(run())
        except BaseException as e:
            future.set_exception(e)

    threading.Thread(target=work, name="racketprep-grader", daemon=True).start()
    try:
        return future.result(timeout=config.grading_timeout)
    except FutureTimeout:
        interp.cancel()
        logger.debug("grading timed out after %.1fs in stage %s", config.grading_timeout, run.stage.value)
        return _all_failed(TIMED_OUT, len(cases))


# --- Interactive runs ---

@dataclass(frozen=True)
class OutputLine:
    kind: str  # "info" | "result" | "error" | "success"
    text: str


@dataclass
class RunReport:
    lines: list[OutputLine] = field(default_factory=list)
    passed: int = 0
    failed: int = 0
    completed: bool = False
    error: Optional[str] = None

    def add(self, kind: str, text: str) -> None:
        self.lines.append(OutputLine(kind, text))

    @property
    def text(self) -> str:
        return "\n".join(line.text for line in self.lines)


class _Transcript:
    """Output sink that turns printed text into report lines at form boundaries."""

    def __init__(self, report: RunReport):
        self.report = report
        self._buf: list[str] = []

    def __call__(self, text: str) -> None:
        if text:
            self._buf.append(text)

    def flush(self) -> bool:
        text = "".join(self._buf)
        self._buf.clear()
        if not text:
            return False
        self.report.add("info", racket_text(text.rstrip("\n")))
        return True


def summarize_tests(session: TestSession) -> Optional[str]:
    """Racket-style summary of the check-expect results, or None if nothing ran."""
    total = session.total
    if total == 0:
        return None
    if session.failed == 0:
        if total == 1:
            return "Your test passed!"
        if total == 2:
            return "Both your tests passed!"
        return f"All {total} tests passed!"
    parts = [f"{session.failed}/{total} tests failed! "]
    for failure in session.failures:
        within = f" ± {display_value(failure.tolerance)}" if failure.kind == "check-within" else ""
        parts.append(
            f"({failure.kind} ... ) expected {display_value(failure.expected)}{within}, "
            f"got {display_value(failure.actual)}; "
        )
    return racket_text("".join(parts).rstrip())


def required_functions(starter_code: str) -> list[str]:
    """Function the starter code asks for, from its first `(define (name ...`."""
    m = _REQUIRED_FUNCTION_RE.search(starter_code or "")
    return [m.group(1)] if m else []


def _defines(definitions: list[str], name: str) -> bool:
    return any(f"(define ({name}" in d or f"(define {name}" in d for d in definitions)


def run_interactive(
    code: str,
    *,
    problem: Optional[Problem] = None,
    store: Optional[Store] = None,
    config: Optional[Config] = None,
) -> RunReport:
    """Run `code` and collect what the user would see.

    Definitions run first, then the other forms in order, then the problem's
    hidden cases. The first error stops the run.
    """
    config = config or Config()
    report = RunReport()
    transcript = _Transcript(report)
    on_step = StepCeiling(config.max_steps) if config.max_steps is not None else None
    interp = Interpreter(output=transcript, on_step=on_step, max_depth=config.max_depth)

    try:
        pre = preprocess(code, StructRegistry(), max_iterations=config.max_rewrite_iterations)
        for definition in pre.struct_definitions:
            interp.evaluate(definition)
    except (SyntaxError, SchemeError) as e:
        report.error = str(e)
        report.add("error", f"Your code has an error: {e}")
        return report

    forms = split_forms(pre.source)
    if not forms:
        report.add("info", "No code to execute.")
        return report

    definitions = [f for f in forms if f.is_definition]

    if problem is not None:
        missing = [name for name in required_functions(problem.starter_code)
                   if not _defines([d.text for d in definitions], name)]
        for name in missing:
            report.add("error", f'Error: You must define the function "{name}" to complete this problem.')
            report.add("error", "Deleting the function definition is not allowed.")
        if missing:
            report.error = f"missing definition of {missing[0]}"
            return report

    hidden = list(problem.hidden_cases) if problem is not None else []
    ordered = [(f.text, True) for f in definitions]
    ordered += [(f.text, f.is_test) for f in forms if not f.is_definition]
    ordered += [(case, True) for case in hidden]
    had_output = False
    for text, is_quiet in ordered:
        try:
            result = interp.evaluate(text)
        except (SyntaxError, SchemeError) as e:
            transcript.flush()
            report.error = str(e)
            if isinstance(e, SyntaxError):
                report.add("error", f"Your code has a syntax error: {e}")
            else:
                report.add("error", f"Your code has an error: {e}")
            return report
        had_output = transcript.flush() or had_output
        if is_quiet:
            had_output = True
        elif result is not VOID:
            report.add("result", describe(result))
            had_output = True

    session = interp.session
    report.passed, report.failed = session.passed, session.failed
    summary = summarize_tests(session)
    if summary is not None:
        report.add("info", summary)

    if problem is not None and problem.id and hidden and session.failed == 0 and session.passed > 0:
        if store is None or not is_problem_completed(store, problem.id):
            if store is not None:
                mark_problem_completed(store, problem.id)
            report.completed = True
            report.add("success", "Congratulations! All hidden test cases passed!")
            report.add("success", "Problem automatically marked as complete.")

    if not had_output:
        report.add("info", "Code executed successfully.")
    return report


def describe(value: Any) -> str:
    """Racket-style rendering of a result value."""
    return racket_text(write_value(value))
