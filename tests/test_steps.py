import io

import pytest
from racketprep.evaluator import (
    DepthExceeded,
    ExecutionCancelled,
    Interpreter,
    SchemeError,
    StepLimitExceeded,
)
from racketprep.harness import StepCeiling

LOOP = "(define (spin n) (spin (+ n 1))) (spin 0)"


def make_interp(**kwargs):
    return Interpreter(output=io.StringIO(), **kwargs)


def test_step_budget_exceeded():
    interp = make_interp(on_step=StepCeiling(1000))
    with pytest.raises(StepLimitExceeded, match="step limit exceeded"):
        interp.evaluate(LOOP)


def test_step_budget_sufficient():
    interp = make_interp(on_step=StepCeiling(10_000))
    assert interp.evaluate("(+ 1 2)") == 3


def test_prelude_steps_not_counted():
    interp = make_interp()
    assert interp.steps == 0
    interp.evaluate("(+ 1 2)")
    assert 0 < interp.steps < 10


def test_step_hook_sees_running_count():
    seen = []
    make_interp(on_step=seen.append).evaluate("(+ 1 2)")
    assert seen == list(range(1, len(seen) + 1))


def test_tail_calls_do_not_grow_depth():
    interp = make_interp(max_depth=50)
    src = "(define (count n) (if (= n 0) 'done (count (- n 1)))) (count 5000)"
    assert interp.evaluate(src).name == "done"


def test_structural_recursion_over_long_list():
    src = "(define (sum l) (if (empty? l) 0 (+ (first l) (sum (rest l))))) (sum (range 1000))"
    assert make_interp().evaluate(src) == 499500


def test_map_over_long_list_with_recursive_callback():
    src = "(define (down n) (if (= n 0) 0 (+ 1 (down (- n 1))))) (foldl + 0 (map down (list 2000 3000)))"
    assert make_interp().evaluate(src) == 5000


def test_step_ceiling_not_charged_for_prelude():
    interp = make_interp(on_step=StepCeiling(5))
    assert interp.evaluate("3") == 3


def test_non_tail_loop_hits_step_limit():
    interp = make_interp(on_step=StepCeiling(100_000))
    with pytest.raises(StepLimitExceeded):
        interp.evaluate("(define (f x) (+ 1 (f x))) (f 1)")


def test_deep_recursion_hits_depth_limit():
    interp = make_interp(max_depth=100)
    with pytest.raises(DepthExceeded, match="depth"):
        interp.evaluate("(define (down n) (if (= n 0) 0 (+ 1 (down (- n 1))))) (down 1000)")


def test_depth_limit_is_a_scheme_error():
    assert issubclass(DepthExceeded, SchemeError)
    assert issubclass(StepLimitExceeded, SchemeError)


def test_cancel_stops_next_step():
    interp = make_interp()
    interp.cancel()
    with pytest.raises(ExecutionCancelled):
        interp.evaluate("(+ 1 2)")


def test_error_propagation_in_and():
    with pytest.raises(SchemeError, match="undefined"):
        make_interp().evaluate("(and #t (bogus))")


def test_error_propagation_in_or():
    with pytest.raises(SchemeError, match="undefined"):
        make_interp().evaluate("(or #f (bogus))")
