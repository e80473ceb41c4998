import pytest
from racketprep.config import Config
from racketprep.documents import Problem
from racketprep.harness import (
    EXECUTION_ERROR,
    INCOMPLETE,
    SYNTAX_ERROR,
    TIMED_OUT,
    grade_code,
    is_incomplete,
    required_functions,
    run_interactive,
    summarize_tests,
)
from racketprep.store import MemoryStore, is_problem_completed, problem_key
from racketprep.types import Failure, TestSession

DOUBLE = "(define (double x) (* 2 x))"
CASES = ["(check-expect (double 2) 4)", "(check-expect (double 5) 10)"]


def kinds(report):
    return [line.kind for line in report.lines]


def texts(report):
    return [line.text for line in report.lines]


class TestGradeCode:
    def test_all_cases_pass(self):
        result = grade_code(DOUBLE, CASES, max_points=5)
        assert result.points == 5
        assert result.passed == 2
        assert result.total == 2
        assert all(r.passed for r in result.results)
        assert result.reason is None

    def test_partial_pass_scores_zero(self):
        result = grade_code("(define (double x) (if (= x 2) 4 0))", CASES, max_points=5)
        assert result.to_dict() == {
            "points": 0,
            "passed": 1,
            "total": 2,
            "results": [{"passed": True}, {"passed": False}],
        }

    @pytest.mark.parametrize("code", ["", "   \n", "(define (double x) ...)", "..."])
    def test_incomplete_code(self, code):
        result = grade_code(code, CASES)
        assert result.points == 0
        assert result.reason == INCOMPLETE
        assert [r.error for r in result.results] == [INCOMPLETE, INCOMPLETE]

    def test_incomplete_without_cases(self):
        assert grade_code("", []).reason == INCOMPLETE

    def test_no_cases(self):
        result = grade_code(DOUBLE, [])
        assert (result.points, result.passed, result.total) == (0, 0, 0)

    def test_syntax_error(self):
        result = grade_code("(define (double x) (* 2 x)]", CASES)
        assert result.reason == SYNTAX_ERROR
        assert result.points == 0

    def test_runtime_error_in_user_code(self):
        result = grade_code("(define y (car '()))", CASES)
        assert result.reason.startswith("Code error: ")
        assert "car" in result.reason

    def test_case_error_does_not_stop_other_cases(self):
        cases = ["(check-expect (double 'a) 4)", "(check-expect (double 5) 10)"]
        result = grade_code(DOUBLE, cases)
        assert result.points == 0
        assert result.passed == 1
        assert not result.results[0].passed
        assert "contract violation" in result.results[0].error
        assert result.results[1].passed

    def test_user_tests_do_not_count(self):
        code = DOUBLE + "\n(check-expect (double 1) 3)\n(check-expect (double 1) 2)"
        assert grade_code(code, CASES).points == 1

    def test_precode_is_available(self):
        result = grade_code("(define (area r) (* pi r r))", ["(check-expect (area 1) 3)"],
                            precode="(define pi 3)")
        assert result.points == 1

    def test_precode_failure(self):
        result = grade_code(DOUBLE, CASES, precode="(car 1)")
        assert result.reason == EXECUTION_ERROR

    def test_struct_in_precode_usable_by_user_code(self):
        precode = "(define-struct point (x y))"
        code = "(define (sum-point p) (+ (point-x p) (point-y p)))"
        assert grade_code(code, ["(check-expect (sum-point (make-point 1 2)) 3)"],
                          precode=precode).points == 1

    def test_extended_forms_in_user_code(self):
        code = """
        (define (len l)
          (local [(define (go l acc)
                    (match l
                      ['() acc]
                      [(cons _ r) (go r (add1 acc))]))]
            (go l 0)))
        """
        assert grade_code(code, ["(check-expect (len (list 1 2 3)) 3)"]).points == 1

    def test_timeout(self):
        code = "(define (spin n) (spin (+ n 1))) (spin 0)"
        result = grade_code(code, CASES, config=Config(grading_timeout=0.2))
        assert result.reason == TIMED_OUT
        assert [r.error for r in result.results] == [TIMED_OUT, TIMED_OUT]

    def test_deterministic(self):
        code = "(define (double x) (if (= x 2) 4 0))"
        assert grade_code(code, CASES) == grade_code(code, CASES)

    def test_unclosed_form_is_a_syntax_error(self):
        result = grade_code("(define (double x) (* 2 x)", CASES)
        assert result.reason == SYNTAX_ERROR
        assert result.points == 0
        assert [r.error for r in result.results] == [SYNTAX_ERROR, SYNTAX_ERROR]

    def test_extra_closing_paren_is_a_syntax_error(self):
        result = grade_code(DOUBLE + ")", CASES)
        assert result.reason == SYNTAX_ERROR
        assert result.points == 0

    def test_unclosed_trailing_form_is_a_syntax_error(self):
        assert grade_code(DOUBLE + "\n(define (junk", CASES).reason == SYNTAX_ERROR

    def test_long_structural_recursion(self):
        code = "(define (sum l) (if (empty? l) 0 (+ (first l) (sum (rest l)))))"
        result = grade_code(code, ["(check-expect (sum (range 600)) 179700)"])
        assert result.reason is None
        assert result.points == 1


def test_is_incomplete():
    assert is_incomplete("  ")
    assert is_incomplete("(define (f x) ...)")
    assert not is_incomplete("(define (f x) x)")


def test_required_functions():
    assert required_functions("(define (sum-list l)\n  ...)") == ["sum-list"]
    assert required_functions("; write your code") == []


def test_summary_messages():
    session = TestSession()
    assert summarize_tests(session) is None
    session.record_pass()
    assert summarize_tests(session) == "Your test passed!"
    session.record_pass()
    assert summarize_tests(session) == "Both your tests passed!"
    session.record_pass()
    assert summarize_tests(session) == "All 3 tests passed!"


def test_summary_lists_failures():
    session = TestSession()
    session.record_pass()
    session.record_failure(Failure("check-expect", 1, 2))
    session.record_failure(Failure("check-within", 1.5, 1, 0.1))
    assert summarize_tests(session) == (
        "2/3 tests failed! (check-expect ... ) expected 2, got 1; "
        "(check-within ... ) expected 1 ± 0.1, got 1.5;"
    )


class TestRunInteractive:
    def make_problem(self, **overrides):
        fields = dict(id="double", starter_code="(define (double x)\n  ...)", hidden_cases=tuple(CASES))
        fields.update(overrides)
        return Problem(**fields)

    def test_results_and_output(self):
        report = run_interactive('(display "hi")\n(+ 1 2)\n(list 1 #t)\n(define x 1)')
        assert texts(report) == ["hi", "3", "(1 true)"]
        assert kinds(report) == ["info", "result", "result"]

    def test_empty_list_shown_as_empty(self):
        assert texts(run_interactive("'()")) == ["empty"]

    def test_no_code(self):
        assert texts(run_interactive("; nothing")) == ["No code to execute."]

    def test_definitions_only(self):
        assert texts(run_interactive(DOUBLE)) == []

    def test_void_only_reports_success(self):
        assert texts(run_interactive("(void)")) == ["Code executed successfully."]

    def test_definitions_run_first(self):
        report = run_interactive("(double 4)\n" + DOUBLE)
        assert texts(report) == ["8"]

    def test_error_stops_run(self):
        report = run_interactive("(display 1)\n(car '())\n(display 2)")
        assert report.error is not None
        assert texts(report)[0] == "1"
        assert report.lines[-1].kind == "error"
        assert report.lines[-1].text.startswith("Your code has an error: car")

    def test_step_limit(self):
        report = run_interactive("(define (spin n) (spin (+ n 1)))\n(spin 0)", config=Config(max_steps=5000))
        assert report.error == "Execution step limit exceeded"

    def test_step_limit_on_non_tail_loop(self):
        report = run_interactive("(define (f x) (+ 1 (f x)))\n(f 1)", config=Config(max_steps=100_000))
        assert report.error == "Execution step limit exceeded"

    def test_test_summary(self):
        report = run_interactive(DOUBLE + "\n(check-expect (double 1) 2)\n(check-expect (double 2) 4)")
        assert texts(report) == ["Both your tests passed!"]
        assert (report.passed, report.failed) == (2, 0)

    def test_struct_output_hides_marker(self):
        report = run_interactive("(define-struct p (x))\n(make-p 1)")
        assert texts(report) == ["(p 1)"]

    def test_hidden_cases_mark_completed(self):
        store = MemoryStore()
        report = run_interactive(DOUBLE, problem=self.make_problem(), store=store)
        assert report.completed
        assert is_problem_completed(store, "double")
        assert store.get(problem_key("double", "completed")) == "true"
        assert "Congratulations! All hidden test cases passed!" in texts(report)

    def test_already_completed_is_quiet(self):
        store = MemoryStore({problem_key("double", "completed"): "true"})
        report = run_interactive(DOUBLE, problem=self.make_problem(), store=store)
        assert not report.completed
        assert "Problem automatically marked as complete." not in texts(report)

    def test_failing_hidden_case_not_completed(self):
        store = MemoryStore()
        report = run_interactive("(define (double x) x)", problem=self.make_problem(), store=store)
        assert not report.completed
        assert report.failed == 2
        assert not is_problem_completed(store, "double")
        assert texts(report)[-1].startswith("2/2 tests failed!")

    def test_missing_required_function(self):
        report = run_interactive("(define (triple x) (* 3 x))", problem=self.make_problem())
        assert texts(report) == [
            'Error: You must define the function "double" to complete this problem.',
            "Deleting the function definition is not allowed.",
        ]
        assert report.error is not None
