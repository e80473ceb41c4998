from fractions import Fraction
import io

import pytest
from racketprep.evaluator import Interpreter, SchemeError, UserError
from racketprep.printer import write_value
from racketprep.types import NIL, VOID, Pair


def run(src, **kwargs):
    return Interpreter(output=io.StringIO(), **kwargs).evaluate(src)


def show(src):
    return write_value(run(src))


# --- Arithmetic ---

def test_add():
    assert run("(+ 1 2 3)") == 6


def test_exact_division():
    assert run("(/ 1 3)") == Fraction(1, 3)
    assert run("(/ 6 3)") == 2


def test_float_contagion():
    assert run("(+ 1 0.5)") == 1.5


def test_divide_by_zero():
    with pytest.raises(SchemeError, match="/"):
        run("(/ 1 0)")


def test_contract_violation():
    with pytest.raises(SchemeError, match="contract violation"):
        run('(+ 1 "a")')


# --- Logical ---

def test_and_all_true():
    assert run("(and #t #t #t)") is True


def test_and_returns_last_value():
    assert run("(and 1 2)") == 2


def test_or_one_true():
    assert run("(or #f 3 #f)") == 3


def test_only_false_is_false():
    assert run("(if '() 1 2)") == 1
    assert run("(if 0 1 2)") == 1


def test_not():
    assert run("(not #f)") is True
    assert run("(not 0)") is False


# --- Binding forms ---

def test_define_and_call():
    assert run("(define (sq x) (* x x)) (sq 7)") == 49


def test_define_returns_void():
    assert run("(define x 1)") is VOID


def test_let_star_sees_earlier_bindings():
    assert run("(let* ([a 1] [b (+ a 1)]) (* a b))") == 2


def test_letrec_mutual_recursion():
    src = """
    (letrec ([ev? (lambda (n) (if (= n 0) #t (od? (- n 1))))]
             [od? (lambda (n) (if (= n 0) #f (ev? (- n 1))))])
      (ev? 10))
    """
    assert run(src) is True


def test_named_let():
    assert run("(let loop ([i 0] [acc 0]) (if (> i 4) acc (loop (+ i 1) (+ acc i))))") == 10


def test_rest_args():
    assert show("(define (f a . more) more) (f 1 2 3)") == "(2 3)"


def test_set_bang():
    assert run("(define x 1) (set! x 5) x") == 5


def test_cond_else():
    assert run("(cond [(= 1 2) 'a] [else 'b])").name == "b"


def test_case():
    assert run("(case 3 [(1 2) 'low] [(3 4) 'mid] [else 'high])").name == "mid"


def test_lambda_glyph():
    assert run("((λ (x) (+ x 1)) 1)") == 2


def test_unbound_variable():
    with pytest.raises(SchemeError, match="undefined"):
        run("nope")


def test_arity_mismatch():
    with pytest.raises(SchemeError, match="arity mismatch"):
        run("(define (f x) x) (f 1 2)")


def test_not_a_procedure():
    with pytest.raises(SchemeError, match="not a procedure"):
        run("(1 2)")


def test_user_error():
    with pytest.raises(UserError, match="boom"):
        run('(error "boom")')


# --- Lists ---

def test_quote_list():
    value = run("'(1 2 3)")
    assert isinstance(value, Pair)
    assert list(value) == [1, 2, 3]


def test_empty_list():
    assert run("empty") is NIL


def test_map_filter_foldl():
    assert show("(map (lambda (x) (* x 2)) '(1 2 3))") == "(2 4 6)"
    assert show("(filter odd? '(1 2 3 4 5))") == "(1 3 5)"
    assert run("(foldl + 0 '(1 2 3 4))") == 10


def test_foldr_builds_in_order():
    assert show("(foldr cons '() '(1 2 3))") == "(1 2 3)"


def test_member_returns_boolean():
    assert run("(member 2 '(1 2 3))") is True
    assert run("(member 5 '(1 2 3))") is False


def test_remove_removes_every_occurrence():
    assert show("(remove 1 '(1 2 1 3))") == "(2 3)"


def test_sort():
    assert show("(sort '(3 1 2) <)") == "(1 2 3)"


def test_dotted_pair_rendering():
    assert show("(cons 1 2)") == "(1 . 2)"


def test_equal_is_structural():
    assert run("(equal? (list 1 (list 2)) '(1 (2)))") is True
    assert run("(eq? (list 1) (list 1))") is False


# --- Output ---

def test_display_and_newline():
    out = io.StringIO()
    Interpreter(output=out).evaluate('(display "hi") (newline) (write "hi")')
    assert out.getvalue() == 'hi\n"hi"'


def test_output_callable():
    chunks = []
    Interpreter(output=chunks.append).evaluate("(display 42)")
    assert chunks == ["42"]


def test_printf():
    out = io.StringIO()
    Interpreter(output=out).evaluate('(printf "~a and ~s~n" "x" "y")')
    assert out.getvalue() == 'x and "y"\n'


# --- Tests ---

def test_check_expect_records():
    interp = Interpreter(output=io.StringIO())
    interp.evaluate("(check-expect (+ 1 1) 2) (check-expect 1 2)")
    assert interp.session.passed == 1
    assert interp.session.failed == 1
    failure = interp.session.failures[0]
    assert failure.kind == "check-expect"
    assert failure.actual == 1 and failure.expected == 2


def test_check_within_honours_tolerance():
    interp = Interpreter(output=io.StringIO())
    interp.evaluate("(check-within 1.05 1 0.1) (check-within 1.5 1 0.1)")
    assert interp.session.passed == 1
    assert interp.session.failed == 1
    assert interp.session.failures[0].tolerance == 0.1


def test_reset_test_results():
    interp = Interpreter(output=io.StringIO())
    interp.evaluate("(check-expect 1 1) (reset-test-results)")
    assert interp.session.total == 0


def test_host_define_and_lookup():
    interp = Interpreter(output=io.StringIO())
    interp.define("triple", lambda x: x * 3)
    assert interp.evaluate("(triple 4)") == 12
    assert interp.lookup("true") is True
