import pytest
from racketprep.splitter import FormKind, classify, split_expressions, split_forms


def test_splits_top_level_forms():
    src = "(define x 1)\n(+ x 2)\n"
    assert split_expressions(src) == ["(define x 1)", "(+ x 2)"]


def test_multiline_form_is_one_expression():
    src = "(define (f x)\n  (* x\n     2))\n(f 3)"
    assert split_expressions(src) == ["(define (f x)\n  (* x\n     2))", "(f 3)"]


def test_comments_dropped():
    src = "; header\n(f 1) ; trailing\n; (g 2)\n"
    assert split_expressions(src) == ["(f 1)"]


def test_comment_inside_form_keeps_line_break():
    src = "(f 1 ; one\n 2)"
    (form,) = split_expressions(src)
    assert "one" not in form
    assert form.startswith("(f 1") and form.endswith("2)")
    assert "\n" in form


def test_parens_inside_strings_ignored():
    src = '(display ")(")\n(g)'
    assert split_expressions(src) == ['(display ")(")', "(g)"]


def test_top_level_atoms_and_strings():
    assert split_expressions('x 42 "hi" (f)') == ["x", "42", '"hi"', "(f)"]


def test_quoted_datum_stays_together():
    assert split_expressions("'(1 2) 'a") == ["'(1 2)", "'a"]


def test_unterminated_form_dropped():
    assert split_expressions("(f 1)\n(g (h 2)") == ["(f 1)"]


def test_lambda_glyph_replaced():
    assert split_expressions("(map (λ (x) x) l)") == ["(map (lambda (x) x) l)"]


def test_reassembly_keeps_every_form():
    src = "(define a 1)\n\n(define (b) a)\n(check-expect (b) 1)\n"
    forms = split_expressions(src)
    assert "\n".join(forms) == src.strip().replace("\n\n", "\n")


@pytest.mark.parametrize("text,kind", [
    ("(define x 1)", FormKind.DEFINITION),
    ("(define-struct p (x))", FormKind.DEFINITION),
    ("(check-expect 1 1)", FormKind.TEST),
    ("(check-within 1 1 0.1)", FormKind.TEST),
    ("(defined? x)", FormKind.OTHER),
    ("(check-expected 1)", FormKind.OTHER),
    ("(+ 1 2)", FormKind.OTHER),
])
def test_classify(text, kind):
    assert classify(text) is kind


def test_split_forms_classifies():
    forms = split_forms("(define x 1) (check-expect x 1) x")
    assert [f.kind for f in forms] == [FormKind.DEFINITION, FormKind.TEST, FormKind.OTHER]
    assert forms[0].is_definition and forms[1].is_test
