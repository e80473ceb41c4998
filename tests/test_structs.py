import io

import pytest
from racketprep.evaluator import Interpreter
from racketprep.pipeline import preprocess
from racketprep.structs import (
    StructDescriptor,
    StructRegistry,
    expand_structs,
    parse_struct,
)


def evaluate(src):
    interp = Interpreter(output=io.StringIO())
    return interp.evaluate(preprocess(src).full_source)


def test_parse_struct():
    desc = parse_struct("(define-struct point (x y))")
    assert desc == StructDescriptor("point", ("x", "y"))
    assert desc.constructor == "make-point"
    assert desc.predicate == "point?"
    assert desc.accessor("y") == "point-y"


@pytest.mark.parametrize("form", [
    "(define-struct point)",
    "(define-struct (point) (x))",
    "(define-struct point x)",
    "(define-struct point '(x))",
])
def test_parse_struct_malformed(form):
    assert parse_struct(form) is None


def test_definitions_per_field():
    defs = StructDescriptor("point", ("x", "y")).definitions()
    assert len(defs) == 4
    assert defs[0].startswith("(define (make-point x y)")
    assert "(struct-accessor-helper obj 1)" in defs[3]


def test_form_replaced_with_placeholder():
    result = expand_structs("(define-struct point (x y))\n(point-x p)")
    assert result.source == "; define-struct point processed\n(point-x p)"
    assert len(result.definitions) == 4


def test_placeholder_does_not_swallow_same_line_code():
    result = expand_structs("(define-struct a (x)) (a-x q)")
    assert result.source.splitlines() == ["; define-struct a processed", " (a-x q)"]


def test_struct_in_string_untouched():
    src = '(display "(define-struct p (x))")'
    assert expand_structs(src).source == src


def test_registry_last_definition_wins():
    registry = StructRegistry()
    expand_structs("(define-struct p (x)) (define-struct p (x y))", registry)
    assert len(registry) == 1
    assert registry.get("p").fields == ("x", "y")
    assert "p" in registry


def test_accessor_roundtrip():
    assert evaluate("(define-struct point (x y)) (point-x (make-point 3 4))") == 3
    assert evaluate("(define-struct point (x y)) (point-y (make-point 3 4))") == 4


def test_predicate():
    assert evaluate("(define-struct point (x y)) (point? (make-point 3 4))") is True
    assert evaluate("(define-struct point (x y)) (point? (list 3 4))") is False


def test_predicate_distinguishes_structs():
    src = "(define-struct a (x)) (define-struct b (x)) (a? (make-b 1))"
    assert evaluate(src) is False


def test_accessor_on_non_struct_is_false():
    assert evaluate("(define-struct point (x y)) (point-x 5)") is False


def test_struct_used_before_definition_line():
    src = "(define (norm p) (+ (point-x p) (point-y p)))\n(define-struct point (x y))\n(norm (make-point 1 2))"
    assert evaluate(src) == 3
