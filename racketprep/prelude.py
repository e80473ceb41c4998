"""Racket compatibility prelude, evaluated into every fresh interpreter."""

import logging

from .evaluator import SchemeError

logger = logging.getLogger(__name__)

PRELUDE = """
(define empty '())
(define true #t)
(define false #f)

(define (identity x) x)

(define (compose f g)
  (lambda (x) (f (g x))))

; Struct records are tagged lists: (name struct-instance v1 ... vn)
(define (make-struct-helper struct-name fields values)
  (cons struct-name (cons 'struct-instance values)))

(define (struct-predicate-helper struct-name obj)
  (and (pair? obj)
       (eq? (car obj) struct-name)
       (pair? (cdr obj))
       (eq? (cadr obj) 'struct-instance)))

(define (struct-accessor-helper obj index)
  (if (and (pair? obj)
           (pair? (cdr obj))
           (eq? (cadr obj) 'struct-instance))
      (list-ref (cddr obj) index)
      false))
"""


def load_prelude(interp) -> None:
    try:
        interp.evaluate(PRELUDE)
    except (SyntaxError, SchemeError) as e:
        logger.warning("could not load prelude: %s", e)
