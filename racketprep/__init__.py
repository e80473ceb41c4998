from .parser import parse, parse_all
from .evaluator import Interpreter, SchemeError, StepLimitExceeded
from .splitter import split_expressions, split_forms
from .pipeline import preprocess
from .harness import grade_code, run_interactive
from .exam import grade_exam
from .config import Config

__all__ = [
    "parse", "parse_all", "Interpreter", "SchemeError", "StepLimitExceeded",
    "split_expressions", "split_forms", "preprocess", "grade_code",
    "run_interactive", "grade_exam", "Config",
]
