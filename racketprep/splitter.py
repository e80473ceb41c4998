"""Split source into top-level forms and classify them."""

import enum
import logging
import re
from dataclasses import dataclass

from .scanner import OPENERS, PREFIXES, Scanner, State

logger = logging.getLogger(__name__)

LAMBDA_GLYPH = "λ"

_DEFINITION_RE = re.compile(r"^\(define[\s-]")
_TEST_RE = re.compile(r"^\(check-(?:expect|within)[\s)]")


class FormKind(enum.Enum):
    DEFINITION = "definition"
    TEST = "test"
    OTHER = "other"


@dataclass(frozen=True)
class Form:
    text: str
    kind: FormKind

    @property
    def is_definition(self) -> bool:
        return self.kind is FormKind.DEFINITION

    @property
    def is_test(self) -> bool:
        return self.kind is FormKind.TEST


def replace_lambda_glyph(text: str) -> str:
    return text.replace(LAMBDA_GLYPH, "lambda")


def classify(text: str) -> FormKind:
    text = text.strip()
    if _DEFINITION_RE.match(text):
        return FormKind.DEFINITION
    if _TEST_RE.match(text):
        return FormKind.TEST
    return FormKind.OTHER


def _pending_atom(buf: list[str]) -> bool:
    text = "".join(buf).strip()
    return bool(text) and bool(text.strip(PREFIXES + " \t\r\n"))


def split_expressions(source: str) -> list[str]:
    """Top-level forms of `source`, in order, trimmed.

    Comment text is dropped. Text still open at end of input is dropped.
    """
    forms: list[str] = []
    buf: list[str] = []

    def emit() -> None:
        text = "".join(buf).strip()
        if text:
            forms.append(replace_lambda_glyph(text))
        buf.clear()

    scanner = Scanner()
    for ch in source:
        was_string = scanner.in_string
        before = scanner.depth
        state = scanner.feed(ch)
        top_level = before == 0 and not was_string
        if state is State.COMMENT:
            if top_level and _pending_atom(buf):
                emit()
            if ch == "\n" and buf:
                buf.append(ch)
            continue
        if top_level and _pending_atom(buf) and (ch.isspace() or ch in OPENERS or ch == '"'):
            # an atom at top level ends where the next form begins
            emit()
        buf.append(ch)
        if before > 0 and scanner.depth == 0 and state is State.NORMAL:
            emit()
        elif was_string and not scanner.in_string and scanner.depth == 0:
            emit()

    if scanner.depth == 0 and not scanner.in_string:
        emit()
    elif "".join(buf).strip():
        logger.debug("dropping unterminated form at end of input (depth %d)", scanner.depth)
    return forms


def split_forms(source: str) -> list[Form]:
    return [Form(text, classify(text)) for text in split_expressions(source)]
