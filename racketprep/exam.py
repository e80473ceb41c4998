"""Exam grading: code questions through the harness, text questions by verification snippet."""

import json
import logging
import math
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Any, Mapping, Optional

from .config import Config
from .documents import ContentItem, Exam
from .evaluator import Interpreter, SchemeError
from .harness import StepCeiling, grade_code
from .primitives import is_number
from .store import Store, exam_key
from .types import GradingResult

logger = logging.getLogger(__name__)

GRADE_THRESHOLDS = ((90, "A"), (80, "B"), (70, "C"), (60, "D"))


@dataclass
class Answer:
    """A saved answer: `code` for code questions, `answer` for text questions."""

    type: str  # "code" | "text"
    code: str = ""
    answer: str = ""

    @property
    def is_code(self) -> bool:
        return self.type == "code"

    @property
    def answered(self) -> bool:
        return bool(self.code.strip()) if self.is_code else self.answer != ""

    def to_dict(self) -> dict[str, str]:
        if self.is_code:
            return {"type": "code", "code": self.code}
        return {"type": self.type, "answer": self.answer}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Answer":
        kind = str(data.get("type", "text"))
        if kind == "code":
            return cls(kind, code=str(data.get("code") or ""))
        return cls(kind, answer=str(data.get("answer") or "").strip())

    @classmethod
    def text(cls, answer: str) -> "Answer":
        return cls("text", answer=answer.strip())

    @classmethod
    def code_answer(cls, code: str) -> "Answer":
        return cls("code", code=code)


@dataclass(frozen=True)
class QuestionResult:
    number: int
    points: float
    max_points: float
    grading: Optional[GradingResult] = None

    @property
    def correct(self) -> bool:
        return self.points > 0


@dataclass(frozen=True)
class ExamResult:
    score: float
    total_points: float
    percentage: int
    correct_count: int
    question_count: int
    questions: tuple[QuestionResult, ...] = field(default_factory=tuple)

    @property
    def grade(self) -> str:
        return letter_grade(self.percentage)


def letter_grade(percentage: float) -> str:
    for threshold, letter in GRADE_THRESHOLDS:
        if percentage >= threshold:
            return letter
    return "F"


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _plain(n: Any) -> Any:
    if isinstance(n, Fraction):
        return n.numerator if n.denominator == 1 else float(n)
    return n


def verify_text_answer(
    verification: Optional[str],
    answer: str,
    max_points: float = 1,
    *,
    config: Optional[Config] = None,
) -> float:
    """Points for a text answer.

    `verification` must define a one-argument procedure `t`, which is applied
    to the trimmed answer. A number is taken as the points (capped at
    `max_points`), a true result gives full points, anything else gives 0.
    """
    answer = answer.strip()
    if not verification or not answer:
        return 0
    config = config or Config()
    on_step = StepCeiling(config.max_steps) if config.max_steps is not None else None
    interp = Interpreter(output=lambda text: None, on_step=on_step, max_depth=config.max_depth)
    try:
        interp.evaluate(verification)
        result = interp.apply(interp.lookup("t"), [answer])
    except (SyntaxError, SchemeError, RecursionError) as e:
        logger.debug("verification failed: %s", e)
        return 0
    if result is True:
        return max_points
    if is_number(result):
        return max(0, min(_plain(result), max_points))
    return 0


def grade_question(question: ContentItem, answer: Optional[Answer], *,
                   config: Optional[Config] = None) -> QuestionResult:
    if question.is_code:
        code = answer.code if answer is not None and answer.is_code else ""
        result = grade_code(
            code,
            question.hidden_cases,
            precode=question.precode,
            max_points=question.points,
            config=config,
        )
        return QuestionResult(question.number, result.points, question.points, result)
    text = answer.answer if answer is not None and not answer.is_code else ""
    points = verify_text_answer(question.verification, text, question.points, config=config)
    return QuestionResult(question.number, points, question.points)


def _format_score(score: float) -> str:
    return str(int(score)) if float(score).is_integer() else str(score)


def grade_exam(
    exam: Exam,
    answers: Mapping[int, Answer],
    *,
    store: Optional[Store] = None,
    config: Optional[Config] = None,
) -> ExamResult:
    """Grade every question in order, one at a time, each on a fresh interpreter."""
    questions = exam.questions()
    results = []
    for question in questions:
        result = grade_question(question, answers.get(question.number), config=config)
        logger.debug("exam %s question %d: %s/%s", exam.id, question.number, result.points, result.max_points)
        results.append(result)

    score = sum(r.points for r in results)
    total = exam.total_points or sum(q.points for q in questions)
    percentage = _round_half_up(score / total * 100) if total > 0 else 0
    exam_result = ExamResult(
        score=score,
        total_points=total,
        percentage=percentage,
        correct_count=sum(1 for r in results if r.correct),
        question_count=len(questions),
        questions=tuple(results),
    )
    if store is not None:
        store.set(exam_key(exam.id, "completed"), "true")
        store.set(exam_key(exam.id, "score"), _format_score(score))
    return exam_result


def answered_count(exam: Exam, answers: Mapping[int, Answer]) -> int:
    count = exam.question_count
    return sum(1 for n, a in answers.items() if 1 <= n <= count and a.answered)


def save_answers(store: Store, exam: Exam, answers: Mapping[int, Answer]) -> None:
    count = exam.question_count
    data = {str(n): a.to_dict() for n, a in sorted(answers.items()) if 1 <= n <= count}
    store.set(exam_key(exam.id, "answers"), json.dumps(data))


def load_answers(store: Store, exam: Exam) -> dict[int, Answer]:
    """Saved answers for `exam`; answers to questions it no longer has are dropped."""
    raw = store.get(exam_key(exam.id, "answers"))
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("ignoring saved answers for exam %s: %s", exam.id, e)
        return {}
    return parse_answers(data, exam.question_count)


def parse_answers(data: Any, question_count: Optional[int] = None) -> dict[int, Answer]:
    """Answers from a `{"<number>": {"type": ..., ...}}` mapping."""
    if not isinstance(data, dict):
        logger.warning("answers must be a JSON object, got %s", type(data).__name__)
        return {}
    out = {}
    for key, value in data.items():
        try:
            number = int(key)
        except ValueError:
            logger.debug("skipping answer with key %r", key)
            continue
        if question_count is not None and not 1 <= number <= question_count:
            continue
        if isinstance(value, dict):
            out[number] = Answer.from_dict(value)
        elif isinstance(value, str):
            out[number] = Answer.text(value)
    return out
