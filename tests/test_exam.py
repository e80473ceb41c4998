import json

import pytest
from racketprep.documents import Exam
from racketprep.exam import (
    Answer,
    answered_count,
    grade_exam,
    letter_grade,
    load_answers,
    save_answers,
    verify_text_answer,
)
from racketprep.harness import INCOMPLETE
from racketprep.store import MemoryStore, exam_key

EXAM = Exam.from_dict({
    "id": "quiz",
    "totalPoints": 6,
    "content": [
        {
            "type": "question",
            "prompt": "single-line-textbox",
            "points": 1,
            "verification": "(define (t a) (string=? a \"empty\"))",
        },
        {"type": "section", "content": [
            {
                "type": "question",
                "prompt": "code",
                "points": 5,
                "hiddenCases": ["(check-expect (inc 1) 2)", "(check-expect (inc 9) 10)"],
            },
        ]},
    ],
})


@pytest.mark.parametrize("percentage,grade", [
    (100, "A"), (90, "A"), (89, "B"), (80, "B"), (75, "C"), (60, "D"), (59, "F"), (0, "F"),
])
def test_letter_grade(percentage, grade):
    assert letter_grade(percentage) == grade


class TestVerifyTextAnswer:
    def test_true_gives_full_points(self):
        assert verify_text_answer("(define (t a) #t)", "x", 3) == 3

    def test_false_gives_zero(self):
        assert verify_text_answer("(define (t a) #f)", "x", 3) == 0

    def test_number_is_points_capped(self):
        assert verify_text_answer("(define (t a) 2)", "x", 3) == 2
        assert verify_text_answer("(define (t a) 7)", "x", 3) == 3

    def test_answer_is_trimmed(self):
        assert verify_text_answer('(define (t a) (string=? a "42"))', "  42 ", 1) == 1

    def test_empty_answer_scores_zero(self):
        assert verify_text_answer("(define (t a) #t)", "   ", 1) == 0

    def test_missing_verification_scores_zero(self):
        assert verify_text_answer(None, "x", 1) == 0

    def test_broken_verification_scores_zero(self):
        assert verify_text_answer("(define (t a) (car a))", "x", 1) == 0
        assert verify_text_answer("(define (t a)", "x", 1) == 0
        assert verify_text_answer("(define (u a) #t)", "x", 1) == 0


def test_grade_exam_full_marks():
    store = MemoryStore()
    answers = {
        1: Answer.text("empty"),
        2: Answer.code_answer("(define (inc x) (+ x 1))"),
    }
    result = grade_exam(EXAM, answers, store=store)
    assert result.score == 6
    assert result.total_points == 6
    assert result.percentage == 100
    assert result.grade == "A"
    assert result.correct_count == 2
    assert result.question_count == 2
    assert store.get(exam_key("quiz", "completed")) == "true"
    assert store.get(exam_key("quiz", "score")) == "6"


def test_grade_exam_partial():
    answers = {1: Answer.text("empty"), 2: Answer.code_answer("(define (inc x) 2)")}
    result = grade_exam(EXAM, answers)
    assert result.score == 1
    assert result.percentage == 17
    assert result.grade == "F"
    code_result = result.questions[1]
    assert code_result.grading.passed == 1
    assert code_result.grading.total == 2


def test_unanswered_code_question_is_incomplete():
    result = grade_exam(EXAM, {})
    assert result.score == 0
    assert result.questions[1].grading.reason == INCOMPLETE


def test_total_points_defaults_to_question_sum():
    exam = Exam.from_dict({"id": "x", "content": [
        {"type": "question", "prompt": "single-line-textbox", "points": 2, "verification": "(define (t a) #t)"},
    ]})
    result = grade_exam(exam, {1: Answer.text("yes")})
    assert (result.score, result.total_points, result.percentage) == (2, 2, 100)


def test_answered_count():
    answers = {
        1: Answer.text(""),
        2: Answer.code_answer("  \n"),
        7: Answer.text("stray"),
    }
    assert answered_count(EXAM, answers) == 0
    answers[2] = Answer.code_answer("(define (inc x) x)")
    assert answered_count(EXAM, answers) == 1


def test_save_and_load_answers():
    store = MemoryStore()
    answers = {1: Answer.text("empty"), 2: Answer.code_answer("(define (inc x) x)"), 3: Answer.text("extra")}
    save_answers(store, EXAM, answers)
    saved = json.loads(store.get(exam_key("quiz", "answers")))
    assert saved == {
        "1": {"type": "text", "answer": "empty"},
        "2": {"type": "code", "code": "(define (inc x) x)"},
    }
    assert load_answers(store, EXAM) == {1: answers[1], 2: answers[2]}


def test_load_answers_drops_out_of_range():
    store = MemoryStore({exam_key("quiz", "answers"): json.dumps({
        "1": {"type": "text", "answer": "a"},
        "9": {"type": "text", "answer": "b"},
    })})
    assert list(load_answers(store, EXAM)) == [1]


def test_load_answers_corrupt(caplog):
    store = MemoryStore({exam_key("quiz", "answers"): "{oops"})
    assert load_answers(store, EXAM) == {}
    assert "ignoring saved answers" in caplog.text
