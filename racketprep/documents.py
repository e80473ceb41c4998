"""Problem and exam documents loaded from JSON.

Field names follow the JSON files (`starterCode`, `hiddenCases`,
`totalPoints`); unknown fields are ignored.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Optional, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

CONTENT_TYPES = ("text", "code", "section", "question")
TEXT_PROMPT = "single-line-textbox"
CODE_PROMPT = "code"


def _read_json(path: PathLike) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _strings(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


# --- Problems ---

@dataclass(frozen=True)
class Example:
    input: str
    output: str
    explanation: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Example":
        return cls(str(data.get("input", "")), str(data.get("output", "")), data.get("explanation"))


@dataclass(frozen=True)
class Problem:
    id: str
    title: str = ""
    difficulty: str = ""
    category: str = ""
    description: str = ""
    examples: tuple[Example, ...] = ()
    starter_code: str = ""
    hidden_cases: tuple[str, ...] = ()
    time: Optional[str] = None
    file: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict, file: Optional[str] = None) -> "Problem":
        if "id" not in data:
            raise ValueError("problem document has no id")
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            difficulty=data.get("difficulty", ""),
            category=data.get("category", ""),
            description=data.get("description", ""),
            examples=tuple(Example.from_dict(e) for e in data.get("examples") or ()),
            starter_code=data.get("starterCode", ""),
            hidden_cases=_strings(data.get("hiddenCases")),
            time=data.get("time"),
            file=file,
        )


def load_problem(path: PathLike) -> Problem:
    path = Path(path)
    return Problem.from_dict(_read_json(path), file=path.name)


@dataclass
class ProblemIndex:
    problems: list[Problem] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)

    def get(self, problem_id: str) -> Optional[Problem]:
        for problem in self.problems:
            if problem.id == problem_id:
                return problem
        return None


def load_problem_index(path: PathLike) -> ProblemIndex:
    """Load `index.json` and every problem file it lists.

    Problem files that cannot be read are logged and skipped.
    """
    path = Path(path)
    data = _read_json(path)
    index = ProblemIndex(categories=[str(c) for c in data.get("categories") or ()])
    for filename in data.get("problems") or ():
        try:
            index.problems.append(load_problem(path.parent / filename))
        except (OSError, ValueError) as e:
            logger.warning("skipping problem %s: %s", filename, e)
    return index


def filter_problems(
    problems: list[Problem],
    *,
    difficulty: str = "all",
    category: str = "all",
    status: str = "all",
    completed: frozenset = frozenset(),
) -> list[Problem]:
    """Problems matching the filters; `status` is all, completed or incomplete."""
    out = []
    for problem in problems:
        if difficulty != "all" and problem.difficulty != difficulty:
            continue
        if category != "all" and problem.category != category:
            continue
        done = problem.id in completed
        if status == "completed" and not done:
            continue
        if status == "incomplete" and done:
            continue
        out.append(problem)
    return out


# --- Exams ---

@dataclass(frozen=True)
class ContentItem:
    """One exam content item. `number` is set on questions only (1-based)."""

    type: str
    content: Any = None
    title: Optional[str] = None
    description: Optional[str] = None
    language: Optional[str] = None
    prompt: Optional[str] = None
    points: float = 1
    verification: Optional[str] = None
    starter_code: str = ""
    hidden_cases: tuple[str, ...] = ()
    precode: str = ""
    explanation: Optional[str] = None
    number: Optional[int] = None

    @property
    def is_question(self) -> bool:
        return self.type == "question"

    @property
    def is_code(self) -> bool:
        return self.prompt == CODE_PROMPT

    @property
    def children(self) -> tuple["ContentItem", ...]:
        return self.content if self.type == "section" and isinstance(self.content, tuple) else ()


def _content_item(data: dict, counter: list[int]) -> ContentItem:
    kind = data.get("type", "text")
    if kind not in CONTENT_TYPES:
        raise ValueError(f"unknown exam content type: {kind!r}")
    content = data.get("content")
    number = None
    if kind == "section":
        content = tuple(_content_item(c, counter) for c in content or ())
    elif kind == "question":
        counter[0] += 1
        number = counter[0]
    return ContentItem(
        type=kind,
        content=content,
        title=data.get("title"),
        description=data.get("description"),
        language=data.get("language"),
        prompt=data.get("prompt"),
        points=data.get("points") or 1,
        verification=data.get("verification"),
        starter_code=data.get("starterCode", ""),
        hidden_cases=_strings(data.get("hiddenCases")),
        precode=data.get("precode", ""),
        explanation=data.get("explanation"),
        number=number,
    )


@dataclass(frozen=True)
class Exam:
    id: str
    title: str = ""
    time: Optional[str] = None
    total_points: float = 0
    description: str = ""
    content: tuple[ContentItem, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "Exam":
        if "id" not in data:
            raise ValueError("exam document has no id")
        counter = [0]
        content = tuple(_content_item(c, counter) for c in data.get("content") or ())
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            time=data.get("time"),
            total_points=data.get("totalPoints") or 0,
            description=data.get("description", ""),
            content=content,
        )

    def questions(self) -> list[ContentItem]:
        return list(iter_questions(self.content))

    @property
    def question_count(self) -> int:
        return len(self.questions())

    def question(self, number: int) -> Optional[ContentItem]:
        for q in iter_questions(self.content):
            if q.number == number:
                return q
        return None


def iter_questions(items: tuple[ContentItem, ...]) -> Iterator[ContentItem]:
    """Questions in document order, descending into sections."""
    for item in items:
        if item.is_question:
            yield item
        else:
            yield from iter_questions(item.children)


def load_exam(path: PathLike) -> Exam:
    return Exam.from_dict(_read_json(path))


@dataclass(frozen=True)
class ExamEntry:
    """A row of `exams/index.json`."""

    id: str
    title: str = ""
    description: str = ""
    time: Optional[str] = None
    total_points: float = 0
    file: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ExamEntry":
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            description=data.get("description", ""),
            time=data.get("time"),
            total_points=data.get("totalPoints") or 0,
            file=data.get("file"),
        )


def load_exam_index(path: PathLike) -> list[ExamEntry]:
    data = _read_json(path)
    entries = []
    for row in data.get("exams") or ():
        try:
            entries.append(ExamEntry.from_dict(row))
        except KeyError:
            logger.warning("skipping exam index entry without id: %r", row)
    return entries
