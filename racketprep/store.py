"""Persistent key-value store for completion flags, saved code and exam answers.

Keys are namespaced by document and purpose, as in `problem_<id>_completed`
or `exam_<id>_answers`. Values are strings.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Protocol, Union

logger = logging.getLogger(__name__)

PURPOSES = ("completed", "code", "answers", "score")


class Store(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


def _key(kind: str, doc_id: str, purpose: str) -> str:
    if purpose not in PURPOSES:
        raise ValueError(f"unknown store purpose: {purpose!r}")
    return f"{kind}_{doc_id}_{purpose}"


def problem_key(problem_id: str, purpose: str) -> str:
    return _key("problem", problem_id, purpose)


def exam_key(exam_id: str, purpose: str) -> str:
    return _key("exam", exam_id, purpose)


class MemoryStore:
    """In-process store; nothing survives the process."""

    def __init__(self, data: Optional[dict[str, str]] = None):
        self.data: dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = str(value)


class JsonFileStore:
    """Store backed by one JSON object on disk, rewritten on every `set`.

    A missing file starts empty. A corrupt or unreadable file is logged and
    treated as empty; it is replaced on the next write.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.data: dict[str, str] = {}
        self.load_error: Optional[str] = None
        if self.path.exists():
            try:
                loaded = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                self.load_error = f"failed to read {self.path}: {e}"
                logger.warning("%s; starting empty", self.load_error)
            else:
                if isinstance(loaded, dict):
                    self.data = {str(k): str(v) for k, v in loaded.items()}
                else:
                    self.load_error = f"{self.path} does not hold a JSON object"
                    logger.warning("%s; starting empty", self.load_error)

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = str(value)
        self._save()

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self.data, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(self.path)


# --- Helpers ---

def is_problem_completed(store: Store, problem_id: str) -> bool:
    return store.get(problem_key(problem_id, "completed")) == "true"


def mark_problem_completed(store: Store, problem_id: str, completed: bool = True) -> None:
    store.set(problem_key(problem_id, "completed"), "true" if completed else "false")


def save_code(store: Store, problem_id: str, code: str) -> None:
    store.set(problem_key(problem_id, "code"), code)


def load_code(store: Store, problem_id: str) -> Optional[str]:
    return store.get(problem_key(problem_id, "code"))


def is_exam_completed(store: Store, exam_id: str) -> bool:
    return store.get(exam_key(exam_id, "completed")) == "true"
