"""Execution limits, passed explicitly to the harness and exam grader."""

import logging
import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from .evaluator import DEFAULT_MAX_DEPTH

logger = logging.getLogger(__name__)

MAX_REWRITE_ITERATIONS = 100
DEFAULT_MAX_STEPS = 5_000_000
DEFAULT_GRADING_TIMEOUT = 10.0

_ENV_VARS = {
    "RACKETPREP_MAX_STEPS": ("max_steps", int),
    "RACKETPREP_MAX_DEPTH": ("max_depth", int),
    "RACKETPREP_GRADING_TIMEOUT": ("grading_timeout", float),
}


@dataclass(frozen=True)
class Config:
    """
    Attributes:
        max_steps: Step ceiling for interactive runs (None disables it)
        max_depth: Maximum evaluator nesting depth
        grading_timeout: Wall-clock seconds allowed per graded question
        max_rewrite_iterations: Cap on local/match expansion rounds
    """

    max_steps: Optional[int] = DEFAULT_MAX_STEPS
    max_depth: int = DEFAULT_MAX_DEPTH
    grading_timeout: float = DEFAULT_GRADING_TIMEOUT
    max_rewrite_iterations: int = MAX_REWRITE_ITERATIONS

    def __post_init__(self) -> None:
        if self.max_steps is not None and self.max_steps <= 0:
            raise ValueError("max_steps must be positive")
        if self.max_depth <= 0:
            raise ValueError("max_depth must be positive")
        if self.grading_timeout <= 0:
            raise ValueError("grading_timeout must be positive")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        environ = os.environ if environ is None else environ
        overrides = {}
        for var, (name, conv) in _ENV_VARS.items():
            raw = environ.get(var)
            if raw is None or raw == "":
                continue
            try:
                overrides[name] = conv(raw)
            except ValueError:
                logger.warning("ignoring %s=%r: not a valid %s", var, raw, conv.__name__)
        return replace(cls(), **overrides)
