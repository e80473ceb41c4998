"""Source-to-source rewriting applied before evaluation."""

import logging
from dataclasses import dataclass
from typing import Optional

from .config import MAX_REWRITE_ITERATIONS
from .local import expand_local
from .match import expand_match
from .splitter import replace_lambda_glyph
from .structs import StructRegistry, expand_structs

logger = logging.getLogger(__name__)


@dataclass
class Preprocessed:
    """Rewritten program text plus the struct definitions it relies on."""

    source: str
    struct_definitions: list[str]

    @property
    def full_source(self) -> str:
        """Struct definitions first, then the program."""
        return "\n".join(self.struct_definitions + [self.source])


def preprocess(
    source: str,
    registry: Optional[StructRegistry] = None,
    *,
    max_iterations: int = MAX_REWRITE_ITERATIONS,
) -> Preprocessed:
    """define-struct, then local, then match, then the lambda glyph."""
    structs = expand_structs(source, registry)
    text = expand_local(structs.source, max_iterations)
    text = expand_match(text, max_iterations)
    text = replace_lambda_glyph(text)
    logger.debug("preprocessed %d chars, %d struct definitions", len(text), len(structs.definitions))
    return Preprocessed(text, structs.definitions)
