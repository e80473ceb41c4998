"""`local` rewriting: bracketed internal definitions become a `letrec`."""

import logging
from typing import Optional

from .config import MAX_REWRITE_ITERATIONS
from .scanner import Datum, find_close, find_form, read_data

logger = logging.getLogger(__name__)


def _binding(definition: Datum) -> Optional[str]:
    """`(define (f a b) e ...)` -> `[f (lambda (a b) e ...)]`; `(define x e)` -> `[x e]`."""
    if not definition.is_list or definition.text[0] == "'":
        return None
    parts = read_data(definition.inner)
    if len(parts) < 3 or parts[0].text != "define":
        return None
    target = parts[1]
    body = " ".join(p.text for p in parts[2:])
    if target.is_list:
        header = read_data(target.inner)
        if not header:
            return None
        args = [h.text for h in header[1:]]
        if len(args) == 2 and args[0] == ".":
            params = args[1]
        else:
            params = "(" + " ".join(args) + ")"
        return f"[{header[0].text} (lambda {params} {body})]"
    if len(parts) != 3:
        return None
    return f"[{target.text} {body}]"


def rewrite_local(form: str) -> Optional[str]:
    """Rewrite one `(local [defs ...] body ...)` form; None if it is malformed."""
    data = read_data(form[1:-1])
    if len(data) < 3 or data[0].text != "local" or not data[1].is_list:
        return None
    bindings = []
    for definition in read_data(data[1].inner):
        binding = _binding(definition)
        if binding is None:
            return None
        bindings.append(binding)
    body = " ".join(d.text for d in data[2:])
    return f"(letrec ({' '.join(bindings)}) {body})"


def expand_local(source: str, max_iterations: int = MAX_REWRITE_ITERATIONS) -> str:
    """Rewrite `local` forms, outermost first, until none remain or the cap is hit."""
    text = source
    pos = 0
    for _ in range(max_iterations):
        start = find_form(text, "local", pos)
        if start < 0:
            return text
        close = find_close(text, start)
        if close < 0:
            return text
        rewritten = rewrite_local(text[start:close + 1])
        if rewritten is None:
            logger.debug("leaving malformed local at offset %d", start)
            pos = close + 1
            continue
        text = text[:start] + rewritten + text[close + 1:]
        pos = start
    if find_form(text, "local", pos) >= 0:
        logger.warning("local expansion stopped after %d iterations", max_iterations)
    return text
