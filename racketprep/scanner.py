"""Character-level scanner tracking string, comment and bracket-depth state.

The splitter and the struct/local/match rewriters share these rules:

- `;` outside a string starts a comment that ends at the newline.
- `"` not preceded by an unescaped backslash toggles string mode.
- `(` and `[` raise the depth, `)` and `]` lower it, outside strings and
  comments. Bracket kinds are interchangeable; `(` may be closed by `]`.
"""

import enum
import re
from dataclasses import dataclass
from typing import Iterator, NamedTuple

OPENERS = "(["
CLOSERS = ")]"
PREFIXES = "'`,#"


class State(enum.Enum):
    NORMAL = "normal"
    STRING = "string"
    COMMENT = "comment"


class ScannedChar(NamedTuple):
    index: int
    char: str
    state: State
    depth: int


class Scanner:
    """Feeds one character at a time; `depth` accumulates across lines."""

    __slots__ = ("in_string", "in_comment", "depth", "_escaped")

    def __init__(self) -> None:
        self.in_string = False
        self.in_comment = False
        self.depth = 0
        self._escaped = False

    def feed(self, ch: str) -> State:
        if ch == "\n":
            self._escaped = False
            if self.in_comment:
                self.in_comment = False
                return State.COMMENT
            return State.STRING if self.in_string else State.NORMAL
        if self.in_comment:
            return State.COMMENT
        escaped = self._escaped
        self._escaped = ch == "\\" and not escaped
        if self.in_string:
            if ch == '"' and not escaped:
                self.in_string = False
            return State.STRING
        if ch == ";":
            self.in_comment = True
            return State.COMMENT
        if ch == '"' and not escaped:
            self.in_string = True
            return State.STRING
        if ch in OPENERS:
            self.depth += 1
        elif ch in CLOSERS:
            self.depth -= 1
        return State.NORMAL


def scan(text: str) -> Iterator[ScannedChar]:
    scanner = Scanner()
    for i, ch in enumerate(text):
        state = scanner.feed(ch)
        yield ScannedChar(i, ch, state, scanner.depth)


def mask(text: str) -> str:
    """Blank out string and comment contents, keeping offsets and newlines."""
    out = []
    for sc in scan(text):
        if sc.state is State.NORMAL or sc.char == "\n":
            out.append(sc.char)
        else:
            out.append(" ")
    return "".join(out)


def find_close(text: str, start: int) -> int:
    """Index of the delimiter closing the opener at `start`, or -1."""
    if start >= len(text) or text[start] not in OPENERS:
        return -1
    scanner = Scanner()
    for i in range(start, len(text)):
        state = scanner.feed(text[i])
        if state is State.NORMAL and text[i] in CLOSERS and scanner.depth == 0:
            return i
    return -1


def skip_space(text: str, pos: int) -> int:
    """Advance past whitespace and line comments."""
    n = len(text)
    while pos < n:
        ch = text[pos]
        if ch.isspace():
            pos += 1
        elif ch == ";":
            while pos < n and text[pos] != "\n":
                pos += 1
        else:
            break
    return pos


@dataclass(frozen=True)
class Datum:
    text: str
    start: int
    end: int  # exclusive

    @property
    def is_list(self) -> bool:
        body = self.text.lstrip(PREFIXES)
        return bool(body) and body[0] in OPENERS

    @property
    def inner(self) -> str:
        """Text between the outer delimiters of a list datum."""
        body = self.text.lstrip(PREFIXES)
        return body[1:-1]


def _datum_end(text: str, pos: int) -> int:
    n = len(text)
    while pos < n and text[pos] in PREFIXES:
        if text[pos] == "#" and pos + 1 < n and text[pos + 1] not in OPENERS + "'`,":
            break
        pos += 1
    if pos >= n:
        return n
    ch = text[pos]
    if ch in OPENERS:
        close = find_close(text, pos)
        return n if close < 0 else close + 1
    if ch == '"':
        scanner = Scanner()
        for i in range(pos, n):
            scanner.feed(text[i])
            if i > pos and not scanner.in_string:
                return i + 1
        return n
    i = pos
    while i < n and not text[i].isspace() and text[i] not in OPENERS + CLOSERS + '";':
        i += 1
    return max(i, pos + 1)


def read_data(text: str) -> list[Datum]:
    """Split a segment into its top-level data: atoms, strings, quoted data and lists."""
    out = []
    pos = skip_space(text, 0)
    while pos < len(text):
        end = _datum_end(text, pos)
        out.append(Datum(text[pos:end], pos, end))
        pos = skip_space(text, end)
    return out


def find_form(text: str, keyword: str, start: int = 0) -> int:
    """Index of the next `(keyword ...` opener outside strings and comments, or -1."""
    pattern = re.compile(r"\(\s*" + re.escape(keyword) + r"(?=[\s\(\)\[\]])")
    m = pattern.search(mask(text), start)
    return m.start() if m else -1
