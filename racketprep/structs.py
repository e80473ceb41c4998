"""`define-struct` rewriting: records become tagged lists.

A value of `(define-struct point (x y))` is the list
`(point struct-instance x y)`; the generated procedures go through the
prelude's `make-struct-helper`, `struct-predicate-helper` and
`struct-accessor-helper`.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterator, Optional

from .scanner import find_close, find_form, read_data

logger = logging.getLogger(__name__)

STRUCT_MARKER = "struct-instance"

_IDENT_RE = re.compile(r"^[^\s()\[\]\"';`,#|][^\s()\[\]\"';`,|]*$")


@dataclass(frozen=True)
class StructDescriptor:
    name: str
    fields: tuple[str, ...]

    @property
    def constructor(self) -> str:
        return f"make-{self.name}"

    @property
    def predicate(self) -> str:
        return f"{self.name}?"

    def accessor(self, field_name: str) -> str:
        return f"{self.name}-{field_name}"

    def definitions(self) -> list[str]:
        """Constructor, predicate and one accessor per field, in field order."""
        params = " ".join(self.fields)
        defs = [
            f"(define ({self.constructor}{' ' + params if params else ''})\n"
            f"  (make-struct-helper '{self.name} '({params}) (list {params})))",
            f"(define ({self.predicate} obj)\n"
            f"  (struct-predicate-helper '{self.name} obj))",
        ]
        for index, name in enumerate(self.fields):
            defs.append(
                f"(define ({self.accessor(name)} obj)\n"
                f"  (struct-accessor-helper obj {index}))"
            )
        return defs


class StructRegistry:
    """Struct descriptors seen during one processing pass. Last definition wins."""

    def __init__(self) -> None:
        self._structs: dict[str, StructDescriptor] = {}

    def register(self, desc: StructDescriptor) -> None:
        if desc.name in self._structs:
            logger.debug("redefining struct %s", desc.name)
        self._structs[desc.name] = desc

    def get(self, name: str) -> Optional[StructDescriptor]:
        return self._structs.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._structs

    def __iter__(self) -> Iterator[StructDescriptor]:
        return iter(self._structs.values())

    def __len__(self) -> int:
        return len(self._structs)


@dataclass
class StructExpansion:
    source: str
    definitions: list[str] = field(default_factory=list)


def parse_struct(form: str) -> Optional[StructDescriptor]:
    """Descriptor for a `(define-struct name (field ...))` form, or None if malformed."""
    data = read_data(form[1:-1])
    if len(data) != 3 or data[0].text != "define-struct":
        return None
    name, fields = data[1], data[2]
    if not _IDENT_RE.match(name.text) or not fields.is_list or fields.text[0] == "'":
        return None
    names = [d.text for d in read_data(fields.inner)]
    if not all(_IDENT_RE.match(n) for n in names):
        return None
    return StructDescriptor(name.text, tuple(names))


def expand_structs(source: str, registry: Optional[StructRegistry] = None) -> StructExpansion:
    """Replace every define-struct with a placeholder comment and collect its definitions."""
    if registry is None:
        registry = StructRegistry()
    result = StructExpansion(source)
    text = source
    pos = 0
    while True:
        start = find_form(text, "define-struct", pos)
        if start < 0:
            break
        close = find_close(text, start)
        if close < 0:
            break
        desc = parse_struct(text[start:close + 1])
        if desc is None:
            logger.debug("leaving malformed define-struct at offset %d", start)
            pos = close + 1
            continue
        registry.register(desc)
        result.definitions.extend(desc.definitions())
        placeholder = f"; define-struct {desc.name} processed"
        line_end = text.find("\n", close + 1)
        rest_of_line = text[close + 1:] if line_end < 0 else text[close + 1:line_end]
        if rest_of_line.strip():
            placeholder += "\n"
        text = text[:start] + placeholder + text[close + 1:]
        pos = start + len(placeholder)
    result.source = text
    return result
