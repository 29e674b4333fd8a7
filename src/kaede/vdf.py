"""Text VDF (Valve KeyValues) parser that keeps source offsets.

Steam rewrites ``localconfig.vdf`` itself, so edits must touch only the
bytes of the value being changed. :func:`parse` returns a node tree whose
every key and value remembers its span in the original text; callers splice
new text into those spans instead of re-serializing the whole document.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"'}


class VdfError(ValueError):
    """Malformed VDF text."""

    def __init__(self, message: str, text: str, pos: int) -> None:
        line = text.count("\n", 0, pos) + 1
        col = pos - (text.rfind("\n", 0, pos) + 1) + 1
        super().__init__(f"{message} at line {line}, column {col}")
        self.line = line
        self.column = col


@dataclass(slots=True)
class Token:
    kind: str  # "str", "{", "}"
    value: str
    start: int
    end: int  # exclusive


@dataclass(slots=True)
class VdfNode:
    """One ``"key" value`` or ``"key" { ... }`` pair.

    For string values ``value_start:value_end`` covers the token including
    its quotes. For blocks ``value_start`` is the ``{`` offset and
    ``value_end`` the ``}`` offset.
    """

    key: str
    key_start: int
    value: str | None
    value_start: int
    value_end: int
    children: list[VdfNode] = field(default_factory=list)

    @property
    def is_block(self) -> bool:
        return self.value is None

    def find(self, key: str, *, ignore_case: bool = False) -> VdfNode | None:
        return find(self.children, key, ignore_case=ignore_case)


def tokenize(text: str) -> Iterator[Token]:
    i = 0
    n = len(text)
    while i < n:
        c = text[i]
        if c.isspace():
            i += 1
        elif c == "/" and text.startswith("//", i):
            nl = text.find("\n", i)
            i = n if nl == -1 else nl + 1
        elif c in "{}":
            yield Token(c, c, i, i + 1)
            i += 1
        elif c == "[":
            # Platform conditional such as [$WIN32]; not meaningful on Linux.
            close = text.find("]", i)
            if close == -1:
                raise VdfError("Unterminated conditional", text, i)
            i = close + 1
        elif c == '"':
            start = i
            i += 1
            out: list[str] = []
            while True:
                if i >= n:
                    raise VdfError("Unterminated string", text, start)
                c = text[i]
                if c == "\\" and i + 1 < n:
                    nxt = text[i + 1]
                    out.append(_ESCAPES.get(nxt, "\\" + nxt))
                    i += 2
                    continue
                if c == '"':
                    i += 1
                    break
                out.append(c)
                i += 1
            yield Token("str", "".join(out), start, i)
        else:
            start = i
            while i < n and not text[i].isspace() and text[i] not in '{}"':
                i += 1
            yield Token("str", text[start:i], start, i)


def parse(text: str) -> list[VdfNode]:
    """Parse *text* into top-level nodes. Raises :class:`VdfError`."""
    tokens = list(tokenize(text))
    nodes, _ = _parse_pairs(text, tokens, 0, closing=None)
    return nodes


def _parse_pairs(
    text: str, tokens: list[Token], pos: int, closing: Token | None
) -> tuple[list[VdfNode], int]:
    nodes: list[VdfNode] = []
    while pos < len(tokens):
        tok = tokens[pos]
        if tok.kind == "}":
            if closing is None:
                raise VdfError("Unexpected '}'", text, tok.start)
            return nodes, pos
        if tok.kind == "{":
            raise VdfError("Block without a key", text, tok.start)
        if pos + 1 >= len(tokens):
            raise VdfError(f"Key {tok.value!r} has no value", text, tok.start)
        val = tokens[pos + 1]
        if val.kind == "str":
            nodes.append(VdfNode(tok.value, tok.start, val.value, val.start, val.end))
            pos += 2
        elif val.kind == "{":
            children, end = _parse_pairs(text, tokens, pos + 2, closing=val)
            nodes.append(
                VdfNode(tok.value, tok.start, None, val.start, tokens[end].start, children)
            )
            pos = end + 1
        else:
            raise VdfError(f"Key {tok.value!r} has no value", text, val.start)
    if closing is not None:
        raise VdfError("Unclosed block", text, closing.start)
    return nodes, pos


def find(nodes: Sequence[VdfNode], key: str, *, ignore_case: bool = False) -> VdfNode | None:
    """Return the first node named *key*."""
    wanted = key.lower() if ignore_case else key
    for node in nodes:
        name = node.key.lower() if ignore_case else node.key
        if name == wanted:
            return node
    return None


def walk(nodes: Sequence[VdfNode]) -> Iterator[VdfNode]:
    """Depth-first iteration over every node."""
    for node in nodes:
        yield node
        yield from walk(node.children)


def to_dict(nodes: Sequence[VdfNode]) -> dict[str, object]:
    """Nested plain-dict view. Later duplicates of a key win."""
    result: dict[str, object] = {}
    for node in nodes:
        result[node.key] = to_dict(node.children) if node.is_block else node.value
    return result


def loads(text: str) -> dict[str, object]:
    return to_dict(parse(text))


def quote(value: str) -> str:
    """Render *value* as a quoted VDF string."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def line_indent(text: str, pos: int) -> str:
    """Leading whitespace of the line containing *pos*."""
    start = text.rfind("\n", 0, pos) + 1
    end = start
    while end < len(text) and text[end] in " \t":
        end += 1
    return text[start:end]
