"""Grammar-driven parser for protobuf (.proto) files.

Applies the declarative grammar in proto3.lark to source text and produces a
lark parse tree rooted at the ``proto`` rule.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Tuple

from lark import Lark, Tree
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken
from lark.lexer import PatternStr

from proto_pojo.errors import ProtoSyntaxError

GRAMMAR_FILE = Path(__file__).parent / "proto3.lark"

_PARSER = Lark.open(
    str(GRAMMAR_FILE),
    start="proto",
    parser="lalr",
    propagate_positions=True,
)


def parse(text: str) -> Tree:
    """Parse proto3 source text into a concrete parse tree.

    The whole input must match; trailing unparsed text is an error.
    Raises ProtoSyntaxError pointing at the first position that could not
    be matched.
    """
    try:
        return _PARSER.parse(text)
    except UnexpectedInput as e:
        raise _to_syntax_error(text, e) from None


def _to_syntax_error(text: str, error: UnexpectedInput) -> ProtoSyntaxError:
    if isinstance(error, UnexpectedToken) and error.token.type != "$END":
        pos = error.token.start_pos
        message = f"Unexpected {error.token.type} ({error.token.value!r})"
        expected = _describe_terminals(error.expected)
    elif isinstance(error, (UnexpectedToken, UnexpectedEOF)):
        pos = len(text)
        message = "Unexpected end of input"
        expected = _describe_terminals(error.expected)
    elif isinstance(error, UnexpectedCharacters):
        pos = error.pos_in_stream
        message = f"Unexpected character {text[pos]!r}"
        expected = _describe_terminals(error.allowed or ())
    else:
        pos = max(error.pos_in_stream or 0, 0)
        message = str(error)
        expected = ()

    line, column = _line_col(text, pos)
    offset = len(text[:pos].encode("utf-8"))
    return ProtoSyntaxError(message, line, column, offset, expected)


def _line_col(text: str, pos: int) -> Tuple[int, int]:
    line = text.count("\n", 0, pos) + 1
    column = pos - (text.rfind("\n", 0, pos) + 1) + 1
    return line, column


def _describe_terminals(names: Iterable[str]) -> Tuple[str, ...]:
    """Render terminal names as the text a user would type, where fixed."""
    described = set()
    for name in names:
        if name == "$END":
            described.add("end of input")
            continue
        try:
            pattern = _PARSER.get_terminal(name).pattern
        except KeyError:
            described.add(name)
            continue
        if isinstance(pattern, PatternStr):
            described.add(repr(pattern.value))
        elif pattern.value.endswith(r"\b") and pattern.value[:-2].isalpha():
            # keyword terminal
            described.add(repr(pattern.value[:-2]))
        else:
            described.add(name)
    return tuple(sorted(described))
