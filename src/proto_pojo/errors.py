"""Exception types raised while turning proto3 text into Java sources."""

from __future__ import annotations

from typing import Optional, Tuple


class ProtoPojoError(Exception):
    """Base class for every error the conversion pipeline raises."""


class ProtoSyntaxError(ProtoPojoError):
    """Raised when the input does not match the proto3 grammar."""

    def __init__(
        self,
        message: str,
        line: int,
        column: int,
        offset: int,
        expected: Tuple[str, ...] = (),
    ):
        self.line = line
        self.column = column
        self.offset = offset
        self.expected = expected
        text = f"Line {line}:{column}: {message}"
        if expected:
            text += f" (expected one of: {', '.join(expected)})"
        super().__init__(text)


class ReduceError(ProtoPojoError):
    """Raised when a parse tree cannot be reduced into a ProtoModel."""

    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None):
        self.line = line
        self.column = column
        if line is not None:
            super().__init__(f"Line {line}:{column}: {message}")
        else:
            super().__init__(message)


class InvalidFieldNumber(ReduceError):
    """Field tag is zero, negative or outside the unsigned 32-bit range."""


class InvalidEnumDefinition(ReduceError):
    """Enum is empty, does not start at 0, or has an out-of-range number."""


class InvalidStringLiteral(ReduceError):
    """A string literal contains a malformed or truncated escape."""

    def __init__(
        self,
        message: str,
        span: str,
        offset: int,
        line: Optional[int] = None,
        column: Optional[int] = None,
    ):
        self.reason = message
        self.span = span
        self.offset = offset
        super().__init__(f"{message}: {span!r} at offset {offset}", line, column)


class DuplicateDeclaration(ReduceError):
    """A name is declared twice in the same scope."""

    def __init__(
        self,
        declaration: str,
        identifier: str,
        line: Optional[int] = None,
        column: Optional[int] = None,
    ):
        self.declaration = declaration
        self.identifier = identifier
        super().__init__(f"Duplicate '{identifier}' in {declaration}", line, column)


class UnsupportedSyntax(ReduceError):
    """The file declares a syntax other than proto3."""


class MalformedTreeError(ReduceError):
    """The parse tree has a shape the reducer does not know.

    This points at a mismatch between the grammar and the reducer, not at
    bad user input.
    """
