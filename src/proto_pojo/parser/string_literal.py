"""Decoding of proto string literals.

The decoder is a small state machine over the characters between the quotes:

    NORMAL --'\\'--> ESCAPE --x--> HEX -----> NORMAL
                            --u/U--> UNICODE --> NORMAL
                            --0-7--> OCTAL ---> NORMAL
                            --simple escape--> NORMAL

Hex and octal escapes produce raw bytes; unicode escapes and plain
characters are emitted as UTF-8.
"""

from __future__ import annotations

from enum import Enum, auto
from typing import List

from proto_pojo.errors import InvalidStringLiteral

_SIMPLE_ESCAPES = {
    "a": 0x07,
    "b": 0x08,
    "f": 0x0C,
    "n": 0x0A,
    "r": 0x0D,
    "t": 0x09,
    "v": 0x0B,
    "\\": 0x5C,
    "'": 0x27,
    '"': 0x22,
    "?": 0x3F,
}

_HEX_DIGITS = set("0123456789abcdefABCDEF")
_OCT_DIGITS = set("01234567")


class _State(Enum):
    NORMAL = auto()
    ESCAPE = auto()
    HEX = auto()
    OCTAL = auto()
    UNICODE = auto()


def decode_string_literal(literal: str) -> bytes:
    """Decode a quoted proto string literal into the bytes it denotes."""
    if len(literal) < 2 or literal[0] not in "\"'" or literal[-1] != literal[0]:
        raise InvalidStringLiteral("Unterminated or unquoted string literal", literal, 0)
    return _Decoder(literal[1:-1]).run()


class _Decoder:
    def __init__(self, body: str):
        self._body = body
        self._out = bytearray()
        self._state = _State.NORMAL
        # start offset (within the quoted literal) of the escape in progress
        self._escape_start = 0
        self._digits: List[str] = []
        self._digit_limit = 0
        self._pending_high_surrogate = None

    def run(self) -> bytes:
        for i, ch in enumerate(self._body):
            self._step(i, ch)
        self._finish()
        return bytes(self._out)

    # -- transitions --

    def _step(self, i: int, ch: str) -> None:
        if self._state is _State.HEX:
            if ch in _HEX_DIGITS and len(self._digits) < self._digit_limit:
                self._digits.append(ch)
                return
            self._flush_hex()
        elif self._state is _State.OCTAL:
            if ch in _OCT_DIGITS and len(self._digits) < 3:
                self._digits.append(ch)
                return
            self._flush_octal()
        elif self._state is _State.UNICODE:
            if ch not in _HEX_DIGITS:
                self._fail("Invalid unicode escape", i + 2)
            self._digits.append(ch)
            if len(self._digits) == self._digit_limit:
                self._flush_unicode(i + 2)
            return

        if self._state is _State.ESCAPE:
            self._start_escape(i, ch)
            return

        # NORMAL
        if ch == "\\":
            self._state = _State.ESCAPE
            self._escape_start = i + 1
            return
        self._check_no_pending_surrogate()
        self._out.extend(ch.encode("utf-8"))

    def _start_escape(self, i: int, ch: str) -> None:
        self._digits = []
        if ch in ("x", "X"):
            self._state = _State.HEX
            self._digit_limit = 2
        elif ch in _OCT_DIGITS:
            self._state = _State.OCTAL
            self._digits.append(ch)
        elif ch == "u":
            self._state = _State.UNICODE
            self._digit_limit = 4
        elif ch == "U":
            self._state = _State.UNICODE
            self._digit_limit = 8
        elif ch in _SIMPLE_ESCAPES:
            self._check_no_pending_surrogate()
            self._out.append(_SIMPLE_ESCAPES[ch])
            self._state = _State.NORMAL
        else:
            self._fail("Unknown escape sequence", i + 2)

    def _finish(self) -> None:
        end = len(self._body) + 1
        if self._state is _State.ESCAPE:
            self._fail("Truncated escape sequence", end)
        elif self._state is _State.HEX:
            self._flush_hex()
        elif self._state is _State.OCTAL:
            self._flush_octal()
        elif self._state is _State.UNICODE:
            self._fail("Truncated unicode escape", end)
        self._check_no_pending_surrogate()

    # -- escape completion --

    def _flush_hex(self) -> None:
        end = self._escape_start + 2 + len(self._digits)
        if not self._digits:
            self._fail("Hex escape without digits", end)
        self._check_no_pending_surrogate()
        self._out.append(int("".join(self._digits), 16))
        self._state = _State.NORMAL

    def _flush_octal(self) -> None:
        end = self._escape_start + 1 + len(self._digits)
        value = int("".join(self._digits), 8)
        if value > 0xFF:
            self._fail("Octal escape out of range", end)
        self._check_no_pending_surrogate()
        self._out.append(value)
        self._state = _State.NORMAL

    def _flush_unicode(self, end: int) -> None:
        code = int("".join(self._digits), 16)
        self._state = _State.NORMAL
        if self._digit_limit == 4 and 0xD800 <= code <= 0xDBFF:
            self._check_no_pending_surrogate()
            self._pending_high_surrogate = (code, self._escape_start)
            return
        if self._digit_limit == 4 and 0xDC00 <= code <= 0xDFFF:
            if self._pending_high_surrogate is None:
                self._fail("Unpaired low surrogate", end)
            high, _ = self._pending_high_surrogate
            self._pending_high_surrogate = None
            code = 0x10000 + ((high - 0xD800) << 10) + (code - 0xDC00)
        else:
            self._check_no_pending_surrogate()
            if code > 0x10FFFF or 0xD800 <= code <= 0xDFFF:
                self._fail("Code point out of range", end)
        self._out.extend(chr(code).encode("utf-8"))

    def _check_no_pending_surrogate(self) -> None:
        if self._pending_high_surrogate is not None:
            _, start = self._pending_high_surrogate
            self._pending_high_surrogate = None
            self._escape_start = start
            self._fail("Unpaired high surrogate", start + 6)

    def _fail(self, message: str, end: int) -> None:
        # offsets count the opening quote, so they index into the literal
        start = self._escape_start
        span = self._body[start - 1:end - 1]
        raise InvalidStringLiteral(message, span, start)
