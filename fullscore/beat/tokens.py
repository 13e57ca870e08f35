"""Token alphabet of the trace grammar.

Every token starts with one reserved tag character followed by a payload.
Payloads are drawn from the cookie-safe printable ASCII subset minus the
tags, ``_`` (slot field separator, also the handoff marker) and ``=``.
"""

from dataclasses import dataclass
from enum import StrEnum


class TokenKind(StrEnum):
    """Closed set of token kinds. The value is the tag written to the trace."""

    SPACE = "!"
    TIME = "~"
    POSITION = "^"
    ACTION = "*"
    METHOD = "/"
    VALUE = ":"
    HANDOFF = "___"

    @property
    def tag(self) -> str:
        return self.value


TAGS: frozenset[str] = frozenset(kind.value for kind in TokenKind if kind is not TokenKind.HANDOFF)
HANDOFF_MARKER = TokenKind.HANDOFF.value
LOOP_MARKER = "-"

# RFC 6265 cookie-octet: %x21 / %x23-2B / %x2D-3A / %x3C-5B / %x5D-7E
_COOKIE_OCTETS = frozenset(chr(c) for c in range(0x21, 0x7F)) - frozenset('",;\\')
PAYLOAD_CHARS: frozenset[str] = _COOKIE_OCTETS - TAGS - frozenset("_=")


def is_safe_payload(text: str) -> bool:
    """True when ``text`` can be written as a token payload."""
    return bool(text) and all(ch in PAYLOAD_CHARS for ch in text)


@dataclass(frozen=True, slots=True)
class Token:
    """One lexical token of a serialized trace."""

    kind: TokenKind
    payload: str

    def __str__(self) -> str:
        return self.kind.value + self.payload


@dataclass(frozen=True, slots=True)
class TraceEvent:
    """One decoded occurrence: what happened and when, in ticks from trace start."""

    kind: TokenKind
    payload: str
    offset: int


__all__ = [
    "HANDOFF_MARKER",
    "LOOP_MARKER",
    "PAYLOAD_CHARS",
    "TAGS",
    "Token",
    "TokenKind",
    "TraceEvent",
    "is_safe_payload",
]
