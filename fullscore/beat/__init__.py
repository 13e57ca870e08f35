"""Trace codec: linear encoding of space, time and action events."""

from .builder import TraceBuilder
from .codec import ActionDescriptor, base36, decode, djb2, encode_action, encode_position, encode_space, encode_time, fold, tokenize
from .maps import BeatMaps
from .tokens import HANDOFF_MARKER, LOOP_MARKER, TAGS, Token, TokenKind, TraceEvent, is_safe_payload

__all__ = [
    "HANDOFF_MARKER",
    "LOOP_MARKER",
    "TAGS",
    "ActionDescriptor",
    "BeatMaps",
    "Token",
    "TokenKind",
    "TraceBuilder",
    "TraceEvent",
    "base36",
    "decode",
    "djb2",
    "encode_action",
    "encode_position",
    "encode_space",
    "encode_time",
    "fold",
    "is_safe_payload",
    "tokenize",
]
