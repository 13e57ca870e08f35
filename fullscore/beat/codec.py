"""Trace codec: event encoding, run-folding and decoding.

Encoding functions are pure apart from the per-trace identifier table passed
to encode_space(). Decoding is a single left-to-right scan that never raises
in lenient mode; a malformed or truncated tail is discarded.
"""

from dataclasses import dataclass

from fullscore.beat.maps import BeatMaps
from fullscore.beat.tokens import HANDOFF_MARKER, LOOP_MARKER, PAYLOAD_CHARS, TAGS, Token, TokenKind, TraceEvent
from fullscore.exceptions import TraceDecodeError
from fullscore.logging import get_score_logger

logger = get_score_logger(__name__)

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
_DJB2_SEED = 5381
_EMPTY_MAPS = BeatMaps()


@dataclass(frozen=True, slots=True)
class ActionDescriptor:
    """Where an action happened, as seen by the event source.

    ``depth`` counts ancestors up to the document body and ``ordinal`` is the
    1-based position among same-tag siblings.
    """

    tag: str
    depth: int
    ordinal: int = 1
    element_id: str = ""
    classes: tuple[str, ...] = ()
    href: str = ""

    @property
    def auto(self) -> str:
        """Automatic descriptor, e.g. ``10div1``.

        Tag characters that cannot appear in a payload are dropped, so
        ``svg:rect`` becomes ``svgrect``.
        """
        tag = "".join(ch for ch in self.tag.lower() if ch in PAYLOAD_CHARS)
        return f"{self.depth}{tag}{self.ordinal}"


def _utf16_units(text: str) -> list[int]:
    raw = text.encode("utf-16-le")
    return [int.from_bytes(raw[i : i + 2], "little") for i in range(0, len(raw), 2)]


def _to_int32(n: int) -> int:
    n &= 0xFFFFFFFF
    return n - 0x100000000 if n & 0x80000000 else n


def djb2(text: str) -> int:
    """DJB2 hash over UTF-16 code units with 32-bit shift wrap-around.

    The shift wraps to a signed 32-bit integer while the running sum does not,
    which keeps hashes identical to traces produced by browser encoders.
    """
    h = _DJB2_SEED
    for unit in _utf16_units(text):
        h = _to_int32(_to_int32(h) << 5) + h + unit
    return h


def base36(n: int, length: int) -> str:
    """Fixed-length base-36 of ``n``, least significant digit first."""
    digits = []
    for _ in range(length):
        digits.append(_BASE36_DIGITS[n % 36])
        n //= 36
    return "".join(digits)


def _hash_length(identifier: str) -> int:
    size = len(_utf16_units(identifier))
    if size <= 7:
        return 3
    if size <= 14:
        return 4
    return 5


def encode_space(identifier: str, table: dict[str, str], maps: BeatMaps = _EMPTY_MAPS) -> str:
    """Encode a space identifier, resolving hash collisions within ``table``.

    The same identifier always yields the same token for one table, and two
    different identifiers never share a token.
    """
    if alias := maps.spaces.get(identifier):
        return TokenKind.SPACE.tag + alias
    digest = base36(abs(djb2(identifier)), _hash_length(identifier))
    token = TokenKind.SPACE.tag + digest
    loops = ""
    while (owner := table.get(token)) is not None and owner != identifier:
        loops += LOOP_MARKER
        token = TokenKind.SPACE.tag + loops + digest
    if loops:
        logger.debug("Space hash collision for %r resolved with %d loop markers", identifier, len(loops))
    table[token] = identifier
    return token


def encode_action(descriptor: ActionDescriptor, maps: BeatMaps = _EMPTY_MAPS) -> str:
    """Encode an action by alias when one matches, else by its automatic descriptor."""
    aliases = maps.actions
    key: str | None = None
    if descriptor.element_id and f"#{descriptor.element_id}" in aliases:
        key = f"#{descriptor.element_id}"
    if key is None:
        key = next((f".{c}" for c in descriptor.classes if f".{c}" in aliases), None)
    if key is None and descriptor.tag.lower() == "a" and descriptor.href in aliases:
        key = descriptor.href
    if key is not None:
        return TokenKind.ACTION.tag + aliases[key]
    auto = descriptor.auto
    return TokenKind.ACTION.tag + aliases.get(f"*{auto}", auto)


def encode_time(delta_ticks: int) -> str | None:
    """Time token for a positive tick delta, None otherwise."""
    if delta_ticks <= 0:
        return None
    return f"{TokenKind.TIME.tag}{delta_ticks}"


def encode_position(value: int) -> str:
    return f"{TokenKind.POSITION.tag}{value}"


def fold(notes: list[str], action: str) -> list[str]:
    """Append ``action`` to ``notes``, folding it into an identical prior action.

    ``[..., "*a", "~5"] + "*a"`` becomes ``[..., "/5*a"]``; a further
    ``"~7"`` and ``"*a"`` make it ``"/5/7*a"``.
    """
    if len(notes) > 1 and notes[-1].startswith(TokenKind.TIME.tag):
        interval = notes[-1][1:]
        prior = notes[-2]
        if prior.endswith(action):
            notes[-2] = prior[: len(prior) - len(action)] + TokenKind.METHOD.tag + interval + action
            notes.pop()
            return notes
    notes.append(action)
    return notes


def _valid_payload(kind: TokenKind, payload: str) -> bool:
    if kind in (TokenKind.TIME, TokenKind.METHOD, TokenKind.HANDOFF):
        return payload.isascii() and payload.isdigit() and int(payload) > 0
    if kind is TokenKind.POSITION:
        digits = payload[1:] if payload.startswith("-") else payload
        return digits.isascii() and digits.isdigit()
    return bool(payload)


def tokenize(trace: str, *, strict: bool = False) -> list[Token]:
    """Split a serialized trace into tokens.

    Raises:
        TraceDecodeError: In strict mode, at the first malformed token. In
            lenient mode the scan stops there and the tail is dropped.
    """
    tokens: list[Token] = []
    i, end = 0, len(trace)
    while i < end:
        if trace.startswith(HANDOFF_MARKER, i):
            kind, start = TokenKind.HANDOFF, i + len(HANDOFF_MARKER)
            j = start
            while j < end and trace[j].isdigit():
                j += 1
        elif trace[i] in TAGS:
            kind, start = TokenKind(trace[i]), i + 1
            j = start
            while j < end and trace[j] not in TAGS and trace[j] != "_":
                j += 1
        else:
            kind, start, j = None, i, i
        payload = trace[start:j]
        if kind is None or not _valid_payload(kind, payload):
            if strict:
                raise TraceDecodeError(f"malformed token at offset {i}: {trace[i : i + 16]!r}")
            logger.debug("Trace truncated at offset %d, dropping %d chars", i, end - i)
            break
        tokens.append(Token(kind, payload))
        i = j
    return tokens


def decode(trace: str) -> list[TraceEvent]:
    """Decode a trace into events with tick offsets from the trace start.

    Time tokens only advance the offset. A fold ``/5/7*a`` expands into
    three ``a`` events at ``o``, ``o+5`` and ``o+12``. Method tokens that are
    not followed by an action form an unterminated tail and are discarded.
    """
    events: list[TraceEvent] = []
    offset = 0
    repeats: list[int] = []
    for token in tokenize(trace):
        if repeats and token.kind not in (TokenKind.METHOD, TokenKind.ACTION):
            logger.debug("Fold interrupted by %s token, dropping tail", token.kind.name)
            return events
        if token.kind is TokenKind.TIME:
            offset += int(token.payload)
        elif token.kind is TokenKind.METHOD:
            repeats.append(int(token.payload))
        elif token.kind is TokenKind.ACTION:
            events.append(TraceEvent(token.kind, token.payload, offset))
            for interval in repeats:
                offset += interval
                events.append(TraceEvent(token.kind, token.payload, offset))
            repeats.clear()
        else:
            events.append(TraceEvent(token.kind, token.payload, offset))
    return events
