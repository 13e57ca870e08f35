"""Shared records of the session protocol and their wire formats.

Slot:   ``<state>_<time>_<key>_<device>_<origin>_<scrolls>_<clicks>_<duration>_<trace>``
Epoch:  ``<bitfield:10>_<time>_<key>___<n1>~<n2>...``
Batch:  concatenation of ``<slot name>=<slot>`` entries
"""

import re
from dataclasses import dataclass, field, replace
from enum import IntEnum

from fullscore._types import SlotName
from fullscore.beat.tokens import HANDOFF_MARKER
from fullscore.exceptions import EpochFormatError, SlotFormatError

FIELD_SEPARATOR = "_"
CHAIN_SEPARATOR = "~"
BITFIELD_WIDTH = 10
DEFAULT_BITFIELD = "0" * BITFIELD_WIDTH

_PENDING_HANDOFF = re.compile(re.escape(HANDOFF_MARKER) + r"\d+$")


class LifecycleState(IntEnum):
    """Lifecycle of a slot as written in its first field."""

    ACTIVE = 0
    STORED = 1
    ARCHIVED = 2


@dataclass(slots=True)
class Slot:
    """One session record in the shared store."""

    state: LifecycleState
    time: int
    key: str
    device: int
    origin: int
    scrolls: int = 0
    clicks: int = 0
    duration: int = 0
    trace: str = ""

    @classmethod
    def parse(cls, raw: str) -> "Slot":
        parts = raw.split(FIELD_SEPARATOR, 8)
        if len(parts) != 9:
            raise SlotFormatError(f"expected 9 fields, got {len(parts)}: {raw[:40]!r}")
        state, time, key, device, origin, scrolls, clicks, duration, trace = parts
        if not key:
            raise SlotFormatError(f"empty epoch key: {raw[:40]!r}")
        try:
            return cls(
                state=LifecycleState(int(state)),
                time=int(time),
                key=key,
                device=int(device),
                origin=int(origin),
                scrolls=int(scrolls),
                clicks=int(clicks),
                duration=int(duration),
                trace=trace,
            )
        except ValueError as e:
            raise SlotFormatError(f"invalid slot field in {raw[:40]!r}: {e}") from e

    def dump(self) -> str:
        return FIELD_SEPARATOR.join(
            str(part)
            for part in (
                int(self.state),
                self.time,
                self.key,
                self.device,
                self.origin,
                self.scrolls,
                self.clicks,
                self.duration,
                self.trace,
            )
        )

    def belongs_to(self, epoch: "EpochRecord") -> bool:
        """True when the slot was written under ``epoch``."""
        return self.time == epoch.time and self.key == epoch.key

    @property
    def handoff_pending(self) -> bool:
        """True when a sibling appended a continuation marker to this trace."""
        return bool(_PENDING_HANDOFF.search(self.trace))


@dataclass(frozen=True, slots=True)
class EpochRecord:
    """The shared epoch record.

    ``bitfield`` belongs to an external analyzer and is carried verbatim.
    """

    bitfield: str
    time: int
    key: str
    chain: tuple[str, ...] = field(default=())

    @classmethod
    def parse(cls, raw: str) -> "EpochRecord":
        head, sep, chain = raw.partition(HANDOFF_MARKER)
        if not sep:
            raise EpochFormatError(f"missing chain marker: {raw[:40]!r}")
        fields = head.split(FIELD_SEPARATOR)
        if len(fields) != 3:
            raise EpochFormatError(f"expected 3 head fields, got {len(fields)}: {raw[:40]!r}")
        bitfield, time, key = fields
        if len(bitfield) != BITFIELD_WIDTH or not bitfield.isdigit():
            raise EpochFormatError(f"bitfield must be {BITFIELD_WIDTH} digits: {bitfield!r}")
        if not time.isdigit() or not key:
            raise EpochFormatError(f"invalid epoch time or key: {raw[:40]!r}")
        return cls(bitfield=bitfield, time=int(time), key=key, chain=tuple(n for n in chain.split(CHAIN_SEPARATOR) if n))

    def dump(self) -> str:
        return f"{self.bitfield}_{self.time}_{self.key}{HANDOFF_MARKER}{CHAIN_SEPARATOR.join(self.chain)}"

    def same_epoch(self, other: "EpochRecord") -> bool:
        return self.time == other.time and self.key == other.key

    def with_chain(self, chain: tuple[str, ...]) -> "EpochRecord":
        return replace(self, chain=chain)

    @property
    def level(self) -> int:
        """Graduated classification level (first bitfield digit)."""
        return int(self.bitfield[0])

    @property
    def flags(self) -> tuple[bool, ...]:
        """Independent boolean flags (remaining bitfield digits)."""
        return tuple(digit == "1" for digit in self.bitfield[1:])


@dataclass(slots=True)
class ExecutionContext:
    """Environment of one execution context.

    ``name`` is the cross-reload identity channel: it holds the slot name the
    context owns and outlives any single controller instance.
    """

    name: str = ""
    path: str = "/"
    user_agent: str = ""
    referrer: str = ""
    hostname: str = "localhost"


def parse_batch(body: str, prefix: str = "rhythm_") -> list[tuple[SlotName, Slot]]:
    """Split a delivered batch body back into slots.

    Raises:
        SlotFormatError: If an entry cannot be parsed.
    """
    entry = re.compile(re.escape(prefix) + r"\d+=")
    starts = [m.start() for m in entry.finditer(body)]
    slots: list[tuple[SlotName, Slot]] = []
    for start, end in zip(starts, [*starts[1:], len(body)]):
        name, _, raw = body[start:end].partition("=")
        slots.append((SlotName(name), Slot.parse(raw)))
    return slots
