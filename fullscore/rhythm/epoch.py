"""Epoch record coordination and handoff merging."""

import secrets

from fullscore._types import Clock
from fullscore.beat.tokens import HANDOFF_MARKER, TAGS, TokenKind
from fullscore.exceptions import EpochFormatError, SlotCapacityError, SlotFormatError
from fullscore.logging import get_score_logger
from fullscore.rhythm._models import DEFAULT_BITFIELD, EpochRecord, LifecycleState, Slot
from fullscore.settings import Settings
from fullscore.slot_store import SlotStore

logger = get_score_logger(__name__)

_KEY_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


class EpochCoordinator:
    """Reads, mints and rewrites the shared epoch record."""

    def __init__(self, store: SlotStore, settings: Settings, clock: Clock) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock

    async def read(self) -> EpochRecord | None:
        raw = await self._store.read(self._settings.epoch_name)
        if raw is None:
            return None
        try:
            return EpochRecord.parse(raw)
        except EpochFormatError as e:
            logger.warning("Ignoring malformed epoch record: %s", e)
            return None

    def new_key(self) -> str:
        return "".join(secrets.choice(_KEY_ALPHABET) for _ in range(self._settings.key_length))

    def mint(self, *, bitfield: str = DEFAULT_BITFIELD, key: str | None = None, after: EpochRecord | None = None) -> EpochRecord:
        """Create a new epoch record with an empty handoff chain.

        ``after`` guarantees a strictly newer timestamp than the epoch being
        replaced, so siblings always detect the change.
        """
        time = self._clock() // self._settings.tick_ms
        if after is not None:
            time = max(time, after.time + 1)
        return EpochRecord(bitfield=bitfield, time=time, key=key or self.new_key())

    async def write(self, record: EpochRecord) -> None:
        await self._store.write(self._settings.epoch_name, record.dump())

    async def clear(self) -> None:
        await self._store.delete(self._settings.epoch_name)

    async def append_handoff(self, record: EpochRecord, number: str) -> tuple[EpochRecord, str | None]:
        """Append ``number`` to the chain unless it is already the last entry.

        Returns:
            The possibly updated record and the previously last number, or
            None when nothing was appended.
        """
        if record.chain and record.chain[-1] == number:
            return record, None
        previous = record.chain[-1] if record.chain else None
        updated = record.with_chain((*record.chain, number))
        await self.write(updated)
        return updated, previous

    async def mark_continuation(self, previous_number: str, number: str) -> bool:
        """Append a handoff marker to the previous context's trace.

        Archived or missing slots are left untouched, as are slots the store
        refuses to grow.
        """
        name = f"{self._settings.slot_prefix}{previous_number}"
        raw = await self._store.read(name)
        if raw is None:
            return False
        try:
            slot = Slot.parse(raw)
        except SlotFormatError:
            return False
        if slot.state is LifecycleState.ARCHIVED:
            return False
        slot.trace += f"{HANDOFF_MARKER}{number}"
        try:
            await self._store.write(name, slot.dump(), ttl=self._settings.age_seconds)
        except SlotCapacityError as e:
            logger.debug("Skipping handoff marker on %s: %s", name, e)
            return False
        logger.debug("Marked handoff %s -> %s", previous_number, number)
        return True


def _at_boundary(trace: str, index: int) -> bool:
    return index >= len(trace) or trace[index] in TAGS or trace.startswith(HANDOFF_MARKER, index)


def merge_traces(stored: str, local: str) -> str:
    """Append the part of ``local`` that ``stored`` has not seen yet.

    ``stored`` carries a sibling's continuation marker. The common prefix is
    pulled back to a token boundary in both traces, and a leading fold tail
    is rewritten as a time token so it cannot attach to a foreign action.
    """
    limit = min(len(stored), len(local))
    index = 0
    while index < limit and stored[index] == local[index]:
        index += 1
    while index > 0 and not (_at_boundary(local, index) and _at_boundary(stored, index)):
        index -= 1
    suffix = local[index:]
    if suffix.startswith(TokenKind.METHOD.tag):
        suffix = TokenKind.TIME.tag + suffix.lstrip(TokenKind.METHOD.tag)
    return stored + suffix
