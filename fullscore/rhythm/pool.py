"""The bounded pool of numbered slots in the shared store."""

from fullscore._types import SlotName
from fullscore.exceptions import SlotFormatError
from fullscore.logging import get_score_logger
from fullscore.rhythm._models import EpochRecord, LifecycleState, Slot
from fullscore.settings import Settings
from fullscore.slot_store import SlotStore
from fullscore.transport import Transport

logger = get_score_logger(__name__)


class SlotPool:
    """Slot bookkeeping shared by every controller of one journey.

    Nothing here is cached: each call re-reads the store because sibling
    contexts write to it without coordination.
    """

    def __init__(self, store: SlotStore, settings: Settings, transport: Transport) -> None:
        self._store = store
        self._settings = settings
        self._transport = transport

    @property
    def names(self) -> list[SlotName]:
        return [self.name_for(n) for n in range(1, self._settings.max_slots + 1)]

    def name_for(self, number: int | str) -> SlotName:
        return SlotName(f"{self._settings.slot_prefix}{number}")

    def number_of(self, name: str) -> str:
        return name.removeprefix(self._settings.slot_prefix)

    async def load(self, name: str) -> Slot | None:
        """Read and parse one slot. Unparseable values count as absent."""
        raw = await self._store.read(name)
        if raw is None:
            return None
        try:
            return Slot.parse(raw)
        except SlotFormatError as e:
            logger.debug("Ignoring malformed slot %s: %s", name, e)
            return None

    async def save(self, name: str, slot: Slot) -> str:
        raw = slot.dump()
        await self._store.write(name, raw, ttl=self._settings.age_seconds)
        return raw

    async def first_free(self) -> SlotName | None:
        for name in self.names:
            if await self._store.read(name) is None:
                return name
        return None

    async def any_active(self) -> bool:
        for name in self.names:
            slot = await self.load(name)
            if slot is not None and slot.state is LifecycleState.ACTIVE:
                return True
        return False

    def _below_threshold(self, slot: Slot) -> bool:
        return slot.clicks < self._settings.delete_threshold

    async def discard_below_threshold(self, name: str) -> bool:
        """Delete slot ``name`` when it is not archived and has too few clicks.

        Only the named slot is considered. Sibling slots are judged by
        archive() once the journey ends.
        """
        slot = await self.load(name)
        if slot is None or slot.state is LifecycleState.ARCHIVED or not self._below_threshold(slot):
            return False
        await self._store.delete(name)
        logger.debug("Deleted %s below the click threshold", name)
        return True

    async def archive(self, *, stale_for: EpochRecord | None = None) -> int:
        """Mark slots archived, or delete them when below the deletion threshold.

        Args:
            stale_for: When given, only slots written under a different epoch
                       are processed. Malformed values are always deleted.

        Returns:
            Number of slots newly marked archived.
        """
        archived = 0
        for name in self.names:
            raw = await self._store.read(name)
            if raw is None:
                continue
            try:
                slot = Slot.parse(raw)
            except SlotFormatError as e:
                logger.warning("Deleting malformed slot %s: %s", name, e)
                await self._store.delete(name)
                continue
            if slot.state is LifecycleState.ARCHIVED:
                continue
            if stale_for is not None and slot.belongs_to(stale_for):
                continue
            if self._below_threshold(slot):
                await self._store.delete(name)
                continue
            slot.state = LifecycleState.ARCHIVED
            await self.save(name, slot)
            archived += 1
        return archived

    async def collect(self) -> int:
        """Deliver every archived slot as one batch and delete them on success.

        Returns:
            Number of slots delivered. Zero when nothing was archived or the
            transport refused the batch; refused slots stay for the next pass.
        """
        entries = []
        for name in self.names:
            slot = await self.load(name)
            if slot is not None and slot.state is LifecycleState.ARCHIVED:
                entries.append((name, slot.dump()))
        if not entries:
            return 0
        body = "".join(f"{name}={raw}" for name, raw in entries)
        if not await self._transport.deliver(body):
            logger.warning("Delivery of %d archived slots failed, keeping them for retry", len(entries))
            return 0
        for name, _ in entries:
            await self._store.delete(name)
        logger.info("Delivered %d archived slots (%d chars)", len(entries), len(body))
        return len(entries)
