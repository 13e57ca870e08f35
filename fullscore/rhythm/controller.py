"""Per-context session controller.

Each execution context runs one SessionController against the shared store.
Controllers never talk to each other: every decision is re-derived from a
fresh read of the epoch record and the slot pool, and writes are plain
last-write-wins.

Lifecycle:
    start()     epoch read or minted, stale slots archived, pending batch
                delivered, own slot restored or claimed
    record_*()  mutate: epoch re-check, event applied, slot persisted
    suspend()   own slot marked stored (power mode: archive and deliver)
    resume()    own slot marked active, time cursor reset
    teardown()  own slot deleted below threshold, journey ended when no
                active slot remains
"""

import asyncio
from collections.abc import Callable

from fullscore._types import Clock, SlotName, wall_clock_ms
from fullscore.beat import ActionDescriptor, BeatMaps, TraceBuilder
from fullscore.exceptions import SlotCapacityError
from fullscore.logging import get_score_logger
from fullscore.rhythm._models import EpochRecord, ExecutionContext, LifecycleState, Slot
from fullscore.rhythm.classify import classify_device, classify_origin
from fullscore.rhythm.epoch import EpochCoordinator, merge_traces
from fullscore.rhythm.pool import SlotPool
from fullscore.settings import Settings
from fullscore.settings import settings as default_settings
from fullscore.slot_store import SlotStore
from fullscore.transport import Transport

logger = get_score_logger(__name__)

Mutation = Callable[[Slot, TraceBuilder], None]
ClassificationListener = Callable[[EpochRecord], None]


class SessionController:
    """Owns one slot of the shared pool on behalf of one execution context.

    Example:
        >>> controller = SessionController(MemorySlotStore(), MemoryTransport(), ExecutionContext(path="/"))
        >>> await controller.start()
        >>> await controller.record_action(ActionDescriptor(tag="button", depth=3))
        >>> controller.trace
        '!home*3button1'
    """

    def __init__(
        self,
        store: SlotStore,
        transport: Transport,
        context: ExecutionContext,
        *,
        settings: Settings | None = None,
        maps: BeatMaps | None = None,
        clock: Clock | None = None,
        on_classification: ClassificationListener | None = None,
    ) -> None:
        self._settings = settings or default_settings
        self._clock = clock or wall_clock_ms
        self._maps = maps if maps is not None else BeatMaps.from_settings(self._settings)
        self._transport = transport
        self._pool = SlotPool(store, self._settings, transport)
        self._epochs = EpochCoordinator(store, self._settings, self._clock)
        self._on_classification = on_classification
        self.context = context
        self.epoch: EpochRecord | None = None
        self.slot: Slot | None = None
        self.beat: TraceBuilder | None = None
        self._fresh = False
        self._forced_refreshes = 0
        self._refresh_task: asyncio.Task[None] | None = None
        self._last_written = ""

    @property
    def slot_name(self) -> SlotName | None:
        return SlotName(self.context.name) if self.slot is not None else None

    @property
    def trace(self) -> str:
        return self.beat.serialize() if self.beat is not None else ""

    @property
    def pool(self) -> SlotPool:
        return self._pool

    @property
    def refresh_task(self) -> asyncio.Task[None] | None:
        return self._refresh_task

    # --- Lifecycle ---

    async def start(self) -> None:
        epoch = await self._epochs.read()
        if epoch is None:
            epoch = self._epochs.mint()
            await self._epochs.write(epoch)
            logger.info("Minted epoch %s_%s", epoch.time, epoch.key)
        self.epoch = epoch
        await self._pool.archive(stale_for=epoch)
        await self._pool.collect()
        await self._session()

    async def suspend(self) -> None:
        """Context lost visibility."""
        if self.slot is None:
            return
        if self._settings.power_mode:
            await self._pool.archive()
            await self._pool.collect()
            self._discard()
            self.context.name = ""
            return
        own = await self._pool.load(self.context.name)
        if own is not None and own.state is LifecycleState.ACTIVE:
            own.state = LifecycleState.STORED
            await self._pool.save(self.context.name, own)

    async def resume(self) -> None:
        """Context regained visibility. The suspension gap is not charged."""
        epoch = await self._epochs.read()
        if epoch is None:
            logger.info("Epoch ended while suspended, starting a new journey")
            self.epoch = self._epochs.mint()
            await self._epochs.write(self.epoch)
            self._discard()
            await self._claim()
            return
        if self.slot is not None:
            own = await self._pool.load(self.context.name)
            if own is not None and own.belongs_to(epoch) and own.state is LifecycleState.STORED:
                own.state = LifecycleState.ACTIVE
                await self._pool.save(self.context.name, own)
        if self.beat is not None:
            self.beat.reset_cursor()

    async def teardown(self) -> None:
        """Context is terminating.

        The own slot is deleted when below the deletion threshold, otherwise
        marked stored. When no active slot is left, this is the last context
        standing and the journey ends.
        """
        if self.slot is not None and await self._pool.discard_below_threshold(self.context.name):
            self._discard()
            self.context.name = ""
        if self.slot is not None:
            own = await self._pool.load(self.context.name)
            if own is not None and own.state is LifecycleState.ACTIVE:
                own.state = LifecycleState.STORED
                await self._pool.save(self.context.name, own)
        if not await self._pool.any_active():
            await self._end_journey()

    # --- Events ---

    async def record_action(self, descriptor: ActionDescriptor) -> None:
        def apply(slot: Slot, beat: TraceBuilder) -> None:
            slot.clicks += 1
            beat.record_action(descriptor)

        await self._commit(apply)
        self._request_refresh()

    async def record_scroll(self, position: int | None = None) -> None:
        """Count a scroll; with scroll tracking on, also record ``position``."""
        track = self._settings.scroll_tracking

        def apply(slot: Slot, beat: TraceBuilder) -> None:
            slot.scrolls += 1
            if track and position is not None:
                beat.record_position(position)

        await self._commit(apply)

    async def navigate(self, path: str) -> None:
        """In-place navigation to ``path`` without a reload."""
        self.context.path = path
        await self._commit(lambda slot, beat: beat.record_space(path))

    # --- Session protocol ---

    async def _session(self, *, force: bool = False) -> None:
        if not force and await self._restore():
            return
        await self._claim()

    async def _restore(self) -> bool:
        name = self.context.name
        if not name.startswith(self._settings.slot_prefix) or self.epoch is None:
            return False
        slot = await self._pool.load(name)
        if slot is None or slot.state is LifecycleState.ARCHIVED or not slot.belongs_to(self.epoch):
            logger.debug("Cannot restore %s, claiming a new slot", name)
            self.context.name = ""
            return False
        slot.state = LifecycleState.ACTIVE
        self.slot = slot
        self.beat = self._new_builder()
        self.beat.resume(slot.trace)
        self.beat.record_space(self.context.path)
        self._fresh = False
        await self._persist()
        logger.debug("Restored %s", name)
        return True

    async def _claim(self) -> None:
        assert self.epoch is not None
        name = await self._pool.first_free()
        if name is None:
            logger.info("Slot pool of %d exhausted, rolling the journey into a new epoch", self._settings.max_slots)
            await self._pool.archive()
            await self._pool.collect()
            self.epoch = self._epochs.mint(bitfield=self.epoch.bitfield, key=self.epoch.key, after=self.epoch)
            await self._epochs.write(self.epoch)
            name = self._pool.name_for(1)
        self.context.name = name
        self.slot = Slot(
            state=LifecycleState.ACTIVE,
            time=self.epoch.time,
            key=self.epoch.key,
            device=int(classify_device(self.context.user_agent)),
            origin=int(classify_origin(self.context.referrer, self.context.hostname, self._settings.referrer_map)),
        )
        self.beat = self._new_builder()
        self.beat.record_space(self.context.path)
        self._fresh = True
        await self._persist()
        logger.debug("Claimed %s", name)

    async def _commit(self, apply: Mutation) -> None:
        if self.epoch is None:
            await self.start()
        elif self.slot is None:
            await self._session()
        current = await self._epochs.read()
        assert self.epoch is not None
        if current is None or not current.same_epoch(self.epoch):
            logger.info("Epoch changed under %s, following", self.context.name or "context")
            if current is None:
                current = self._epochs.mint()
                await self._epochs.write(current)
            self.epoch = current
            self._discard()
            await self._session(force=True)
        else:
            self._observe_classification(current)
            self.epoch = current
        assert self.slot is not None and self.beat is not None
        apply(self.slot, self.beat)
        await self._persist(replay=apply)
        self._fresh = False

    async def _persist(self, replay: Mutation | None = None) -> None:
        assert self.slot is not None and self.beat is not None
        if self._settings.tab_tracking and not self._settings.power_mode:
            await self._handoff()
        self.slot.state = LifecycleState.ACTIVE
        self.slot.trace = self.beat.serialize()
        self.slot.duration = self._clock() // self._settings.tick_ms - self.slot.time
        raw = self.slot.dump()
        if not self._fresh and len(raw) > self._settings.capacity:
            await self._rotate(replay)
            return
        try:
            self._last_written = await self._pool.save(self.context.name, self.slot)
        except SlotCapacityError as e:
            if self._fresh:
                logger.warning("Store refused freshly claimed %s, keeping it in memory: %s", self.context.name, e)
                return
            await self._rotate(replay)

    async def _rotate(self, replay: Mutation | None) -> None:
        logger.info("Slot %s reached capacity, rotating", self.context.name)
        stored = await self._pool.load(self.context.name)
        if stored is not None:
            stored.state = LifecycleState.STORED
            await self._pool.save(self.context.name, stored)
        self._discard()
        await self._claim()
        if replay is None:
            return
        assert self.slot is not None and self.beat is not None
        replay(self.slot, self.beat)
        await self._persist()

    async def _handoff(self) -> None:
        assert self.epoch is not None and self.beat is not None
        number = self._pool.number_of(self.context.name)
        self.epoch, previous = await self._epochs.append_handoff(self.epoch, number)
        if previous is not None:
            await self._epochs.mark_continuation(previous, number)
        stored = await self._pool.load(self.context.name)
        if stored is not None and stored.state is not LifecycleState.ARCHIVED and stored.handoff_pending:
            self.beat.notes = [merge_traces(stored.trace, self.beat.serialize())]

    async def _end_journey(self) -> None:
        archived = await self._pool.archive()
        await self._epochs.clear()
        delivered = await self._pool.collect()
        logger.info("Journey ended: %d slots archived, %d delivered", archived, delivered)
        self._discard()
        self.context.name = ""
        self.epoch = None

    # --- Classification and refresh ---

    def _observe_classification(self, current: EpochRecord) -> None:
        if self.epoch is None or current.bitfield == self.epoch.bitfield:
            return
        logger.debug("Classification changed: %s -> %s", self.epoch.bitfield, current.bitfield)
        self._forced_refreshes = self._settings.tap
        if self._on_classification is not None:
            self._on_classification(current)

    def _request_refresh(self) -> None:
        if self.slot is None or self.epoch is None:
            return
        forced = self._forced_refreshes > 0
        if not forced and self.slot.clicks % self._settings.tap != 0:
            return
        if self._refresh_task is not None and not self._refresh_task.done() and not forced:
            logger.debug("Cancelling superseded refresh")
            self._refresh_task.cancel()
        cookies = {self._settings.epoch_name: self.epoch.dump(), self.context.name: self._last_written}
        self._refresh_task = self._transport.refresh(cookies)
        if forced:
            self._forced_refreshes -= 1

    # --- Helpers ---

    def _new_builder(self) -> TraceBuilder:
        return TraceBuilder(maps=self._maps, tick_ms=self._settings.tick_ms, clock=self._clock)

    def _discard(self) -> None:
        self.slot = None
        self.beat = None
        self._fresh = False

    def __repr__(self) -> str:
        return f"SessionController(slot={self.context.name or None!r}, epoch={self.epoch.dump() if self.epoch else None!r})"
