"""Tests for SessionController across simulated execution contexts."""

import asyncio
from dataclasses import replace

import pytest

from fullscore.beat import ActionDescriptor, TokenKind, decode
from fullscore.rhythm import EpochCoordinator, EpochRecord, LifecycleState, Slot, parse_batch
from fullscore.settings import Settings
from fullscore.slot_store import MemorySlotStore
from fullscore.transport import MemoryTransport
from tests.support.helpers import FakeClock, make_controller

BUTTON = ActionDescriptor(tag="button", depth=3)
LINK = ActionDescriptor(tag="a", depth=4, ordinal=2)


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, origin="https://example.com", store_path="", **overrides)


async def _slot(store: MemorySlotStore, name: str) -> Slot | None:
    raw = await store.read(name)
    return Slot.parse(raw) if raw is not None else None


async def _epoch(store: MemorySlotStore) -> EpochRecord | None:
    raw = await store.read("score")
    return EpochRecord.parse(raw) if raw is not None else None


class TestStartAndClaim:
    @pytest.mark.asyncio
    async def test_first_context_claims_slot_one(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test that the first context mints an epoch and claims slot one."""
        controller = make_controller(store, transport, clock, _settings())
        await controller.start()

        epoch = await _epoch(store)
        assert epoch is not None
        assert epoch.time == clock.now // 100
        assert epoch.chain == ("1",)
        assert controller.slot_name == "rhythm_1"
        assert controller.context.name == "rhythm_1"
        assert await store.read("rhythm_1") == f"0_{epoch.time}_{epoch.key}_0_0_0_0_0_!home"

    @pytest.mark.asyncio
    async def test_second_context_claims_next_slot(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test that a sibling joins the same epoch on the next slot."""
        a = make_controller(store, transport, clock, _settings())
        b = make_controller(store, transport, clock, _settings(), path="/pricing")
        await a.start()
        await b.start()
        assert b.slot_name == "rhythm_2"
        assert b.epoch.same_epoch(a.epoch)
        assert (await _epoch(store)).chain == ("1", "2")

    @pytest.mark.asyncio
    async def test_device_and_origin_recorded(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        controller = make_controller(store, transport, clock, _settings())
        controller.context.user_agent = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)"
        controller.context.referrer = "https://www.google.com/search"
        await controller.start()
        slot = await _slot(store, "rhythm_1")
        assert (slot.device, slot.origin) == (1, 3)

    @pytest.mark.asyncio
    async def test_stale_slots_archived_and_delivered_on_start(
        self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock
    ):
        """Test that slots of a previous journey are delivered on start."""
        await store.write("rhythm_1", "1_99_old_0_0_0_2_0_!home*a")
        await store.write("rhythm_2", "0_99_old_0_0_0_0_0_!home")
        controller = make_controller(store, transport, clock, _settings())
        await controller.start()

        assert len(transport.bodies) == 1
        delivered = parse_batch(transport.bodies[0])
        assert [name for name, _ in delivered] == ["rhythm_1"]
        assert delivered[0][1].state is LifecycleState.ARCHIVED
        assert controller.slot_name == "rhythm_1"
        assert await store.read("rhythm_2") is None


class TestRestore:
    @pytest.mark.asyncio
    async def test_reload_restores_own_slot(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test that a reloaded context keeps its slot and trace."""
        first = make_controller(store, transport, clock, _settings())
        await first.start()
        await first.record_action(BUTTON)
        clock.advance(30_000)

        reloaded = make_controller(store, transport, clock, _settings(), name=first.context.name)
        await reloaded.start()
        assert reloaded.slot_name == "rhythm_1"
        assert reloaded.slot.clicks == 1
        assert reloaded.trace == "!home*3button1!home"
        assert (await _slot(store, "rhythm_1")).trace == "!home*3button1!home"

    @pytest.mark.asyncio
    async def test_unknown_identity_claims(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        controller = make_controller(store, transport, clock, _settings(), name="rhythm_5")
        await controller.start()
        assert controller.slot_name == "rhythm_1"

    @pytest.mark.asyncio
    async def test_slot_of_other_epoch_not_restored(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test that a slot from another epoch is not re-attached."""
        await store.write("score", "0000000000_100_live___")
        await store.write("rhythm_1", "0_100_live_0_0_0_1_0_!home")
        await store.write("rhythm_2", "1_50_gone_0_0_0_0_0_!home")
        controller = make_controller(store, transport, clock, _settings(), name="rhythm_2")
        await controller.start()
        assert controller.slot_name == "rhythm_2"
        assert (await _slot(store, "rhythm_2")).key == "live"
        assert (await _slot(store, "rhythm_2")).clicks == 0


class TestMutate:
    @pytest.mark.asyncio
    async def test_record_action_counts_and_folds(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test click counting, folding and duration."""
        controller = make_controller(store, transport, clock, _settings())
        await controller.start()
        for _ in range(3):
            await controller.record_action(BUTTON)
            clock.advance(500)
        slot = await _slot(store, "rhythm_1")
        assert slot.clicks == 3
        assert slot.trace == "!home/5/5*3button1"
        assert slot.duration == 10

    @pytest.mark.asyncio
    async def test_record_before_start_starts(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test that an event before start() starts the session."""
        controller = make_controller(store, transport, clock, _settings())
        await controller.record_action(BUTTON)
        assert controller.slot_name == "rhythm_1"
        assert (await _slot(store, "rhythm_1")).clicks == 1

    @pytest.mark.asyncio
    async def test_navigate(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test in-place navigation records a new space."""
        controller = make_controller(store, transport, clock, _settings())
        await controller.start()
        clock.advance(500)
        await controller.navigate("/pricing")
        assert controller.context.path == "/pricing"
        events = decode((await _slot(store, "rhythm_1")).trace)
        assert [(e.kind, e.offset) for e in events] == [(TokenKind.SPACE, 0), (TokenKind.SPACE, 5)]

    @pytest.mark.asyncio
    async def test_scroll_counted_without_tracking(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        controller = make_controller(store, transport, clock, _settings())
        await controller.start()
        await controller.record_scroll(420)
        slot = await _slot(store, "rhythm_1")
        assert slot.scrolls == 1
        assert slot.trace == "!home"

    @pytest.mark.asyncio
    async def test_scroll_tracking_records_position(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test that scroll tracking records the position."""
        controller = make_controller(store, transport, clock, _settings(scroll_tracking=True))
        await controller.start()
        clock.advance(200)
        await controller.record_scroll(420)
        assert (await _slot(store, "rhythm_1")).trace == "!home~2^420"


class TestCapacityRotation:
    @pytest.mark.asyncio
    async def test_overflow_claims_exactly_one_new_slot(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test that overflow moves the triggering event into one new slot."""
        controller = make_controller(store, transport, clock, _settings(capacity=64))
        await controller.start()

        ordinal = 0
        while controller.slot_name == "rhythm_1":
            ordinal += 1
            assert ordinal < 20
            await controller.record_action(ActionDescriptor(tag="button", depth=3, ordinal=ordinal))

        assert controller.slot_name == "rhythm_2"
        old = await _slot(store, "rhythm_1")
        new = await _slot(store, "rhythm_2")
        assert old.state is LifecycleState.STORED
        assert old.clicks == ordinal - 1
        assert f"*3button{ordinal}" not in old.trace
        assert new.clicks == 1
        assert new.trace == f"!home*3button{ordinal}"
        assert new.belongs_to(controller.epoch)
        assert await store.read("rhythm_3") is None

    @pytest.mark.asyncio
    async def test_fresh_slot_overflow_written_anyway(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test that a fresh slot is written even above capacity."""
        controller = make_controller(store, transport, clock, _settings(capacity=64))
        await controller.start()
        await controller.record_action(ActionDescriptor(tag="x" * 80, depth=1))
        assert controller.slot_name == "rhythm_1"
        assert len(await store.read("rhythm_1")) > 64
        assert await store.read("rhythm_2") is None

    @pytest.mark.asyncio
    async def test_store_refusal_rotates(self, transport: MemoryTransport, clock: FakeClock):
        """A write the store refuses below ``capacity`` still rotates the slot."""
        store = MemorySlotStore(clock=clock, max_value_size=100)
        controller = make_controller(store, transport, clock, _settings(capacity=100))
        await controller.start()

        ordinal = 0
        while controller.slot_name == "rhythm_1":
            ordinal += 1
            assert ordinal < 30
            await controller.record_action(ActionDescriptor(tag="button", depth=3, ordinal=ordinal))

        assert controller.slot_name == "rhythm_2"
        old = await _slot(store, "rhythm_1")
        new = await _slot(store, "rhythm_2")
        assert old.state is LifecycleState.STORED
        assert old.clicks == ordinal - 1
        assert new.clicks == 1
        assert new.trace == f"!home*3button{ordinal}"
        assert await store.read("rhythm_3") is None

    @pytest.mark.asyncio
    async def test_fresh_slot_refused_by_store(self, transport: MemoryTransport, clock: FakeClock):
        """The first event on a fresh slot is kept in memory when the store refuses it."""
        store = MemorySlotStore(clock=clock, max_value_size=60)
        controller = make_controller(store, transport, clock, _settings())
        await controller.start()
        await controller.record_action(ActionDescriptor(tag="x" * 40, depth=1))

        assert controller.slot_name == "rhythm_1"
        assert controller.slot.clicks == 1
        assert (await _slot(store, "rhythm_1")).clicks == 0
        assert await store.read("rhythm_2") is None


class TestEpochConvergence:
    @pytest.mark.asyncio
    async def test_contexts_follow_new_epoch(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test that every context follows a newly minted epoch."""
        settings = _settings()
        a = make_controller(store, transport, clock, settings)
        b = make_controller(store, transport, clock, settings)
        await a.start()
        await b.start()

        epochs = EpochCoordinator(store, settings, clock)
        minted = epochs.mint(after=a.epoch)
        await epochs.write(minted)

        await a.record_action(BUTTON)
        await b.record_action(LINK)
        assert a.epoch.same_epoch(minted)
        assert b.epoch.same_epoch(minted)
        assert a.slot_name != b.slot_name
        for controller in (a, b):
            slot = await _slot(store, controller.slot_name)
            assert slot.belongs_to(minted)
            assert slot.clicks == 1

    @pytest.mark.asyncio
    async def test_pool_exhaustion_rolls_journey(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Two slots in use, a third context forces a new epoch."""
        settings = _settings(max_slots=2)
        a = make_controller(store, transport, clock, settings)
        b = make_controller(store, transport, clock, settings)
        c = make_controller(store, transport, clock, settings)

        await a.start()
        for _ in range(3):
            clock.advance(1_000)
            await a.record_action(BUTTON)
        await b.start()
        await b.record_action(LINK)
        first_epoch = b.epoch

        await c.start()
        assert c.slot_name == "rhythm_1"
        assert c.epoch.key == first_epoch.key
        assert c.epoch.bitfield == first_epoch.bitfield
        assert c.epoch.time > first_epoch.time
        fresh = await _slot(store, "rhythm_1")
        assert fresh.clicks == 0
        assert fresh.belongs_to(c.epoch)
        assert await store.read("rhythm_2") is None

        assert len(transport.bodies) == 1
        delivered = dict(parse_batch(transport.bodies[0]))
        assert sorted(delivered) == ["rhythm_1", "rhythm_2"]
        assert delivered["rhythm_1"].clicks == 3
        assert delivered["rhythm_2"].clicks == 1
        assert all(slot.state is LifecycleState.ARCHIVED for slot in delivered.values())

        await a.record_action(BUTTON)
        assert a.epoch.same_epoch(c.epoch)
        assert a.slot_name == "rhythm_2"
        assert (await _slot(store, "rhythm_2")).clicks == 1
        assert len(transport.bodies) == 1

    @pytest.mark.asyncio
    async def test_vanished_epoch_replaced(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test that a deleted epoch record is minted again."""
        controller = make_controller(store, transport, clock, _settings())
        await controller.start()
        old = controller.epoch
        await store.delete("score")
        await controller.record_action(BUTTON)
        assert not controller.epoch.same_epoch(old)
        assert (await _epoch(store)).same_epoch(controller.epoch)


class TestHandoff:
    @pytest.mark.asyncio
    async def test_return_to_context_merges_marker(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test that returning to a context merges after the continuation marker."""
        a = make_controller(store, transport, clock, _settings())
        b = make_controller(store, transport, clock, _settings())
        await a.start()
        await a.record_action(BUTTON)
        await b.start()
        assert (await _slot(store, "rhythm_1")).trace == "!home*3button1___2"

        clock.advance(1_000)
        await a.record_action(LINK)
        assert (await _slot(store, "rhythm_1")).trace == "!home*3button1___2~10*4a2"
        assert (await _slot(store, "rhythm_2")).trace == "!home___1"
        assert (await _epoch(store)).chain == ("1", "2", "1")

        events = decode((await _slot(store, "rhythm_1")).trace)
        assert [(e.kind, e.payload, e.offset) for e in events][-2:] == [(TokenKind.HANDOFF, "2", 0), (TokenKind.ACTION, "4a2", 10)]

    @pytest.mark.asyncio
    async def test_tab_tracking_disabled(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        settings = _settings(tab_tracking=False)
        a = make_controller(store, transport, clock, settings)
        b = make_controller(store, transport, clock, settings)
        await a.start()
        await b.start()
        await a.record_action(BUTTON)
        assert (await _epoch(store)).chain == ()
        assert (await _slot(store, "rhythm_1")).trace == "!home*3button1"


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_every_tap_clicks(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test that a refresh is requested every tap clicks."""
        controller = make_controller(store, transport, clock, _settings(tap=3))
        await controller.start()
        for _ in range(5):
            await controller.record_action(BUTTON)
        assert len(transport.refreshes) == 1
        cookies = transport.refreshes[0]
        assert set(cookies) == {"score", "rhythm_1"}
        assert Slot.parse(cookies["rhythm_1"]).clicks == 3

    @pytest.mark.asyncio
    async def test_superseded_refresh_cancelled(self, store: MemorySlotStore, clock: FakeClock):
        """Test that a newer refresh cancels a pending one."""
        transport = MemoryTransport(refresh_delay=10)
        controller = make_controller(store, transport, clock, _settings(tap=3))
        await controller.start()
        for _ in range(3):
            await controller.record_action(BUTTON)
        first = controller.refresh_task
        for _ in range(3):
            await controller.record_action(BUTTON)
        second = controller.refresh_task
        assert second is not first
        with pytest.raises(asyncio.CancelledError):
            await first
        second.cancel()

    @pytest.mark.asyncio
    async def test_classification_change_forces_refreshes(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test that a bitfield change notifies and forces refreshes."""
        seen: list[EpochRecord] = []
        controller = make_controller(store, transport, clock, _settings(tap=3), on_classification=seen.append)
        await controller.start()

        await store.write("score", replace(controller.epoch, bitfield="2000000001").dump())
        await controller.record_action(BUTTON)
        assert len(transport.refreshes) == 1
        assert [record.level for record in seen] == [2]
        assert seen[0].flags[-1] is True

        for _ in range(3):
            await controller.record_action(BUTTON)
        assert len(transport.refreshes) == 3
        assert controller.epoch.bitfield == "2000000001"


class TestSuspendResume:
    @pytest.mark.asyncio
    async def test_suspend_marks_stored_resume_reactivates(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test the suspend and resume round trip."""
        controller = make_controller(store, transport, clock, _settings())
        await controller.start()
        await controller.record_action(BUTTON)
        await controller.suspend()
        assert (await _slot(store, "rhythm_1")).state is LifecycleState.STORED

        clock.advance(60_000)
        await controller.resume()
        assert (await _slot(store, "rhythm_1")).state is LifecycleState.ACTIVE
        await controller.record_action(LINK)
        assert controller.trace == "!home*3button1*4a2"

    @pytest.mark.asyncio
    async def test_resume_after_journey_ended(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test that resume starts a new journey when the epoch is gone."""
        controller = make_controller(store, transport, clock, _settings())
        await controller.start()
        await controller.record_action(BUTTON)
        await controller.teardown()
        assert await store.read("score") is None

        await controller.resume()
        assert controller.slot_name == "rhythm_1"
        assert (await _epoch(store)).same_epoch(controller.epoch)
        assert (await _slot(store, "rhythm_1")).clicks == 0

    @pytest.mark.asyncio
    async def test_power_mode_delivers_on_suspend(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test that power mode archives and delivers on suspend."""
        controller = make_controller(store, transport, clock, _settings(power_mode=True))
        await controller.start()
        epoch = controller.epoch
        await controller.record_action(BUTTON)
        await controller.suspend()

        assert len(transport.bodies) == 1
        assert await store.read("rhythm_1") is None
        assert (await _epoch(store)).same_epoch(epoch)
        assert controller.slot_name is None

        await controller.record_action(BUTTON)
        assert controller.slot_name == "rhythm_1"
        assert controller.epoch.same_epoch(epoch)


class TestTeardown:
    @pytest.mark.asyncio
    async def test_last_context_ends_journey(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test that the last context archives, delivers and clears the epoch."""
        controller = make_controller(store, transport, clock, _settings())
        await controller.start()
        await controller.record_action(BUTTON)
        await controller.teardown()

        assert await store.read("score") is None
        assert await store.scan("rhythm_") == []
        assert [name for name, _ in parse_batch(transport.bodies[0])] == ["rhythm_1"]
        assert controller.slot_name is None
        assert controller.context.name == ""

    @pytest.mark.asyncio
    async def test_below_threshold_deleted_not_delivered(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test that a slot without clicks is deleted, not delivered."""
        controller = make_controller(store, transport, clock, _settings())
        await controller.start()
        await controller.teardown()
        assert await store.scan("rhythm_") == []
        assert transport.bodies == []

    @pytest.mark.asyncio
    async def test_sibling_keeps_journey_alive(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """Test that an active sibling defers the end of the journey."""
        a = make_controller(store, transport, clock, _settings())
        b = make_controller(store, transport, clock, _settings())
        await a.start()
        await a.record_action(BUTTON)
        await b.start()
        await b.record_action(LINK)

        await a.teardown()
        assert (await _slot(store, "rhythm_1")).state is LifecycleState.STORED
        assert await store.read("score") is not None
        assert transport.bodies == []

        await b.teardown()
        delivered = parse_batch(transport.bodies[0])
        assert [name for name, _ in delivered] == ["rhythm_1", "rhythm_2"]
        assert await store.read("score") is None

    @pytest.mark.asyncio
    async def test_idle_sibling_keeps_journey_alive(self, store: MemorySlotStore, transport: MemoryTransport, clock: FakeClock):
        """A sibling that has not clicked yet is still a live context."""
        a = make_controller(store, transport, clock, _settings())
        b = make_controller(store, transport, clock, _settings())
        await a.start()
        await a.record_action(BUTTON)
        await b.start()

        await a.teardown()
        assert (await _slot(store, "rhythm_1")).state is LifecycleState.STORED
        assert (await _slot(store, "rhythm_2")).state is LifecycleState.ACTIVE
        assert await store.read("score") is not None
        assert transport.bodies == []

        await b.teardown()
        delivered = parse_batch(transport.bodies[0])
        assert [name for name, _ in delivered] == ["rhythm_1"]
        assert await store.read("rhythm_2") is None
        assert await store.read("score") is None

    @pytest.mark.asyncio
    async def test_failed_delivery_retried_on_next_start(self, store: MemorySlotStore, clock: FakeClock):
        """Test that a refused batch is delivered by the next start."""
        transport = MemoryTransport(available=False)
        controller = make_controller(store, transport, clock, _settings())
        await controller.start()
        await controller.record_action(BUTTON)
        await controller.teardown()
        assert (await _slot(store, "rhythm_1")).state is LifecycleState.ARCHIVED

        transport.available = True
        successor = make_controller(store, transport, clock, _settings())
        await successor.start()
        assert len(transport.bodies) == 1
        assert parse_batch(transport.bodies[0])[0][1].clicks == 1
        assert successor.slot_name == "rhythm_1"
        assert (await _slot(store, "rhythm_1")).clicks == 0
