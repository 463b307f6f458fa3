import asyncio
import random
from dataclasses import replace

import pytest

from device_profile import COMPACT_PROFILE, FULL_PROFILE
from lottery import DrawFailed, DrawOutcome, EmptyCatalog, PrizeSpec
from scheduler import AsyncioScheduler, VirtualScheduler
from spin_engine import SpinPhase
from spin_session import PresentationSink, SpinSession


class RecordingSink(PresentationSink):
    def __init__(self):
        self.events = []

    def positions_changed(self, positions):
        self.events.append(("positions", len(positions)))

    def highlight_changed(self, index):
        self.events.append(("highlight", index))

    def rotation_changed(self, rotation):
        self.events.append(("rotation", rotation))

    def settled(self, index, entry, outcome):
        self.events.append(("settled", index, entry, outcome))

    def draw_failed(self, error):
        self.events.append(("failed", error))

    def of(self, kind):
        return [event for event in self.events if event[0] == kind]


class FakeDraw:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    async def __call__(self, code):
        self.calls.append(code)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def catalog():
    return [PrizeSpec(id=index, name=f"Prize {index}") for index in range(1, 6)]


def make_session(catalog, draw, profile=FULL_PROFILE, seed=7):
    scheduler = VirtualScheduler()
    sink = RecordingSink()
    session = SpinSession(catalog, profile, scheduler, draw, sink=sink, rng=random.Random(seed))
    return session, scheduler, sink


def wait_for_settle(session, scheduler):
    scheduler.run_until(lambda: session.engine.phase is SpinPhase.DONE)


def test_mount_publishes_positions_and_starts_ambient(catalog):
    session, scheduler, sink = make_session(catalog, FakeDraw())

    assert sink.events == [("positions", 60)]
    assert len(session.pool) == 60
    assert scheduler.pending == 1

    scheduler.advance(3 * FULL_PROFILE.frame_interval_ms)
    rotations = sink.of("rotation")
    assert len(rotations) == 3
    assert rotations[-1][1] == pytest.approx((0.6, 0.9))
    assert session.rotation == pytest.approx((0.6, 0.9))


def test_winning_spin_lands_on_the_prize_slot(catalog):
    outcome = DrawOutcome(is_winner=True, prize_id=3, prize_name="Prize 3", code="LUCKY")
    draw = FakeDraw(outcome)
    session, scheduler, sink = make_session(catalog, draw)

    target = asyncio.run(session.spin("LUCKY"))
    assert target == 2
    assert draw.calls == ["LUCKY"]
    assert session.is_busy
    assert scheduler.pending == 1

    wait_for_settle(session, scheduler)

    highlights = [event[1] for event in sink.of("highlight")]
    assert highlights[0] is None
    assert highlights[-1] is None
    assert highlights[-2] == 2
    (settled,) = sink.of("settled")
    assert settled[1] == 2
    assert settled[2].source_id == 3
    assert settled[3] is outcome
    assert not session.is_busy
    assert scheduler.pending == 1


def test_no_ambient_rotation_while_spinning(catalog):
    session, scheduler, sink = make_session(catalog, FakeDraw(DrawOutcome(is_winner=True, prize_id=1)))
    asyncio.run(session.spin("A"))

    spin_rotations = 0
    while session.engine.phase is not SpinPhase.DONE:
        before = len(sink.of("rotation"))
        scheduler.step()
        spin_rotations += len(sink.of("rotation")) - before
    assert spin_rotations == session.engine.state.ticks

    rotation = session.rotation
    scheduler.advance(FULL_PROFILE.frame_interval_ms)
    assert session.rotation == pytest.approx(
        (rotation[0] + FULL_PROFILE.ambient_step[0], rotation[1] + FULL_PROFILE.ambient_step[1])
    )


def test_spin_request_while_busy_is_ignored(catalog):
    draw = FakeDraw(DrawOutcome(is_winner=True, prize_id=2), DrawOutcome(is_winner=True, prize_id=4))
    session, scheduler, sink = make_session(catalog, draw)

    assert asyncio.run(session.spin("FIRST")) == 1
    scheduler.advance(500)
    assert asyncio.run(session.spin("SECOND")) is None
    assert draw.calls == ["FIRST"]
    assert session.engine.state.target_index == 1

    wait_for_settle(session, scheduler)
    assert asyncio.run(session.spin("SECOND")) == 3


def test_begin_draw_blocks_a_second_request(catalog):
    session, scheduler, sink = make_session(catalog, FakeDraw())
    assert session.begin_draw()
    assert not session.begin_draw()
    assert scheduler.pending == 0


def test_failed_draw_returns_to_idle_and_can_retry(catalog):
    draw = FakeDraw(ValueError("Invalid code: NOPE"), DrawOutcome(is_winner=True, prize_id=5))
    session, scheduler, sink = make_session(catalog, draw)

    with pytest.raises(DrawFailed) as excinfo:
        asyncio.run(session.spin("NOPE"))
    assert str(excinfo.value) == "Invalid code: NOPE"
    assert excinfo.value.code == "NOPE"
    assert excinfo.value.retryable
    assert isinstance(excinfo.value.__cause__, ValueError)
    assert sink.of("failed") == [("failed", excinfo.value)]
    assert not session.is_busy
    assert session.engine.phase is SpinPhase.IDLE
    assert scheduler.pending == 1

    assert asyncio.run(session.spin("GOOD")) == 4
    wait_for_settle(session, scheduler)
    assert sink.of("settled")[0][1] == 4


def test_failed_draw_without_message_gets_a_generic_one(catalog):
    session, scheduler, sink = make_session(catalog, FakeDraw(RuntimeError()))
    with pytest.raises(DrawFailed, match="Invalid code or error occurred"):
        asyncio.run(session.spin("X"))


def test_non_winner_lands_on_some_slot(catalog):
    draws = [DrawOutcome(is_winner=False, message="Better luck next time!") for _ in range(3)]
    session, scheduler, sink = make_session(catalog, FakeDraw(*draws), profile=COMPACT_PROFILE)

    for code in ("A", "B", "C"):
        target = asyncio.run(session.spin(code))
        assert 0 <= target < COMPACT_PROFILE.pool_length
        wait_for_settle(session, scheduler)
        assert sink.of("settled")[-1][1] == target


def test_winner_missing_from_pool_still_spins(catalog):
    session, scheduler, sink = make_session(catalog, FakeDraw(DrawOutcome(is_winner=True, prize_id="ghost")))
    target = asyncio.run(session.spin("A"))
    assert 0 <= target < 60
    wait_for_settle(session, scheduler)
    assert sink.of("settled")[0][1] == target


def test_close_cancels_pending_ticks(catalog):
    session, scheduler, sink = make_session(catalog, FakeDraw(DrawOutcome(is_winner=True, prize_id=1)))
    asyncio.run(session.spin("A"))
    scheduler.advance(1000)

    session.close()
    count = len(sink.events)
    assert scheduler.pending == 0
    scheduler.advance(60_000)
    assert len(sink.events) == count
    assert asyncio.run(session.spin("B")) is None


def test_context_manager_closes_the_session(catalog):
    with make_session(catalog, FakeDraw())[0] as session:
        scheduler = session.scheduler
        assert scheduler.pending == 1
    assert session.closed
    assert scheduler.pending == 0


def test_catalog_change_rebuilds_the_pool_when_idle(catalog):
    session, scheduler, sink = make_session(catalog, FakeDraw(DrawOutcome(is_winner=True, prize_id=1)))

    assert session.load_catalog(catalog[:2])
    assert {entry.source_id for entry in session.pool} == {1, 2}
    assert sink.of("positions") == [("positions", 60), ("positions", 60)]

    asyncio.run(session.spin("A"))
    assert not session.load_catalog(catalog)
    assert {entry.source_id for entry in session.pool} == {1, 2}


def test_empty_catalog_cannot_mount():
    with pytest.raises(EmptyCatalog):
        make_session([], FakeDraw())


def test_session_runs_on_an_asyncio_loop(catalog):
    profile = replace(
        COMPACT_PROFILE,
        pool_length=5,
        initial_speed_ms=1,
        speed_increment_ms=1,
        rounds_before_slowdown=0,
        min_rounds_before_stop=1,
        stop_speed_threshold_ms=3,
        settle_delay_ms=1,
    )

    async def scenario():
        settled = asyncio.get_running_loop().create_future()

        class FutureSink(PresentationSink):
            def settled(self, index, entry, outcome):
                settled.set_result(index)

        draw = FakeDraw(DrawOutcome(is_winner=True, prize_id=4))
        with SpinSession(catalog, profile, AsyncioScheduler(), draw, sink=FutureSink()) as session:
            target = await session.spin("A")
            index = await asyncio.wait_for(settled, timeout=5)
        return target, index

    assert asyncio.run(scenario()) == (3, 3)
