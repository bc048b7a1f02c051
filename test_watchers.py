#!/usr/bin/env python3
"""
Starbot change tracking and poll loop tests.
No network: snapshots are built by hand and the clock is driven manually.
"""

import asyncio
import sys
from pathlib import Path

import pytest

# Add current directory to path for bot imports
sys.path.insert(0, str(Path(__file__).parent))

from starbot import (
    ActivitySnapshot,
    ChallengeRecord,
    ChangeTracker,
    ClientData,
    FinishedGameRecord,
    GameRecord,
    PollLoop,
    poll_interval,
)

ME = "starbot"


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, secs: float) -> None:
        self.now += secs


def game(game_id: int, opponent: str = "Alice", action_needed: bool = False) -> GameRecord:
    cd = ClientData(p1_name=ME, p1_auth=50, p2_name=opponent, p2_auth=42)
    return GameRecord(id=game_id, opponent_name=opponent, action_needed=action_needed, own_name=ME, client_data=cd)


def snap(games=(), challenges=(), finished=()) -> ActivitySnapshot:
    return ActivitySnapshot(active_games=list(games), challenges=list(challenges), finished_games=list(finished))


# ---------------------------------------------------------------------------
# ChangeTracker
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_priming_suppresses_existing_activity():
    """Everything present at startup is absorbed silently"""
    tracker = ChangeTracker(clock=FakeClock())
    s0 = snap(
        games=[game(1), game(2, "Bob", True)],
        challenges=[ChallengeRecord(7, "A", "B")],
        finished=[FinishedGameRecord(99)],
    )
    await tracker.prime(s0)

    assert tracker.primed
    assert await tracker.detect_turn_changes(s0) == {}
    assert await tracker.detect_new_challenges(s0) == []
    assert await tracker.detect_new_finished_games(s0) == []


@pytest.mark.asyncio
async def test_priming_does_not_move_timestamp():
    clock = FakeClock()
    tracker = ChangeTracker(clock=clock)
    clock.advance(120)
    await tracker.prime(snap(games=[game(1)]))
    assert tracker.last_change_at == 1000.0


@pytest.mark.asyncio
async def test_turn_change_reported_once():
    """Prime with Alice to act, then Bob: one report, then silence"""
    tracker = ChangeTracker(clock=FakeClock())
    await tracker.prime(snap(games=[game(1, "Alice", action_needed=True)]))
    assert (await tracker.detect_turn_changes(snap(games=[game(1, "Alice", True)]))) == {}

    changed = await tracker.detect_turn_changes(snap(games=[game(1, "Alice", action_needed=False)]))
    assert list(changed) == [1]
    assert changed[1].which_turn() == ME

    assert await tracker.detect_turn_changes(snap(games=[game(1, "Alice", action_needed=False)])) == {}


@pytest.mark.asyncio
async def test_detect_turn_changes_is_idempotent():
    tracker = ChangeTracker(clock=FakeClock())
    s = snap(games=[game(5), game(6, "Carol", True)])
    first = await tracker.detect_turn_changes(s)
    assert sorted(first) == [5, 6]
    assert await tracker.detect_turn_changes(s) == {}


@pytest.mark.asyncio
async def test_single_report_across_many_snapshots():
    """A turn that flips exactly once is reported exactly once"""
    tracker = ChangeTracker(clock=FakeClock())
    await tracker.prime(snap(games=[game(3, "Dave", True)]))
    sequence = [True, True, False, False, False, False]
    reports = 0
    for flag in sequence:
        reports += len(await tracker.detect_turn_changes(snap(games=[game(3, "Dave", flag)])))
    assert reports == 1


@pytest.mark.asyncio
async def test_new_game_is_reported_and_vanished_game_kept():
    tracker = ChangeTracker(clock=FakeClock())
    await tracker.prime(snap(games=[game(1)]))

    changed = await tracker.detect_turn_changes(snap(games=[game(1), game(2, "Eve")]))
    assert list(changed) == [2]

    # Game 1 finishes and drops out of the active list; it stays tracked
    assert await tracker.detect_turn_changes(snap(games=[game(2, "Eve")])) == {}
    assert sorted(tracker.tracked_game_ids()) == [1, 2]

    # Coming back unchanged is not news
    assert await tracker.detect_turn_changes(snap(games=[game(1), game(2, "Eve")])) == {}


@pytest.mark.asyncio
async def test_turn_report_preserves_snapshot_order():
    tracker = ChangeTracker(clock=FakeClock())
    changed = await tracker.detect_turn_changes(snap(games=[game(30), game(10), game(20)]))
    assert list(changed) == [30, 10, 20]


@pytest.mark.asyncio
async def test_challenge_scenario():
    """Challenge 42 reported once, later only 43 is new"""
    tracker = ChangeTracker(clock=FakeClock())
    await tracker.prime(snap())

    c42 = ChallengeRecord(42, "A", "B")
    assert await tracker.detect_new_challenges(snap(challenges=[c42])) == [c42]
    assert await tracker.detect_new_challenges(snap(challenges=[c42])) == []

    c43 = ChallengeRecord(43, "C", "A")
    assert await tracker.detect_new_challenges(snap(challenges=[c42, c43])) == [c43]


@pytest.mark.asyncio
async def test_duplicate_ids_within_snapshot_reported_once():
    tracker = ChangeTracker(clock=FakeClock())
    c = ChallengeRecord(8, "A", "B")
    f = FinishedGameRecord(9)
    assert await tracker.detect_new_challenges(snap(challenges=[c, c])) == [c]
    assert await tracker.detect_new_finished_games(snap(finished=[f, f])) == [f]


@pytest.mark.asyncio
async def test_finished_games_reported_once_in_order():
    tracker = ChangeTracker(clock=FakeClock())
    await tracker.prime(snap(finished=[FinishedGameRecord(1)]))
    f2, f3 = FinishedGameRecord(3), FinishedGameRecord(2)
    result = await tracker.detect_new_finished_games(snap(finished=[FinishedGameRecord(1), f2, f3]))
    assert result == [f2, f3]
    assert await tracker.detect_new_finished_games(snap(finished=[f2, f3])) == []


@pytest.mark.asyncio
async def test_timestamp_moves_only_on_changes():
    clock = FakeClock()
    tracker = ChangeTracker(clock=clock)
    await tracker.prime(snap(games=[game(1)]))
    start = tracker.last_change_at

    clock.advance(60)
    await tracker.detect_all(snap(games=[game(1)]))
    assert tracker.last_change_at == start

    clock.advance(60)
    await tracker.detect_new_challenges(snap(challenges=[ChallengeRecord(1, "A", "B")]))
    assert tracker.last_change_at == start + 120

    clock.advance(60)
    await tracker.detect_new_finished_games(snap())
    assert tracker.last_change_at == start + 120
    assert tracker.idle_seconds() == 60


@pytest.mark.asyncio
async def test_timestamp_never_regresses():
    clock = FakeClock(5000.0)
    tracker = ChangeTracker(clock=clock)
    clock.now = 4000.0
    await tracker.detect_turn_changes(snap(games=[game(1)]))
    assert tracker.last_change_at == 5000.0


@pytest.mark.asyncio
async def test_detect_all_collects_every_category():
    tracker = ChangeTracker(clock=FakeClock())
    changes = await tracker.detect_all(
        snap(games=[game(1)], challenges=[ChallengeRecord(2, "A", "B")], finished=[FinishedGameRecord(3)])
    )
    assert changes
    assert len(changes) == 3
    assert not await tracker.detect_all(
        snap(games=[game(1)], challenges=[ChallengeRecord(2, "A", "B")], finished=[FinishedGameRecord(3)])
    )


@pytest.mark.asyncio
async def test_repeated_detection_reports_once():
    """Several detections of one snapshot report each item a single time"""
    tracker = ChangeTracker(clock=FakeClock())
    s = snap(games=[game(i) for i in range(20)], challenges=[ChallengeRecord(1, "A", "B")])
    results = await asyncio.gather(*[tracker.detect_all(s) for _ in range(5)])
    assert sum(len(r.turns) for r in results) == 20
    assert sum(len(r.challenges) for r in results) == 1


@pytest.mark.asyncio
async def test_detection_waits_for_tracker_lock():
    """Nothing is compared or recorded while another holder owns the tracker"""
    tracker = ChangeTracker(clock=FakeClock())
    s = snap(games=[game(1)], challenges=[ChallengeRecord(1, "A", "B")], finished=[FinishedGameRecord(2)])

    async with tracker._lock:
        tasks = [asyncio.create_task(tracker.detect_all(s)) for _ in range(3)]
        tasks.append(asyncio.create_task(tracker.prime(snap(challenges=[ChallengeRecord(9, "C", "D")]))))
        for _ in range(5):
            await asyncio.sleep(0)
        assert not any(t.done() for t in tasks)
        assert tracker.tracked_game_ids() == []

    results = await asyncio.gather(*tasks[:3])
    assert sum(len(r) for r in results) == 3
    await tasks[3]
    assert tracker.primed


# ---------------------------------------------------------------------------
# Poll interval / loop
# ---------------------------------------------------------------------------

def test_poll_interval_threshold():
    assert poll_interval(30 * 60 - 1) == 5
    assert poll_interval(30 * 60) == 60
    assert poll_interval(4 * 60 * 60) == 60
    assert poll_interval(0) == 5


def test_poll_interval_custom_values():
    assert poll_interval(10, active_secs=2, idle_secs=90, idle_after_secs=10) == 90
    assert poll_interval(9, active_secs=2, idle_secs=90, idle_after_secs=10) == 2


class FakeSource:
    def __init__(self, snapshots):
        self.snapshots = list(snapshots)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        item = self.snapshots.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeSink:
    def __init__(self, fail_on=()):
        self.sent = []
        self.attempts = 0
        self.fail_on = set(fail_on)

    async def __call__(self, text):
        self.attempts += 1
        if self.attempts in self.fail_on:
            raise RuntimeError("send failed")
        self.sent.append(text)


def make_loop(tracker, source, sink):
    return PollLoop(tracker, source, sink, active_secs=5, idle_secs=60, idle_after_secs=30 * 60)


@pytest.mark.asyncio
async def test_run_cycle_notifies_in_category_order():
    clock = FakeClock()
    tracker = ChangeTracker(clock=clock)
    await tracker.prime(snap())
    source = FakeSource([
        snap(
            games=[game(1, "Alice", True)],
            challenges=[ChallengeRecord(42, "A", "B")],
            finished=[FinishedGameRecord(7, ClientData("p", 0, "q", 12))],
        ),
    ])
    sink = FakeSink()
    interval = await make_loop(tracker, source, sink).run_cycle()

    assert interval == 5
    assert len(sink.sent) == 3
    assert "game <code>1</code>" in sink.sent[0]
    assert "is challenging" in sink.sent[1]
    assert "Game <code>7</code> finished" in sink.sent[2]


@pytest.mark.asyncio
async def test_run_cycle_survives_fetch_failure():
    """A failed fetch leaves state alone and keeps the current cadence"""
    clock = FakeClock()
    tracker = ChangeTracker(clock=clock)
    await tracker.prime(snap(games=[game(1)]))
    before = (tracker.last_change_at, tracker.tracked_game_ids())

    source = FakeSource([RuntimeError("boom"), snap(games=[game(1), game(2, "Bob")])])
    sink = FakeSink()
    loop = make_loop(tracker, source, sink)

    assert await loop.run_cycle() == 5
    assert (tracker.last_change_at, tracker.tracked_game_ids()) == before
    assert sink.sent == []

    await loop.run_cycle()
    assert len(sink.sent) == 1


@pytest.mark.asyncio
async def test_run_cycle_fetch_failure_while_idle_uses_idle_interval():
    clock = FakeClock()
    tracker = ChangeTracker(clock=clock)
    clock.advance(31 * 60)
    loop = make_loop(tracker, FakeSource([asyncio.TimeoutError()]), FakeSink())
    assert await loop.run_cycle() == 60


@pytest.mark.asyncio
async def test_delivery_failure_does_not_stop_other_notifications():
    tracker = ChangeTracker(clock=FakeClock())
    source = FakeSource([snap(challenges=[ChallengeRecord(i, "A", "B") for i in range(3)])])
    sink = FakeSink(fail_on={1})
    await make_loop(tracker, source, sink).run_cycle()
    assert sink.attempts == 3
    assert len(sink.sent) == 2
    # Failed notifications are not retried
    assert await tracker.detect_new_challenges(snap(challenges=[ChallengeRecord(0, "A", "B")])) == []


@pytest.mark.asyncio
async def test_interval_backs_off_after_quiet_period():
    clock = FakeClock()
    tracker = ChangeTracker(clock=clock)
    await tracker.prime(snap())
    loop = make_loop(tracker, FakeSource([snap(), snap(), snap(challenges=[ChallengeRecord(1, "A", "B")])]), FakeSink())

    clock.advance(30 * 60 - 1)
    assert await loop.run_cycle() == 5
    clock.advance(1)
    assert await loop.run_cycle() == 60
    assert await loop.run_cycle() == 5


@pytest.mark.asyncio
async def test_start_is_one_shot():
    tracker = ChangeTracker(clock=FakeClock())
    sleeps = []

    async def fake_sleep(secs):
        sleeps.append(secs)
        await asyncio.sleep(0)

    source = FakeSource([snap()] * 1000)
    loop = PollLoop(tracker, source, FakeSink(), active_secs=5, idle_secs=60, idle_after_secs=1800, sleep=fake_sleep)

    assert loop.start() is True
    assert loop.start() is False
    assert loop.started

    for _ in range(5):
        await asyncio.sleep(0)
    await loop.stop()

    assert source.calls >= 1
    assert all(s == 5 for s in sleeps)
