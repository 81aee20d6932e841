"""
Tests for the SimulationClock periodic tasks

These run a real event loop with short cadences, so assertions use
generous bounds rather than exact tick counts.
"""

import asyncio
import json
import time

from clock import SimulationClock
from config import ClockConfig
from persistence import MemorySaveStore
from session import GameSession

SAVE_KEY = "tycoon_save_v2"

FAST_CLOCK = ClockConfig(
    income_tick_interval=0.01,
    bonus_spawn_interval=0.05,
    multiplier_countdown_interval=0.02,
    autosave_interval=0.05,
    max_tick_delta=1.0,
)


class CountingStore(MemorySaveStore):
    def __init__(self, initial=None):
        super().__init__(initial)
        self.writes = 0

    def write(self, key, payload):
        self.writes += 1
        super().write(key, payload)


def earning_session():
    # 10 cloud servers: 100/s
    saved = {"balance": 0.0, "lifetimeEarnings": 0.0, "upgrades": [{"id": 3, "count": 10, "cost": 2023}]}
    return GameSession.load(CountingStore({SAVE_KEY: json.dumps(saved)}))


def test_clock_accrues_income_and_autosaves():
    session = earning_session()
    clock = SimulationClock(session, FAST_CLOCK)

    async def scenario():
        clock.start()
        await asyncio.sleep(0.3)
        await clock.stop()

    asyncio.run(scenario())

    # ~0.3s at 100/s, clamped per tick; allow for scheduler jitter
    assert 5.0 < session.economy.balance < 60.0
    assert session.economy.lifetime_earnings == session.economy.balance
    assert session.store.writes >= 1
    saved = json.loads(session.store.read(SAVE_KEY))
    assert saved["upgrades"][2]["count"] == 10


def test_stop_cancels_all_tasks_and_saves_nothing_after():
    session = earning_session()
    clock = SimulationClock(session, FAST_CLOCK)

    async def scenario():
        clock.start()
        await asyncio.sleep(0.12)
        await clock.stop()
        writes_at_stop = session.store.writes
        balance_at_stop = session.economy.balance
        await asyncio.sleep(0.15)
        return writes_at_stop, balance_at_stop

    writes_at_stop, balance_at_stop = asyncio.run(scenario())

    assert clock.is_running is False
    assert clock._tasks == []
    assert session.store.writes == writes_at_stop
    assert session.economy.balance == balance_at_stop


def test_multiplier_counts_down_while_running():
    session = earning_session()
    clock = SimulationClock(session, FAST_CLOCK)
    session.grant_temporary_multiplier()

    async def scenario():
        clock.start()
        await asyncio.sleep(0.2)
        await clock.stop()

    asyncio.run(scenario())

    remaining = session.bonus.multiplier_window.remaining_seconds
    assert 0 < remaining < 30


def test_shutdown_performs_final_save():
    session = earning_session()
    slow = ClockConfig(income_tick_interval=0.01, bonus_spawn_interval=60.0,
                       multiplier_countdown_interval=60.0, autosave_interval=60.0)
    clock = SimulationClock(session, slow)

    async def scenario():
        clock.start()
        await asyncio.sleep(0.05)
        session.click()
        await clock.shutdown()

    asyncio.run(scenario())

    assert session.store.writes == 1
    saved = json.loads(session.store.read(SAVE_KEY))
    assert saved["balance"] == session.economy.balance


def test_start_is_idempotent_and_request_save_after_stop_is_noop():
    session = earning_session()
    clock = SimulationClock(session, FAST_CLOCK)

    async def scenario():
        clock.start()
        clock.start()
        task_count = len(clock._tasks)
        await clock.stop()
        return task_count, clock.request_save()

    task_count, save_task = asyncio.run(scenario())

    assert task_count == 4
    assert save_task is None
    assert session.store.writes == 0


class SlowStore(MemorySaveStore):
    """Store whose writes take long enough to overlap a reset."""

    def write(self, key, payload):
        time.sleep(0.2)
        super().write(key, payload)


def test_reset_wins_over_a_save_already_in_flight():
    session = GameSession.load(SlowStore())
    for _ in range(50):
        session.click()
    clock = SimulationClock(session, ClockConfig(autosave_interval=60.0))

    async def scenario():
        clock.start()
        save_task = clock.request_save()
        # Let the worker thread pick up the pre-reset payload
        await asyncio.sleep(0.05)
        session.reset()
        await clock.stop()
        return save_task

    save_task = asyncio.run(scenario())

    assert save_task.done()
    assert session.economy.balance == 0.0
    assert session.store.read(SAVE_KEY) is None


def test_save_queued_before_reset_is_dropped():
    session = GameSession.load(CountingStore())
    session.click()
    clock = SimulationClock(session, ClockConfig(autosave_interval=60.0))

    async def scenario():
        clock.start()
        clock.request_save()
        # Reset before the worker thread gets a chance to run
        session.reset()
        await clock.stop()

    asyncio.run(scenario())

    assert session.store.read(SAVE_KEY) is None
