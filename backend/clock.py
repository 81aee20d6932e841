"""
Simulation Clock

Drives the session with independent periodic asyncio tasks:
income ticks, bonus spawn checks, the multiplier countdown and autosaves.
All tasks run on one event loop, so session transitions never interleave.
Save writes go to a worker thread with a payload captured on the loop.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Set

from config import CONFIG, ClockConfig
from session import GameSession

logger = logging.getLogger(__name__)


class SimulationClock:
    """Periodic task scheduler for one GameSession."""

    def __init__(self, session: GameSession, config: ClockConfig = CONFIG.clock):
        self.session = session
        self.config = config
        self.is_running = False
        self._tasks: List[asyncio.Task] = []
        self._pending_saves: Set[asyncio.Task] = set()
        self._last_tick: Optional[float] = None

    def start(self) -> None:
        """Schedule every periodic task on the running loop. Idempotent."""
        if self.is_running:
            return
        self.is_running = True
        loop = asyncio.get_running_loop()
        self._last_tick = loop.time()
        self._tasks = [
            loop.create_task(self._every(self.config.income_tick_interval, self._income_tick), name="income-tick"),
            loop.create_task(self._every(self.config.bonus_spawn_interval, self.session.spawn_check), name="bonus-spawn"),
            loop.create_task(self._every(self.config.multiplier_countdown_interval, self.session.countdown_multiplier), name="multiplier-countdown"),
            loop.create_task(self._every(self.config.autosave_interval, self.request_save), name="autosave"),
        ]
        logger.info("Simulation clock started")

    async def stop(self) -> None:
        """Cancel every periodic task. No save is started after this returns."""
        if not self.is_running:
            return
        self.is_running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        # Let writes already handed to the worker thread land before returning
        if self._pending_saves:
            await asyncio.gather(*list(self._pending_saves), return_exceptions=True)
        logger.info("Simulation clock stopped")

    async def shutdown(self) -> None:
        """Stop every task, then make a best-effort final save of the settled state."""
        was_running = self.is_running
        await self.stop()
        if not was_running:
            return
        try:
            await asyncio.to_thread(self._write, self.session.save_payload(), self.session.save_generation)
        except Exception as e:
            logger.error(f"Final save failed: {e}", exc_info=True)

    async def _every(self, interval: float, action: Callable[[], object]) -> None:
        loop = asyncio.get_running_loop()
        next_run = loop.time() + interval
        while self.is_running:
            await asyncio.sleep(max(0.0, next_run - loop.time()))
            # Skip missed runs instead of bursting after a stall
            next_run += interval
            if next_run < loop.time():
                next_run = loop.time() + interval
            try:
                action()
            except Exception as e:
                # A failing periodic step must not stop the other timers
                logger.error(f"Periodic task error: {e}", exc_info=True)

    def _income_tick(self) -> None:
        now = asyncio.get_running_loop().time()
        delta = now - self._last_tick if self._last_tick is not None else self.config.income_tick_interval
        self._last_tick = now
        # EconomyState clamps the delta against long gaps
        self.session.tick_income(delta)

    def request_save(self) -> Optional[asyncio.Task]:
        """Fire-and-forget save of the current state."""
        if not self.is_running:
            return None
        payload, generation = self.session.save_payload(), self.session.save_generation
        task = asyncio.get_running_loop().create_task(asyncio.to_thread(self._write, payload, generation))
        self._pending_saves.add(task)
        task.add_done_callback(self._save_done)
        return task

    def _write(self, payload: str, generation: int) -> None:
        self.session.write_save(payload, generation)

    def _save_done(self, task: asyncio.Task) -> None:
        self._pending_saves.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Autosave failed: {error}")
