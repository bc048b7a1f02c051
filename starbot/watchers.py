from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from .config import Config, logger
from .formatting import fmt_changes
from .models import ActivitySnapshot
from .state import ChangeTracker

Fetch = Callable[[], Awaitable[ActivitySnapshot]]
Notify = Callable[[str], Awaitable[object]]


def poll_interval(
    idle_seconds: float,
    active_secs: float = 5.0,
    idle_secs: float = 60.0,
    idle_after_secs: float = 30 * 60,
) -> float:
    """Back off to the idle interval once nothing has changed for a while."""
    if idle_seconds >= idle_after_secs:
        return float(idle_secs)
    return float(active_secs)


class PollLoop:
    """Fetch, detect, notify, sleep; forever.

    ``fetch`` returns a fresh snapshot and ``notify`` delivers one message to
    the configured channel. Neither is allowed to take the loop down: fetch
    failures skip the cycle, delivery failures skip the message.
    """

    def __init__(
        self,
        tracker: ChangeTracker,
        fetch: Fetch,
        notify: Notify,
        active_secs: float | None = None,
        idle_secs: float | None = None,
        idle_after_secs: float | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ):
        self.tracker = tracker
        self._fetch = fetch
        self._notify = notify
        self.active_secs = Config.ACTIVE_POLL_SECS if active_secs is None else active_secs
        self.idle_secs = Config.IDLE_POLL_SECS if idle_secs is None else idle_secs
        self.idle_after_secs = Config.IDLE_AFTER_SECS if idle_after_secs is None else idle_after_secs
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self.cycles = 0

    @property
    def started(self) -> bool:
        return self._task is not None

    def next_interval(self) -> float:
        return poll_interval(
            self.tracker.idle_seconds(),
            self.active_secs,
            self.idle_secs,
            self.idle_after_secs,
        )

    async def run_cycle(self) -> float:
        """Run one poll cycle and return how long to wait before the next."""
        self.cycles += 1
        try:
            snapshot = await self._fetch()
        except Exception as e:
            logger.warning(f"Activity fetch failed, skipping cycle {self.cycles}: {e}")
            return self.next_interval()

        changes = await self.tracker.detect_all(snapshot)
        if changes:
            logger.info(f"Cycle {self.cycles}: {len(changes)} change(s) to announce")
        for message in fmt_changes(changes):
            try:
                await self._notify(message)
            except Exception as e:
                logger.error(f"Failed to deliver notification: {e}")

        interval = self.next_interval()
        logger.debug(f"Cycle {self.cycles} done, next poll in {interval:.0f}s")
        return interval

    async def run_forever(self) -> None:
        logger.info("Started activity poll loop")
        try:
            while True:
                interval = await self.run_cycle()
                await self._sleep(interval)
        finally:
            logger.info("Activity poll loop stopped")

    def start(self) -> bool:
        """Start the background task once; later calls are no-ops."""
        if self._task is not None:
            logger.debug("Poll loop already running")
            return False
        self._task = asyncio.create_task(self.run_forever())
        return True

    async def stop(self) -> None:
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
