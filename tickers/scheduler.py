"""
Update scheduler: login, readiness gate, then fixed-cadence update cycles.

States:
    AWAITING_LOGIN      all clients log in concurrently; any failure is fatal
    AWAITING_READINESS  gateway connections run, gate polled every second
    STEADY_STATE        one cycle now, then one per tick (default 5 min)
    STOPPED             after stop()/shutdown()

A cycle is one price fetch followed by a concurrent presence update for every
registry entry. The cycle only finishes once every update has settled. A
failed fetch skips the cycle; the next tick runs normally.

Ticks are paced off the event loop clock and never wait for the cycle. If a
tick fires while the previous cycle is still in flight, that tick is skipped,
so two cycles never touch the same client at once.
"""

import asyncio
import logging
from enum import Enum
from typing import List, Optional

from tickers.formatting import market_status
from tickers.presence import PresenceUpdater
from tickers.price_feed import PriceFeed
from tickers.readiness import DEFAULT_POLL_INTERVAL, ReadinessGate
from tickers.registry import ClientRegistry

logger = logging.getLogger(__name__)

DEFAULT_UPDATE_INTERVAL = 300.0


class LoginError(RuntimeError):
    """A client could not establish its session at all. Fatal."""


class _StopRequested(Exception):
    pass


class SchedulerState(Enum):
    AWAITING_LOGIN = "awaiting_login"
    AWAITING_READINESS = "awaiting_readiness"
    STEADY_STATE = "steady_state"
    STOPPED = "stopped"


class UpdateScheduler:
    """
    Drives every ticker bot from one shared price snapshot per cycle.

    Constructor args:
        registry:            Fixed set of bots to update
        gate:                ReadinessGate over the same registry
        feed:                PriceFeed (anything with async fetch()/close())
        updater:             PresenceUpdater (anything with async apply())
        update_interval:     Seconds between ticks
        ready_poll_interval: Seconds between readiness polls
    """

    def __init__(
        self,
        registry: ClientRegistry,
        gate: ReadinessGate,
        feed: PriceFeed,
        updater: Optional[PresenceUpdater] = None,
        update_interval: float = DEFAULT_UPDATE_INTERVAL,
        ready_poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.registry = registry
        self.gate = gate
        self.feed = feed
        self.updater = updater or PresenceUpdater()
        self.update_interval = update_interval
        self.ready_poll_interval = ready_poll_interval

        self.state = SchedulerState.AWAITING_LOGIN
        self._stop_event = asyncio.Event()
        self._connect_tasks: List[asyncio.Task] = []
        self._cycle_task: Optional[asyncio.Task] = None

        # Counters (for status logging)
        self.cycles_run = 0
        self.cycles_skipped = 0
        self.ticks_skipped = 0

    # ------------------------------------------------------------------
    # Session establishment
    # ------------------------------------------------------------------

    async def login_all(self):
        """Log every client in concurrently. Raises LoginError if any fails."""
        handles = self.registry.handles()
        results = await asyncio.gather(
            *(handle.client.login(handle.token) for handle in handles),
            return_exceptions=True,
        )
        failed = []
        for handle, result in zip(handles, results):
            if isinstance(result, BaseException):
                logger.error("Error logging in %s client: %s", handle.label, result)
                failed.append(handle.label)
        if failed:
            raise LoginError(f"login failed for: {', '.join(failed)}")
        logger.info("All clients logged in")

    def connect_all(self):
        """Start each client's gateway connection in the background."""
        for handle in self.registry.handles():
            task = asyncio.create_task(
                handle.client.connect(reconnect=True), name=f"gateway-{handle.label}"
            )
            self._connect_tasks.append(task)

    def _check_abort(self):
        if self._stop_event.is_set():
            raise _StopRequested()
        for task in self._connect_tasks:
            if task.done() and not task.cancelled() and task.exception() is not None:
                raise LoginError(f"{task.get_name()} failed: {task.exception()}")

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def run_cycle(self) -> bool:
        """
        One fetch + fan-out. Returns False if the cycle was skipped.

        Never raises: a failed fetch or a stray error from an update is
        logged and the scheduler carries on with the next tick.
        """
        try:
            snapshot = await self.feed.fetch()
            if snapshot is None:
                self.cycles_skipped += 1
                logger.warning("No price data this cycle, skipping update")
                return False

            status = market_status(snapshot)
            entries = list(self.registry)
            results = await asyncio.gather(
                *(
                    self.updater.apply(entry, snapshot[entry.asset_key], status)
                    for entry in entries
                ),
                return_exceptions=True,
            )
            for entry, result in zip(entries, results):
                if isinstance(result, Exception):
                    logger.error("Unhandled error updating %s: %s", entry.label, result)

            self.cycles_run += 1
            logger.debug("Cycle %d done (status=%s)", self.cycles_run, status)
            return True
        except Exception as e:
            self.cycles_skipped += 1
            logger.error("Error running update cycle: %s", e, exc_info=True)
            return False

    def _tick(self):
        if self._cycle_task is not None and not self._cycle_task.done():
            self.ticks_skipped += 1
            logger.warning("Previous update cycle still running, skipping this tick")
            return
        self._cycle_task = asyncio.create_task(self.run_cycle())

    async def _sleep(self, seconds: float) -> bool:
        """Sleep up to `seconds`. Returns True if stop() was called meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def run_steady_state(self):
        """Run a cycle immediately, then one per tick until stop()."""
        self.state = SchedulerState.STEADY_STATE
        loop = asyncio.get_running_loop()

        self._tick()
        next_tick = loop.time() + self.update_interval
        while not self._stop_event.is_set():
            if await self._sleep(max(0.0, next_tick - loop.time())):
                break
            next_tick += self.update_interval
            self._tick()

        if self._cycle_task is not None:
            await asyncio.gather(self._cycle_task, return_exceptions=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self):
        """
        Full lifecycle: login, connect, wait for readiness, update forever.

        Raises LoginError on a fatal session failure. Returns after stop().
        """
        self.state = SchedulerState.AWAITING_LOGIN
        await self.login_all()

        self.connect_all()
        self.state = SchedulerState.AWAITING_READINESS
        try:
            await self.gate.wait(self.ready_poll_interval, abort=self._check_abort)
        except _StopRequested:
            logger.info("Stopped before all clients were ready")
            return

        await self.run_steady_state()

    def stop(self):
        self._stop_event.set()

    async def shutdown(self):
        """Stop ticking, close every client and the price feed session."""
        self.stop()
        for handle in self.registry.handles():
            try:
                await handle.client.close()
            except Exception as e:
                logger.warning("Error closing %s client: %s", handle.label, e)

        for task in self._connect_tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*self._connect_tasks, return_exceptions=True)
        self._connect_tasks.clear()

        await self.feed.close()
        self.state = SchedulerState.STOPPED
        logger.info(
            "Scheduler stopped (%d cycles run, %d skipped, %d ticks skipped)",
            self.cycles_run, self.cycles_skipped, self.ticks_skipped,
        )
