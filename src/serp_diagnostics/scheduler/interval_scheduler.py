"""
Interval-based implementation of the WorkScheduler interface.

This module provides a scheduler that yields the enabled engines once per
interval. The first pass fires as soon as iteration starts. A consumer that
is still busy when one or more triggers come due misses them: they are
skipped and logged, and the next pass fires on the following trigger.
"""

import asyncio
import logging
from typing import List, Optional

from serp_diagnostics.contracts import TargetProvider, WorkScheduler
from serp_diagnostics.domain import TargetConfig

# Module logger
logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600


class IntervalScheduler(WorkScheduler):
    """
    A WorkScheduler that triggers a diagnostic pass at a fixed interval.

    All state is held by the instance, so independent schedulers never
    interfere with each other.
    """

    def __init__(
        self,
        target_provider: TargetProvider,
        interval_hours: int = 1,
        interval_seconds: Optional[float] = None,
    ) -> None:
        """
        Initializes a new IntervalScheduler instance.

        Args:
            target_provider: Source of the engines to yield on each trigger.
            interval_hours: Time between two triggers, in hours.
            interval_seconds: Overrides interval_hours with a duration in seconds.

        Raises:
            ValueError: If the interval is not positive.
        """
        if interval_seconds is None:
            if not isinstance(interval_hours, int) or interval_hours < 1:
                raise ValueError("interval_hours must be a positive integer.")
            interval_seconds = float(interval_hours * SECONDS_PER_HOUR)
        elif interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive.")

        self._target_provider: TargetProvider = target_provider
        self._interval: float = interval_seconds
        self._is_running: bool = False
        self._stop_event: Optional[asyncio.Event] = None
        self._next_fire_at: Optional[float] = None

    async def start(self) -> None:
        """
        Prepares the scheduler to start yielding work.

        This method must be called before using the scheduler in an async for loop.
        """
        logger.info(f"Starting scheduler (interval: {self._interval:.0f}s)...")
        self._stop_event = asyncio.Event()
        self._next_fire_at = None
        self._is_running = True

    async def stop(self) -> None:
        """
        Stops the scheduler and wakes up a pending wait. Safe to call repeatedly.
        """
        if not self._is_running:
            return
        logger.info("Closing scheduler...")
        self._is_running = False
        if self._stop_event is not None:
            self._stop_event.set()

    async def __anext__(self) -> List[TargetConfig]:
        """
        Waits for the next trigger and returns the enabled engines.

        Returns:
            List[TargetConfig]: The enabled engines. Empty if they could not be listed.

        Raises:
            StopAsyncIteration: When the scheduler has been stopped.
        """
        if not self._is_running or self._stop_event is None:
            raise StopAsyncIteration

        loop = asyncio.get_running_loop()
        now = loop.time()

        if self._next_fire_at is None:
            self._next_fire_at = now
        elif now > self._next_fire_at:
            missed = int((now - self._next_fire_at) // self._interval) + 1
            logger.warning(f"Previous pass overran its interval, skipping {missed} trigger(s).")
            self._next_fire_at += missed * self._interval

        delay = self._next_fire_at - now
        if delay > 0:
            logger.info(f"Next diagnostic pass in {delay:.2f} seconds.")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

        if not self._is_running:
            raise StopAsyncIteration

        self._next_fire_at += self._interval

        try:
            targets = await self._target_provider.list_targets()
        except Exception as e:
            logger.error(f"Could not list monitored engines: {e}")
            return []

        return [target for target in targets if target.enabled]
