"""
Core worker implementation for the search diagnostics system.

This module provides the DiagnosticsWorker class, which drives recurring
diagnostic passes by consuming the batches produced by a scheduler and handing
them to the scan orchestrator. A pass is awaited before the next trigger is
pulled, so two passes of the same worker never overlap.
"""

import asyncio
import logging
from asyncio import Task
from typing import List, Optional

from .contracts import WorkScheduler
from .domain import ScanOutcome, ScanState
from .orchestrator import ScanOrchestrator


class DiagnosticsWorker:
    """
    Coordinates recurring diagnostic passes.

    The scheduler decides when a pass runs and which engines it covers; the
    orchestrator scans them.
    """

    def __init__(
        self,
        worker_id: str,
        scheduler: WorkScheduler,
        orchestrator: ScanOrchestrator,
    ) -> None:
        """
        Initializes a new DiagnosticsWorker instance.

        Args:
            worker_id: A unique identifier for this worker instance.
            scheduler: Component that triggers passes and provides their engines.
            orchestrator: Component that scans the engines of a pass.

        Raises:
            ValueError: If worker_id is blank.
        """
        if not isinstance(worker_id, str) or not worker_id:
            raise ValueError("worker_id must be provided and must be not blank.")

        self._worker_id: str = worker_id
        self._scheduler: WorkScheduler = scheduler
        self._orchestrator: ScanOrchestrator = orchestrator
        self._logger: logging.Logger = logging.getLogger(__name__)
        self._current_pass: Optional[Task] = None
        self._is_stopping: bool = False
        self._completed_passes: int = 0

    @property
    def completed_passes(self) -> int:
        return self._completed_passes

    async def start(self) -> None:
        """
        Starts the scheduler and runs one pass per trigger until stopped.

        Raises:
            Exception: If the scheduler loop fails for any reason.
        """
        self._logger.info(f"Starting diagnostics worker {self._worker_id}.")
        self._is_stopping = False

        try:
            await self._scheduler.start()

            async for batch in self._scheduler:
                if not batch:
                    continue

                self._current_pass = asyncio.create_task(self._orchestrator.run_pass(batch))
                try:
                    outcomes: List[ScanOutcome] = await self._current_pass
                except asyncio.CancelledError:
                    if self._is_stopping:
                        self._logger.info("In-flight pass cancelled.")
                        break
                    raise
                finally:
                    self._current_pass = None

                self._completed_passes += 1
                failed = sum(1 for outcome in outcomes if outcome.state == ScanState.FAILED)
                self._logger.info(
                    f"Pass {self._completed_passes} finished: {len(outcomes)} engine(s), "
                    f"{failed} failed."
                )

        except Exception as e:
            self._logger.error(f"Scheduler loop failed: {e}")
            raise

    async def stop(self) -> None:
        """
        Stops the scheduler and cancels the in-flight pass, if any.
        """
        self._logger.info("Initiating shutdown...")
        self._is_stopping = True

        await self._scheduler.stop()

        current_pass = self._current_pass
        if current_pass is not None and not current_pass.done():
            self._logger.info("Cancelling in-flight pass...")
            current_pass.cancel()
            await asyncio.gather(current_pass, return_exceptions=True)

        self._logger.info("Worker shutdown complete")
