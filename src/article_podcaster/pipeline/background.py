"""Background worker that processes queued items one at a time."""

import asyncio
import logging
import signal

from article_podcaster.pipeline.orchestrator import ProcessingOrchestrator
from article_podcaster.pipeline.queue import QueueService

logger = logging.getLogger(__name__)


class BackgroundWorker:
    """Runs the orchestrator's "one unit of work" entry point.

    ``run_once`` suits an external scheduler that grants a limited time
    window; ``run_forever`` polls until SIGINT or SIGTERM and then exits
    after the current item.

    Attributes:
        orchestrator: Shared orchestrator instance
        queue: Used to reset orphaned items before polling starts
        poll_interval: Seconds to wait when nothing is pending
        shutdown_requested: Flag for graceful shutdown
    """

    def __init__(
        self,
        orchestrator: ProcessingOrchestrator,
        queue: QueueService | None = None,
        poll_interval: float = 5,
    ):
        self.orchestrator = orchestrator
        self.queue = queue
        self.poll_interval = poll_interval
        self.shutdown_requested = False
        self._wakeup = asyncio.Event()

    async def run_once(self, budget_seconds: float | None = None) -> bool:
        """Process the oldest pending item within an optional time budget.

        When the budget expires the in-flight phase is cancelled; whatever
        was already saved stands and the item is picked up again by orphan
        recovery.

        Returns:
            True if the unit of work finished (including when nothing was
            pending), False if the budget expired
        """
        try:
            item = await asyncio.wait_for(
                self.orchestrator.recover_next(), timeout=budget_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Background budget of {budget_seconds}s expired; "
                "leaving the current item in its last saved state"
            )
            return False

        if item is not None:
            logger.info(f"Background run finished {item.id} as {item.state.value}")
        return True

    async def run_forever(self) -> None:
        """Continuously process pending items until a shutdown signal arrives."""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(signum, self._handle_shutdown, signum)

        try:
            if self.queue is not None:
                self.queue.recover_orphans()

            while not self.shutdown_requested:
                item = await self.orchestrator.recover_next()
                if item is None and not self.shutdown_requested:
                    await self._sleep()
        finally:
            for signum in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(signum)

        logger.info("Background worker exiting gracefully")

    def request_shutdown(self) -> None:
        self.shutdown_requested = True
        self._wakeup.set()

    def _handle_shutdown(self, signum) -> None:
        logger.info(
            f"Shutdown signal {signal.Signals(signum).name} received, "
            "will exit after current item"
        )
        self.request_shutdown()

    async def _sleep(self) -> None:
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            pass
