from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from orchestrator.config import OrchestratorConfig
from orchestrator.pipeline import PipelineController
from orchestrator.specialists.discovery import DiscoveryAgent
from orchestrator.state.queue import Task, TaskStore
from orchestrator.state.status import CycleStats, StatusStore

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class CycleScheduler:
    """Runs batches of tasks through the pipeline until the queue drains or a stop is requested."""

    def __init__(
        self,
        tasks: TaskStore,
        controller: PipelineController,
        config: OrchestratorConfig,
        status: StatusStore,
        *,
        discovery: DiscoveryAgent | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.tasks = tasks
        self.controller = controller
        self.config = config
        self.status = status
        self.discovery = discovery
        self._sleep = sleep
        self._stop = asyncio.Event()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def request_stop(self) -> None:
        if not self._stop.is_set():
            logger.info("Stop requested; finishing after the current task")
        self._stop.set()

    def select_batch(self) -> list[Task]:
        batch = [*self.tasks.in_progress(), *self.tasks.pending_by_priority()]
        return batch[: self.config.workflow.max_tasks_per_cycle]

    async def discover(self) -> int:
        if self.discovery is None or not self.config.workflow.discovery_enabled:
            return 0
        logger.info("No tasks queued; running discovery")
        self.status.set_agent("discovery", "running")
        response = await self.discovery.run(self.discovery.build_prompt(self.tasks.active()))
        drafts = self.discovery.collect_drafts()
        if not response.succeeded:
            self.status.set_agent("discovery", "failed")
            return 0
        self.status.set_agent("discovery", "succeeded")
        created = self.tasks.add_many(drafts) if drafts else []
        logger.info("Discovery added %d task(s)", len(created))
        return len(created)

    async def run_cycle(self, number: int) -> CycleStats | None:
        batch = self.select_batch()
        if not batch:
            await self.discover()
            batch = self.select_batch()
        if not batch:
            return None

        logger.info("Cycle %d: processing %d task(s)", number, len(batch))
        stats = CycleStats(number=number)
        for task in batch:
            if self.stop_requested:
                break
            try:
                outcome = await self.controller.run(task.id)
            except Exception:
                logger.exception("Unexpected failure while processing %s", task.id)
                stats.failed += 1
                continue
            if outcome.succeeded:
                stats.completed += 1
            else:
                stats.failed += 1

        stats.remaining = len(self.tasks.pending())
        self.status.record_cycle(stats)
        logger.info(
            "Cycle %d finished: %d completed, %d failed, %d remaining",
            stats.number,
            stats.completed,
            stats.failed,
            stats.remaining,
        )
        return stats

    async def _wait(self, seconds: float) -> None:
        if seconds > 0 and not self.stop_requested:
            await self._sleep(seconds)

    async def run(self) -> list[CycleStats]:
        workflow = self.config.workflow
        history: list[CycleStats] = []
        self.status.mark_running()
        try:
            number = 0
            while not self.stop_requested:
                number += 1
                stats = await self.run_cycle(number)
                if stats is None:
                    if not workflow.continuous:
                        logger.info("No tasks to process")
                        break
                    number -= 1
                    await self._wait(workflow.idle_wait_seconds)
                    continue
                history.append(stats)
                if not workflow.continuous and stats.remaining == 0:
                    break
                await self._wait(workflow.cycle_delay_seconds)
        finally:
            self.status.mark_stopped()
        return history
