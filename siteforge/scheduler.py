"""Bounded-concurrency driver for generation tasks."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque, Dict, List, Optional, Sequence

from .core.models import GenerationResult, GenerationTask, TokenUsage

logger = logging.getLogger(__name__)

Processor = Callable[[GenerationTask], Awaitable[GenerationResult]]
ResultCallback = Callable[[GenerationTask, GenerationResult], None]


@dataclass
class ScheduleReport:
    results: List[GenerationResult] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    fallbacks: int = 0

    @property
    def models(self) -> List[str]:
        seen: List[str] = []
        for result in self.results:
            if result.model and result.model not in seen:
                seen.append(result.model)
        return seen


class TaskScheduler:
    """Run tasks through a fixed pool of workers sharing one queue.

    Results come back in submission order whatever order the workers
    finish in. ``on_result`` is invoked as each task completes, which lets
    callers merge partial output before the whole run is done.
    """

    def __init__(self, process: Processor, concurrency: int = 4) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.process = process
        self.concurrency = concurrency

    async def run(
        self,
        tasks: Sequence[GenerationTask],
        on_result: Optional[ResultCallback] = None,
    ) -> ScheduleReport:
        order = [task.index for task in tasks]
        if len(set(order)) != len(order):
            raise ValueError("task indexes must be unique")

        queue: Deque[GenerationTask] = deque(tasks)
        collected: Dict[int, GenerationResult] = {}
        report = ScheduleReport()

        async def worker(worker_id: int) -> None:
            while queue:
                task = queue.popleft()
                result = await self.process(task)
                collected[task.index] = result
                report.usage.add(result.usage)
                if result.fallback:
                    report.fallbacks += 1
                    logger.warning(
                        "worker %d: task #%d (%s) degraded to fallback content",
                        worker_id,
                        task.index,
                        task.kind,
                    )
                if on_result is not None:
                    on_result(task, result)

        logger.info("Running %d task(s) with %d worker(s)", len(tasks), self.concurrency)
        workers = [asyncio.create_task(worker(i)) for i in range(self.concurrency)]
        try:
            await asyncio.gather(*workers)
        except BaseException:
            for pending in workers:
                pending.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

        report.results = [collected[index] for index in order]
        logger.info(
            "Finished %d task(s): %d fallback(s), %d tokens",
            len(report.results),
            report.fallbacks,
            report.usage.total_tokens,
        )
        return report


async def run_tasks(
    tasks: Sequence[GenerationTask],
    process: Processor,
    concurrency: int,
) -> List[GenerationResult]:
    report = await TaskScheduler(process, concurrency).run(tasks)
    return report.results
