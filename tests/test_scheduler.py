from __future__ import annotations

import asyncio

import pytest

from siteforge.core.errors import ClientRejected
from siteforge.core.models import GenerationResult, GenerationTask, TokenUsage
from siteforge.scheduler import TaskScheduler, run_tasks

from conftest import FakeContentService

TASK_COUNT = 7


def _tasks(count: int = TASK_COUNT):
    return [GenerationTask(index=i, kind="section_html", params={"n": i}) for i in range(count)]


async def _slow_reverse(task: GenerationTask) -> GenerationResult:
    # later tasks finish first
    await asyncio.sleep(0.001 * (TASK_COUNT - task.index))
    return GenerationResult(index=task.index, content={"n": task.params["n"]}, usage=TokenUsage(task.index, 1))


@pytest.mark.asyncio
@pytest.mark.parametrize("concurrency", [1, 2, 5, TASK_COUNT])
async def test_results_follow_submission_order(concurrency: int) -> None:
    report = await TaskScheduler(_slow_reverse, concurrency).run(_tasks())
    assert [r.index for r in report.results] == list(range(TASK_COUNT))
    assert [r.content["n"] for r in report.results] == list(range(TASK_COUNT))
    assert report.usage.input_tokens == sum(range(TASK_COUNT))
    assert report.usage.output_tokens == TASK_COUNT


@pytest.mark.asyncio
async def test_submission_order_is_kept_for_arbitrary_indexes() -> None:
    tasks = [GenerationTask(index=i, kind="section_html", params={"n": i}) for i in (5, 2, 6)]
    results = await run_tasks(tasks, _slow_reverse, 2)
    assert [r.index for r in results] == [5, 2, 6]


@pytest.mark.asyncio
async def test_no_more_than_n_tasks_run_at_once() -> None:
    running = 0
    peak = 0

    async def process(task: GenerationTask) -> GenerationResult:
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.001)
        running -= 1
        return GenerationResult(index=task.index, content={})

    await TaskScheduler(process, 3).run(_tasks())
    assert peak == 3


@pytest.mark.asyncio
async def test_fallback_does_not_stop_the_worker(make_wrapper) -> None:
    def reply(request):
        if "Broken" in request.prompt:
            return "the service returned prose instead of JSON"
        return {"htmlContent": "<section>ok</section>"}

    service = FakeContentService(default=reply)
    wrapper = make_wrapper(service, attempts=2)
    titles = ["One", "Broken", "Three", "Four"]
    tasks = [
        GenerationTask(index=i, kind="section_html", params={"section": {"type": "s", "title": t}})
        for i, t in enumerate(titles)
    ]
    seen = []
    report = await TaskScheduler(wrapper.call, 1).run(tasks, on_result=lambda t, r: seen.append(t.index))

    assert [r.fallback for r in report.results] == [False, True, False, False]
    assert report.fallbacks == 1
    assert seen == [0, 1, 2, 3]
    # three good calls plus both unparseable attempts of the degraded task
    assert report.usage.input_tokens == 50
    assert report.models == ["fake-model"]


@pytest.mark.asyncio
async def test_client_rejection_cancels_the_run() -> None:
    cancelled = []

    async def process(task: GenerationTask) -> GenerationResult:
        if task.index == 0:
            await asyncio.sleep(0.001)
            raise ClientRejected("bad request")
        try:
            await asyncio.sleep(1)
        except asyncio.CancelledError:
            cancelled.append(task.index)
            raise
        return GenerationResult(index=task.index, content={})

    with pytest.raises(ClientRejected):
        await TaskScheduler(process, 3).run(_tasks())
    assert sorted(cancelled) == [1, 2]


def test_invalid_arguments() -> None:
    with pytest.raises(ValueError):
        TaskScheduler(_slow_reverse, 0)
    duplicated = [GenerationTask(index=1, kind="k"), GenerationTask(index=1, kind="k")]
    with pytest.raises(ValueError):
        asyncio.run(TaskScheduler(_slow_reverse, 2).run(duplicated))
