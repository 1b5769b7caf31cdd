"""Single point of contact with the content-generation service.

Every request goes through :class:`RemoteCallWrapper`, which retries
transient failures according to a :class:`RetryPolicy`, repairs loosely
formatted output, and degrades to the kind's fallback content when the
retry budget is exhausted.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, Optional

from ..core.errors import ClientRejected
from ..core.models import GenerationResult, GenerationTask, TokenUsage
from .client import ContentService, GenerationRequest, ServiceResponse
from .flows import FlowSpec, get_flow, render_prompt
from .parsing import parse_structured_output
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[Any]]


class RemoteCallWrapper:
    def __init__(
        self,
        service: ContentService,
        policy: Optional[RetryPolicy] = None,
        *,
        default_model: Optional[str] = None,
        sleep: Sleeper = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.service = service
        self.policy = policy or RetryPolicy()
        self.default_model = default_model
        self._sleep = sleep
        self._rng = rng or random.Random()

    def _request_for(self, task: GenerationTask, flow: FlowSpec) -> GenerationRequest:
        return GenerationRequest(
            kind=task.kind,
            prompt=render_prompt(task.kind, task.params),
            model=task.model or self.default_model,
            temperature=flow.temperature,
        )

    @staticmethod
    def _extract(flow: FlowSpec, response: ServiceResponse) -> Dict[str, Any]:
        content = response.data if response.data is not None else parse_structured_output(response.text)
        return flow.validate(dict(content))

    async def call(self, task: GenerationTask) -> GenerationResult:
        """Run ``task`` against the service.

        Always returns a result; only :class:`ClientRejected` escapes, since
        retrying or degrading cannot fix a request the service refuses.
        """
        flow = get_flow(task.kind)
        request = self._request_for(task, flow)
        usage = TokenUsage()
        model = request.model
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                response = await self.service.generate(request)
                usage.add(response.usage)
                model = response.model or model
                content = self._extract(flow, response)
                return GenerationResult(index=task.index, content=content, usage=usage, model=model)
            except ClientRejected:
                logger.error("%s #%d rejected by the service; not retrying", task.kind, task.index)
                raise
            except Exception as exc:  # unknown transport errors count as transient
                last_error = exc

            if not self.policy.should_retry(last_error, attempt):
                break
            delay = self.policy.delay_for(last_error, attempt, self._rng)
            logger.warning(
                "%s #%d failed (attempt %d/%d): %s. Retrying in %.2fs",
                task.kind,
                task.index,
                attempt,
                self.policy.max_attempts,
                last_error,
                delay,
            )
            await self._sleep(delay)

        logger.error("%s #%d: fallback used due to error: %s", task.kind, task.index, last_error)
        return GenerationResult(
            index=task.index,
            content=flow.fallback(task.params, last_error),
            usage=usage,
            model=model,
            fallback=True,
            error=str(last_error) if last_error is not None else None,
        )
