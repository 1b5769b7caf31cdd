"""Shared fixtures: a scripted content service and a wrapper that never sleeps."""

from __future__ import annotations

import inspect
import json
import random
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from siteforge.ai.client import GenerationRequest, ServiceResponse
from siteforge.ai.retry import RetryPolicy
from siteforge.ai.wrapper import RemoteCallWrapper
from siteforge.core.models import TokenUsage


class FakeContentService:
    """Replies are queued per request kind.

    A reply may be a dict (structured output), a string (free-form text),
    an exception instance (raised), or a callable taking the request and
    returning any of those, optionally as a coroutine.
    """

    def __init__(
        self,
        replies: Optional[Dict[str, Sequence[Any]]] = None,
        *,
        default: Any = None,
        usage: tuple = (10, 5),
    ) -> None:
        self.replies: Dict[str, List[Any]] = {kind: list(items) for kind, items in (replies or {}).items()}
        self.default = default
        self.usage = usage
        self.requests: List[GenerationRequest] = []

    def kinds(self) -> List[str]:
        return [request.kind for request in self.requests]

    async def generate(self, request: GenerationRequest) -> ServiceResponse:
        self.requests.append(request)
        queue = self.replies.get(request.kind)
        reply = queue.pop(0) if queue else self.default
        if callable(reply):
            reply = reply(request)
            if inspect.isawaitable(reply):
                reply = await reply
        if isinstance(reply, BaseException):
            raise reply
        if reply is None:
            raise AssertionError(f"no reply scripted for {request.kind}")
        usage = TokenUsage(*self.usage)
        if isinstance(reply, dict):
            return ServiceResponse(text=json.dumps(reply), data=reply, usage=usage, model="fake-model")
        return ServiceResponse(text=str(reply), usage=usage, model="fake-model")


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_wrapper(sleeper: RecordingSleep):
    def factory(service: FakeContentService, attempts: int = 3) -> RemoteCallWrapper:
        policy = RetryPolicy(max_attempts=attempts, base_delay=1.0, jitter=0.0)
        return RemoteCallWrapper(service, policy, sleep=sleeper, rng=random.Random(0))

    return factory
