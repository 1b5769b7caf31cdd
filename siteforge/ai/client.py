"""Adapter to the content-generation service (Gemini)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from google.generativeai.types import GenerationConfig

from ..core.config import Settings
from ..core.errors import (
    ClientRejected,
    ConfigurationError,
    EmptyResponse,
    RateLimited,
    ServiceOverloaded,
)
from ..core.models import TokenUsage
from .retry import extract_retry_hint

logger = logging.getLogger(__name__)


@dataclass
class GenerationRequest:
    kind: str
    prompt: str
    model: Optional[str] = None
    temperature: float = 0.4
    expects_json: bool = True


@dataclass
class ServiceResponse:
    """Raw answer from the service.

    ``data`` is set when the service returned structured output directly;
    otherwise ``text`` holds free-form output that should contain JSON.
    """

    text: str = ""
    data: Optional[Dict[str, Any]] = None
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: Optional[str] = None


class ContentService(Protocol):
    async def generate(self, request: GenerationRequest) -> ServiceResponse: ...


def _usage_from(response: Any) -> TokenUsage:
    metadata = getattr(response, "usage_metadata", None)
    if not metadata:
        return TokenUsage()
    return TokenUsage(
        input_tokens=int(getattr(metadata, "prompt_token_count", 0) or 0),
        output_tokens=int(getattr(metadata, "candidates_token_count", 0) or 0),
    )


def translate_error(exc: Exception) -> Exception:
    """Map a google-api-core exception onto the engine's error taxonomy."""
    if isinstance(exc, (google_exceptions.ResourceExhausted, google_exceptions.TooManyRequests)):
        return RateLimited(str(exc), retry_after=extract_retry_hint(exc))
    elif isinstance(exc, (google_exceptions.ServerError, google_exceptions.DeadlineExceeded)):
        return ServiceOverloaded(str(exc))
    elif isinstance(exc, google_exceptions.ClientError):
        return ClientRejected(str(exc))
    return exc


class GeminiContentService:
    def __init__(self, api_key: Optional[str], model_name: str) -> None:
        if not api_key:
            raise ConfigurationError(
                "GOOGLE_API_KEY (or GEMINI_API_KEY) environment variable is not set."
            )
        genai.configure(api_key=api_key)
        self.model_name = model_name

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiContentService":
        return cls(settings.api_key, settings.model)

    async def generate(self, request: GenerationRequest) -> ServiceResponse:
        model_name = request.model or self.model_name
        model = genai.GenerativeModel(model_name)
        config = GenerationConfig(
            temperature=request.temperature,
            response_mime_type="application/json" if request.expects_json else "text/plain",
        )
        try:
            response = await model.generate_content_async(request.prompt, generation_config=config)
        except google_exceptions.GoogleAPIError as exc:
            raise translate_error(exc) from exc

        if not response.parts:
            raise EmptyResponse(f"{request.kind}: model returned an empty response")
        text = response.text or ""
        usage = _usage_from(response)
        logger.debug(
            "%s: prompt=%d completion=%d tokens",
            request.kind,
            usage.input_tokens,
            usage.output_tokens,
        )

        data: Optional[Dict[str, Any]] = None
        if request.expects_json:
            try:
                loaded = json.loads(text)
            except ValueError:
                loaded = None
            if isinstance(loaded, dict):
                data = loaded
        return ServiceResponse(text=text, data=data, usage=usage, model=model_name)
