"""
WhisperLog Backend — Anthropic Claude Adapter
===============================================

What:  Text formatting through the Anthropic Messages API.
Why:   Claude Haiku is fast and cheap for rewriting notes into templates.
How:   One user message carrying the shared formatting prompt; the first
       content block must be text.

Claude does not take audio input, so format_audio() keeps the base-class
behaviour and raises ProviderError(UNSUPPORTED). The registry never selects
this adapter for audio.

SDK retries are disabled (max_retries=0); the orchestrator owns the retry
policy so attempts are counted and logged in one place.
"""

import asyncio
import logging
from typing import Any, Optional

import anthropic
from anthropic import AsyncAnthropic

from whisperlog.config import settings
from whisperlog.services.providers.base import (
    ProviderAdapter,
    ProviderError,
    ProviderErrorKind,
)

logger = logging.getLogger(__name__)


class ClaudeAdapter(ProviderAdapter):
    name = "claude"
    supports_text = True
    supports_audio = False

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
        client: Optional[Any] = None,
    ):
        super().__init__(
            model_name=model_name or settings.anthropic_model,
            api_key=settings.anthropic_api_key if api_key is None else api_key,
        )
        self.max_tokens = max_tokens or settings.anthropic_max_tokens
        self.temperature = settings.anthropic_temperature if temperature is None else temperature
        self._client = client
        if self._client is None and self.is_configured:
            self._client = AsyncAnthropic(
                api_key=self._api_key,
                timeout=timeout or settings.provider_timeout,
                max_retries=0,
            )
        logger.info(
            "ClaudeAdapter initialized with model=%s (configured=%s)",
            self.model_name,
            self.is_configured,
        )

    async def _complete(self, prompt: str) -> str:
        try:
            response = await self._client.messages.create(
                model=self.model_name,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as exc:
            raise self.classify_error(exc) from exc

        blocks = getattr(response, "content", None) or []
        if not blocks:
            raise ProviderError(ProviderErrorKind.EMPTY_RESPONSE, self.name, "No content blocks returned")
        first = blocks[0]
        if getattr(first, "type", None) != "text":
            raise ProviderError(
                ProviderErrorKind.INVALID_RESPONSE,
                self.name,
                f"Expected a text block, got '{getattr(first, 'type', type(first).__name__)}'",
            )
        return self._require_text(first.text)

    async def _send_probe(self) -> None:
        await self._client.messages.create(
            model=self.model_name,
            max_tokens=5,
            messages=[{"role": "user", "content": "ping"}],
        )

    def classify_error(self, exc: BaseException) -> ProviderError:
        if isinstance(exc, ProviderError):
            return exc
        if isinstance(exc, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
            return ProviderError(ProviderErrorKind.AUTHENTICATION, self.name, str(exc), exc.status_code)
        if isinstance(exc, anthropic.RateLimitError):
            return ProviderError(ProviderErrorKind.RATE_LIMITED, self.name, str(exc), exc.status_code)
        # APITimeoutError subclasses APIConnectionError, so it is checked first
        if isinstance(exc, anthropic.APITimeoutError):
            return ProviderError(ProviderErrorKind.TIMEOUT, self.name, str(exc))
        if isinstance(exc, anthropic.APIConnectionError):
            return ProviderError(ProviderErrorKind.SERVICE_UNAVAILABLE, self.name, str(exc))
        if isinstance(exc, anthropic.APIStatusError):
            # 5xx and 529 (overloaded)
            if exc.status_code >= 500:
                return ProviderError(
                    ProviderErrorKind.SERVICE_UNAVAILABLE, self.name, str(exc), exc.status_code
                )
            return ProviderError(ProviderErrorKind.UNKNOWN, self.name, str(exc), exc.status_code)
        if isinstance(exc, asyncio.TimeoutError):
            return ProviderError(ProviderErrorKind.TIMEOUT, self.name, "Request timed out")
        return ProviderError(ProviderErrorKind.UNKNOWN, self.name, f"{type(exc).__name__}: {exc}")
