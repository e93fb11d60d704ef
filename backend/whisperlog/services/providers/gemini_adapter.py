"""
WhisperLog Backend — Google Gemini Adapter
============================================

What:  Text formatting and single-call audio formatting with Gemini.
Why:   Gemini accepts audio inline, so transcription and formatting happen
       in one request: the prompt part plus an inline audio blob.
How:   generate_content_async() for both; the availability probe lists models
       (no token cost) in a worker thread because the SDK call is blocking.

The SDK authenticates through module-level state (genai.configure), so the
adapter configures it once at construction time, and only when a key is set.
"""

import asyncio
import logging
from typing import Any, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from whisperlog.config import settings
from whisperlog.services.audio_service import decode_audio
from whisperlog.services.prompting import build_audio_format_prompt
from whisperlog.services.providers.base import (
    ProviderAdapter,
    ProviderError,
    ProviderErrorKind,
)

logger = logging.getLogger(__name__)


class GeminiAdapter(ProviderAdapter):
    name = "gemini"
    supports_text = True
    supports_audio = True

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        timeout: Optional[float] = None,
        max_audio_size: Optional[int] = None,
        model: Optional[Any] = None,
    ):
        super().__init__(
            model_name=model_name or settings.gemini_model,
            api_key=settings.gemini_api_key if api_key is None else api_key,
        )
        self.timeout = timeout or settings.provider_timeout
        self.max_audio_size = max_audio_size or settings.max_audio_size
        self._model = model
        if self._model is None and self.is_configured:
            genai.configure(api_key=self._api_key)
            self._model = genai.GenerativeModel(self.model_name)
        logger.info(
            "GeminiAdapter initialized with model=%s (configured=%s)",
            self.model_name,
            self.is_configured,
        )

    async def format_audio(
        self, base64_audio: str, template: str, instruction: Optional[str] = None
    ) -> str:
        self._require_configured()
        payload = decode_audio(base64_audio, self.max_audio_size)
        prompt = build_audio_format_prompt(template, instruction)
        return await self._generate([prompt, {"mime_type": payload.mime_type, "data": payload.data}])

    async def _complete(self, prompt: str) -> str:
        return await self._generate(prompt)

    async def _generate(self, contents: Any) -> str:
        try:
            response = await self._model.generate_content_async(
                contents,
                request_options={"timeout": self.timeout},
            )
        except Exception as exc:
            raise self.classify_error(exc) from exc

        # .text raises ValueError when the candidate was blocked or has no text part
        try:
            text = response.text
        except ValueError as exc:
            raise ProviderError(
                ProviderErrorKind.INVALID_RESPONSE,
                self.name,
                f"Response has no text part: {exc}",
            ) from exc
        return self._require_text(text)

    async def _send_probe(self) -> None:
        await asyncio.to_thread(self._first_model)

    @staticmethod
    def _first_model() -> Any:
        return next(iter(genai.list_models(page_size=1)), None)

    def classify_error(self, exc: BaseException) -> ProviderError:
        if isinstance(exc, ProviderError):
            return exc
        code = getattr(exc, "code", None)
        if isinstance(exc, (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied)):
            return ProviderError(ProviderErrorKind.AUTHENTICATION, self.name, str(exc), code)
        if isinstance(exc, google_exceptions.InvalidArgument) and _is_invalid_key(exc):
            return ProviderError(ProviderErrorKind.AUTHENTICATION, self.name, str(exc), code)
        if isinstance(exc, google_exceptions.ResourceExhausted):
            return ProviderError(ProviderErrorKind.RATE_LIMITED, self.name, str(exc), code)
        # DeadlineExceeded is a 504 ServerError, so it is checked first
        if isinstance(exc, (google_exceptions.DeadlineExceeded, google_exceptions.RetryError, asyncio.TimeoutError)):
            return ProviderError(ProviderErrorKind.TIMEOUT, self.name, str(exc) or "Request timed out", code)
        if isinstance(exc, google_exceptions.ServerError):
            return ProviderError(ProviderErrorKind.SERVICE_UNAVAILABLE, self.name, str(exc), code)
        if isinstance(exc, google_exceptions.GoogleAPICallError):
            return ProviderError(ProviderErrorKind.UNKNOWN, self.name, str(exc), code)
        return ProviderError(ProviderErrorKind.UNKNOWN, self.name, f"{type(exc).__name__}: {exc}")


def _is_invalid_key(exc: BaseException) -> bool:
    # Gemini reports a bad key as 400 INVALID_ARGUMENT; older google-api-core
    # releases do not parse ErrorInfo, so fall back to the message text
    if getattr(exc, "reason", None) == "API_KEY_INVALID":
        return True
    return "API key not valid" in str(exc)
