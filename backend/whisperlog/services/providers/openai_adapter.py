"""
WhisperLog Backend — OpenAI Adapter
=====================================

What:  Text formatting through chat completions; audio through Whisper
       transcription followed by the same chat-completion formatting step.
Why:   Whisper is the most accurate transcriber we have for short voice notes;
       splitting transcription from formatting keeps the formatting prompt
       identical for text and audio.
How:   Two-phase audio:
           base64 → bytes → audio.transcriptions.create (response_format=text)
           transcript → build_format_prompt → chat.completions.create

Error codes worth separating (vendor `code` field, not message text):
    insufficient_quota → QUOTA_EXCEEDED (billing problem, retrying won't help
                         quickly but it is still a vendor-side outage)
    invalid_api_key    → AUTHENTICATION
"""

import asyncio
import io
import logging
from typing import Any, Optional

import openai
from openai import AsyncOpenAI

from whisperlog.config import settings
from whisperlog.services.audio_service import AudioPayload, decode_audio
from whisperlog.services.prompting import build_format_prompt
from whisperlog.services.providers.base import (
    ProviderAdapter,
    ProviderError,
    ProviderErrorKind,
)

logger = logging.getLogger(__name__)


class OpenAIAdapter(ProviderAdapter):
    name = "openai"
    supports_text = True
    supports_audio = True

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        transcription_model: Optional[str] = None,
        probe_model: Optional[str] = None,
        language: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
        max_audio_size: Optional[int] = None,
        client: Optional[Any] = None,
    ):
        super().__init__(
            model_name=model_name or settings.openai_model,
            api_key=settings.openai_api_key if api_key is None else api_key,
        )
        self.transcription_model = transcription_model or settings.openai_transcription_model
        self.probe_model = probe_model or settings.openai_probe_model
        self.language = language or settings.transcription_language
        self.max_tokens = max_tokens or settings.openai_max_tokens
        self.temperature = settings.openai_temperature if temperature is None else temperature
        self.max_audio_size = max_audio_size or settings.max_audio_size
        self._client = client
        if self._client is None and self.is_configured:
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                timeout=timeout or settings.provider_timeout,
                max_retries=0,
            )
        logger.info(
            "OpenAIAdapter initialized with model=%s, transcription=%s (configured=%s)",
            self.model_name,
            self.transcription_model,
            self.is_configured,
        )

    def model_id_for(self, content_type: str) -> str:
        if content_type == "audio":
            return f"{self.transcription_model}+{self.model_name}"
        return self.model_name

    async def format_audio(
        self, base64_audio: str, template: str, instruction: Optional[str] = None
    ) -> str:
        self._require_configured()
        payload = decode_audio(base64_audio, self.max_audio_size)
        transcript = await self.transcribe(payload)
        logger.info("Transcribed %d bytes of %s into %d chars", payload.size, payload.mime_type, len(transcript))
        prompt = build_format_prompt(transcript, template, instruction, content_label="transcription")
        return await self._complete(prompt)

    async def transcribe(self, payload: AudioPayload) -> str:
        """Phase one of audio processing: speech to plain text."""
        audio_file = io.BytesIO(payload.data)
        audio_file.name = payload.filename

        try:
            result = await self._client.audio.transcriptions.create(
                model=self.transcription_model,
                file=audio_file,
                language=self.language,
                response_format="text",
            )
        except Exception as exc:
            error = self.classify_error(exc)
            if error.kind is ProviderErrorKind.UNKNOWN:
                error = ProviderError(
                    ProviderErrorKind.TRANSCRIPTION_FAILED, self.name, error.message, error.status_code
                )
            raise error from exc

        # response_format="text" yields a str; older SDKs return an object with .text
        text = result if isinstance(result, str) else getattr(result, "text", "")
        if not text or not text.strip():
            raise ProviderError(
                ProviderErrorKind.TRANSCRIPTION_FAILED,
                self.name,
                "Transcription returned no text",
            )
        return text.strip()

    async def _complete(self, prompt: str) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self.model_name,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as exc:
            raise self.classify_error(exc) from exc

        choices = getattr(response, "choices", None) or []
        if not choices:
            raise ProviderError(ProviderErrorKind.EMPTY_RESPONSE, self.name, "No choices returned")
        content = choices[0].message.content
        if content is not None and not isinstance(content, str):
            raise ProviderError(
                ProviderErrorKind.INVALID_RESPONSE,
                self.name,
                f"Expected text content, got {type(content).__name__}",
            )
        return self._require_text(content)

    async def _send_probe(self) -> None:
        await self._client.chat.completions.create(
            model=self.probe_model,
            messages=[{"role": "user", "content": "ping"}],
            max_tokens=5,
        )

    def classify_error(self, exc: BaseException) -> ProviderError:
        if isinstance(exc, ProviderError):
            return exc
        code = getattr(exc, "code", None)
        if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)) or code == "invalid_api_key":
            return ProviderError(
                ProviderErrorKind.AUTHENTICATION, self.name, str(exc), getattr(exc, "status_code", None)
            )
        if isinstance(exc, openai.RateLimitError):
            kind = (
                ProviderErrorKind.QUOTA_EXCEEDED
                if code == "insufficient_quota"
                else ProviderErrorKind.RATE_LIMITED
            )
            return ProviderError(kind, self.name, str(exc), exc.status_code)
        if isinstance(exc, openai.APITimeoutError):
            return ProviderError(ProviderErrorKind.TIMEOUT, self.name, str(exc))
        if isinstance(exc, openai.APIConnectionError):
            return ProviderError(ProviderErrorKind.SERVICE_UNAVAILABLE, self.name, str(exc))
        if isinstance(exc, openai.APIStatusError):
            if exc.status_code >= 500:
                return ProviderError(
                    ProviderErrorKind.SERVICE_UNAVAILABLE, self.name, str(exc), exc.status_code
                )
            return ProviderError(ProviderErrorKind.UNKNOWN, self.name, str(exc), exc.status_code)
        if isinstance(exc, asyncio.TimeoutError):
            return ProviderError(ProviderErrorKind.TIMEOUT, self.name, "Request timed out")
        return ProviderError(ProviderErrorKind.UNKNOWN, self.name, f"{type(exc).__name__}: {exc}")
