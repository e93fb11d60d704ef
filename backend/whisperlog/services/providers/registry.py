"""
WhisperLog Backend — Provider Registry
========================================

What:  Holds one adapter per vendor and picks the adapter for a content type.
Why:   Which vendor formats a note is a deployment decision (TEXT_PROVIDERS,
       AUDIO_PROVIDERS), not something call sites should hard-code.
How:   Walk the preference list, keep adapters that support the content type,
       prefer the first one whose key is configured. When none is configured
       the first capable adapter is still returned; its probe reports
       NOT_CONFIGURED and the orchestrator aborts with a ConfigurationError.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Sequence

from whisperlog.config import Settings
from whisperlog.exceptions import ValidationError
from whisperlog.services.providers.base import ProviderAdapter
from whisperlog.services.providers.claude_adapter import ClaudeAdapter
from whisperlog.services.providers.gemini_adapter import GeminiAdapter
from whisperlog.services.providers.openai_adapter import OpenAIAdapter

logger = logging.getLogger(__name__)


class ProviderRegistry:
    def __init__(
        self,
        adapters: Dict[str, ProviderAdapter],
        text_preference: Sequence[str],
        audio_preference: Sequence[str],
        status_ttl: float = 30.0,
    ):
        self._adapters = dict(adapters)
        self._preferences = {
            "text": list(text_preference),
            "audio": list(audio_preference),
        }
        self.status_ttl = status_ttl
        self._status: Dict[str, str] = {}
        self._status_checked_at: Optional[float] = None
        self._status_lock = asyncio.Lock()

    def get(self, name: str) -> Optional[ProviderAdapter]:
        return self._adapters.get(name)

    def all(self) -> List[ProviderAdapter]:
        return list(self._adapters.values())

    def candidates(self, content_type: str) -> List[ProviderAdapter]:
        """Adapters able to handle `content_type`, in preference order."""
        found = []
        for name in self._preferences.get(content_type, []):
            adapter = self._adapters.get(name)
            if adapter is None:
                continue
            capable = adapter.supports_audio if content_type == "audio" else adapter.supports_text
            if capable:
                found.append(adapter)
        return found

    def select(self, content_type: str) -> ProviderAdapter:
        """
        Pick the adapter for a content type.

        Raises:
            ValidationError: no registered adapter can handle this content type.
        """
        candidates = self.candidates(content_type)
        if not candidates:
            raise ValidationError(
                message=f"Content type '{content_type}' is not supported by any configured provider.",
                field="contentType",
            )
        for adapter in candidates:
            if adapter.is_configured:
                return adapter
        logger.warning(
            "No configured provider for %s content; falling back to unconfigured '%s'",
            content_type,
            candidates[0].name,
        )
        return candidates[0]

    async def availability(self) -> Dict[str, str]:
        """
        Map each adapter name to available / unavailable / not_configured.

        Results are reused for `status_ttl` seconds and concurrent callers
        share one round of vendor checks.
        """
        async with self._status_lock:
            now = time.monotonic()
            if (
                self._status_checked_at is not None
                and now - self._status_checked_at < self.status_ttl
            ):
                return dict(self._status)

            adapters = self.all()
            results = await asyncio.gather(*(adapter.probe() for adapter in adapters))

            status = {}
            for adapter, result in zip(adapters, results):
                if result.available:
                    status[adapter.name] = "available"
                elif not adapter.is_configured:
                    status[adapter.name] = "not_configured"
                else:
                    status[adapter.name] = "unavailable"

            self._status = status
            self._status_checked_at = time.monotonic()
            return dict(status)


def build_provider_registry(config: Settings) -> ProviderRegistry:
    """Construct every vendor adapter from settings and wrap them in a registry."""
    adapters: Dict[str, ProviderAdapter] = {
        "claude": ClaudeAdapter(
            api_key=config.anthropic_api_key,
            model_name=config.anthropic_model,
            max_tokens=config.anthropic_max_tokens,
            temperature=config.anthropic_temperature,
            timeout=config.provider_timeout,
        ),
        "openai": OpenAIAdapter(
            api_key=config.openai_api_key,
            model_name=config.openai_model,
            transcription_model=config.openai_transcription_model,
            probe_model=config.openai_probe_model,
            language=config.transcription_language,
            max_tokens=config.openai_max_tokens,
            temperature=config.openai_temperature,
            timeout=config.provider_timeout,
            max_audio_size=config.max_audio_size,
        ),
        "gemini": GeminiAdapter(
            api_key=config.gemini_api_key,
            model_name=config.gemini_model,
            timeout=config.provider_timeout,
            max_audio_size=config.max_audio_size,
        ),
    }
    return ProviderRegistry(
        adapters,
        text_preference=config.text_provider_list,
        audio_preference=config.audio_provider_list,
        status_ttl=config.health_status_ttl,
    )
