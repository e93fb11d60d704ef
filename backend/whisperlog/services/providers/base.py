"""
WhisperLog Backend — Provider Adapter Interface
=================================================

What:  Abstract base class and error vocabulary shared by every AI vendor adapter.
Why:   The orchestrator must not care whether Claude, GPT or Gemini formats a
       note. It needs three capabilities (format text, format audio, check
       availability) and a failure classification it can act on.
How:   Concrete adapters implement `_complete`, `_send_probe` and
       `classify_error`; the base class turns those into the public contract.

Failure classification:
    Vendor SDKs raise their own exception types. Each adapter maps them onto
    ProviderErrorKind by exception class, HTTP status and vendor error code,
    never by matching message text. The orchestrator's retry policy only
    looks at the kind:

        NOT_CONFIGURED, AUTHENTICATION, UNSUPPORTED  → abort, no retry
        everything else                              → retry until exhausted
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from whisperlog.services.prompting import build_format_prompt

logger = logging.getLogger(__name__)


class ProviderErrorKind(str, Enum):
    NOT_CONFIGURED = "not_configured"
    AUTHENTICATION = "authentication"
    QUOTA_EXCEEDED = "quota_exceeded"
    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    TIMEOUT = "timeout"
    EMPTY_RESPONSE = "empty_response"
    INVALID_RESPONSE = "invalid_response"
    TRANSCRIPTION_FAILED = "transcription_failed"
    UNSUPPORTED = "unsupported"
    UNKNOWN = "unknown"


NON_RETRYABLE_KINDS = frozenset({
    ProviderErrorKind.NOT_CONFIGURED,
    ProviderErrorKind.AUTHENTICATION,
    ProviderErrorKind.UNSUPPORTED,
})

# Kinds reported to callers as a vendor outage
OUTAGE_KINDS = frozenset({
    ProviderErrorKind.QUOTA_EXCEEDED,
    ProviderErrorKind.RATE_LIMITED,
    ProviderErrorKind.SERVICE_UNAVAILABLE,
    ProviderErrorKind.TIMEOUT,
})

CREDENTIAL_KINDS = frozenset({
    ProviderErrorKind.NOT_CONFIGURED,
    ProviderErrorKind.AUTHENTICATION,
})


class ProviderError(Exception):
    """
    A classified failure from one provider call.

    Attributes:
        kind:        What went wrong, in vendor-neutral terms.
        provider:    Adapter name ("claude", "openai", "gemini").
        message:     Detail for logs; never returned to API clients verbatim.
        status_code: Vendor HTTP status when one was available.
    """

    def __init__(
        self,
        kind: ProviderErrorKind,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
    ):
        self.kind = kind
        self.provider = provider
        self.message = message
        self.status_code = status_code
        super().__init__(f"[{provider}] {kind.value}: {message}")

    @property
    def retryable(self) -> bool:
        return self.kind not in NON_RETRYABLE_KINDS


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of an availability probe; `failure_kind` is None when available."""

    available: bool
    failure_kind: Optional[ProviderErrorKind] = None
    detail: str = ""


class ProviderAdapter(ABC):
    """
    Integration boundary to one AI vendor.

    Contract:
        - format_text() / format_audio() return non-empty markdown or raise
          ProviderError; vendor exceptions never escape unclassified.
        - check_availability() never raises.
        - Instances hold only immutable configuration and an SDK client, so
          one instance is safely shared by concurrent requests.
    """

    name: str = "provider"
    supports_text: bool = True
    supports_audio: bool = False

    def __init__(self, model_name: str, api_key: str = ""):
        self.model_name = model_name
        self._api_key = api_key

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def model_id_for(self, content_type: str) -> str:
        """Model identifier recorded with results for the given content type."""
        return self.model_name

    # ── Formatting ────────────────────────────────────────────────────────

    async def format_text(self, content: str, template: str, instruction: Optional[str] = None) -> str:
        """Format user text into the template's structure."""
        self._require_configured()
        prompt = build_format_prompt(content, template, instruction, content_label="text")
        return await self._complete(prompt)

    async def format_audio(
        self, base64_audio: str, template: str, instruction: Optional[str] = None
    ) -> str:
        """Transcribe a base64 recording and format it into the template's structure."""
        raise ProviderError(
            ProviderErrorKind.UNSUPPORTED,
            self.name,
            f"{self.name} does not accept audio input",
        )

    # ── Availability ──────────────────────────────────────────────────────

    async def probe(self) -> ProbeResult:
        """
        Issue the cheapest possible vendor call and classify the outcome.

        A missing key short-circuits without any network traffic.
        """
        if not self.is_configured:
            return ProbeResult(
                available=False,
                failure_kind=ProviderErrorKind.NOT_CONFIGURED,
                detail=f"No API key configured for {self.name}",
            )
        try:
            await self._send_probe()
        except Exception as exc:  # probe must never raise
            error = exc if isinstance(exc, ProviderError) else self.classify_error(exc)
            self._log_probe_failure(error)
            return ProbeResult(available=False, failure_kind=error.kind, detail=error.message)
        return ProbeResult(available=True)

    async def check_availability(self) -> bool:
        return (await self.probe()).available

    def _log_probe_failure(self, error: ProviderError) -> None:
        if error.kind in CREDENTIAL_KINDS:
            logger.error("%s authentication failed; check the API key: %s", self.name, error.message)
        elif error.kind in (ProviderErrorKind.RATE_LIMITED, ProviderErrorKind.QUOTA_EXCEEDED):
            logger.warning("%s rate limit or quota exceeded: %s", self.name, error.message)
        elif error.kind in (ProviderErrorKind.SERVICE_UNAVAILABLE, ProviderErrorKind.TIMEOUT):
            logger.warning("%s temporarily unavailable: %s", self.name, error.message)
        else:
            logger.warning("%s availability probe failed (%s): %s", self.name, error.kind.value, error.message)

    # ── Helpers for subclasses ────────────────────────────────────────────

    def _require_configured(self) -> None:
        if not self.is_configured:
            raise ProviderError(
                ProviderErrorKind.NOT_CONFIGURED,
                self.name,
                f"No API key configured for {self.name}",
            )

    def _require_text(self, text: Optional[str], what: str = "response") -> str:
        if text is None or not text.strip():
            raise ProviderError(
                ProviderErrorKind.EMPTY_RESPONSE,
                self.name,
                f"{self.name} returned an empty {what}",
            )
        return text.strip()

    @abstractmethod
    async def _complete(self, prompt: str) -> str:
        """Send one prompt and return the model's non-empty text answer."""
        ...

    @abstractmethod
    async def _send_probe(self) -> None:
        """Minimal vendor call; raises on any failure."""
        ...

    @abstractmethod
    def classify_error(self, exc: BaseException) -> ProviderError:
        """Map a vendor SDK exception onto a ProviderError."""
        ...
