"""
WhisperLog Backend — Processing Orchestrator
==============================================

What:  Runs one content-processing request end to end:
       template lookup → adapter selection → retry loop → persist.
Why:   Vendor calls fail in ways that deserve different treatment. Outages
       are retried with backoff, credential problems abort at once, and the
       caller always gets one classified application error back.
How:   tenacity AsyncRetrying drives the attempts. The adapter is re-probed
       before each attempt so a vendor that recovers mid-sequence is used
       as soon as it answers again.

Request lifecycle:
    ┌─────────┐   ┌────────────────────┐   ┌────────────┐   ┌───────────┐
    │ PENDING │──▶│ AVAILABILITY_CHECK │──▶│ PROCESSING │──▶│ SUCCEEDED │
    └─────────┘   └────────────────────┘   └────────────┘   └───────────┘
                           ▲       │              │
                           │  (retryable fail)    │         ┌────────┐
                           └───────┴──────────────┴────────▶│ FAILED │
                                                            └────────┘

Failure classification after the retry policy has run:
    NOT_CONFIGURED / AUTHENTICATION        → ConfigurationError (503)
    RATE_LIMITED / QUOTA / UNAVAILABLE /
    TIMEOUT                                → ServiceUnavailableError (503)
    UNSUPPORTED                            → ValidationError (400)
    anything else                          → ProcessingFailedError (502)

Nothing is persisted unless a provider returned a formatted result, and no
database lock is held while a vendor call is in flight.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from whisperlog.config import settings
from whisperlog.exceptions import (
    ConfigurationError,
    ProcessingCancelledError,
    ProcessingFailedError,
    ServiceUnavailableError,
    ValidationError,
    WhisperLogError,
)
from whisperlog.models.user import utcnow
from whisperlog.schemas.processed_content import ProcessedContentResponse
from whisperlog.services.audio_service import AudioStorageService
from whisperlog.services.content_service import ContentService
from whisperlog.services.format_service import FormatService
from whisperlog.services.prompting import find_placeholder_leaks
from whisperlog.services.providers.base import (
    CREDENTIAL_KINDS,
    OUTAGE_KINDS,
    ProviderAdapter,
    ProviderError,
    ProviderErrorKind,
)
from whisperlog.services.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

SUPPORTED_CONTENT_TYPES = ("text", "audio")

# Retry-After hint sent with 503s caused by vendor throttling
THROTTLE_RETRY_AFTER = 60


class ProcessingState(str, Enum):
    PENDING = "pending"
    AVAILABILITY_CHECK = "availability_check"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class ProcessingRun:
    """Per-request state record; every transition is logged."""

    content_type: str
    adapter: str = ""
    state: ProcessingState = ProcessingState.PENDING
    attempts: int = 0
    last_error: Optional[ProviderError] = None
    started_at: float = field(default_factory=time.perf_counter)
    finished_at: Optional[float] = None

    def transition(self, state: ProcessingState) -> None:
        logger.debug(
            "Processing %s → %s (adapter=%s, attempt=%d)",
            self.state.value,
            state.value,
            self.adapter or "-",
            self.attempts,
        )
        self.state = state
        if state in (ProcessingState.SUCCEEDED, ProcessingState.FAILED):
            self.finished_at = time.perf_counter()

    @property
    def elapsed_ms(self) -> int:
        end = self.finished_at if self.finished_at is not None else time.perf_counter()
        return max(0, int((end - self.started_at) * 1000))


class CancellationToken:
    """
    Cooperative cancellation for a single processing request.

    The route sets it when the client disconnects; the orchestrator checks it
    before each attempt and races it against each backoff delay.
    """

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ProcessingCancelledError()

    async def sleep(self, seconds: float) -> None:
        """Backoff delay that ends early, with ProcessingCancelledError, on cancel."""
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise ProcessingCancelledError()


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.retryable


class ContentProcessingService:
    """
    Orchestrates template, adapter, retry policy and persistence.

    Shared by all requests. Holds only configuration and references to the
    other stateless services; per-request state lives in ProcessingRun.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        format_service: FormatService,
        content_service: ContentService,
        audio_storage: AudioStorageService,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_wait: Optional[float] = None,
    ):
        self.registry = registry
        self.formats = format_service
        self.contents = content_service
        self.audio_storage = audio_storage
        self.max_attempts = max_attempts or settings.retry_max_attempts
        self.base_delay = settings.retry_base_delay if base_delay is None else base_delay
        self.max_wait = settings.retry_max_wait if max_wait is None else max_wait

    async def process(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        format_id: uuid.UUID,
        content_type: str,
        content: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ProcessedContentResponse:
        """
        Format `content` with the user's template and store the result.

        Raises:
            NotFoundError:            template missing, inactive or foreign
            ValidationError:          unsupported content type, bad audio payload
            ConfigurationError:       provider credentials missing or rejected
            ServiceUnavailableError:  vendor outage persisted through all attempts
            ProcessingFailedError:    any other provider failure
            ProcessingCancelledError: the token was cancelled before success
        """
        token = cancel_token or CancellationToken()
        submission_date = utcnow()
        run = ProcessingRun(content_type=content_type)

        if content_type not in SUPPORTED_CONTENT_TYPES:
            raise ValidationError(
                message=f"Unsupported content type '{content_type}'. Use 'text' or 'audio'.",
                field="contentType",
            )

        template = await self.formats.find_for_processing(db, format_id, user_id)
        adapter = self.registry.select(content_type)
        run.adapter = adapter.name

        payload = None
        if content_type == "audio":
            payload = self.audio_storage.decode(content)
        elif not content.strip():
            raise ValidationError(message="Text content must not be empty.", field="content")

        # Release the connection before any vendor traffic; the session does
        # not expire on commit, so template.format stays readable
        await db.commit()

        logger.info(
            "Processing %s content with template %s via %s",
            content_type,
            format_id,
            adapter.name,
        )

        try:
            output = await self._run_with_retries(
                run, adapter, token, content_type, content, template.format, template.instruction
            )
        except ProcessingCancelledError:
            run.transition(ProcessingState.FAILED)
            logger.info("Processing cancelled after %d attempt(s)", run.attempts)
            raise
        except ProviderError as e:
            run.last_error = e
            run.transition(ProcessingState.FAILED)
            raise self._classify_failure(e, run)

        run.transition(ProcessingState.SUCCEEDED)

        leaks = find_placeholder_leaks(template.format, output)
        if leaks:
            logger.warning(
                "Output from %s still contains template placeholders: %s",
                adapter.name,
                ", ".join(leaks),
            )

        original_content = content
        if payload is not None:
            original_content = await self.audio_storage.prepare_original_content(content, payload)

        try:
            record = await self.contents.create_record(
                db,
                user_id=user_id,
                format_id=template.id,
                content_type=content_type,
                original_content=original_content,
                processed_content=output,
                submission_date=submission_date,
                processing_time_ms=run.elapsed_ms,
                ai_model=adapter.model_id_for(content_type),
                attempts=run.attempts,
                placeholder_leak=bool(leaks),
            )
        except WhisperLogError:
            await self.audio_storage.cleanup_file(original_content)
            raise

        logger.info(
            "Processed %s content in %dms after %d attempt(s)",
            content_type,
            run.elapsed_ms,
            run.attempts,
        )
        return await self.contents.get_content(db, user_id, record.id)

    async def _run_with_retries(
        self,
        run: ProcessingRun,
        adapter: ProviderAdapter,
        token: CancellationToken,
        content_type: str,
        content: str,
        template: str,
        instruction: Optional[str],
    ) -> str:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_wait),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=token.sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                run.attempts = attempt.retry_state.attempt_number
                return await self._attempt(run, adapter, token, content_type, content, template, instruction)
        raise ProcessingFailedError()  # unreachable: reraise=True

    async def _attempt(
        self,
        run: ProcessingRun,
        adapter: ProviderAdapter,
        token: CancellationToken,
        content_type: str,
        content: str,
        template: str,
        instruction: Optional[str],
    ) -> str:
        token.raise_if_cancelled()

        run.transition(ProcessingState.AVAILABILITY_CHECK)
        probe = await adapter.probe()
        if not probe.available:
            error = ProviderError(
                probe.failure_kind or ProviderErrorKind.SERVICE_UNAVAILABLE,
                adapter.name,
                probe.detail or "Availability probe failed",
            )
            run.last_error = error
            raise error

        token.raise_if_cancelled()
        run.transition(ProcessingState.PROCESSING)
        try:
            if content_type == "audio":
                return await adapter.format_audio(content, template, instruction)
            return await adapter.format_text(content, template, instruction)
        except (ProviderError, WhisperLogError) as e:
            if isinstance(e, ProviderError):
                run.last_error = e
            raise
        except Exception as exc:
            error = adapter.classify_error(exc)
            run.last_error = error
            raise error from exc

    def _classify_failure(self, error: ProviderError, run: ProcessingRun) -> WhisperLogError:
        context = {
            "provider": error.provider,
            "kind": error.kind.value,
            "attempts": run.attempts,
        }
        if error.kind in CREDENTIAL_KINDS:
            logger.error(
                "Provider %s rejected or lacks credentials: %s", error.provider, error.message
            )
            return ConfigurationError(context=context)
        if error.kind in OUTAGE_KINDS:
            logger.error(
                "Provider %s unavailable after %d attempt(s): %s",
                error.provider,
                run.attempts,
                error.message,
            )
            retry_after = None
            if error.kind in (ProviderErrorKind.RATE_LIMITED, ProviderErrorKind.QUOTA_EXCEEDED):
                retry_after = THROTTLE_RETRY_AFTER
            return ServiceUnavailableError(retry_after=retry_after, context=context)
        if error.kind == ProviderErrorKind.UNSUPPORTED:
            return ValidationError(
                message=f"Content type '{run.content_type}' is not supported by the selected provider.",
                field="contentType",
                context=context,
            )
        logger.error(
            "Processing failed via %s after %d attempt(s): %s",
            error.provider,
            run.attempts,
            error.message,
        )
        return ProcessingFailedError(context=context)
