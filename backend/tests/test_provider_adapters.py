"""
WhisperLog Backend — Provider Adapter Tests (Mocked SDKs)
===========================================================

What:  Tests for the Claude, OpenAI and Gemini adapters.
How:   SDK clients are replaced with unittest.mock objects; vendor exceptions
       are built with real httpx requests/responses so classification runs
       against the real exception classes.

What we test:
    ✅ Successful text formatting returns the model's text
    ✅ Empty and malformed responses are classified, not returned
    ✅ Vendor exceptions map onto ProviderErrorKind (auth, quota, timeout, ...)
    ✅ Availability probes never raise and short-circuit without a key
    ✅ Audio: two-phase Whisper flow for OpenAI, inline part for Gemini
    ✅ Per-adapter audio size limits and Gemini invalid-key detection
    ❌ Real API calls
"""

import base64
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import httpx
import openai
import pytest
from google.api_core import exceptions as google_exceptions

from whisperlog.exceptions import ValidationError
from whisperlog.services.providers.base import ProviderError, ProviderErrorKind
from whisperlog.services.providers.claude_adapter import ClaudeAdapter
from whisperlog.services.providers.gemini_adapter import GeminiAdapter
from whisperlog.services.providers.openai_adapter import OpenAIAdapter

TEMPLATE = "# {title}\n- {item}"
AUDIO_B64 = base64.b64encode(b"fake-audio-bytes").decode()


def _response(status: int, url: str) -> httpx.Response:
    return httpx.Response(status, request=httpx.Request("POST", url))


# ══════════════════════════════════════════════════════════════════════════
# Claude
# ══════════════════════════════════════════════════════════════════════════

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"


def _claude(client=None) -> ClaudeAdapter:
    return ClaudeAdapter(api_key="sk-ant-test", model_name="claude-3-haiku-20240307", client=client or MagicMock())


def _claude_message(*blocks):
    return SimpleNamespace(content=list(blocks))


class TestClaudeAdapter:
    """Tests for ClaudeAdapter."""

    @pytest.mark.asyncio
    async def test_format_text_returns_first_text_block(self):
        """The first text block is the result, stripped."""
        client = MagicMock()
        client.messages.create = AsyncMock(
            return_value=_claude_message(SimpleNamespace(type="text", text="  # Weekly\n- ship  "))
        )
        adapter = _claude(client)

        result = await adapter.format_text("we will ship", TEMPLATE, "Be brief")

        assert result == "# Weekly\n- ship"
        kwargs = client.messages.create.await_args.kwargs
        assert kwargs["model"] == "claude-3-haiku-20240307"
        prompt = kwargs["messages"][0]["content"]
        assert "we will ship" in prompt
        assert "Be brief" in prompt

    @pytest.mark.asyncio
    async def test_no_content_blocks_is_empty_response(self):
        """An empty content list is EMPTY_RESPONSE."""
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=_claude_message())
        with pytest.raises(ProviderError) as exc_info:
            await _claude(client).format_text("x", TEMPLATE)
        assert exc_info.value.kind is ProviderErrorKind.EMPTY_RESPONSE
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_non_text_block_is_invalid_response(self):
        """A tool_use first block is INVALID_RESPONSE."""
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=_claude_message(SimpleNamespace(type="tool_use")))
        with pytest.raises(ProviderError) as exc_info:
            await _claude(client).format_text("x", TEMPLATE)
        assert exc_info.value.kind is ProviderErrorKind.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_authentication_error_is_not_retryable(self):
        """A 401 from Anthropic aborts instead of retrying."""
        client = MagicMock()
        client.messages.create = AsyncMock(
            side_effect=anthropic.AuthenticationError(
                "invalid x-api-key", response=_response(401, ANTHROPIC_URL), body=None
            )
        )
        with pytest.raises(ProviderError) as exc_info:
            await _claude(client).format_text("x", TEMPLATE)
        assert exc_info.value.kind is ProviderErrorKind.AUTHENTICATION
        assert exc_info.value.status_code == 401
        assert not exc_info.value.retryable

    def test_classifies_vendor_errors(self):
        """Rate limit, overload, timeout and connection errors map by type."""
        adapter = _claude()
        request = httpx.Request("POST", ANTHROPIC_URL)
        cases = [
            (anthropic.RateLimitError("slow down", response=_response(429, ANTHROPIC_URL), body=None),
             ProviderErrorKind.RATE_LIMITED),
            (anthropic.InternalServerError("overloaded", response=_response(529, ANTHROPIC_URL), body=None),
             ProviderErrorKind.SERVICE_UNAVAILABLE),
            (anthropic.APITimeoutError(request=request), ProviderErrorKind.TIMEOUT),
            (anthropic.APIConnectionError(request=request), ProviderErrorKind.SERVICE_UNAVAILABLE),
            (anthropic.BadRequestError("bad", response=_response(400, ANTHROPIC_URL), body=None),
             ProviderErrorKind.UNKNOWN),
        ]
        for exc, expected in cases:
            assert adapter.classify_error(exc).kind is expected, type(exc).__name__

    @pytest.mark.asyncio
    async def test_audio_is_unsupported(self):
        """Claude never accepts audio."""
        with pytest.raises(ProviderError) as exc_info:
            await _claude().format_audio(AUDIO_B64, TEMPLATE)
        assert exc_info.value.kind is ProviderErrorKind.UNSUPPORTED
        assert not exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_probe_without_key_makes_no_call(self):
        """A missing key reports NOT_CONFIGURED without network traffic."""
        client = MagicMock()
        client.messages.create = AsyncMock()
        adapter = ClaudeAdapter(api_key="", client=client)

        result = await adapter.probe()

        assert not result.available
        assert result.failure_kind is ProviderErrorKind.NOT_CONFIGURED
        client.messages.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_probe_classifies_failure(self):
        """A failing probe returns the classified kind instead of raising."""
        client = MagicMock()
        client.messages.create = AsyncMock(
            side_effect=anthropic.AuthenticationError("bad key", response=_response(401, ANTHROPIC_URL), body=None)
        )
        result = await _claude(client).probe()
        assert result.available is False
        assert result.failure_kind is ProviderErrorKind.AUTHENTICATION
        assert await _claude(client).check_availability() is False

    @pytest.mark.asyncio
    async def test_probe_success(self):
        """A cheap 5-token call that succeeds means available."""
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=_claude_message())
        result = await _claude(client).probe()
        assert result.available
        assert client.messages.create.await_args.kwargs["max_tokens"] == 5


# ══════════════════════════════════════════════════════════════════════════
# OpenAI
# ══════════════════════════════════════════════════════════════════════════

OPENAI_URL = "https://api.openai.com/v1/chat/completions"


def _openai(client=None) -> OpenAIAdapter:
    return OpenAIAdapter(
        api_key="sk-test",
        model_name="gpt-4-turbo-preview",
        transcription_model="whisper-1",
        client=client or MagicMock(),
    )


def _chat(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class TestOpenAIAdapter:
    """Tests for OpenAIAdapter."""

    @pytest.mark.asyncio
    async def test_format_text(self):
        """Chat completion content is returned stripped."""
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=_chat("# Out\n"))
        assert await _openai(client).format_text("hello", TEMPLATE) == "# Out"

    @pytest.mark.asyncio
    async def test_empty_choices_is_empty_response(self):
        """No choices → EMPTY_RESPONSE."""
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[]))
        with pytest.raises(ProviderError) as exc_info:
            await _openai(client).format_text("hello", TEMPLATE)
        assert exc_info.value.kind is ProviderErrorKind.EMPTY_RESPONSE

    @pytest.mark.asyncio
    async def test_whitespace_content_is_empty_response(self):
        """Whitespace-only content is not a result."""
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=_chat("   "))
        with pytest.raises(ProviderError) as exc_info:
            await _openai(client).format_text("hello", TEMPLATE)
        assert exc_info.value.kind is ProviderErrorKind.EMPTY_RESPONSE

    @pytest.mark.asyncio
    async def test_audio_transcribes_then_formats(self):
        """Whisper output becomes the content of the formatting prompt."""
        client = MagicMock()
        client.audio.transcriptions.create = AsyncMock(return_value="dana and lee will ship friday")
        client.chat.completions.create = AsyncMock(return_value=_chat("# Formatted"))
        adapter = _openai(client)

        result = await adapter.format_audio(f"data:audio/mpeg;base64,{AUDIO_B64}", TEMPLATE)

        assert result == "# Formatted"
        transcription_kwargs = client.audio.transcriptions.create.await_args.kwargs
        assert transcription_kwargs["model"] == "whisper-1"
        assert transcription_kwargs["file"].name == "voice_note.mp3"
        assert transcription_kwargs["response_format"] == "text"
        prompt = client.chat.completions.create.await_args.kwargs["messages"][0]["content"]
        assert "dana and lee will ship friday" in prompt
        assert "CONTENT TYPE: transcription" in prompt

    @pytest.mark.asyncio
    async def test_empty_transcription_fails(self):
        """Silence is TRANSCRIPTION_FAILED and the chat step is skipped."""
        client = MagicMock()
        client.audio.transcriptions.create = AsyncMock(return_value="  ")
        client.chat.completions.create = AsyncMock()
        with pytest.raises(ProviderError) as exc_info:
            await _openai(client).format_audio(AUDIO_B64, TEMPLATE)
        assert exc_info.value.kind is ProviderErrorKind.TRANSCRIPTION_FAILED
        client.chat.completions.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_audio_over_configured_limit_rejected(self):
        """max_audio_size passed to the adapter wins over the global setting."""
        client = MagicMock()
        client.audio.transcriptions.create = AsyncMock()
        adapter = OpenAIAdapter(api_key="sk-test", max_audio_size=4, client=client)

        with pytest.raises(ValidationError):
            await adapter.format_audio(AUDIO_B64, TEMPLATE)

        client.audio.transcriptions.create.assert_not_awaited()

    def test_insufficient_quota_is_quota_exceeded(self):
        """The vendor error code separates quota from plain rate limiting."""
        adapter = _openai()
        quota = openai.RateLimitError(
            "You exceeded your current quota",
            response=_response(429, OPENAI_URL),
            body={"code": "insufficient_quota", "message": "quota"},
        )
        throttled = openai.RateLimitError(
            "Rate limit reached",
            response=_response(429, OPENAI_URL),
            body={"code": "rate_limit_exceeded", "message": "slow down"},
        )
        assert adapter.classify_error(quota).kind is ProviderErrorKind.QUOTA_EXCEEDED
        assert adapter.classify_error(throttled).kind is ProviderErrorKind.RATE_LIMITED

    def test_classifies_auth_timeout_and_server_errors(self):
        """Auth aborts; timeouts and 5xx are outages."""
        adapter = _openai()
        request = httpx.Request("POST", OPENAI_URL)
        auth = openai.AuthenticationError(
            "Incorrect API key", response=_response(401, OPENAI_URL), body={"code": "invalid_api_key"}
        )
        assert adapter.classify_error(auth).kind is ProviderErrorKind.AUTHENTICATION
        assert adapter.classify_error(openai.APITimeoutError(request=request)).kind is ProviderErrorKind.TIMEOUT
        server = openai.InternalServerError("boom", response=_response(503, OPENAI_URL), body=None)
        assert adapter.classify_error(server).kind is ProviderErrorKind.SERVICE_UNAVAILABLE

    def test_model_id_records_both_audio_models(self):
        """Audio results are attributed to transcription + formatting models."""
        adapter = _openai()
        assert adapter.model_id_for("audio") == "whisper-1+gpt-4-turbo-preview"
        assert adapter.model_id_for("text") == "gpt-4-turbo-preview"


# ══════════════════════════════════════════════════════════════════════════
# Gemini
# ══════════════════════════════════════════════════════════════════════════

class _BlockedResponse:
    @property
    def text(self):
        raise ValueError("response was blocked")


def _gemini(model=None) -> GeminiAdapter:
    return GeminiAdapter(api_key="gm-test", model_name="gemini-1.5-flash", model=model or MagicMock())


class TestGeminiAdapter:
    """Tests for GeminiAdapter."""

    @pytest.mark.asyncio
    async def test_format_text(self):
        """generate_content_async text is returned."""
        model = MagicMock()
        model.generate_content_async = AsyncMock(return_value=SimpleNamespace(text="# Gemini out"))
        assert await _gemini(model).format_text("notes", TEMPLATE) == "# Gemini out"

    @pytest.mark.asyncio
    async def test_audio_is_one_call_with_inline_part(self):
        """Prompt and audio blob go out together in a single request."""
        model = MagicMock()
        model.generate_content_async = AsyncMock(return_value=SimpleNamespace(text="# From audio"))

        result = await _gemini(model).format_audio(f"data:audio/mpeg;base64,{AUDIO_B64}", TEMPLATE, "Brief")

        assert result == "# From audio"
        contents = model.generate_content_async.await_args.args[0]
        assert "attached audio recording" in contents[0]
        assert contents[1] == {"mime_type": "audio/mpeg", "data": b"fake-audio-bytes"}

    @pytest.mark.asyncio
    async def test_blocked_response_is_invalid(self):
        """A response whose .text raises ValueError is INVALID_RESPONSE."""
        model = MagicMock()
        model.generate_content_async = AsyncMock(return_value=_BlockedResponse())
        with pytest.raises(ProviderError) as exc_info:
            await _gemini(model).format_text("notes", TEMPLATE)
        assert exc_info.value.kind is ProviderErrorKind.INVALID_RESPONSE

    def test_classifies_google_errors(self):
        """google.api_core exceptions map by class."""
        adapter = _gemini()
        cases = [
            (google_exceptions.Unauthenticated("bad key"), ProviderErrorKind.AUTHENTICATION),
            (google_exceptions.PermissionDenied("no access"), ProviderErrorKind.AUTHENTICATION),
            (google_exceptions.ResourceExhausted("quota"), ProviderErrorKind.RATE_LIMITED),
            (google_exceptions.DeadlineExceeded("slow"), ProviderErrorKind.TIMEOUT),
            (google_exceptions.ServiceUnavailable("down"), ProviderErrorKind.SERVICE_UNAVAILABLE),
            (google_exceptions.InternalServerError("oops"), ProviderErrorKind.SERVICE_UNAVAILABLE),
            (google_exceptions.NotFound("no model"), ProviderErrorKind.UNKNOWN),
            (google_exceptions.InvalidArgument("bad request"), ProviderErrorKind.UNKNOWN),
        ]
        for exc, expected in cases:
            assert adapter.classify_error(exc).kind is expected, type(exc).__name__

    def test_invalid_api_key_is_authentication(self):
        """Gemini rejects a bad key with INVALID_ARGUMENT; that is a credential failure."""
        adapter = _gemini()
        with_reason = google_exceptions.InvalidArgument(
            "Request failed", error_info=SimpleNamespace(reason="API_KEY_INVALID", domain="googleapis.com")
        )
        by_message = google_exceptions.InvalidArgument("API key not valid. Please pass a valid API key.")

        assert adapter.classify_error(with_reason).kind is ProviderErrorKind.AUTHENTICATION
        assert adapter.classify_error(by_message).kind is ProviderErrorKind.AUTHENTICATION

    @pytest.mark.asyncio
    async def test_audio_over_configured_limit_rejected(self):
        """The adapter enforces its own max_audio_size before calling the model."""
        model = MagicMock()
        model.generate_content_async = AsyncMock()
        adapter = GeminiAdapter(api_key="gm-test", max_audio_size=4, model=model)

        with pytest.raises(ValidationError) as exc_info:
            await adapter.format_audio(AUDIO_B64, TEMPLATE)

        assert exc_info.value.context["field"] == "content"
        model.generate_content_async.assert_not_called()

    @pytest.mark.asyncio
    async def test_sdk_failure_is_classified(self):
        """SDK exceptions surface as ProviderError, never raw."""
        model = MagicMock()
        model.generate_content_async = AsyncMock(side_effect=google_exceptions.ResourceExhausted("quota"))
        with pytest.raises(ProviderError) as exc_info:
            await _gemini(model).format_text("notes", TEMPLATE)
        assert exc_info.value.kind is ProviderErrorKind.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_probe_lists_models(self):
        """The probe lists one model; failures are classified."""
        adapter = _gemini()
        with patch("whisperlog.services.providers.gemini_adapter.genai.list_models", return_value=iter([object()])):
            assert (await adapter.probe()).available

        with patch(
            "whisperlog.services.providers.gemini_adapter.genai.list_models",
            side_effect=google_exceptions.Unauthenticated("bad key"),
        ):
            result = await adapter.probe()
        assert not result.available
        assert result.failure_kind is ProviderErrorKind.AUTHENTICATION
