"""
WhisperLog Backend — Provider Registry Tests
==============================================

What:  Tests for ProviderRegistry selection and build_provider_registry.

What we test:
    ✅ Preference order, capability filtering, configured-first selection
    ✅ Fallback to an unconfigured adapter when none has a key
    ✅ No capable adapter → ValidationError
    ✅ Settings-driven construction without network access
    ✅ Provider status is reused for status_ttl seconds
"""

import asyncio

import pytest

from conftest import FakeAdapter, provider_error
from whisperlog.config import settings
from whisperlog.exceptions import ValidationError
from whisperlog.services.providers.base import ProviderErrorKind
from whisperlog.services.providers.registry import ProviderRegistry, build_provider_registry


class TextOnlyAdapter(FakeAdapter):
    name = "textonly"
    supports_audio = False


class TestSelect:
    """Tests for ProviderRegistry.select."""

    def test_first_configured_in_preference_order(self):
        """An unconfigured first choice is skipped."""
        first = FakeAdapter(configured=False)
        second = FakeAdapter()
        registry = ProviderRegistry({"a": first, "b": second}, text_preference=["a", "b"], audio_preference=["a"])

        assert registry.select("text") is second

    def test_audio_skips_text_only_adapters(self):
        """Capability beats preference order."""
        text_only = TextOnlyAdapter()
        audio = FakeAdapter()
        registry = ProviderRegistry(
            {"textonly": text_only, "fake": audio},
            text_preference=["textonly", "fake"],
            audio_preference=["textonly", "fake"],
        )

        assert registry.select("audio") is audio
        assert registry.select("text") is text_only
        assert registry.candidates("audio") == [audio]

    def test_falls_back_to_unconfigured(self):
        """With no keys anywhere the first capable adapter is returned."""
        lonely = FakeAdapter(configured=False)
        registry = ProviderRegistry({"fake": lonely}, text_preference=["fake"], audio_preference=["fake"])

        assert registry.select("text") is lonely

    def test_no_capable_adapter(self):
        """An empty candidate list is a validation error on contentType."""
        registry = ProviderRegistry({"textonly": TextOnlyAdapter()}, text_preference=["textonly"], audio_preference=["textonly"])

        with pytest.raises(ValidationError) as exc_info:
            registry.select("audio")
        assert exc_info.value.field == "contentType"

    def test_unknown_names_ignored(self):
        """Preference entries without an adapter are skipped."""
        adapter = FakeAdapter()
        registry = ProviderRegistry({"fake": adapter}, text_preference=["missing", "fake"], audio_preference=[])
        assert registry.candidates("text") == [adapter]
        assert registry.get("missing") is None


class TestBuildRegistry:
    """Tests for build_provider_registry."""

    def test_builds_all_vendors_without_keys(self):
        """Every vendor adapter exists; none is configured in the test env."""
        registry = build_provider_registry(settings)

        names = sorted(adapter.name for adapter in registry.all())
        assert names == ["claude", "gemini", "openai"]
        assert not any(adapter.is_configured for adapter in registry.all())

    def test_preferences_follow_settings(self):
        """AUDIO_PROVIDERS order decides audio candidates."""
        config = settings.model_copy(update={"audio_providers": "gemini,openai"})
        registry = build_provider_registry(config)

        assert [adapter.name for adapter in registry.candidates("audio")] == ["gemini", "openai"]

    def test_audio_limit_follows_settings(self):
        """MAX_AUDIO_SIZE reaches every audio-capable adapter."""
        config = settings.model_copy(update={"max_audio_size": 2048})
        registry = build_provider_registry(config)

        assert registry.get("openai").max_audio_size == 2048
        assert registry.get("gemini").max_audio_size == 2048


class TestAvailability:
    """Tests for ProviderRegistry.availability."""

    @pytest.mark.asyncio
    async def test_status_reused_within_ttl(self):
        """Repeated calls inside the TTL hit each vendor once."""
        adapter = FakeAdapter()
        registry = ProviderRegistry({"fake": adapter}, text_preference=["fake"], audio_preference=["fake"], status_ttl=60)

        first = await registry.availability()
        second = await registry.availability()

        assert first == second == {"fake": "available"}
        assert adapter.probe_calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_round(self):
        """Callers arriving together wait for the same vendor checks."""
        adapter = FakeAdapter()
        registry = ProviderRegistry({"fake": adapter}, text_preference=["fake"], audio_preference=["fake"], status_ttl=60)

        results = await asyncio.gather(*(registry.availability() for _ in range(5)))

        assert all(result == {"fake": "available"} for result in results)
        assert adapter.probe_calls == 1

    @pytest.mark.asyncio
    async def test_zero_ttl_always_rechecks(self):
        """status_ttl=0 disables reuse, so a recovery is seen at once."""
        adapter = FakeAdapter(probe_failures=[provider_error(ProviderErrorKind.SERVICE_UNAVAILABLE), None])
        registry = ProviderRegistry({"fake": adapter}, text_preference=["fake"], audio_preference=["fake"], status_ttl=0)

        assert await registry.availability() == {"fake": "unavailable"}
        assert await registry.availability() == {"fake": "available"}
        assert adapter.probe_calls == 2

    @pytest.mark.asyncio
    async def test_unconfigured_reported_without_vendor_call(self):
        """A missing key is not_configured and never reaches the vendor."""
        adapter = FakeAdapter(configured=False)
        registry = ProviderRegistry({"fake": adapter}, text_preference=["fake"], audio_preference=["fake"])

        assert await registry.availability() == {"fake": "not_configured"}
        assert adapter.probe_calls == 0

    def test_ttl_follows_settings(self):
        """HEALTH_STATUS_TTL configures the reuse window."""
        config = settings.model_copy(update={"health_status_ttl": 5.0})
        assert build_provider_registry(config).status_ttl == 5.0
