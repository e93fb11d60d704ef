"""AI vendor adapters behind a common ProviderAdapter interface."""

from whisperlog.services.providers.base import (
    ProbeResult,
    ProviderAdapter,
    ProviderError,
    ProviderErrorKind,
)
from whisperlog.services.providers.registry import ProviderRegistry, build_provider_registry

__all__ = [
    "ProbeResult",
    "ProviderAdapter",
    "ProviderError",
    "ProviderErrorKind",
    "ProviderRegistry",
    "build_provider_registry",
]
