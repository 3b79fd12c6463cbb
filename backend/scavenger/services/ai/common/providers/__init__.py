"""Provider factory: returns the configured provider or reports it unusable."""

from __future__ import annotations

import logging

from scavenger.core.config import Settings, get_settings

from ..errors import Misconfigured
from .base import BaseProvider, ProviderImage, ProviderResult
from .mock import MockProvider

logger = logging.getLogger(__name__)

__all__ = [
    "get_provider",
    "BaseProvider",
    "ProviderImage",
    "ProviderResult",
    "MockProvider",
]

_KEY_ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "claude": "ANTHROPIC_API_KEY",
}


def get_provider(provider_name: str, *, settings: Settings | None = None) -> BaseProvider:
    """Return a provider instance for *provider_name*.

    A real provider without its API key raises ``Misconfigured``; there is
    no silent fallback, so the caller never talks to the network without a
    credential.
    """
    settings = settings or get_settings()
    name = provider_name.lower().strip()

    if name == "mock":
        return MockProvider()

    if name not in _KEY_ENV_VARS:
        raise Misconfigured(f"Unknown AI provider {name!r}")

    api_key = settings.api_key_for(name)
    if not api_key:
        logger.error("%s not set - AI service not configured", _KEY_ENV_VARS[name])
        raise Misconfigured("AI service not configured")

    if name == "claude":
        from .claude import ClaudeProvider

        return ClaudeProvider(api_key=api_key)

    from .openai import OpenAIProvider

    return OpenAIProvider(api_key=api_key)
