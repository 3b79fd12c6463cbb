"""AI Router: resolves provider + model + limits for a call scope."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from scavenger.core.config import Settings, get_settings

from .providers import BaseProvider, get_provider

logger = logging.getLogger(__name__)

SCOPES = ("identify", "match")


@dataclass(frozen=True)
class ResolvedConfig:
    """Final resolved provider + model for one call."""

    provider: BaseProvider
    model: str
    temperature: float
    max_tokens: int
    timeout_seconds: float


def resolve(
    scope: str,
    *,
    provider: BaseProvider | None = None,
    settings: Settings | None = None,
) -> ResolvedConfig:
    """Resolve the provider and call limits for *scope*.

    An explicitly injected *provider* wins; otherwise the configured
    ``ai_provider`` is built, which raises ``Misconfigured`` when its
    credential is missing.  Empty model names defer to the provider default.
    """
    if scope not in SCOPES:
        msg = f"Unknown AI scope {scope!r}; valid: {list(SCOPES)}"
        raise ValueError(msg)

    settings = settings or get_settings()
    if provider is None:
        provider = get_provider(settings.ai_provider, settings=settings)

    if scope == "identify":
        model = settings.ai_identify_model
        max_tokens = settings.ai_identify_max_tokens
    else:
        model = settings.ai_match_model
        max_tokens = settings.ai_match_max_tokens

    return ResolvedConfig(
        provider=provider,
        model=model,
        temperature=settings.ai_temperature,
        max_tokens=max_tokens,
        timeout_seconds=settings.ai_timeout_seconds,
    )
