"""Abstract base for all AI providers."""

from __future__ import annotations

import abc
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from ..errors import RateLimited, UpstreamFailure

logger = logging.getLogger(__name__)

SLOW_CALL_MS = 1000.0


@dataclass(frozen=True)
class ProviderImage:
    """Already-encoded image attached to a request."""

    data: bytes
    content_type: str = "image/jpeg"


@dataclass(frozen=True)
class ProviderResult:
    """Immutable result returned by every provider."""

    raw_text: str
    model: str
    provider: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    latency_ms: float = 0.0


class BaseProvider(abc.ABC):
    """Contract that every AI provider must implement.

    Non-2xx responses raise ``RateLimited`` (429) or ``UpstreamFailure``
    carrying the status and a body excerpt.  Transport errors raise
    ``UpstreamFailure`` with ``status=None`` (the request never completed).
    """

    name: str = "base"

    def __init__(
        self,
        api_key: str = "",
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._transport = transport

    @abc.abstractmethod
    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        images: Sequence[ProviderImage] = (),
        model: str = "",
        temperature: float = 0.3,
        max_tokens: int = 1024,
        timeout_seconds: float = 8.0,
    ) -> ProviderResult:
        """Send *prompt* (and *images*) and return a ``ProviderResult``."""

    async def _post_json(
        self,
        url: str,
        *,
        headers: dict[str, str],
        payload: dict[str, Any],
        timeout_seconds: float,
    ) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                timeout=timeout_seconds, transport=self._transport
            ) as client:
                resp = await client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException as exc:
            raise UpstreamFailure(f"{self.name} request timed out") from exc
        except httpx.HTTPError as exc:
            raise UpstreamFailure(f"{self.name} transport error: {exc}") from exc

        if resp.status_code == 429:
            logger.warning("%s rate limited the request", self.name)
            raise RateLimited(body=resp.text)
        if resp.is_error:
            logger.error("%s API error: %s %s", self.name, resp.status_code, resp.text[:200])
            raise UpstreamFailure(
                f"{self.name} error: {resp.status_code}",
                status=resp.status_code,
                body=resp.text,
            )

        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamFailure(
                f"{self.name} returned a non-JSON envelope",
                status=resp.status_code,
                body=resp.text,
            ) from exc


def log_timing(provider: str, model: str, latency_ms: float) -> None:
    if latency_ms > SLOW_CALL_MS:
        logger.info("%s/%s call took %.2fms", provider, model, latency_ms)
    else:
        logger.debug("%s/%s call took %.2fms", provider, model, latency_ms)
