"""Anthropic / Claude provider."""

from __future__ import annotations

import base64
import logging
import time
from collections.abc import Sequence
from typing import Any

from ..errors import UpstreamFailure
from .base import BaseProvider, ProviderImage, ProviderResult, log_timing

logger = logging.getLogger(__name__)

API_URL = "https://api.anthropic.com/v1/messages"
API_VERSION = "2023-06-01"
DEFAULT_MODEL = "claude-3-haiku-20240307"


class ClaudeProvider(BaseProvider):
    name = "claude"

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
        model = model or DEFAULT_MODEL
        t0 = time.monotonic()

        content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        for image in images:
            content.append(
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": image.content_type,
                        "data": base64.b64encode(image.data).decode("ascii"),
                    },
                }
            )

        payload: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": content}],
        }
        if system_prompt:
            payload["system"] = system_prompt

        data = await self._post_json(
            API_URL,
            headers={
                "x-api-key": self._api_key,
                "anthropic-version": API_VERSION,
                "content-type": "application/json",
            },
            payload=payload,
            timeout_seconds=timeout_seconds,
        )

        elapsed = (time.monotonic() - t0) * 1000
        usage = data.get("usage") if isinstance(data, dict) else None
        usage = usage if isinstance(usage, dict) else {}
        try:
            text = data["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise UpstreamFailure(
                "claude response missing content",
                status=200,
                prompt_tokens=usage.get("input_tokens", 0),
                completion_tokens=usage.get("output_tokens", 0),
            ) from exc
        log_timing(self.name, model, elapsed)

        return ProviderResult(
            raw_text=text,
            model=model,
            provider=self.name,
            prompt_tokens=usage.get("input_tokens", 0),
            completion_tokens=usage.get("output_tokens", 0),
            latency_ms=round(elapsed, 2),
        )
