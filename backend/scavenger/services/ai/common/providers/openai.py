"""OpenAI provider."""

from __future__ import annotations

import base64
import logging
import time
from collections.abc import Sequence
from typing import Any

from ..errors import UpstreamFailure
from .base import BaseProvider, ProviderImage, ProviderResult, log_timing

logger = logging.getLogger(__name__)

API_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-4o-mini"


class OpenAIProvider(BaseProvider):
    name = "openai"

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
            encoded = base64.b64encode(image.data).decode("ascii")
            content.append(
                {
                    "type": "image_url",
                    # Images arrive pre-compressed; "low" keeps token cost flat.
                    "image_url": {
                        "url": f"data:{image.content_type};base64,{encoded}",
                        "detail": "low",
                    },
                }
            )

        messages: list[dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": content if images else prompt})

        data = await self._post_json(
            API_URL,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            payload={
                "model": model,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "messages": messages,
            },
            timeout_seconds=timeout_seconds,
        )

        elapsed = (time.monotonic() - t0) * 1000
        usage = data.get("usage") if isinstance(data, dict) else None
        usage = usage if isinstance(usage, dict) else {}
        try:
            text = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise UpstreamFailure(
                "openai response missing choices",
                status=200,
                prompt_tokens=usage.get("prompt_tokens", 0),
                completion_tokens=usage.get("completion_tokens", 0),
            ) from exc
        log_timing(self.name, model, elapsed)

        return ProviderResult(
            raw_text=text,
            model=model,
            provider=self.name,
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            latency_ms=round(elapsed, 2),
        )
