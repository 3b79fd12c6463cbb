"""Mock provider: deterministic responses for tests and offline runs."""

from __future__ import annotations

import time
from collections.abc import Sequence
from typing import Any

from .base import BaseProvider, ProviderImage, ProviderResult

DEFAULT_RESPONSE = '{"parent_object": "mock", "items": [], "matched_projects": []}'


class MockProvider(BaseProvider):
    name = "mock"

    def __init__(self, raw_text: str | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.raw_text = raw_text if raw_text is not None else DEFAULT_RESPONSE
        self.calls: list[dict[str, Any]] = []

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
        t0 = time.monotonic()
        self.calls.append(
            {
                "prompt": prompt,
                "system_prompt": system_prompt,
                "images": len(images),
                "model": model,
            }
        )
        text = self.raw_text
        elapsed = (time.monotonic() - t0) * 1000
        return ProviderResult(
            raw_text=text,
            model=model or "mock-v1",
            provider=self.name,
            prompt_tokens=len(prompt.split()),
            completion_tokens=len(text.split()),
            latency_ms=round(elapsed, 2),
        )
