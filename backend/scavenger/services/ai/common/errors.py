"""Error taxonomy shared by the scan pipeline.

Local errors (``ValidationError``, ``Misconfigured``, ``DecodeError``) are
raised before any network call. Upstream errors carry enough detail for the
caller to decide on a retry; nothing in this package retries on its own.
"""

from __future__ import annotations

from typing import Any

BODY_EXCERPT_LIMIT = 500


class ScanError(Exception):
    """Base class for every pipeline failure."""

    code = "scan_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ScanError):
    code = "validation_error"


class Misconfigured(ScanError):
    code = "misconfigured"


class DecodeError(ScanError):
    code = "decode_error"


class ModelNotReady(ScanError):
    code = "model_not_ready"


class UpstreamFailure(ScanError):
    code = "upstream_failure"

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        body: str = "",
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.body_excerpt = excerpt(body)
        # Usage the provider still reported for a reply it could not use.
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens


class RateLimited(UpstreamFailure):
    code = "rate_limited"

    def __init__(self, message: str = "Rate limit exceeded", *, body: str = "") -> None:
        super().__init__(message, status=429, body=body)


class ParseError(ScanError):
    code = "parse_error"

    def __init__(
        self,
        message: str,
        *,
        raw_text: str = "",
        partial: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.raw_excerpt = excerpt(raw_text)
        self.partial = partial or {}


def excerpt(text: str | None, limit: int = BODY_EXCERPT_LIMIT) -> str:
    if not text:
        return ""
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
