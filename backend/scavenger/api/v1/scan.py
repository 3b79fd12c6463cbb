"""Scan endpoints: capture a still, get structured identification back."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from scavenger.core.config import get_settings
from scavenger.core.dependencies import get_orchestrator, get_scan_cache
from scavenger.core.image_processing import normalize_images
from scavenger.schemas.scan import IdentifyResponse
from scavenger.services.ai.common.errors import (
    DecodeError,
    Misconfigured,
    ParseError,
    RateLimited,
    ScanError,
    UpstreamFailure,
    ValidationError,
)
from scavenger.services.ai.identify.service import IdentificationOrchestrator
from scavenger.services.scan_cache import ScanCache

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_IMAGES = 5
MAX_IMAGE_BYTES = 15 * 1024 * 1024


def _error_detail(exc: ScanError, **extra) -> dict:
    return {"error": exc.message, "code": exc.code, **extra}


def raise_for_scan_error(exc: ScanError) -> None:
    """Map the pipeline taxonomy onto HTTP statuses."""
    if isinstance(exc, (ValidationError, DecodeError)):
        raise HTTPException(400, _error_detail(exc)) from exc
    if isinstance(exc, Misconfigured):
        raise HTTPException(500, _error_detail(exc)) from exc
    if isinstance(exc, RateLimited):
        raise HTTPException(429, _error_detail(exc)) from exc
    if isinstance(exc, UpstreamFailure):
        raise HTTPException(502, _error_detail(exc, upstream_status=exc.status)) from exc
    if isinstance(exc, ParseError):
        raise HTTPException(
            502,
            _error_detail(
                exc,
                partial_detection=exc.partial,
                message="Full breakdown failed, but here is what was detected.",
            ),
        ) from exc
    raise HTTPException(500, _error_detail(exc)) from exc


@router.post("/scan/identify", response_model=IdentifyResponse)
async def identify_component(
    images: List[UploadFile] = File(...),
    user_id: str = Form(..., min_length=1, max_length=64),
    user_hint: Optional[str] = Form(None, max_length=500),
    scan_id: Optional[str] = Form(None, max_length=64),
    orchestrator: IdentificationOrchestrator = Depends(get_orchestrator),
    cache: ScanCache = Depends(get_scan_cache),
):
    if len(images) > MAX_IMAGES:
        raise HTTPException(400, {"error": f"At most {MAX_IMAGES} images per scan"})

    raws: list[bytes] = []
    for idx, upload in enumerate(images):
        content = await upload.read()
        if not content:
            raise HTTPException(400, {"error": f"Image {idx + 1} is empty"})
        if len(content) > MAX_IMAGE_BYTES:
            raise HTTPException(413, {"error": f"Image {idx + 1} is too large"})
        raws.append(content)

    try:
        normalized = normalize_images(raws)
    except DecodeError as exc:
        raise_for_scan_error(exc)

    primary, extra = normalized[0], normalized[1:]
    settings = get_settings()
    # Hints change the answer, so only hint-free scans share the cache.
    use_cache = settings.scan_cache_enabled and not user_hint

    if use_cache:
        cached = cache.get(primary.fingerprint)
        if cached is not None:
            logger.info("Cache hit for %s", primary.fingerprint)
            return IdentifyResponse(**{**cached, "cached": True})

    try:
        result = await orchestrator.identify(
            primary,
            user_id=user_id,
            scan_id=scan_id,
            user_hint=user_hint,
            extra_images=extra,
        )
    except ScanError as exc:
        raise_for_scan_error(exc)

    payload = result.to_payload()
    if use_cache:
        cache.put(primary.fingerprint, payload)
    return IdentifyResponse(**payload)
