"""Project matching endpoint.

Status contract kept for existing clients: 400 missing input, 500 missing
configuration, 429 upstream throttling, 500 other upstream failures, and
200 with an empty list plus ``error`` when the model reply is unparsable.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from scavenger.core.dependencies import get_matcher
from scavenger.schemas.scan import MatchRequest, MatchResponse
from scavenger.services.ai.common.errors import (
    Misconfigured,
    RateLimited,
    UpstreamFailure,
    ValidationError,
)
from scavenger.services.ai.match.service import ProjectMatcher

logger = logging.getLogger(__name__)

router = APIRouter()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post(
    "/projects/match",
    response_model=MatchResponse,
    response_model_exclude_none=True,
    summary="Match inventory against the project catalog via AI",
)
async def match_projects(
    body: MatchRequest,
    matcher: ProjectMatcher = Depends(get_matcher),
):
    try:
        outcome = await matcher.match(
            body.inventory,
            body.projects,
            user_id=body.user_id,
            resort=body.resort,
        )
    except ValidationError as exc:
        return _error(400, exc.message)
    except Misconfigured:
        return _error(500, "AI service not configured")
    except RateLimited:
        return _error(429, "Rate limit exceeded")
    except UpstreamFailure as exc:
        logger.error("Project matching failed: %s", exc)
        return _error(500, "Project matching failed")

    return MatchResponse(matched_projects=outcome.matched_projects, error=outcome.error)
