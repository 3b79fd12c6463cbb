"""Project matching: inventory + catalog in, scored projects out.

One remote call per invocation, with the whole inventory and catalog in the
prompt.  This bounds call volume but also caps how large a catalog the model
can reason over in one pass; larger catalogs need pre-filtering by the
caller.

Unlike identification, an unparsable response is not an error here: the
caller gets an empty, successful result with a diagnostic, because a failed
match can be recovered by retrying or browsing projects by hand.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError as SchemaValidationError

from scavenger.core.config import Settings

from ..common import router as ai_router
from ..common.costs import CostSink, build_cost_record, emit
from ..common.errors import UpstreamFailure, ValidationError
from ..common.json_tools import ParseStage, parse_structured
from ..common.providers.base import BaseProvider, ProviderResult
from .contracts import MatchResult

_module_logger = logging.getLogger(__name__)

PARSE_FAILURE_DIAGNOSTIC = "Failed to parse matches"

MATCHING_PROMPT = """You are Scavenger AI's project matcher. Given a user's inventory of components and a list of available projects, determine which projects the user can build.

For each project, analyze:
1. Which required components the user already has
2. Which components are missing
3. Estimated cost to complete (for missing parts)
4. A match score (0-100) based on how many components they have

Return results sorted by match score (highest first).

IMPORTANT: Respond with valid JSON in this exact format:
{
  "matched_projects": [
    {
      "project_id": "uuid",
      "project_name": "string",
      "match_score": number,
      "components_have": ["string"],
      "components_missing": [{"name": "string", "estimated_cost": number}],
      "total_missing_cost": number,
      "recommendation": "string (brief note on why this is a good match)"
    }
  ]
}"""


@dataclass
class MatchOutcome:
    matched_projects: list[MatchResult]
    parse_stage: ParseStage
    error: str | None = None
    provider_result: ProviderResult | None = None
    dropped: int = 0

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "matched_projects": [m.model_dump() for m in self.matched_projects],
        }
        if self.error:
            payload["error"] = self.error
        return payload


def sort_by_score(results: Sequence[MatchResult]) -> list[MatchResult]:
    """Descending by score; ties keep their incoming (catalog) order."""
    return sorted(results, key=lambda r: r.match_score, reverse=True)


class ProjectMatcher:
    def __init__(
        self,
        *,
        provider: BaseProvider | None = None,
        cost_sink: CostSink | None = None,
        settings: Settings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._provider = provider
        self._cost_sink = cost_sink
        self._settings = settings
        self._log = logger or _module_logger

    @staticmethod
    def build_prompt(inventory: Sequence[Any], projects: Sequence[Any]) -> str:
        return (
            f"User's Inventory:\n{json.dumps(inventory, indent=2, default=str)}\n\n"
            f"Available Projects:\n{json.dumps(projects, indent=2, default=str)}\n\n"
            "Find the best project matches for this inventory."
        )

    async def match(
        self,
        inventory: Sequence[Any] | None,
        projects: Sequence[Any] | None,
        *,
        user_id: str = "anonymous",
        resort: bool = False,
    ) -> MatchOutcome:
        if inventory is None or projects is None:
            raise ValidationError("Inventory and projects are required")
        if isinstance(inventory, (str, bytes)) or isinstance(projects, (str, bytes)):
            raise ValidationError("Inventory and projects must be lists")

        config = ai_router.resolve("match", provider=self._provider, settings=self._settings)
        inventory, projects = list(inventory), list(projects)
        prompt = self.build_prompt(inventory, projects)

        self._log.info(
            "Matching %d inventory item(s) against %d project(s)",
            len(inventory),
            len(projects),
        )

        def cost(result: ProviderResult | None, failure: UpstreamFailure | None = None):
            return build_cost_record(
                user_id=user_id,
                scope="match",
                provider=config.provider.name,
                model=config.model,
                result=result,
                failure=failure,
            )

        try:
            result = await config.provider.generate(
                prompt,
                system_prompt=MATCHING_PROMPT,
                model=config.model,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                timeout_seconds=config.timeout_seconds,
            )
        except UpstreamFailure as exc:
            if exc.status is not None:
                emit(self._cost_sink, cost(None, exc))
            self._log.warning("Matching upstream failure: %s (status=%s)", exc, exc.status)
            raise

        emit(self._cost_sink, cost(result))

        outcome = parse_structured(result.raw_text)
        data = outcome.data
        if isinstance(data, dict):
            rows = data.get("matched_projects")
        elif isinstance(data, list):
            rows = data
        else:
            rows = None

        if not outcome.ok or not isinstance(rows, list):
            self._log.error("Failed to parse matching response (%d chars)", len(result.raw_text))
            return MatchOutcome(
                matched_projects=[],
                parse_stage=ParseStage.FAILED,
                error=PARSE_FAILURE_DIAGNOSTIC,
                provider_result=result,
            )

        matched: list[MatchResult] = []
        dropped = 0
        for raw in rows:
            try:
                matched.append(MatchResult.model_validate(raw))
            except SchemaValidationError:
                dropped += 1
        if dropped:
            self._log.warning("Dropped %d malformed match row(s)", dropped)

        if resort:
            matched = sort_by_score(matched)

        return MatchOutcome(
            matched_projects=matched,
            parse_stage=outcome.stage,
            provider_result=result,
            dropped=dropped,
        )
