"""Match scope contracts."""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MissingComponent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    estimated_cost: float = Field(default=0.0, ge=0)


class MatchResult(BaseModel):
    """One project scored against the user's inventory."""

    model_config = ConfigDict(extra="ignore")

    project_id: str
    project_name: str = ""
    match_score: int = Field(..., ge=0, le=100)
    components_have: list[str] = Field(default_factory=list)
    components_missing: list[MissingComponent] = Field(default_factory=list)
    total_missing_cost: float = Field(default=0.0, ge=0)
    recommendation: str = ""

    @field_validator("project_id", mode="before")
    @classmethod
    def _id_as_str(cls, v: Any) -> str:
        if v is None or str(v).strip() == "":
            raise ValueError("project_id is required")
        return str(v)

    @field_validator("match_score", mode="before")
    @classmethod
    def _round_score(cls, v: Any) -> int:
        try:
            score = float(v)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"match_score must be a number, got {v!r}") from exc
        if not math.isfinite(score):
            raise ValueError(f"match_score must be finite, got {v!r}")
        return round(score)

    @field_validator("components_have")
    @classmethod
    def _dedupe(cls, v: list[str]) -> list[str]:
        # Set semantics, first-seen order.
        return list(dict.fromkeys(v))
