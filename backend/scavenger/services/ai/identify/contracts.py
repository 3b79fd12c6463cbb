"""Identify scope contracts: IdentifiedItem + response envelope."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

VALID_CATEGORIES = frozenset(
    {
        "ICs/Chips",
        "Passive Components",
        "Electromechanical",
        "Connectors",
        "Display/LEDs",
        "Sensors",
        "Power",
        "PCB",
        "Other",
    }
)

VALID_CONDITIONS = frozenset({"New", "Good", "Fair", "For Parts"})


def _as_text(v: Any) -> Optional[str]:
    """Scalars become strings; anything structured is dropped."""
    if v is None or isinstance(v, str):
        return v
    if isinstance(v, (bool, int, float)):
        return str(v)
    return None


def _as_text_list(v: Any) -> list[str]:
    if v is None:
        return []
    if not isinstance(v, list):
        v = [v]
    return [text for text in (_as_text(x) for x in v) if text]


class TechnicalSpecs(BaseModel):
    voltage: Optional[str] = None
    power_rating: Optional[str] = None
    part_number: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _scalars_as_text(cls, v: Any) -> Optional[str]:
        return _as_text(v)


class SourceInfo(BaseModel):
    datasheet_url: Optional[str] = None
    purchase_url: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _scalars_as_text(cls, v: Any) -> Optional[str]:
        return _as_text(v)


class IdentifiedItem(BaseModel):
    """One salvageable component as returned by the model."""

    model_config = ConfigDict(extra="ignore")

    component_name: str = Field(..., min_length=1)
    category: str = "Other"
    condition: str = "Good"
    specifications: dict[str, Any] = Field(default_factory=dict)
    reusability_score: float = Field(default=0, ge=0, le=10)
    market_value_low: float = Field(default=0.0, ge=0)
    market_value_high: float = Field(default=0.0, ge=0)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    technical_specs: Optional[TechnicalSpecs] = None
    source_info: Optional[SourceInfo] = None
    description: str = ""
    common_uses: list[str] = Field(default_factory=list)
    quantity: int = Field(default=1, ge=1)

    @field_validator("component_name", mode="before")
    @classmethod
    def _name_as_text(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("description", mode="before")
    @classmethod
    def _description_text(cls, v: Any) -> str:
        return _as_text(v) or ""

    @field_validator("common_uses", mode="before")
    @classmethod
    def _uses_list(cls, v: Any) -> list[str]:
        return _as_text_list(v)

    @field_validator("technical_specs", "source_info", mode="before")
    @classmethod
    def _nested_mapping(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else None

    @field_validator("category", mode="before")
    @classmethod
    def _known_category(cls, v: Any) -> str:
        v = str(v or "").strip()
        return v if v in VALID_CATEGORIES else "Other"

    @field_validator("condition", mode="before")
    @classmethod
    def _known_condition(cls, v: Any) -> str:
        v = str(v or "").strip()
        for known in VALID_CONDITIONS:
            if v.lower() == known.lower():
                return known
        return "Good"

    @field_validator("specifications", mode="before")
    @classmethod
    def _specs_mapping(cls, v: Any) -> dict[str, Any]:
        return v if isinstance(v, dict) else {}

    @field_validator("market_value_high")
    @classmethod
    def _high_not_below_low(cls, v: float, info: ValidationInfo) -> float:
        low = info.data.get("market_value_low")
        if low is not None and v < low:
            return low
        return v


class Disassembly(BaseModel):
    model_config = ConfigDict(extra="ignore")

    steps: list[str] = Field(default_factory=list)
    difficulty: Optional[str] = None
    time_estimate: Optional[str] = None
    injury_risk: Optional[str] = None
    damage_risk: Optional[str] = None
    safety_warnings: Optional[list[str]] = None
    tutorial_url: Optional[str] = None
    video_url: Optional[str] = None

    @field_validator("steps", mode="before")
    @classmethod
    def _steps_list(cls, v: Any) -> list[str]:
        return _as_text_list(v)

    @field_validator("safety_warnings", mode="before")
    @classmethod
    def _warnings_list(cls, v: Any) -> Optional[list[str]]:
        return None if v is None else _as_text_list(v)

    @field_validator(
        "difficulty", "time_estimate", "injury_risk", "damage_risk", "tutorial_url", "video_url",
        mode="before",
    )
    @classmethod
    def _scalar_text(cls, v: Any) -> Optional[str]:
        return _as_text(v)
