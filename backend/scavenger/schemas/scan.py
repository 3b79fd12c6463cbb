from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from scavenger.services.ai.identify.contracts import Disassembly, IdentifiedItem
from scavenger.services.ai.match.contracts import MatchResult


class IdentifyResponse(BaseModel):
    parent_object: Optional[str] = None
    items: List[IdentifiedItem]
    total_estimated_value_low: Optional[float] = None
    total_estimated_value_high: Optional[float] = None
    salvage_difficulty: Optional[str] = None
    tools_needed: List[str] = Field(default_factory=list)
    disassembly: Optional[Disassembly] = None
    message: Optional[str] = None
    image_hash: str
    cached: bool = False


class MatchRequest(BaseModel):
    # Optional so a missing field reaches the 400 path instead of a 422.
    inventory: Optional[List[Any]] = None
    projects: Optional[List[Any]] = None
    user_id: str = "anonymous"
    resort: bool = False


class MatchResponse(BaseModel):
    matched_projects: List[MatchResult]
    error: Optional[str] = None


class UserCostOut(BaseModel):
    user_id: str
    display_name: str
    total_scans: int
    total_corrections: int
    total_cost: Decimal
    last_scan_at: Optional[datetime] = None


class CostBucketOut(BaseModel):
    count: int
    cost: Decimal


class CostsOverview(BaseModel):
    users: List[UserCostOut]
    platform_total: Decimal
    total_records: int
    average_cost_per_scan: Decimal
    by_provider: dict[str, CostBucketOut]
    by_month: dict[str, CostBucketOut]
