"""Cost read-models: per-user and platform aggregation of cost records.

Pure functions over a snapshot of records; nothing here writes.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from scavenger.services.ai.common.costs import CostRecord

UNKNOWN_USER = "Unknown User"
_ZERO = Decimal("0")


def _dec(value) -> Decimal:
    # Floats go through str so 0.1 stays 0.1.
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


@dataclass
class UserCostSummary:
    user_id: str
    display_name: str
    total_scans: int = 0
    total_corrections: int = 0
    total_cost: Decimal = _ZERO
    last_scan_at: datetime | None = None


@dataclass
class PlatformCostSummary:
    users: list[UserCostSummary] = field(default_factory=list)
    platform_total: Decimal = _ZERO
    total_records: int = 0
    average_cost_per_scan: Decimal = _ZERO


@dataclass
class CostBucket:
    count: int = 0
    cost: Decimal = _ZERO


def summarize(
    records: Iterable[CostRecord],
    display_names: Mapping[str, str] | None = None,
) -> list[UserCostSummary]:
    """One summary per distinct ``user_id``, highest spend first."""
    display_names = display_names or {}
    by_user: dict[str, UserCostSummary] = {}

    for record in list(records):
        summary = by_user.get(record.user_id)
        if summary is None:
            summary = UserCostSummary(
                user_id=record.user_id,
                display_name=display_names.get(record.user_id) or UNKNOWN_USER,
            )
            by_user[record.user_id] = summary

        if record.is_correction:
            summary.total_corrections += 1
        else:
            summary.total_scans += 1
        summary.total_cost += _dec(record.cost)
        if summary.last_scan_at is None or record.timestamp > summary.last_scan_at:
            summary.last_scan_at = record.timestamp

    return sorted(by_user.values(), key=lambda s: s.total_cost, reverse=True)


def platform_summary(
    records: Iterable[CostRecord],
    display_names: Mapping[str, str] | None = None,
) -> PlatformCostSummary:
    snapshot = list(records)
    total = sum((_dec(r.cost) for r in snapshot), _ZERO)
    count = len(snapshot)
    return PlatformCostSummary(
        users=summarize(snapshot, display_names),
        platform_total=total,
        total_records=count,
        average_cost_per_scan=total / count if count else _ZERO,
    )


def costs_by_provider(records: Iterable[CostRecord]) -> dict[str, CostBucket]:
    buckets: dict[str, CostBucket] = {}
    for record in records:
        bucket = buckets.setdefault(record.provider or "unknown", CostBucket())
        bucket.count += 1
        bucket.cost += _dec(record.cost)
    return buckets


def monthly_breakdown(records: Iterable[CostRecord]) -> dict[str, CostBucket]:
    """Bucket by calendar month of the record timestamp, keyed ``YYYY-MM``."""
    buckets: dict[str, CostBucket] = {}
    for record in records:
        bucket = buckets.setdefault(record.timestamp.strftime("%Y-%m"), CostBucket())
        bucket.count += 1
        bucket.cost += _dec(record.cost)
    return buckets
