"""Admin cost overview: per-user and platform AI spend."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from scavenger.core.dependencies import SessionLocal, get_cost_sink
from scavenger.schemas.scan import CostBucketOut, CostsOverview, UserCostOut
from scavenger.services.ai.common.costs import CostSink, InMemoryCostSink, load_cost_records
from scavenger.services.cost_ledger import costs_by_provider, monthly_breakdown, platform_summary

router = APIRouter()


def _snapshot(sink: CostSink, limit: int):
    if isinstance(sink, InMemoryCostSink):
        return sink.snapshot()[-limit:]
    if SessionLocal is None:
        return []
    db = SessionLocal()
    try:
        return load_cost_records(db, limit=limit)
    finally:
        db.close()


@router.get("/admin/costs", response_model=CostsOverview)
def costs_overview(
    limit: int = Query(1000, ge=1, le=10_000),
    sink: CostSink = Depends(get_cost_sink),
):
    records = _snapshot(sink, limit)
    summary = platform_summary(records)
    return CostsOverview(
        users=[UserCostOut(**vars(u)) for u in summary.users],
        platform_total=summary.platform_total,
        total_records=summary.total_records,
        average_cost_per_scan=summary.average_cost_per_scan,
        by_provider={k: CostBucketOut(**vars(v)) for k, v in costs_by_provider(records).items()},
        by_month={k: CostBucketOut(**vars(v)) for k, v in monthly_breakdown(records).items()},
    )
