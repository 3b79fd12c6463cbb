"""Cost records for upstream AI calls.

Every call that got an HTTP response from the model service appends exactly
one ``CostRecord`` to a ``CostSink``.  Sinks are append-only; aggregation
lives in ``scavenger.services.cost_ledger``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from scavenger.models.scan import ScanCost

from .errors import UpstreamFailure
from .providers.base import ProviderResult

logger = logging.getLogger(__name__)

COST_QUANTUM = Decimal("0.000001")
_PER_MILLION = Decimal(1_000_000)

# USD per 1M tokens: (input, output).
MODEL_PRICES: dict[str, tuple[Decimal, Decimal]] = {
    "gpt-4o-mini": (Decimal("0.15"), Decimal("0.60")),
    "gpt-4o": (Decimal("2.50"), Decimal("10.00")),
    "claude-3-haiku-20240307": (Decimal("0.25"), Decimal("1.25")),
    "claude-3-5-haiku-20241022": (Decimal("0.80"), Decimal("4.00")),
    "claude-3-5-sonnet-20241022": (Decimal("3.00"), Decimal("15.00")),
}


@dataclass(frozen=True)
class CostRecord:
    user_id: str
    cost: Decimal
    scan_id: str | None = None
    provider: str = ""
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    is_correction: bool = False
    scope: str = "identify"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def compute_cost(model: str, input_tokens: int, output_tokens: int) -> Decimal:
    prices = MODEL_PRICES.get(model)
    if prices is None:
        # Dated variants share the base model's price.
        prices = next(
            (p for name, p in MODEL_PRICES.items() if model.startswith(name + "-")),
            None,
        )
    if prices is None:
        if model and not model.startswith("mock"):
            logger.warning("No price for model %r; recording zero cost", model)
        return Decimal("0").quantize(COST_QUANTUM)

    input_price, output_price = prices
    total = (input_price * input_tokens + output_price * output_tokens) / _PER_MILLION
    return total.quantize(COST_QUANTUM)


def build_cost_record(
    *,
    user_id: str,
    scope: str,
    provider: str,
    model: str,
    result: ProviderResult | None = None,
    failure: UpstreamFailure | None = None,
    scan_id: str | None = None,
    is_correction: bool = False,
) -> CostRecord:
    """Build a record from *result* usage.

    Failures bill whatever usage *failure* carries, which is zero unless the
    provider answered without usable content.
    """
    if result is not None:
        input_tokens, output_tokens = result.prompt_tokens, result.completion_tokens
    elif failure is not None:
        input_tokens, output_tokens = failure.prompt_tokens, failure.completion_tokens
    else:
        input_tokens = output_tokens = 0
    if result is not None:
        provider, model = result.provider, result.model
    return CostRecord(
        user_id=user_id,
        scan_id=scan_id,
        scope=scope,
        provider=provider,
        model=model,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        is_correction=is_correction,
        cost=compute_cost(model, input_tokens, output_tokens),
    )


class CostSink(Protocol):
    def append(self, record: CostRecord) -> None: ...


class InMemoryCostSink:
    def __init__(self) -> None:
        self._records: list[CostRecord] = []

    def append(self, record: CostRecord) -> None:
        self._records.append(record)

    def snapshot(self) -> list[CostRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)


class SqlCostSink:
    """Writes each record to ``scan_costs`` in its own transaction."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def append(self, record: CostRecord) -> None:
        db = self._session_factory()
        try:
            db.add(
                ScanCost(
                    user_id=record.user_id,
                    scan_id=record.scan_id,
                    scope=record.scope,
                    provider=record.provider,
                    model=record.model,
                    input_tokens=record.input_tokens,
                    output_tokens=record.output_tokens,
                    cost_usd=record.cost,
                    is_correction=record.is_correction,
                    created_at=record.timestamp,
                )
            )
            db.commit()
        finally:
            db.close()


def _as_utc(value: datetime) -> datetime:
    # SQLite drops the offset on the way back; stored values are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def load_cost_records(db: Session, *, limit: int = 1000) -> list[CostRecord]:
    rows = (
        db.execute(select(ScanCost).order_by(ScanCost.created_at.desc()).limit(limit))
        .scalars()
        .all()
    )
    return [
        CostRecord(
            user_id=row.user_id,
            scan_id=row.scan_id,
            scope=row.scope,
            provider=row.provider,
            model=row.model,
            input_tokens=row.input_tokens or 0,
            output_tokens=row.output_tokens or 0,
            is_correction=bool(row.is_correction),
            cost=Decimal(row.cost_usd or 0),
            timestamp=_as_utc(row.created_at),
        )
        for row in rows
    ]


def emit(sink: CostSink | None, record: CostRecord) -> None:
    """Append *record*; a failing sink is logged, never raised to the caller."""
    if sink is None:
        return
    try:
        sink.append(record)
    except Exception:
        logger.exception("Failed to store cost record for user %s", record.user_id)
