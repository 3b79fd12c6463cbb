import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, Numeric, String
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class ScanCost(Base):
    """Append-only cost row, one per upstream AI call."""

    __tablename__ = "scan_costs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(64), nullable=False)
    scan_id = Column(String(64), nullable=True)
    scope = Column(String(32), nullable=False, default="identify")
    provider = Column(String(32), nullable=False)
    model = Column(String(128), nullable=False)
    input_tokens = Column(Integer, nullable=False, default=0)
    output_tokens = Column(Integer, nullable=False, default=0)
    cost_usd = Column(Numeric(10, 6), nullable=False, default=0)
    is_correction = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_scan_costs_user", "user_id"),
        Index("idx_scan_costs_created", "created_at"),
    )
