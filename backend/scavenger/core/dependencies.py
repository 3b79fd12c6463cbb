from collections.abc import Generator
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from scavenger.core.config import get_settings
from scavenger.services.ai.common.costs import CostSink, InMemoryCostSink, SqlCostSink
from scavenger.services.ai.identify.service import IdentificationOrchestrator
from scavenger.services.ai.match.service import ProjectMatcher
from scavenger.services.scan_cache import ScanCache

settings = get_settings()

engine = None
if settings.database_url:
    connect_args: dict[str, object] = {}
    if settings.database_url.startswith("sqlite"):
        # FastAPI runs sync DB work in a threadpool.
        connect_args = {"check_same_thread": False}
    engine = create_engine(settings.database_url, pool_pre_ping=True, connect_args=connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine) if engine else None


def get_db() -> Generator[Session, None, None]:
    if SessionLocal is None:
        raise RuntimeError("DATABASE_URL is not configured")
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def get_cost_sink() -> CostSink:
    if SessionLocal is not None:
        return SqlCostSink(SessionLocal)
    return InMemoryCostSink()


@lru_cache
def get_scan_cache() -> ScanCache:
    s = get_settings()
    return ScanCache(ttl_seconds=s.scan_cache_ttl_seconds, max_entries=s.scan_cache_max_entries)


def get_orchestrator() -> IdentificationOrchestrator:
    return IdentificationOrchestrator(cost_sink=get_cost_sink(), settings=get_settings())


def get_matcher() -> ProjectMatcher:
    return ProjectMatcher(cost_sink=get_cost_sink(), settings=get_settings())
