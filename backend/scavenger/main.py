import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from scavenger.api.v1.admin_costs import router as admin_costs_router
from scavenger.api.v1.projects import router as projects_router
from scavenger.api.v1.scan import router as scan_router
from scavenger.core.config import get_settings
from scavenger.core.dependencies import engine
from scavenger.models.scan import Base

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Scavenger Scan API",
    version="0.9.4",
    docs_url="/docs" if settings.docs_enabled else None,
)

if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
    )

app.include_router(scan_router, prefix="/api/v1", tags=["scan"])
app.include_router(projects_router, prefix="/api/v1", tags=["projects"])
app.include_router(admin_costs_router, prefix="/api/v1", tags=["admin"])


@app.on_event("startup")
async def _create_tables():
    if engine is not None:
        Base.metadata.create_all(engine)


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception")
    if settings.expose_error_details:
        return JSONResponse(status_code=500, content={"error": str(exc)})
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/api/v1/health")
def health():
    return {"status": "ok", "ai_provider": settings.ai_provider}
