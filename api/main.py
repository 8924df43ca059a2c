"""
AirTrack — FastAPI Application Entry Point
"""
import logging
import os
import time
from contextlib import asynccontextmanager

from alembic import command as alembic_command
from alembic.config import Config
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from api.analytics import AnalyticsRepository, RequestMetric, client_ip, should_track
from api.routes import advisory, air_quality, analytics
from api.services.air_quality_service import get_air_quality_service
from pipeline.config import DATABASE_URL, ENABLE_REQUEST_METRICS
from pipeline.scheduler import start_scheduler

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(name)s - %(message)s")
logger = logging.getLogger(__name__)

ENABLE_SCHEDULER = os.getenv("ENABLE_SCHEDULER", "true").lower() == "true"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── Step 0: Run database migrations ───────────────────────────────────────
    try:
        alembic_cfg = Config("alembic.ini")
        alembic_cfg.set_main_option("sqlalchemy.url", DATABASE_URL)
        alembic_command.upgrade(alembic_cfg, "head")
        logger.info("Database migrations applied successfully")
    except Exception as e:
        logger.error("Migration failed: %s", e)
        raise

    service = get_air_quality_service()

    # ── Step 1: Initial load if the store is empty ────────────────────────────
    service.initialize_if_empty()

    # ── Step 2: Periodic refresh ──────────────────────────────────────────────
    scheduler = start_scheduler(service) if ENABLE_SCHEDULER else None
    yield
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    logger.info("AirTrack API shutting down")


app = FastAPI(
    title="AirTrack API",
    description="Global air quality monitoring from OpenAQ",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.analytics = AnalyticsRepository()


@app.middleware("http")
async def record_request_metrics(request: Request, call_next):
    path = request.url.path
    if not ENABLE_REQUEST_METRICS or not should_track(path):
        return await call_next(request)

    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        metric = RequestMetric(
            endpoint=path,
            method=request.method,
            status_code=status_code,
            response_time_ms=int((time.perf_counter() - start) * 1000),
            client_ip=client_ip(request.headers, request.client.host if request.client else None),
            user_agent=request.headers.get("user-agent"),
        )
        await run_in_threadpool(request.app.state.analytics.record, metric)


# Routers
app.include_router(air_quality.router, prefix="/api",           tags=["Air Quality"])
app.include_router(advisory.router,    prefix="/api/advisory",  tags=["Advisory"])
app.include_router(analytics.router,   prefix="/api/analytics", tags=["Analytics"])


@app.get("/api/health", tags=["Health"])
def health():
    return {"status": "ok", "service": "airtrack-api", "version": "1.0.0"}
