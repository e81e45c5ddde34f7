"""
FastAPI app entrypoint.

Public embed/widget routes for viewers, internal sweep routes for the cron trigger. The sweeps can
also run in-process (SCHEDULER_ENABLED=true) on the same cadence.
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

# Load .env from backend/ before any app code
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from liveblog.api.routes import embed, internal, widgets
from liveblog.config import settings
from liveblog.core.cors import PUBLIC_PATH_PREFIXES, PathScopedCORSMiddleware
from liveblog.core.constants import PUBLISH_JOB_ID, SPONSOR_LIFECYCLE_JOB_ID
from liveblog.core.errors import BAD_REQUEST, SERVER_ERROR, STATUS_BY_CODE, ApiError
from liveblog.services.change_stream import change_hub
from liveblog.services.pg_change_listener import PgChangeListener, psycopg2_dsn
from liveblog.scheduler.publish_job import run_scheduled_publish_job
from liveblog.scheduler.sponsor_job import run_sponsor_lifecycle_job

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_scheduler = BackgroundScheduler()


def _start_change_listener() -> PgChangeListener | None:
    """Postgres: trigger notifications become the change stream's source for every writer."""
    if not settings.change_listener_enabled or not settings.database_url.startswith("postgresql"):
        return None
    listener = PgChangeListener(
        psycopg2_dsn(settings.database_url),
        change_hub,
        poll_seconds=settings.change_listener_poll_seconds,
    )
    listener.start()
    change_hub.orm_capture = False
    return listener


@asynccontextmanager
async def lifespan(app: FastAPI):
    listener = _start_change_listener()
    app.state.change_listener = listener
    if settings.scheduler_enabled:
        _scheduler.add_job(
            run_scheduled_publish_job,
            "interval",
            seconds=settings.publish_interval_seconds,
            id=PUBLISH_JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        _scheduler.add_job(
            run_sponsor_lifecycle_job,
            "interval",
            seconds=settings.sponsor_interval_seconds,
            id=SPONSOR_LIFECYCLE_JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        _scheduler.start()
        app.state.scheduler = _scheduler
        logger.info(
            "In-process scheduler started (publish every %ss, sponsors every %ss)",
            settings.publish_interval_seconds,
            settings.sponsor_interval_seconds,
        )
    yield
    if _scheduler.running:
        _scheduler.shutdown(wait=False)
    if listener is not None:
        listener.stop()
        change_hub.orm_capture = True


app = FastAPI(title="Liveblog Core", version="0.1.0", lifespan=lifespan)

# Embeds run on third-party pages: allowlist when EMBED_ALLOW_ORIGINS is set, otherwise wildcard.
# Only the public embed/widget paths get CORS headers.
app.add_middleware(
    PathScopedCORSMiddleware,
    path_prefixes=PUBLIC_PATH_PREFIXES,
    allow_origins=settings.allowed_origins or ["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "If-None-Match"],
    expose_headers=["ETag"],
)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse({"error": exc.code}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"error": BAD_REQUEST}, status_code=STATUS_BY_CODE[BAD_REQUEST])


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Storage error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": SERVER_ERROR}, status_code=STATUS_BY_CODE[SERVER_ERROR])


app.include_router(embed.router, prefix="/embed", tags=["embed"])
app.include_router(widgets.router, prefix="/widgets", tags=["widgets"])
app.include_router(internal.router, prefix="/internal", tags=["internal"])


@app.get("/", include_in_schema=False)
def root():
    """Root: point to API docs and health."""
    return {"message": "Liveblog API", "docs": "/docs", "health": "/health"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
