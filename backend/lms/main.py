import logging
from contextlib import asynccontextmanager

import psycopg
import sentry_sdk
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config import settings
from .db import get_conn, pool
from .errors import LmsError
from .logging_utils import setup_logging
from .middleware.request_context import RequestContextMiddleware
from .routes import admin, demo_access, lecture_recordings, payment_verifications
from .services.storage_service import StorageServiceError
from .services.upload_progress import UploadProgressRegistry

setup_logging()
logger = logging.getLogger(__name__)

if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        send_default_pii=False,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    await pool.open(wait=True)
    try:
        yield
    finally:
        await pool.close()


app = FastAPI(title="LMS Lecture Recordings", version="0.1.0", lifespan=lifespan)
app.state.upload_progress = UploadProgressRegistry(
    ttl_seconds=settings.upload_progress_ttl_seconds
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_origin_regex=settings.cors_allow_origin_regex,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Authorization",
        "Content-Type",
        "Accept",
        "Range",
        "X-Requested-With",
        "X-Request-ID",
    ],
    expose_headers=["Accept-Ranges", "Content-Length", "Content-Range", "X-Request-ID"],
)
app.add_middleware(RequestContextMiddleware)


@app.exception_handler(LmsError)
async def lms_error_handler(request: Request, exc: LmsError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


@app.exception_handler(psycopg.Error)
@app.exception_handler(StorageServiceError)
async def backing_store_error_handler(request: Request, exc: Exception):
    logger.exception("Backing store failure on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


app.include_router(lecture_recordings.router)
app.include_router(demo_access.router)
app.include_router(admin.router)
app.include_router(payment_verifications.router)


@app.get("/healthz")
async def healthz():
    return {"ok": True, "message": "Backend responding"}


@app.get("/readyz")
async def readyz():
    try:
        async with get_conn() as cur:
            await cur.execute("select 1")
            await cur.fetchone()
    except Exception as exc:  # pragma: no cover - surfaced in tests
        raise HTTPException(status_code=503, detail="database unavailable") from exc
    return {"ok": True, "database": "ready"}


@app.get("/metrics")
def metrics_endpoint():
    payload = generate_latest()
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
