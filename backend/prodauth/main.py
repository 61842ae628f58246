"""Main FastAPI application"""

from fastapi import FastAPI, Request
from fastapi.responses import Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from datetime import datetime, timezone
from pathlib import Path
import logging
import time
import uuid

from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from prodauth.config import settings
from prodauth.core.database import init_db, SessionLocal
from prodauth.core.handlers import register_exception_handlers
from prodauth.core.metrics import REQUEST_COUNT, REQUEST_LATENCY, WORKER_UP_GAUGE
from prodauth.schemas.response import HealthResponse
from prodauth.api.v1 import auth, access, admin
from prodauth.services.abuse_tracker import abuse_tracker
from prodauth.services.background import build_sweeper, build_token_cleanup
from prodauth.services.user_service import user_service


def configure_logging() -> None:
    log_file = settings.get_log_file()
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.FileHandler(log_file), logging.StreamHandler()],
    )


configure_logging()
logger = logging.getLogger(__name__)

login_sweeper = build_sweeper(abuse_tracker)
token_cleanup = build_token_cleanup()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.middleware("http")
async def add_headers_and_timing(request: Request, call_next):
    """Tag the request, harden response headers, record request metrics"""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    start = time.time()
    response = await call_next(request)
    duration = time.time() - start

    response.headers.update({
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Cache-Control": "no-store",
        "X-Request-ID": request_id,
    })

    # Label by route template so /access/shot/1 and /access/shot/2 share a series
    route = request.scope.get("route")
    path = getattr(route, "path", request.url.path)
    REQUEST_COUNT.labels(request.method, path, str(response.status_code)).inc()
    REQUEST_LATENCY.labels(request.method, path).observe(duration)

    if duration > 1.0:
        logger.warning("Slow request: %s %s took %.2fs request_id=%s", request.method, path, duration, request_id)

    return response


def _ensure_admin() -> None:
    db = SessionLocal()
    try:
        if user_service.get_user_by_email(db, settings.ADMIN_EMAIL):
            return
        user_service.create_user(
            db,
            email=settings.ADMIN_EMAIL,
            password=settings.ADMIN_PASSWORD,
            name="Administrator",
            role="admin",
        )
        logger.info("Created admin user: %s", settings.ADMIN_EMAIL)
    finally:
        db.close()


def _start_worker(worker) -> None:
    worker.start()
    WORKER_UP_GAUGE.labels(worker.name).set(1)


@app.on_event("startup")
async def startup_event():
    settings.validate_security_settings()
    logger.info("Starting %s v%s (%s)", settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT)
    logger.info(
        "Failed-login gate %s (mode=%s)",
        "enabled" if abuse_tracker.enabled else "disabled",
        settings.LOGIN_GUARD_MODE,
    )

    try:
        init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    try:
        _ensure_admin()
    except Exception as e:
        logger.error(f"Failed to create admin user: {e}")

    _start_worker(login_sweeper)
    if settings.RUN_TOKEN_CLEANUP:
        _start_worker(token_cleanup)


@app.on_event("shutdown")
async def shutdown_event():
    for worker in (login_sweeper, token_cleanup):
        if worker.is_running():
            worker.stop()
        WORKER_UP_GAUGE.labels(worker.name).set(0)
    logger.info(f"Shutting down {settings.APP_NAME}")


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Liveness plus database and background-job readiness"""
    db_error = None
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except Exception as exc:
        db_error = str(exc)
    finally:
        db.close()

    return HealthResponse(
        status="degraded" if db_error else "healthy",
        version=settings.APP_VERSION,
        timestamp=datetime.now(timezone.utc).isoformat(),
        readiness={
            "database": {"ok": db_error is None, "error": db_error},
            "login_sweeper": login_sweeper.status(),
            "token_cleanup": token_cleanup.status(),
        },
    )


@app.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/api/docs" if settings.DEBUG else "disabled"
    }


app.include_router(auth.router, prefix="/api/v1/auth", tags=["Authentication"])
app.include_router(access.router, prefix="/api/v1/access", tags=["Access"])
app.include_router(admin.router, prefix="/api/v1/admin", tags=["Admin"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "prodauth.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS
    )
