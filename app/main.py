# app/main.py
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import RedirectResponse

from app.core.errors import register_error_handlers
from app.core.logging import setup_logging
from app.core.scheduler import build_scheduler, start_scheduler, stop_scheduler
from app.core.settings import Settings, settings
from app.schemas import utcnow
from app.services.audit_log import AuditLog
from app.services.presence import PresenceTracker
from app.services.record_sync import RecordSynchronizer
from app.services.sync_store import SyncStore, default_company_settings
from app.storage import build_file_store

SERVICE_NAME = "Mirage Tenders Tracking System"
VERSION = "1.0.0"

logger = logging.getLogger("app")


def create_app(cfg: Optional[Settings] = None, clock: Callable[[], datetime] = utcnow) -> FastAPI:
    cfg = cfg or settings
    setup_logging(cfg.LOG_LEVEL, cfg.LOG_JSON)

    # -------------------------------------------------------------------
    # FastAPI app setup
    # -------------------------------------------------------------------
    app = FastAPI(title="Tender Sync", version=VERSION)

    # -------------------------------------------------------------------
    # Core components (owned by this app instance)
    # -------------------------------------------------------------------
    app.state.settings = cfg
    app.state.synchronizer = RecordSynchronizer(
        SyncStore(cfg.sync_storage_path, default_company_settings(cfg)), clock=clock
    )
    app.state.presence = PresenceTracker(cfg.PRESENCE_TTL_SECONDS, clock=clock)
    app.state.audit_log = AuditLog(cfg.changelog_path, cfg.CHANGELOG_MAX_ENTRIES, clock=clock)
    app.state.file_store = build_file_store(cfg)
    app.state.scheduler = None

    register_error_handlers(app)

    # -------------------------------------------------------------------
    # Canonical host middleware (fixes cookie host mismatch)
    # -------------------------------------------------------------------
    if cfg.PUBLIC_APP_HOST:
        canonical_host = cfg.PUBLIC_APP_HOST

        class CanonicalHostMiddleware(BaseHTTPMiddleware):
            async def dispatch(self, request, call_next):
                host = request.headers.get("host", "")
                if host and host != canonical_host:
                    target = f"{request.url.scheme}://{canonical_host}{request.url.path}"
                    if request.url.query:
                        target += f"?{request.url.query}"
                    return RedirectResponse(target, status_code=308)
                return await call_next(request)

        app.add_middleware(CanonicalHostMiddleware)

    # -------------------------------------------------------------------
    # Log every request
    # -------------------------------------------------------------------
    @app.middleware("http")
    async def log_every_request(request: Request, call_next):
        logger.debug(f"[REQ] {request.method} {request.url.path}")
        response = await call_next(request)
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(level, f"[RES] {response.status_code} for {request.method} {request.url.path}")
        return response

    # -------------------------------------------------------------------
    # Routers
    # -------------------------------------------------------------------
    from app.api import changelog, company, files, online_users, sync

    app.include_router(sync.router)
    app.include_router(changelog.router)
    app.include_router(online_users.router)
    app.include_router(files.router)
    app.include_router(company.router)

    # -------------------------------------------------------------------
    # Health check
    # -------------------------------------------------------------------
    @app.get("/api/health")
    async def health():
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "version": VERSION,
        }

    # -------------------------------------------------------------------
    # Startup / shutdown
    # -------------------------------------------------------------------
    @app.on_event("startup")
    async def on_startup():
        logger.info(
            f"Sync store: {cfg.sync_storage_path} | change log: {cfg.changelog_path} "
            f"| files: {app.state.file_store.backend}"
        )
        if cfg.START_SCHEDULER_WEB:
            app.state.scheduler = build_scheduler(cfg, app.state.presence, app.state.audit_log)
            start_scheduler(app.state.scheduler)

    @app.on_event("shutdown")
    async def on_shutdown():
        if app.state.scheduler is not None:
            stop_scheduler(app.state.scheduler)
            app.state.scheduler = None
        app.state.presence.clear()

    return app


app = create_app()
