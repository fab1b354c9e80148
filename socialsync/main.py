import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from socialsync.deps import init_db
from socialsync.errors import (
    AlreadyInProgress, AuthenticationError, ConfigurationError, ConfigurationMissing, DataIntegrityError,
    NotFound, SocialSyncError, TransientPlatformError,
)
from socialsync.log import RequestIdMiddleware, configure_logging
from socialsync.services.undo_ledger import init_ledger, shutdown_ledger

# Routers
from socialsync.routers import accounts, insights_api, platform_credentials, sync_api, scheduler_api, undo_api

configure_logging()
logger = structlog.get_logger()

app = FastAPI(title="SocialSync API", version="0.1.0")
app.add_middleware(RequestIdMiddleware)

@app.on_event("startup")
def _startup():
    init_db()
    init_ledger()
    logger.info("app_startup")

@app.on_event("shutdown")
def _shutdown():
    shutdown_ledger()
    logger.info("app_shutdown")

_STATUS = (
    (ConfigurationMissing, 400),
    (ConfigurationError, 500),
    (AuthenticationError, 401),
    (TransientPlatformError, 503),
    (DataIntegrityError, 500),
    (AlreadyInProgress, 409),
    (NotFound, 404),
)

@app.exception_handler(SocialSyncError)
def _socialsync_error(request: Request, exc: SocialSyncError):
    status = next((code for cls, code in _STATUS if isinstance(exc, cls)), 400)
    if status >= 500:
        logger.error("request_failed", kind=exc.kind, error=exc.message)
    return JSONResponse(status_code=status, content={"error": exc.message, "kind": exc.kind})

@app.get("/")
def root():
    return {"message": "SocialSync API is running!"}

# Mount routes
app.include_router(accounts.router)              # /api/accounts/*
app.include_router(platform_credentials.router)  # /api/settings/platform-credentials
app.include_router(sync_api.router)              # /api/sync/*
app.include_router(insights_api.router)          # /api/accounts/{id}/analytics, /api/posts/*, /api/products
app.include_router(undo_api.router)              # /api/undo/*
app.include_router(scheduler_api.router)         # /scheduler/*
