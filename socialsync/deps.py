from typing import Generator, Optional

from fastapi import Header, HTTPException

from socialsync.db.base import SessionLocal, engine, Base
from socialsync.db import models  # noqa: F401  (registers tables)
from socialsync.services.platform_client import HttpPlatformClient, PlatformClient
from socialsync.services.sync_orchestrator import SyncOrchestrator
from socialsync.services.undo_ledger import UndoLedger, get_ledger as _get_ledger

_client: Optional[PlatformClient] = None
_orchestrator: Optional[SyncOrchestrator] = None

def init_db() -> None:
    Base.metadata.create_all(bind=engine)

def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_workspace_id(x_workspace_id: Optional[str] = Header(None)) -> str:
    # session auth is handled upstream; it forwards the current workspace
    if not x_workspace_id:
        raise HTTPException(401, "Missing X-Workspace-Id header")
    return x_workspace_id

def get_platform_client() -> PlatformClient:
    global _client
    if _client is None:
        _client = HttpPlatformClient()
    return _client

def get_orchestrator() -> SyncOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = SyncOrchestrator(SessionLocal, get_platform_client())
    return _orchestrator

def get_ledger() -> UndoLedger:
    return _get_ledger()
