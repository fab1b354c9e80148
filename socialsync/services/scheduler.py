import structlog

from socialsync.db.base import SessionLocal
from socialsync.db import crud_accounts
from socialsync.services.sync_orchestrator import SyncOrchestrator

logger = structlog.get_logger(__name__)

def run_once(orchestrator: SyncOrchestrator) -> dict:
    # each job run gets its own session for discovery; sync units open their own
    db = SessionLocal()
    try:
        workspaces = crud_accounts.list_workspaces_with_active_accounts(db)
    finally:
        db.close()

    summary = {}
    for ws in workspaces:
        results = orchestrator.sync_workspace_analytics(ws)
        summary[ws] = {
            "accounts": len(results),
            "failed": sum(1 for r in results.values() if r.errors),
        }
    logger.info("scheduled_sync_finished", workspaces=len(workspaces))
    return {"status": "ok", "workspaces": summary}
