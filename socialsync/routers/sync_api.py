from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from socialsync import platforms
from socialsync.db import crud, crud_accounts
from socialsync.deps import get_db, get_orchestrator, get_workspace_id
from socialsync.services.sync_orchestrator import SyncOrchestrator
from socialsync.services.sync_types import CatalogSyncResult, SyncResult

router = APIRouter(prefix="/api/sync", tags=["sync"])

def sync_out(r: SyncResult) -> Dict[str, Any]:
    return {"success": r.success, **r.model_dump()}

def catalog_out(r: CatalogSyncResult) -> Dict[str, Any]:
    return {"success": r.success, "synced": r.synced, **r.model_dump()}

@router.post("/analytics/accounts/{account_id}")
def sync_account(account_id: int, workspace_id: str = Depends(get_workspace_id), db: Session = Depends(get_db),
                 orch: SyncOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    acc = crud_accounts.get_account(db, account_id)
    if not acc or acc.workspace_id != workspace_id:
        raise HTTPException(404, "Account not found")
    return sync_out(orch.sync_account_analytics(account_id))

@router.post("/analytics")
def sync_workspace(workspace_id: str = Depends(get_workspace_id),
                   orch: SyncOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    results = orch.sync_workspace_analytics(workspace_id)
    return {"accounts": {str(aid): sync_out(r) for aid, r in results.items()}}

@router.post("/analytics/posts")
def sync_recent_posts(workspace_id: str = Depends(get_workspace_id),
                      orch: SyncOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    results = orch.sync_recent_posts_analytics(workspace_id)
    return {"posts": {str(pid): sync_out(r) for pid, r in results.items()}}

@router.post("/comments/{post_platform_id}")
def sync_comments(post_platform_id: int, workspace_id: str = Depends(get_workspace_id), db: Session = Depends(get_db),
                  orch: SyncOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    post = crud.get_post_platform(db, post_platform_id)
    acc = crud_accounts.get_account(db, post.social_account_id) if post else None
    if not acc or acc.workspace_id != workspace_id:
        raise HTTPException(404, "Post not found")
    return sync_out(orch.sync_post_comments(post_platform_id))

@router.post("/catalog/{platform}")
def sync_catalog(platform: str, workspace_id: str = Depends(get_workspace_id),
                 orch: SyncOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    name = platforms.normalize(platform)
    if not name:
        raise HTTPException(400, f"Unsupported platform: {platform}")
    return catalog_out(orch.sync_catalog_to_platform(workspace_id, name))

@router.post("/catalog")
def sync_all_catalogs(workspace_id: str = Depends(get_workspace_id),
                      orch: SyncOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return {"platforms": {p: catalog_out(r) for p, r in orch.sync_all_catalogs(workspace_id).items()}}
