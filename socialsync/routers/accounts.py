# socialsync/routers/accounts.py
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from socialsync.config import settings
from socialsync.db import crud_accounts
from socialsync.db.models import SocialAccount
from socialsync.deps import get_db, get_platform_client, get_workspace_id
from socialsync.errors import (
    AuthenticationError, ConfigurationError, SocialSyncError, StateExpired, StateInvalid, TransientPlatformError,
)
from socialsync.services.oauth_flow import OAuthFlowManager
from socialsync.services.platform_client import PlatformClient

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/accounts", tags=["accounts"])

class ConnectIn(BaseModel):
    platform: str

def account_out(acc: SocialAccount) -> Dict[str, Any]:
    return {
        "id": acc.id,
        "platform": acc.platform,
        "external_account_id": acc.external_account_id,
        "name": acc.name,
        "username": acc.username,
        "status": acc.status,
        "token_expires_at": acc.token_expires_at.isoformat() if acc.token_expires_at else None,
        "last_synced_at": acc.last_synced_at.isoformat() if acc.last_synced_at else None,
        "last_sync_error": acc.last_sync_error,
    }

def _settings_redirect(**params: str) -> RedirectResponse:
    qs = urlencode({"tab": "accounts", **params})
    return RedirectResponse(f"{settings.app_base_url.rstrip('/')}/settings?{qs}", status_code=302)

@router.get("")
def list_accounts(workspace_id: str = Depends(get_workspace_id), db: Session = Depends(get_db)) -> Dict[str, List[Dict[str, Any]]]:
    return {"accounts": [account_out(a) for a in crud_accounts.list_accounts(db, workspace_id)]}

@router.post("")
def connect(
    body: ConnectIn,
    workspace_id: str = Depends(get_workspace_id),
    db: Session = Depends(get_db),
    client: PlatformClient = Depends(get_platform_client),
) -> Dict[str, str]:
    # ConfigurationMissing propagates to the app-level handler (400)
    return OAuthFlowManager(db, client).initiate(workspace_id, body.platform)

@router.delete("/{account_id}")
def disconnect(account_id: int, workspace_id: str = Depends(get_workspace_id), db: Session = Depends(get_db)) -> Dict[str, Any]:
    acc = crud_accounts.get_account(db, account_id)
    if not acc or acc.workspace_id != workspace_id:
        raise HTTPException(404, "Account not found")
    crud_accounts.delete_account(db, acc)
    logger.info("account_disconnected", workspace_id=workspace_id, account_id=account_id)
    return {"success": True}

@router.get("/callback/{platform}")
def callback(
    platform: str,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    x_workspace_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    client: PlatformClient = Depends(get_platform_client),
):
    if error:
        logger.warning("oauth_denied", platform=platform, error=error)
        return _settings_redirect(error="oauth_denied")
    if not code or not state:
        return _settings_redirect(error="missing_params")

    try:
        # when the session layer forwards the current workspace, the state must name it
        OAuthFlowManager(db, client).complete_callback(platform, code, state, workspace_id=x_workspace_id)
    except StateExpired:
        return _settings_redirect(error="expired_state")
    except StateInvalid:
        return _settings_redirect(error="invalid_state")
    except ConfigurationError as e:
        logger.error("oauth_callback_misconfigured", platform=platform, kind=e.kind)
        return _settings_redirect(error="not_configured")
    except AuthenticationError:
        return _settings_redirect(error="token_exchange_rejected")
    except TransientPlatformError:
        return _settings_redirect(error="platform_unavailable")
    except SocialSyncError as e:
        logger.error("oauth_callback_failed", platform=platform, kind=e.kind)
        return _settings_redirect(error="callback_failed")
    return _settings_redirect(success="connected")
