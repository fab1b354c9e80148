from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from socialsync import platforms
from socialsync.db import crud_accounts, token_crypto
from socialsync.deps import get_db, get_workspace_id
from socialsync.errors import DecryptionError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/settings/platform-credentials", tags=["settings"])

NOT_SET = "(not set)"

class CredentialIn(BaseModel):
    platform: str
    client_id: str
    client_secret: Optional[str] = None

def _valid_key(platform: str) -> Optional[str]:
    p = (platform or "").strip().lower()
    if p in platforms.credential_keys():
        return p
    name = platforms.normalize(p)
    return platforms.credential_key(name) if name else None

@router.get("")
def list_credentials(workspace_id: str = Depends(get_workspace_id), db: Session = Depends(get_db)) -> Dict[str, List[Dict[str, Any]]]:
    stored = {c.platform_key: c for c in crud_accounts.list_credentials(db, workspace_id)}
    out = []
    for key in platforms.credential_keys():
        cred = stored.get(key)
        if not cred:
            out.append({"platform": key, "client_id": "", "client_secret_masked": NOT_SET,
                        "is_configured": False, "updated_at": None})
            continue
        try:
            masked = token_crypto.mask_secret(token_crypto.decrypt(cred.client_secret_encrypted))
        except DecryptionError:
            logger.warning("credential_undecryptable", workspace_id=workspace_id, platform=key)
            masked = NOT_SET
        out.append({
            "platform": key,
            "client_id": cred.client_id,  # not a secret
            "client_secret_masked": masked,
            "is_configured": cred.is_configured,
            "updated_at": cred.updated_at.isoformat() if cred.updated_at else None,
        })
    return {"credentials": out}

@router.put("")
def save_credentials(body: CredentialIn, workspace_id: str = Depends(get_workspace_id), db: Session = Depends(get_db)) -> Dict[str, Any]:
    key = _valid_key(body.platform)
    if not key:
        raise HTTPException(400, f"Invalid platform. Must be one of: {', '.join(platforms.credential_keys())}")
    if not body.client_id.strip():
        raise HTTPException(400, "Client ID is required")

    secret = (body.client_secret or "").strip()
    if secret:
        secret_enc = token_crypto.encrypt(secret)
    else:
        existing = crud_accounts.get_credential(db, workspace_id, key)
        if not existing:
            raise HTTPException(400, "Client Secret is required for new credentials")
        secret_enc = existing.client_secret_encrypted

    cred = crud_accounts.upsert_credential(db, workspace_id, key, body.client_id.strip(), secret_enc)
    logger.info("credential_saved", workspace_id=workspace_id, platform=key)
    return {
        "platform": cred.platform_key,
        "client_id": cred.client_id,
        "client_secret_masked": token_crypto.mask_secret(token_crypto.decrypt(cred.client_secret_encrypted)),
        "is_configured": cred.is_configured,
    }
