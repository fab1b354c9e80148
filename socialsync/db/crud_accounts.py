# socialsync/db/crud_accounts.py
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from socialsync.db import token_crypto
from socialsync.db.models import ACCOUNT_ACTIVE, SocialAccount, WorkspaceCredential

def utcnow() -> datetime:
    # naive UTC, matching what SQLite hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)

# --- workspace app credentials ---

def get_credential(db: Session, workspace_id: str, platform_key: str) -> Optional[WorkspaceCredential]:
    return (
        db.query(WorkspaceCredential)
        .filter(WorkspaceCredential.workspace_id == workspace_id, WorkspaceCredential.platform_key == platform_key)
        .first()
    )

def list_credentials(db: Session, workspace_id: str) -> List[WorkspaceCredential]:
    return (
        db.query(WorkspaceCredential)
        .filter(WorkspaceCredential.workspace_id == workspace_id)
        .order_by(WorkspaceCredential.platform_key)
        .all()
    )

def upsert_credential(
    db: Session,
    workspace_id: str,
    platform_key: str,
    client_id: str,
    client_secret_encrypted: str,
) -> WorkspaceCredential:
    row = get_credential(db, workspace_id, platform_key)
    if not row:
        row = WorkspaceCredential(workspace_id=workspace_id, platform_key=platform_key)
    row.client_id = client_id
    row.client_secret_encrypted = client_secret_encrypted
    row.is_configured = True
    db.add(row)
    db.commit()
    db.refresh(row)
    return row

def get_decrypted_credentials(db: Session, workspace_id: str, platform_key: str) -> Optional[Tuple[str, str]]:
    """(client_id, client_secret) or None when the workspace never configured the app.

    A stored secret that fails to decrypt raises DecryptionError.
    """
    row = get_credential(db, workspace_id, platform_key)
    if not row or not row.is_configured:
        return None
    return row.client_id, token_crypto.decrypt(row.client_secret_encrypted)

# --- connected accounts ---

def get_account(db: Session, account_id: int) -> Optional[SocialAccount]:
    return db.query(SocialAccount).filter(SocialAccount.id == account_id).first()

def list_accounts(db: Session, workspace_id: str, active_only: bool = False) -> List[SocialAccount]:
    q = db.query(SocialAccount).filter(SocialAccount.workspace_id == workspace_id)
    if active_only:
        q = q.filter(SocialAccount.status == ACCOUNT_ACTIVE)
    return q.order_by(SocialAccount.id).all()

def list_workspaces_with_active_accounts(db: Session) -> List[str]:
    rows = (
        db.query(SocialAccount.workspace_id)
        .filter(SocialAccount.status == ACCOUNT_ACTIVE)
        .distinct()
        .all()
    )
    return [r[0] for r in rows]

def find_account(db: Session, workspace_id: str, platform: str, external_account_id: str) -> Optional[SocialAccount]:
    return (
        db.query(SocialAccount)
        .filter(
            SocialAccount.workspace_id == workspace_id,
            SocialAccount.platform == platform,
            SocialAccount.external_account_id == external_account_id,
        )
        .first()
    )

def _expires_at(expires_in: Optional[int]) -> Optional[datetime]:
    return utcnow() + timedelta(seconds=expires_in) if expires_in else None

def upsert_account(
    db: Session,
    workspace_id: str,
    platform: str,
    external_account_id: str,
    access_token_encrypted: str,
    refresh_token_encrypted: Optional[str],
    expires_in: Optional[int],
    name: Optional[str] = None,
    username: Optional[str] = None,
) -> Tuple[SocialAccount, bool]:
    """Create the account, or refresh tokens when the same external account reconnects."""
    row = find_account(db, workspace_id, platform, external_account_id)
    created = row is None
    if created:
        row = SocialAccount(workspace_id=workspace_id, platform=platform, external_account_id=external_account_id)
    row.access_token_encrypted = access_token_encrypted
    if refresh_token_encrypted:
        row.refresh_token_encrypted = refresh_token_encrypted
    row.token_expires_at = _expires_at(expires_in)
    row.status = ACCOUNT_ACTIVE
    row.last_sync_error = None
    if name:
        row.name = name
    if username:
        row.username = username
    db.add(row)
    db.commit()
    db.refresh(row)
    return row, created

def is_token_expiring(acc: SocialAccount, seconds: int = 300) -> bool:
    return bool(acc.token_expires_at and (acc.token_expires_at - utcnow()).total_seconds() < seconds)

def update_tokens(db: Session, acc: SocialAccount, access_token: str, refresh_token: Optional[str], expires_in: Optional[int]) -> None:
    acc.access_token_encrypted = token_crypto.encrypt(access_token)
    if refresh_token:
        acc.refresh_token_encrypted = token_crypto.encrypt(refresh_token)
    acc.token_expires_at = _expires_at(expires_in)
    db.add(acc)
    db.commit()

def set_account_status(db: Session, account_id: int, status: str, error: Optional[str] = None) -> None:
    acc = get_account(db, account_id)
    if not acc:
        return
    acc.status = status
    acc.last_sync_error = error
    db.add(acc)
    db.commit()

def mark_synced(db: Session, acc: SocialAccount, error: Optional[str] = None) -> None:
    acc.last_synced_at = utcnow()
    acc.last_sync_error = error
    db.add(acc)
    db.commit()

def delete_account(db: Session, acc: SocialAccount) -> None:
    db.delete(acc)
    db.commit()
