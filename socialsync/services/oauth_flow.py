# socialsync/services/oauth_flow.py
"""OAuth authorization round trip for connecting a platform account.

The state token is not persisted. It is base64 of
``{"workspaceId", "platform", "timestamp", "sig"}`` where ``timestamp`` is
epoch milliseconds and ``sig`` an HMAC-SHA256 over the other three fields,
so a well-formed token naming another workspace is still rejected.
"""
import base64
import binascii
import hashlib
import hmac
import json
import time
from typing import Callable, Dict, Optional

import structlog
from sqlalchemy.orm import Session

from socialsync import platforms
from socialsync.config import settings
from socialsync.db import crud_accounts, token_crypto
from socialsync.db.models import SocialAccount
from socialsync.errors import (
    ConfigurationError, ConfigurationMissing, PlatformRequestError, StateExpired, StateInvalid,
)
from socialsync.services.platform_client import PlatformClient

logger = structlog.get_logger(__name__)

# tolerated clock drift for tokens stamped "in the future"
MAX_CLOCK_SKEW_MS = 60_000


def _signing_key() -> bytes:
    if settings.state_signing_key:
        return settings.state_signing_key.encode("utf-8")
    if settings.encryption_key:
        return hmac.new(settings.encryption_key.encode("utf-8"), b"oauth-state", hashlib.sha256).digest()
    raise ConfigurationError("STATE_SIGNING_KEY or ENCRYPTION_KEY must be set to sign OAuth state")


def _sign(workspace_id: str, platform: str, timestamp: int) -> str:
    msg = f"{workspace_id}|{platform}|{timestamp}".encode("utf-8")
    return hmac.new(_signing_key(), msg, hashlib.sha256).hexdigest()


def encode_state(workspace_id: str, platform: str, timestamp_ms: int) -> str:
    payload = {
        "workspaceId": workspace_id,
        "platform": platform,
        "timestamp": timestamp_ms,
        "sig": _sign(workspace_id, platform, timestamp_ms),
    }
    return base64.b64encode(json.dumps(payload, separators=(",", ":")).encode("utf-8")).decode("ascii")


def decode_state(state: str) -> Dict[str, object]:
    # a "+" that travelled unencoded through a query string comes back as a space
    raw = (state or "").strip().replace(" ", "+")
    try:
        data = json.loads(base64.b64decode(raw, validate=True).decode("utf-8"))
    except (binascii.Error, ValueError, UnicodeDecodeError):
        raise StateInvalid("State is not base64 JSON")
    if not isinstance(data, dict):
        raise StateInvalid("State payload is not an object")
    workspace_id, platform, timestamp, sig = (
        data.get("workspaceId"), data.get("platform"), data.get("timestamp"), data.get("sig"),
    )
    if not isinstance(workspace_id, str) or not isinstance(platform, str):
        raise StateInvalid("State is missing workspaceId or platform")
    if not isinstance(timestamp, int) or isinstance(timestamp, bool):
        raise StateInvalid("State timestamp is not epoch milliseconds")
    if not isinstance(sig, str) or not hmac.compare_digest(sig, _sign(workspace_id, platform, timestamp)):
        raise StateInvalid("State signature does not match")
    return data


def verify_state(state: str, platform: str, now_ms: int, ttl_seconds: int,
                 workspace_id: Optional[str] = None) -> Dict[str, object]:
    data = decode_state(state)
    if data["platform"] != platform:
        raise StateInvalid("State was issued for a different platform")
    if workspace_id is not None and data["workspaceId"] != workspace_id:
        raise StateInvalid("State was issued for a different workspace")
    age_ms = now_ms - data["timestamp"]
    if age_ms < -MAX_CLOCK_SKEW_MS:
        raise StateInvalid("State timestamp is in the future")
    if age_ms > ttl_seconds * 1000:
        raise StateExpired("State is older than the freshness window")
    return data


class OAuthFlowManager:
    def __init__(self, db: Session, client: PlatformClient, clock: Callable[[], float] = time.time):
        self.db = db
        self.client = client
        self.clock = clock

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _credentials(self, workspace_id: str, platform: str):
        creds = crud_accounts.get_decrypted_credentials(self.db, workspace_id, platforms.credential_key(platform))
        if not creds:
            raise ConfigurationMissing(platform)
        return creds

    def initiate(self, workspace_id: str, platform: str) -> Dict[str, str]:
        name = platforms.normalize(platform)
        if not name:
            raise ConfigurationMissing(platform, f"Unsupported platform: {platform}")
        client_id, _secret = self._credentials(workspace_id, name)
        state = encode_state(workspace_id, name, self._now_ms())
        logger.info("oauth_initiated", workspace_id=workspace_id, platform=name)
        return {"auth_url": platforms.auth_url(name, client_id, state), "state": state}

    def complete_callback(self, platform: str, code: str, state: str,
                          workspace_id: Optional[str] = None) -> SocialAccount:
        """Validate state, exchange the code and store the account with encrypted tokens.

        ``workspace_id`` is the caller's current session workspace when known;
        the state must name the same one.
        """
        name = platforms.normalize(platform)
        if not name:
            raise StateInvalid(f"Unsupported platform: {platform}")
        data = verify_state(state, name, self._now_ms(), settings.oauth_state_ttl_seconds, workspace_id)
        ws = data["workspaceId"]

        client_id, client_secret = self._credentials(ws, name)
        tokens = self.client.exchange_code(name, code, platforms.redirect_uri(name), client_id, client_secret)
        if not tokens.external_account_id:
            raise PlatformRequestError(f"{name} did not identify the connected account")

        access_enc = token_crypto.encrypt(tokens.access_token)
        refresh_enc = token_crypto.encrypt_optional(tokens.refresh_token)
        account, created = crud_accounts.upsert_account(
            self.db,
            workspace_id=ws,
            platform=name,
            external_account_id=tokens.external_account_id,
            access_token_encrypted=access_enc,
            refresh_token_encrypted=refresh_enc,
            expires_in=tokens.expires_in,
            name=tokens.name,
            username=tokens.username,
        )
        logger.info("oauth_account_connected", workspace_id=ws, platform=name,
                    account_id=account.id, reconnected=not created)
        return account
