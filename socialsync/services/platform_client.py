# socialsync/services/platform_client.py
import abc
import base64
import json
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
import structlog

from socialsync.config import settings
from socialsync.errors import (
    AuthenticationError, ConfigurationError, PlatformRequestError, TransientPlatformError,
)
from socialsync.platforms import PLATFORM_CONFIGS
from socialsync.services.sync_types import (
    AccountMetrics, CatalogItem, CommentPage, PostMetrics, ProductPayload, TokenSet,
)

logger = structlog.get_logger(__name__)

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


class PlatformClient(abc.ABC):
    """Normalized view of a social/commerce platform.

    Callers pass decrypted tokens in and receive normalized models back; each
    method raises ``AuthenticationError`` for a rejected token,
    ``TransientPlatformError`` for timeouts and rate limits and
    ``PlatformRequestError`` for anything else the platform refuses.
    """

    @abc.abstractmethod
    def exchange_code(self, platform: str, code: str, redirect_uri: str,
                      client_id: str, client_secret: str) -> TokenSet:
        ...

    @abc.abstractmethod
    def refresh_access_token(self, platform: str, refresh_token: str,
                             client_id: str, client_secret: str) -> TokenSet:
        ...

    @abc.abstractmethod
    def fetch_account_metrics(self, platform: str, access_token: str,
                              external_account_id: str) -> List[AccountMetrics]:
        ...

    @abc.abstractmethod
    def fetch_post_metrics(self, platform: str, access_token: str, platform_post_id: str) -> PostMetrics:
        ...

    @abc.abstractmethod
    def fetch_comments(self, platform: str, access_token: str, platform_post_id: str,
                       since: Optional[datetime] = None, page_token: Optional[str] = None) -> CommentPage:
        """Comments newer than ``since``, oldest first across pages.

        The ascending order lets the caller commit and advance its cursor page by page.
        """

    @abc.abstractmethod
    def fetch_catalog(self, platform: str, access_token: str, catalog_id: str) -> List[CatalogItem]:
        ...

    @abc.abstractmethod
    def create_product(self, platform: str, access_token: str, catalog_id: str,
                       product: ProductPayload) -> str:
        ...

    @abc.abstractmethod
    def update_product(self, platform: str, access_token: str, catalog_id: str,
                       platform_product_id: str, product: ProductPayload) -> None:
        ...


def raise_for_platform_status(resp: httpx.Response) -> None:
    if resp.status_code < 400:
        return
    if resp.status_code in (401, 403):
        raise AuthenticationError(f"Platform rejected the token ({resp.status_code})")
    if resp.status_code in RETRYABLE_STATUS:
        retry_after = resp.headers.get("retry-after")
        try:
            retry_after_s = float(retry_after) if retry_after else None
        except ValueError:
            retry_after_s = None
        raise TransientPlatformError(f"Platform busy ({resp.status_code})", retry_after=retry_after_s)
    raise PlatformRequestError(f"Platform error {resp.status_code}: {resp.text[:300]}", status_code=resp.status_code)


def request_with_retry(method: str, url: str, max_attempts: int = 3, backoff: float = 1.0, **kwargs) -> httpx.Response:
    for attempt in range(1, max_attempts + 1):
        try:
            with httpx.Client(timeout=httpx.Timeout(settings.platform_http_timeout, connect=5)) as c:
                resp = c.request(method, url, **kwargs)
            if resp.status_code in RETRYABLE_STATUS and attempt < max_attempts:
                logger.warning("platform_retry", url=url, attempt=attempt, status=resp.status_code)
                time.sleep(backoff * attempt)
                continue
            return resp
        except httpx.TimeoutException as e:
            logger.warning("platform_timeout", url=url, attempt=attempt)
            if attempt < max_attempts:
                time.sleep(backoff * attempt)
                continue
            raise TransientPlatformError(f"Timed out calling {url}") from e
        except httpx.RequestError as e:
            logger.warning("platform_request_error", url=url, attempt=attempt, error=str(e))
            if attempt < max_attempts:
                time.sleep(backoff * attempt)
                continue
            raise TransientPlatformError(f"Could not reach {url}: {e}") from e
    raise TransientPlatformError(f"{url} failed after {max_attempts} attempts")


def _b64url_decode(part: str) -> bytes:
    pad = "=" * (-len(part) % 4)
    return base64.urlsafe_b64decode(part + pad)


def extract_sub_from_id_token(id_token: str) -> str:
    """Identity hint only; the token was just received from the platform over TLS."""
    try:
        parts = id_token.split(".")
        if len(parts) < 2:
            return ""
        claims = json.loads(_b64url_decode(parts[1]).decode("utf-8"))
        return str(claims.get("sub", ""))
    except (ValueError, UnicodeDecodeError):
        return ""


def _token_set(data: Dict[str, Any]) -> TokenSet:
    access_token = data.get("access_token")
    if not access_token:
        raise PlatformRequestError("Token response carried no access_token")
    account_id = ""
    if data.get("id_token"):
        account_id = extract_sub_from_id_token(data["id_token"])
    for key in ("user_id", "open_id", "id"):
        if not account_id and data.get(key):
            account_id = str(data[key])
    expires_in = data.get("expires_in")
    return TokenSet(
        access_token=access_token,
        refresh_token=data.get("refresh_token"),
        expires_in=int(expires_in) if expires_in else None,
        external_account_id=account_id or None,
        name=data.get("name"),
        username=data.get("username"),
    )


class HttpPlatformClient(PlatformClient):
    """Standard OAuth2 code and refresh grants over HTTP.

    Analytics, comment and catalog calls depend on each platform's own API;
    until a per-platform subclass provides them they raise ``ConfigurationError``.
    """

    def _token_request(self, platform: str, form: Dict[str, str]) -> Dict[str, Any]:
        token_url = PLATFORM_CONFIGS[platform]["token_url"]
        resp = request_with_retry(
            "POST", token_url,
            data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded", "Accept": "application/json"},
        )
        if resp.status_code == 400:
            # invalid_grant and friends: the code or refresh token is no good
            raise AuthenticationError(f"{platform} rejected the grant")
        raise_for_platform_status(resp)
        return resp.json()

    def exchange_code(self, platform, code, redirect_uri, client_id, client_secret):
        data = self._token_request(platform, {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": client_id,
            "client_secret": client_secret,
        })
        return _token_set(data)

    def refresh_access_token(self, platform, refresh_token, client_id, client_secret):
        data = self._token_request(platform, {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
            "client_secret": client_secret,
        })
        return _token_set(data)

    # per-platform data APIs are not wired into the generic client
    def _no_data_client(self, platform: str):
        return ConfigurationError(
            f"No {platform} data client is configured; only the OAuth token grants are available"
        )

    def fetch_account_metrics(self, platform, access_token, external_account_id):
        raise self._no_data_client(platform)

    def fetch_post_metrics(self, platform, access_token, platform_post_id):
        raise self._no_data_client(platform)

    def fetch_comments(self, platform, access_token, platform_post_id, since=None, page_token=None):
        raise self._no_data_client(platform)

    def fetch_catalog(self, platform, access_token, catalog_id):
        raise self._no_data_client(platform)

    def create_product(self, platform, access_token, catalog_id, product):
        raise self._no_data_client(platform)

    def update_product(self, platform, access_token, catalog_id, platform_product_id, product):
        raise self._no_data_client(platform)
