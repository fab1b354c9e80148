# socialsync/platforms.py
from typing import Dict, List, Optional
from urllib.parse import urlencode, quote

from socialsync.config import settings

PLATFORM_CONFIGS: Dict[str, Dict[str, object]] = {
    "instagram": {
        "auth_url": "https://api.instagram.com/oauth/authorize",
        "token_url": "https://api.instagram.com/oauth/access_token",
        "scopes": ["instagram_basic", "instagram_manage_comments", "instagram_manage_insights"],
    },
    "facebook": {
        "auth_url": "https://www.facebook.com/v18.0/dialog/oauth",
        "token_url": "https://graph.facebook.com/v18.0/oauth/access_token",
        "scopes": ["pages_read_engagement", "pages_manage_engagement", "pages_read_analytics"],
    },
    "tiktok": {
        "auth_url": "https://www.tiktok.com/v2/auth/authorize/",
        "token_url": "https://open.tiktokapis.com/v2/oauth/token/",
        "scopes": ["user.info.stats", "video.list", "comment.list"],
    },
    "youtube": {
        "auth_url": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_url": "https://oauth2.googleapis.com/token",
        "scopes": [
            "https://www.googleapis.com/auth/youtube.readonly",
            "https://www.googleapis.com/auth/yt-analytics.readonly",
        ],
    },
    "pinterest": {
        "auth_url": "https://www.pinterest.com/oauth/",
        "token_url": "https://api.pinterest.com/v5/oauth/token",
        "scopes": ["boards:read", "pins:read", "user_accounts:read"],
    },
    "linkedin": {
        "auth_url": "https://www.linkedin.com/oauth/v2/authorization",
        "token_url": "https://www.linkedin.com/oauth/v2/accessToken",
        "scopes": ["openid", "profile", "w_member_social"],
    },
    "google_business": {
        "auth_url": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_url": "https://oauth2.googleapis.com/token",
        "scopes": ["https://www.googleapis.com/auth/business.manage"],
    },
}

SUPPORTED_PLATFORMS: List[str] = list(PLATFORM_CONFIGS)

# Instagram and Facebook are served by the same Meta app
_SHARED_CREDENTIALS = {"instagram": "meta", "facebook": "meta"}

def normalize(platform: str) -> Optional[str]:
    p = (platform or "").strip().lower()
    return p if p in PLATFORM_CONFIGS else None

def credential_key(platform: str) -> str:
    return _SHARED_CREDENTIALS.get(platform, platform)

def credential_keys() -> List[str]:
    keys: List[str] = []
    for p in SUPPORTED_PLATFORMS:
        k = credential_key(p)
        if k not in keys:
            keys.append(k)
    return keys

def redirect_uri(platform: str) -> str:
    return f"{settings.app_base_url.rstrip('/')}/api/accounts/callback/{platform}"

def auth_url(platform: str, client_id: str, state: str) -> str:
    config = PLATFORM_CONFIGS[platform]
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri(platform),
        "response_type": "code",
        "scope": " ".join(config["scopes"]),
        "state": state,
    }
    qs = urlencode(params, quote_via=quote, safe=":/")
    return f"{config['auth_url']}?{qs}"
