# socialsync/services/sync_types.py
"""Normalized shapes exchanged with platform clients, and sync result reports."""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from socialsync.errors import SocialSyncError


# --- what platform clients hand back ---

class TokenSet(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    external_account_id: Optional[str] = None
    name: Optional[str] = None
    username: Optional[str] = None


class AccountMetrics(BaseModel):
    day: Optional[date] = None  # None means "today"
    followers: int = 0
    following: int = 0
    impressions: int = 0
    reach: int = 0
    engagement_rate: float = 0.0
    profile_views: int = 0
    website_clicks: int = 0
    email_clicks: int = 0
    platform_metrics: Optional[Dict[str, Any]] = None


class PostMetrics(BaseModel):
    impressions: int = 0
    reach: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    saves: int = 0
    clicks: int = 0
    video_views: Optional[int] = None
    engagement_rate: float = 0.0
    platform_metrics: Optional[Dict[str, Any]] = None


class PlatformComment(BaseModel):
    platform_comment_id: str
    author_id: Optional[str] = None
    author_username: Optional[str] = None
    author_avatar: Optional[str] = None
    text: str = ""
    like_count: int = 0
    reply_count: int = 0
    is_hidden: bool = False
    created_at: datetime
    parent_id: Optional[str] = None
    replies: List["PlatformComment"] = Field(default_factory=list)


class CommentPage(BaseModel):
    comments: List[PlatformComment] = Field(default_factory=list)
    next_page_token: Optional[str] = None


class CatalogItem(BaseModel):
    """A product as the platform's shop holds it."""
    platform_product_id: str
    external_id: str
    fingerprint: Optional[str] = None


class ProductPayload(BaseModel):
    external_id: str
    name: str
    description: Optional[str] = None
    price: float
    currency: str
    image_url: Optional[str] = None
    product_url: Optional[str] = None


# --- what the sync services report ---

class SyncError(BaseModel):
    kind: str
    message: str
    item_id: Optional[str] = None

    @classmethod
    def from_exc(cls, exc: Exception, item_id: Optional[str] = None) -> "SyncError":
        kind = exc.kind if isinstance(exc, SocialSyncError) else "unexpected_error"
        return cls(kind=kind, message=str(exc), item_id=item_id)


class SyncResult(BaseModel):
    account_id: Optional[int] = None
    records_upserted: int = 0
    errors: List[SyncError] = Field(default_factory=list)
    partial: bool = False

    @property
    def success(self) -> bool:
        return not self.errors

    def add_error(self, exc: Exception, item_id: Optional[str] = None) -> None:
        self.errors.append(SyncError.from_exc(exc, item_id))


class CatalogSyncResult(BaseModel):
    workspace_id: str
    platform: str
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    partial: bool = False
    errors: List[SyncError] = Field(default_factory=list)

    @property
    def synced(self) -> int:
        return self.created + self.updated

    @property
    def success(self) -> bool:
        return not self.errors

    def add_error(self, exc: Exception, item_id: Optional[str] = None) -> None:
        self.errors.append(SyncError.from_exc(exc, item_id))
