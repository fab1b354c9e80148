from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from socialsync.db import models
from socialsync.db.crud_accounts import utcnow

# --- analytics ---

ANALYTICS_FIELDS = (
    "followers", "following", "impressions", "reach", "engagement_rate",
    "profile_views", "website_clicks", "email_clicks", "platform_metrics",
)

def upsert_daily_analytics(db: Session, account: models.SocialAccount, day: date, data: Dict[str, Any]) -> models.PlatformAnalytics:
    """One row per (account, day); a re-sync overwrites it. Caller commits."""
    row = (
        db.query(models.PlatformAnalytics)
        .filter(models.PlatformAnalytics.social_account_id == account.id, models.PlatformAnalytics.date == day)
        .first()
    )
    if not row:
        row = models.PlatformAnalytics(workspace_id=account.workspace_id, social_account_id=account.id, date=day)
    for field in ANALYTICS_FIELDS:
        if field in data:
            setattr(row, field, data[field])
    row.synced_at = utcnow()
    db.add(row)
    db.flush()
    return row

def list_analytics(db: Session, account_id: int) -> List[models.PlatformAnalytics]:
    return (
        db.query(models.PlatformAnalytics)
        .filter(models.PlatformAnalytics.social_account_id == account_id)
        .order_by(models.PlatformAnalytics.date)
        .all()
    )

POST_ANALYTICS_FIELDS = (
    "impressions", "reach", "likes", "comments", "shares", "saves", "clicks",
    "video_views", "engagement_rate", "platform_metrics",
)

def upsert_post_analytics(db: Session, post: models.PostPlatform, data: Dict[str, Any]) -> models.PostAnalytics:
    """One row per published post. Caller commits."""
    row = db.query(models.PostAnalytics).filter(models.PostAnalytics.post_platform_id == post.id).first()
    if not row:
        row = models.PostAnalytics(post_platform_id=post.id)
    for field in POST_ANALYTICS_FIELDS:
        if field in data:
            setattr(row, field, data[field])
    row.synced_at = utcnow()
    db.add(row)
    db.flush()
    return row

def get_post_analytics(db: Session, post_platform_id: int) -> Optional[models.PostAnalytics]:
    return db.query(models.PostAnalytics).filter(models.PostAnalytics.post_platform_id == post_platform_id).first()

# --- posts, comments, cursors ---

def get_post_platform(db: Session, post_platform_id: int) -> Optional[models.PostPlatform]:
    return db.query(models.PostPlatform).filter(models.PostPlatform.id == post_platform_id).first()

def list_recent_published_posts(db: Session, workspace_id: str, since: datetime) -> List[models.PostPlatform]:
    """Published posts of the workspace's active accounts since ``since``."""
    return (
        db.query(models.PostPlatform)
        .join(models.SocialAccount, models.SocialAccount.id == models.PostPlatform.social_account_id)
        .filter(
            models.SocialAccount.workspace_id == workspace_id,
            models.SocialAccount.status == models.ACCOUNT_ACTIVE,
            models.PostPlatform.platform_post_id.isnot(None),
            models.PostPlatform.published_at >= since,
        )
        .order_by(models.PostPlatform.social_account_id, models.PostPlatform.published_at)
        .all()
    )

def get_comment(db: Session, account_id: int, platform_comment_id: str) -> Optional[models.Comment]:
    return (
        db.query(models.Comment)
        .filter(models.Comment.social_account_id == account_id, models.Comment.platform_comment_id == platform_comment_id)
        .first()
    )

def upsert_comment(db: Session, account: models.SocialAccount, post: models.PostPlatform, data: Dict[str, Any],
                   parent_id: Optional[int] = None) -> models.Comment:
    """Keyed by the platform's comment id, so a replayed page updates instead of duplicating. Caller commits."""
    row = get_comment(db, account.id, data["platform_comment_id"])
    if not row:
        row = models.Comment(
            workspace_id=account.workspace_id,
            social_account_id=account.id,
            post_platform_id=post.id,
            platform_post_id=post.platform_post_id,
            platform_comment_id=data["platform_comment_id"],
            author_id=data.get("author_id"),
            author_username=data.get("author_username"),
            author_avatar=data.get("author_avatar"),
            created_at=data["created_at"],
        )
    row.text = data.get("text") or ""
    row.like_count = data.get("like_count") or 0
    row.reply_count = data.get("reply_count") or 0
    row.is_hidden = bool(data.get("is_hidden"))
    if parent_id is not None:
        row.parent_id = parent_id
    row.synced_at = utcnow()
    db.add(row)
    db.flush()
    return row

def list_comments(db: Session, post_platform_id: int) -> List[models.Comment]:
    return (
        db.query(models.Comment)
        .filter(models.Comment.post_platform_id == post_platform_id)
        .order_by(models.Comment.created_at, models.Comment.platform_comment_id)
        .all()
    )

def get_cursor(db: Session, post_platform_id: int) -> Optional[models.SyncCursor]:
    return db.query(models.SyncCursor).filter(models.SyncCursor.post_platform_id == post_platform_id).first()

def advance_cursor(db: Session, post_platform_id: int, last_at: datetime, last_id: str) -> models.SyncCursor:
    """Move the cursor forward; an older position leaves it untouched."""
    cur = get_cursor(db, post_platform_id)
    if not cur:
        cur = models.SyncCursor(post_platform_id=post_platform_id)
    elif cur.last_comment_at and (cur.last_comment_at, cur.last_comment_id or "") >= (last_at, last_id):
        return cur
    cur.last_comment_at = last_at
    cur.last_comment_id = last_id
    db.add(cur)
    db.commit()
    db.refresh(cur)
    return cur

# --- catalog ---

def list_active_products(db: Session, workspace_id: str) -> List[models.Product]:
    return (
        db.query(models.Product)
        .filter(models.Product.workspace_id == workspace_id, models.Product.is_active.is_(True))
        .order_by(models.Product.id)
        .all()
    )

def create_product(db: Session, workspace_id: str, data: Dict[str, Any]) -> models.Product:
    obj = models.Product(workspace_id=workspace_id, **data)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj

def get_product_link(db: Session, product_id: int, platform: str) -> Optional[models.ProductPlatformLink]:
    return (
        db.query(models.ProductPlatformLink)
        .filter(models.ProductPlatformLink.product_id == product_id, models.ProductPlatformLink.platform == platform)
        .first()
    )

def save_product_link(db: Session, product_id: int, platform: str, platform_product_id: str, fingerprint: str) -> models.ProductPlatformLink:
    link = get_product_link(db, product_id, platform)
    if not link:
        link = models.ProductPlatformLink(product_id=product_id, platform=platform)
    link.platform_product_id = platform_product_id
    link.synced_fingerprint = fingerprint
    link.synced_at = utcnow()
    db.add(link)
    db.commit()
    return link

def get_shop_connection(db: Session, workspace_id: str, platform: str) -> Optional[models.ShopConnection]:
    return (
        db.query(models.ShopConnection)
        .filter(models.ShopConnection.workspace_id == workspace_id, models.ShopConnection.platform == platform)
        .first()
    )

def list_shop_connections(db: Session, workspace_id: str) -> List[models.ShopConnection]:
    return (
        db.query(models.ShopConnection)
        .filter(models.ShopConnection.workspace_id == workspace_id, models.ShopConnection.is_active.is_(True))
        .order_by(models.ShopConnection.platform)
        .all()
    )

def set_shop_status(db: Session, shop: models.ShopConnection, status: str, error: Optional[str] = None, finished: bool = False) -> None:
    shop.sync_status = status
    if finished:
        shop.last_sync_at = utcnow()
        shop.last_sync_error = error
    db.add(shop)
    db.commit()
