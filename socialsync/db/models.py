from sqlalchemy import (
    Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, JSON, String, Text, UniqueConstraint,
)
from sqlalchemy.sql import func
from socialsync.db.base import Base

ACCOUNT_ACTIVE = "active"
ACCOUNT_EXPIRED = "expired"
ACCOUNT_REVOKED = "revoked"

SHOP_IDLE = "idle"
SHOP_SYNCING = "syncing"
SHOP_SYNCED = "synced"
SHOP_FAILED = "failed"

class WorkspaceCredential(Base):
    """OAuth app credentials of one workspace for one credential key (see platforms.credential_key)."""
    __tablename__ = "workspace_credentials"
    __table_args__ = (UniqueConstraint("workspace_id", "platform_key", name="uq_credential_workspace_platform"),)
    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(String(64), nullable=False, index=True)
    platform_key = Column(String(32), nullable=False)
    client_id = Column(String(512), nullable=False)
    client_secret_encrypted = Column(Text, nullable=False)
    is_configured = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

class SocialAccount(Base):
    __tablename__ = "social_accounts"
    __table_args__ = (
        UniqueConstraint("workspace_id", "platform", "external_account_id", name="uq_account_external"),
    )
    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(String(64), nullable=False, index=True)
    platform = Column(String(32), nullable=False)
    external_account_id = Column(String(256), nullable=False)
    name = Column(String(256), nullable=True)
    username = Column(String(256), nullable=True)
    access_token_encrypted = Column(Text, nullable=False)
    refresh_token_encrypted = Column(Text, nullable=True)
    token_expires_at = Column(DateTime, nullable=True)
    status = Column(String(16), nullable=False, default=ACCOUNT_ACTIVE)  # active | expired | revoked
    last_synced_at = Column(DateTime, nullable=True)
    last_sync_error = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

class PlatformAnalytics(Base):
    __tablename__ = "platform_analytics"
    __table_args__ = (UniqueConstraint("social_account_id", "date", name="uq_analytics_account_date"),)
    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(String(64), nullable=False, index=True)
    social_account_id = Column(Integer, ForeignKey("social_accounts.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    followers = Column(Integer, default=0)
    following = Column(Integer, default=0)
    impressions = Column(Integer, default=0)
    reach = Column(Integer, default=0)
    engagement_rate = Column(Float, default=0.0)
    profile_views = Column(Integer, default=0)
    website_clicks = Column(Integer, default=0)
    email_clicks = Column(Integer, default=0)
    platform_metrics = Column(JSON, nullable=True)
    synced_at = Column(DateTime, nullable=True)

class PostPlatform(Base):
    """A post as published on one connected account."""
    __tablename__ = "post_platforms"
    id = Column(Integer, primary_key=True, index=True)
    social_account_id = Column(Integer, ForeignKey("social_accounts.id", ondelete="CASCADE"), nullable=False)
    platform_post_id = Column(String(256), nullable=True)  # null until published
    published_at = Column(DateTime, nullable=True)

class PostAnalytics(Base):
    """Latest metrics of one published post; overwritten on every sync."""
    __tablename__ = "post_analytics"
    id = Column(Integer, primary_key=True, index=True)
    post_platform_id = Column(Integer, ForeignKey("post_platforms.id", ondelete="CASCADE"), unique=True, nullable=False)
    impressions = Column(Integer, default=0)
    reach = Column(Integer, default=0)
    likes = Column(Integer, default=0)
    comments = Column(Integer, default=0)
    shares = Column(Integer, default=0)
    saves = Column(Integer, default=0)
    clicks = Column(Integer, default=0)
    video_views = Column(Integer, nullable=True)
    engagement_rate = Column(Float, default=0.0)
    platform_metrics = Column(JSON, nullable=True)
    synced_at = Column(DateTime, nullable=True)

class Comment(Base):
    __tablename__ = "comments"
    __table_args__ = (
        UniqueConstraint("social_account_id", "platform_comment_id", name="uq_comment_account_external"),
    )
    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(String(64), nullable=False, index=True)
    social_account_id = Column(Integer, ForeignKey("social_accounts.id", ondelete="CASCADE"), nullable=False)
    post_platform_id = Column(Integer, ForeignKey("post_platforms.id", ondelete="CASCADE"), nullable=True)
    platform_post_id = Column(String(256), nullable=False)
    platform_comment_id = Column(String(256), nullable=False)
    parent_id = Column(Integer, ForeignKey("comments.id", ondelete="SET NULL"), nullable=True)
    author_id = Column(String(256), nullable=True)
    author_username = Column(String(256), nullable=True)
    author_avatar = Column(String(1024), nullable=True)
    text = Column(Text, nullable=False, default="")
    like_count = Column(Integer, default=0)
    reply_count = Column(Integer, default=0)
    is_hidden = Column(Boolean, default=False)
    created_at = Column(DateTime, nullable=False)
    synced_at = Column(DateTime, nullable=True)

class SyncCursor(Base):
    """Last comment seen for a post; only moves forward."""
    __tablename__ = "sync_cursors"
    id = Column(Integer, primary_key=True, index=True)
    post_platform_id = Column(Integer, ForeignKey("post_platforms.id", ondelete="CASCADE"), unique=True, nullable=False)
    last_comment_at = Column(DateTime, nullable=True)
    last_comment_id = Column(String(256), nullable=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

class Product(Base):
    __tablename__ = "products"
    __table_args__ = (UniqueConstraint("workspace_id", "external_id", name="uq_product_workspace_external"),)
    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(String(64), nullable=False, index=True)
    external_id = Column(String(256), nullable=False)
    name = Column(String(512), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False, default=0.0)
    currency = Column(String(8), nullable=False, default="USD")
    image_url = Column(String(1024), nullable=True)
    product_url = Column(String(1024), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

class ProductPlatformLink(Base):
    __tablename__ = "product_platform_links"
    __table_args__ = (UniqueConstraint("product_id", "platform", name="uq_product_platform"),)
    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    platform = Column(String(32), nullable=False)
    platform_product_id = Column(String(256), nullable=False)
    synced_fingerprint = Column(String(64), nullable=True)
    synced_at = Column(DateTime, nullable=True)

class ShopConnection(Base):
    __tablename__ = "shop_connections"
    __table_args__ = (UniqueConstraint("workspace_id", "platform", name="uq_shop_workspace_platform"),)
    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(String(64), nullable=False, index=True)
    platform = Column(String(32), nullable=False)
    social_account_id = Column(Integer, ForeignKey("social_accounts.id", ondelete="SET NULL"), nullable=True)
    catalog_id = Column(String(256), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    sync_status = Column(String(16), nullable=False, default=SHOP_IDLE)
    last_sync_at = Column(DateTime, nullable=True)
    last_sync_error = Column(Text, nullable=True)
