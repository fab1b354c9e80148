# socialsync/routers/insights_api.py
"""Read side of the synced data, plus the product catalog the shop syncs push."""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from socialsync.db import crud, crud_accounts, models
from socialsync.deps import get_db, get_workspace_id

router = APIRouter(prefix="/api", tags=["insights"])

class ProductIn(BaseModel):
    external_id: str = Field(..., min_length=1, max_length=256)
    name: str = Field(..., min_length=1, max_length=512)
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    currency: str = Field("USD", min_length=3, max_length=8)
    image_url: Optional[str] = None
    product_url: Optional[str] = None

def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None

def analytics_out(row: models.PlatformAnalytics) -> Dict[str, Any]:
    return {
        "date": row.date.isoformat(),
        "followers": row.followers,
        "following": row.following,
        "impressions": row.impressions,
        "reach": row.reach,
        "engagement_rate": row.engagement_rate,
        "profile_views": row.profile_views,
        "website_clicks": row.website_clicks,
        "email_clicks": row.email_clicks,
        "platform_metrics": row.platform_metrics,
        "synced_at": _iso(row.synced_at),
    }

def comment_out(c: models.Comment) -> Dict[str, Any]:
    return {
        "id": c.id,
        "platform_comment_id": c.platform_comment_id,
        "parent_id": c.parent_id,
        "author_username": c.author_username,
        "text": c.text,
        "like_count": c.like_count,
        "reply_count": c.reply_count,
        "is_hidden": c.is_hidden,
        "created_at": _iso(c.created_at),
    }

def product_out(p: models.Product) -> Dict[str, Any]:
    return {
        "id": p.id,
        "external_id": p.external_id,
        "name": p.name,
        "description": p.description,
        "price": p.price,
        "currency": p.currency,
        "image_url": p.image_url,
        "product_url": p.product_url,
        "is_active": p.is_active,
    }

def _owned_post(db: Session, post_platform_id: int, workspace_id: str) -> models.PostPlatform:
    post = crud.get_post_platform(db, post_platform_id)
    acc = crud_accounts.get_account(db, post.social_account_id) if post else None
    if not acc or acc.workspace_id != workspace_id:
        raise HTTPException(404, "Post not found")
    return post

@router.get("/accounts/{account_id}/analytics")
def account_analytics(account_id: int, workspace_id: str = Depends(get_workspace_id),
                      db: Session = Depends(get_db)) -> Dict[str, Any]:
    acc = crud_accounts.get_account(db, account_id)
    if not acc or acc.workspace_id != workspace_id:
        raise HTTPException(404, "Account not found")
    return {"analytics": [analytics_out(r) for r in crud.list_analytics(db, account_id)]}

@router.get("/posts/{post_platform_id}/comments")
def post_comments(post_platform_id: int, workspace_id: str = Depends(get_workspace_id),
                  db: Session = Depends(get_db)) -> Dict[str, Any]:
    post = _owned_post(db, post_platform_id, workspace_id)
    return {"comments": [comment_out(c) for c in crud.list_comments(db, post.id)]}

@router.get("/posts/{post_platform_id}/analytics")
def post_analytics(post_platform_id: int, workspace_id: str = Depends(get_workspace_id),
                   db: Session = Depends(get_db)) -> Dict[str, Any]:
    post = _owned_post(db, post_platform_id, workspace_id)
    row = crud.get_post_analytics(db, post.id)
    if not row:
        return {"analytics": None}
    data = {field: getattr(row, field) for field in crud.POST_ANALYTICS_FIELDS}
    return {"analytics": {**data, "synced_at": _iso(row.synced_at)}}

@router.get("/products")
def list_products(workspace_id: str = Depends(get_workspace_id),
                  db: Session = Depends(get_db)) -> Dict[str, Any]:
    return {"products": [product_out(p) for p in crud.list_active_products(db, workspace_id)]}

@router.post("/products", status_code=201)
def create_product(body: ProductIn, workspace_id: str = Depends(get_workspace_id),
                   db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        product = crud.create_product(db, workspace_id, body.model_dump())
    except IntegrityError:
        db.rollback()
        raise HTTPException(409, f"Product {body.external_id} already exists")
    return product_out(product)
