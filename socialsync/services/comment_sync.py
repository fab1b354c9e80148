# socialsync/services/comment_sync.py
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Tuple

from sqlalchemy.orm import Session

from socialsync.db import crud
from socialsync.db.models import PostPlatform, SocialAccount
from socialsync.services.sync_types import PlatformComment

Position = Tuple[datetime, str]


def naive_utc(ts: datetime) -> datetime:
    if ts.tzinfo is not None:
        return ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


def flatten_comments(comments: List[PlatformComment], parent: Optional[str] = None) -> Iterator[PlatformComment]:
    """Parents before their replies; nested replies inherit the parent's platform id."""
    for c in comments:
        item = c.model_copy(update={
            "parent_id": c.parent_id or parent,
            "created_at": naive_utc(c.created_at),
            "replies": [],
        })
        yield item
        yield from flatten_comments(c.replies, parent=c.platform_comment_id)


def newer_than(comments: List[PlatformComment], cursor: Optional[Position]) -> List[PlatformComment]:
    flat = list(flatten_comments(comments))
    if cursor is None:
        return flat
    return [c for c in flat if (c.created_at, c.platform_comment_id) > cursor]


def store_comment_page(db: Session, account: SocialAccount, post: PostPlatform,
                       comments: List[PlatformComment]) -> Optional[Position]:
    """Upsert a page of comments in one transaction.

    Returns the newest (created_at, id) written, or None for an empty page.
    """
    local_ids: Dict[str, int] = {}
    newest: Optional[Position] = None
    for c in comments:
        parent_pk = None
        if c.parent_id:
            parent_pk = local_ids.get(c.parent_id)
            if parent_pk is None:
                parent = crud.get_comment(db, account.id, c.parent_id)
                parent_pk = parent.id if parent else None
        row = crud.upsert_comment(db, account, post, c.model_dump(exclude={"replies", "parent_id"}), parent_id=parent_pk)
        local_ids[c.platform_comment_id] = row.id
        pos = (c.created_at, c.platform_comment_id)
        if newest is None or pos > newest:
            newest = pos
    db.commit()
    return newest
