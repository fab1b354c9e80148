# socialsync/services/analytics_sync.py
from datetime import date
from typing import List

from sqlalchemy.orm import Session

from socialsync.db import crud
from socialsync.db.models import SocialAccount
from socialsync.services.sync_types import AccountMetrics


def store_metrics(db: Session, account: SocialAccount, metrics: List[AccountMetrics], today: date) -> int:
    """Upsert one analytics row per day and commit. Returns the number of days written."""
    days = set()
    for m in metrics:
        day = m.day or today
        crud.upsert_daily_analytics(db, account, day, m.model_dump(exclude={"day"}))
        days.add(day)
    db.commit()
    return len(days)
