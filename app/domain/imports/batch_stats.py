"""Summary counts of the leads created by one upload batch."""
from typing import Any, Dict

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.db.models import Lead

UNKNOWN_BUCKET = "Unknown"


def _grouped_counts(db: Session, column, batch_id: str) -> Dict[str, int]:
    rows = (
        db.query(column, func.count(Lead.id))
        .filter(Lead.upload_batch_id == batch_id)
        .group_by(column)
        .all()
    )
    counts: Dict[str, int] = {}
    for value, count in rows:
        key = value if value not in (None, "") else UNKNOWN_BUCKET
        counts[key] = counts.get(key, 0) + count
    return counts


def upload_batch_stats(db: Session, batch_id: str) -> Dict[str, Any]:
    total = db.query(func.count(Lead.id)).filter(Lead.upload_batch_id == batch_id).scalar() or 0
    if not total:
        return {"batch_id": batch_id, "total": 0, "by_status": {}, "by_mandal": {}, "by_state": {}}
    return {
        "batch_id": batch_id,
        "total": total,
        "by_status": _grouped_counts(db, Lead.application_status, batch_id),
        "by_mandal": _grouped_counts(db, Lead.mandal, batch_id),
        "by_state": _grouped_counts(db, Lead.state, batch_id),
    }
