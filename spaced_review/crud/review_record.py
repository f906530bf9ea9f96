from sqlalchemy.orm import Session
from spaced_review.models import ReviewRecord
from spaced_review.schemas import ReviewRecordSchema
from datetime import datetime
from typing import List, Optional

# Columns rewritten by a scoring save; identity and created_at never change
_MUTABLE_FIELDS = (
    "repetition_count",
    "interval_days",
    "ease_factor",
    "lapse_count",
    "status",
    "due_at",
    "last_reviewed_at",
    "total_reviews",
    "correct_reviews",
    "last_quality",
)

def get_review_record(db: Session, learner_id: str, item_id: str) -> Optional[ReviewRecord]:
    """Get the record for a (learner, item) pair"""
    return db.query(ReviewRecord).filter(
        ReviewRecord.learner_id == learner_id,
        ReviewRecord.item_id == item_id
    ).first()

def create_review_record(db: Session, record: ReviewRecordSchema) -> ReviewRecord:
    """Insert a freshly initialized record; caller commits"""
    data = record.model_dump()
    data["status"] = record.status.value
    db_record = ReviewRecord(**data)
    db.add(db_record)
    db.flush()
    return db_record

def update_review_record(db: Session, record: ReviewRecordSchema) -> int:
    """
    Compare-and-set update keyed on (learner_id, item_id, revision).

    Bumps the stored revision. Returns the number of rows written; 0 means
    the stored revision moved on (or the row is gone). Caller commits.
    """
    values = {name: getattr(record, name) for name in _MUTABLE_FIELDS}
    values["status"] = record.status.value
    values["revision"] = record.revision + 1
    return db.query(ReviewRecord).filter(
        ReviewRecord.learner_id == record.learner_id,
        ReviewRecord.item_id == record.item_id,
        ReviewRecord.revision == record.revision
    ).update(values, synchronize_session=False)

def get_due_records(
    db: Session,
    learner_id: str,
    as_of: datetime,
    limit: int,
    subject: Optional[str] = None
) -> List[ReviewRecord]:
    """Records due at or before `as_of`: oldest due first, then most lapses, then item id"""
    query = db.query(ReviewRecord).filter(
        ReviewRecord.learner_id == learner_id,
        ReviewRecord.due_at <= as_of
    )
    if subject is not None:
        query = query.filter(ReviewRecord.subject == subject)
    return query.order_by(
        ReviewRecord.due_at.asc(),
        ReviewRecord.lapse_count.desc(),
        ReviewRecord.item_id.asc()
    ).limit(limit).all()

def get_learner_records(db: Session, learner_id: str) -> List[ReviewRecord]:
    """Get every record for a learner"""
    return db.query(ReviewRecord).filter(
        ReviewRecord.learner_id == learner_id
    ).order_by(ReviewRecord.item_id.asc()).all()
