from sqlalchemy.orm import Session
from spaced_review.models import ReviewEvent
from spaced_review.schemas import ReviewEventSchema
from typing import List, Optional

def append_review_event(db: Session, event: ReviewEventSchema) -> ReviewEvent:
    """Append a scoring event; caller commits together with the record save"""
    data = event.model_dump()
    data["status"] = event.status.value
    db_event = ReviewEvent(**data)
    db.add(db_event)
    return db_event

def get_review_events(db: Session, learner_id: str, item_id: Optional[str] = None) -> List[ReviewEvent]:
    """Get scoring events for a learner, optionally for a single item"""
    query = db.query(ReviewEvent).filter(ReviewEvent.learner_id == learner_id)
    if item_id is not None:
        query = query.filter(ReviewEvent.item_id == item_id)
    return query.order_by(ReviewEvent.timestamp.asc(), ReviewEvent.id.asc()).all()
