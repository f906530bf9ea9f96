from sqlalchemy import Column, Integer, String, Float, Index, UniqueConstraint
from spaced_review.database import Base, UTCDateTime

class ReviewRecord(Base):
    """SM-2 scheduling state per (learner, item)"""
    __tablename__ = "review_records"
    __table_args__ = (
        UniqueConstraint("learner_id", "item_id", name="uq_review_records_learner_item"),
        Index("ix_review_records_learner_due", "learner_id", "due_at"),
    )
    
    id = Column(Integer, primary_key=True, index=True)
    learner_id = Column(String, nullable=False)
    item_id = Column(String, nullable=False)
    subject = Column(String)  # "English", "Math", ...
    
    # SM-2 algorithm fields
    repetition_count = Column(Integer, nullable=False, default=0)  # successes since last lapse
    interval_days = Column(Float, nullable=False, default=0.0)
    ease_factor = Column(Float, nullable=False, default=2.5)
    lapse_count = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default="new")  # new, learning, review, mastered
    
    due_at = Column(UTCDateTime, nullable=False)
    last_reviewed_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, nullable=False)
    
    # Accuracy bookkeeping
    total_reviews = Column(Integer, nullable=False, default=0)
    correct_reviews = Column(Integer, nullable=False, default=0)
    last_quality = Column(Integer)
    
    # Optimistic concurrency; bumped on every successful save
    revision = Column(Integer, nullable=False, default=0)
