from sqlalchemy import Column, Integer, String, Float, Index
from spaced_review.database import Base, UTCDateTime

class ReviewEvent(Base):
    """Append-only log of scoring events, one row per saved review"""
    __tablename__ = "review_events"
    __table_args__ = (
        Index("ix_review_events_learner_item_ts", "learner_id", "item_id", "timestamp"),
    )
    
    id = Column(Integer, primary_key=True, index=True)
    learner_id = Column(String, nullable=False)
    item_id = Column(String, nullable=False)
    
    quality = Column(Integer, nullable=False)  # 0-5
    previous_interval = Column(Float, nullable=False)
    new_interval = Column(Float, nullable=False)
    previous_ease = Column(Float, nullable=False)
    new_ease = Column(Float, nullable=False)
    status = Column(String, nullable=False)  # status after this review
    
    timestamp = Column(UTCDateTime, nullable=False)
