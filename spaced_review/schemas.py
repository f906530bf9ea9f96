from pydantic import BaseModel, ConfigDict, Field, SkipValidation, field_validator
from typing import Dict, List, Optional
from datetime import date, datetime
from enum import Enum

from spaced_review.database import as_utc


class ReviewStatus(str, Enum):
    """Scheduling stage of a record; only ever set by scoring"""
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    MASTERED = "mastered"


class ReviewRecordSchema(BaseModel):
    """Immutable snapshot of one learner's scheduling state for one item"""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    learner_id: str
    item_id: str
    subject: Optional[str] = None
    repetition_count: int = Field(default=0, ge=0)
    interval_days: float = Field(default=0.0, ge=0)
    ease_factor: float = 2.5
    lapse_count: int = Field(default=0, ge=0)
    status: ReviewStatus = ReviewStatus.NEW
    due_at: datetime
    last_reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    total_reviews: int = Field(default=0, ge=0)
    correct_reviews: int = Field(default=0, ge=0)
    last_quality: Optional[int] = None
    revision: int = Field(default=0, ge=0)

    @field_validator("due_at", "last_reviewed_at", "created_at")
    @classmethod
    def _utc(cls, value):
        return as_utc(value) if value is not None else None

    @property
    def accuracy(self) -> int:
        """Percent of reviews answered with quality >= 3"""
        if not self.total_reviews:
            return 0
        return round(self.correct_reviews / self.total_reviews * 100)


class ReviewEventSchema(BaseModel):
    """One entry of the append-only scoring log"""
    model_config = ConfigDict(from_attributes=True)

    learner_id: str
    item_id: str
    quality: int
    previous_interval: float
    new_interval: float
    previous_ease: float
    new_ease: float
    status: ReviewStatus
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, value):
        return as_utc(value)


class BatchRequest(BaseModel):
    """Schema for a due-batch request from the presentation layer"""
    learner_id: str
    now: datetime
    batch_size: int = Field(default=20, ge=0)
    subject: Optional[str] = None

    @field_validator("now")
    @classmethod
    def _utc(cls, value):
        return as_utc(value)


class AnswerSubmission(BaseModel):
    """Schema for one answered item"""
    learner_id: str
    item_id: str
    quality: SkipValidation[int]  # passed through as given; the scheduler raises InvalidQuality
    now: datetime
    expected_revision: Optional[int] = None  # revision the learner was shown
    subject: Optional[str] = None  # used only when the record is created

    @field_validator("now")
    @classmethod
    def _utc(cls, value):
        return as_utc(value)


class AnswerResult(BaseModel):
    """Schema for the outcome of a submitted answer"""
    learner_id: str
    item_id: str
    quality: int
    status: ReviewStatus
    due_at: datetime
    interval_days: float
    ease_factor: float
    repetition_count: int
    lapse_count: int
    revision: int
    mastered: bool


class MasteryNotice(BaseModel):
    """Sent to progression listeners when an item becomes mastered"""
    learner_id: str
    item_id: str
    subject: Optional[str] = None
    mastered_at: datetime
    interval_days: float
    repetition_count: int


class SubjectStats(BaseModel):
    total: int = 0
    mastered: int = 0
    due: int = 0


class LearnerStats(BaseModel):
    """Schema for a learner's dashboard summary"""
    learner_id: str
    total_items: int
    mastered_items: int
    due_now: int
    by_status: Dict[str, int]
    by_level: Dict[str, int]
    by_subject: Dict[str, SubjectStats]
    overall_accuracy: int
    total_reviews: int
    mastery_percentage: int


class ForecastDay(BaseModel):
    """Schema for reviews falling due on one calendar day"""
    date: date
    count: int
    item_ids: List[str]


class ItemDetail(BaseModel):
    """Schema for a single item's mastery breakdown"""
    learner_id: str
    item_id: str
    subject: Optional[str] = None
    status: ReviewStatus
    level: int
    level_name: str
    accuracy: int
    total_reviews: int
    correct_reviews: int
    interval_days: float
    ease_factor: float
    repetition_count: int
    lapse_count: int
    due_at: datetime
    last_reviewed_at: Optional[datetime] = None


class HistoryEntry(BaseModel):
    """A record together with its ordered scoring events"""
    record: ReviewRecordSchema
    events: List[ReviewEventSchema]
