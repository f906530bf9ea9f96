from spaced_review.models.review_record import ReviewRecord
from spaced_review.models.review_event import ReviewEvent

__all__ = [
    "ReviewRecord",
    "ReviewEvent"
]
