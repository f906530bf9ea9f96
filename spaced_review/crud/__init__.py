from spaced_review.crud.review_record import (
    get_review_record,
    create_review_record,
    update_review_record,
    get_due_records,
    get_learner_records
)
from spaced_review.crud.review_event import append_review_event, get_review_events

__all__ = [
    "get_review_record",
    "create_review_record",
    "update_review_record",
    "get_due_records",
    "get_learner_records",
    "append_review_event",
    "get_review_events",
]
