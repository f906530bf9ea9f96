"""Read-only summaries computed from a learner's review records."""

from datetime import datetime, timedelta
from typing import Dict, List

from spaced_review.database import as_utc
from spaced_review.schemas import (
    ForecastDay,
    ItemDetail,
    LearnerStats,
    ReviewRecordSchema,
    ReviewStatus,
    SubjectStats,
)
from spaced_review.sm2 import MASTERY_LEVEL_NAMES, mastery_level

UNGROUPED_SUBJECT = "(none)"
FORECAST_ITEMS_SHOWN = 5


def record_level(record: ReviewRecordSchema) -> int:
    return mastery_level(record.repetition_count, record.ease_factor, record.accuracy)


def learner_stats(learner_id: str, records: List[ReviewRecordSchema], now: datetime) -> LearnerStats:
    """Dashboard totals: mastery, due counts, per-subject breakdown and accuracy"""
    now = as_utc(now)

    by_status = {status.value: 0 for status in ReviewStatus}
    by_level = {name.lower(): 0 for name in MASTERY_LEVEL_NAMES[1:]}
    by_subject: Dict[str, SubjectStats] = {}
    mastered = due = total_reviews = correct_reviews = 0

    for record in records:
        is_mastered = record.status == ReviewStatus.MASTERED
        is_due = record.due_at <= now

        by_status[record.status.value] += 1
        by_level[MASTERY_LEVEL_NAMES[record_level(record)].lower()] += 1

        subject = by_subject.setdefault(record.subject or UNGROUPED_SUBJECT, SubjectStats())
        subject.total += 1
        if is_mastered:
            mastered += 1
            subject.mastered += 1
        if is_due:
            due += 1
            subject.due += 1

        total_reviews += record.total_reviews
        correct_reviews += record.correct_reviews

    total = len(records)
    return LearnerStats(
        learner_id=learner_id,
        total_items=total,
        mastered_items=mastered,
        due_now=due,
        by_status=by_status,
        by_level=by_level,
        by_subject=by_subject,
        overall_accuracy=round(correct_reviews / total_reviews * 100) if total_reviews else 0,
        total_reviews=total_reviews,
        mastery_percentage=round(mastered / total * 100) if total else 0,
    )


def review_forecast(records: List[ReviewRecordSchema], now: datetime, days: int = 7) -> List[ForecastDay]:
    """
    Reviews falling due on each of the next `days` UTC calendar days.

    Day 0 is the calendar day of `now` and also carries everything already
    overdue, since those reviews will be taken today at the earliest.
    """
    if days < 0:
        raise ValueError(f"days must be non-negative, got {days}")
    today = as_utc(now).date()

    ordered = sorted(records, key=lambda r: (r.due_at, r.item_id))
    forecast = []
    for offset in range(days):
        day = today + timedelta(days=offset)
        if offset == 0:
            due = [r.item_id for r in ordered if r.due_at.date() <= day]
        else:
            due = [r.item_id for r in ordered if r.due_at.date() == day]
        forecast.append(ForecastDay(date=day, count=len(due), item_ids=due[:FORECAST_ITEMS_SHOWN]))
    return forecast


def item_detail(record: ReviewRecordSchema) -> ItemDetail:
    level = record_level(record)
    return ItemDetail(
        learner_id=record.learner_id,
        item_id=record.item_id,
        subject=record.subject,
        status=record.status,
        level=level,
        level_name=MASTERY_LEVEL_NAMES[level],
        accuracy=record.accuracy,
        total_reviews=record.total_reviews,
        correct_reviews=record.correct_reviews,
        interval_days=record.interval_days,
        ease_factor=record.ease_factor,
        repetition_count=record.repetition_count,
        lapse_count=record.lapse_count,
        due_at=record.due_at,
        last_reviewed_at=record.last_reviewed_at,
    )
