from datetime import datetime, timedelta
from typing import Optional

from loguru import logger

from spaced_review.database import as_utc
from spaced_review.errors import InvalidQuality, InvalidTimestamp
from spaced_review.schemas import ReviewRecordSchema, ReviewStatus

# Quality ratings (0-5 scale)
# 0 - Complete blackout
# 1 - Wrong answer, but recognized correct one
# 2 - Wrong answer, but correct seemed easy to recall
# 3 - Correct answer with serious difficulty
# 4 - Correct answer after hesitation
# 5 - Perfect response
MIN_QUALITY = 0
MAX_QUALITY = 5
PASSING_QUALITY = 3

# Ease range the 1-5 star mastery level is scaled against
LEVEL_EASE_FLOOR = 1.3
LEVEL_EASE_CEILING = 3.0
MASTERY_LEVEL_NAMES = ["", "Beginner", "Learning", "Familiar", "Proficient", "Mastered"]


def validate_quality(quality) -> int:
    """Reject anything that is not an int in 0..5; never clamp"""
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidQuality(quality)
    if quality < MIN_QUALITY or quality > MAX_QUALITY:
        raise InvalidQuality(quality)
    return quality


def ease_delta(quality: int) -> float:
    """SM-2 ease adjustment for an answer of the given quality"""
    return 0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02)


class SM2Algorithm:
    """
    SM-2 spaced repetition algorithm for calculating review intervals.
    Based on SuperMemo 2 algorithm by Piotr Wozniak.

    Instances hold only constants; `score` is a pure function of its
    arguments and never touches storage.
    """

    def __init__(
        self,
        initial_ease_factor: float = 2.5,
        min_ease_factor: float = 1.3,
        max_ease_factor: Optional[float] = 3.0,
        lapse_ease_penalty: Optional[float] = 0.2,
        first_interval_days: float = 1.0,
        second_interval_days: float = 6.0,
        lapse_interval_days: float = 1.0,
        mastery_repetitions: int = 8,
        mastery_interval_days: float = 60.0,
        max_interval_days: float = 36500.0,
    ):
        if max_ease_factor is not None and max_ease_factor < min_ease_factor:
            raise ValueError("max_ease_factor must not be below min_ease_factor")
        if lapse_ease_penalty is not None and lapse_ease_penalty < 0:
            raise ValueError("lapse_ease_penalty must be non-negative")
        if max_interval_days < max(first_interval_days, second_interval_days, lapse_interval_days):
            raise ValueError("max_interval_days must not be below the fixed intervals")
        self.initial_ease_factor = initial_ease_factor
        self.min_ease_factor = min_ease_factor
        self.max_ease_factor = max_ease_factor
        self.lapse_ease_penalty = lapse_ease_penalty
        self.first_interval_days = first_interval_days
        self.second_interval_days = second_interval_days
        self.lapse_interval_days = lapse_interval_days
        self.mastery_repetitions = mastery_repetitions
        self.mastery_interval_days = mastery_interval_days
        self.max_interval_days = max_interval_days

    @classmethod
    def from_settings(cls, settings) -> "SM2Algorithm":
        return cls(
            initial_ease_factor=settings.initial_ease_factor,
            min_ease_factor=settings.min_ease_factor,
            max_ease_factor=settings.max_ease_factor,
            lapse_ease_penalty=settings.lapse_ease_penalty,
            first_interval_days=settings.first_interval_days,
            second_interval_days=settings.second_interval_days,
            lapse_interval_days=settings.lapse_interval_days,
            mastery_repetitions=settings.mastery_repetitions,
            mastery_interval_days=settings.mastery_interval_days,
            max_interval_days=settings.max_interval_days,
        )

    def new_record(
        self,
        learner_id: str,
        item_id: str,
        now: datetime,
        subject: Optional[str] = None
    ) -> ReviewRecordSchema:
        """
        Initialize SM-2 parameters for an item on first exposure.

        The record is due immediately and has never been reviewed.
        """
        now = as_utc(now)
        return ReviewRecordSchema(
            learner_id=learner_id,
            item_id=item_id,
            subject=subject,
            repetition_count=0,
            interval_days=0.0,
            ease_factor=self.initial_ease_factor,
            lapse_count=0,
            status=ReviewStatus.NEW,
            due_at=now,
            last_reviewed_at=None,
            created_at=now,
            revision=0,
        )

    def _bound_ease(self, ease: float) -> float:
        if ease < self.min_ease_factor:
            ease = self.min_ease_factor
        if self.max_ease_factor is not None and ease > self.max_ease_factor:
            ease = self.max_ease_factor
        return ease

    def _success_status(self, repetitions: int, interval: float) -> ReviewStatus:
        if repetitions >= self.mastery_repetitions and interval > self.mastery_interval_days:
            return ReviewStatus.MASTERED
        if repetitions >= 2:
            return ReviewStatus.REVIEW
        return ReviewStatus.LEARNING

    def score(self, record: ReviewRecordSchema, quality: int, now: datetime) -> ReviewRecordSchema:
        """
        Score one answer and return the updated record.

        Args:
            record: Current state; left untouched
            quality: Response quality (0-5). 0=total blackout, 5=perfect
            now: Instant of the review; must not precede the last review

        Returns:
            New record with interval, ease, due date and status recomputed.
            `revision` is carried over unchanged; the store bumps it on save.
        """
        quality = validate_quality(quality)
        now = as_utc(now)
        if record.last_reviewed_at is not None and now < record.last_reviewed_at:
            raise InvalidTimestamp(
                f"Review at {now.isoformat()} precedes last review "
                f"{record.last_reviewed_at.isoformat()} for item {record.item_id!r}"
            )

        if quality < PASSING_QUALITY:
            # Failed recall: reset progress
            if self.lapse_ease_penalty is None:
                new_ease = record.ease_factor + ease_delta(quality)
            else:
                new_ease = record.ease_factor - self.lapse_ease_penalty
            new_ease = self._bound_ease(new_ease)
            new_repetitions = 0
            new_interval = self.lapse_interval_days
            lapses = record.lapse_count + 1
            correct = record.correct_reviews
            status = ReviewStatus.LEARNING
        else:
            # Count first; the interval branch depends on the new count
            new_repetitions = record.repetition_count + 1
            new_ease = self._bound_ease(record.ease_factor + ease_delta(quality))
            if new_repetitions == 1:
                new_interval = self.first_interval_days
            elif new_repetitions == 2:
                new_interval = self.second_interval_days
            else:
                # Capped, but never shorter than the interval being extended
                new_interval = min(
                    record.interval_days * new_ease,
                    max(self.max_interval_days, record.interval_days),
                )
            lapses = record.lapse_count
            correct = record.correct_reviews + 1
            status = self._success_status(new_repetitions, new_interval)

        try:
            due_at = now + timedelta(days=new_interval)
        except OverflowError:
            raise InvalidTimestamp(
                f"Next review of {record.item_id!r} after {now.isoformat()} is past the supported calendar"
            ) from None

        logger.debug(
            f"Scored {record.learner_id}/{record.item_id} q={quality}: "
            f"interval {record.interval_days:g}->{new_interval:g}d, "
            f"ease {record.ease_factor:.2f}->{new_ease:.2f}, status {status.value}"
        )

        return record.model_copy(update={
            "repetition_count": new_repetitions,
            "interval_days": new_interval,
            "ease_factor": new_ease,
            "lapse_count": lapses,
            "status": status,
            "due_at": due_at,
            "last_reviewed_at": now,
            "total_reviews": record.total_reviews + 1,
            "correct_reviews": correct,
            "last_quality": quality,
        })


def quality_from_signal(
    is_correct: bool,
    hints_used: int = 0,
    response_time_ms: Optional[float] = None,
    expected_time_ms: Optional[float] = None
) -> int:
    """Map raw answer signals from the UI onto the 0-5 quality scale"""
    if not is_correct:
        return 1 if hints_used > 0 else 0  # saw hints vs complete blackout

    if hints_used > 1:
        return 3
    if hints_used == 1:
        return 4

    # No hints - check response time
    if response_time_ms and expected_time_ms:
        if response_time_ms < expected_time_ms * 0.5:
            return 5
        if response_time_ms > expected_time_ms * 2:
            return 3

    return 5


def mastery_level(repetitions: int, ease_factor: float, accuracy: float) -> int:
    """Calculate a 1-5 star mastery level from repetitions, ease and accuracy"""
    repetition_score = min(repetitions / 10, 1) * 2  # 0-2 points
    ease_score = (ease_factor - LEVEL_EASE_FLOOR) / (LEVEL_EASE_CEILING - LEVEL_EASE_FLOOR) * 1.5
    accuracy_score = accuracy / 100 * 1.5

    total = repetition_score + ease_score + accuracy_score
    if total >= 4:
        return 5
    if total >= 3:
        return 4
    if total >= 2:
        return 3
    if total >= 1:
        return 2
    return 1
