"""
Review service: the boundary the presentation layer talks to.

Wires the store, the SM-2 engine and the due-set selector together. Each
answer runs a read, score, compare-and-set save cycle; the scoring event is
written in the same transaction as the record, and mastery notifications go
out only after that transaction has committed.
"""

from collections import defaultdict
from datetime import datetime
from typing import Callable, Iterable, Iterator, List, Optional

from loguru import logger

from spaced_review import stats
from spaced_review.config import settings
from spaced_review.errors import ConflictError, NotFound
from spaced_review.schemas import (
    AnswerResult,
    AnswerSubmission,
    BatchRequest,
    ForecastDay,
    HistoryEntry,
    ItemDetail,
    LearnerStats,
    MasteryNotice,
    ReviewEventSchema,
    ReviewRecordSchema,
    ReviewStatus,
)
from spaced_review.selector import DueSetSelector
from spaced_review.sm2 import SM2Algorithm, validate_quality
from spaced_review.store import ReviewRecordStore, SQLReviewStore

MasteryListener = Callable[[MasteryNotice], None]


def get_service() -> "ReviewService":
    """Factory returning a service configured from settings"""
    algorithm = SM2Algorithm.from_settings(settings)
    return ReviewService(
        SQLReviewStore(algorithm=algorithm),
        algorithm=algorithm,
        conflict_retries=settings.conflict_retries,
    )


class ReviewService:
    """Inbound interface for batches and answers, outbound history export"""

    def __init__(
        self,
        store: ReviewRecordStore,
        algorithm: Optional[SM2Algorithm] = None,
        selector: Optional[DueSetSelector] = None,
        listeners: Iterable[MasteryListener] = (),
        conflict_retries: int = 3
    ):
        if conflict_retries < 0:
            raise ValueError("conflict_retries must be non-negative")
        self.store = store
        self.algorithm = algorithm or SM2Algorithm()
        self.selector = selector or DueSetSelector(store)
        self.listeners: List[MasteryListener] = list(listeners)
        self.conflict_retries = conflict_retries

    def add_listener(self, listener: MasteryListener) -> None:
        self.listeners.append(listener)

    def request_batch(self, request: BatchRequest) -> List[str]:
        """Item ids to present next; may be short or empty"""
        return self.selector.next_batch(
            request.learner_id, request.now, request.batch_size, subject=request.subject
        )

    def _load(self, submission: AnswerSubmission) -> ReviewRecordSchema:
        try:
            return self.store.get(submission.learner_id, submission.item_id)
        except NotFound:
            # First exposure
            return self.store.create_if_absent(
                submission.learner_id, submission.item_id, submission.now, subject=submission.subject
            )

    def _attempt(self, submission: AnswerSubmission, quality: int):
        """One read, score, compare-and-set save cycle against the revision just read"""
        before = self._load(submission)
        if submission.expected_revision is not None and before.revision != submission.expected_revision:
            logger.warning(
                f"Rejected stale answer for {submission.learner_id}/{submission.item_id}: "
                f"expected revision {submission.expected_revision}, stored {before.revision}"
            )
            raise ConflictError(
                submission.learner_id, submission.item_id, submission.expected_revision, before.revision
            )

        after = self.algorithm.score(before, quality, submission.now)
        event = ReviewEventSchema(
            learner_id=after.learner_id,
            item_id=after.item_id,
            quality=quality,
            previous_interval=before.interval_days,
            new_interval=after.interval_days,
            previous_ease=before.ease_factor,
            new_ease=after.ease_factor,
            status=after.status,
            timestamp=submission.now,
        )
        return before, self.store.save(after, event)

    def submit_answer(self, submission: AnswerSubmission) -> AnswerResult:
        """
        Score one answer and persist it.

        The save only succeeds against the revision the answer was scored
        from, so two racing submissions for the same record give one result
        and one ConflictError. A pinned `expected_revision` that no longer
        matches the store fails the same way before scoring.
        """
        quality = validate_quality(submission.quality)
        before, saved = self._attempt(submission, quality)
        return self._finish(before, saved, quality)

    def submit_answer_with_retry(self, submission: AnswerSubmission, retries: Optional[int] = None) -> AnswerResult:
        """
        Like `submit_answer`, but re-fetch, re-score and retry on ConflictError
        up to `retries` more times (default: `conflict_retries`).

        Only for answers known not to be duplicates, e.g. replaying an
        offline queue. Pinned submissions are never retried.
        """
        quality = validate_quality(submission.quality)
        retries = self.conflict_retries if retries is None else retries

        attempt = 0
        while True:
            attempt += 1
            try:
                before, saved = self._attempt(submission, quality)
                break
            except ConflictError:
                if submission.expected_revision is not None or attempt > retries:
                    raise
                logger.warning(
                    f"Conflict saving {submission.learner_id}/{submission.item_id}, "
                    f"retrying ({attempt}/{retries})"
                )

        return self._finish(before, saved, quality)

    def _finish(self, before: ReviewRecordSchema, saved: ReviewRecordSchema, quality: int) -> AnswerResult:
        if before.status != ReviewStatus.MASTERED and saved.status == ReviewStatus.MASTERED:
            self._notify_mastered(saved)

        return AnswerResult(
            learner_id=saved.learner_id,
            item_id=saved.item_id,
            quality=quality,
            status=saved.status,
            due_at=saved.due_at,
            interval_days=saved.interval_days,
            ease_factor=saved.ease_factor,
            repetition_count=saved.repetition_count,
            lapse_count=saved.lapse_count,
            revision=saved.revision,
            mastered=saved.status == ReviewStatus.MASTERED,
        )

    def submit_answers(self, submissions: Iterable[AnswerSubmission]) -> List[AnswerResult]:
        """Submit answers one after another; earlier ones stay committed if a later one fails"""
        return [self.submit_answer(submission) for submission in submissions]

    def _notify_mastered(self, record: ReviewRecordSchema) -> None:
        notice = MasteryNotice(
            learner_id=record.learner_id,
            item_id=record.item_id,
            subject=record.subject,
            mastered_at=record.last_reviewed_at,
            interval_days=record.interval_days,
            repetition_count=record.repetition_count,
        )
        logger.info(f"{record.learner_id} mastered {record.item_id}")
        for listener in self.listeners:
            try:
                listener(notice)
            except Exception:
                # Fire-and-forget: the review is already committed
                logger.exception(f"Mastery listener {listener!r} failed for {record.item_id}")

    def learner_stats(self, learner_id: str, now: datetime) -> LearnerStats:
        return stats.learner_stats(learner_id, self.store.list_records(learner_id), now)

    def review_forecast(self, learner_id: str, now: datetime, days: int = 7) -> List[ForecastDay]:
        return stats.review_forecast(self.store.list_records(learner_id), now, days=days)

    def item_detail(self, learner_id: str, item_id: str) -> ItemDetail:
        return stats.item_detail(self.store.get(learner_id, item_id))

    def export_history(self, learner_id: str) -> Iterator[HistoryEntry]:
        """Read-only stream of every record with its scoring events, for insight consumers"""
        events = defaultdict(list)
        for event in self.store.list_events(learner_id):
            events[event.item_id].append(event)
        for record in self.store.list_records(learner_id):
            yield HistoryEntry(record=record, events=events.get(record.item_id, []))
