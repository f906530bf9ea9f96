"""
Review Record Store.

Durable per-(learner, item) scheduling state plus the append-only scoring
log. `ReviewRecordStore` is the contract the scheduler and selector consume;
`SQLReviewStore` implements it on top of the SQLAlchemy models and the
session-level functions in `spaced_review.crud`.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from spaced_review import crud
from spaced_review.database import SessionLocal, as_utc
from spaced_review.errors import ConflictError, NotFound, StoreUnavailable
from spaced_review.schemas import ReviewEventSchema, ReviewRecordSchema
from spaced_review.sm2 import SM2Algorithm


class ReviewRecordStore(ABC):
    """Keyed store of review records; the only owner of record lifetime"""

    @abstractmethod
    def get(self, learner_id: str, item_id: str) -> ReviewRecordSchema:
        """Return the record or raise NotFound"""

    @abstractmethod
    def create_if_absent(
        self,
        learner_id: str,
        item_id: str,
        now: datetime,
        subject: Optional[str] = None
    ) -> ReviewRecordSchema:
        """Return the existing record, or create one that is due at `now`"""

    @abstractmethod
    def save(self, record: ReviewRecordSchema, event: Optional[ReviewEventSchema] = None) -> ReviewRecordSchema:
        """
        Write `record` if the stored revision still equals `record.revision`.

        Appends `event` in the same transaction. Returns the record carrying
        its new revision; raises ConflictError when stale.
        """

    @abstractmethod
    def list_due(
        self,
        learner_id: str,
        as_of: datetime,
        limit: int,
        subject: Optional[str] = None
    ) -> List[ReviewRecordSchema]:
        """Records with due_at <= as_of, oldest due first, struggling items first on ties"""

    @abstractmethod
    def list_records(self, learner_id: str) -> List[ReviewRecordSchema]:
        """Every record for a learner, ordered by item id"""

    @abstractmethod
    def list_events(self, learner_id: str, item_id: Optional[str] = None) -> List[ReviewEventSchema]:
        """Scoring events for a learner in timestamp order"""


class SQLReviewStore(ReviewRecordStore):
    """ReviewRecordStore backed by a SQLAlchemy session factory"""

    def __init__(self, session_factory=SessionLocal, algorithm: Optional[SM2Algorithm] = None):
        self._session_factory = session_factory
        self._algorithm = algorithm or SM2Algorithm()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Review store failure: {e}")
            raise StoreUnavailable(str(e)) from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def get(self, learner_id, item_id):
        with self._session() as db:
            row = crud.get_review_record(db, learner_id, item_id)
            if row is None:
                raise NotFound(learner_id, item_id)
            return ReviewRecordSchema.model_validate(row)

    def create_if_absent(self, learner_id, item_id, now, subject=None):
        with self._session() as db:
            row = crud.get_review_record(db, learner_id, item_id)
            if row is not None:
                return ReviewRecordSchema.model_validate(row)

            fresh = self._algorithm.new_record(learner_id, item_id, now, subject=subject)
            try:
                row = crud.create_review_record(db, fresh)
                db.commit()
                logger.info(f"Created review record {learner_id}/{item_id}")
                return ReviewRecordSchema.model_validate(row)
            except IntegrityError:
                # Another writer created the pair first; theirs wins
                db.rollback()
                logger.debug(f"Lost create race for {learner_id}/{item_id}")

            row = crud.get_review_record(db, learner_id, item_id)
            if row is None:
                raise StoreUnavailable(f"Record {learner_id}/{item_id} vanished after a create race")
            return ReviewRecordSchema.model_validate(row)

    def save(self, record, event=None):
        with self._session() as db:
            written = crud.update_review_record(db, record)
            if written == 0:
                current = crud.get_review_record(db, record.learner_id, record.item_id)
                actual = current.revision if current is not None else None
                logger.warning(
                    f"Stale save for {record.learner_id}/{record.item_id}: "
                    f"revision {record.revision}, stored {actual}"
                )
                raise ConflictError(record.learner_id, record.item_id, record.revision, actual)
            if event is not None:
                crud.append_review_event(db, event)
            db.commit()

        saved = record.model_copy(update={"revision": record.revision + 1})
        logger.info(
            f"Saved {saved.learner_id}/{saved.item_id} rev {saved.revision}: "
            f"{saved.status.value}, due {saved.due_at.isoformat()}"
        )
        return saved

    def list_due(self, learner_id, as_of, limit, subject=None):
        if limit <= 0:
            return []
        with self._session() as db:
            rows = crud.get_due_records(db, learner_id, as_utc(as_of), limit, subject=subject)
            return [ReviewRecordSchema.model_validate(row) for row in rows]

    def list_records(self, learner_id):
        with self._session() as db:
            return [ReviewRecordSchema.model_validate(row) for row in crud.get_learner_records(db, learner_id)]

    def list_events(self, learner_id, item_id=None):
        with self._session() as db:
            rows = crud.get_review_events(db, learner_id, item_id=item_id)
            return [ReviewEventSchema.model_validate(row) for row in rows]
