"""
Integration tests for the SQL review record store (in-memory SQLite).
"""

from datetime import timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from spaced_review.errors import ConflictError, NotFound, StoreUnavailable
from spaced_review.schemas import ReviewEventSchema, ReviewStatus
from spaced_review.store import SQLReviewStore


def event_for(before, after, quality):
    return ReviewEventSchema(
        learner_id=after.learner_id,
        item_id=after.item_id,
        quality=quality,
        previous_interval=before.interval_days,
        new_interval=after.interval_days,
        previous_ease=before.ease_factor,
        new_ease=after.ease_factor,
        status=after.status,
        timestamp=after.last_reviewed_at,
    )


def seed(store, algorithm, learner_id, item_id, due_at, lapses=0, subject=None):
    """Create a record and force its due date and lapse count through a save"""
    record = store.create_if_absent(learner_id, item_id, due_at, subject=subject)
    forced = record.model_copy(update={"due_at": due_at, "lapse_count": lapses})
    return store.save(forced)


class TestCreateAndGet:

    def test_get_unknown_pair(self, store):
        with pytest.raises(NotFound) as exc:
            store.get("learner-1", "missing")
        assert exc.value.item_id == "missing"

    def test_create_if_absent_defaults(self, store, t0):
        record = store.create_if_absent("learner-1", "word:apple", t0, subject="English")
        assert record.repetition_count == 0
        assert record.interval_days == 0
        assert record.ease_factor == 2.5
        assert record.status == ReviewStatus.NEW
        assert record.lapse_count == 0
        assert record.last_reviewed_at is None
        assert record.due_at == t0
        assert record.subject == "English"
        assert record.revision == 0
        assert store.get("learner-1", "word:apple") == record

    def test_create_if_absent_keeps_existing(self, store, t0):
        first = store.create_if_absent("learner-1", "word:apple", t0)
        again = store.create_if_absent("learner-1", "word:apple", t0 + timedelta(days=3), subject="Math")
        assert again == first

    def test_same_item_for_different_learners(self, store, t0):
        a = store.create_if_absent("learner-1", "word:apple", t0)
        b = store.create_if_absent("learner-2", "word:apple", t0 + timedelta(hours=1))
        assert a.due_at != b.due_at
        assert store.get("learner-2", "word:apple").due_at == t0 + timedelta(hours=1)

    def test_timestamps_come_back_as_utc(self, store, t0):
        local = t0.astimezone(timezone(timedelta(hours=5, minutes=30)))
        record = store.create_if_absent("learner-1", "word:apple", local)
        stored = store.get("learner-1", "word:apple")
        assert stored.due_at.tzinfo is not None
        assert stored.due_at.utcoffset() == timedelta(0)
        assert stored.due_at == t0
        assert record.due_at == t0


class TestSave:

    def test_save_bumps_revision(self, store, algorithm, t0):
        record = store.create_if_absent("learner-1", "word:apple", t0)
        scored = algorithm.score(record, 4, t0)
        saved = store.save(scored)
        assert saved.revision == 1
        stored = store.get("learner-1", "word:apple")
        assert stored.revision == 1
        assert stored.repetition_count == 1
        assert stored.status == ReviewStatus.LEARNING
        assert stored.due_at == t0 + timedelta(days=1)
        assert stored.last_reviewed_at == t0

    def test_stale_save_conflicts(self, store, algorithm, t0):
        record = store.create_if_absent("learner-1", "word:apple", t0)
        first = algorithm.score(record, 5, t0)
        second = algorithm.score(record, 1, t0)

        store.save(first, event_for(record, first, 5))
        with pytest.raises(ConflictError) as exc:
            store.save(second, event_for(record, second, 1))

        assert exc.value.expected_revision == 0
        assert exc.value.actual_revision == 1
        stored = store.get("learner-1", "word:apple")
        assert stored.repetition_count == 1
        assert stored.lapse_count == 0
        assert [e.quality for e in store.list_events("learner-1")] == [5]

    def test_save_of_missing_record_conflicts(self, store, algorithm, t0):
        orphan = algorithm.new_record("learner-1", "never-created", t0)
        with pytest.raises(ConflictError) as exc:
            store.save(algorithm.score(orphan, 4, t0))
        assert exc.value.actual_revision is None

    def test_event_written_with_record(self, store, algorithm, t0):
        record = store.create_if_absent("learner-1", "word:apple", t0)
        scored = algorithm.score(record, 4, t0)
        store.save(scored, event_for(record, scored, 4))

        events = store.list_events("learner-1", "word:apple")
        assert len(events) == 1
        assert events[0].previous_interval == 0
        assert events[0].new_interval == 1
        assert events[0].timestamp == t0
        assert events[0].status == ReviewStatus.LEARNING

    def test_events_ordered_by_timestamp(self, store, algorithm, t0):
        record = store.create_if_absent("learner-1", "word:apple", t0)
        now = t0
        for quality in [5, 4, 2, 5]:
            scored = algorithm.score(record, quality, now)
            record = store.save(scored, event_for(record, scored, quality))
            now = record.due_at

        events = store.list_events("learner-1", "word:apple")
        assert [e.quality for e in events] == [5, 4, 2, 5]
        timestamps = [e.timestamp for e in events]
        assert timestamps == sorted(timestamps)


class TestListDue:

    def test_ordering(self, store, algorithm, t0):
        seed(store, algorithm, "learner-1", "c", t0 - timedelta(days=1), lapses=0)
        seed(store, algorithm, "learner-1", "b", t0 - timedelta(days=1), lapses=3)
        seed(store, algorithm, "learner-1", "a", t0 - timedelta(days=1), lapses=0)
        seed(store, algorithm, "learner-1", "z", t0 - timedelta(days=5), lapses=0)
        seed(store, algorithm, "learner-1", "now", t0)
        seed(store, algorithm, "learner-1", "later", t0 + timedelta(seconds=1))
        seed(store, algorithm, "learner-2", "other", t0 - timedelta(days=9))

        due = store.list_due("learner-1", t0, 10)
        assert [r.item_id for r in due] == ["z", "b", "a", "c", "now"]

    def test_limit_and_stable_prefix(self, store, algorithm, t0):
        for i in range(6):
            seed(store, algorithm, "learner-1", f"item-{i}", t0 - timedelta(hours=i))

        full = [r.item_id for r in store.list_due("learner-1", t0, 10)]
        again = [r.item_id for r in store.list_due("learner-1", t0, 10)]
        capped = [r.item_id for r in store.list_due("learner-1", t0, 3)]
        assert full == again
        assert capped == full[:3]

    def test_non_positive_limit(self, store, algorithm, t0):
        seed(store, algorithm, "learner-1", "a", t0)
        assert store.list_due("learner-1", t0, 0) == []
        assert store.list_due("learner-1", t0, -1) == []

    def test_subject_filter(self, store, algorithm, t0):
        seed(store, algorithm, "learner-1", "a", t0, subject="English")
        seed(store, algorithm, "learner-1", "b", t0, subject="Math")
        due = store.list_due("learner-1", t0, 10, subject="Math")
        assert [r.item_id for r in due] == ["b"]

    def test_list_records(self, store, t0):
        store.create_if_absent("learner-1", "b", t0)
        store.create_if_absent("learner-1", "a", t0)
        store.create_if_absent("learner-2", "c", t0)
        assert [r.item_id for r in store.list_records("learner-1")] == ["a", "b"]


class TestStoreUnavailable:

    @pytest.fixture
    def broken_store(self):
        # No tables were created on this engine
        engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
        yield SQLReviewStore(sessionmaker(bind=engine, expire_on_commit=False))
        engine.dispose()

    def test_get(self, broken_store):
        with pytest.raises(StoreUnavailable):
            broken_store.get("learner-1", "a")

    def test_create(self, broken_store, t0):
        with pytest.raises(StoreUnavailable):
            broken_store.create_if_absent("learner-1", "a", t0)

    def test_list_due(self, broken_store, t0):
        with pytest.raises(StoreUnavailable):
            broken_store.list_due("learner-1", t0, 5)
