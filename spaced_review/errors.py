"""Errors raised by the review scheduler."""


class SchedulerError(Exception):
    """Base class for every scheduler failure"""


class NotFound(SchedulerError):
    """No review record exists for the (learner, item) pair"""

    def __init__(self, learner_id: str, item_id: str):
        self.learner_id = learner_id
        self.item_id = item_id
        super().__init__(f"No review record for learner={learner_id!r} item={item_id!r}")


class InvalidQuality(SchedulerError, ValueError):
    """Answer quality outside the 0-5 scale"""

    def __init__(self, quality):
        self.quality = quality
        super().__init__(f"Quality must be an integer between 0 and 5, got {quality!r}")


class InvalidTimestamp(SchedulerError, ValueError):
    """Review instant earlier than the record's last review"""


class ConflictError(SchedulerError):
    """Stored record changed since it was read; re-fetch, re-score and retry"""

    def __init__(self, learner_id: str, item_id: str, expected_revision: int, actual_revision=None):
        self.learner_id = learner_id
        self.item_id = item_id
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision
        super().__init__(
            f"Review record learner={learner_id!r} item={item_id!r} is stale "
            f"(expected revision {expected_revision}, stored {actual_revision})"
        )


class StoreUnavailable(SchedulerError):
    """Underlying persistence failed; nothing was committed"""
