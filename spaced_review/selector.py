from datetime import datetime
from typing import List, Optional

from loguru import logger

from spaced_review.store import ReviewRecordStore


class DueSetSelector:
    """Picks the next batch of due items for a learner; read-only"""

    def __init__(self, store: ReviewRecordStore):
        self.store = store

    def next_batch(
        self,
        learner_id: str,
        now: datetime,
        batch_size: int,
        subject: Optional[str] = None
    ) -> List[str]:
        """
        Item ids due at or before `now`, in presentation order.

        Never backfills with items that are not yet due: a short or empty
        batch means the learner is caught up.
        """
        if batch_size < 0:
            raise ValueError(f"batch_size must be non-negative, got {batch_size}")
        if batch_size == 0:
            return []

        records = self.store.list_due(learner_id, now, batch_size, subject=subject)
        batch = []
        seen = set()
        for record in records:
            if record.item_id in seen:
                continue
            seen.add(record.item_id)
            batch.append(record.item_id)

        logger.debug(f"Batch for {learner_id}: {len(batch)}/{batch_size} due")
        return batch
