"""Bookkeeping for publish submissions.

``PublicationTracker`` never talks to WeChat.  Callers make the remote
call first and record the result here; ``retract()`` is only called once
the remote deletion has been confirmed.
"""

from __future__ import annotations

import logging
from datetime import datetime

from .records import DocumentRecord, DraftRecord, PublicationRecord, utcnow
from .state import SyncStore

logger = logging.getLogger(__name__)

# freepublish/get publish_status codes
PUBLISH_STATUS_NAMES = {
    0: "success",
    1: "publishing",
    2: "original_failed",
    3: "failed",
    4: "platform_rejected",
    5: "deleted",
    6: "banned",
}
FINAL_STATUSES = frozenset(PUBLISH_STATUS_NAMES.values()) - {"publishing"}


def status_name(code: int | str | None) -> str:
    """Map a numeric ``publish_status`` to its name (``unknown`` if unmapped)."""
    try:
        return PUBLISH_STATUS_NAMES.get(int(code), "unknown")  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return "unknown"


class PublicationTracker:
    def __init__(self, store: SyncStore) -> None:
        self._store = store

    def record_publication(
        self, draft: DraftRecord, publish_id: str
    ) -> PublicationRecord:
        """Append a pending publication for *draft*."""
        record = self._store.insert_publication(draft, publish_id)
        logger.info(
            "Recorded publication %s for draft %s", publish_id, draft.media_id
        )
        return record

    def find_publication_for(
        self, draft: DraftRecord
    ) -> PublicationRecord | None:
        return self._store.find_publication(draft)

    def latest_for(self, document: DocumentRecord) -> PublicationRecord | None:
        return self._store.latest_publication(document)

    def update_status(
        self,
        record: PublicationRecord,
        status: str,
        article_id: str | None = None,
        article_url: str | None = None,
    ) -> PublicationRecord:
        """Store a refreshed status; final statuses also stamp ``finished_at``."""
        finished_at: datetime | None = None
        if status in FINAL_STATUSES and record.finished_at is None:
            finished_at = utcnow()
        return self._store.update_publication(
            record,
            status=status,
            article_id=article_id,
            article_url=article_url,
            finished_at=finished_at,
        )

    def retract(self, record: PublicationRecord) -> None:
        """Forget a publication whose remote article has been deleted."""
        logger.info("Retracting publication %s", record.publish_id)
        self._store.delete_publication(record)
