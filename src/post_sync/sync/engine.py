"""Sync engine that decides and applies the draft action for each document.

For every document the engine:

1. Reads and resolves the Markdown source (images uploaded, cover set).
2. Fingerprints the resolved article.
3. Looks up the stored document and its latest draft.
4. Asks WeChat whether that draft still exists.
5. Derives the ``DocumentState`` and the matching ``SyncAction``.
6. Applies the action remotely, then commits the result in one store
   transaction.
7. In create-and-publish mode, publishes the current draft.

Error handling is per-document: a failure aborts that document only.
``StoreError`` is the exception and aborts the whole run.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from ..errors import (
    ExistenceCheckError,
    NotSyncedError,
    PostSyncError,
    PublicationStateError,
    StoreError,
)
from ..file_handler import read_file_with_encoding
from .fingerprint import fingerprint
from .models import DocumentState, SyncAction, SyncMode, SyncOutcome, SyncReport
from .oracle import RemoteExistenceOracle
from .publications import PublicationTracker, status_name
from .records import DocumentRecord, DraftRecord, PublicationRecord
from .state import SyncStore

if TYPE_CHECKING:
    from ..converters.markdown_to_html import MarkdownTransform
    from ..core.client import WeChatClient

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Decision table
# ------------------------------------------------------------------

_TRANSITIONS: dict[DocumentState, SyncAction] = {
    DocumentState.NO_PRIOR_RECORD: SyncAction.CREATE,
    DocumentState.UNCHANGED_DRAFT_LIVE: SyncAction.SKIP,
    DocumentState.UNCHANGED_DRAFT_MISSING: SyncAction.CREATE,
    DocumentState.CHANGED_DRAFT_LIVE: SyncAction.UPDATE,
    DocumentState.CHANGED_DRAFT_MISSING: SyncAction.CREATE,
}


def classify_state(
    document_exists: bool,
    fingerprint_matches: bool,
    draft_exists: bool,
    draft_live: bool,
) -> DocumentState:
    """Derive the per-run state of a document.

    A draft row that is not confirmed live counts the same as no draft.
    """
    if not document_exists:
        return DocumentState.NO_PRIOR_RECORD
    live = draft_exists and draft_live
    if fingerprint_matches:
        if live:
            return DocumentState.UNCHANGED_DRAFT_LIVE
        return DocumentState.UNCHANGED_DRAFT_MISSING
    if live:
        return DocumentState.CHANGED_DRAFT_LIVE
    return DocumentState.CHANGED_DRAFT_MISSING


def decide_action(state: DocumentState) -> SyncAction:
    return _TRANSITIONS[state]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncEngine:
    """Push Markdown documents to WeChat drafts and track publications.

    The three command flows (create, publish, create-and-publish) share
    ``sync_document`` and differ only in what they chain afterwards.

    Args:
        client: WeChat API client.
        store: Open sync store.
        transform: Markdown transform producing resolved articles.
        oracle: Remote existence checks.  Built from *client* if omitted.
        tracker: Publication bookkeeping.  Built from *store* if omitted.
        default_author: Author used when a document sets none.
        default_digest: Digest used when a document sets none.
    """

    def __init__(
        self,
        client: WeChatClient,
        store: SyncStore,
        transform: MarkdownTransform,
        oracle: RemoteExistenceOracle | None = None,
        tracker: PublicationTracker | None = None,
        default_author: str | None = None,
        default_digest: str | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.transform = transform
        self.oracle = oracle or RemoteExistenceOracle(client)
        self.tracker = tracker or PublicationTracker(store)
        self.default_author = default_author
        self.default_digest = default_digest

    # ------------------------------------------------------------------
    # Batch entry point
    # ------------------------------------------------------------------

    def run(
        self, paths: Iterable[str | Path], mode: SyncMode = SyncMode.CREATE
    ) -> SyncReport:
        """Sync every document in *paths*, in sorted order.

        Returns:
            A ``SyncReport`` with one outcome per document.

        Raises:
            StoreError: If the sync database fails; the run stops there.
        """
        started_at = _now()
        outcomes: list[SyncOutcome] = []

        for path in sorted(Path(p).resolve() for p in paths):
            try:
                outcomes.append(self.sync_document(path, mode))
            except StoreError:
                logger.error(
                    "Sync database failure while processing '%s'; aborting",
                    path,
                )
                raise
            except Exception as exc:
                logger.error("Failed to sync '%s': %s", path, exc)
                details = getattr(exc, "details", None)
                if details:
                    logger.error("API Error Details: %s", details)
                outcomes.append(
                    SyncOutcome(
                        path=str(path),
                        action=SyncAction.SKIP,
                        success=False,
                        error=str(exc),
                    )
                )

        return SyncReport(
            mode=mode,
            outcomes=outcomes,
            started_at=started_at,
            completed_at=_now(),
        )

    # ------------------------------------------------------------------
    # Per-document flows
    # ------------------------------------------------------------------

    def sync_document(
        self, path: str | Path, mode: SyncMode = SyncMode.CREATE
    ) -> SyncOutcome:
        """Bring the WeChat draft of one document up to date.

        Raises:
            AssetError: If an inline image cannot be resolved.
            RemoteError: If a draft create/update call fails.
            StoreError: If the sync database fails.
        """
        path = Path(path).resolve()
        key = str(path)
        logger.info("Processing '%s'...", path)

        raw, _encoding = read_file_with_encoding(path)
        resolved = self.transform.resolve(
            raw, path, self.default_author, self.default_digest
        )
        digest = fingerprint(resolved)

        document = self.store.find_document(key)
        draft = self.store.latest_draft(document) if document else None
        state = classify_state(
            document_exists=document is not None,
            fingerprint_matches=(
                document is not None and document.fingerprint == digest
            ),
            draft_exists=draft is not None,
            draft_live=draft is not None and self._draft_live(draft),
        )
        action = decide_action(state)
        logger.debug("'%s' is %s -> %s", key, state.value, action.value)

        if action == SyncAction.CREATE or draft is None:
            media_id = self.client.create_draft(resolved)
            with self.store.transaction():
                document = self.store.upsert_document(key, digest)
                draft = self.store.insert_draft(document, media_id)
            logger.info("Created draft %s for '%s'", media_id, key)
        elif action == SyncAction.UPDATE:
            self.client.update_draft(draft.media_id, resolved)
            with self.store.transaction():
                self.store.upsert_document(key, digest)
            logger.info("Updated draft %s for '%s'", draft.media_id, key)
        else:
            logger.info("Skipping '%s' (content unchanged).", key)

        outcome = SyncOutcome(
            path=key, action=action, success=True, draft_token=draft.media_id
        )
        if mode == SyncMode.CREATE_AND_PUBLISH:
            outcome = self._publish_after_sync(outcome, draft)
        return outcome

    def publish_document(self, path: str | Path) -> str:
        """Publish the latest draft of a synced document.

        Returns:
            The publish id.

        Raises:
            NotSyncedError: If the document or its draft is unknown.
            RemoteError: If WeChat refuses the publish.
        """
        key = str(Path(path).resolve())
        document = self._require_document(key)
        draft = self.store.latest_draft(document)
        if draft is None:
            raise NotSyncedError(
                f"No draft found for '{key}'. Please run 'create' first."
            )

        publish_id = self.client.publish(draft.media_id)
        self.tracker.record_publication(draft, publish_id)
        logger.info(
            "Submitted '%s' for publication with publish_id: %s",
            key,
            publish_id,
        )
        return publish_id

    def refresh_publication_status(self, path: str | Path) -> PublicationRecord:
        """Fetch the remote status of the latest publication and store it."""
        record = self._latest_publication(str(Path(path).resolve()))
        return self._refresh(record)

    def delete_published_document(self, path: str | Path) -> None:
        """Delete the published article of a document, then forget it.

        Raises:
            NotSyncedError: If there is no recorded publication.
            PublicationStateError: If the publication has not succeeded.
            RemoteError: If the status query or deletion fails.
        """
        key = str(Path(path).resolve())
        record = self._refresh(self._latest_publication(key))

        if record.status != "success" or not record.article_id:
            raise PublicationStateError(
                f"Publication {record.publish_id} of '{key}' cannot be "
                f"deleted (status: {record.status})"
            )

        self.client.delete_publication(record.article_id)
        self.tracker.retract(record)
        logger.info("Deleted published article for '%s'", key)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _draft_live(self, draft: DraftRecord) -> bool:
        try:
            return self.oracle.draft_exists(draft.media_id)
        except ExistenceCheckError as exc:
            logger.warning("%s; treating the draft as missing", exc)
            return False

    def _publish_after_sync(
        self, outcome: SyncOutcome, draft: DraftRecord
    ) -> SyncOutcome:
        try:
            publish_id = self.client.publish(draft.media_id)
        except (PostSyncError, KeyError) as exc:
            logger.warning(
                "Could not publish '%s' (it may already be published): %s",
                outcome.path,
                exc,
            )
            details = getattr(exc, "details", None)
            if details:
                logger.warning("API Error Details: %s", details)
            return outcome.model_copy(update={"warning": str(exc)})

        self.tracker.record_publication(draft, publish_id)
        logger.info(
            "Submitted '%s' for publication with publish_id: %s",
            outcome.path,
            publish_id,
        )
        return outcome.model_copy(update={"publication_token": publish_id})

    def _require_document(self, key: str) -> DocumentRecord:
        document = self.store.find_document(key)
        if document is None:
            raise NotSyncedError(
                f"Article for '{key}' not found in database. "
                "Please run 'create' first."
            )
        return document

    def _latest_publication(self, key: str) -> PublicationRecord:
        document = self._require_document(key)
        record = self.tracker.latest_for(document)
        if record is None:
            raise NotSyncedError(f"'{key}' has no recorded publication.")
        return record

    def _refresh(self, record: PublicationRecord) -> PublicationRecord:
        status = self.client.get_publication_status(record.publish_id)
        name = status_name(status.get("publish_status"))
        items = (status.get("article_detail") or {}).get("item") or []
        article_url = items[0].get("article_url") if items else None
        logger.info("Publication %s status: %s", record.publish_id, name)
        return self.tracker.update_status(
            record,
            name,
            article_id=status.get("article_id") or None,
            article_url=article_url,
        )
