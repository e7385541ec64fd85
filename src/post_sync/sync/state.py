"""Sync record store.

Wraps the SQLite sync database (documents, drafts, publications and the
asset cache) behind a small query/mutation API.  One ``SyncStore`` is
opened per process and reused for every document in a run.

Key design choices:

* **Transactions** -- ``transaction()`` commits on success and rolls back
  on any error.  Nested use joins the outer transaction, so a write
  helper called inside a larger unit of work does not commit early.
* **Append-only drafts** -- ``insert_draft()`` is the only way a draft
  row is written; nothing updates one.
* **Error wrapping** -- every SQLAlchemy failure surfaces as
  ``StoreError``, which aborts the run.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from sqlalchemy import create_engine, event, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..errors import StoreError
from .records import (
    AssetRecord,
    Base,
    DocumentRecord,
    DraftRecord,
    PublicationRecord,
    utcnow,
)

logger = logging.getLogger(__name__)


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class SyncStore:
    """Query and mutate the sync database.

    Args:
        db_path: Path to the SQLite file, or ``":memory:"``.  Parent
            directories are created as needed.
        echo: Log every SQL statement (debug aid).

    Raises:
        StoreError: If the database cannot be opened or initialised.
    """

    def __init__(self, db_path: str | Path, echo: bool = False) -> None:
        if str(db_path) == ":memory:":
            url = "sqlite://"
        else:
            path = Path(db_path).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            url = f"sqlite:///{path}"

        self._depth = 0
        try:
            self._engine = create_engine(url, echo=echo)
            event.listen(self._engine, "connect", _enable_foreign_keys)
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            raise StoreError(f"Cannot open sync database {db_path}: {exc}") from exc

        self._session: Session = sessionmaker(
            self._engine, expire_on_commit=False
        )()
        logger.debug("Opened sync database %s", db_path)

    def __enter__(self) -> SyncStore:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._session.close()
        self._engine.dispose()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Run a block atomically.

        The outermost block commits when it exits cleanly.  Any exception
        rolls everything back; SQLAlchemy errors are re-raised as
        ``StoreError``, others unchanged.
        """
        self._depth += 1
        outermost = self._depth == 1
        try:
            yield self._session
            if outermost:
                self._session.commit()
        except SQLAlchemyError as exc:
            if outermost:
                self._session.rollback()
            raise StoreError(f"Sync database error: {exc}") from exc
        except BaseException:
            if outermost:
                self._session.rollback()
            raise
        finally:
            self._depth -= 1

    @contextmanager
    def _reading(self) -> Iterator[Session]:
        try:
            yield self._session
        except SQLAlchemyError as exc:
            raise StoreError(f"Sync database error: {exc}") from exc

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def find_document(self, path: str | Path) -> DocumentRecord | None:
        """Return the document stored for *path*, or ``None``."""
        with self._reading() as session:
            return session.scalars(
                select(DocumentRecord).where(
                    DocumentRecord.source_path == str(path)
                )
            ).first()

    def upsert_document(
        self, path: str | Path, fingerprint: str
    ) -> DocumentRecord:
        """Insert the document or rewrite its fingerprint."""
        with self.transaction() as session:
            document = self.find_document(path)
            now = utcnow()
            if document is None:
                document = DocumentRecord(
                    source_path=str(path),
                    fingerprint=fingerprint,
                    created_at=now,
                    updated_at=now,
                )
                session.add(document)
            else:
                document.fingerprint = fingerprint
                document.updated_at = now
            session.flush()
            return document

    def count_documents(self) -> int:
        with self._reading() as session:
            return session.scalar(select(func.count(DocumentRecord.id))) or 0

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def insert_draft(self, document: DocumentRecord, media_id: str) -> DraftRecord:
        """Append a draft row for *document*."""
        with self.transaction() as session:
            draft = DraftRecord(
                document_id=document.id, media_id=media_id, created_at=utcnow()
            )
            session.add(draft)
            session.flush()
            return draft

    def latest_draft(self, document: DocumentRecord) -> DraftRecord | None:
        """Most recently created draft of *document* (ties broken by id)."""
        with self._reading() as session:
            return session.scalars(
                select(DraftRecord)
                .where(DraftRecord.document_id == document.id)
                .order_by(DraftRecord.created_at.desc(), DraftRecord.id.desc())
                .limit(1)
            ).first()

    def drafts_for(self, document: DocumentRecord) -> list[DraftRecord]:
        """Draft history of *document*, oldest first."""
        with self._reading() as session:
            return list(
                session.scalars(
                    select(DraftRecord)
                    .where(DraftRecord.document_id == document.id)
                    .order_by(DraftRecord.created_at, DraftRecord.id)
                )
            )

    def count_drafts(self) -> int:
        with self._reading() as session:
            return session.scalar(select(func.count(DraftRecord.id))) or 0

    # ------------------------------------------------------------------
    # Publications
    # ------------------------------------------------------------------

    def insert_publication(
        self, draft: DraftRecord, publish_id: str
    ) -> PublicationRecord:
        with self.transaction() as session:
            record = PublicationRecord(
                draft_id=draft.id,
                publish_id=publish_id,
                status="pending",
                submitted_at=utcnow(),
            )
            session.add(record)
            session.flush()
            return record

    def find_publication(self, draft: DraftRecord) -> PublicationRecord | None:
        """Latest publication submitted for *draft*, or ``None``."""
        with self._reading() as session:
            return session.scalars(
                select(PublicationRecord)
                .where(PublicationRecord.draft_id == draft.id)
                .order_by(PublicationRecord.id.desc())
                .limit(1)
            ).first()

    def latest_publication(
        self, document: DocumentRecord
    ) -> PublicationRecord | None:
        """Latest publication across every draft of *document*."""
        with self._reading() as session:
            return session.scalars(
                select(PublicationRecord)
                .join(DraftRecord, PublicationRecord.draft_id == DraftRecord.id)
                .where(DraftRecord.document_id == document.id)
                .order_by(
                    PublicationRecord.submitted_at.desc(),
                    PublicationRecord.id.desc(),
                )
                .limit(1)
            ).first()

    def update_publication(
        self,
        record: PublicationRecord,
        status: str | None = None,
        article_id: str | None = None,
        article_url: str | None = None,
        finished_at: datetime | None = None,
    ) -> PublicationRecord:
        """Overwrite the given non-None fields of *record*."""
        with self.transaction() as session:
            if status is not None:
                record.status = status
            if article_id is not None:
                record.article_id = article_id
            if article_url is not None:
                record.article_url = article_url
            if finished_at is not None:
                record.finished_at = finished_at
            session.flush()
            return record

    def delete_publication(self, record: PublicationRecord) -> None:
        with self.transaction() as session:
            session.delete(record)
            session.flush()

    def has_been_published(self, document: DocumentRecord) -> bool:
        return self.latest_publication(document) is not None

    def count_publications(self) -> int:
        with self._reading() as session:
            return session.scalar(select(func.count(PublicationRecord.id))) or 0

    # ------------------------------------------------------------------
    # Asset cache
    # ------------------------------------------------------------------

    def get_asset(self, locator: str) -> AssetRecord | None:
        with self._reading() as session:
            return session.scalars(
                select(AssetRecord).where(AssetRecord.locator == locator)
            ).first()

    def save_asset(
        self, locator: str, content_hash: str, media_id: str, url: str
    ) -> AssetRecord:
        """Insert or replace the cache entry for *locator*."""
        with self.transaction() as session:
            asset = self.get_asset(locator)
            if asset is None:
                asset = AssetRecord(locator=locator)
                session.add(asset)
            asset.content_hash = content_hash
            asset.media_id = media_id
            asset.url = url
            asset.updated_at = utcnow()
            session.flush()
            return asset
