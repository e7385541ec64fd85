"""Pydantic models for the sync engine.

Defines the core data contracts used across all sync modules:

- ``SyncAction``: Enum of possible draft-side operations.
- ``SyncMode``: Which side effects are chained after the decision.
- ``DocumentState``: Derived per-run state of one document.
- ``ResolvedDocument``: Fully assembled article, ready to fingerprint.
- ``ResolvedAsset``: Remote reference for one uploaded image.
- ``SyncOutcome``: Outcome of syncing one document.
- ``SyncReport``: Aggregate results for a batch run.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class SyncAction(str, Enum):
    """Possible draft-side operations for a document."""

    SKIP = "skip"
    CREATE = "create"
    UPDATE = "update"


class SyncMode(str, Enum):
    """What ``SyncEngine.sync_document`` does after the draft side."""

    CREATE = "create"
    CREATE_AND_PUBLISH = "create_and_publish"


class DocumentState(str, Enum):
    """Per-run document state, derived from the store and the remote side.

    Never persisted; recomputed every run.
    """

    NO_PRIOR_RECORD = "no_prior_record"
    UNCHANGED_DRAFT_LIVE = "unchanged_draft_live"
    UNCHANGED_DRAFT_MISSING = "unchanged_draft_missing"
    CHANGED_DRAFT_LIVE = "changed_draft_live"
    CHANGED_DRAFT_MISSING = "changed_draft_missing"


class ResolvedDocument(BaseModel):
    """A document after markup transformation and asset resolution.

    Attributes:
        title: Article title.
        content: Rendered HTML body with remote image URLs substituted.
        digest: Summary shown in share cards.
        author: Article author.
        thumb_media_id: Media id of the cover image (primary asset).
    """

    title: str
    content: str
    digest: str | None = None
    author: str | None = None
    thumb_media_id: str | None = None

    model_config = {"frozen": True}


class ResolvedAsset(BaseModel):
    """Remote reference for an uploaded (or cached) image."""

    media_id: str
    url: str

    model_config = {"frozen": True}


class SyncOutcome(BaseModel):
    """Result of syncing one document.

    Attributes:
        path: Absolute path of the document.
        action: Draft-side action that was decided.
        success: Whether the draft side completed.
        draft_token: Media id of the current draft, if any.
        publication_token: Publish id, when a publish was submitted.
        error: Error message if the document failed.
        warning: Non-fatal problem, e.g. a rejected publish.
    """

    path: str
    action: SyncAction
    success: bool
    draft_token: str | None = None
    publication_token: str | None = None
    error: str | None = None
    warning: str | None = None

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for a batch run.

    Attributes:
        mode: Sync mode used for the run.
        outcomes: One outcome per document, in processing order.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run completed.
    """

    mode: SyncMode = SyncMode.CREATE
    outcomes: list[SyncOutcome] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def created(self) -> list[SyncOutcome]:
        """Successful outcomes where action is CREATE."""
        return [
            o
            for o in self.outcomes
            if o.success and o.action == SyncAction.CREATE
        ]

    @property
    def updated(self) -> list[SyncOutcome]:
        """Successful outcomes where action is UPDATE."""
        return [
            o
            for o in self.outcomes
            if o.success and o.action == SyncAction.UPDATE
        ]

    @property
    def skipped(self) -> list[SyncOutcome]:
        """Successful outcomes where action is SKIP."""
        return [
            o
            for o in self.outcomes
            if o.success and o.action == SyncAction.SKIP
        ]

    @property
    def published(self) -> list[SyncOutcome]:
        """Outcomes that submitted a publication."""
        return [o for o in self.outcomes if o.publication_token]

    @property
    def warnings(self) -> list[SyncOutcome]:
        return [o for o in self.outcomes if o.warning]

    @property
    def errors(self) -> list[SyncOutcome]:
        """Outcomes where success is False."""
        return [o for o in self.outcomes if not o.success]

    @property
    def ok(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        """Format a short human-readable summary of the run.

        Returns:
            Multi-line summary string with counts by action.
        """
        lines = [
            f"Sync report ({self.mode.value})",
            f"  Created:   {len(self.created)}",
            f"  Updated:   {len(self.updated)}",
            f"  Skipped:   {len(self.skipped)}",
            f"  Published: {len(self.published)}",
            f"  Errors:    {len(self.errors)}",
            f"  Total:     {len(self.outcomes)}",
        ]
        return "\n".join(lines)
