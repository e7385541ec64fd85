"""Exception hierarchy for post-sync.

Per-document errors (``FormatError``, ``RemoteError`` subclasses,
``NotSyncedError``) abort a single document.  ``StoreError`` aborts the
whole run.  ``ExistenceCheckError`` is never fatal: callers treat it as
"not confirmed live".
"""

from __future__ import annotations

from typing import Any


class PostSyncError(Exception):
    """Base class for all post-sync errors."""


class ConfigError(PostSyncError, ValueError):
    """Configuration is missing or invalid."""


class AssetError(PostSyncError):
    """An embedded asset could not be read or downloaded."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class FormatError(AssetError):
    """An asset is not in a supported binary media format."""


class RemoteError(PostSyncError):
    """The remote API rejected a request or could not be reached.

    Attributes:
        errcode: WeChat ``errcode`` from the response body, if any.
        status_code: HTTP status code, if a response was received.
        details: Decoded response body, if any.
    """

    def __init__(
        self,
        message: str,
        errcode: int | None = None,
        status_code: int | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.errcode = errcode
        self.status_code = status_code
        self.details = details


class TransientRemoteError(RemoteError):
    """Rate limiting or a transient server failure; safe to retry."""


class QuotaExceededError(TransientRemoteError):
    """The daily API quota is exhausted (errcode 45009)."""


class PermanentRemoteError(RemoteError):
    """Authentication or validation failure; retrying will not help."""


class PublishRejectedError(PermanentRemoteError):
    """The platform refused to publish a draft.

    Raised for the free-publish rejection codes.  A draft that was
    already published is reported through this error as well, since
    the API has no distinct status for it.
    """


class StoreError(PostSyncError):
    """The local sync database failed; the run cannot continue safely."""


class ExistenceCheckError(PostSyncError):
    """The remote side could not say whether a reference still exists."""


class NotSyncedError(PostSyncError):
    """A document has no local sync record (run ``create`` first)."""


class PublicationStateError(PostSyncError):
    """A publication is not in a state that allows the operation."""
