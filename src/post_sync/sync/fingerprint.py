"""Content fingerprints used for change detection.

A document is fingerprinted in its resolved form, after Markdown has been
rendered and image references replaced by remote URLs.  Re-uploading an
image changes its URL and therefore the fingerprint, which forces a draft
update.
"""

from __future__ import annotations

import hashlib
import json

from .models import ResolvedDocument

FINGERPRINT_FIELDS = ("title", "content", "digest", "author", "thumb_media_id")


def fingerprint(resolved: ResolvedDocument) -> str:
    """Return the SHA-256 hex digest of a resolved document.

    Each field is a separate key of a canonical JSON object, so moving
    text from one field to an adjacent one changes the digest.
    """
    payload = {name: getattr(resolved, name) for name in FINGERPRINT_FIELDS}
    canonical = json.dumps(
        payload, sort_keys=True, ensure_ascii=False, separators=(",", ":")
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def content_hash(data: bytes) -> str:
    """SHA-256 hex digest of raw asset bytes."""
    return hashlib.sha256(data).hexdigest()
