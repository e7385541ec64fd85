"""Markdown to WeChat draft sync engine.

Public API for pushing local Markdown documents to WeChat Official
Account drafts and tracking their publication.

Architecture
------------
The store remembers, per document, the fingerprint of the last pushed
article and every draft created for it.  Each run recomputes the
fingerprint of the fully resolved article (rendered HTML with remote
image URLs, title, digest, author, cover) and asks WeChat whether the
latest draft still exists, so drafts deleted in the web console are
recreated instead of silently skipped.

Modules:

- ``engine``       -- ``SyncEngine``: decision table and command flows.
- ``state``        -- ``SyncStore``: SQLite store with transactions.
- ``records``      -- SQLAlchemy ORM models for the four relations.
- ``models``       -- ``SyncAction``, ``SyncMode``, ``DocumentState``,
  ``ResolvedDocument``, ``SyncOutcome``, ``SyncReport``.
- ``fingerprint``  -- SHA-256 fingerprints of articles and assets.
- ``oracle``       -- ``RemoteExistenceOracle``: is a reference live?
- ``assets``       -- ``AssetResolver``: image upload cache.
- ``publications`` -- ``PublicationTracker``: publish bookkeeping.
- ``reporter``     -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from post_sync.converters import MarkdownTransform
    from post_sync.core import WeChatClient
    from post_sync.sync import (
        AssetResolver,
        RemoteExistenceOracle,
        SyncEngine,
        SyncStore,
        format_sync_report,
    )

    client = WeChatClient(config)
    store = SyncStore(config.db_path)
    oracle = RemoteExistenceOracle(client)
    transform = MarkdownTransform(AssetResolver(client, store, oracle))
    engine = SyncEngine(client, store, transform, oracle)

    report = engine.run(["posts/hello.md"])
    print(format_sync_report(report))
"""

from .assets import AssetResolver
from .engine import SyncEngine, classify_state, decide_action
from .fingerprint import content_hash, fingerprint
from .models import (
    DocumentState,
    ResolvedAsset,
    ResolvedDocument,
    SyncAction,
    SyncMode,
    SyncOutcome,
    SyncReport,
)
from .oracle import RemoteExistenceOracle
from .publications import PublicationTracker
from .reporter import format_sync_report, report_to_json
from .state import SyncStore

__all__ = [
    "AssetResolver",
    "DocumentState",
    "PublicationTracker",
    "RemoteExistenceOracle",
    "ResolvedAsset",
    "ResolvedDocument",
    "SyncAction",
    "SyncEngine",
    "SyncMode",
    "SyncOutcome",
    "SyncReport",
    "SyncStore",
    "classify_state",
    "content_hash",
    "decide_action",
    "fingerprint",
    "format_sync_report",
    "report_to_json",
]
