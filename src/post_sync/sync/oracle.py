"""Remote existence checks for cached references.

The local store can be falsified by edits made on the WeChat side (a
draft deleted in the web console, material purged).  The oracle asks the
remote side whether a reference still resolves.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..errors import ExistenceCheckError

if TYPE_CHECKING:
    from ..core.client import WeChatClient

logger = logging.getLogger(__name__)


class RemoteExistenceOracle:
    """Answer "is this remote reference still live?".

    Errors while asking are raised as ``ExistenceCheckError``; callers
    treat that as "not confirmed live".
    """

    def __init__(self, client: WeChatClient) -> None:
        self._client = client

    def draft_exists(self, media_id: str) -> bool:
        try:
            return self._client.get_draft(media_id) is not None
        except Exception as exc:
            raise ExistenceCheckError(
                f"Could not check draft '{media_id}': {exc}"
            ) from exc

    def asset_exists(self, media_id: str) -> bool:
        try:
            return self._client.check_asset_exists(media_id)
        except Exception as exc:
            raise ExistenceCheckError(
                f"Could not check material '{media_id}': {exc}"
            ) from exc
