import json
import logging
import time
from typing import TYPE_CHECKING, Any, Callable

import requests

from .. import __version__
from ..config import Config
from ..errors import (
    PermanentRemoteError,
    PublishRejectedError,
    QuotaExceededError,
    RemoteError,
    TransientRemoteError,
)
from .retry import DEFAULT_POLICY, PUBLISH_POLICY, RetryPolicy, call_with_retry

if TYPE_CHECKING:
    from ..sync.models import ResolvedDocument

logger = logging.getLogger(__name__)

# Refresh the access token this many seconds before WeChat expires it.
TOKEN_EXPIRY_MARGIN = 300

ERRCODE_INVALID_MEDIA_ID = 40007
ERRCODE_DAILY_QUOTA = 45009
_TOKEN_ERRCODES = frozenset({40001, 40014, 42001})
_TRANSIENT_ERRCODES = frozenset({-1, 45011})
_PUBLISH_REJECTED_ERRCODES = frozenset({53503, 53504, 53505})

_PUBLISH_PATH = "/cgi-bin/freepublish/submit"


def error_for_response(
    path: str, body: dict[str, Any], status_code: int | None = None
) -> RemoteError:
    """Map a WeChat error body to the matching ``RemoteError`` subclass."""
    errcode = body.get("errcode")
    message = f"WeChat API error {errcode} on {path}: {body.get('errmsg', '')}"

    if errcode == ERRCODE_DAILY_QUOTA:
        cls: type[RemoteError] = QuotaExceededError
    elif errcode in _TRANSIENT_ERRCODES:
        cls = TransientRemoteError
    elif path == _PUBLISH_PATH and errcode in _PUBLISH_REJECTED_ERRCODES:
        cls = PublishRejectedError
    else:
        cls = PermanentRemoteError
    return cls(message, errcode=errcode, status_code=status_code, details=body)


class WeChatClient:
    """Client for the WeChat Official Account draft/publish/material APIs.

    One instance per process.  The access token is cached on the instance
    and refreshed lazily, so every document synced in a run shares it.

    Args:
        config: Validated configuration.
        session: Optional ``requests.Session`` (tests inject a mock).
        sleep: Sleep function used between retries.
        clock: Time source for token expiry, in epoch seconds.
    """

    def __init__(
        self,
        config: Config,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.base_url = config.api_base_url.rstrip("/")
        self.session = session or self._create_session()
        self._sleep = sleep
        self._clock = clock
        self._access_token: str | None = None
        self._token_expires_at: float = 0.0

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers["User-Agent"] = f"post-sync/{__version__}"
        return session

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _send(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        raw: bool = False,
    ) -> Any:
        """POST one request and return the decoded body.

        JSON payloads are encoded without ASCII escaping; WeChat stores
        ``\\uXXXX`` escapes literally in article titles otherwise.

        With ``raw=True`` a binary answer is returned as the streamed
        ``requests.Response``; JSON and plain text answers are decoded and
        checked like any other.
        """
        url = f"{self.base_url}{path}"
        kwargs: dict[str, Any] = {
            "params": params,
            "timeout": self.config.request_timeout,
        }
        if files is not None:
            kwargs["files"] = files
        elif payload is not None:
            kwargs["data"] = json.dumps(payload, ensure_ascii=False).encode(
                "utf-8"
            )
            kwargs["headers"] = {
                "Content-Type": "application/json; charset=utf-8"
            }
        if raw:
            kwargs["stream"] = True

        try:
            response = self.session.post(url, **kwargs)
        except requests.RequestException as exc:
            raise TransientRemoteError(
                f"Request to {path} failed: {exc}"
            ) from exc

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientRemoteError(
                f"HTTP {response.status_code} from {path}",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise PermanentRemoteError(
                f"HTTP {response.status_code} from {path}",
                status_code=response.status_code,
            )

        if raw:
            content_type = response.headers.get("Content-Type", "")
            if "json" not in content_type and "text/plain" not in content_type:
                return response

        try:
            body = json.loads(response.content) if raw else response.json()
        except ValueError as exc:
            raise TransientRemoteError(
                f"Non-JSON response from {path}",
                status_code=response.status_code,
            ) from exc
        finally:
            if raw:
                response.close()

        if body.get("errcode"):
            raise error_for_response(path, body, response.status_code)
        logger.debug("%s response: %s", path, body)
        return body

    def get_access_token(self, force_refresh: bool = False) -> str:
        """Return a cached access token, fetching a new one when needed.

        Args:
            force_refresh: Ask WeChat to invalidate the current token.

        Raises:
            RemoteError: If the token cannot be obtained after retries.
        """
        if (
            not force_refresh
            and self._access_token
            and self._clock() < self._token_expires_at
        ):
            return self._access_token

        logger.info("Requesting new WeChat access token...")
        payload = {
            "grant_type": "client_credential",
            "appid": self.config.app_id,
            "secret": self.config.app_secret,
            "force_refresh": force_refresh,
        }
        body = call_with_retry(
            lambda: self._send("/cgi-bin/stable_token", payload=payload),
            DEFAULT_POLICY,
            self._sleep,
        )
        self._access_token = body["access_token"]
        expires_in = int(body.get("expires_in", 7200))
        self._token_expires_at = (
            self._clock() + expires_in - TOKEN_EXPIRY_MARGIN
        )
        logger.info("Obtained new WeChat access token.")
        return self._access_token

    def _call(
        self,
        path: str,
        payload: dict[str, Any] | None = None,
        policy: RetryPolicy = DEFAULT_POLICY,
        params: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        raw: bool = False,
    ) -> Any:
        """Authorised call with retry and one token refresh on rejection."""

        def attempt() -> Any:
            query = {"access_token": self.get_access_token(), **(params or {})}
            try:
                return self._send(path, query, payload, files, raw)
            except PermanentRemoteError as exc:
                if exc.errcode not in _TOKEN_ERRCODES:
                    raise
                logger.info(
                    "Access token rejected (errcode %s), refreshing",
                    exc.errcode,
                )
                query["access_token"] = self.get_access_token(
                    force_refresh=True
                )
                return self._send(path, query, payload, files, raw)

        return call_with_retry(attempt, policy, self._sleep)

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    @staticmethod
    def _article_payload(article: "ResolvedDocument") -> dict[str, Any]:
        fields = {
            "title": article.title,
            "content": article.content,
            "thumb_media_id": article.thumb_media_id,
            "author": article.author,
            "digest": article.digest,
        }
        body = {k: v for k, v in fields.items() if v is not None}
        body["need_open_comment"] = 1
        body["only_fans_can_comment"] = 0
        return body

    def create_draft(self, article: "ResolvedDocument") -> str:
        """Create a draft and return its media id."""
        logger.info("Creating draft '%s'...", article.title)
        body = self._call(
            "/cgi-bin/draft/add",
            {"articles": [self._article_payload(article)]},
        )
        logger.info("Created draft. Media ID: %s", body["media_id"])
        return body["media_id"]

    def update_draft(
        self, media_id: str, article: "ResolvedDocument", index: int = 0
    ) -> None:
        """Replace article *index* of an existing draft in place."""
        logger.info("Updating draft '%s' (index: %d)...", media_id, index)
        self._call(
            "/cgi-bin/draft/update",
            {
                "media_id": media_id,
                "index": index,
                "articles": self._article_payload(article),
            },
        )
        logger.info("Updated draft '%s'.", media_id)

    def get_draft(self, media_id: str) -> list[dict[str, Any]] | None:
        """Fetch a draft's articles, or ``None`` if the media id is gone."""
        logger.debug("Checking existence of draft '%s'...", media_id)
        try:
            body = self._call("/cgi-bin/draft/get", {"media_id": media_id})
        except PermanentRemoteError as exc:
            if exc.errcode == ERRCODE_INVALID_MEDIA_ID:
                return None
            raise
        return body.get("news_item", [])

    def delete_draft(self, media_id: str) -> None:
        logger.info("Deleting draft '%s'...", media_id)
        self._call("/cgi-bin/draft/delete", {"media_id": media_id})
        logger.info("Deleted draft '%s'.", media_id)

    def list_drafts(self, offset: int = 0, count: int = 20) -> dict[str, Any]:
        """One page of drafts (metadata only).

        Returns:
            Dict with ``total_count``, ``item_count`` and ``item`` keys.
        """
        logger.info("Listing drafts (offset: %d, count: %d)...", offset, count)
        return self._call(
            "/cgi-bin/draft/batchget",
            {"offset": offset, "count": count, "no_content": 1},
        )

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def publish(self, media_id: str) -> str:
        """Submit a draft for publication and return the publish id.

        Raises:
            PublishRejectedError: If the platform refuses the draft.
        """
        logger.info("Publishing draft with media_id '%s'...", media_id)
        body = self._call(
            _PUBLISH_PATH, {"media_id": media_id}, policy=PUBLISH_POLICY
        )
        publish_id = str(body["publish_id"])
        logger.info("Submitted for publication. Publish ID: %s", publish_id)
        return publish_id

    def get_publication_status(self, publish_id: str) -> dict[str, Any]:
        """Return the raw publish status record for *publish_id*."""
        logger.info("Checking publish status for '%s'...", publish_id)
        return self._call("/cgi-bin/freepublish/get", {"publish_id": publish_id})

    def delete_publication(self, article_id: str) -> None:
        logger.info("Deleting published article '%s'...", article_id)
        self._call("/cgi-bin/freepublish/delete", {"article_id": article_id})
        logger.info("Deleted published article '%s'.", article_id)

    def list_publications(
        self, offset: int = 0, count: int = 20
    ) -> dict[str, Any]:
        """One page of published articles (metadata only)."""
        logger.info(
            "Listing published articles (offset: %d, count: %d)...",
            offset,
            count,
        )
        return self._call(
            "/cgi-bin/freepublish/batchget",
            {"offset": offset, "count": count, "no_content": 1},
        )

    # ------------------------------------------------------------------
    # Permanent material
    # ------------------------------------------------------------------

    def upload_asset(
        self, data: bytes, filename: str, mime_type: str
    ) -> dict[str, str]:
        """Upload an image as permanent material.

        Returns:
            Dict with ``media_id`` and ``url``.
        """
        logger.info("Uploading image '%s' to WeChat...", filename)
        body = self._call(
            "/cgi-bin/material/add_material",
            params={"type": "image"},
            files={"media": (filename, data, mime_type)},
        )
        logger.info("Uploaded image. Media ID: %s", body["media_id"])
        return {"media_id": body["media_id"], "url": body.get("url", "")}

    def check_asset_exists(self, media_id: str) -> bool:
        """Return whether permanent material *media_id* still exists.

        WeChat answers with the binary image on success and a JSON error
        body otherwise.

        Raises:
            RemoteError: For any error other than "invalid media id".
        """
        logger.debug("Checking existence of material '%s'...", media_id)
        try:
            result = self._call(
                "/cgi-bin/material/get_material",
                {"media_id": media_id},
                raw=True,
            )
        except PermanentRemoteError as exc:
            if exc.errcode == ERRCODE_INVALID_MEDIA_ID:
                return False
            raise
        if not isinstance(result, dict):
            result.close()
        return True
