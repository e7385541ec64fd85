"""Image resolution with a content-addressed upload cache.

Every image referenced by a document is uploaded to WeChat permanent
material at most once per content version.  A cache entry is reused only
when its stored hash matches the current bytes AND the remote side still
has the material; otherwise the image is uploaded again and the entry
replaced.

Inline images and the cover behave differently on failure: an inline
image that cannot be resolved aborts the document, a cover that cannot
be resolved is logged and left out.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import unquote, urlparse

import requests
from PIL import Image, UnidentifiedImageError

from ..errors import AssetError, ExistenceCheckError, FormatError, StoreError
from .fingerprint import content_hash
from .models import ResolvedAsset

if TYPE_CHECKING:
    from ..core.client import WeChatClient
    from .oracle import RemoteExistenceOracle
    from .state import SyncStore

logger = logging.getLogger(__name__)

# Pillow format name -> MIME type accepted by WeChat permanent material.
SUPPORTED_FORMATS = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "BMP": "image/bmp",
    "WEBP": "image/webp",
}

COVER_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp")
COVER_KEY_SUFFIX = "#cover"


def is_url(src: str) -> bool:
    parsed = urlparse(src)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def detect_image_format(data: bytes, name: str) -> str:
    """Return the MIME type of *data*, validating it with Pillow.

    Raises:
        FormatError: If the bytes are not an image WeChat accepts.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            image_format = img.format
    except (UnidentifiedImageError, OSError) as exc:
        raise FormatError(f"Not a readable image: {name}", path=name) from exc

    mime_type = SUPPORTED_FORMATS.get(image_format or "")
    if mime_type is None:
        raise FormatError(
            f"Unsupported image format for WeChat: {image_format} ({name})",
            path=name,
        )
    return mime_type


def make_thumbnail(data: bytes, size: int) -> bytes:
    """Downscale *data* to fit a ``size`` x ``size`` box, as JPEG."""
    with Image.open(io.BytesIO(data)) as img:
        rgb = img.convert("RGB")
    rgb.thumbnail((size, size))
    out = io.BytesIO()
    rgb.save(out, format="JPEG", quality=90)
    return out.getvalue()


class AssetResolver:
    """Resolve image references to WeChat media ids and URLs.

    Args:
        client: Remote API client used for uploads.
        store: Sync store holding the asset cache.
        oracle: Existence checks for cached media ids.
        cover_size: Bounding box for cover thumbnails, in pixels.
        http: Session used to download remote images.
        timeout: Download timeout in seconds.
    """

    def __init__(
        self,
        client: WeChatClient,
        store: SyncStore,
        oracle: RemoteExistenceOracle,
        cover_size: int = 360,
        http: requests.Session | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._client = client
        self._store = store
        self._oracle = oracle
        self._cover_size = cover_size
        self._http = http or requests.Session()
        self._timeout = timeout

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(self, src: str, document_path: str | Path) -> ResolvedAsset:
        """Resolve an inline image reference.

        Args:
            src: Image reference as written in the document (relative or
                absolute path, or http(s) URL).
            document_path: Path of the referencing document; relative
                references resolve against its directory.

        Raises:
            AssetError: If the image cannot be read or downloaded.
            FormatError: If the image format is not supported.
            RemoteError: If the upload fails.
        """
        locator, data, filename = self._load(src, document_path)
        mime_type = detect_image_format(data, locator)
        return self._resolve_bytes(locator, data, filename, mime_type)

    def resolve_cover(
        self, document_path: str | Path, explicit: str | None = None
    ) -> ResolvedAsset | None:
        """Resolve the cover image of a document, best effort.

        The cover is *explicit* when given, otherwise the first existing
        ``<stem>.<image ext>`` file next to the document.  It is uploaded
        as a JPEG thumbnail and cached under its own key, apart from any
        inline use of the same file.

        Returns:
            The resolved cover, or ``None`` when there is no cover or it
            could not be resolved.

        Raises:
            StoreError: Store failures are still fatal.
        """
        src = explicit or self._find_cover(Path(document_path))
        if src is None:
            logger.warning(
                "No cover image found for '%s'. A thumbnail will not be set.",
                document_path,
            )
            return None

        try:
            locator, data, filename = self._load(src, document_path)
            detect_image_format(data, locator)
            return self._resolve_bytes(
                locator + COVER_KEY_SUFFIX,
                data,
                f"{Path(filename).stem}.jpg",
                "image/jpeg",
                prepare=lambda: make_thumbnail(data, self._cover_size),
            )
        except StoreError:
            raise
        except Exception as exc:
            logger.warning(
                "Could not process cover image '%s' for '%s': %s. "
                "A thumbnail will not be set.",
                src,
                document_path,
                exc,
            )
            return None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _find_cover(document_path: Path) -> str | None:
        for ext in COVER_EXTENSIONS:
            candidate = document_path.with_suffix(ext)
            if candidate.is_file():
                logger.info(
                    "Found cover image for '%s' at '%s'", document_path, candidate
                )
                return str(candidate)
        return None

    def _load(
        self, src: str, document_path: str | Path
    ) -> tuple[str, bytes, str]:
        """Read image bytes.  Returns ``(locator, data, filename)``."""
        if is_url(src):
            logger.debug("Downloading image from URL: %s", src)
            try:
                response = self._http.get(src, timeout=self._timeout)
                response.raise_for_status()
            except requests.RequestException as exc:
                raise AssetError(
                    f"Could not download image {src}: {exc}", path=src
                ) from exc
            filename = Path(unquote(urlparse(src).path)).name or "image"
            return src, response.content, filename

        path = (Path(document_path).parent / unquote(src)).resolve()
        logger.debug("Reading local image: %s", path)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise AssetError(
                f"Could not read image {path}: {exc}", path=str(path)
            ) from exc
        return str(path), data, path.name

    def _resolve_bytes(
        self,
        cache_key: str,
        data: bytes,
        filename: str,
        mime_type: str,
        prepare: Callable[[], bytes] | None = None,
    ) -> ResolvedAsset:
        digest = content_hash(data)
        cached = self._store.get_asset(cache_key)

        if cached is not None and cached.content_hash == digest:
            try:
                live = self._oracle.asset_exists(cached.media_id)
            except ExistenceCheckError as exc:
                logger.warning("%s; uploading '%s' again", exc, cache_key)
                live = False
            if live:
                logger.info(
                    "Reusing cached image '%s' (media_id: %s)",
                    cache_key,
                    cached.media_id,
                )
                return ResolvedAsset(media_id=cached.media_id, url=cached.url)
            logger.info(
                "Cached image '%s' no longer exists remotely, re-uploading",
                cache_key,
            )

        payload = prepare() if prepare is not None else data
        uploaded = self._client.upload_asset(payload, filename, mime_type)
        with self._store.transaction():
            self._store.save_asset(
                cache_key, digest, uploaded["media_id"], uploaded["url"]
            )
        return ResolvedAsset(media_id=uploaded["media_id"], url=uploaded["url"])
