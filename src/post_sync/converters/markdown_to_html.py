"""Markdown to WeChat article HTML using mistune rendering.

``MarkdownTransform.resolve()`` turns a Markdown source file into a
``ResolvedDocument``: front matter supplies metadata, the body is
rendered to HTML with every image replaced by its WeChat URL, and the
cover image becomes the article thumbnail.
"""

import logging
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

import mistune
import yaml

from ..sync.assets import AssetResolver
from ..sync.models import ResolvedDocument

logger = logging.getLogger(__name__)

_FRONTMATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(.*?\r?\n)?---[ \t]*(?:\r?\n|\Z)", re.DOTALL
)
_H1_RE = re.compile(r"^#[ \t]+(.+?)[ \t#]*$", re.MULTILINE)
_IMAGE_ONLY_RE = re.compile(r"!\[[^\]]*\]\([^)]*\)")

DEFAULT_TITLE = "Untitled"


def split_front_matter(source: str) -> tuple[dict[str, Any], str]:
    """Split a leading YAML front matter block from *source*.

    Returns:
        ``(metadata, body)``.  Metadata is empty when there is no block or
        the block is not a YAML mapping.
    """
    m = _FRONTMATTER_RE.match(source)
    if not m:
        return {}, source

    body = source[m.end() :].lstrip("\r\n")
    try:
        data = yaml.safe_load(m.group(1) or "")
    except yaml.YAMLError as exc:
        logger.warning("Ignoring malformed front matter: %s", exc)
        return {}, body
    if not isinstance(data, dict):
        return {}, body
    return data, body


def extract_title(body: str) -> str | None:
    """Return the text of the first level-1 ATX heading, if any."""
    m = _H1_RE.search(body)
    return m.group(1).strip() if m else None


def drop_cover_image(md: mistune.Markdown, state: mistune.BlockState) -> None:
    """Remove the image paragraph following the first level-1 heading.

    Blank lines between the heading and the image are allowed.
    """
    tokens = state.tokens
    for i, tok in enumerate(tokens):
        if tok["type"] == "heading" and tok["attrs"]["level"] == 1:
            break
    else:
        return

    j = i + 1
    while j < len(tokens) and tokens[j]["type"] == "blank_line":
        j += 1
    if j == len(tokens) or tokens[j]["type"] != "paragraph":
        return
    text = tokens[j].get("text", "").strip()
    if _IMAGE_ONLY_RE.fullmatch(text):
        logger.info("Removing cover image %s from article body", text)
        del tokens[j]


class WeChatRenderer(mistune.HTMLRenderer):
    """HTML renderer that swaps image sources for remote URLs.

    Args:
        resolve_image: Maps an image source, as written in the document,
            to the URL to embed.  Exceptions propagate out of rendering.
    """

    NAME = "html"

    def __init__(self, resolve_image: Callable[[str], str]):
        super().__init__(escape=False)
        self._resolve_image = resolve_image

    def image(self, text: str, url: str, title: str | None = None) -> str:
        return super().image(text, self._resolve_image(url), title)


class MarkdownTransform:
    """Assemble the resolved form of a Markdown document.

    Args:
        asset_resolver: Resolver used for inline images and the cover.
    """

    def __init__(self, asset_resolver: AssetResolver):
        self.asset_resolver = asset_resolver

    def render(self, body: str, document_path: str | Path) -> str:
        """Render Markdown *body* to HTML, uploading images as needed.

        An image standing alone right after the first level-1 heading is
        the cover and is left out of the body.
        """

        def resolve_image(src: str) -> str:
            return self.asset_resolver.resolve(src, document_path).url

        markdown = mistune.create_markdown(
            renderer=WeChatRenderer(resolve_image),
            plugins=["table", "strikethrough", "url"],
        )
        markdown.before_render_hooks.append(drop_cover_image)
        result: str = markdown(body)  # type: ignore[assignment]
        return result.strip()

    def resolve(
        self,
        raw_source: str,
        document_path: str | Path,
        default_author: str | None = None,
        default_digest: str | None = None,
    ) -> ResolvedDocument:
        """Resolve *raw_source* into a ``ResolvedDocument``.

        Front matter keys: ``title``, ``author``, ``digest`` and ``cover``.
        ``cover`` is an image path or a mapping with ``path`` and
        ``prompt``; the prompt is used as digest when none is set.

        Raises:
            AssetError: If an inline image cannot be resolved.
            RemoteError: If an inline image upload fails.
        """
        meta, body = split_front_matter(raw_source)

        title = meta.get("title") or extract_title(body) or DEFAULT_TITLE

        cover = meta.get("cover")
        cover_path: str | None = None
        cover_prompt: str | None = None
        if isinstance(cover, dict):
            cover_path = cover.get("path")
            cover_prompt = cover.get("prompt")
        elif cover:
            cover_path = str(cover)

        author = meta.get("author") or default_author
        digest = meta.get("digest") or cover_prompt or default_digest

        content = self.render(body, document_path)
        thumb = self.asset_resolver.resolve_cover(document_path, cover_path)

        return ResolvedDocument(
            title=str(title),
            content=content,
            digest=str(digest) if digest is not None else None,
            author=str(author) if author is not None else None,
            thumb_media_id=thumb.media_id if thumb else None,
        )
