"""Markdown to WeChat article HTML conversion."""

from .markdown_to_html import MarkdownTransform, WeChatRenderer, split_front_matter

__all__ = ["MarkdownTransform", "WeChatRenderer", "split_front_matter"]
