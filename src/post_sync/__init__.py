"""post-sync: publish local Markdown documents to a WeChat Official Account."""

__version__ = "1.0.0"
