"""Remote API client and retry policy."""

from .client import WeChatClient
from .retry import RetryPolicy, call_with_retry

__all__ = ["RetryPolicy", "WeChatClient", "call_with_retry"]
