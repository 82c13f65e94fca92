"""WeChat platform adapters."""

from __future__ import annotations

from .api import WeChatApiClient, WeChatApiError
from .credentials import WeChatCredentialRegistry, WeChatCredentialStore
from .draft import WeChatDraftClient
from .media import WeChatMediaUploader
from .publisher import WeChatPublisher

__all__ = [
    "WeChatApiClient",
    "WeChatApiError",
    "WeChatCredentialRegistry",
    "WeChatCredentialStore",
    "WeChatDraftClient",
    "WeChatMediaUploader",
    "WeChatPublisher",
]
