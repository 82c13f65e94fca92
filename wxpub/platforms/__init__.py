"""Platform integration package."""

from __future__ import annotations

from .base import MediaUploadResult, MediaUploader, PublishingCapability, PublishRequest

__all__ = [
    "MediaUploadResult",
    "MediaUploader",
    "PublishRequest",
    "PublishingCapability",
]
