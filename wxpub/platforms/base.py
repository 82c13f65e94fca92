"""Base contracts for content publishing platforms."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from ..settings import Account


@dataclass(slots=True)
class MediaUploadResult:
    """Represents the outcome of a single media upload."""

    local_path: Path
    remote_url: str | None = None
    media_id: str | None = None


@dataclass(frozen=True, slots=True)
class PublishRequest:
    """Everything a platform needs to create one article."""

    title: str
    body: str
    source_path: Path
    cover_path: Path | None = None
    author: str | None = None
    digest: str | None = None
    theme: str | None = None
    highlighter: str | None = None


class PublishingCapability(Protocol):
    """Submits an article and returns the platform's identifier for it.

    Implementations raise :class:`wxpub.errors.PublishError` on failure.
    Retries, rate limiting and token refresh are their own concern.
    """

    def submit(self, account: Account, request: PublishRequest) -> str:
        """Publish ``request`` with ``account`` credentials."""


class MediaUploader(Protocol):
    """Uploads media assets to a remote platform."""

    def upload_inline_image(self, account: Account, image: Path) -> MediaUploadResult:
        """Upload an image referenced from article content; returns its URL."""

    def upload_cover(self, account: Account, image: Path) -> MediaUploadResult:
        """Upload a permanent image usable as a thumbnail; returns its media id."""
