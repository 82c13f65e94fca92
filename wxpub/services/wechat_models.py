"""Data models for the WeChat article publishing workflow."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from wxpub.platforms import MediaUploadResult


@dataclass(slots=True)
class ArticleMetadata:
    """Fields of the ``draft/add`` article that do not come from the body."""

    article_path: Path
    title: str
    author: str | None = None
    digest: str | None = None


@dataclass(slots=True)
class RenderedContent:
    """Themed HTML plus the local images that were uploaded into it."""

    html: str
    uploads: list[MediaUploadResult] = field(default_factory=list)
