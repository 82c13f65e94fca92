"""Document discovery, frontmatter handling and eligibility."""

from __future__ import annotations

from .frontmatter import (
    VALID_HIGHLIGHTERS,
    VALID_THEMES,
    Document,
    Metadata,
    MetadataStore,
    PublishState,
    normalize_published,
    parse_document,
)
from .gate import GateDecision, InvocationMode, SkipReason, evaluate
from .scanner import DOCUMENT_EXTENSIONS, DirectoryScanner, ScanError

__all__ = [
    "DOCUMENT_EXTENSIONS",
    "VALID_HIGHLIGHTERS",
    "VALID_THEMES",
    "DirectoryScanner",
    "Document",
    "GateDecision",
    "InvocationMode",
    "Metadata",
    "MetadataStore",
    "PublishState",
    "ScanError",
    "SkipReason",
    "evaluate",
    "normalize_published",
    "parse_document",
]
