"""Exception hierarchy shared across the uploader."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping


class WxPubError(Exception):
    """Base class for every error raised by wxpub."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = dict(details or {})

    def __str__(self) -> str:
        base = super().__str__()
        if not self.details:
            return base
        try:
            detail_repr = json.dumps(self.details, ensure_ascii=False, default=str)
        except TypeError:
            detail_repr = str(self.details)
        return f"{base} | details: {detail_repr}"


class ConfigError(WxPubError):
    """Configuration is missing, malformed or contradictory."""


class AccountNotFoundError(WxPubError):
    """No account could be selected for this invocation."""


class DocumentError(WxPubError):
    """Raised for problems tied to a single document path."""

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.path = path


class ParseError(DocumentError):
    """The document lacks a well-formed, valid frontmatter block."""


class DocumentIOError(DocumentError):
    """Reading or writing a document (or scanning a directory) failed."""


class PublishError(WxPubError):
    """The remote publishing service rejected or failed the submission."""


class PersistError(DocumentError):
    """Submission succeeded remotely but the local metadata update failed."""

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        remote_id: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, path=path, details=details)
        self.remote_id = remote_id


class AIError(WxPubError):
    """An AI provider call failed; always absorbed by cover generation."""


__all__ = [
    "AIError",
    "AccountNotFoundError",
    "ConfigError",
    "DocumentError",
    "DocumentIOError",
    "ParseError",
    "PersistError",
    "PublishError",
    "WxPubError",
]
