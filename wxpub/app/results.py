"""Per-document outcomes and the aggregated batch result."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable

from ..errors import PersistError, WxPubError


class OutcomeStatus(str, Enum):
    UPLOADED = "uploaded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class DocumentOutcome:
    """What happened to a single document."""

    path: Path
    status: OutcomeStatus
    reason: str | None = None
    error: BaseException | None = None
    remote_id: str | None = None
    cover: str | None = None

    @classmethod
    def uploaded(cls, path: Path, remote_id: str, *, cover: str | None = None) -> "DocumentOutcome":
        return cls(path=path, status=OutcomeStatus.UPLOADED, remote_id=remote_id, cover=cover)

    @classmethod
    def skipped(cls, path: Path, reason: str) -> "DocumentOutcome":
        return cls(path=path, status=OutcomeStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, path: Path, error: BaseException) -> "DocumentOutcome":
        remote_id = error.remote_id if isinstance(error, PersistError) else None
        return cls(
            path=path,
            status=OutcomeStatus.FAILED,
            reason=failure_category(error),
            error=error,
            remote_id=remote_id,
        )

    @property
    def submitted_not_persisted(self) -> bool:
        return isinstance(self.error, PersistError)

    def describe(self) -> str:
        if self.status is OutcomeStatus.UPLOADED:
            text = f"uploaded  {self.path}  media_id={self.remote_id}"
            if self.cover:
                text += f"  cover={self.cover}"
            return text
        if self.status is OutcomeStatus.SKIPPED:
            return f"skipped   {self.path}  ({self.reason})"
        if self.submitted_not_persisted:
            return (
                f"failed    {self.path}  submitted but not persisted "
                f"(media_id={self.remote_id}): {_error_message(self.error)}"
            )
        return f"failed    {self.path}  [{self.reason}] {_error_message(self.error)}"


def failure_category(error: BaseException) -> str:
    """Short kebab-case label for the kind of failure."""
    if isinstance(error, PersistError):
        return "submitted-not-persisted"
    name = type(error).__name__
    if name.endswith("Error"):
        name = name[: -len("Error")]
    chars: list[str] = []
    for index, ch in enumerate(name):
        if ch.isupper() and index and not name[index - 1].isupper():
            chars.append("-")
        chars.append(ch.lower())
    return "".join(chars) or "error"


def _error_message(error: BaseException | None) -> str:
    if error is None:
        return ""
    if isinstance(error, WxPubError) and error.args:
        return str(error.args[0])
    return str(error) or type(error).__name__


@dataclass(frozen=True, slots=True)
class BatchResult:
    """Outcomes in scan order plus aggregate counts."""

    outcomes: tuple[DocumentOutcome, ...] = ()
    cancelled: bool = False
    counts: dict[OutcomeStatus, int] = field(init=False, compare=False)

    def __post_init__(self) -> None:
        tally = Counter(outcome.status for outcome in self.outcomes)
        object.__setattr__(self, "counts", {status: tally.get(status, 0) for status in OutcomeStatus})

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[DocumentOutcome], *, cancelled: bool = False) -> "BatchResult":
        return cls(outcomes=tuple(outcomes), cancelled=cancelled)

    @property
    def uploaded(self) -> int:
        return self.counts[OutcomeStatus.UPLOADED]

    @property
    def skipped(self) -> int:
        return self.counts[OutcomeStatus.SKIPPED]

    @property
    def failed(self) -> int:
        return self.counts[OutcomeStatus.FAILED]

    @property
    def has_failures(self) -> bool:
        return self.failed > 0

    def by_status(self, status: OutcomeStatus) -> list[DocumentOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status is status]

    def render_report(self) -> str:
        lines = [outcome.describe() for outcome in self.outcomes]
        summary = f"{self.uploaded} uploaded, {self.skipped} skipped, {self.failed} failed"
        not_persisted = sum(1 for outcome in self.outcomes if outcome.submitted_not_persisted)
        if not_persisted:
            summary += f" ({not_persisted} submitted but not persisted)"
        if self.cancelled:
            summary += " (cancelled)"
        lines.append(summary)
        return "\n".join(lines)


__all__ = [
    "BatchResult",
    "DocumentOutcome",
    "OutcomeStatus",
    "failure_category",
]
