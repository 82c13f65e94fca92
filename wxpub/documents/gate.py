"""Publish eligibility policy."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .frontmatter import PublishState


class InvocationMode(Enum):
    DIRECTORY = "directory"
    SINGLE_FILE = "single-file"


class SkipReason(str, Enum):
    ALREADY_PUBLISHED = "already-published"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class GateDecision:
    eligible: bool
    reason: SkipReason | None = None


ELIGIBLE = GateDecision(eligible=True)


def evaluate(state: PublishState, mode: InvocationMode) -> GateDecision:
    """Decide whether a document should be submitted in this invocation.

    An explicit single file is always submitted (force mode). During a
    directory scan only drafts and documents without a ``published`` value are
    submitted.
    """
    if mode is InvocationMode.SINGLE_FILE:
        return ELIGIBLE
    if state is PublishState.PUBLISHED:
        return GateDecision(eligible=False, reason=SkipReason.ALREADY_PUBLISHED)
    return ELIGIBLE


__all__ = ["ELIGIBLE", "GateDecision", "InvocationMode", "SkipReason", "evaluate"]
