"""Cover illustration generation as an explicit state machine.

::

    NOT_NEEDED                                        (terminal)
    NEEDED -> DESCRIPTION_GENERATED -> IMAGE_GENERATED -> SAVED
       \\               \\                     \\
        +---------------+---------------------+--> FAILED (terminal)

A FAILED run behaves exactly like NOT_NEEDED for the rest of the upload: the
document is published without a generated cover.
"""

from __future__ import annotations

import mimetypes
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from ..documents import Document
from ..errors import AIError
from ..utils.file_helper import write_new_bytes
from ..utils.logging import get_logger
from .providers import ASPECT_RATIO_WIDE, AIClient

LOGGER = get_logger(__name__)


class CoverState(Enum):
    NOT_NEEDED = "not-needed"
    NEEDED = "needed"
    DESCRIPTION_GENERATED = "description-generated"
    IMAGE_GENERATED = "image-generated"
    SAVED = "saved"
    FAILED = "failed"


_TRANSITIONS: dict[CoverState, tuple[CoverState, ...]] = {
    CoverState.NOT_NEEDED: (),
    CoverState.NEEDED: (CoverState.DESCRIPTION_GENERATED, CoverState.FAILED),
    CoverState.DESCRIPTION_GENERATED: (CoverState.IMAGE_GENERATED, CoverState.FAILED),
    CoverState.IMAGE_GENERATED: (CoverState.SAVED, CoverState.FAILED),
    CoverState.SAVED: (),
    CoverState.FAILED: (),
}

TERMINAL_STATES = frozenset(state for state, targets in _TRANSITIONS.items() if not targets)

_MAGIC_EXTENSIONS = (
    (b"\x89PNG\r\n\x1a\n", ".png"),
    (b"\xff\xd8\xff", ".jpg"),
    (b"GIF87a", ".gif"),
    (b"GIF89a", ".gif"),
)


def sniff_extension(data: bytes, mime_type: str | None = None) -> str:
    """Pick a file extension for an image payload; PNG when unknown."""
    for magic, extension in _MAGIC_EXTENSIONS:
        if data.startswith(magic):
            return extension
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return ".webp"
    if mime_type:
        guessed = mimetypes.guess_extension(mime_type.split(";")[0].strip())
        if guessed:
            return ".jpg" if guessed in {".jpe", ".jpeg"} else guessed
    return ".png"


@dataclass(slots=True)
class CoverResult:
    state: CoverState
    history: list[CoverState]
    filename: str | None = None
    error: str | None = None

    @property
    def generated(self) -> bool:
        return self.state is CoverState.SAVED


@dataclass(slots=True)
class _CoverRun:
    document: Document
    state: CoverState | None = None
    history: list[CoverState] = field(default_factory=list)
    description: str | None = None
    image: bytes | None = None
    mime_type: str | None = None
    filename: str | None = None
    error: str | None = None

    def advance(self, target: CoverState) -> None:
        if self.state is not None and target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal cover transition {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)

    def fail(self, exc: BaseException) -> None:
        self.error = str(exc)
        self.advance(CoverState.FAILED)

    def result(self) -> CoverResult:
        assert self.state is not None
        filename = self.filename if self.state is CoverState.SAVED else None
        return CoverResult(state=self.state, history=list(self.history), filename=filename, error=self.error)


class CoverImageOrchestrator:
    """Decides on, generates and saves a cover image for one document."""

    def __init__(
        self,
        ai_client: AIClient | None,
        *,
        aspect_ratio: str = ASPECT_RATIO_WIDE,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self._ai = ai_client
        self._aspect_ratio = aspect_ratio
        self._id_factory = id_factory
        self._steps: dict[CoverState, Callable[[_CoverRun], None]] = {
            CoverState.NEEDED: self._describe,
            CoverState.DESCRIPTION_GENERATED: self._render,
            CoverState.IMAGE_GENERATED: self._save,
        }

    def initial_state(self, document: Document) -> CoverState:
        cover_path = document.cover_path()
        if cover_path is not None and cover_path.is_file():
            return CoverState.NOT_NEEDED
        if self._ai is None:
            if cover_path is not None:
                LOGGER.warning(
                    "Cover file missing and no AI provider configured",
                    extra={"event": "cover.missing", "path": document.path, "cover": str(cover_path)},
                )
            return CoverState.NOT_NEEDED
        if document.path is None:
            return CoverState.NOT_NEEDED
        return CoverState.NEEDED

    def run(self, document: Document) -> CoverResult:
        run = _CoverRun(document=document)
        run.advance(self.initial_state(document))
        while run.state not in TERMINAL_STATES:
            step = self._steps[run.state]
            try:
                step(run)
            except (AIError, OSError) as exc:
                LOGGER.warning(
                    "Cover generation failed; continuing without cover",
                    extra={
                        "event": "cover.failed",
                        "path": document.path,
                        "stage": run.state.value,
                        "error": str(exc),
                    },
                )
                run.fail(exc)
        result = run.result()
        if result.generated:
            LOGGER.info(
                "Cover image generated",
                extra={"event": "cover.saved", "path": document.path, "cover": result.filename},
            )
        return result

    def _describe(self, run: _CoverRun) -> None:
        assert self._ai is not None
        metadata = run.document.metadata
        text = run.document.body.strip() or metadata.description or metadata.title or ""
        run.description = self._ai.describe_scene(text)
        LOGGER.debug(
            "Scene description generated",
            extra={"event": "cover.description", "path": run.document.path, "description": run.description},
        )
        run.advance(CoverState.DESCRIPTION_GENERATED)

    def _render(self, run: _CoverRun) -> None:
        assert self._ai is not None and run.description is not None
        image = self._ai.generate_image(run.description, self._aspect_ratio)
        run.image = image.decode()
        run.mime_type = image.mime_type
        run.advance(CoverState.IMAGE_GENERATED)

    def _save(self, run: _CoverRun) -> None:
        assert run.image is not None and run.document.path is not None
        document_path = run.document.path
        extension = sniff_extension(run.image, run.mime_type)
        filename = f"{document_path.stem}_cover_{self._id_factory()}{extension}"
        write_new_bytes(document_path.parent / filename, run.image)
        run.filename = filename
        run.advance(CoverState.SAVED)


__all__ = [
    "CoverImageOrchestrator",
    "CoverResult",
    "CoverState",
    "TERMINAL_STATES",
    "sniff_extension",
]
