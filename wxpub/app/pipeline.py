"""Per-document upload pipeline and the bounded batch runner.

Each document runs through read → gate → cover → submit → persist, stopping at
the first failure. A batch feeds scanned paths into a thread pool without ever
holding more than ``workers`` documents in flight and reports outcomes in scan
order.
"""

from __future__ import annotations

import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, Union

from ..ai import CoverImageOrchestrator, CoverResult
from ..documents import (
    DirectoryScanner,
    Document,
    InvocationMode,
    MetadataStore,
    SkipReason,
    evaluate,
)
from ..errors import DocumentIOError, ParseError, PersistError, PublishError
from ..platforms import PublishingCapability, PublishRequest
from ..settings import Account
from ..utils.logging import get_logger
from .results import BatchResult, DocumentOutcome

LOGGER = get_logger(__name__)

ScannerFactory = Callable[[Callable[[Path, OSError], None]], DirectoryScanner]
_Slot = Union[DocumentOutcome, "Future[DocumentOutcome]"]


def _default_scanner(on_error: Callable[[Path, OSError], None]) -> DirectoryScanner:
    return DirectoryScanner(on_error=on_error)


@dataclass(slots=True)
class PipelineHooks:
    """Optional callbacks fired as each document completes."""

    on_outcome: Callable[[DocumentOutcome], None] | None = None

    def emit(self, outcome: DocumentOutcome) -> None:
        if self.on_outcome is not None:
            self.on_outcome(outcome)


@dataclass(slots=True)
class _ScanFailures:
    pending: list[DocumentOutcome] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def record(self, path: Path, exc: OSError) -> None:
        error = DocumentIOError("Failed to scan directory", path=path, details={"reason": str(exc)})
        with self.lock:
            self.pending.append(DocumentOutcome.failed(path, error))

    def drain(self) -> list[DocumentOutcome]:
        with self.lock:
            drained, self.pending = self.pending, []
        return drained


class UploadOrchestrator:
    """Runs the upload pipeline for a single path or a whole directory tree."""

    def __init__(
        self,
        *,
        account: Account,
        publisher: PublishingCapability,
        store: MetadataStore | None = None,
        covers: CoverImageOrchestrator | None = None,
        workers: int = 1,
        scanner_factory: ScannerFactory = _default_scanner,
        hooks: PipelineHooks | None = None,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self._account = account
        self._publisher = publisher
        self._store = store or MetadataStore()
        self._covers = covers or CoverImageOrchestrator(None)
        self._workers = workers
        self._scanner_factory = scanner_factory
        self._hooks = hooks or PipelineHooks()
        self._cancel = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Stop scheduling new documents; in-flight documents finish."""
        if not self._cancel.is_set():
            LOGGER.warning("Cancellation requested", extra={"event": "pipeline.cancel"})
        self._cancel.set()

    def process_document(self, path: Path, mode: InvocationMode) -> DocumentOutcome:
        """Run every step for one document and report what happened."""
        try:
            document = self._store.read(path)
        except (ParseError, DocumentIOError) as exc:
            return self._failed(path, exc, step="read")

        decision = evaluate(document.metadata.published, mode)
        if not decision.eligible:
            reason = decision.reason.value if decision.reason else "ineligible"
            LOGGER.info("Document skipped", extra={"event": "pipeline.skip", "path": path, "reason": reason})
            return DocumentOutcome.skipped(path, reason)

        cover = self._covers.run(document)
        request = self._build_request(path, document, cover)

        try:
            remote_id = self._publisher.submit(self._account, request)
        except PublishError as exc:
            if cover.generated and cover.filename:
                self._discard_cover(path.parent / cover.filename)
            return self._failed(path, exc, step="submit")

        document.metadata.set("published", "draft")
        if cover.generated:
            document.metadata.set("cover", cover.filename)
        try:
            self._store.write(path, document)
        except DocumentIOError as exc:
            error = PersistError(
                "Submitted but failed to update document metadata",
                path=path,
                remote_id=remote_id,
                details={"reason": str(exc)},
            )
            error.__cause__ = exc
            return self._failed(path, error, step="persist")

        LOGGER.info(
            "Document uploaded",
            extra={
                "event": "pipeline.uploaded",
                "path": path,
                "remote_id": remote_id,
                "account": self._account.name,
                "cover": cover.filename,
            },
        )
        return DocumentOutcome.uploaded(path, remote_id, cover=cover.filename)

    def run(self, target: Path) -> BatchResult:
        """Process ``target`` (file or directory) and return outcomes in scan order."""
        mode = InvocationMode.SINGLE_FILE if target.is_file() else InvocationMode.DIRECTORY
        failures = _ScanFailures()
        scanner = self._scanner_factory(failures.record)
        slots: list[_Slot] = []

        LOGGER.info(
            "Batch started",
            extra={"event": "pipeline.start", "target": target, "mode": mode.value, "workers": self._workers},
        )
        with ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="wxpub") as pool:
            try:
                self._schedule(pool, scanner.scan(target), mode, slots, failures)
            except DocumentIOError as exc:
                slots.append(self._failed(target, exc, step="scan"))
            except KeyboardInterrupt:
                self.cancel()
            slots.extend(failures.drain())
        return self._finish(slots)

    def _schedule(
        self,
        pool: ThreadPoolExecutor,
        paths: Iterator[Path],
        mode: InvocationMode,
        slots: list[_Slot],
        failures: _ScanFailures,
    ) -> None:
        in_flight: set[Future[DocumentOutcome]] = set()
        for path in paths:
            slots.extend(failures.drain())
            try:
                while len(in_flight) >= self._workers and not self._cancel.is_set():
                    _, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
            except KeyboardInterrupt:
                # the path already pulled from the scanner is reported, not dropped
                self.cancel()
            if self._cancel.is_set():
                slots.append(DocumentOutcome.skipped(path, SkipReason.CANCELLED.value))
                break
            future = pool.submit(self._process_guarded, path, mode)
            in_flight.add(future)
            slots.append(future)

    def _process_guarded(self, path: Path, mode: InvocationMode) -> DocumentOutcome:
        try:
            outcome = self.process_document(path, mode)
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception(
                "Unexpected error while processing document",
                extra={"event": "pipeline.error", "path": path},
            )
            outcome = DocumentOutcome.failed(path, exc)
        self._hooks.emit(outcome)
        return outcome

    def _finish(self, slots: list[_Slot]) -> BatchResult:
        outcomes = [slot.result() if isinstance(slot, Future) else slot for slot in slots]
        result = BatchResult.from_outcomes(outcomes, cancelled=self._cancel.is_set())
        LOGGER.info(
            "Batch finished",
            extra={
                "event": "pipeline.finish",
                "uploaded": result.uploaded,
                "skipped": result.skipped,
                "failed": result.failed,
                "cancelled": result.cancelled,
            },
        )
        return result

    def _build_request(self, path: Path, document: Document, cover: CoverResult) -> PublishRequest:
        metadata = document.metadata
        if cover.generated and cover.filename:
            cover_path: Path | None = path.parent / cover.filename
        else:
            existing = document.cover_path()
            cover_path = existing if existing is not None and existing.is_file() else None
        return PublishRequest(
            title=metadata.title or path.stem,
            body=document.body,
            source_path=path,
            cover_path=cover_path,
            author=metadata.author,
            digest=metadata.description,
            theme=metadata.theme,
            highlighter=metadata.highlighter,
        )

    def _discard_cover(self, cover_path: Path) -> None:
        try:
            cover_path.unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.warning(
                "Failed to remove unused generated cover",
                extra={"event": "pipeline.cover_cleanup", "path": cover_path, "error": str(exc)},
            )
            return
        LOGGER.info("Removed unused generated cover", extra={"event": "pipeline.cover_cleanup", "path": cover_path})

    def _failed(self, path: Path, exc: BaseException, *, step: str) -> DocumentOutcome:
        LOGGER.error(
            "Document failed",
            extra={"event": "pipeline.failed", "path": path, "step": step, "error": str(exc)},
        )
        return DocumentOutcome.failed(path, exc)


__all__ = ["PipelineHooks", "UploadOrchestrator"]
