"""Discovery of candidate documents."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator

from ..errors import DocumentIOError
from ..utils.logging import get_logger

LOGGER = get_logger(__name__)

DOCUMENT_EXTENSIONS = (".md",)

ErrorCallback = Callable[[Path, OSError], None]


@dataclass(slots=True)
class ScanError:
    path: Path
    error: OSError


@dataclass(slots=True)
class DirectoryScanner:
    """Yields document paths lazily in lexicographic full-path order.

    Directory symlinks are followed, but a directory whose inode was already
    visited is skipped, so link cycles terminate. A file reachable through
    several links is yielded once. Errors listing a directory are recorded and
    reported through ``on_error``; the remaining tree is still scanned.
    """

    extensions: tuple[str, ...] = DOCUMENT_EXTENSIONS
    on_error: ErrorCallback | None = None
    errors: list[ScanError] = field(default_factory=list)

    def scan(self, root: Path) -> Iterator[Path]:
        if root.is_file():
            yield root
            return
        if not root.is_dir():
            raise DocumentIOError("Path is neither a file nor a directory", path=root)

        visited_dirs: set[tuple[int, int]] = set()
        seen_files: set[Path] = set()
        yield from self._walk(root, visited_dirs, seen_files)

    def _walk(
        self,
        directory: Path,
        visited_dirs: set[tuple[int, int]],
        seen_files: set[Path],
    ) -> Iterator[Path]:
        try:
            info = directory.stat()
            identity = (info.st_dev, info.st_ino)
            if identity in visited_dirs:
                LOGGER.debug(
                    "Skipping already visited directory",
                    extra={"event": "scan.cycle", "path": directory},
                )
                return
            visited_dirs.add(identity)
            with os.scandir(directory) as iterator:
                entries = [
                    (entry.name + os.sep if _is_dir(entry) else entry.name, entry)
                    for entry in iterator
                ]
        except OSError as exc:
            self._record(directory, exc)
            return

        # Sorting directories as "name/" keeps the yield order identical to a
        # plain string sort of the full paths.
        for sort_key, entry in sorted(entries, key=lambda item: item[0]):
            path = directory / entry.name
            if sort_key.endswith(os.sep):
                yield from self._walk(path, visited_dirs, seen_files)
                continue
            if not path.name.lower().endswith(self.extensions):
                continue
            try:
                if not entry.is_file():
                    continue
                resolved = path.resolve()
            except OSError as exc:
                self._record(path, exc)
                continue
            if resolved in seen_files:
                continue
            seen_files.add(resolved)
            yield path

    def _record(self, path: Path, exc: OSError) -> None:
        LOGGER.warning(
            "Failed to scan path",
            extra={"event": "scan.error", "path": path, "error": str(exc)},
        )
        self.errors.append(ScanError(path=path, error=exc))
        if self.on_error is not None:
            self.on_error(path, exc)


def _is_dir(entry: os.DirEntry[str]) -> bool:
    try:
        return entry.is_dir()
    except OSError:
        return False


__all__ = ["DOCUMENT_EXTENSIONS", "DirectoryScanner", "ScanError"]
