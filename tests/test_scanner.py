from __future__ import annotations

import os
from pathlib import Path

import pytest

from wxpub.documents import DirectoryScanner
from wxpub.errors import DocumentIOError


def _touch(path: Path, text: str = "---\n---\n") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_scan_yields_markdown_in_lexicographic_full_path_order(tmp_path: Path) -> None:
    _touch(tmp_path / "b.md")
    _touch(tmp_path / "a" / "z.md")
    _touch(tmp_path / "a.md")
    _touch(tmp_path / "a-b" / "x.md")
    _touch(tmp_path / "notes.txt")
    _touch(tmp_path / "c" / "d" / "deep.MD")

    found = list(DirectoryScanner().scan(tmp_path))

    relative = [str(path.relative_to(tmp_path)) for path in found]
    assert relative == sorted(relative)
    assert set(relative) == {
        "a.md",
        os.path.join("a", "z.md"),
        os.path.join("a-b", "x.md"),
        "b.md",
        os.path.join("c", "d", "deep.MD"),
    }


def test_scan_is_lazy(tmp_path: Path) -> None:
    _touch(tmp_path / "one.md")
    iterator = DirectoryScanner().scan(tmp_path)
    assert next(iterator) == tmp_path / "one.md"


def test_single_file_yields_itself_without_extension_filter(tmp_path: Path) -> None:
    target = _touch(tmp_path / "post.markdown")
    assert list(DirectoryScanner().scan(target)) == [target]


def test_missing_root_raises(tmp_path: Path) -> None:
    with pytest.raises(DocumentIOError):
        list(DirectoryScanner().scan(tmp_path / "nope"))


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_symlink_cycles_terminate_and_files_yield_once(tmp_path: Path) -> None:
    _touch(tmp_path / "docs" / "post.md")
    try:
        (tmp_path / "docs" / "loop").symlink_to(tmp_path, target_is_directory=True)
        (tmp_path / "alias").symlink_to(tmp_path / "docs", target_is_directory=True)
    except OSError:
        pytest.skip("cannot create symlinks")

    found = list(DirectoryScanner().scan(tmp_path))

    assert len(found) == 1
    assert found[0].resolve() == (tmp_path / "docs" / "post.md").resolve()


def test_listing_errors_are_reported_and_scan_continues(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _touch(tmp_path / "a.md")
    _touch(tmp_path / "broken" / "hidden.md")
    _touch(tmp_path / "c.md")
    broken = tmp_path / "broken"
    real_scandir = os.scandir

    def flaky_scandir(path):  # type: ignore[no-untyped-def]
        if Path(path) == broken:
            raise PermissionError("denied")
        return real_scandir(path)

    monkeypatch.setattr(os, "scandir", flaky_scandir)
    reported: list[Path] = []
    scanner = DirectoryScanner(on_error=lambda path, exc: reported.append(path))

    found = list(scanner.scan(tmp_path))

    assert found == [tmp_path / "a.md", tmp_path / "c.md"]
    assert reported == [broken]
    assert [error.path for error in scanner.errors] == [broken]
    assert isinstance(scanner.errors[0].error, PermissionError)
