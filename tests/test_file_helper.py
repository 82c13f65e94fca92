from __future__ import annotations

from pathlib import Path

import pytest

from wxpub.utils.file_helper import atomic_write_text, read_text, write_new_bytes


def test_write_new_bytes_creates_file(tmp_path: Path) -> None:
    target = tmp_path / "cover.png"
    write_new_bytes(target, b"png")
    assert target.read_bytes() == b"png"


def test_write_new_bytes_refuses_to_overwrite(tmp_path: Path) -> None:
    target = tmp_path / "cover.png"
    target.write_bytes(b"original")

    with pytest.raises(FileExistsError):
        write_new_bytes(target, b"new")

    assert target.read_bytes() == b"original"


def test_failed_write_leaves_no_partial_file(tmp_path: Path) -> None:
    target = tmp_path / "cover.png"

    with pytest.raises(TypeError):
        write_new_bytes(target, "not bytes")  # type: ignore[arg-type]

    assert not target.exists()


def test_atomic_write_keeps_crlf(tmp_path: Path) -> None:
    target = tmp_path / "post.md"
    atomic_write_text(target, "---\r\ntitle: T\r\n---\r\n")
    assert read_text(target) == "---\r\ntitle: T\r\n---\r\n"
    assert [p.name for p in tmp_path.iterdir()] == ["post.md"]
