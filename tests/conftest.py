from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from wxpub.settings import loader


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> Path:
    config_dir = tmp_path_factory.mktemp("xdg") / "wxpub"
    monkeypatch.setattr(loader, "default_config_dir", lambda: config_dir)
    return config_dir


@pytest.fixture
def write_document() -> Callable[..., Path]:
    def _write(path: Path, frontmatter: str, body: str = "Body text\n") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"---\n{frontmatter}---\n{body}", encoding="utf-8")
        return path

    return _write
