from __future__ import annotations

import json
import logging
from pathlib import Path

from wxpub.utils.logging import JsonFormatter, PlainFormatter


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord("wxpub.test", logging.INFO, __file__, 1, "Document skipped", (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_lifts_extras() -> None:
    line = JsonFormatter().format(_record(event="pipeline.skip", path=Path("docs/a.md")))

    data = json.loads(line)

    assert data["message"] == "Document skipped"
    assert data["level"] == "INFO"
    assert data["event"] == "pipeline.skip"
    assert data["path"] == str(Path("docs/a.md"))
    assert "\n" not in line


def test_plain_formatter_appends_context() -> None:
    line = PlainFormatter().format(_record(event="pipeline.skip", reason="already-published"))

    assert line.endswith("Document skipped  [pipeline.skip] reason=already-published")


def test_plain_formatter_without_extras() -> None:
    assert PlainFormatter().format(_record()).endswith("wxpub.test: Document skipped")
