"""Frontmatter read-modify-write cycle for Markdown documents.

A document is a ``---`` delimited YAML block followed by an opaque body. The
store keeps the original block lines around so that a rewrite only touches the
top-level keys the caller explicitly set: every other line, including comments,
quoting style and key order, is written back byte-for-byte.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import yaml

from ..errors import DocumentIOError, ParseError
from ..utils.file_helper import atomic_write_text, read_text
from ..utils.logging import get_logger

LOGGER = get_logger(__name__)

VALID_THEMES = (
    "default",
    "lapis",
    "maize",
    "orangeheart",
    "phycat",
    "pie",
    "purple",
    "rainbow",
)

VALID_HIGHLIGHTERS = (
    "github",
    "github-dark",
    "vscode",
    "atom-one-light",
    "atom-one-dark",
    "solarized-light",
    "solarized-dark",
    "monokai",
    "dracula",
    "xcode",
)

# ``code`` is the historical key for the highlighter and is still honoured.
HIGHLIGHTER_KEYS = ("highlighter", "code")

_DELIMITER = "---"
_END_MARKERS = ("---", "...")


class PublishState(Enum):
    """Normalized view of the ``published`` field."""

    PUBLISHED = "published"
    DRAFT = "draft"
    UNSET = "unset"


def normalize_published(value: Any) -> PublishState:
    """Map the accepted ``published`` representations onto :class:`PublishState`.

    ``True`` and the exact string ``"true"`` mean published, ``False`` and
    ``"draft"`` mean draft and a missing, null or empty value means unset.
    Any other value, ``"True"`` included, is treated as a draft so that
    unusual spellings never block an upload.
    """
    if value is None or value == "":
        return PublishState.UNSET
    if isinstance(value, bool):
        return PublishState.PUBLISHED if value else PublishState.DRAFT
    if value == "true":
        return PublishState.PUBLISHED
    return PublishState.DRAFT


def _is_recognised_published(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return True
    return isinstance(value, str) and value in {"", "true", "draft"}


class Metadata:
    """Ordered frontmatter mapping with explicit, tracked overrides."""

    def __init__(
        self,
        fields: Mapping[Any, Any] | None = None,
        *,
        lines: list[str] | None = None,
        newline: str = "\n",
    ) -> None:
        self._fields = dict(fields or {})
        self._lines = list(lines or [])
        self._newline = newline
        self._overrides: dict[Any, Any] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._overrides or key in self._fields

    def get(self, key: Any, default: Any = None) -> Any:
        if key in self._overrides:
            return self._overrides[key]
        return self._fields.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Override ``key``; only overridden keys are rewritten on save."""
        self._overrides[key] = value

    def keys(self) -> list[Any]:
        ordered = list(self._fields)
        ordered.extend(key for key in self._overrides if key not in self._fields)
        return ordered

    def as_dict(self) -> dict[Any, Any]:
        return {key: self.get(key) for key in self.keys()}

    @property
    def overrides(self) -> dict[Any, Any]:
        return dict(self._overrides)

    @property
    def title(self) -> str | None:
        return self._text("title")

    @property
    def description(self) -> str | None:
        return self._text("description")

    @property
    def author(self) -> str | None:
        return self._text("author")

    @property
    def cover(self) -> str | None:
        return self._text("cover")

    @property
    def theme(self) -> str | None:
        return self._text("theme")

    @property
    def highlighter(self) -> str | None:
        for key in HIGHLIGHTER_KEYS:
            value = self._text(key)
            if value is not None:
                return value
        return None

    @property
    def published(self) -> PublishState:
        return normalize_published(self.get("published"))

    def _text(self, key: str) -> str | None:
        value = self.get(key)
        if value is None:
            return None
        text = str(value)
        return text if text.strip() else None

    def validate(self, *, path: Path | None = None) -> None:
        """Check enumerated fields; raises :class:`ParseError` on bad values."""
        theme = self.get("theme")
        if theme is not None and theme not in VALID_THEMES:
            raise ParseError(
                f"Invalid theme '{theme}'. Available themes: {', '.join(VALID_THEMES)}",
                path=path,
                details={"field": "theme", "value": theme},
            )
        for key in HIGHLIGHTER_KEYS:
            value = self.get(key)
            if value is not None and value not in VALID_HIGHLIGHTERS:
                raise ParseError(
                    f"Invalid code highlighter '{value}'. "
                    f"Available highlighters: {', '.join(VALID_HIGHLIGHTERS)}",
                    path=path,
                    details={"field": key, "value": value},
                )
        published = self.get("published")
        if not _is_recognised_published(published):
            LOGGER.warning(
                "Unrecognised published value treated as draft",
                extra={"event": "frontmatter.published", "path": path, "value": published},
            )

    def render_block(self) -> str:
        """Return the block text (without delimiters) including overrides.

        Key positions come from composing the original block, so anchors,
        aliases, comments and multi-line flow values of untouched keys are
        copied verbatim.
        """
        if not self._overrides:
            return "".join(self._lines)
        text = "".join(self._lines)
        root = yaml.compose(text, Loader=yaml.SafeLoader)
        if isinstance(root, yaml.MappingNode) and root.flow_style:
            return self._splice_flow(text, root)
        return self._splice_lines(root)

    def _splice_lines(self, root: yaml.Node | None) -> str:
        pairs = root.value if isinstance(root, yaml.MappingNode) else []
        starts = [(_node_key(key_node), key_node.start_mark.line) for key_node, _ in pairs]
        pending = dict(self._overrides)
        out: list[str] = []
        cursor = 0
        for position, (key, start) in enumerate(starts):
            if key not in self._overrides:
                continue
            end = starts[position + 1][1] if position + 1 < len(starts) else len(self._lines)
            # column-0 comments and blank lines before the next key stay put
            while end > start + 1 and _is_filler(self._lines[end - 1]):
                end -= 1
            out.extend(self._lines[cursor:start])
            out.append(_dump({key: self._overrides[key]}, self._newline))
            pending.pop(key, None)
            cursor = end
        out.extend(self._lines[cursor:])
        if pending:
            out.append(_dump(pending, self._newline))
        return "".join(out)

    def _splice_flow(self, text: str, root: yaml.MappingNode) -> str:
        pending = dict(self._overrides)
        out: list[str] = []
        cursor = 0
        for key_node, value_node in root.value:
            key = _node_key(key_node)
            if key not in self._overrides:
                continue
            out.append(text[cursor : key_node.start_mark.index])
            out.append(_flow_pair(key, self._overrides[key]))
            pending.pop(key, None)
            cursor = value_node.end_mark.index
        closing = root.end_mark.index - 1
        out.append(text[cursor:closing])
        if pending:
            separator = ", " if root.value else ""
            out.append(separator + ", ".join(_flow_pair(key, value) for key, value in pending.items()))
        out.append(text[closing:])
        return "".join(out)


def _node_key(node: yaml.Node) -> Any:
    return node.value if isinstance(node, yaml.ScalarNode) else None


def _is_filler(line: str) -> bool:
    return not line.strip() or line.startswith("#")


def _flow_pair(key: Any, value: Any) -> str:
    text = yaml.safe_dump(
        {key: value},
        allow_unicode=True,
        sort_keys=False,
        default_flow_style=True,
        width=4096,
    )
    return text.strip()[1:-1]


def _dump(data: Mapping[Any, Any], newline: str) -> str:
    if not data:
        return ""
    text = yaml.safe_dump(
        dict(data),
        allow_unicode=True,
        sort_keys=False,
        default_flow_style=False,
        width=4096,
    )
    if newline != "\n":
        text = text.replace("\n", newline)
    return text


@dataclass(slots=True)
class Document:
    """A parsed document: delimiters, metadata and untouched body."""

    metadata: Metadata
    body: str
    path: Path | None = None
    opening: str = "---\n"
    closing: str = "---\n"

    def render(self) -> str:
        return f"{self.opening}{self.metadata.render_block()}{self.closing}{self.body}"

    def cover_path(self) -> Path | None:
        """Resolve the ``cover`` field against the document's directory."""
        cover = self.metadata.cover
        if cover is None:
            return None
        candidate = Path(cover)
        if candidate.is_absolute() or self.path is None:
            return candidate
        return self.path.parent / candidate


def parse_document(text: str, *, path: Path | None = None) -> Document:
    """Split ``text`` into metadata and body, validating reserved fields."""
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].lstrip("\ufeff").rstrip("\r\n") != _DELIMITER:
        raise ParseError("Document has no frontmatter block", path=path)

    closing_index: int | None = None
    for index in range(1, len(lines)):
        if lines[index].rstrip("\r\n").rstrip() in _END_MARKERS:
            closing_index = index
            break
    if closing_index is None:
        raise ParseError("Frontmatter block is not terminated", path=path)

    block_lines = lines[1:closing_index]
    try:
        data = yaml.safe_load("".join(block_lines))
    except yaml.YAMLError as exc:
        raise ParseError("Failed to parse YAML frontmatter", path=path, details={"reason": str(exc)}) from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ParseError(
            "Frontmatter must be a mapping",
            path=path,
            details={"type": type(data).__name__},
        )

    newline = "\r\n" if lines[0].endswith("\r\n") else "\n"
    closing = lines[closing_index]
    if not closing.endswith(("\n", "\r")):
        closing += newline
    metadata = Metadata(data, lines=block_lines, newline=newline)
    metadata.validate(path=path)
    return Document(
        metadata=metadata,
        body="".join(lines[closing_index + 1 :]),
        path=path,
        opening=lines[0],
        closing=closing,
    )


class MetadataStore:
    """Reads and atomically rewrites documents on disk."""

    def __init__(self, *, encoding: str = "utf-8") -> None:
        self._encoding = encoding

    def read(self, path: Path) -> Document:
        try:
            text = read_text(path, encoding=self._encoding)
        except (OSError, UnicodeDecodeError) as exc:
            raise DocumentIOError(
                "Failed to read document", path=path, details={"reason": str(exc)}
            ) from exc
        return parse_document(text, path=path)

    def write(self, path: Path, document: Document) -> None:
        try:
            atomic_write_text(path, document.render(), encoding=self._encoding)
        except OSError as exc:
            raise DocumentIOError(
                "Failed to write document", path=path, details={"reason": str(exc)}
            ) from exc
        LOGGER.debug(
            "Frontmatter persisted",
            extra={"event": "frontmatter.write", "path": path, "fields": list(document.metadata.overrides)},
        )


__all__ = [
    "HIGHLIGHTER_KEYS",
    "VALID_HIGHLIGHTERS",
    "VALID_THEMES",
    "Document",
    "Metadata",
    "MetadataStore",
    "PublishState",
    "normalize_published",
    "parse_document",
]
