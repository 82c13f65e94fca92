"""Components for the WeChat article publishing workflow."""

from __future__ import annotations

from pathlib import Path
from typing import Callable
from urllib.parse import unquote, urlsplit

from bs4 import BeautifulSoup, Tag
from markdown import markdown

from wxpub.errors import PublishError
from wxpub.platforms import MediaUploadResult
from wxpub.services.wechat_models import ArticleMetadata, RenderedContent
from wxpub.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_THEME = "default"
DEFAULT_HIGHLIGHTER = "github"

# accent, body text, quote background
_THEME_PALETTES: dict[str, tuple[str, str, str]] = {
    "default": ("#1e6bb8", "#333333", "#f7f7f7"),
    "lapis": ("#3f51b5", "#40464f", "#eef0fb"),
    "maize": ("#c99a06", "#3d3a33", "#fdf8e6"),
    "orangeheart": ("#ef7060", "#3a3a3a", "#fff3f0"),
    "phycat": ("#2bae85", "#2f3a36", "#ecf8f3"),
    "pie": ("#e2567c", "#333333", "#fdf0f4"),
    "purple": ("#8e44ad", "#3b3346", "#f5eefa"),
    "rainbow": ("#e74c3c", "#2c3e50", "#fef9e7"),
}

# background, foreground
_HIGHLIGHTER_PALETTES: dict[str, tuple[str, str]] = {
    "github": ("#f6f8fa", "#24292e"),
    "github-dark": ("#0d1117", "#c9d1d9"),
    "vscode": ("#1e1e1e", "#d4d4d4"),
    "atom-one-light": ("#fafafa", "#383a42"),
    "atom-one-dark": ("#282c34", "#abb2bf"),
    "solarized-light": ("#fdf6e3", "#657b83"),
    "solarized-dark": ("#002b36", "#839496"),
    "monokai": ("#272822", "#f8f8f2"),
    "dracula": ("#282a36", "#f8f8f2"),
    "xcode": ("#ffffff", "#000000"),
}

_REMOTE_SCHEMES = {"http", "https", "data"}

ImageUploader = Callable[[Path], MediaUploadResult]


def theme_styles(theme: str) -> dict[str, str]:
    accent, text, quote_bg = _THEME_PALETTES.get(theme, _THEME_PALETTES[DEFAULT_THEME])
    return {
        "section": f"font-size:16px; line-height:1.75; color:{text}; word-break:break-word;",
        "h1": f"font-size:1.6em; font-weight:bold; color:{accent}; text-align:center; margin:1.2em 0 0.8em;",
        "h2": f"font-size:1.35em; font-weight:bold; color:{accent}; "
        f"border-bottom:2px solid {accent}; padding-bottom:0.3em; margin:1.2em 0 0.8em;",
        "h3": f"font-size:1.15em; font-weight:bold; color:{accent}; margin:1em 0 0.6em;",
        "p": "margin:1em 0; letter-spacing:0.05em;",
        "a": f"color:{accent}; text-decoration:none; border-bottom:1px solid {accent};",
        "blockquote": f"margin:1em 0; padding:0.6em 1em; border-left:4px solid {accent}; background:{quote_bg};",
        "ul": "margin:1em 0; padding-left:1.5em;",
        "ol": "margin:1em 0; padding-left:1.5em;",
        "li": "margin:0.3em 0;",
        "img": "display:block; max-width:100%; margin:1.5em auto; border-radius:8px;",
        "table": "border-collapse:collapse; width:100%; margin:1em 0;",
        "th": f"border:1px solid #ddd; padding:0.4em 0.8em; background:{quote_bg};",
        "td": "border:1px solid #ddd; padding:0.4em 0.8em;",
        "hr": f"border:none; border-top:1px solid {accent}; margin:2em 0;",
        "strong": f"color:{accent};",
    }


def highlighter_styles(highlighter: str) -> tuple[str, str]:
    """Inline styles for fenced code blocks and for inline ``code`` spans."""
    background, foreground = _HIGHLIGHTER_PALETTES.get(
        highlighter, _HIGHLIGHTER_PALETTES[DEFAULT_HIGHLIGHTER]
    )
    block = (
        f"display:block; overflow-x:auto; padding:1em; border-radius:6px; background:{background}; "
        f"color:{foreground}; font-size:13px; line-height:1.6; "
        "font-family:Menlo, Consolas, monospace; white-space:pre;"
    )
    inline = (
        f"padding:0.1em 0.3em; border-radius:3px; background:{background}; color:{foreground}; "
        "font-size:0.9em; font-family:Menlo, Consolas, monospace;"
    )
    return block, inline


def _merge_style(tag: Tag, style: str) -> None:
    existing = tag.get("style")
    tag["style"] = f"{style} {existing}".strip() if existing else style


def local_image_path(src: str, base_dir: Path) -> Path | None:
    """Resolve an ``<img src>`` to a local file path, or ``None`` when remote."""
    parts = urlsplit(src)
    if parts.scheme.lower() in _REMOTE_SCHEMES:
        return None
    if parts.scheme.lower() == "file":
        return Path(unquote(parts.path))
    if parts.scheme and len(parts.scheme) > 1:
        return None
    candidate = Path(unquote(src))
    return candidate if candidate.is_absolute() else base_dir / candidate


class ContentBuilder:
    """Builds the final HTML content for a WeChat article."""

    def build(
        self,
        markdown_text: str,
        *,
        base_dir: Path,
        upload_image: ImageUploader,
        theme: str | None = None,
        highlighter: str | None = None,
    ) -> RenderedContent:
        """
        Renders Markdown to WeChat-ready HTML.

        Local images are uploaded through ``upload_image`` and their ``src``
        replaced with the returned URL; remote images are left alone. Styles
        are inlined because WeChat strips ``<style>`` blocks.

        Args:
            markdown_text: The document body.
            base_dir: Directory relative image paths are resolved against.
            upload_image: Uploads one local image and returns its remote URL.
            theme: Name of the colour theme; unknown names use the default.
            highlighter: Name of the code block palette.

        Returns:
            The HTML plus every image uploaded, in document order.
        """
        html = self._markdown_to_html(markdown_text)
        soup = BeautifulSoup(html, "html.parser")
        uploads = self._upload_images(soup, base_dir, upload_image)
        self._apply_theme(soup, theme or DEFAULT_THEME)
        self._apply_highlighter(soup, highlighter or DEFAULT_HIGHLIGHTER)

        wrapper = soup.new_tag("section")
        wrapper["style"] = theme_styles(theme or DEFAULT_THEME)["section"]
        for child in list(soup.contents):
            wrapper.append(child.extract())
        soup.append(wrapper)
        return RenderedContent(html=str(soup), uploads=uploads)

    def _upload_images(
        self,
        soup: BeautifulSoup,
        base_dir: Path,
        upload_image: ImageUploader,
    ) -> list[MediaUploadResult]:
        uploads: list[MediaUploadResult] = []
        seen: dict[Path, MediaUploadResult] = {}
        for img in soup.find_all("img"):
            src = img.get("src")
            if not src:
                continue
            path = local_image_path(str(src), base_dir)
            if path is None:
                continue
            if not path.is_file():
                raise PublishError(
                    "正文引用的图片不存在",
                    details={"src": str(src), "path": str(path)},
                )
            key = path.resolve()
            result = seen.get(key)
            if result is None:
                result = upload_image(path)
                seen[key] = result
                uploads.append(result)
                LOGGER.debug(
                    "Inline image uploaded",
                    extra={"event": "wechat.inline_image", "path": path, "url": result.remote_url},
                )
            img["src"] = result.remote_url or str(src)
        return uploads

    def _apply_theme(self, soup: BeautifulSoup, theme: str) -> None:
        styles = theme_styles(theme)
        for name, style in styles.items():
            if name == "section":
                continue
            for tag in soup.find_all(name):
                _merge_style(tag, style)

    def _apply_highlighter(self, soup: BeautifulSoup, highlighter: str) -> None:
        block_style, inline_style = highlighter_styles(highlighter)
        for tag in soup.find_all("code"):
            if tag.find_parent("pre") is not None:
                _merge_style(tag, block_style)
            else:
                _merge_style(tag, inline_style)
        for pre in soup.find_all("pre"):
            _merge_style(pre, "margin:1em 0; padding:0;")
            pre["data-highlighter"] = highlighter

    def _markdown_to_html(self, markdown_text: str) -> str:
        return markdown(markdown_text, extensions=["extra", "sane_lists"])


class PayloadBuilder:
    """Builds the JSON payload for the WeChat Draft API."""

    def build(
        self,
        metadata: ArticleMetadata,
        thumb_media_id: str,
        content_html: str,
    ) -> dict[str, object]:
        """
        Builds the payload dictionary.

        Args:
            metadata: Article metadata (title, author, etc.).
            thumb_media_id: Permanent material id used as the article cover.
            content_html: The final HTML content of the article.

        Returns:
            A dictionary formatted for the WeChat `draft/add` endpoint.
        """
        if not thumb_media_id:
            raise PublishError("缺少封面 media_id，无法创建草稿", details={"path": str(metadata.article_path)})

        article: dict[str, object] = {
            "article_type": "news",
            "title": self._truncate_utf8(metadata.title, max_bytes=192),
            "content": content_html,
            "thumb_media_id": thumb_media_id,
        }
        if metadata.author:
            article["author"] = self._truncate_utf8(metadata.author, max_bytes=64)
        digest = self._prepare_digest(metadata.digest)
        if digest:
            article["digest"] = digest

        return {"articles": [article]}

    def _prepare_digest(self, digest: str | None) -> str | None:
        if not digest:
            return None
        return self._truncate_utf8(digest, max_bytes=256)

    def _truncate_utf8(self, text: str, *, max_bytes: int) -> str:
        encoded = text.encode("utf-8")
        if len(encoded) <= max_bytes:
            return text
        truncated = encoded[:max_bytes]
        while truncated and (truncated[-1] & 0xC0) == 0x80:
            truncated = truncated[:-1]
        return truncated.decode("utf-8", errors="ignore")
