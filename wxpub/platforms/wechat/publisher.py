"""WeChat content publisher."""

from __future__ import annotations

from pathlib import Path

from ...errors import PublishError
from ...services.wechat_components import ContentBuilder, PayloadBuilder
from ...services.wechat_models import ArticleMetadata
from ...settings import Account
from ...utils.logging import get_logger
from ..base import MediaUploadResult, PublishingCapability, PublishRequest
from .credentials import WeChatCredentialRegistry
from .draft import WeChatDraftClient
from .media import WeChatMediaUploader

LOGGER = get_logger(__name__)


class WeChatPublisher(PublishingCapability):
    """Coordinates WeChat-specific publishing steps.

    Renders the Markdown body, uploads inline images and the cover, then
    creates a draft. Returns the draft ``media_id``.
    """

    def __init__(
        self,
        media_uploader: WeChatMediaUploader,
        draft_client: WeChatDraftClient,
        content_builder: ContentBuilder | None = None,
        payload_builder: PayloadBuilder | None = None,
    ) -> None:
        self._media_uploader = media_uploader
        self._draft_client = draft_client
        self._content_builder = content_builder or ContentBuilder()
        self._payload_builder = payload_builder or PayloadBuilder()

    @classmethod
    def create(cls, *, state_dir: Path, force_refresh: bool = False) -> "WeChatPublisher":
        credentials = WeChatCredentialRegistry(cache_dir=state_dir, force_refresh=force_refresh)
        return cls(WeChatMediaUploader(credentials), WeChatDraftClient(credentials))

    def submit(self, account: Account, request: PublishRequest) -> str:
        rendered = self._content_builder.build(
            request.body,
            base_dir=request.source_path.parent,
            upload_image=lambda image: self._media_uploader.upload_inline_image(account, image),
            theme=request.theme,
            highlighter=request.highlighter,
        )
        thumb = self._upload_thumb(account, request, rendered.uploads)
        metadata = ArticleMetadata(
            article_path=request.source_path,
            title=request.title,
            author=request.author,
            digest=request.digest,
        )
        payload = self._payload_builder.build(metadata, thumb.media_id or "", rendered.html)
        media_id = self._draft_client.create_draft(account, payload)
        LOGGER.info(
            "WeChat draft created",
            extra={
                "event": "wechat.draft",
                "account": account.name,
                "path": request.source_path,
                "media_id": media_id,
                "inline_images": len(rendered.uploads),
            },
        )
        return media_id

    def _upload_thumb(
        self,
        account: Account,
        request: PublishRequest,
        uploads: list[MediaUploadResult],
    ) -> MediaUploadResult:
        if request.cover_path is not None:
            return self._media_uploader.upload_cover(account, request.cover_path)
        if uploads:
            first = uploads[0].local_path
            LOGGER.debug(
                "No cover image; using first inline image as thumbnail",
                extra={"event": "wechat.thumb_fallback", "path": request.source_path, "image": first},
            )
            return self._media_uploader.upload_cover(account, first)
        raise PublishError(
            "缺少封面图片，无法创建草稿：请设置 cover 或在正文中插入图片",
            details={"path": str(request.source_path)},
        )
