"""WeChat image upload implementation."""

from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Any

import requests

from ...settings import Account
from ..base import MediaUploadResult, MediaUploader
from .api import WeChatApiError, parse_json_response
from .credentials import WeChatCredentialRegistry, WeChatToken


class WeChatMediaUploader(MediaUploader):
    """Uploads article images and cover thumbnails to WeChat."""

    _MATERIAL_URL = "https://api.weixin.qq.com/cgi-bin/material/add_material"
    _INLINE_URL = "https://api.weixin.qq.com/cgi-bin/media/uploadimg"

    def __init__(
        self,
        credentials: WeChatCredentialRegistry,
        *,
        timeout: float = 30.0,
    ) -> None:
        self._credentials = credentials
        self._timeout = timeout

    def upload_inline_image(self, account: Account, image: Path) -> MediaUploadResult:
        """Upload an image shown inside the article body; WeChat returns a URL."""
        data = self._upload(account, image, self._INLINE_URL, params={})
        remote_url = data.get("url")
        if not remote_url:
            raise WeChatApiError("上传成功但缺少 URL", details={"path": str(image), "response": data})
        return MediaUploadResult(local_path=image, remote_url=remote_url)

    def upload_cover(self, account: Account, image: Path) -> MediaUploadResult:
        """Upload an image to the permanent material library for use as thumbnail."""
        data = self._upload(account, image, self._MATERIAL_URL, params={"type": "image"})
        media_id = data.get("media_id")
        if not media_id:
            raise WeChatApiError("上传成功但缺少 media_id", details={"path": str(image), "response": data})
        return MediaUploadResult(local_path=image, remote_url=data.get("url"), media_id=media_id)

    def _upload(
        self,
        account: Account,
        image: Path,
        url: str,
        *,
        params: dict[str, str],
    ) -> dict[str, Any]:
        if not image.is_file():
            raise WeChatApiError("图片文件不存在", details={"path": str(image)})
        store = self._credentials.for_account(account)

        def send(token: WeChatToken) -> dict[str, Any]:
            return self._post_file(image, url, {**params, "access_token": token.value})

        data = store.call(send)
        errcode = data.get("errcode")
        if errcode not in (0, None):
            raise WeChatApiError(
                "上传图片被微信拒绝",
                details={"path": str(image), "errcode": errcode, "errmsg": data.get("errmsg")},
            )
        return data

    def _post_file(self, image: Path, url: str, params: dict[str, str]) -> dict[str, Any]:
        mime_type = mimetypes.guess_type(image.name)[0] or "image/jpeg"
        try:
            with image.open("rb") as stream:
                files = {"media": (image.name, stream, mime_type)}
                response = requests.post(url, params=params, files=files, timeout=self._timeout)
                response.raise_for_status()
        except requests.RequestException as exc:
            raise WeChatApiError(
                "上传图片失败",
                details={"path": str(image), "reason": str(exc)},
            ) from exc
        except OSError as exc:
            raise WeChatApiError("读取图片失败", details={"path": str(image), "reason": str(exc)}) from exc
        return parse_json_response(response, context=image.name)
