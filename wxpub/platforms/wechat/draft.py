"""WeChat draft management."""

from __future__ import annotations

import json
from typing import Any, Mapping

import requests

from ...settings import Account
from .api import WeChatApiError, parse_json_response
from .credentials import WeChatCredentialRegistry, WeChatToken


class WeChatDraftClient:
    """Client for creating drafts via the WeChat API."""

    _DRAFT_URL = "https://api.weixin.qq.com/cgi-bin/draft/add"

    def __init__(
        self,
        credentials: WeChatCredentialRegistry,
        *,
        timeout: float = 30.0,
    ) -> None:
        self._credentials = credentials
        self._timeout = timeout

    def create_draft(self, account: Account, payload: Mapping[str, Any]) -> str:
        """Submit a draft payload and return the new draft's ``media_id``."""
        store = self._credentials.for_account(account)

        def send(token: WeChatToken) -> dict[str, Any]:
            return self._post(payload, token)

        data = store.call(send)
        errcode = data.get("errcode")
        if errcode not in (0, None):
            raise WeChatApiError(
                "草稿提交被微信拒绝",
                details={"errcode": errcode, "errmsg": data.get("errmsg")},
            )

        media_id = data.get("media_id")
        if not media_id:
            raise WeChatApiError("草稿创建未返回 media_id", details=data)
        return str(media_id)

    def _post(self, payload: Mapping[str, Any], token: WeChatToken) -> dict[str, Any]:
        try:
            # WeChat stores \uXXXX escapes literally
            body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
            response = requests.post(
                self._DRAFT_URL,
                params={"access_token": token.value},
                data=body,
                headers={"Content-Type": "application/json; charset=utf-8"},
                timeout=self._timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise WeChatApiError(
                "草稿提交失败",
                details={"reason": str(exc)},
            ) from exc
        return parse_json_response(response, context="draft")

