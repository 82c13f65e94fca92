"""WeChat API helpers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import requests

from ...errors import PublishError

# access_token invalid / expired; a fresh token is worth one retry.
TOKEN_INVALID_CODES = frozenset({40001, 40014, 42001})


class WeChatApiError(PublishError):
    """Raised when WeChat API calls fail."""

    @property
    def errcode(self) -> int | None:
        value = self.details.get("errcode")
        return value if isinstance(value, int) else None


@dataclass(slots=True)
class AccessTokenResponse:
    """Parsed access token response."""

    token: str
    expires_at: datetime


def parse_json_response(response: requests.Response, *, context: str) -> dict[str, Any]:
    """Decode a WeChat JSON body, raising :class:`WeChatApiError` on garbage."""
    try:
        data = response.json()
    except ValueError as exc:
        raise WeChatApiError(
            f"解析微信响应失败 ({context})",
            details={"response": response.text[:200]},
        ) from exc
    if not isinstance(data, dict):
        raise WeChatApiError(f"微信响应格式异常 ({context})", details={"response": response.text[:200]})
    return data


class WeChatApiClient:
    """Minimal client for interacting with WeChat Open Platform APIs."""

    _TOKEN_URL = "https://api.weixin.qq.com/cgi-bin/token"

    def __init__(self, *, timeout: float = 10.0) -> None:
        self._timeout = timeout

    def fetch_access_token(self, app_id: str, app_secret: str) -> AccessTokenResponse:
        """Retrieve a fresh access token from WeChat."""
        params = {
            "grant_type": "client_credential",
            "appid": app_id,
            "secret": app_secret,
        }
        try:
            response = requests.get(self._TOKEN_URL, params=params, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise WeChatApiError(
                "无法连接至微信服务器",
                details={"reason": str(exc)},
            ) from exc

        data = parse_json_response(response, context="token")
        if data.get("errcode") not in (0, None):
            raise WeChatApiError(
                "获取 access_token 失败",
                details={"errcode": data.get("errcode"), "errmsg": data.get("errmsg")},
            )

        token = data.get("access_token")
        expires_in = data.get("expires_in")
        if not token or not expires_in:
            raise WeChatApiError("响应缺少 access_token 或 expires_in 字段", details=data)

        try:
            expires_seconds = int(expires_in)
        except (TypeError, ValueError) as exc:
            raise WeChatApiError("expires_in 字段格式不正确", details={"expires_in": expires_in}) from exc

        expires_at = datetime.now(tz=UTC) + timedelta(seconds=expires_seconds)
        return AccessTokenResponse(token=token, expires_at=expires_at)
