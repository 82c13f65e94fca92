"""Credential management for WeChat integrations."""

from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Optional

from ...settings import Account
from ...utils.file_helper import atomic_write_text
from ...utils.logging import get_logger
from .api import TOKEN_INVALID_CODES, AccessTokenResponse, WeChatApiClient

LOGGER = get_logger(__name__)


@dataclass(slots=True)
class WeChatToken:
    """Holds the current access token state."""

    value: str
    expires_at: datetime


class WeChatCredentialStore:
    """Manages the access token of one account, cached on disk.

    Thread-safe: concurrent workers publishing with the same account share a
    single token and at most one of them talks to the token endpoint.
    """

    _REFRESH_MARGIN = timedelta(minutes=5)

    def __init__(
        self,
        account: Account,
        *,
        token_cache_path: Path,
        api_client: WeChatApiClient,
        force_refresh: bool = False,
    ) -> None:
        self._account = account
        self._api_client = api_client
        self._token_cache_path = token_cache_path
        self._lock = threading.Lock()
        self._token: WeChatToken | None = None
        self._refresh_pending = force_refresh

    @property
    def account(self) -> Account:
        return self._account

    @property
    def token_cache_path(self) -> Path:
        return self._token_cache_path

    def load_cached_token(self) -> Optional[WeChatToken]:
        """Retrieve the cached token when available and not expired."""
        path = self._token_cache_path
        if not path.exists():
            return None
        try:
            raw = path.read_text(encoding="utf-8")
            payload = json.loads(raw)
            token_value = payload["access_token"]
            expires_at = datetime.fromisoformat(payload["expires_at"])
            token = WeChatToken(value=token_value, expires_at=expires_at)
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            LOGGER.debug(
                "Ignoring unreadable token cache",
                extra={"event": "wechat.token_cache", "path": path, "error": str(exc)},
            )
            return None
        if self._is_expired(token):
            return None
        return token

    def store_token(self, token: WeChatToken) -> None:
        """Persist the token details for reuse."""
        payload = {
            "app_id": self._account.app_id,
            "access_token": token.value,
            "expires_at": token.expires_at.isoformat(),
        }
        path = self._token_cache_path
        try:
            atomic_write_text(path, json.dumps(payload))
            if os.name != "nt":
                os.chmod(path, 0o600)
        except OSError as exc:
            # the token stays usable in memory for this run
            LOGGER.warning(
                "Failed to persist WeChat token cache",
                extra={"event": "wechat.token_cache", "path": path, "error": str(exc)},
            )

    def request_new_token(self) -> WeChatToken:
        """Fetch a fresh token from WeChat and return it."""
        response: AccessTokenResponse = self._api_client.fetch_access_token(
            self._account.app_id, self._account.app_secret
        )
        token = WeChatToken(value=response.token, expires_at=response.expires_at)
        self.store_token(token)
        LOGGER.info(
            "Obtained new WeChat access token",
            extra={"event": "wechat.token", "account": self._account.name},
        )
        return token

    def get_token(self, *, force_refresh: bool = False) -> WeChatToken:
        """Return a valid access token, refreshing if needed."""
        with self._lock:
            if force_refresh or self._refresh_pending:
                self._refresh_pending = False
                self._token = self.request_new_token()
                return self._token
            if self._token is not None and not self._is_expired(self._token):
                return self._token
            self._token = self.load_cached_token() or self.request_new_token()
            return self._token

    def invalidate(self, stale: WeChatToken) -> WeChatToken:
        """Replace ``stale`` with a fresh token unless another worker already did."""
        with self._lock:
            if self._token is not None and self._token.value != stale.value:
                return self._token
            self._token = self.request_new_token()
            return self._token

    def call(self, request: Callable[[WeChatToken], dict[str, Any]]) -> dict[str, Any]:
        """Run ``request`` with a token, retrying once when WeChat rejects it."""
        token = self.get_token()
        data = request(token)
        if data.get("errcode") in TOKEN_INVALID_CODES:
            LOGGER.info(
                "WeChat rejected access token; refreshing",
                extra={"event": "wechat.token_retry", "account": self._account.name, "errcode": data.get("errcode")},
            )
            data = request(self.invalidate(token))
        return data

    def _is_expired(self, token: WeChatToken) -> bool:
        now = datetime.now(tz=UTC)
        return token.expires_at <= now + self._REFRESH_MARGIN


class WeChatCredentialRegistry:
    """Hands out one credential store per account, keyed by AppID."""

    def __init__(
        self,
        *,
        cache_dir: Path,
        api_client: WeChatApiClient | None = None,
        force_refresh: bool = False,
    ) -> None:
        self._cache_dir = cache_dir
        self._api_client = api_client or WeChatApiClient()
        self._force_refresh = force_refresh
        self._stores: dict[str, WeChatCredentialStore] = {}
        self._lock = threading.Lock()

    def for_account(self, account: Account) -> WeChatCredentialStore:
        with self._lock:
            store = self._stores.get(account.app_id)
            if store is None:
                store = WeChatCredentialStore(
                    account,
                    token_cache_path=self._cache_dir / f"wechat_token_{account.app_id}.json",
                    api_client=self._api_client,
                    force_refresh=self._force_refresh,
                )
                self._stores[account.app_id] = store
            return store
