from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
import requests

from wxpub.errors import PublishError
from wxpub.platforms import MediaUploadResult, PublishRequest
from wxpub.platforms.wechat import (
    WeChatApiError,
    WeChatCredentialRegistry,
    WeChatCredentialStore,
    WeChatDraftClient,
    WeChatMediaUploader,
    WeChatPublisher,
)
from wxpub.platforms.wechat.api import AccessTokenResponse
from wxpub.settings import Account

ACCOUNT = Account(name="main", app_id="wx123", app_secret="secret")


class StubApiClient:
    def __init__(self) -> None:
        self.calls = 0

    def fetch_access_token(self, app_id: str, app_secret: str) -> AccessTokenResponse:
        self.calls += 1
        return AccessTokenResponse(
            token=f"TOKEN_{self.calls}",
            expires_at=datetime.now(tz=UTC) + timedelta(hours=2),
        )


class FakeResponse:
    def __init__(self, payload: dict[str, Any], status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code
        self.text = json.dumps(payload)

    def json(self) -> dict[str, Any]:
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class StubMediaUploader:
    def __init__(self) -> None:
        self.inline: list[Path] = []
        self.covers: list[Path] = []

    def upload_inline_image(self, account: Account, image: Path) -> MediaUploadResult:
        self.inline.append(image)
        return MediaUploadResult(local_path=image, remote_url=f"https://mmbiz.example/{image.name}")

    def upload_cover(self, account: Account, image: Path) -> MediaUploadResult:
        self.covers.append(image)
        return MediaUploadResult(local_path=image, media_id=f"THUMB_{image.stem}")


class StubDraftClient:
    def __init__(self) -> None:
        self.payload: dict[str, Any] | None = None

    def create_draft(self, account: Account, payload: dict[str, Any]) -> str:
        self.payload = payload
        return "DRAFT_1"


def _store(tmp_path: Path, api: StubApiClient, *, force_refresh: bool = False) -> WeChatCredentialStore:
    return WeChatCredentialStore(
        ACCOUNT,
        token_cache_path=tmp_path / "wechat_token_wx123.json",
        api_client=api,  # type: ignore[arg-type]
        force_refresh=force_refresh,
    )


def test_token_is_cached_on_disk_and_reused(tmp_path: Path) -> None:
    api = StubApiClient()
    first = _store(tmp_path, api).get_token()

    second = _store(tmp_path, api).get_token()

    assert first.value == second.value == "TOKEN_1"
    assert api.calls == 1
    cached = json.loads((tmp_path / "wechat_token_wx123.json").read_text(encoding="utf-8"))
    assert cached["app_id"] == "wx123"
    assert cached["access_token"] == "TOKEN_1"


def test_expired_cache_triggers_refresh(tmp_path: Path) -> None:
    cache = tmp_path / "wechat_token_wx123.json"
    expired = datetime.now(tz=UTC) - timedelta(minutes=1)
    cache.write_text(json.dumps({"access_token": "OLD", "expires_at": expired.isoformat()}), encoding="utf-8")
    api = StubApiClient()

    token = _store(tmp_path, api).get_token()

    assert token.value == "TOKEN_1"


def test_force_refresh_applies_once(tmp_path: Path) -> None:
    api = StubApiClient()
    _store(tmp_path, api).get_token()

    store = _store(tmp_path, api, force_refresh=True)
    assert store.get_token().value == "TOKEN_2"
    assert store.get_token().value == "TOKEN_2"
    assert api.calls == 2


def test_call_retries_once_with_fresh_token(tmp_path: Path) -> None:
    api = StubApiClient()
    store = _store(tmp_path, api)
    seen: list[str] = []

    def request(token) -> dict[str, Any]:
        seen.append(token.value)
        if len(seen) == 1:
            return {"errcode": 40001, "errmsg": "invalid credential"}
        return {"errcode": 0, "media_id": "M"}

    data = store.call(request)

    assert data["media_id"] == "M"
    assert seen == ["TOKEN_1", "TOKEN_2"]


def test_call_does_not_retry_other_errors(tmp_path: Path) -> None:
    api = StubApiClient()
    store = _store(tmp_path, api)
    attempts: list[int] = []

    def request(token) -> dict[str, Any]:
        attempts.append(1)
        return {"errcode": 45009, "errmsg": "api freq out of limit"}

    assert store.call(request)["errcode"] == 45009
    assert len(attempts) == 1


def test_registry_shares_store_per_app_id(tmp_path: Path) -> None:
    registry = WeChatCredentialRegistry(cache_dir=tmp_path, api_client=StubApiClient())  # type: ignore[arg-type]
    other = Account(name="alias", app_id="wx123", app_secret="secret")

    assert registry.for_account(ACCOUNT) is registry.for_account(other)
    assert registry.for_account(ACCOUNT).token_cache_path == tmp_path / "wechat_token_wx123.json"


def test_media_uploader_posts_cover_to_material_library(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    image = tmp_path / "cover.png"
    image.write_bytes(b"png")
    captured: dict[str, Any] = {}

    def fake_post(url: str, *, params, files, timeout):
        captured.update(url=url, params=params, filename=files["media"][0], mime=files["media"][2])
        return FakeResponse({"media_id": "THUMB", "url": "https://mmbiz.example/c.png"})

    monkeypatch.setattr(requests, "post", fake_post)
    registry = WeChatCredentialRegistry(cache_dir=tmp_path, api_client=StubApiClient())  # type: ignore[arg-type]

    result = WeChatMediaUploader(registry).upload_cover(ACCOUNT, image)

    assert result.media_id == "THUMB"
    assert captured["url"].endswith("material/add_material")
    assert captured["params"] == {"type": "image", "access_token": "TOKEN_1"}
    assert (captured["filename"], captured["mime"]) == ("cover.png", "image/png")


def test_media_uploader_reports_rejection(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    image = tmp_path / "inline.jpg"
    image.write_bytes(b"jpg")
    monkeypatch.setattr(
        requests, "post", lambda url, **kwargs: FakeResponse({"errcode": 40009, "errmsg": "invalid image size"})
    )
    registry = WeChatCredentialRegistry(cache_dir=tmp_path, api_client=StubApiClient())  # type: ignore[arg-type]

    with pytest.raises(WeChatApiError) as excinfo:
        WeChatMediaUploader(registry).upload_inline_image(ACCOUNT, image)

    assert excinfo.value.errcode == 40009


def test_media_uploader_wraps_network_errors(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    image = tmp_path / "inline.jpg"
    image.write_bytes(b"jpg")

    def boom(url: str, **kwargs):
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(requests, "post", boom)
    registry = WeChatCredentialRegistry(cache_dir=tmp_path, api_client=StubApiClient())  # type: ignore[arg-type]

    with pytest.raises(WeChatApiError) as excinfo:
        WeChatMediaUploader(registry).upload_inline_image(ACCOUNT, image)

    assert "unreachable" in excinfo.value.details["reason"]


def test_draft_client_sends_utf8_json(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, Any] = {}

    def fake_post(url: str, *, params, data, headers, timeout):
        captured.update(url=url, params=params, data=data)
        return FakeResponse({"media_id": "DRAFT"})

    monkeypatch.setattr(requests, "post", fake_post)
    registry = WeChatCredentialRegistry(cache_dir=tmp_path, api_client=StubApiClient())  # type: ignore[arg-type]

    media_id = WeChatDraftClient(registry).create_draft(ACCOUNT, {"articles": [{"title": "标题"}]})

    assert media_id == "DRAFT"
    assert captured["url"].endswith("draft/add")
    assert "标题".encode("utf-8") in captured["data"]


def test_publisher_uses_explicit_cover(tmp_path: Path) -> None:
    source = tmp_path / "post.md"
    cover = tmp_path / "cover.png"
    (tmp_path / "inline.png").write_bytes(b"png")
    uploader = StubMediaUploader()
    drafts = StubDraftClient()
    publisher = WeChatPublisher(uploader, drafts)  # type: ignore[arg-type]

    media_id = publisher.submit(
        ACCOUNT,
        PublishRequest(title="标题", body="Intro\n\n![i](inline.png)\n", source_path=source, cover_path=cover),
    )

    assert media_id == "DRAFT_1"
    assert uploader.covers == [cover]
    article = drafts.payload["articles"][0]
    assert article["thumb_media_id"] == "THUMB_cover"
    assert set(article) == {"article_type", "title", "content", "thumb_media_id"}
    assert "https://mmbiz.example/inline.png" in article["content"]


def test_publisher_falls_back_to_first_inline_image(tmp_path: Path) -> None:
    (tmp_path / "first.png").write_bytes(b"png")
    (tmp_path / "second.png").write_bytes(b"png")
    uploader = StubMediaUploader()
    drafts = StubDraftClient()
    publisher = WeChatPublisher(uploader, drafts)  # type: ignore[arg-type]

    publisher.submit(
        ACCOUNT,
        PublishRequest(title="T", body="![a](first.png)\n\n![b](second.png)\n", source_path=tmp_path / "p.md"),
    )

    assert uploader.covers == [tmp_path / "first.png"]
    assert drafts.payload["articles"][0]["thumb_media_id"] == "THUMB_first"


def test_publisher_without_any_image_fails(tmp_path: Path) -> None:
    drafts = StubDraftClient()
    publisher = WeChatPublisher(StubMediaUploader(), drafts)  # type: ignore[arg-type]

    with pytest.raises(PublishError, match="缺少封面图片"):
        publisher.submit(ACCOUNT, PublishRequest(title="T", body="text only", source_path=tmp_path / "p.md"))

    assert drafts.payload is None
