from __future__ import annotations

from pathlib import Path

import pytest

from wxpub.errors import AccountNotFoundError, ConfigError
from wxpub.settings import CliOverrides, ConfigResolver, load_config, load_config_file

TOML_CONFIG = """
default_account = "blog"
workers = 3
state_dir = "/tmp/wxpub-state"

[accounts.blog]
app_id = "wx-blog"
app_secret = "s-blog"
description = "Personal blog"

[accounts.work]
app_id = "wx-work"
app_secret = "s-work"

[ai]
provider = "gemini"

[ai.gemini]
api_key = "file-gemini"
image_model = "imagen-custom"
"""

YAML_CONFIG = """
default_account: blog
workers: 3
state_dir: /tmp/wxpub-state
accounts:
  blog:
    app_id: wx-blog
    app_secret: s-blog
    description: Personal blog
  work:
    app_id: wx-work
    app_secret: s-work
ai:
  provider: gemini
  gemini:
    api_key: file-gemini
    image_model: imagen-custom
"""

ENV_ACCOUNT = {"WECHAT_APP_ID": "wx-env", "WECHAT_APP_SECRET": "s-env"}


def _write(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_toml_and_yaml_configs_resolve_identically(tmp_path: Path) -> None:
    toml_path = _write(tmp_path, "config.toml", TOML_CONFIG)
    yaml_path = _write(tmp_path, "config.yaml", YAML_CONFIG)

    from_toml = load_config(CliOverrides(config_path=str(toml_path)), env={})
    from_yaml = load_config(CliOverrides(config_path=str(yaml_path)), env={})

    assert from_toml == from_yaml
    assert from_toml.account.name == "blog"
    assert from_toml.workers == 3
    assert from_toml.state_dir == Path("/tmp/wxpub-state")
    assert from_toml.ai is not None
    assert from_toml.ai.name == "gemini"
    assert from_toml.ai.api_key == "file-gemini"
    assert from_toml.ai.image_model == "imagen-custom"


def test_precedence_flags_over_file_over_env_over_defaults(tmp_path: Path) -> None:
    path = _write(tmp_path, "config.toml", TOML_CONFIG)
    env = {
        **ENV_ACCOUNT,
        "WXPUB_WORKERS": "7",
        "WXPUB_VERBOSE": "true",
        "GEMINI_API_KEY": "env-gemini",
        "WXPUB_STATE_DIR": "/tmp/env-state",
    }

    flags = CliOverrides(config_path=str(path), account="work", ai_api_key="flag-key", workers=9)
    config = load_config(flags, env=env)

    assert config.account.name == "work"
    assert config.workers == 9
    assert config.ai is not None and config.ai.api_key == "flag-key"
    # not set by flag or file, so the environment wins over the default
    assert config.verbose is True
    # the file wins over the environment
    assert config.state_dir == Path("/tmp/wxpub-state")


def test_each_field_falls_through_independently(tmp_path: Path) -> None:
    path = _write(tmp_path, "config.toml", '[accounts.only]\napp_id = "a"\napp_secret = "b"\n')
    config = load_config(CliOverrides(config_path=str(path)), env={"WXPUB_WORKERS": "2"})

    assert config.account.name == "only"
    assert config.workers == 2
    assert config.verbose is False
    assert config.ai is None
    assert config.state_dir == Path("~/.cache/wxpub").expanduser()


def test_env_account_named_default_when_file_declares_none() -> None:
    config = load_config(env=ENV_ACCOUNT)
    assert config.account.name == "default"
    assert config.account.app_id == "wx-env"


def test_config_file_found_through_env_var(tmp_path: Path) -> None:
    path = _write(tmp_path, "wx.yml", YAML_CONFIG)
    config = load_config(env={"WXPUB_CONFIG": str(path)})
    assert config.account.name == "blog"


def test_config_file_found_in_default_location(isolated_config_dir: Path) -> None:
    isolated_config_dir.mkdir(parents=True)
    (isolated_config_dir / "config.toml").write_text(TOML_CONFIG, encoding="utf-8")
    config = load_config(env={})
    assert config.account.app_id == "wx-blog"


def test_wxpub_account_env_selects_account_without_file_default(tmp_path: Path) -> None:
    text = TOML_CONFIG.replace('default_account = "blog"\n', "")
    path = _write(tmp_path, "config.toml", text)
    config = load_config(CliOverrides(config_path=str(path)), env={"WXPUB_ACCOUNT": "work"})
    assert config.account.name == "work"


def test_provider_inferred_from_first_available_key() -> None:
    config = load_config(env={**ENV_ACCOUNT, "OPENAI_API_KEY": "sk-1", "GEMINI_API_KEY": "g-1"})
    assert config.ai is not None
    assert config.ai.name == "openai"

    config = load_config(env={**ENV_ACCOUNT, "GEMINI_API_KEY": "g-1"})
    assert config.ai is not None
    assert config.ai.name == "gemini"


def test_provider_without_key_disables_ai() -> None:
    config = load_config(CliOverrides(ai_provider="openai"), env={**ENV_ACCOUNT, "GEMINI_API_KEY": "g"})
    assert config.ai is None


def test_openai_base_url_from_env() -> None:
    config = load_config(
        env={**ENV_ACCOUNT, "OPENAI_API_KEY": "sk", "OPENAI_BASE_URL": "https://proxy.example/v1"}
    )
    assert config.ai is not None
    assert config.ai.base_url == "https://proxy.example/v1"


def test_unknown_provider_is_a_config_error() -> None:
    with pytest.raises(ConfigError):
        load_config(env={**ENV_ACCOUNT, "WXPUB_AI_PROVIDER": "llama"})


@pytest.mark.parametrize("value", ["0", "-3", "many"])
def test_invalid_worker_counts_are_rejected(value: str) -> None:
    with pytest.raises(ConfigError):
        load_config(env={**ENV_ACCOUNT, "WXPUB_WORKERS": value})


def test_missing_explicit_config_file_is_a_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(CliOverrides(config_path=str(tmp_path / "absent.toml")), env=ENV_ACCOUNT)


@pytest.mark.parametrize(
    ("name", "text"),
    [
        ("bad.toml", "workers = [unclosed"),
        ("bad.yaml", "accounts: [unclosed"),
        ("list.yaml", "- a\n- b\n"),
        ("config.ini", "[section]\n"),
    ],
)
def test_unparsable_config_files_raise(tmp_path: Path, name: str, text: str) -> None:
    path = _write(tmp_path, name, text)
    with pytest.raises(ConfigError):
        load_config_file(path)


def test_account_missing_secret_is_a_config_error(tmp_path: Path) -> None:
    path = _write(tmp_path, "config.toml", '[accounts.blog]\napp_id = "a"\n')
    with pytest.raises(ConfigError):
        load_config(CliOverrides(config_path=str(path)), env={})


def test_ambiguous_accounts_raise_account_not_found(tmp_path: Path) -> None:
    text = TOML_CONFIG.replace('default_account = "blog"\n', "")
    path = _write(tmp_path, "config.toml", text)
    with pytest.raises(AccountNotFoundError):
        load_config(CliOverrides(config_path=str(path)), env={})


def test_no_account_anywhere_raises_account_not_found() -> None:
    with pytest.raises(AccountNotFoundError):
        load_config(env={})


def test_resolver_exposes_sources(tmp_path: Path) -> None:
    path = _write(tmp_path, "config.toml", TOML_CONFIG)
    resolver = ConfigResolver(CliOverrides(config_path=str(path)), env={})
    assert resolver.sources.file_path == path
    assert resolver.sources.file_data["default_account"] == "blog"
