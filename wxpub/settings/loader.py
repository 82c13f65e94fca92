"""Helpers for loading configuration and resolving the runtime settings.

Four sources feed the effective configuration, highest precedence first:
command-line flags, the config file (TOML or YAML), environment variables and
built-in defaults. Every field is resolved independently, so a value missing
from a higher source falls through to the next one.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

try:  # pragma: no cover - Python 3.11+ includes tomllib
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for older versions
    import tomli as tomllib  # type: ignore[no-redef]

from ..errors import ConfigError
from ..utils.logging import get_logger
from .accounts import Account, AccountRegistry

LOGGER = get_logger(__name__)

CONFIG_ENV_VAR = "WXPUB_CONFIG"
DEFAULT_CONFIG_NAMES = ("config.toml", "config.yaml", "config.yml")
ENV_ACCOUNT_NAME = "default"

PROVIDER_NAMES = ("openai", "gemini")

_PROVIDER_KEY_ENV = {"openai": "OPENAI_API_KEY", "gemini": "GEMINI_API_KEY"}
_PROVIDER_URL_ENV = {"openai": "OPENAI_BASE_URL", "gemini": "GEMINI_BASE_URL"}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}

DEFAULTS: dict[str, Any] = {
    "ai_provider": None,
    "verbose": False,
    "workers": 4,
    "state_dir": "~/.cache/wxpub",
}


def default_config_dir() -> Path:
    return Path.home() / ".config" / "wxpub"


@dataclass(frozen=True, slots=True)
class AIProviderSettings:
    """Provider selection; only built when both name and key resolve."""

    name: str
    api_key: str
    base_url: str | None = None
    text_model: str | None = None
    image_model: str | None = None

    def __repr__(self) -> str:
        return f"AIProviderSettings(name={self.name!r}, base_url={self.base_url!r})"


@dataclass(frozen=True, slots=True)
class RuntimeConfig:
    """Effective configuration for one invocation."""

    account: Account
    ai: AIProviderSettings | None
    verbose: bool
    workers: int
    state_dir: Path


@dataclass(slots=True)
class CliOverrides:
    """Values given explicitly on the command line; ``None`` means unset."""

    config_path: str | None = None
    account: str | None = None
    ai_provider: str | None = None
    ai_api_key: str | None = None
    verbose: bool | None = None
    workers: int | None = None


@dataclass(slots=True)
class ConfigSources:
    """Raw material for the resolver, kept around for introspection."""

    flags: CliOverrides
    file_path: Path | None
    file_data: dict[str, Any]
    env: Mapping[str, str]
    defaults: Mapping[str, Any] = field(default_factory=lambda: dict(DEFAULTS))


def locate_config_file(
    explicit: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path | None:
    """Return the config file to load; explicit locations must exist."""
    if explicit:
        return Path(explicit).expanduser()
    env_value = env.get(CONFIG_ENV_VAR)
    if env_value:
        return Path(env_value).expanduser()
    config_dir = default_config_dir()
    for name in DEFAULT_CONFIG_NAMES:
        candidate = config_dir / name
        if candidate.is_file():
            return candidate
    return None


def load_config_file(path: Path) -> dict[str, Any]:
    """Parse a TOML or YAML config file into a plain mapping."""
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")
    suffix = path.suffix.lower()
    try:
        if suffix in {".yaml", ".yml"}:
            with path.open("r", encoding="utf-8") as fp:
                data = yaml.safe_load(fp)
        elif suffix == ".toml":
            with path.open("rb") as fp:
                data = tomllib.load(fp)
        else:
            raise ConfigError(
                f"Unsupported config format '{suffix}'; use .toml, .yaml or .yml",
                details={"path": str(path)},
            )
    except (tomllib.TOMLDecodeError, yaml.YAMLError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Failed to parse config file {path}", details={"reason": str(exc)}) from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}", details={"reason": str(exc)}) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a table at the top level")
    return data


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _section(data: Mapping[str, Any], *keys: str) -> Mapping[str, Any]:
    current: Any = data
    for key in keys:
        if not isinstance(current, Mapping):
            return {}
        current = current.get(key)
    return current if isinstance(current, Mapping) else {}


def _non_empty(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_bool(value: Any, *, source: str) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigError(f"{source} must be a boolean, got {value!r}")


def _parse_workers(value: Any, *, source: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ConfigError(f"{source} must be a positive integer, got {value!r}")
    try:
        workers = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{source} must be a positive integer, got {value!r}") from exc
    if workers < 1:
        raise ConfigError(f"{source} must be a positive integer, got {value!r}")
    return workers


class ConfigResolver:
    """Merges flags, config file, environment and defaults."""

    def __init__(
        self,
        flags: CliOverrides | None = None,
        *,
        env: Mapping[str, str] | None = None,
        defaults: Mapping[str, Any] | None = None,
    ) -> None:
        self._flags = flags or CliOverrides()
        self._env = env if env is not None else os.environ
        self._defaults = dict(DEFAULTS if defaults is None else defaults)
        self._sources: ConfigSources | None = None

    @property
    def sources(self) -> ConfigSources:
        if self._sources is None:
            path = locate_config_file(self._flags.config_path, self._env)
            data: dict[str, Any] = {}
            if path is not None:
                data = load_config_file(path)
                LOGGER.debug("Loaded config file", extra={"event": "config.file", "path": path})
            self._sources = ConfigSources(
                flags=self._flags,
                file_path=path,
                file_data=data,
                env=self._env,
                defaults=self._defaults,
            )
        return self._sources

    def build_registry(self) -> AccountRegistry:
        """Accounts from the config file, or the implicit environment account."""
        data = self.sources.file_data
        if data.get("accounts"):
            return AccountRegistry.load(data)
        env_account = self._env_account()
        registry_source: dict[str, Any] = {"accounts": {}}
        if env_account is not None:
            registry_source["accounts"][ENV_ACCOUNT_NAME] = env_account
        if data.get("default_account"):
            registry_source["default_account"] = data["default_account"]
        return AccountRegistry.load(registry_source)

    def _env_account(self) -> dict[str, str] | None:
        app_id = _non_empty(self._env.get("WECHAT_APP_ID"))
        app_secret = _non_empty(self._env.get("WECHAT_APP_SECRET"))
        if app_id and app_secret:
            return {
                "app_id": app_id,
                "app_secret": app_secret,
                "description": "From WECHAT_APP_ID/WECHAT_APP_SECRET",
            }
        if app_id or app_secret:
            LOGGER.warning(
                "Ignoring incomplete WeChat credentials in the environment",
                extra={"event": "config.env_account", "has_app_id": bool(app_id)},
            )
        return None

    def resolve_ai(self) -> AIProviderSettings | None:
        flags = self._flags
        file_ai = _section(self.sources.file_data, "ai")

        provider = _first(
            _non_empty(flags.ai_provider),
            _non_empty(file_ai.get("provider")),
            _non_empty(self._env.get("WXPUB_AI_PROVIDER")),
            _non_empty(self._defaults.get("ai_provider")),
        )
        if provider is not None:
            provider = provider.lower()
            if provider not in PROVIDER_NAMES:
                raise ConfigError(
                    f"Unknown AI provider '{provider}'",
                    details={"supported": list(PROVIDER_NAMES)},
                )
            candidates: tuple[str, ...] = (provider,)
        else:
            candidates = PROVIDER_NAMES

        for name in candidates:
            api_key = self._provider_value(name, "api_key", _PROVIDER_KEY_ENV[name], flag=flags.ai_api_key)
            if not api_key:
                continue
            provider_section = _section(file_ai, name)
            return AIProviderSettings(
                name=name,
                api_key=api_key,
                base_url=self._provider_value(name, "base_url", _PROVIDER_URL_ENV[name]),
                text_model=_non_empty(provider_section.get("text_model")),
                image_model=_non_empty(provider_section.get("image_model")),
            )

        if provider is not None:
            LOGGER.info(
                "AI provider selected without an API key; cover generation disabled",
                extra={"event": "config.ai", "provider": provider},
            )
        return None

    def _provider_value(self, name: str, key: str, env_var: str, *, flag: str | None = None) -> str | None:
        section = _section(self.sources.file_data, "ai", name)
        return _first(
            _non_empty(flag),
            _non_empty(section.get(key)),
            _non_empty(self._env.get(env_var)),
        )

    def resolve(self, registry: AccountRegistry | None = None) -> RuntimeConfig:
        """Build the immutable runtime configuration.

        Raises :class:`ConfigError` or :class:`AccountNotFoundError` before any
        document is touched.
        """
        data = self.sources.file_data
        flags = self._flags
        registry = registry or self.build_registry()
        # the file's default_account outranks WXPUB_ACCOUNT
        env_account = None if registry.default_name else _non_empty(self._env.get("WXPUB_ACCOUNT"))
        account = registry.resolve(_first(_non_empty(flags.account), env_account))

        verbose = _first(
            flags.verbose,
            _parse_bool(data.get("verbose"), source="verbose"),
            _parse_bool(self._env.get("WXPUB_VERBOSE"), source="WXPUB_VERBOSE"),
            self._defaults.get("verbose"),
        )
        workers = _first(
            _parse_workers(flags.workers, source="--workers"),
            _parse_workers(data.get("workers"), source="workers"),
            _parse_workers(self._env.get("WXPUB_WORKERS"), source="WXPUB_WORKERS"),
            self._defaults.get("workers"),
        )
        state_dir = _first(
            _non_empty(data.get("state_dir")),
            _non_empty(self._env.get("WXPUB_STATE_DIR")),
            self._defaults.get("state_dir"),
        )

        config = RuntimeConfig(
            account=account,
            ai=self.resolve_ai(),
            verbose=bool(verbose),
            workers=int(workers or 1),
            state_dir=Path(str(state_dir)).expanduser(),
        )
        LOGGER.debug(
            "Runtime configuration resolved",
            extra={
                "event": "config.resolved",
                "account": account.name,
                "ai_provider": config.ai.name if config.ai else None,
                "workers": config.workers,
            },
        )
        return config


def load_config(
    flags: CliOverrides | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> RuntimeConfig:
    return ConfigResolver(flags, env=env).resolve()


__all__ = [
    "AIProviderSettings",
    "CONFIG_ENV_VAR",
    "CliOverrides",
    "ConfigResolver",
    "ConfigSources",
    "ENV_ACCOUNT_NAME",
    "PROVIDER_NAMES",
    "RuntimeConfig",
    "load_config",
    "load_config_file",
    "locate_config_file",
]
