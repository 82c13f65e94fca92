"""Settings package exports."""

from .accounts import Account, AccountRegistry
from .loader import (
    AIProviderSettings,
    CliOverrides,
    ConfigResolver,
    ConfigSources,
    PROVIDER_NAMES,
    RuntimeConfig,
    load_config,
    load_config_file,
    locate_config_file,
)

__all__ = [
    "AIProviderSettings",
    "Account",
    "AccountRegistry",
    "CliOverrides",
    "ConfigResolver",
    "ConfigSources",
    "PROVIDER_NAMES",
    "RuntimeConfig",
    "load_config",
    "load_config_file",
    "locate_config_file",
]
