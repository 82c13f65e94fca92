"""Named WeChat credential sets and active-account selection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping

from ..errors import AccountNotFoundError, ConfigError


@dataclass(frozen=True, slots=True)
class Account:
    """AppID/AppSecret pair for one Official Account."""

    name: str
    app_id: str
    app_secret: str
    description: str | None = None

    def __repr__(self) -> str:
        return f"Account(name={self.name!r}, app_id={self.app_id!r})"


class AccountRegistry:
    """Insertion-ordered, read-only collection of accounts."""

    def __init__(self, accounts: Iterable[Account] = (), *, default: str | None = None) -> None:
        self._accounts: dict[str, Account] = {}
        for account in accounts:
            if account.name in self._accounts:
                raise ConfigError(f"Duplicate account name '{account.name}'")
            self._accounts[account.name] = account
        self._default = default or None

    @classmethod
    def load(cls, source: Mapping[str, Any]) -> "AccountRegistry":
        """Build a registry from a parsed configuration mapping.

        ``accounts`` may be a table keyed by account name or a list of tables
        carrying a ``name`` key; ``default_account`` names the default.
        """
        section = source.get("accounts") or {}
        entries: list[tuple[str, Any]]
        if isinstance(section, Mapping):
            entries = [(str(name), data) for name, data in section.items()]
        elif isinstance(section, list):
            entries = []
            for item in section:
                if not isinstance(item, Mapping) or not item.get("name"):
                    raise ConfigError("Account entries in a list need a 'name' key")
                entries.append((str(item["name"]), item))
        else:
            raise ConfigError("'accounts' must be a table or a list of tables")

        accounts = [_build_account(name, data) for name, data in entries]
        default = source.get("default_account")
        return cls(accounts, default=str(default) if default else None)

    @property
    def default_name(self) -> str | None:
        return self._default

    def __len__(self) -> int:
        return len(self._accounts)

    def __contains__(self, name: object) -> bool:
        return name in self._accounts

    def __iter__(self) -> Iterator[Account]:
        return iter(self._accounts.values())

    def resolve(self, name: str | None = None) -> Account:
        """Return the explicit account, else the default, else the only one."""
        if name:
            try:
                return self._accounts[name]
            except KeyError as exc:
                raise AccountNotFoundError(
                    f"Account '{name}' not found", details={"available": list(self._accounts)}
                ) from exc

        if self._default:
            try:
                return self._accounts[self._default]
            except KeyError as exc:
                raise AccountNotFoundError(
                    f"Default account '{self._default}' not found",
                    details={"available": list(self._accounts)},
                ) from exc

        if len(self._accounts) == 1:
            return next(iter(self._accounts.values()))

        if not self._accounts:
            raise AccountNotFoundError(
                "No WeChat account configured; set WECHAT_APP_ID/WECHAT_APP_SECRET "
                "or add accounts to the config file"
            )
        raise AccountNotFoundError(
            "Several accounts configured but none selected; pass --account or set default_account",
            details={"available": list(self._accounts)},
        )

    def list(self) -> list[tuple[str, str | None]]:
        return [(account.name, account.description) for account in self._accounts.values()]


def _build_account(name: str, data: Any) -> Account:
    if not isinstance(data, Mapping):
        raise ConfigError(f"Account '{name}' must be a table")
    app_id = str(data.get("app_id") or "").strip()
    app_secret = str(data.get("app_secret") or "").strip()
    if not app_id:
        raise ConfigError(f"Account '{name}' is missing app_id")
    if not app_secret:
        raise ConfigError(f"Account '{name}' is missing app_secret")
    description = data.get("description")
    return Account(
        name=name,
        app_id=app_id,
        app_secret=app_secret,
        description=str(description) if description else None,
    )


__all__ = ["Account", "AccountRegistry"]
