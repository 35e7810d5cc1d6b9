# =============================================================================
# Account Configuration
# =============================================================================
# Loads and saves imapwire account configuration.
#
# Location: $XDG_CONFIG_HOME/imapwire/config.toml, falling back to
# ~/.config/imapwire/config.toml when XDG_CONFIG_HOME is unset.
#
# Example config.toml:
#
#   [general]
#   default_account = "work"
#
#   [accounts.work]
#   host = "imap.example.com"
#   port = 993
#   encryption = "ssl"
#   username = "user@example.com"
#
#   [accounts.work.proxy]
#   socket = "proxy.example.com:3128"
#
# Passwords normally stay out of this file; see Account.keyring_service.
# The loaded Config is a plain value handed to whoever builds clients; there
# are no module-level defaults that change at runtime.
# =============================================================================

import os
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import tomli_w

from imapwire.core import Account, ConfigError, ProxyConfig


# =============================================================================
# Paths
# =============================================================================

# Directory name under the XDG config home
APP_NAME = "imapwire"


def get_xdg_config_home() -> Path:
    """Directory holding config.toml ($XDG_CONFIG_HOME/imapwire)."""
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        base = Path(xdg_config)
    else:
        base = Path.home() / ".config"
    return base / APP_NAME


# =============================================================================
# Config
# =============================================================================

# Account fields that are read from and written to config.toml
_ACCOUNT_KEYS = (
    "host", "port", "protocol", "encryption", "validate_cert", "timeout",
    "username", "password", "authentication",
    "sequence", "delimiter", "debug", "uid_cache", "message_mask",
)


@dataclass
class Config:
    """
    Top-level configuration: the configured accounts.

    Attributes:
        default_account: Name of the account used when none is given.
        accounts: Configured accounts, keyed by name.

    Usage:
        >>> config = Config.load()
        >>> account = config.account()      # the default account
        >>> work = config.account("work")
    """
    default_account: str = ""
    accounts: dict[str, Account] = field(default_factory=dict)

    @staticmethod
    def config_file_path() -> Path:
        """Default location of config.toml."""
        return get_xdg_config_home() / "config.toml"

    # -------------------------------------------------------------------------
    # Account Lookup
    # -------------------------------------------------------------------------

    def account(self, name: str | None = None) -> Account:
        """
        Resolve an account by name.

        Args:
            name: Account name. None picks the default account, or the only
                  account if exactly one is configured.

        Raises:
            ConfigError: If no matching account exists.
        """
        if name is None:
            name = self.default_account
            if not name and len(self.accounts) == 1:
                name = next(iter(self.accounts))

        if not name:
            raise ConfigError("No account given and no default_account configured")

        try:
            return self.accounts[name]
        except KeyError:
            raise ConfigError(f"Unknown account: {name}") from None

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """
        Read accounts from a TOML file. A missing file yields an empty Config.

        Args:
            path: Config file to read instead of the XDG location.

        Raises:
            ConfigError: Malformed TOML or invalid account settings.
        """
        config_path = path or cls.config_file_path()

        if not config_path.exists():
            return cls()

        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid config file: {e}") from e

        return cls._from_dict(data)

    def save(self, path: Path | None = None) -> Path:
        """
        Write accounts to a TOML file, creating parent directories.

        Returns:
            Path written.
        """
        config_path = path or self.config_file_path()
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "wb") as f:
            tomli_w.dump(self._to_dict(), f)

        return config_path

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        """
        Build a Config from parsed TOML.

        Raises:
            ConfigError: For unknown keys or invalid account values.
        """
        config = cls()

        config.default_account = data.get("general", {}).get("default_account", "")

        # One [accounts.<name>] table per account
        for name, acct_data in data.get("accounts", {}).items():
            unknown = set(acct_data) - set(_ACCOUNT_KEYS) - {"proxy"}
            if unknown:
                raise ConfigError(
                    f"Account {name!r}: unknown option(s) {', '.join(sorted(unknown))}"
                )

            options = {key: acct_data[key] for key in _ACCOUNT_KEYS if key in acct_data}
            try:
                proxy = ProxyConfig(**acct_data.get("proxy", {}))
            except TypeError as e:
                raise ConfigError(f"Account {name!r}: invalid proxy settings: {e}") from e

            config.accounts[name] = Account(name=name, proxy=proxy, **options)

        return config

    def _to_dict(self) -> dict[str, Any]:
        """
        Inverse of _from_dict.

        TOML has no null, so unset values are left out. So are empty
        passwords, which mean "use the keyring".
        """
        accounts: dict[str, Any] = {}
        data: dict[str, Any] = {
            "general": {"default_account": self.default_account},
            "accounts": accounts,
        }
        for name, account in self.accounts.items():
            entry = {
                key: getattr(account, key)
                for key in _ACCOUNT_KEYS
                if getattr(account, key) is not None
            }
            if not account.password:
                entry.pop("password", None)
            proxy = {k: v for k, v in asdict(account.proxy).items() if v is not None}
            if proxy.get("socket"):
                entry["proxy"] = proxy
            accounts[name] = entry

        return data


# =============================================================================
# Diagnostics
# =============================================================================

def print_paths() -> None:
    """Show where imapwire looks for its configuration."""
    print(f"Config directory: {get_xdg_config_home()}")
    print(f"Config file:      {Config.config_file_path()}")


__all__ = ["APP_NAME", "Config", "ConfigError", "get_xdg_config_home", "print_paths"]
