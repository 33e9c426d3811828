"""Configuration for the devcontainer feature composer.

Settings come from built-in defaults, an optional TOML file with a
``[devcompose]`` table, and ``DEVCOMPOSE_*`` environment variables, in
increasing order of precedence.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import toml

from devcompose.constants import (
    CONFIG_SECTION,
    DEFAULT_ACCOUNTS,
    DEFAULT_BRANCH,
    DEFAULT_IMAGE,
    DEFAULT_LOOKUP_TIMEOUT,
    DEFAULT_REGISTRY,
    DEFAULT_WORKER_COUNT,
    ENV_PREFIX,
)
from devcompose.errors import ConfigurationError

_TRUE_VALUES = ("true", "1", "yes", "on")


class ComposerConfig:
    """Container for composer configuration data."""

    def __init__(self) -> None:
        """Initialize the ComposerConfig with default values."""
        # Feature sources
        self.accounts: list[str] = list(DEFAULT_ACCOUNTS)
        self.branch: str = DEFAULT_BRANCH
        self.registry: str = DEFAULT_REGISTRY

        # Resolution
        self.timeout: float = DEFAULT_LOOKUP_TIMEOUT
        self.workers: int = DEFAULT_WORKER_COUNT
        self.offline: bool = False

        # Output
        self.image: str = DEFAULT_IMAGE

    def update(self, values: Mapping[str, Any]) -> None:
        """Apply settings from a mapping, validating their types.

        Parameters
        ----------
        values : Mapping[str, Any]
            Setting names mapped to values; unknown names are rejected

        Raises
        ------
        ConfigurationError
            If a setting is unknown or has an invalid value

        """
        for name, value in values.items():
            if name == "accounts":
                accounts = [value] if isinstance(value, str) else value
                if not isinstance(accounts, list) or not all(isinstance(a, str) and a for a in accounts):
                    msg = f"accounts must be a list of account names, got {value!r}"
                    raise ConfigurationError(msg)
                self.accounts = accounts
            elif name in ("branch", "registry", "image"):
                if not isinstance(value, str) or not value:
                    msg = f"{name} must be a non-empty string, got {value!r}"
                    raise ConfigurationError(msg)
                setattr(self, name, value)
            elif name == "timeout":
                self.timeout = _positive_number(name, value, float)
            elif name == "workers":
                self.workers = int(_positive_number(name, value, int))
            elif name == "offline":
                self.offline = value.lower() in _TRUE_VALUES if isinstance(value, str) else bool(value)
            else:
                msg = f"Unknown configuration setting: {name}"
                raise ConfigurationError(msg)


def _positive_number(name: str, value: Any, kind: type) -> float:
    try:
        number = kind(value)
    except (TypeError, ValueError) as e:
        msg = f"{name} must be a number, got {value!r}"
        raise ConfigurationError(msg) from e
    if number <= 0:
        msg = f"{name} must be positive, got {value!r}"
        raise ConfigurationError(msg)
    return number


def read_config_file(config_file: Path) -> dict[str, Any]:
    """Read the ``[devcompose]`` table from a TOML file.

    Parameters
    ----------
    config_file : Path
        Path to the TOML file

    Returns
    -------
    dict[str, Any]
        The settings in the table, empty if the table is absent

    Raises
    ------
    ConfigurationError
        If the file cannot be read or parsed

    """
    if not config_file.exists():
        msg = f"Configuration file {config_file} not found"
        raise ConfigurationError(msg)

    try:
        data = toml.load(str(config_file))
    except (OSError, toml.TomlDecodeError) as e:
        msg = f"Could not parse configuration file {config_file}: {e}"
        raise ConfigurationError(msg) from e

    section = data.get(CONFIG_SECTION, {})
    if not isinstance(section, dict):
        msg = f"[{CONFIG_SECTION}] in {config_file} must be a table"
        raise ConfigurationError(msg)
    return section


def read_environment(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Collect ``DEVCOMPOSE_*`` overrides from the environment.

    ``DEVCOMPOSE_ACCOUNTS`` is a comma separated list.

    """
    environ = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX) :].lower()
        if name == "accounts":
            values[name] = [account.strip() for account in value.split(",") if account.strip()]
        else:
            values[name] = value
    return values


def load_config(config_file: Path | None = None, environ: Mapping[str, str] | None = None) -> ComposerConfig:
    """Load configuration from defaults, a TOML file and the environment.

    Parameters
    ----------
    config_file : Path | None, optional
        Optional TOML configuration file, by default None
    environ : Mapping[str, str] | None, optional
        Environment to read overrides from, by default ``os.environ``

    Returns
    -------
    ComposerConfig
        The merged configuration

    Raises
    ------
    ConfigurationError
        If the file or an override is invalid

    """
    config = ComposerConfig()
    if config_file is not None:
        config.update(read_config_file(config_file))
    config.update(read_environment(environ))
    return config
