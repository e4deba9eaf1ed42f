"""Configuration loading utilities for netbox.toml."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

from ..errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATHS = (Path("config/netbox.toml"), Path("netbox.toml"))


def find_config_file(path: str | Path | None = None) -> Path | None:
    """Return the configuration file to use, or None if none exists.

    An explicit ``path`` is returned as given so that callers can report a
    missing file; otherwise ``config/netbox.toml`` is tried before
    ``netbox.toml`` in the current directory.
    """
    if path is not None:
        return Path(path)
    for candidate in DEFAULT_CONFIG_PATHS:
        if candidate.exists():
            return candidate
    return None


def load_processor_config(path: str | Path | None = None) -> dict[str, Any] | None:
    """Load the ``[netbox]`` table from a TOML configuration file.

    Example file::

        [netbox]
        netbox_addr = "netbox.example.com"
        netbox_token = "env:NETBOX_TOKEN"
        preserve_original = true
        entry_ttl = "4h"

        [netbox.transforms]
        ip-to-device = ["source-address", "destination-address"]

    Returns:
        The ``[netbox]`` table as a dict, or None if no file was found.

    Raises:
        ConfigError: if the file cannot be read or is not valid TOML, or the
            ``[netbox]`` entry is not a table.
    """
    config_file = find_config_file(path)
    if config_file is None or not config_file.exists():
        logger.debug(f"No configuration file found at {config_file or 'default locations'}")
        return None

    try:
        with config_file.open("rb") as handle:
            data = tomllib.load(handle)
    except OSError as exc:
        raise ConfigError(f"Could not read {config_file}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse {config_file}: {exc}") from exc

    section = data.get("netbox", {})
    if not isinstance(section, dict):
        raise ConfigError(f"[netbox] in {config_file} must be a table")
    logger.debug(f"Loaded configuration from {config_file}")
    return section


__all__ = ["find_config_file", "load_processor_config"]
