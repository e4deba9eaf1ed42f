"""Runtime configuration helpers for the NetBox tag processor."""

from __future__ import annotations

import logging
import math
import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Mapping

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_ENTRY_TTL = timedelta(hours=4)
DEFAULT_TIMEOUT_SECONDS = 30.0

_DURATION_UNITS: Dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)"
_DURATION_RE = re.compile(rf"(?:{_DURATION_PART})+")
_DURATION_PART_RE = re.compile(_DURATION_PART)


def _coerce_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "f", "no", "n", "off"}:
        return False
    return default


def _coerce_float(value: Any, default: float | None) -> float | None:
    if value is None:
        return default
    try:
        return float(str(value).strip())
    except ValueError:
        return default


def _coerce_int(value: Any, default: int | None) -> int | None:
    if value is None:
        return default
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def _resolve_secret(value: Any) -> str:
    """Return ``value`` with ``env:VAR`` references resolved from the environment."""
    if value is None:
        return ""
    text = str(value)
    if text.startswith("env:"):
        return os.getenv(text[4:], "")
    return text


def _duration_seconds(value: Any) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        raise ConfigError("empty duration")
    try:
        return float(text)
    except ValueError:
        pass
    if not _DURATION_RE.fullmatch(text):
        raise ConfigError(f"invalid duration: {value!r}")
    return sum(float(amount) * _DURATION_UNITS[unit] for amount, unit in _DURATION_PART_RE.findall(text))


def parse_duration(value: Any) -> timedelta:
    """Parse a duration into a non-negative timedelta.

    Accepts Go-style duration strings (``"4h"``, ``"1h30m"``, ``"1.5h"``,
    ``"500ms"``), plain numbers interpreted as seconds, and timedeltas. A zero
    duration is valid and makes every later lookup refresh its entry.

    Raises:
        ConfigError: if the value is empty, unparsable, negative or too large
            to represent.
    """
    if isinstance(value, timedelta):
        duration = value
    elif isinstance(value, bool) or value is None:
        raise ConfigError(f"invalid duration: {value!r}")
    else:
        try:
            seconds = _duration_seconds(value)
            if not math.isfinite(seconds):
                raise ConfigError(f"duration out of range: {value!r}")
            duration = timedelta(seconds=seconds)
        except OverflowError:
            raise ConfigError(f"duration out of range: {value!r}") from None

    if duration < timedelta(0):
        raise ConfigError(f"duration must not be negative: {value!r}")
    return duration


def _normalize_transforms(value: Any) -> Dict[str, List[str]]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"transforms must be a mapping of transform name to tag keys, got {type(value).__name__}")
    transforms: Dict[str, List[str]] = {}
    for name, tag_keys in value.items():
        if isinstance(tag_keys, str):
            tag_keys = [tag_keys]
        if not isinstance(tag_keys, (list, tuple)):
            raise ConfigError(f"tag keys for transform {name!r} must be a list")
        # keep declaration order, drop duplicates
        transforms[str(name)] = list(dict.fromkeys(str(key) for key in tag_keys))
    return transforms


@dataclass(slots=True)
class ProcessorSettings:
    """Normalized configuration for the NetBox client, cache and tag processor."""

    netbox_addr: str = ""
    netbox_token: str = ""
    preserve_original: bool = False
    preserve_on_failure: bool = False
    entry_ttl: timedelta = DEFAULT_ENTRY_TTL
    verify_tls: bool = False
    timeout_seconds: float | None = DEFAULT_TIMEOUT_SECONDS
    max_entries: int | None = None
    transforms: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_sources(
        cls,
        config: Mapping[str, Any] | None = None,
        env_prefix: str = "NETBOXPROC_",
    ) -> "ProcessorSettings":
        """Build settings from defaults, optional config mapping, and environment variables.

        Precedence order (highest to lowest):
        1. Explicit config mapping values
        2. Environment variables
        3. Default values

        Unparsable values never abort construction: they are logged and the
        default is used instead.
        """
        cfg: dict[str, Any] = {k: v for k, v in (config or {}).items() if v is not None}
        env = os.environ
        prefix = env_prefix.upper()

        def pick(key: str, env_name: str) -> Any:
            if key in cfg:
                return cfg[key]
            return env.get(f"{prefix}{env_name}")

        defaults = cls()

        raw_ttl = pick("entry_ttl", "ENTRY_TTL")
        if raw_ttl is None:
            logger.info(f"No cache TTL specified, using default {DEFAULT_ENTRY_TTL}")
            entry_ttl = DEFAULT_ENTRY_TTL
        else:
            try:
                entry_ttl = parse_duration(raw_ttl)
            except ConfigError as exc:
                logger.warning(f"Invalid cache TTL ({exc}), using default {DEFAULT_ENTRY_TTL}")
                entry_ttl = DEFAULT_ENTRY_TTL

        raw_timeout = pick("timeout_seconds", "TIMEOUT")
        timeout: float | None = DEFAULT_TIMEOUT_SECONDS
        if raw_timeout is not None:
            timeout = _coerce_float(raw_timeout, None)
            if timeout is None:
                logger.warning(f"Invalid timeout {raw_timeout!r}, using default {DEFAULT_TIMEOUT_SECONDS}s")
                timeout = DEFAULT_TIMEOUT_SECONDS
            elif timeout <= 0:
                # zero or negative disables the transport timeout
                timeout = None

        max_entries = _coerce_int(pick("max_entries", "MAX_ENTRIES"), None)
        if max_entries is not None and max_entries <= 0:
            max_entries = None

        try:
            transforms = _normalize_transforms(cfg.get("transforms"))
        except ConfigError as exc:
            logger.warning(f"Ignoring transforms configuration: {exc}")
            transforms = {}

        netbox_addr = str(pick("netbox_addr", "ADDR") or "").strip()
        netbox_token = _resolve_secret(pick("netbox_token", "TOKEN"))
        if not netbox_addr:
            logger.warning("No NetBox address configured; lookups will fail")

        return cls(
            netbox_addr=netbox_addr,
            netbox_token=netbox_token,
            preserve_original=_coerce_bool(pick("preserve_original", "PRESERVE_ORIGINAL"), defaults.preserve_original),
            preserve_on_failure=_coerce_bool(
                pick("preserve_on_failure", "PRESERVE_ON_FAILURE"), defaults.preserve_on_failure
            ),
            entry_ttl=entry_ttl,
            verify_tls=_coerce_bool(pick("verify_tls", "VERIFY_TLS"), defaults.verify_tls),
            timeout_seconds=timeout,
            max_entries=max_entries,
            transforms=transforms,
        )


def load_processor_settings(
    config: Mapping[str, Any] | None = None,
    env_prefix: str = "NETBOXPROC_",
) -> ProcessorSettings:
    """Convenience wrapper used by CLI entry points."""
    return ProcessorSettings.from_sources(config=config, env_prefix=env_prefix)


__all__ = [
    "DEFAULT_ENTRY_TTL",
    "DEFAULT_TIMEOUT_SECONDS",
    "ProcessorSettings",
    "load_processor_settings",
    "parse_duration",
]
