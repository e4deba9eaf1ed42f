"""Error taxonomy for NetBox tag enrichment.

Resolution errors are local to a single address lookup: the processor logs
them and moves on to the next tag. ConfigError is raised by parsers in the
settings layer, which degrades to defaults instead of propagating it.
"""

from __future__ import annotations


class NetboxProcessorError(Exception):
    """Base class for all netboxprocessor exceptions."""


class ResolutionError(NetboxProcessorError):
    """Raised when an address cannot be resolved to a device/site/region triple.

    Attributes:
        ip_address: Address being resolved, when known
        step: Lookup step that failed (``device``, ``site`` or ``region``)
    """

    def __init__(self, message: str, *, ip_address: str | None = None, step: str | None = None) -> None:
        super().__init__(message)
        self.ip_address = ip_address
        self.step = step


class EmptyResult(ResolutionError):
    """Raised when the address search returned no matches."""


class MalformedResponse(ResolutionError):
    """Raised when a response body does not have the expected JSON shape."""


class TransportError(ResolutionError):
    """Raised on network failures and non-2xx responses."""


class ConfigError(NetboxProcessorError, ValueError):
    """Raised when a configuration value cannot be parsed."""


__all__ = [
    "NetboxProcessorError",
    "ResolutionError",
    "EmptyResult",
    "MalformedResponse",
    "TransportError",
    "ConfigError",
]
