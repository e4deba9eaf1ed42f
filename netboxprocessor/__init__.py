"""NetBox-backed tag enrichment for network telemetry records."""

from importlib.metadata import PackageNotFoundError, version

__all__ = ["get_version"]


def get_version() -> str:
    """Return the installed package version or a development marker."""
    try:
        return version("netboxprocessor")
    except PackageNotFoundError:
        return "0.0.0-dev"
