"""NetBox resolution client, models and cache."""

from __future__ import annotations

from .cache import NetboxDeviceCache
from .models import ElementKind, NetboxDevice, NetboxElement
from .netbox_client import NetboxClient, parse_element

__all__ = [
    "ElementKind",
    "NetboxClient",
    "NetboxDevice",
    "NetboxDeviceCache",
    "NetboxElement",
    "parse_element",
]
