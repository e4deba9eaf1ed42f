"""Data models for NetBox address resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict


class ElementKind(str, Enum):
    """Inventory entity kinds involved in address resolution."""

    DEVICE = "device"
    SITE = "site"
    REGION = "region"


@dataclass(frozen=True, slots=True)
class NetboxElement:
    """One inventory entity as referenced from a NetBox response.

    Attributes:
        id: NetBox object identifier
        name: Display name of the object
        url: Absolute API URL of the object's own detail record
    """

    id: int
    name: str
    url: str


@dataclass(frozen=True, slots=True)
class NetboxDevice:
    """Fully resolved topology for one IP address.

    Cache entries are replaced wholesale on refresh, never mutated.
    """

    device: NetboxElement
    site: NetboxElement
    region: NetboxElement
    resolved_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def age(self, now: datetime) -> timedelta:
        """Return how long ago this entry was resolved."""
        return now - self.resolved_at

    def is_fresh(self, ttl: timedelta, now: datetime) -> bool:
        """Return True while the entry is within ``ttl`` of ``now``."""
        return self.age(now) <= ttl

    def to_tags(self, prefix: str = "") -> Dict[str, str]:
        """Return the derived tag set, e.g. ``source-device`` for prefix ``source-``."""
        return {
            f"{prefix}device": self.device.name,
            f"{prefix}site": self.site.name,
            f"{prefix}region": self.region.name,
        }


__all__ = ["ElementKind", "NetboxElement", "NetboxDevice"]
