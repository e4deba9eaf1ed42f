"""Telemetry record model passed through the tag processor."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping


@dataclass(slots=True)
class Metric:
    """A telemetry record: measurement name, string tags and opaque fields.

    The processor only ever mutates ``tags``.
    """

    name: str
    tags: Dict[str, str] = field(default_factory=dict)
    fields: Dict[str, Any] = field(default_factory=dict)
    timestamp: int | None = None

    def add_tag(self, key: str, value: str) -> None:
        """Set ``key`` to ``value``, overwriting any existing tag."""
        self.tags[key] = value

    def remove_tag(self, key: str) -> None:
        """Remove ``key`` if present."""
        self.tags.pop(key, None)

    def has_tag(self, key: str) -> bool:
        """Return True if ``key`` is present."""
        return key in self.tags

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Metric":
        """Build a Metric from its JSON representation.

        Raises:
            ValueError: if ``name`` is missing or ``tags``/``fields`` are not objects.
        """
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise ValueError("metric requires a non-empty 'name'")
        tags = data.get("tags") or {}
        fields = data.get("fields") or {}
        if not isinstance(tags, Mapping) or not isinstance(fields, Mapping):
            raise ValueError("metric 'tags' and 'fields' must be objects")
        timestamp = data.get("timestamp")
        return cls(
            name=name,
            tags={str(k): str(v) for k, v in tags.items()},
            fields=dict(fields),
            timestamp=int(timestamp) if timestamp is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return this metric as a plain dictionary for JSON output."""
        data: Dict[str, Any] = {"name": self.name, "tags": dict(self.tags), "fields": dict(self.fields)}
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp
        return data


__all__ = ["Metric"]
