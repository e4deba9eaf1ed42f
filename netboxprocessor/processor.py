"""Tag processor applying NetBox-backed transforms to telemetry records.

Configuration maps a transform name to the tag keys it applies to:

    [netbox.transforms]
    ip-to-device = ["source-address", "destination-address"]

``ip-to-device`` resolves the tag value (an IP address) to its NetBox device,
site and region and writes them as ``device``, ``site`` and ``region`` tags.
Tag keys starting with ``source`` or ``destination`` get the matching
``source-``/``destination-`` prefix on the derived tags, so that both ends of a
flow record can be enriched side by side.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping

from .enrichment.cache import NetboxDeviceCache
from .enrichment.models import NetboxDevice
from .enrichment.netbox_client import NetboxClient
from .errors import ResolutionError
from .metric import Metric
from .settings import ProcessorSettings

logger = logging.getLogger(__name__)

IP_TO_DEVICE = "ip-to-device"
SUPPORTED_TRANSFORMS = frozenset({IP_TO_DEVICE})

_PREFIXES = ("source", "destination")


def derive_prefix(tag_key: str) -> str:
    """Return the derived-tag prefix for ``tag_key``.

    >>> derive_prefix("source-address")
    'source-'
    >>> derive_prefix("destinationIp")
    'destination-'
    >>> derive_prefix("address")
    ''
    """
    for prefix in _PREFIXES:
        if tag_key.startswith(prefix):
            return f"{prefix}-"
    return ""


def build_tag_index(transforms: Mapping[str, Iterable[str]]) -> Dict[str, str]:
    """Invert a transform -> tag keys mapping into tag key -> transform.

    A tag key listed by several transforms stays bound to the first one.
    """
    index: Dict[str, str] = {}
    for transform, tag_keys in transforms.items():
        if transform not in SUPPORTED_TRANSFORMS:
            logger.warning(f"Unsupported transform {transform!r}; its tags will be left unchanged")
        for tag_key in tag_keys:
            bound = index.setdefault(tag_key, transform)
            if bound != transform:
                logger.warning(f"Tag key {tag_key!r} listed by {bound!r} and {transform!r}; using {bound!r}")
    return index


class NetboxProcessor:
    """Apply tag transforms to batches of metrics, in place."""

    def __init__(
        self,
        settings: ProcessorSettings,
        *,
        cache: NetboxDeviceCache | None = None,
        client: NetboxClient | None = None,
    ) -> None:
        """Initialize the processor.

        Args:
            settings: Processor configuration
            cache: Optional pre-built cache (for sharing or seeding)
            client: Optional NetBox client used when no cache is given
        """
        self.settings = settings
        if cache is None:
            client = client or NetboxClient.from_settings(settings)
            cache = NetboxDeviceCache(client, settings.entry_ttl, max_entries=settings.max_entries)
        self.cache = cache
        self.tag_index = build_tag_index(settings.transforms)
        self.stats: Dict[str, int] = {
            'metrics': 0,
            'tags_transformed': 0,
            'tags_skipped': 0,
            'lookup_failures': 0,
            'tags_removed': 0,
        }

    def transform_for_tag(self, tag_key: str) -> str | None:
        """Return the transform configured for ``tag_key``, if any."""
        return self.tag_index.get(tag_key)

    def apply(self, *metrics: Metric) -> List[Metric]:
        """Apply configured transforms to each metric's tags.

        Metrics are mutated and returned in the same order; none are created
        or dropped. Lookup failures are logged and never abort the batch.
        """
        for metric in metrics:
            self.stats['metrics'] += 1
            self._apply_one(metric)
        return list(metrics)

    def _apply_one(self, metric: Metric) -> None:
        # Iterate over a snapshot so that tags written below are not revisited.
        written: set[str] = set()
        for tag_key in list(metric.tags):
            if tag_key in written or tag_key not in metric.tags:
                continue
            tag_value = metric.tags[tag_key]

            transform = self.transform_for_tag(tag_key)
            if transform != IP_TO_DEVICE:
                self.stats['tags_skipped'] += 1
                logger.debug(f"No supported transform found for tag key: {tag_key}")
                continue

            new_tags = self._new_tags_for_ip(tag_key, tag_value)
            metric.tags.update(new_tags)
            written.update(new_tags)
            if new_tags:
                self.stats['tags_transformed'] += 1

            if self._should_remove(tag_key, new_tags):
                metric.remove_tag(tag_key)
                self.stats['tags_removed'] += 1

    def _new_tags_for_ip(self, tag_key: str, ip_address: str) -> Dict[str, str]:
        try:
            resolved: NetboxDevice = self.cache.get(ip_address)
        except ResolutionError as exc:
            self.stats['lookup_failures'] += 1
            logger.warning(f"Unable to get netbox data for ip: {ip_address}: {exc}")
            return {}
        return resolved.to_tags(derive_prefix(tag_key))

    def _should_remove(self, tag_key: str, new_tags: Mapping[str, str]) -> bool:
        if self.settings.preserve_original:
            return False
        if tag_key in new_tags:
            # the derived tag replaced the original under the same name
            return False
        if not new_tags and self.settings.preserve_on_failure:
            return False
        return True

    def get_stats(self) -> Dict[str, int]:
        """Return processor counters merged with cache counters."""
        stats = dict(self.stats)
        stats.update({f"cache_{key}": value for key, value in self.cache.snapshot().items()})
        return stats


__all__ = ["IP_TO_DEVICE", "NetboxProcessor", "SUPPORTED_TRANSFORMS", "build_tag_index", "derive_prefix"]
