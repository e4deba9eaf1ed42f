"""In-memory TTL cache for resolved NetBox devices."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterator, Optional, Protocol

from ..errors import ResolutionError
from ..settings import DEFAULT_ENTRY_TTL
from .models import NetboxDevice

logger = logging.getLogger(__name__)


class DeviceResolver(Protocol):
    """Anything able to resolve an IP address to a NetboxDevice."""

    def resolve(self, ip_address: str) -> NetboxDevice:
        """Resolve ``ip_address`` or raise ResolutionError."""


@dataclass
class _KeyLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class NetboxDeviceCache:
    """Cache of address resolutions with a fixed per-entry TTL.

    An entry is served only while ``now - resolved_at <= ttl``; stale entries
    are dropped and re-resolved before anything is returned. Failed
    resolutions are not cached, so the next lookup retries.

    Locking: a guard lock protects the entry mapping and is never held across
    network calls. Each address additionally has its own lock, held for the
    whole lookup, so concurrent refreshes of one address resolve once while
    lookups of different addresses run in parallel.

    The cache grows with the number of distinct addresses unless
    ``max_entries`` is set, in which case the least recently used entry is
    evicted on overflow.
    """

    def __init__(
        self,
        resolver: DeviceResolver,
        ttl: timedelta = DEFAULT_ENTRY_TTL,
        *,
        max_entries: int | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            resolver: Resolution backend, usually a NetboxClient
            ttl: Maximum age of a served entry
            max_entries: Optional bound on the number of cached addresses
            now: Optional clock returning timezone-aware datetimes
        """
        self.resolver = resolver
        self.ttl = ttl
        self.max_entries = max_entries
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._entries: "OrderedDict[str, NetboxDevice]" = OrderedDict()
        self._key_locks: Dict[str, _KeyLock] = {}
        self._guard = threading.Lock()
        self.stats: Dict[str, int] = {"hits": 0, "misses": 0, "stores": 0, "evictions": 0, "errors": 0}

    @contextmanager
    def _locked(self, ip_address: str) -> Iterator[None]:
        with self._guard:
            slot = self._key_locks.get(ip_address)
            if slot is None:
                slot = self._key_locks[ip_address] = _KeyLock()
            slot.users += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._guard:
                slot.users -= 1
                if slot.users == 0 and self._key_locks.get(ip_address) is slot:
                    del self._key_locks[ip_address]

    def get(self, ip_address: str) -> NetboxDevice:
        """Return the resolved device for ``ip_address``, refreshing it if stale.

        Raises:
            ResolutionError: if the entry had to be resolved and resolution failed.
                The cache is left without an entry for the address.
        """
        with self._locked(ip_address):
            with self._guard:
                entry = self._entries.get(ip_address)
                if entry is not None and entry.is_fresh(self.ttl, self._now()):
                    self._entries.move_to_end(ip_address)
                    self.stats["hits"] += 1
                    logger.debug(f"Found valid cache entry for {ip_address}")
                    return entry
                if entry is not None:
                    del self._entries[ip_address]
                    logger.debug(f"Cache entry for {ip_address} is stale, refreshing")
                self.stats["misses"] += 1

            try:
                device = self.resolver.resolve(ip_address)
            except ResolutionError:
                with self._guard:
                    self.stats["errors"] += 1
                raise

            self._store(ip_address, device)
            return device

    def put(self, ip_address: str, device: NetboxDevice) -> None:
        """Store ``device`` for ``ip_address``, replacing any existing entry."""
        with self._locked(ip_address):
            self._store(ip_address, device)

    def _store(self, ip_address: str, device: NetboxDevice) -> None:
        with self._guard:
            self._entries[ip_address] = device
            self._entries.move_to_end(ip_address)
            self.stats["stores"] += 1
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    evicted, _ = self._entries.popitem(last=False)
                    self.stats["evictions"] += 1
                    logger.debug(f"Evicted least recently used entry {evicted}")

    def peek(self, ip_address: str) -> Optional[NetboxDevice]:
        """Return the stored entry without checking freshness or resolving."""
        with self._guard:
            return self._entries.get(ip_address)

    def invalidate(self, ip_address: str) -> bool:
        """Drop the entry for ``ip_address``. Returns True if one existed."""
        with self._guard:
            return self._entries.pop(ip_address, None) is not None

    def clear(self) -> None:
        """Drop all entries."""
        with self._guard:
            self._entries.clear()

    def cleanup_expired(self) -> Dict[str, int]:
        """Remove every entry older than the TTL.

        Returns:
            Dictionary with ``scanned`` and ``deleted`` counters.
        """
        result = {"scanned": 0, "deleted": 0}
        with self._guard:
            now = self._now()
            for ip_address, entry in list(self._entries.items()):
                result["scanned"] += 1
                if not entry.is_fresh(self.ttl, now):
                    del self._entries[ip_address]
                    result["deleted"] += 1
        return result

    def snapshot(self) -> Dict[str, int]:
        """Return a copy of the current cache counters."""
        with self._guard:
            return dict(self.stats)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def __contains__(self, ip_address: object) -> bool:
        with self._guard:
            return ip_address in self._entries


__all__ = ["DeviceResolver", "NetboxDeviceCache"]
