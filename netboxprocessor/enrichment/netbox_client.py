"""NetBox API client resolving IP addresses to device, site and region.

An address is bound to an interface, the interface to its parent device, the
device to a site and the site to a region. Resolution therefore takes three
dependent requests, each following the detail URL returned by the previous one:

    GET {api}/ipam/ip-addresses/?q=<ip>%2F32   -> results[0].interface.device
    GET <device url>                           -> site
    GET <site url>                             -> region

Authentication uses the raw API token as the ``Authorization`` header value.
Certificate validation is off unless ``verify_tls`` is enabled: inventory
deployments commonly run NetBox behind self-signed certificates.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping
from urllib.parse import quote

import requests
import urllib3

from ..errors import EmptyResult, MalformedResponse, TransportError
from ..settings import DEFAULT_TIMEOUT_SECONDS, ProcessorSettings
from .models import ElementKind, NetboxDevice, NetboxElement

logger = logging.getLogger(__name__)


def _require_mapping(value: Any, where: str, kind: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise MalformedResponse(f"expected object at {where}, got {type(value).__name__}", step=kind)
    return value


def _decode_body(body: Any, kind: str) -> Any:
    if isinstance(body, (bytes, bytearray, str)):
        try:
            return json.loads(body)
        except (ValueError, RecursionError) as exc:
            raise MalformedResponse(f"invalid JSON in {kind} response: {exc}", step=kind) from exc
    return body


def parse_element(kind: ElementKind | str, body: Any) -> NetboxElement:
    """Parse one NetBox response into a NetboxElement of the given kind.

    Args:
        kind: ``device`` for an address-search response, ``site`` for a device
            detail record, ``region`` for a site detail record
        body: Raw response bytes/str, or already decoded JSON

    Returns:
        The referenced element's id, name and detail URL

    Raises:
        EmptyResult: if the address search matched nothing
        MalformedResponse: if any expected key is missing or has the wrong type
    """
    kind = ElementKind(kind)
    data = _decode_body(body, kind.value)
    root = _require_mapping(data, "response root", kind.value)

    if kind is ElementKind.DEVICE:
        results = root.get("results")
        if not isinstance(results, list):
            raise MalformedResponse("address search response has no results list", step=kind.value)
        if not results:
            raise EmptyResult("No results found in netbox", step=kind.value)
        first = _require_mapping(results[0], "results[0]", kind.value)
        root = _require_mapping(first.get("interface"), "results[0].interface", kind.value)

    element = _require_mapping(root.get(kind.value), kind.value, kind.value)

    element_id = element.get("id")
    if isinstance(element_id, bool) or not isinstance(element_id, (int, float)):
        raise MalformedResponse(f"{kind.value}.id is not a number", step=kind.value)
    if isinstance(element_id, float) and not element_id.is_integer():
        raise MalformedResponse(f"{kind.value}.id is not an integer", step=kind.value)

    name = element.get("name")
    url = element.get("url")
    if not isinstance(name, str):
        raise MalformedResponse(f"{kind.value}.name is not a string", step=kind.value)
    if not isinstance(url, str) or not url:
        raise MalformedResponse(f"{kind.value}.url is not a string", step=kind.value)

    return NetboxElement(id=int(element_id), name=name, url=url)


def build_api_base_url(netbox_addr: str) -> str:
    """Return the API root for a NetBox host, defaulting to https."""
    addr = netbox_addr.strip().rstrip("/")
    if not addr.startswith(("http://", "https://")):
        addr = f"https://{addr}"
    return f"{addr}/api"


class NetboxClient:
    """Resolve IP addresses through the NetBox REST API.

    Usage:
        client = NetboxClient("netbox.example.com", token="0123abcd")
        resolved = client.resolve("141.193.3.5")
        print(resolved.device.name, resolved.site.name, resolved.region.name)

    Resolution is all-or-nothing: any failed step raises and nothing partial
    is returned.
    """

    def __init__(
        self,
        netbox_addr: str,
        token: str,
        *,
        verify_tls: bool = False,
        timeout_seconds: float | None = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the NetBox client.

        Args:
            netbox_addr: NetBox host name, or base URL including scheme
            token: API token sent verbatim as the Authorization header
            verify_tls: Validate the server certificate (default: False)
            timeout_seconds: Per-request timeout, None to wait indefinitely
            session: Optional pre-built requests session
            now: Optional clock returning timezone-aware datetimes
        """
        self.api_base_url = build_api_base_url(netbox_addr)
        self.token = token
        self.verify_tls = verify_tls
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._stats_lock = threading.Lock()

        self.stats: Dict[str, int] = {
            'resolutions': 0,
            'resolved': 0,
            'api_calls': 0,
            'api_failures': 0,
            'parse_failures': 0,
        }

        if not verify_tls:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            logger.warning(f"TLS certificate validation disabled for {self.api_base_url}")

    @classmethod
    def from_settings(cls, settings: ProcessorSettings, **kwargs: Any) -> "NetboxClient":
        """Build a client from ProcessorSettings."""
        return cls(
            settings.netbox_addr,
            settings.netbox_token,
            verify_tls=settings.verify_tls,
            timeout_seconds=settings.timeout_seconds,
            **kwargs,
        )

    @property
    def headers(self) -> Dict[str, str]:
        """Headers sent with every request."""
        return {
            'Authorization': self.token,
            'Accept': 'application/json',
        }

    def address_search_url(self, ip_address: str) -> str:
        """Return the address-search URL for a host address."""
        return f"{self.api_base_url}/ipam/ip-addresses/?q={quote(ip_address, safe='')}%2F32"

    def resolve(self, ip_address: str) -> NetboxDevice:
        """Resolve an IP address to its device, site and region.

        Raises:
            TransportError: on network failure or a non-2xx response
            EmptyResult: if NetBox has no record for the address
            MalformedResponse: if any response has an unexpected shape
        """
        self._count('resolutions')

        device = self._fetch(ElementKind.DEVICE, self.address_search_url(ip_address), ip_address)
        site = self._fetch(ElementKind.SITE, device.url, ip_address)
        region = self._fetch(ElementKind.REGION, site.url, ip_address)

        self._count('resolved')
        logger.debug(f"Resolved {ip_address} to {device.name}/{site.name}/{region.name}")
        return NetboxDevice(device=device, site=site, region=region, resolved_at=self._now())

    def _fetch(self, kind: ElementKind, url: str, ip_address: str) -> NetboxElement:
        body = self._query(url, kind, ip_address)
        try:
            return parse_element(kind, body)
        except (EmptyResult, MalformedResponse) as exc:
            self._count('parse_failures')
            exc.ip_address = ip_address
            raise

    def _query(self, url: str, kind: ElementKind, ip_address: str) -> bytes:
        self._count('api_calls')
        try:
            response = self.session.get(
                url,
                headers=self.headers,
                timeout=self.timeout_seconds,
                verify=self.verify_tls,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            self._count('api_failures')
            raise TransportError(
                f"NetBox {kind.value} query failed for {ip_address}: {exc}",
                ip_address=ip_address,
                step=kind.value,
            ) from exc
        return response.content

    def _count(self, key: str) -> None:
        # resolutions of different addresses run concurrently
        with self._stats_lock:
            self.stats[key] += 1

    def get_stats(self) -> Dict[str, int]:
        """Return a copy of the client counters."""
        with self._stats_lock:
            return dict(self.stats)

    def reset_stats(self) -> None:
        """Reset statistics counters."""
        with self._stats_lock:
            for key in self.stats:
                self.stats[key] = 0

    def close(self) -> None:
        """Close the underlying session."""
        self.session.close()

    def __enter__(self) -> "NetboxClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


__all__ = ["NetboxClient", "build_api_base_url", "parse_element"]
