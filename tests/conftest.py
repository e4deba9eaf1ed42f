"""Shared pytest fixtures for netboxprocessor tests."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Dict

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from netboxprocessor.enrichment.netbox_client import NetboxClient  # noqa: E402
from tests.fixtures.netbox_fixtures import (  # noqa: E402
    ASH_SITE,
    IAD_DEVICE,
    NETBOX_ADDR,
    SJC_DEVICE,
    SJC_SITE,
    TOKEN,
    US_EAST,
    US_WEST,
    FakeClock,
    FakeSession,
    netbox_routes,
)


@pytest.fixture(autouse=True)
def _clean_netbox_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep NETBOXPROC_* variables from the developer's shell out of tests."""
    for name in list(os.environ):
        if name.startswith("NETBOXPROC_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock() -> FakeClock:
    """Provide a controllable clock."""
    return FakeClock()


@pytest.fixture
def routes() -> Dict[str, Any]:
    """NetBox responses for 141.193.3.5 and 12.100.16.2."""
    return {
        **netbox_routes("141.193.3.5", SJC_DEVICE, SJC_SITE, US_WEST),
        **netbox_routes("12.100.16.2", IAD_DEVICE, ASH_SITE, US_EAST),
    }


@pytest.fixture
def fake_session(routes: Dict[str, Any]) -> FakeSession:
    """Provide a fake HTTP session serving the canned routes."""
    return FakeSession(routes)


@pytest.fixture
def netbox_client(fake_session: FakeSession, clock: FakeClock) -> NetboxClient:
    """Provide a NetboxClient wired to the fake session and clock."""
    return NetboxClient(NETBOX_ADDR, TOKEN, session=fake_session, now=clock)  # type: ignore[arg-type]
