"""Shared fixtures: a fake SCP REST API served through httpx.MockTransport."""

from __future__ import annotations

import copy
from datetime import datetime, timezone

import httpx
import pytest

from collectors import ScpCollector
from scpclient import ScpClient

BASE_URL = "https://scp.test"
NOW = datetime(2024, 5, 15, 12, 0, 0, tzinfo=timezone.utc)
MIB = 1024 * 1024

SERVER_1 = {
    "id": 1,
    "name": "v1",
    "nickname": "web",
    "disabled": False,
    "architecture": "AMD64",
    "site": {"city": "Nuremberg"},
    "maxCpuCount": 8,
    "disksAvailableSpaceInMiB": 10240,
    "snapshotCount": 2,
    "snapshotAllowed": True,
    "rescueSystemActive": False,
    "ipv4Addresses": [{"ip": "192.0.2.10"}],
    "ipv6Addresses": [{"networkPrefix": "2001:db8::/64"}],
    "serverLiveInfo": {
        "state": "RUNNING",
        "cpuCount": 4,
        "currentServerMemoryInMiB": 8192,
        "maxServerMemoryInMiB": 16384,
        "uptimeInSeconds": 3600,
        "autostart": True,
        "uefi": False,
        "latestQemu": True,
        "configChanged": False,
        "requiredStorageOptimization": "COMPRESSION",
        "interfaces": [
            {
                "mac": "aa:bb:cc:dd:ee:01",
                "driver": "virtio",
                "speedInMBits": 1000,
                "trafficThrottled": False,
                "ipv4Addresses": ["192.0.2.10", "192.0.2.10"],
                "ipv6LinkLocalAddresses": ["fe80::1"],
                "ipv6NetworkPrefixes": ["2001:db8::/64", "2001:db8::/64"],
                "rxMonthlyInMiB": 100,
                "txMonthlyInMiB": 50,
            },
            {
                "mac": "aa:bb:cc:dd:ee:02",
                "driver": "e1000",
                "rxMonthlyInMiB": 10,
            },
        ],
        "disks": [
            {"dev": "vda", "driver": "virtio", "capacityInMiB": 20480, "allocationInMiB": 1024},
            {"dev": "vdb", "driver": "virtio"},
        ],
    },
}

SERVER_2 = {
    "id": 2,
    "name": "v2",
    "nickname": "db",
    "serverLiveInfo": {"state": "SHUTOFF"},
}


class FakeScpApi:
    """Route table keyed by URL path; values are (status, json) or an exception type."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.routes: dict[str, object] = {
            "/api/ping": (200, "pong"),
            "/api/v1/maintenance": (200, {"startAt": "2024-06-01T02:00:00Z", "finishAt": None}),
            "/api/v1/servers": (
                200,
                [
                    {"id": 1, "name": "v1", "nickname": "web"},
                    {"id": 2, "name": "v2", "nickname": "db"},
                ],
            ),
            "/api/v1/servers/1": (200, copy.deepcopy(SERVER_1)),
            "/api/v1/servers/2": (200, copy.deepcopy(SERVER_2)),
            "/api/v1/tasks": (
                200,
                [
                    {"uuid": "t-1", "name": "snapshot", "state": "RUNNING"},
                    {"uuid": "t-2", "name": "backup", "state": "PENDING"},
                    {"uuid": "t-3", "name": "install", "state": "FINISHED"},
                    {"name": "orphan"},
                ],
            ),
        }

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append(path)
        route = self.routes.get(path, (404, {"message": "not found"}))
        if isinstance(route, type) and issubclass(route, Exception):
            raise route("boom", request=request)
        status, body = route
        return httpx.Response(status, json=body)


@pytest.fixture
def api() -> FakeScpApi:
    return FakeScpApi()


@pytest.fixture
def client(api: FakeScpApi) -> ScpClient:
    return ScpClient(base_url=BASE_URL, transport=httpx.MockTransport(api.handle))


@pytest.fixture
def collector(client: ScpClient) -> ScpCollector:
    return ScpCollector(client, clock=lambda: NOW)


def samples(collector) -> list:
    """Run one scrape and return every sample it produced."""
    return [s for family in collector.collect() for s in family.samples]


def sample_value(collector, name: str, labels: dict | None = None) -> float | None:
    labels = labels or {}
    for s in samples(collector):
        if s.name == name and s.labels == labels:
            return s.value
    return None
