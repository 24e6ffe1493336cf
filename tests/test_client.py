"""ScpClient and RefreshTokenAuth tests."""

from __future__ import annotations

import httpx
import pytest

from collectors import ScpCollector
from scpclient import RefreshTokenAuth, ScpApiError, ScpAuthError, ScpClient
from scpclient.models import ServerState, StorageOptimization, Task, TaskState
from conftest import BASE_URL, NOW, sample_value, samples


class TokenEndpoint:
    def __init__(
        self, expires_in: int = 300, rotate: bool = False, status: int = 200, body: object = None
    ) -> None:
        self.requests: list[dict] = []
        self.expires_in = expires_in
        self.rotate = rotate
        self.status = status
        self.body = body

    def handle(self, request: httpx.Request) -> httpx.Response:
        form = dict(httpx.QueryParams(request.content.decode()))
        self.requests.append(form)
        if self.status != 200:
            return httpx.Response(self.status, json={"error": "invalid_grant"})
        if self.body is not None:
            return httpx.Response(200, json=self.body)
        n = len(self.requests)
        body = {"access_token": f"access-{n}", "expires_in": self.expires_in}
        if self.rotate:
            body["refresh_token"] = f"refresh-{n}"
        return httpx.Response(200, json=body)


def _auth(endpoint: TokenEndpoint) -> RefreshTokenAuth:
    return RefreshTokenAuth(
        "refresh-0",
        token_url="https://idp.test/token",
        http=httpx.Client(transport=httpx.MockTransport(endpoint.handle)),
    )


def _client(handler, auth=None) -> ScpClient:
    return ScpClient(base_url=BASE_URL, auth=auth, transport=httpx.MockTransport(handler))


# -- client -----------------------------------------------------------------


def test_non_200_raises_with_status():
    client = _client(lambda request: httpx.Response(502, text="bad gateway"))

    with pytest.raises(ScpApiError) as excinfo:
        client.list_servers()
    assert excinfo.value.status == 502
    assert excinfo.value.call == "servers"


def test_transport_error_raises_api_error():
    def fail(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ScpApiError):
        _client(fail).ping()


def test_invalid_json_raises_api_error():
    client = _client(lambda request: httpx.Response(200, text="<html>"))

    with pytest.raises(ScpApiError):
        client.list_tasks()


def test_invalid_payload_raises_api_error():
    client = _client(lambda request: httpx.Response(200, json={"not": "a list"}))

    with pytest.raises(ScpApiError):
        client.list_servers()


def test_empty_maintenance_is_none():
    client = _client(lambda request: httpx.Response(200))

    assert client.get_maintenance() is None


def test_no_content_maintenance_is_none():
    client = _client(lambda request: httpx.Response(204))

    assert client.get_maintenance() is None


def test_naive_maintenance_timestamps_are_utc():
    payload = {"startAt": "2024-06-01T02:00:00", "finishAt": "2024-06-01T04:00:00+02:00"}
    client = _client(lambda request: httpx.Response(200, json=payload))

    window = client.get_maintenance()

    assert window.start_at.timestamp() == 1717207200
    assert window.finish_at.timestamp() == 1717207200


def test_server_detail_parses_aliases():
    payload = {
        "id": 7,
        "name": "v7",
        "disksAvailableSpaceInMiB": 512,
        "serverLiveInfo": {
            "currentServerMemoryInMiB": 2048,
            "interfaces": [{"speedInMBits": 100, "rxMonthlyInMiB": 1.5, "unknownField": True}],
            "disks": [{"capacityInMiB": 10}],
        },
    }
    client = _client(lambda request: httpx.Response(200, json=payload))

    server = client.get_server(7)

    assert server.disks_available_space_in_mib == 512
    assert server.server_live_info.current_server_memory_in_mib == 2048
    assert server.server_live_info.interfaces[0].speed_in_mbits == 100
    assert server.server_live_info.interfaces[0].rx_monthly_in_mib == 1.5
    assert server.server_live_info.disks[0].capacity_in_mib == 10
    assert server.server_live_info.uefi is None


def test_wire_enums_fall_back_to_unknown():
    assert ServerState.parse("RUNNING") is ServerState.RUNNING
    assert ServerState.parse("SOMETHING_NEW") is ServerState.UNKNOWN
    assert ServerState.parse(None) is ServerState.UNKNOWN
    assert StorageOptimization.parse("NO") is StorageOptimization.NO
    assert TaskState.parse("QUEUED") is TaskState.UNKNOWN
    assert Task(state="RUNNING").is_pending
    assert not Task(state="QUEUED").is_pending
    assert not Task().is_pending


# -- auth -------------------------------------------------------------------


def test_bearer_token_is_cached():
    endpoint = TokenEndpoint()
    seen = []

    def handler(request):
        seen.append(request.headers["Authorization"])
        return httpx.Response(200, json=[])

    client = _client(handler, auth=_auth(endpoint))
    client.list_servers()
    client.list_tasks()

    assert seen == ["Bearer access-1", "Bearer access-1"]
    assert len(endpoint.requests) == 1
    assert endpoint.requests[0] == {
        "grant_type": "refresh_token",
        "client_id": "scp",
        "refresh_token": "refresh-0",
    }


def test_expired_token_is_refreshed_with_rotated_refresh_token():
    endpoint = TokenEndpoint(expires_in=0, rotate=True)
    client = _client(lambda request: httpx.Response(200, json=[]), auth=_auth(endpoint))

    client.list_servers()
    client.list_servers()

    assert [r["refresh_token"] for r in endpoint.requests] == ["refresh-0", "refresh-1"]


def test_unauthorized_triggers_one_refresh_and_retry():
    endpoint = TokenEndpoint()
    seen = []

    def handler(request):
        seen.append(request.headers["Authorization"])
        if request.headers["Authorization"] == "Bearer access-1":
            return httpx.Response(401)
        return httpx.Response(200, json=[])

    client = _client(handler, auth=_auth(endpoint))

    assert client.list_servers() == []
    assert seen == ["Bearer access-1", "Bearer access-2"]


def test_rejected_refresh_token_raises_auth_error():
    endpoint = TokenEndpoint(status=400)
    client = _client(lambda request: httpx.Response(200, json=[]), auth=_auth(endpoint))

    with pytest.raises(ScpAuthError) as excinfo:
        client.list_servers()
    assert isinstance(excinfo.value, ScpApiError)
    assert excinfo.value.status == 400


@pytest.mark.parametrize(
    "body",
    [
        ["not", "an", "object"],
        {"expires_in": 300},
        {"access_token": "a", "expires_in": "soon"},
        {"access_token": 42},
    ],
)
def test_malformed_token_response_raises_auth_error(body):
    endpoint = TokenEndpoint(body=body)
    client = _client(lambda request: httpx.Response(200, json=[]), auth=_auth(endpoint))

    with pytest.raises(ScpAuthError):
        client.list_servers()


def test_null_expires_in_uses_default_lifetime():
    endpoint = TokenEndpoint(body={"access_token": "a", "expires_in": None})
    seen = []

    def handler(request):
        seen.append(request.headers["Authorization"])
        return httpx.Response(200, json=[])

    client = _client(handler, auth=_auth(endpoint))
    client.list_servers()
    client.list_tasks()

    assert seen == ["Bearer a", "Bearer a"]
    assert len(endpoint.requests) == 1


def test_failing_token_endpoint_degrades_scrape(api, caplog):
    endpoint = TokenEndpoint(body={"access_token": "a", "expires_in": "soon"})
    client = ScpClient(base_url=BASE_URL, auth=_auth(endpoint), transport=httpx.MockTransport(api.handle))
    collector = ScpCollector(client, clock=lambda: NOW)

    assert sample_value(collector, "scp_api_up") == 0
    assert [s.name for s in samples(collector)] == ["scp_api_up"]
    assert api.calls == []
    assert "Unable to get servers" in caplog.text


def test_close_releases_api_and_token_clients():
    auth = _auth(TokenEndpoint())
    client = _client(lambda request: httpx.Response(200, json=[]), auth=auth)

    client.close()

    assert client._http.is_closed
    assert auth._http.is_closed
