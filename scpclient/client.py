"""Synchronous client for the SCP REST API."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

from .auth import RefreshTokenAuth
from .errors import ScpApiError
from .models import MaintenanceWindow, Server, ServerSummary, Task

logger = logging.getLogger(__name__)

API_URL = "https://www.servercontrolpanel.de/scp-core"

_servers = TypeAdapter(list[ServerSummary])
_tasks = TypeAdapter(list[Task])


class ScpClient:
    """Thin wrapper over ``httpx.Client`` for the endpoints the exporter reads.

    Every method raises :class:`ScpApiError` when the request fails, the API
    answers with anything but 200, or the payload does not parse.
    """

    def __init__(
        self,
        base_url: str = API_URL,
        auth: httpx.Auth | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._auth = auth
        self._http = httpx.Client(
            base_url=base_url,
            auth=auth,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def close(self) -> None:
        self._http.close()
        if isinstance(self._auth, RefreshTokenAuth):
            self._auth.close()

    def _get(
        self, call: str, path: str, accept: tuple[int, ...] = (httpx.codes.OK,)
    ) -> httpx.Response:
        try:
            resp = self._http.get(path)
        except httpx.HTTPError as e:
            raise ScpApiError(call, str(e)) from e
        if resp.status_code not in accept:
            raise ScpApiError(call, f"unexpected status {resp.status_code}", resp.status_code)
        logger.debug("GET %s -> %s", path, resp.status_code)
        return resp

    def _json(self, call: str, resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise ScpApiError(call, "response is not valid JSON", resp.status_code) from e

    def ping(self) -> None:
        self._get("ping", "/api/ping")

    def get_maintenance(self) -> MaintenanceWindow | None:
        """Return the next maintenance window, or None if none is announced."""
        resp = self._get(
            "maintenance", "/api/v1/maintenance", accept=(httpx.codes.OK, httpx.codes.NO_CONTENT)
        )
        if resp.status_code == httpx.codes.NO_CONTENT or not resp.content:
            return None
        data = self._json("maintenance", resp)
        if data is None:
            return None
        try:
            return MaintenanceWindow.model_validate(data)
        except ValidationError as e:
            raise ScpApiError("maintenance", f"invalid payload: {e}") from e

    def list_servers(self) -> list[ServerSummary]:
        resp = self._get("servers", "/api/v1/servers")
        try:
            return _servers.validate_python(self._json("servers", resp))
        except ValidationError as e:
            raise ScpApiError("servers", f"invalid payload: {e}") from e

    def get_server(self, server_id: int) -> Server:
        call = f"server {server_id}"
        resp = self._get(call, f"/api/v1/servers/{server_id}")
        data = self._json(call, resp)
        if data is None:
            raise ScpApiError(call, "empty response", resp.status_code)
        try:
            return Server.model_validate(data)
        except ValidationError as e:
            raise ScpApiError(call, f"invalid payload: {e}") from e

    def list_tasks(self) -> list[Task]:
        resp = self._get("tasks", "/api/v1/tasks")
        try:
            return _tasks.validate_python(self._json("tasks", resp))
        except ValidationError as e:
            raise ScpApiError("tasks", f"invalid payload: {e}") from e
