"""OAuth2 refresh-token authentication for the SCP REST API."""

from __future__ import annotations

import logging
import threading
import time
from typing import Generator

import httpx

from .errors import ScpAuthError

logger = logging.getLogger(__name__)

TOKEN_URL = "https://www.servercontrolpanel.de/realms/scp/protocol/openid-connect/token"
CLIENT_ID = "scp"

# Refresh this many seconds before the access token actually expires.
EXPIRY_LEEWAY = 30

# Token lifetime assumed when the response omits expires_in.
DEFAULT_EXPIRES_IN = 300


class RefreshTokenAuth(httpx.Auth):
    """Inject a bearer token obtained from a long-lived refresh token.

    The access token is fetched lazily on first use and refreshed when it is
    about to expire or when the API answers 401. If the identity provider
    rotates the refresh token, the new one replaces the old one.
    """

    def __init__(
        self,
        refresh_token: str,
        token_url: str = TOKEN_URL,
        client_id: str = CLIENT_ID,
        http: httpx.Client | None = None,
    ) -> None:
        self._refresh_token = refresh_token
        self._token_url = token_url
        self._client_id = client_id
        self._http = http or httpx.Client(timeout=30)
        self._access_token: str | None = None
        self._expires_at = 0.0
        self._lock = threading.RLock()

    def _token_valid(self) -> bool:
        return self._access_token is not None and time.monotonic() < self._expires_at

    def _refresh(self) -> str:
        try:
            resp = self._http.post(
                self._token_url,
                data={
                    "grant_type": "refresh_token",
                    "client_id": self._client_id,
                    "refresh_token": self._refresh_token,
                },
            )
        except httpx.HTTPError as e:
            raise ScpAuthError("token", str(e)) from e

        if resp.status_code != 200:
            raise ScpAuthError("token", f"token endpoint returned {resp.status_code}", resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise ScpAuthError("token", "token endpoint returned invalid JSON") from e
        if not isinstance(data, dict):
            raise ScpAuthError("token", "token response is not a JSON object")

        access_token = data.get("access_token")
        if not access_token or not isinstance(access_token, str):
            raise ScpAuthError("token", "no access_token in token response")

        expires_in = data.get("expires_in")
        if expires_in is None:
            expires_in = DEFAULT_EXPIRES_IN
        try:
            lifetime = int(expires_in)
        except (TypeError, ValueError, OverflowError) as e:
            raise ScpAuthError("token", f"invalid expires_in in token response: {expires_in!r}") from e

        self._access_token = access_token
        self._expires_at = time.monotonic() + max(lifetime - EXPIRY_LEEWAY, 0)
        if data.get("refresh_token"):
            self._refresh_token = data["refresh_token"]
        logger.debug("Refreshed SCP access token, expires in %ss", lifetime)
        return access_token

    def close(self) -> None:
        self._http.close()

    def get_token(self, force: bool = False) -> str:
        with self._lock:
            if force or not self._token_valid():
                return self._refresh()
            return self._access_token  # type: ignore[return-value]

    def sync_auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self.get_token()}"
        response = yield request

        if response.status_code == 401:
            request.headers["Authorization"] = f"Bearer {self.get_token(force=True)}"
            yield request
