"""Client for the legacy SCP SOAP web service (WSEndUser)."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from zeep import Client, Settings
from zeep.exceptions import Error as ZeepError
from zeep.helpers import serialize_object

from .errors import ScpApiError

logger = logging.getLogger(__name__)

WSDL_URL = "https://www.servercontrolpanel.de/WSEndUser?wsdl"


class LegacyModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class LegacyMonthlyTraffic(LegacyModel):
    month: int | None = None
    year: int | None = None
    # MiB
    in_: float | None = Field(default=None, alias="in")
    out: float | None = None

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class LegacyInterface(LegacyModel):
    id: str = ""
    mac: str = ""
    driver: str = ""
    ipv4IP: list[str] = []
    ipv6IP: list[str] = []
    trafficThrottled: bool = False
    trafficThrottledMessage: str = ""

    def addresses(self) -> list[tuple[str, str]]:
        """Return ``(address, ip_type)`` pairs, each literal address once."""
        seen: set[str] = set()
        result: list[tuple[str, str]] = []
        for addresses, ip_type in ((self.ipv4IP, "ipv4"), (self.ipv6IP, "ipv6")):
            for address in addresses:
                if address in seen:
                    continue
                seen.add(address)
                result.append((address, ip_type))
        return result


class LegacyDisk(LegacyModel):
    name: str = ""
    driver: str = ""
    # GiB
    capacity: float | None = None
    used: float | None = None
    optimizationRecommended: bool = False
    optimizationRecommendedMessage: str = ""


class LegacyServerInfo(LegacyModel):
    """Payload of getVServerInformation."""

    vServerName: str = ""
    vServerNickname: str = ""
    status: str = ""
    cpuCores: int | None = None
    # MiB
    memory: float | None = None
    uptime: str | None = None
    rescueEnabled: bool = False
    rescueEnabledMessage: str = ""
    rebootRecommended: bool = False
    rebootRecommendedMessage: str = ""
    ips: list[str] = []
    currentMonth: LegacyMonthlyTraffic | None = None
    serverInterfaces: list[LegacyInterface] = []
    serverDisks: list[LegacyDisk] = []


def _strip_nulls(value: Any) -> Any:
    """Drop None values so model defaults apply to nil SOAP elements."""
    if isinstance(value, dict):
        return {k: _strip_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_strip_nulls(v) for v in value if v is not None]
    return value


class LegacyScpClient:
    """Wraps the WSEndUser service, authenticating every call with login name and password.

    ``service`` can be injected; by default a zeep client is built from the
    public WSDL on first use.
    """

    def __init__(
        self,
        login_name: str,
        password: str,
        service: Any = None,
        wsdl: str = WSDL_URL,
    ) -> None:
        self._login_name = login_name
        self._password = password
        self._service = service
        self._wsdl = wsdl

    @property
    def service(self) -> Any:
        if self._service is None:
            client = Client(self._wsdl, settings=Settings(strict=False))
            self._service = client.service
        return self._service

    def _call(self, call: str, **params: Any) -> Any:
        try:
            operation = getattr(self.service, call)
            result = operation(loginName=self._login_name, password=self._password, **params)
        except (ZeepError, OSError) as e:
            raise ScpApiError(call, str(e)) from e
        result = serialize_object(result, dict)
        logger.debug("%s -> %r", call, result)
        return result

    def get_vservers(self) -> list[str]:
        result = self._call("getVServers")
        if result is None:
            raise ScpApiError("getVServers", "empty response")
        if isinstance(result, str):
            return [result]
        return [name for name in result if name]

    def get_vserver_information(self, vserver: str) -> LegacyServerInfo:
        call = "getVServerInformation"
        result = self._call(call, vservername=vserver)
        if not isinstance(result, dict):
            raise ScpApiError(call, f"empty response for {vserver}")
        try:
            return LegacyServerInfo.model_validate(_strip_nulls(result))
        except ValidationError as e:
            raise ScpApiError(call, f"invalid payload for {vserver}: {e}") from e
