"""Collector for the legacy SCP SOAP web service."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from scpclient import LegacyScpClient, ScpApiError, UptimeParseError
from scpclient.legacy import LegacyServerInfo
from scpclient.models import MIB

from .base import BaseCollector, MetricDesc, MetricSink
from .scp_collector import METRICS as REST_METRICS
from .uptime import parse_uptime

logger = logging.getLogger(__name__)

GIB = 1024 * MIB

_SHARED = (
    "cpu_cores",
    "memory",
    "traffic_in",
    "traffic_out",
    "traffic_total",
    "start_time",
    "ip_info",
    "iface_throttled",
    "rescue_active",
    "disk_capacity",
    "disk_used",
    "disk_optimization",
)

METRICS: dict[str, MetricDesc] = {key: REST_METRICS[key] for key in _SHARED}
METRICS["server_status"] = MetricDesc(
    "server_status", "Online (1) / Offline (0) status", ("vserver", "status", "nickname")
)
METRICS["reboot_recommended"] = MetricDesc(
    "reboot_recommended", "Reboot recommended (1) / not recommended (0)", ("vserver", "message")
)


class LegacyScpCollector(BaseCollector):
    """Scrapes the SOAP API, one getVServerInformation call per server."""

    METRICS = METRICS

    def __init__(
        self,
        client: LegacyScpClient,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.client = client
        self.clock = clock

    def scrape(self, sink: MetricSink) -> None:
        try:
            vservers = self.client.get_vservers()
        except ScpApiError as e:
            logger.error("Unable to get servers: %s", e)
            return

        for vserver in vservers:
            try:
                info = self.client.get_vserver_information(vserver)
            except ScpApiError as e:
                logger.error(
                    "Unable to get server information for %s: %s", vserver, e, extra={"vserver": vserver}
                )
                continue
            self._collect_server(sink, vserver, info)

    def _collect_server(self, sink: MetricSink, vserver: str, info: LegacyServerInfo) -> None:
        if info.cpuCores is not None:
            sink.add("cpu_cores", info.cpuCores, vserver)
        if info.memory is not None:
            sink.add("memory", info.memory * MIB, vserver)

        traffic = info.currentMonth
        if traffic is not None and traffic.month is not None and traffic.year is not None:
            month, year = str(traffic.month), str(traffic.year)
            if traffic.in_ is not None:
                sink.add("traffic_in", traffic.in_ * MIB, vserver, month, year)
            if traffic.out is not None:
                sink.add("traffic_out", traffic.out * MIB, vserver, month, year)
            if traffic.in_ is not None and traffic.out is not None:
                sink.add("traffic_total", (traffic.in_ + traffic.out) * MIB, vserver, month, year)

        online = 1 if info.status == "online" else 0
        sink.add("server_status", online, vserver, info.status, info.vServerNickname)
        sink.add_flag("rescue_active", info.rescueEnabled, vserver, info.rescueEnabledMessage)
        sink.add_flag("reboot_recommended", info.rebootRecommended, vserver, info.rebootRecommendedMessage)

        for ip in info.ips:
            sink.add("ip_info", 1, vserver, ip)

        for iface in info.serverInterfaces:
            for address, ip_type in iface.addresses():
                sink.add_flag(
                    "iface_throttled",
                    iface.trafficThrottled,
                    vserver,
                    iface.driver,
                    iface.id,
                    address,
                    ip_type,
                    iface.mac,
                    iface.trafficThrottledMessage,
                )

        for disk in info.serverDisks:
            if disk.capacity is not None:
                sink.add("disk_capacity", disk.capacity * GIB, vserver, disk.driver, disk.name)
            if disk.used is not None:
                sink.add("disk_used", disk.used * GIB, vserver, disk.driver, disk.name)
            sink.add_flag(
                "disk_optimization",
                disk.optimizationRecommended,
                vserver,
                disk.driver,
                disk.name,
                disk.optimizationRecommendedMessage,
            )

        if info.uptime is None:
            return
        try:
            uptime = parse_uptime(info.uptime)
        except UptimeParseError as e:
            logger.error("Unable to parse uptime of %s: %s", vserver, e, extra={"vserver": vserver})
            return
        sink.add("start_time", int((self.clock() - uptime).timestamp()), vserver)
