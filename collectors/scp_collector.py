"""Collector for the SCP REST API."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from scpclient import ScpApiError, ScpClient
from scpclient.models import MIB, Server, ServerLiveInfo, ServerState, StorageOptimization

from .base import BaseCollector, MetricDesc, MetricSink

logger = logging.getLogger(__name__)

_VSERVER = ("vserver",)
_TRAFFIC = ("vserver", "month", "year")
_DISK = ("vserver", "driver", "name")

METRICS: dict[str, MetricDesc] = {
    "cpu_cores": MetricDesc("cpu_cores", "Number of CPU cores", _VSERVER),
    "memory": MetricDesc("memory_bytes", "Amount of Memory in Bytes", _VSERVER),
    "traffic_in": MetricDesc(
        "monthlytraffic_in_bytes",
        "Monthly traffic incoming in Bytes (only gigabyte-level resolution)",
        _TRAFFIC,
    ),
    "traffic_out": MetricDesc(
        "monthlytraffic_out_bytes",
        "Monthly traffic outgoing in Bytes (only gigabyte-level resolution)",
        _TRAFFIC,
    ),
    "traffic_total": MetricDesc(
        "monthlytraffic_total_bytes",
        "Total monthly traffic in Bytes (only gigabyte-level resolution)",
        _TRAFFIC,
    ),
    "start_time": MetricDesc(
        "server_start_time_seconds",
        "Start time of the vserver in seconds (only minute-level resolution)",
        _VSERVER,
    ),
    "ip_info": MetricDesc("ip_info", "IPs assigned to this server", ("vserver", "ip")),
    "iface_throttled": MetricDesc(
        "interface_throttled",
        "Interface's traffic is throttled (1) or not (0)",
        ("vserver", "driver", "id", "ip", "ip_type", "mac", "throttle_message"),
    ),
    "server_status": MetricDesc(
        "server_status",
        "Online (1) / Offline (0) status",
        ("vserver", "status", "nickname", "architecture", "site_city"),
    ),
    "rescue_active": MetricDesc(
        "rescue_active", "Rescue system active (1) / inactive (0)", ("vserver", "message")
    ),
    "disk_capacity": MetricDesc("disk_capacity_bytes", "Available storage space in Bytes", _DISK),
    "disk_used": MetricDesc("disk_used_bytes", "Used storage space in Bytes", _DISK),
    "disk_optimization": MetricDesc(
        "disk_optimization",
        "Optimization recommended (1) / not recommended (0)",
        _DISK + ("message",),
    ),
    "snapshot_count": MetricDesc("snapshot_count", "Total number of snapshots", _VSERVER),
    "config_changed": MetricDesc(
        "config_changed", "Pending configuration changes (1) / none (0)", _VSERVER
    ),
    "iface_speed": MetricDesc(
        "interface_speed_mbits", "Interface link speed in Mbits/s", ("vserver", "mac", "driver")
    ),
    "cpu_max": MetricDesc("cpu_max_count", "Maximum number of CPU cores", _VSERVER),
    "memory_max": MetricDesc("memory_max_bytes", "Maximum amount of Memory in Bytes", _VSERVER),
    "disks_available": MetricDesc(
        "disks_available_space_bytes", "Available space for new disks in Bytes", _VSERVER
    ),
    "autostart": MetricDesc("autostart_enabled", "Autostart enabled (1) / disabled (0)", _VSERVER),
    "uefi": MetricDesc("uefi_enabled", "UEFI enabled (1) / disabled (0)", _VSERVER),
    "latest_qemu": MetricDesc(
        "latest_qemu", "Server is running latest QEMU version (1) / older (0)", _VSERVER
    ),
    "disabled": MetricDesc("disabled", "Server is disabled (1) / enabled (0)", _VSERVER),
    "snapshot_allowed": MetricDesc(
        "snapshot_allowed", "Snapshot creation allowed (1) / disallowed (0)", _VSERVER
    ),
    "maintenance_start": MetricDesc(
        "maintenance_start_time_seconds", "Next maintenance window start time"
    ),
    "maintenance_finish": MetricDesc(
        "maintenance_finish_time_seconds", "Next maintenance window finish time"
    ),
    "task_info": MetricDesc("task_info", "Current task information", ("uuid", "name", "state")),
    "tasks_pending": MetricDesc("tasks_pending_count", "Number of pending or running tasks"),
    "api_up": MetricDesc("api_up", "API is reachable (1) / unreachable (0)"),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScpCollector(BaseCollector):
    """Scrapes the SCP REST API sequentially on every ``collect``.

    All per-scrape state lives in the sink, so concurrent scrapes are safe.
    """

    METRICS = METRICS

    def __init__(self, client: ScpClient, clock: Callable[[], datetime] = _utcnow) -> None:
        self.client = client
        self.clock = clock

    def close(self) -> None:
        self.client.close()

    def scrape(self, sink: MetricSink) -> None:
        try:
            self.client.ping()
            api_up = True
        except ScpApiError as e:
            logger.warning("SCP API ping failed: %s", e)
            api_up = False
        sink.add_flag("api_up", api_up)

        self._collect_maintenance(sink)

        try:
            servers = self.client.list_servers()
        except ScpApiError as e:
            logger.error("Unable to get servers: %s", e, extra={"call": e.call, "status": e.status})
            return

        self._collect_tasks(sink)

        now = self.clock()
        for summary in servers:
            vserver = summary.name or ""
            if summary.id is None:
                logger.error("Skipping server without id", extra={"vserver": vserver})
                continue
            try:
                server = self.client.get_server(summary.id)
            except ScpApiError as e:
                logger.error(
                    "Unable to get server information for %s: %s",
                    vserver,
                    e,
                    extra={"vserver": vserver, "status": e.status},
                )
                continue
            self._collect_server(sink, server, vserver, summary.nickname or "", now)

    def _collect_maintenance(self, sink: MetricSink) -> None:
        try:
            window = self.client.get_maintenance()
        except ScpApiError as e:
            logger.error("Unable to get maintenance information: %s", e)
            return
        if window is None:
            return
        if window.start_at is not None:
            sink.add("maintenance_start", int(window.start_at.timestamp()))
        if window.finish_at is not None:
            sink.add("maintenance_finish", int(window.finish_at.timestamp()))

    def _collect_tasks(self, sink: MetricSink) -> None:
        try:
            tasks = self.client.list_tasks()
        except ScpApiError as e:
            logger.error("Unable to get tasks: %s", e)
            return
        pending = 0
        for task in tasks:
            if task.is_pending:
                pending += 1
            sink.add("task_info", 1, task.uuid or "", task.name or "", task.state or "")
        sink.add("tasks_pending", pending)

    def _collect_server(
        self, sink: MetricSink, server: Server, vserver: str, nickname: str, now: datetime
    ) -> None:
        sink.add_flag("disabled", server.disabled, vserver)
        sink.add_flag("snapshot_allowed", server.snapshot_allowed, vserver)
        if server.max_cpu_count is not None:
            sink.add("cpu_max", server.max_cpu_count, vserver)
        if server.disks_available_space_in_mib is not None:
            sink.add("disks_available", server.disks_available_space_in_mib * MIB, vserver)
        if server.snapshot_count is not None:
            sink.add("snapshot_count", server.snapshot_count, vserver)

        if server.server_live_info is not None:
            self._collect_live_info(sink, server, server.server_live_info, vserver, nickname, now)

        sink.add("rescue_active", 1 if server.rescue_system_active else 0, vserver, "")

        for address in server.ipv4_addresses or []:
            if address.ip is not None:
                sink.add("ip_info", 1, vserver, address.ip)
        for address in server.ipv6_addresses or []:
            if address.network_prefix is not None:
                sink.add("ip_info", 1, vserver, address.network_prefix)

    def _collect_live_info(
        self,
        sink: MetricSink,
        server: Server,
        live: ServerLiveInfo,
        vserver: str,
        nickname: str,
        now: datetime,
    ) -> None:
        if live.cpu_count is not None:
            sink.add("cpu_cores", live.cpu_count, vserver)
        if live.current_server_memory_in_mib is not None:
            sink.add("memory", live.current_server_memory_in_mib * MIB, vserver)
        if live.max_server_memory_in_mib is not None:
            sink.add("memory_max", live.max_server_memory_in_mib * MIB, vserver)

        sink.add_flag("autostart", live.autostart, vserver)
        sink.add_flag("uefi", live.uefi, vserver)
        sink.add_flag("latest_qemu", live.latest_qemu, vserver)
        sink.add_flag("config_changed", live.config_changed, vserver)

        interfaces = live.interfaces or []

        # No monthly traffic field in this API; sum the interface counters.
        total_in = sum((i.rx_monthly_in_mib or 0) * MIB for i in interfaces)
        total_out = sum((i.tx_monthly_in_mib or 0) * MIB for i in interfaces)
        month, year = str(now.month), str(now.year)
        sink.add("traffic_in", total_in, vserver, month, year)
        sink.add("traffic_out", total_out, vserver, month, year)
        sink.add("traffic_total", total_in + total_out, vserver, month, year)

        architecture = server.server_architecture
        sink.add(
            "server_status",
            1 if live.server_state is ServerState.RUNNING else 0,
            vserver,
            live.state or "",
            nickname,
            architecture.value if architecture is not None else "",
            (server.site.city or "") if server.site else "",
        )

        if live.uptime_in_seconds is not None:
            started = now - timedelta(seconds=live.uptime_in_seconds)
            sink.add("start_time", int(started.timestamp()), vserver)

        for iface in interfaces:
            mac = iface.mac or ""
            driver = iface.driver or ""
            if iface.speed_in_mbits is not None:
                sink.add("iface_speed", iface.speed_in_mbits, vserver, mac, driver)
            message = iface.traffic_throttled_message or ""
            for address, ip_type in iface.addresses():
                sink.add_flag(
                    "iface_throttled",
                    iface.traffic_throttled,
                    vserver, driver, "", address, ip_type, mac, message,
                )

        # The storage optimisation flag is server-level but exposed on every disk.
        optimization = live.required_storage_optimization
        optimize = optimization is not None and StorageOptimization.parse(optimization) is not StorageOptimization.NO
        for disk in live.disks or []:
            dev = disk.dev or ""
            driver = disk.driver or ""
            if disk.capacity_in_mib is not None:
                sink.add("disk_capacity", disk.capacity_in_mib * MIB, vserver, driver, dev)
            if disk.allocation_in_mib is not None:
                sink.add("disk_used", disk.allocation_in_mib * MIB, vserver, driver, dev)
            message = optimization if optimize else ""
            sink.add("disk_optimization", 1 if optimize else 0, vserver, driver, dev, message)
