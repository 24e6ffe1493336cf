"""Pydantic models for SCP REST API responses.

The API is loosely typed: nearly every field may be missing or null, so every
field defaults to ``None`` and unknown fields are ignored. Enumerated wire
values are kept verbatim as strings on the models; the enums below classify
them without rejecting values the vendor adds later.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MIB = 1024 * 1024


class _WireEnum(str, Enum):
    """String enum that maps unrecognised wire values to UNKNOWN."""

    @classmethod
    def _missing_(cls, value: object) -> "_WireEnum":
        return cls.UNKNOWN  # type: ignore[attr-defined]

    @classmethod
    def parse(cls, value: str | None) -> "_WireEnum":
        if value is None:
            return cls.UNKNOWN  # type: ignore[attr-defined]
        return cls(value)


class ServerState(_WireEnum):
    RUNNING = "RUNNING"
    SHUTOFF = "SHUTOFF"
    PAUSED = "PAUSED"
    BLOCKED = "BLOCKED"
    CRASHED = "CRASHED"
    PMSUSPENDED = "PMSUSPENDED"
    SHUTDOWN = "SHUTDOWN"
    NOSTATE = "NOSTATE"
    UNKNOWN = "UNKNOWN"


class TaskState(_WireEnum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"
    ERROR = "ERROR"
    CANCELED = "CANCELED"
    ROLLBACK = "ROLLBACK"
    UNKNOWN = "UNKNOWN"


class Architecture(_WireEnum):
    AMD64 = "AMD64"
    ARM64 = "ARM64"
    UNKNOWN = "UNKNOWN"


class StorageOptimization(_WireEnum):
    NO = "NO"
    COMPRESSION = "COMPRESSION"
    MIGRATION = "MIGRATION"
    UNKNOWN = "UNKNOWN"


class ScpModel(BaseModel):
    """Base model: camelCase aliases, unknown fields ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# =============================================================================
# Servers
# =============================================================================


class Site(ScpModel):
    city: str | None = None


class IPv4Address(ScpModel):
    ip: str | None = None


class IPv6Address(ScpModel):
    network_prefix: str | None = None


class ServerInterface(ScpModel):
    """Network interface as reported in a server's live info."""

    mac: str | None = None
    driver: str | None = None
    speed_in_mbits: int | None = Field(default=None, alias="speedInMBits")
    traffic_throttled: bool | None = None
    traffic_throttled_message: str | None = None
    ipv4_addresses: list[str] | None = None
    ipv6_link_local_addresses: list[str] | None = None
    ipv6_network_prefixes: list[str] | None = None
    rx_monthly_in_mib: float | None = Field(default=None, alias="rxMonthlyInMiB")
    tx_monthly_in_mib: float | None = Field(default=None, alias="txMonthlyInMiB")

    def addresses(self) -> list[tuple[str, str]]:
        """Return ``(address, ip_type)`` pairs, each literal address once."""
        seen: set[str] = set()
        result: list[tuple[str, str]] = []
        groups = (
            (self.ipv4_addresses, "ipv4"),
            (self.ipv6_link_local_addresses, "ipv6"),
            (self.ipv6_network_prefixes, "ipv6"),
        )
        for addresses, ip_type in groups:
            for address in addresses or []:
                if address in seen:
                    continue
                seen.add(address)
                result.append((address, ip_type))
        return result


class ServerDisk(ScpModel):
    dev: str | None = None
    driver: str | None = None
    capacity_in_mib: float | None = Field(default=None, alias="capacityInMiB")
    allocation_in_mib: float | None = Field(default=None, alias="allocationInMiB")


class ServerLiveInfo(ScpModel):
    """Frequently changing runtime state of a server."""

    state: str | None = None
    cpu_count: int | None = None
    current_server_memory_in_mib: float | None = Field(
        default=None, alias="currentServerMemoryInMiB"
    )
    max_server_memory_in_mib: float | None = Field(
        default=None, alias="maxServerMemoryInMiB"
    )
    uptime_in_seconds: int | None = None
    autostart: bool | None = None
    uefi: bool | None = None
    latest_qemu: bool | None = None
    config_changed: bool | None = None
    required_storage_optimization: str | None = None
    interfaces: list[ServerInterface] | None = None
    disks: list[ServerDisk] | None = None

    @property
    def server_state(self) -> ServerState:
        return ServerState.parse(self.state)


class ServerSummary(ScpModel):
    """Entry of the server listing."""

    id: int | None = None
    name: str | None = None
    nickname: str | None = None
    disabled: bool | None = None


class Server(ServerSummary):
    """Full server detail."""

    architecture: str | None = None
    site: Site | None = None
    max_cpu_count: int | None = None
    disks_available_space_in_mib: float | None = Field(
        default=None, alias="disksAvailableSpaceInMiB"
    )
    snapshot_count: int | None = None
    snapshot_allowed: bool | None = None
    rescue_system_active: bool | None = None
    ipv4_addresses: list[IPv4Address] | None = None
    ipv6_addresses: list[IPv6Address] | None = None
    server_live_info: ServerLiveInfo | None = None

    @property
    def server_architecture(self) -> Architecture | None:
        """Classified architecture, None when the API does not report one."""
        if self.architecture is None:
            return None
        return Architecture.parse(self.architecture)


# =============================================================================
# Tasks and maintenance
# =============================================================================


class Task(ScpModel):
    uuid: str | None = None
    name: str | None = None
    state: str | None = None

    @property
    def is_pending(self) -> bool:
        return TaskState.parse(self.state) in (TaskState.PENDING, TaskState.RUNNING)


class MaintenanceWindow(ScpModel):
    start_at: datetime | None = None
    finish_at: datetime | None = None

    @field_validator("start_at", "finish_at")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
