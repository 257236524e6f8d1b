"""Core data models used across scanner, orchestrator, service, and CLI."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from trainerctl.core.errors import TrainerctlError


class GattStatus(enum.Enum):
    SUCCESS = "success"
    UNREACHABLE = "unreachable"
    PROTOCOL_ERROR = "protocol_error"
    ACCESS_DENIED = "access_denied"


class SessionState(enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    SERVICES_RESOLVING = "services_resolving"
    CHARACTERISTIC_RESOLVING = "characteristic_resolving"
    SUBSCRIBING = "subscribing"
    STREAMING = "streaming"
    CLOSED = "closed"
    FAILED = "failed"


@dataclass(frozen=True)
class DeviceDescriptor:
    id: str
    name: str | None
    rssi: int | None = None


@dataclass(frozen=True)
class ServiceDescriptor:
    uuid: str
    handle: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class CharacteristicDescriptor:
    uuid: str
    handle: Any = field(default=None, compare=False, repr=False)
    properties: tuple[str, ...] = ()


@dataclass(frozen=True)
class PowerReading:
    instantaneous_power_watts: int
    timestamp: datetime


@dataclass
class ConnectionSession:
    """Handles acquired for one connected device, in acquisition order."""

    device: DeviceDescriptor
    handle: Any
    service: ServiceDescriptor | None = None
    characteristic: CharacteristicDescriptor | None = None
    subscribed: bool = False
    notifying: bool = False
    link_lost: bool = False


@dataclass(frozen=True)
class SessionResult:
    state: SessionState
    device: DeviceDescriptor | None = None
    error: TrainerctlError | None = None
    failed_in: SessionState | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class MatchRules:
    name_contains: tuple[str, ...]


@dataclass(frozen=True)
class ScanSettings:
    max_attempts: int = 5
    retry_delay_s: float = 3.0
    timeout_s: float = 5.0


@dataclass(frozen=True)
class SensorProfile:
    id: str
    name: str
    match: MatchRules
    scan: ScanSettings = ScanSettings()
    connect_timeout_s: float = 10.0
    queue_size: int = 64
