"""Stable public API for building tooling on top of trainerctl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence

from trainerctl.core.decoder import decode_power_measurement
from trainerctl.core.device_filter import DeviceFilter
from trainerctl.core.errors import (
    AdapterError,
    CharacteristicEnumerationError,
    CharacteristicNotFoundError,
    DecodeError,
    DeviceConnectionError,
    DeviceDiscoveryError,
    DeviceNotFoundError,
    ProfileLoadError,
    ProfileSelectionError,
    ProfileValidationError,
    ServiceDiscoveryError,
    ServiceEnumerationError,
    ServiceNotFoundError,
    SessionStateError,
    SubscriptionError,
    TrainerctlError,
)
from trainerctl.core.gatt import (
    CYCLING_POWER_CONTROL_POINT_UUID,
    CYCLING_POWER_MEASUREMENT_UUID,
    CYCLING_POWER_SERVICE_UUID,
)
from trainerctl.core.model import (
    DeviceDescriptor,
    PowerReading,
    SensorProfile,
    SessionResult,
    SessionState,
)
from trainerctl.core.orchestrator import ConnectionOrchestrator
from trainerctl.core.service import TrainerService
from trainerctl.core.sink import CollectingSink, LoggingSink, OutputSink
from trainerctl.transports.base import BLEAdapter
from trainerctl.transports.bleak_adapter import BleakAdapter

__all__ = [
    "TrainerctlError",
    "AdapterError",
    "CharacteristicEnumerationError",
    "CharacteristicNotFoundError",
    "DecodeError",
    "DeviceConnectionError",
    "DeviceDiscoveryError",
    "DeviceNotFoundError",
    "ProfileLoadError",
    "ProfileSelectionError",
    "ProfileValidationError",
    "ServiceDiscoveryError",
    "ServiceEnumerationError",
    "ServiceNotFoundError",
    "SessionStateError",
    "SubscriptionError",
    "CYCLING_POWER_CONTROL_POINT_UUID",
    "CYCLING_POWER_MEASUREMENT_UUID",
    "CYCLING_POWER_SERVICE_UUID",
    "DeviceDescriptor",
    "PowerReading",
    "SensorProfile",
    "SessionResult",
    "SessionState",
    "BLEAdapter",
    "BleakAdapter",
    "CollectingSink",
    "ConnectionOrchestrator",
    "DeviceFilter",
    "LoggingSink",
    "OutputSink",
    "decode_power_measurement",
    "Client",
]


class Client:
    """Public client for interacting with trainerctl core capabilities.

    A `Client` wraps profile loading, discovery and the connection
    orchestrator behind a stable API intended for third-party tools
    (dashboards, loggers, bridges to other services).
    """

    def __init__(self, *, adapter: BLEAdapter | None = None) -> None:
        self._service = TrainerService(adapter=adapter)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    def list_profiles(self) -> list[SensorProfile]:
        return self._service.list_profiles()

    def get_profile(self, profile_id: str | None = None, *, name_patterns: Sequence[str] = ()) -> SensorProfile:
        return self._service.resolve_profile(profile_id, name_patterns=name_patterns)

    async def discover(
        self,
        *,
        profile_id: str | None = None,
        name_patterns: Sequence[str] = (),
    ) -> list[tuple[DeviceDescriptor, bool]]:
        return await self._service.discover(profile_id, name_patterns=name_patterns)

    async def watch(
        self,
        cancel: asyncio.Event,
        *,
        profile_id: str | None = None,
        name_patterns: Sequence[str] = (),
        duration_s: float | None = None,
        sink: OutputSink | None = None,
    ) -> SessionResult:
        return await self._service.watch(
            cancel,
            profile_id=profile_id,
            name_patterns=name_patterns,
            duration_s=duration_s,
            sink=sink,
        )

    async def stream(
        self,
        cancel: asyncio.Event,
        *,
        profile_id: str | None = None,
        name_patterns: Sequence[str] = (),
        sink: OutputSink | None = None,
    ) -> AsyncIterator[PowerReading]:
        """Yield readings until ``cancel`` is set.

        Failing to open the session, or losing the link while streaming, raises the
        typed error from the failed result.
        """
        profile = self._service.resolve_profile(profile_id, name_patterns=name_patterns)
        orchestrator = self._service.orchestrator(profile, sink=sink)
        result = await orchestrator.open()
        if result.error is not None:
            raise result.error
        try:
            async for reading in orchestrator.readings(cancel):
                yield reading
        finally:
            result = await orchestrator.close()
        if result.error is not None:
            raise result.error
