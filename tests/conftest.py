from __future__ import annotations

import asyncio
from typing import Any

import pytest

from trainerctl.core.gatt import (
    CYCLING_POWER_CONTROL_POINT_UUID,
    CYCLING_POWER_MEASUREMENT_UUID,
    CYCLING_POWER_SERVICE_UUID,
)
from trainerctl.core.model import (
    CharacteristicDescriptor,
    DeviceDescriptor,
    GattStatus,
    MatchRules,
    ScanSettings,
    SensorProfile,
    ServiceDescriptor,
)
from trainerctl.core.sink import CollectingSink

DEVICE_INFORMATION_UUID = "0000180a-0000-1000-8000-00805f9b34fb"


def default_services() -> list[ServiceDescriptor]:
    return [
        ServiceDescriptor(uuid=DEVICE_INFORMATION_UUID, handle="svc-dis"),
        ServiceDescriptor(uuid=CYCLING_POWER_SERVICE_UUID, handle="svc-cps"),
    ]


def default_characteristics() -> list[CharacteristicDescriptor]:
    return [
        CharacteristicDescriptor(
            uuid=CYCLING_POWER_CONTROL_POINT_UUID,
            handle="chr-cp",
            properties=("write", "indicate"),
        ),
        CharacteristicDescriptor(
            uuid=CYCLING_POWER_MEASUREMENT_UUID,
            handle="chr-meas",
            properties=("notify",),
        ),
    ]


class FakeAdapter:
    """Scripted adapter recording every call in order."""

    def __init__(
        self,
        scans: list[list[DeviceDescriptor]] | None = None,
        *,
        connect_result: Any = "handle-1",
        connect_error: Exception | None = None,
        service_status: GattStatus = GattStatus.SUCCESS,
        services: list[ServiceDescriptor] | None = None,
        characteristic_status: GattStatus = GattStatus.SUCCESS,
        characteristics: list[CharacteristicDescriptor] | None = None,
        notify_status: GattStatus = GattStatus.SUCCESS,
        frames_on_subscribe: list[bytes] | None = None,
    ) -> None:
        self.scans = scans or []
        self.connect_result = connect_result
        self.connect_error = connect_error
        self.service_status = service_status
        self.services = default_services() if services is None else services
        self.characteristic_status = characteristic_status
        self.characteristics = default_characteristics() if characteristics is None else characteristics
        self.notify_status = notify_status
        self.frames_on_subscribe = frames_on_subscribe or []
        self.scan_calls = 0
        self.events: list[tuple[str, Any]] = []
        self.callbacks: dict[str, Any] = {}
        self.disconnect_callbacks: list[Any] = []

    def count(self, name: str) -> int:
        return sum(1 for event, _ in self.events if event == name)

    async def scan_devices(self, *, timeout_s: float = 5.0) -> list[DeviceDescriptor]:
        self.scan_calls += 1
        self.events.append(("scan", timeout_s))
        if not self.scans:
            return []
        return list(self.scans[min(self.scan_calls, len(self.scans)) - 1])

    async def connect(self, device: DeviceDescriptor, *, timeout_s: float = 10.0) -> Any:
        self.events.append(("connect", device.id))
        if self.connect_error is not None:
            raise self.connect_error
        return self.connect_result

    async def list_services(self, handle: Any) -> tuple[GattStatus, list[ServiceDescriptor]]:
        self.events.append(("list_services", handle))
        if self.service_status is not GattStatus.SUCCESS:
            return self.service_status, []
        return self.service_status, list(self.services)

    async def list_characteristics(
        self,
        service: ServiceDescriptor,
    ) -> tuple[GattStatus, list[CharacteristicDescriptor]]:
        self.events.append(("list_characteristics", service.uuid))
        if self.characteristic_status is not GattStatus.SUCCESS:
            return self.characteristic_status, []
        return self.characteristic_status, list(self.characteristics)

    async def enable_notify(self, handle: Any, characteristic: CharacteristicDescriptor) -> GattStatus:
        self.events.append(("enable_notify", characteristic.uuid))
        return self.notify_status

    def on_notify(self, handle: Any, characteristic: CharacteristicDescriptor, callback: Any) -> None:
        self.events.append(("on_notify", characteristic.uuid))
        self.callbacks[characteristic.uuid] = callback
        loop = asyncio.get_running_loop()
        for frame in self.frames_on_subscribe:
            loop.call_soon(self.notify, frame)

    def notify(self, data: bytes) -> None:
        for callback in list(self.callbacks.values()):
            callback(data)

    async def remove_notify(self, handle: Any, characteristic: CharacteristicDescriptor) -> None:
        self.events.append(("remove_notify", characteristic.uuid))
        self.callbacks.pop(characteristic.uuid, None)

    async def disconnect(self, handle: Any) -> None:
        self.events.append(("disconnect", handle))
        self.disconnect_callbacks.clear()

    def on_disconnect(self, handle: Any, callback: Any) -> None:
        self.events.append(("on_disconnect", handle))
        self.disconnect_callbacks.append(callback)

    def drop_link(self) -> None:
        """Simulate the peripheral going away: no more frames, disconnect callbacks fire."""
        self.callbacks.clear()
        callbacks, self.disconnect_callbacks = self.disconnect_callbacks, []
        for callback in callbacks:
            callback()


class StopAfterSink(CollectingSink):
    """Sets ``cancel`` once ``limit`` readings have been emitted."""

    def __init__(self, cancel: asyncio.Event, limit: int) -> None:
        super().__init__()
        self.cancel = cancel
        self.limit = limit

    def emit(self, reading) -> None:
        super().emit(reading)
        if len(self.readings) >= self.limit:
            self.cancel.set()


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def profile() -> SensorProfile:
    return SensorProfile(
        id="test_profile",
        name="Test",
        match=MatchRules(name_contains=("ELITE_", "Suito")),
        scan=ScanSettings(max_attempts=3, retry_delay_s=3.0, timeout_s=0.5),
        queue_size=16,
    )


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture(autouse=True)
def isolated_profile_dirs(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
