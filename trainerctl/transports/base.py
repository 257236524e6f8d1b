"""Adapter interfaces."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

from trainerctl.core.model import (
    CharacteristicDescriptor,
    DeviceDescriptor,
    GattStatus,
    ServiceDescriptor,
)

NotifyCallback = Callable[[bytes], None]
DisconnectCallback = Callable[[], None]


class BLEAdapter(Protocol):
    async def scan_devices(self, *, timeout_s: float = 5.0) -> list[DeviceDescriptor]:
        """Return all peripherals visible during one discovery window."""

    async def connect(self, device: DeviceDescriptor, *, timeout_s: float = 10.0) -> Any:
        """Acquire a connection handle for a discovered device."""

    async def list_services(self, handle: Any) -> tuple[GattStatus, list[ServiceDescriptor]]:
        ...

    async def list_characteristics(
        self,
        service: ServiceDescriptor,
    ) -> tuple[GattStatus, list[CharacteristicDescriptor]]:
        ...

    async def enable_notify(self, handle: Any, characteristic: CharacteristicDescriptor) -> GattStatus:
        """Write the client characteristic configuration descriptor for notify mode."""

    def on_notify(
        self,
        handle: Any,
        characteristic: CharacteristicDescriptor,
        callback: NotifyCallback,
    ) -> None:
        ...

    async def remove_notify(self, handle: Any, characteristic: CharacteristicDescriptor) -> None:
        ...

    async def disconnect(self, handle: Any) -> None:
        ...

    def on_disconnect(self, handle: Any, callback: DisconnectCallback) -> None:
        """Call ``callback`` once if the link drops before :meth:`disconnect`."""
