"""BLE adapter implementation on top of bleak."""

from __future__ import annotations

import logging
from typing import Any

from trainerctl.core.errors import AdapterError, DeviceConnectionError, DeviceDiscoveryError
from trainerctl.core.model import (
    CharacteristicDescriptor,
    DeviceDescriptor,
    GattStatus,
    ServiceDescriptor,
)
from trainerctl.transports.base import DisconnectCallback, NotifyCallback

LOGGER = logging.getLogger(__name__)


def _import_bleak() -> Any:
    try:
        import bleak  # type: ignore
    except Exception as exc:  # pragma: no cover - import failure path
        raise AdapterError("BLE adapter requires 'bleak'. Install dependency and retry.") from exc
    return bleak


class BleakAdapter:
    """Maps the adapter capability surface onto ``BleakScanner``/``BleakClient``.

    Connection handles are connected ``BleakClient`` instances. bleak folds the
    CCCD write and callback registration into ``start_notify``; the adapter
    starts notifications in :meth:`enable_notify` and routes frames to whatever
    callback :meth:`on_notify` registered (frames before that are dropped).
    Callbacks run on the event loop thread. Link loss is reported through the
    client's ``disconnected_callback`` to whatever :meth:`on_disconnect` registered.
    """

    def __init__(self) -> None:
        self._seen: dict[str, Any] = {}
        self._callbacks: dict[tuple[str, str], NotifyCallback] = {}
        self._disconnect_callbacks: dict[str, DisconnectCallback] = {}

    async def scan_devices(self, *, timeout_s: float = 5.0) -> list[DeviceDescriptor]:
        bleak = _import_bleak()
        self._seen.clear()
        try:
            discovered = await bleak.BleakScanner.discover(timeout=timeout_s, return_adv=True)
        except Exception as exc:
            raise DeviceDiscoveryError(
                f"Bluetooth discovery failed. Ensure Bluetooth is enabled. Details: {exc}"
            ) from exc

        devices: list[DeviceDescriptor] = []
        for address, (ble_device, adv) in discovered.items():
            self._seen[address] = ble_device
            devices.append(
                DeviceDescriptor(
                    id=address,
                    name=adv.local_name or ble_device.name,
                    rssi=adv.rssi,
                )
            )
        return devices

    async def connect(self, device: DeviceDescriptor, *, timeout_s: float = 10.0) -> Any:
        bleak = _import_bleak()
        target = self._seen.get(device.id, device.id)
        client = bleak.BleakClient(
            target,
            disconnected_callback=self._handle_disconnected,
            timeout=timeout_s,
        )
        try:
            await client.connect()
        except Exception as exc:
            raise DeviceConnectionError(f"BLE connect failed for {device.id}: {exc}") from exc
        if not client.is_connected:
            raise DeviceConnectionError(f"BLE connect failed for {device.id}")
        return client

    def _handle_disconnected(self, client: Any) -> None:
        callback = self._disconnect_callbacks.pop(client.address, None)
        if callback is None:
            return
        LOGGER.warning("BLE link to %s dropped", client.address)
        callback()

    def on_disconnect(self, handle: Any, callback: DisconnectCallback) -> None:
        self._disconnect_callbacks[handle.address] = callback

    async def list_services(self, handle: Any) -> tuple[GattStatus, list[ServiceDescriptor]]:
        if not handle.is_connected:
            return GattStatus.UNREACHABLE, []
        try:
            services = [ServiceDescriptor(uuid=s.uuid.lower(), handle=s) for s in handle.services]
        except Exception as exc:
            LOGGER.warning("Service enumeration failed: %s", exc)
            return GattStatus.PROTOCOL_ERROR, []
        return GattStatus.SUCCESS, services

    async def list_characteristics(
        self,
        service: ServiceDescriptor,
    ) -> tuple[GattStatus, list[CharacteristicDescriptor]]:
        try:
            characteristics = [
                CharacteristicDescriptor(
                    uuid=c.uuid.lower(),
                    handle=c,
                    properties=tuple(c.properties),
                )
                for c in service.handle.characteristics
            ]
        except Exception as exc:
            LOGGER.warning("Characteristic enumeration failed for %s: %s", service.uuid, exc)
            return GattStatus.PROTOCOL_ERROR, []
        return GattStatus.SUCCESS, characteristics

    async def enable_notify(self, handle: Any, characteristic: CharacteristicDescriptor) -> GattStatus:
        if not handle.is_connected:
            return GattStatus.UNREACHABLE
        if characteristic.properties and "notify" not in characteristic.properties:
            return GattStatus.ACCESS_DENIED

        key = (handle.address, characteristic.uuid)

        def _dispatch(_: Any, data: bytearray) -> None:
            callback = self._callbacks.get(key)
            if callback is not None:
                callback(bytes(data))

        try:
            await handle.start_notify(characteristic.handle, _dispatch)
        except Exception as exc:
            LOGGER.warning("start_notify failed on %s: %s", characteristic.uuid, exc)
            return GattStatus.PROTOCOL_ERROR
        return GattStatus.SUCCESS

    def on_notify(
        self,
        handle: Any,
        characteristic: CharacteristicDescriptor,
        callback: NotifyCallback,
    ) -> None:
        self._callbacks[(handle.address, characteristic.uuid)] = callback

    async def remove_notify(self, handle: Any, characteristic: CharacteristicDescriptor) -> None:
        self._callbacks.pop((handle.address, characteristic.uuid), None)
        if not handle.is_connected:
            return
        try:
            await handle.stop_notify(characteristic.handle)
        except Exception as exc:
            raise AdapterError(f"stop_notify failed on {characteristic.uuid}: {exc}") from exc

    async def disconnect(self, handle: Any) -> None:
        self._disconnect_callbacks.pop(handle.address, None)
        for key in [key for key in self._callbacks if key[0] == handle.address]:
            del self._callbacks[key]
        try:
            await handle.disconnect()
        except Exception as exc:
            raise AdapterError(f"BLE disconnect failed for {handle.address}: {exc}") from exc
