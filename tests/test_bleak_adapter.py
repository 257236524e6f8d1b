from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from trainerctl.core.errors import AdapterError, DeviceDiscoveryError
from trainerctl.core.gatt import CYCLING_POWER_MEASUREMENT_UUID, CYCLING_POWER_SERVICE_UUID
from trainerctl.core.model import CharacteristicDescriptor, DeviceDescriptor, GattStatus, ServiceDescriptor
from trainerctl.transports import bleak_adapter
from trainerctl.transports.bleak_adapter import BleakAdapter


class FakeClient:
    def __init__(self, services=(), *, connected: bool = True) -> None:
        self.address = "C0:FF:EE:00:12:34"
        self.is_connected = connected
        self.services = list(services)
        self.notify_handlers: dict[object, object] = {}
        self.stopped: list[object] = []

    async def start_notify(self, char, callback) -> None:
        self.notify_handlers[char] = callback

    async def stop_notify(self, char) -> None:
        self.stopped.append(char)

    async def disconnect(self) -> None:
        self.is_connected = False


class FakeCharacteristic:
    """Stands in for ``BleakGATTCharacteristic``; hashable like the real one."""

    def __init__(self, uuid: str, properties) -> None:
        self.uuid = uuid
        self.properties = list(properties)


def _measurement_char(properties=("notify",)):
    return FakeCharacteristic(CYCLING_POWER_MEASUREMENT_UUID.upper(), properties)


def test_scan_maps_advertisements(monkeypatch: pytest.MonkeyPatch) -> None:
    async def discover(timeout, return_adv):
        assert return_adv is True
        return {
            "AA": (SimpleNamespace(name=None), SimpleNamespace(local_name="Suito-T-1234", rssi=-60)),
            "BB": (SimpleNamespace(name="Phone"), SimpleNamespace(local_name=None, rssi=-80)),
        }

    fake_bleak = SimpleNamespace(BleakScanner=SimpleNamespace(discover=discover))
    monkeypatch.setattr(bleak_adapter, "_import_bleak", lambda: fake_bleak)

    devices = asyncio.run(BleakAdapter().scan_devices(timeout_s=1.0))
    assert [(d.id, d.name, d.rssi) for d in devices] == [("AA", "Suito-T-1234", -60), ("BB", "Phone", -80)]


def test_scan_failure_raises_discovery_error(monkeypatch: pytest.MonkeyPatch) -> None:
    async def discover(timeout, return_adv):
        raise OSError("org.bluez.Error.NotReady")

    fake_bleak = SimpleNamespace(BleakScanner=SimpleNamespace(discover=discover))
    monkeypatch.setattr(bleak_adapter, "_import_bleak", lambda: fake_bleak)

    with pytest.raises(DeviceDiscoveryError):
        asyncio.run(BleakAdapter().scan_devices())


def test_enumeration_wraps_bleak_objects() -> None:
    char = _measurement_char()
    service = SimpleNamespace(uuid=CYCLING_POWER_SERVICE_UUID.upper(), characteristics=[char])
    client = FakeClient(services=[service])
    adapter = BleakAdapter()

    async def _run():
        status, services = await adapter.list_services(client)
        char_status, chars = await adapter.list_characteristics(services[0])
        return status, services, char_status, chars

    status, services, char_status, chars = asyncio.run(_run())
    assert status is GattStatus.SUCCESS
    assert services[0].uuid == CYCLING_POWER_SERVICE_UUID
    assert char_status is GattStatus.SUCCESS
    assert chars[0].uuid == CYCLING_POWER_MEASUREMENT_UUID
    assert chars[0].properties == ("notify",)


def test_disconnected_client_is_unreachable() -> None:
    status, services = asyncio.run(BleakAdapter().list_services(FakeClient(connected=False)))
    assert status is GattStatus.UNREACHABLE
    assert services == []


def test_notifications_reach_registered_callback_only() -> None:
    raw = _measurement_char()
    characteristic = CharacteristicDescriptor(uuid=CYCLING_POWER_MEASUREMENT_UUID, handle=raw, properties=("notify",))
    client = FakeClient()
    adapter = BleakAdapter()
    received: list[bytes] = []

    async def _run():
        status = await adapter.enable_notify(client, characteristic)
        dispatch = client.notify_handlers[raw]
        dispatch(raw, bytearray(b"\x00\x00\x01\x00"))
        adapter.on_notify(client, characteristic, received.append)
        dispatch(raw, bytearray(b"\x00\x00\x02\x00"))
        await adapter.remove_notify(client, characteristic)
        dispatch(raw, bytearray(b"\x00\x00\x03\x00"))
        return status

    status = asyncio.run(_run())
    assert status is GattStatus.SUCCESS
    assert received == [b"\x00\x00\x02\x00"]
    assert client.stopped == [raw]


def test_notify_requires_notify_property() -> None:
    raw = _measurement_char(properties=("read",))
    characteristic = CharacteristicDescriptor(uuid=CYCLING_POWER_MEASUREMENT_UUID, handle=raw, properties=("read",))
    status = asyncio.run(BleakAdapter().enable_notify(FakeClient(), characteristic))
    assert status is GattStatus.ACCESS_DENIED


def test_disconnect_failure_is_adapter_error() -> None:
    class BrokenClient(FakeClient):
        async def disconnect(self) -> None:
            raise OSError("busy")

    with pytest.raises(AdapterError):
        asyncio.run(BleakAdapter().disconnect(BrokenClient()))


def test_service_descriptor_handle_not_part_of_equality() -> None:
    assert ServiceDescriptor(uuid="x", handle=1) == ServiceDescriptor(uuid="x", handle=2)


def test_each_scan_replaces_seen_devices(monkeypatch: pytest.MonkeyPatch) -> None:
    rounds = [
        {"AA": (SimpleNamespace(name="Suito-T-1234"), SimpleNamespace(local_name=None, rssi=-60))},
        {"BB": (SimpleNamespace(name="Phone"), SimpleNamespace(local_name=None, rssi=-80))},
    ]

    async def discover(timeout, return_adv):
        return rounds.pop(0)

    fake_bleak = SimpleNamespace(BleakScanner=SimpleNamespace(discover=discover))
    monkeypatch.setattr(bleak_adapter, "_import_bleak", lambda: fake_bleak)
    adapter = BleakAdapter()

    async def _run():
        await adapter.scan_devices()
        await adapter.scan_devices()

    asyncio.run(_run())
    assert list(adapter._seen) == ["BB"]


def _connecting_bleak(clients: list):
    class ConnectingClient(FakeClient):
        def __init__(self, target, *, disconnected_callback=None, timeout=10.0) -> None:
            super().__init__(connected=False)
            self.target = target
            self.disconnected_callback = disconnected_callback
            clients.append(self)

        async def connect(self) -> None:
            self.is_connected = True

    return SimpleNamespace(BleakClient=ConnectingClient)


def test_link_drop_reaches_disconnect_callback_once(monkeypatch: pytest.MonkeyPatch) -> None:
    clients: list = []
    monkeypatch.setattr(bleak_adapter, "_import_bleak", lambda: _connecting_bleak(clients))
    adapter = BleakAdapter()
    lost: list[str] = []

    async def _run():
        client = await adapter.connect(DeviceDescriptor(id="C0:FF:EE:00:12:34", name="Suito-T-1234"))
        adapter.on_disconnect(client, lambda: lost.append(client.address))
        client.is_connected = False
        client.disconnected_callback(client)
        client.disconnected_callback(client)

    asyncio.run(_run())
    assert clients[0].target == "C0:FF:EE:00:12:34"
    assert lost == ["C0:FF:EE:00:12:34"]


def test_own_disconnect_is_not_reported_as_link_loss(monkeypatch: pytest.MonkeyPatch) -> None:
    clients: list = []
    monkeypatch.setattr(bleak_adapter, "_import_bleak", lambda: _connecting_bleak(clients))
    adapter = BleakAdapter()
    lost: list[str] = []

    async def _run():
        client = await adapter.connect(DeviceDescriptor(id="C0:FF:EE:00:12:34", name="Suito-T-1234"))
        adapter.on_disconnect(client, lambda: lost.append(client.address))
        await adapter.disconnect(client)
        client.disconnected_callback(client)

    asyncio.run(_run())
    assert lost == []
