"""GATT service and characteristic resolution."""

from __future__ import annotations

import logging
import re
from typing import Any

from trainerctl.core.errors import (
    CharacteristicEnumerationError,
    CharacteristicNotFoundError,
    ServiceEnumerationError,
    ServiceNotFoundError,
)
from trainerctl.core.model import CharacteristicDescriptor, GattStatus, ServiceDescriptor
from trainerctl.transports.base import BLEAdapter

CYCLING_POWER_SERVICE_UUID = "00001818-0000-1000-8000-00805f9b34fb"
CYCLING_POWER_MEASUREMENT_UUID = "00002a63-0000-1000-8000-00805f9b34fb"
CYCLING_POWER_CONTROL_POINT_UUID = "00002a66-0000-1000-8000-00805f9b34fb"

_BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"
_SHORT_UUID_RE = re.compile(r"^(?:0x)?([0-9a-f]{4}|[0-9a-f]{8})$")
LOGGER = logging.getLogger(__name__)


def normalize_uuid(value: str) -> str:
    """Lowercase a UUID, expanding 16/32-bit short forms on the Bluetooth base UUID."""
    normalized = value.strip().lower()
    short = _SHORT_UUID_RE.match(normalized)
    if short:
        return short.group(1).rjust(8, "0") + _BASE_UUID_SUFFIX
    return normalized


class GattResolver:
    def __init__(self, adapter: BLEAdapter) -> None:
        self.adapter = adapter

    async def resolve_service(self, handle: Any, uuid: str) -> ServiceDescriptor:
        target = normalize_uuid(uuid)
        status, services = await self.adapter.list_services(handle)
        if status is not GattStatus.SUCCESS:
            raise ServiceEnumerationError(f"Failed to get services: {status.value}", status=status)

        for service in services:
            if normalize_uuid(service.uuid) == target:
                return service

        LOGGER.debug("Services offered: %s", ", ".join(s.uuid for s in services))
        raise ServiceNotFoundError(
            f"Service {target} not offered by device ({len(services)} services enumerated)",
            status=status,
        )

    async def resolve_characteristic(self, service: ServiceDescriptor, uuid: str) -> CharacteristicDescriptor:
        target = normalize_uuid(uuid)
        status, characteristics = await self.adapter.list_characteristics(service)
        if status is not GattStatus.SUCCESS:
            raise CharacteristicEnumerationError(
                f"Failed to get characteristics of service {service.uuid}: {status.value}",
                status=status,
            )

        for characteristic in characteristics:
            if normalize_uuid(characteristic.uuid) == target:
                return characteristic

        raise CharacteristicNotFoundError(
            f"Characteristic {target} not found in service {service.uuid}",
            status=status,
        )
