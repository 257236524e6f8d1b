"""Bounded-retry device discovery."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from trainerctl.core.device_filter import DeviceFilter
from trainerctl.core.errors import DeviceNotFoundError
from trainerctl.core.model import DeviceDescriptor
from trainerctl.core.sink import LoggingSink, OutputSink
from trainerctl.transports.base import BLEAdapter

LOGGER = logging.getLogger(__name__)


class DeviceScanner:
    def __init__(
        self,
        adapter: BLEAdapter,
        device_filter: DeviceFilter,
        *,
        sink: OutputSink | None = None,
        scan_timeout_s: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.adapter = adapter
        self.device_filter = device_filter
        self.sink = sink or LoggingSink()
        self.scan_timeout_s = scan_timeout_s
        self._sleep = sleep

    async def scan(self, max_attempts: int, retry_delay_s: float) -> DeviceDescriptor:
        """Query the adapter until a device passes the filter.

        Adapter failures (``DeviceDiscoveryError``) propagate immediately; only
        "nothing matched" is retried.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        for attempt in range(1, max_attempts + 1):
            devices = await self.adapter.scan_devices(timeout_s=self.scan_timeout_s)
            self.sink.log(f"Scan attempt {attempt}/{max_attempts}: {len(devices)} devices")
            LOGGER.debug("Seen: %s", ", ".join(d.name or d.id for d in devices) or "<none>")

            match = self.device_filter.select(devices)
            if match is not None:
                LOGGER.info("Matched device %s (%s) on attempt %d", match.name, match.id, attempt)
                return match

            if attempt < max_attempts:
                await self._sleep(retry_delay_s)

        patterns = ", ".join(self.device_filter.patterns)
        raise DeviceNotFoundError(
            f"No device matching [{patterns}] found after {max_attempts} attempts. "
            "Ensure the trainer is powered on and advertising."
        )
