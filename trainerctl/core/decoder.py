"""Cycling Power Measurement payload decoding."""

from __future__ import annotations

import struct
from datetime import datetime, timezone

from trainerctl.core.errors import DecodeError
from trainerctl.core.model import PowerReading

# flags (u16, ignored) followed by instantaneous power (u16, watts)
_MEASUREMENT_HEADER = struct.Struct("<HH")


def decode_power_measurement(payload: bytes, *, timestamp: datetime | None = None) -> PowerReading:
    if len(payload) < _MEASUREMENT_HEADER.size:
        raise DecodeError(
            f"Power measurement payload too short: {len(payload)} bytes, "
            f"need at least {_MEASUREMENT_HEADER.size}"
        )
    _flags, power = _MEASUREMENT_HEADER.unpack_from(payload)
    return PowerReading(
        instantaneous_power_watts=power,
        timestamp=timestamp if timestamp is not None else datetime.now(timezone.utc),
    )
