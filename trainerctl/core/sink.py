"""Output collaborators receiving progress lines and decoded readings."""

from __future__ import annotations

import logging
from typing import Protocol

from trainerctl.core.model import PowerReading

LOGGER = logging.getLogger(__name__)


class OutputSink(Protocol):
    def log(self, message: str) -> None:
        ...

    def emit(self, reading: PowerReading) -> None:
        ...


class LoggingSink:
    def log(self, message: str) -> None:
        LOGGER.info(message)

    def emit(self, reading: PowerReading) -> None:
        LOGGER.info("Current Power: %d watts", reading.instantaneous_power_watts)


class CollectingSink:
    """Keeps everything in memory; handy for scripts and tests."""

    def __init__(self) -> None:
        self.messages: list[str] = []
        self.readings: list[PowerReading] = []

    def log(self, message: str) -> None:
        self.messages.append(message)

    def emit(self, reading: PowerReading) -> None:
        self.readings.append(reading)
