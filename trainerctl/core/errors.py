"""Domain-specific errors for trainerctl."""

from __future__ import annotations

from typing import Any


class TrainerctlError(Exception):
    """Base error for trainerctl."""


class ProfileValidationError(TrainerctlError):
    """Raised when a profile file does not conform to schema or semantics."""


class ProfileLoadError(TrainerctlError):
    """Raised when loading profile sources fails."""


class ProfileSelectionError(TrainerctlError):
    """Raised when a requested profile id is unknown."""


class DeviceNotFoundError(TrainerctlError):
    """Raised when no matching device shows up within the scan budget."""


class DeviceDiscoveryError(DeviceNotFoundError):
    """Raised when the Bluetooth adapter cannot perform a discovery query."""


class DeviceConnectionError(TrainerctlError):
    """Raised when a connection handle cannot be acquired."""


class GattError(TrainerctlError):
    """Base error for GATT resolution steps, optionally carrying the adapter status."""

    def __init__(self, message: str, *, status: Any = None) -> None:
        super().__init__(message)
        self.status = status


class ServiceDiscoveryError(GattError):
    """Raised when the target service cannot be resolved."""


class ServiceEnumerationError(ServiceDiscoveryError):
    """Raised when the adapter fails to enumerate services."""


class ServiceNotFoundError(ServiceDiscoveryError):
    """Raised when services were enumerated but the target UUID is absent."""


class CharacteristicNotFoundError(GattError):
    """Raised when the target characteristic cannot be resolved."""


class CharacteristicEnumerationError(CharacteristicNotFoundError):
    """Raised when the adapter fails to enumerate characteristics."""


class SubscriptionError(GattError):
    """Raised when enabling notifications fails."""


class DecodeError(TrainerctlError):
    """Raised when a notification payload is malformed."""


class AdapterError(TrainerctlError):
    """Raised on adapter failures outside the resolution steps (e.g. unsubscribe)."""


class SessionStateError(TrainerctlError):
    """Raised when an orchestrator operation is invalid in its current state."""
