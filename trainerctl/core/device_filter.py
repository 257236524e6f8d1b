"""Name-based acceptance of discovered devices."""

from __future__ import annotations

from collections.abc import Iterable

from trainerctl.core.model import DeviceDescriptor, MatchRules


class DeviceFilter:
    def __init__(self, patterns: Iterable[str]) -> None:
        self.patterns = tuple(p.lower() for p in patterns if p)

    @classmethod
    def from_rules(cls, rules: MatchRules) -> DeviceFilter:
        return cls(rules.name_contains)

    def matches(self, device: DeviceDescriptor) -> bool:
        if not device.name:
            return False
        lower_name = device.name.lower()
        return any(token in lower_name for token in self.patterns)

    def select(self, devices: Iterable[DeviceDescriptor]) -> DeviceDescriptor | None:
        for device in devices:
            if self.matches(device):
                return device
        return None
