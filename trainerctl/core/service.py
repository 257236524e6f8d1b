"""Service layer used by CLI and the public API."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import replace

from trainerctl.core.device_filter import DeviceFilter
from trainerctl.core.errors import ProfileSelectionError
from trainerctl.core.model import DeviceDescriptor, MatchRules, SensorProfile, SessionResult
from trainerctl.core.orchestrator import ConnectionOrchestrator
from trainerctl.core.profile_loader import DEFAULT_PROFILE_ID, load_profiles
from trainerctl.core.sink import OutputSink
from trainerctl.transports.base import BLEAdapter
from trainerctl.transports.bleak_adapter import BleakAdapter


class TrainerService:
    def __init__(self, *, adapter: BLEAdapter | None = None) -> None:
        loaded = load_profiles()
        self.profiles = loaded.profiles
        self.load_warnings = loaded.warnings
        self.adapter = adapter or BleakAdapter()

    def list_profiles(self) -> list[SensorProfile]:
        return sorted(self.profiles.values(), key=lambda p: p.id)

    def resolve_profile(
        self,
        profile_id: str | None = None,
        *,
        name_patterns: Sequence[str] = (),
        max_attempts: int | None = None,
        retry_delay_s: float | None = None,
    ) -> SensorProfile:
        """Look up a profile and apply per-invocation overrides."""
        wanted = profile_id or DEFAULT_PROFILE_ID
        profile = self.profiles.get(wanted)
        if profile is None:
            available = ", ".join(sorted(self.profiles))
            raise ProfileSelectionError(f"Unknown profile '{wanted}'. Available: {available}")

        patterns = tuple(p.strip() for p in name_patterns if p.strip())
        if patterns:
            profile = replace(profile, match=MatchRules(name_contains=patterns))
        scan = profile.scan
        if max_attempts is not None:
            if max_attempts < 1:
                raise ProfileSelectionError("--attempts must be at least 1")
            scan = replace(scan, max_attempts=max_attempts)
        if retry_delay_s is not None:
            scan = replace(scan, retry_delay_s=max(0.0, retry_delay_s))
        return replace(profile, scan=scan)

    async def discover(
        self,
        profile_id: str | None = None,
        *,
        name_patterns: Sequence[str] = (),
    ) -> list[tuple[DeviceDescriptor, bool]]:
        profile = self.resolve_profile(profile_id, name_patterns=name_patterns)
        device_filter = DeviceFilter.from_rules(profile.match)
        devices = await self.adapter.scan_devices(timeout_s=profile.scan.timeout_s)
        return [(device, device_filter.matches(device)) for device in devices]

    def orchestrator(self, profile: SensorProfile, *, sink: OutputSink | None = None) -> ConnectionOrchestrator:
        return ConnectionOrchestrator(self.adapter, profile, sink=sink)

    async def watch(
        self,
        cancel: asyncio.Event,
        *,
        profile_id: str | None = None,
        name_patterns: Sequence[str] = (),
        max_attempts: int | None = None,
        retry_delay_s: float | None = None,
        duration_s: float | None = None,
        sink: OutputSink | None = None,
    ) -> SessionResult:
        profile = self.resolve_profile(
            profile_id,
            name_patterns=name_patterns,
            max_attempts=max_attempts,
            retry_delay_s=retry_delay_s,
        )
        return await self.orchestrator(profile, sink=sink).run(cancel, duration_s=duration_s)
