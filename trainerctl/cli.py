"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Any

import typer

from trainerctl.core.errors import TrainerctlError
from trainerctl.core.model import PowerReading, SessionResult
from trainerctl.core.service import TrainerService

app = typer.Typer(help="Stream power readings from BLE cycling power trainers")


class EchoSink:
    def log(self, message: str) -> None:
        typer.echo(message, err=True)

    def emit(self, reading: PowerReading) -> None:
        typer.echo(f"Current Power: {reading.instantaneous_power_watts} watts")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_service() -> TrainerService:
    service = TrainerService()
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


@app.command("profiles")
def list_profiles() -> None:
    """List available sensor profiles and their name patterns."""
    try:
        service = _build_service()
        profiles = service.list_profiles()
        if not profiles:
            typer.echo("No profiles loaded")
            raise typer.Exit(code=1)

        for profile in profiles:
            typer.echo(f"{profile.id}: {profile.name}")
            typer.echo(f"  name contains: {', '.join(profile.match.name_contains)}")
            typer.echo(
                f"  scan: {profile.scan.max_attempts} attempts, {profile.scan.retry_delay_s:g}s apart"
            )
    except TrainerctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("scan")
def scan_devices(
    profile: str | None = typer.Option(None, "--profile", help="Profile ID"),
    name: list[str] | None = typer.Option(None, "--name", help="Name substring to accept (repeatable)"),
) -> None:
    """Run one discovery query and show which devices the profile accepts."""
    try:
        service = _build_service()
        devices = asyncio.run(service.discover(profile, name_patterns=name or ()))
        if not devices:
            typer.echo("No Bluetooth LE devices found")
            return

        for device, matched in devices:
            label = "match" if matched else "no-match"
            typer.echo(f"{device.id} {device.name or '<unnamed>'} -> {label}")
    except TrainerctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


async def _watch(service: TrainerService, **options: Any) -> SessionResult:
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    handles_sigint = True
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.set)
    except (NotImplementedError, RuntimeError, ValueError):
        # No loop signal support (Windows, non-main thread): Ctrl-C raises KeyboardInterrupt instead.
        handles_sigint = False
    try:
        return await service.watch(cancel, sink=EchoSink(), **options)
    finally:
        if handles_sigint:
            loop.remove_signal_handler(signal.SIGINT)


@app.command("watch")
def watch(
    profile: str | None = typer.Option(None, "--profile", help="Profile ID"),
    name: list[str] | None = typer.Option(None, "--name", help="Name substring to accept (repeatable)"),
    attempts: int | None = typer.Option(None, "--attempts", help="Scan attempts before giving up"),
    delay: float | None = typer.Option(None, "--delay", help="Seconds between scan attempts"),
    duration: float | None = typer.Option(None, "--duration", help="Stop after streaming for N seconds"),
) -> None:
    """Connect to a trainer and print power readings until Ctrl-C."""
    try:
        service = _build_service()
        result = asyncio.run(
            _watch(
                service,
                profile_id=profile,
                name_patterns=name or (),
                max_attempts=attempts,
                retry_delay_s=delay,
                duration_s=duration,
            )
        )
    except KeyboardInterrupt:
        typer.echo("Stopped", err=True)
        return
    except TrainerctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    if result.error is not None:
        typer.echo(f"Error: {result.error}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Session {result.state.value}", err=True)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
