"""Connection state machine: scan, connect, resolve, subscribe, stream, close.

The orchestrator owns at most one :class:`ConnectionSession`. Every step that
fails after the device handle was acquired tears the session down (in reverse
acquisition order) before a :class:`SessionResult` is returned, so no
partially-initialised session outlives a failed step.

Notifications are delivered by the adapter on the event loop; the callback
only enqueues the raw frame with its capture time. :meth:`readings` drains the
queue, decodes frames and skips malformed ones without ending the stream. A
link dropped while streaming releases the session and fails it with
:class:`DeviceConnectionError`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timezone

from trainerctl.core.decoder import decode_power_measurement
from trainerctl.core.device_filter import DeviceFilter
from trainerctl.core.errors import (
    DecodeError,
    DeviceConnectionError,
    SessionStateError,
    SubscriptionError,
    TrainerctlError,
)
from trainerctl.core.gatt import (
    CYCLING_POWER_MEASUREMENT_UUID,
    CYCLING_POWER_SERVICE_UUID,
    GattResolver,
)
from trainerctl.core.model import (
    ConnectionSession,
    DeviceDescriptor,
    GattStatus,
    PowerReading,
    SensorProfile,
    SessionResult,
    SessionState,
)
from trainerctl.core.scanner import DeviceScanner
from trainerctl.core.sink import LoggingSink, OutputSink
from trainerctl.transports.base import BLEAdapter

LOGGER = logging.getLogger(__name__)

_Frame = tuple[datetime, bytes]


class ConnectionOrchestrator:
    def __init__(
        self,
        adapter: BLEAdapter,
        profile: SensorProfile,
        *,
        sink: OutputSink | None = None,
        device_filter: DeviceFilter | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.adapter = adapter
        self.profile = profile
        self.sink = sink or LoggingSink()
        self.device_filter = device_filter or DeviceFilter.from_rules(profile.match)
        self.scanner = DeviceScanner(
            adapter,
            self.device_filter,
            sink=self.sink,
            scan_timeout_s=profile.scan.timeout_s,
            sleep=sleep,
        )
        self.resolver = GattResolver(adapter)
        self.state = SessionState.IDLE
        self.session: ConnectionSession | None = None
        self.decode_errors = 0
        self.dropped_frames = 0
        self._queue: asyncio.Queue[_Frame] | None = None
        self._link_lost = asyncio.Event()
        self._failure: SessionResult | None = None

    def _transition(self, state: SessionState) -> None:
        LOGGER.debug("Session state %s -> %s", self.state.value, state.value)
        self.state = state

    async def open(self) -> SessionResult:
        """Drive the session from scanning to streaming, or to a released failure."""
        if self.session is not None:
            raise SessionStateError(f"A connection session is already live ({self.state.value})")

        self.decode_errors = 0
        self.dropped_frames = 0
        self._link_lost = asyncio.Event()
        self._failure = None
        device: DeviceDescriptor | None = None
        try:
            self._transition(SessionState.SCANNING)
            device = await self.scanner.scan(
                self.profile.scan.max_attempts,
                self.profile.scan.retry_delay_s,
            )

            self._transition(SessionState.CONNECTING)
            session = await self._connect(device)

            self._transition(SessionState.SERVICES_RESOLVING)
            session.service = await self.resolver.resolve_service(
                session.handle,
                CYCLING_POWER_SERVICE_UUID,
            )

            self._transition(SessionState.CHARACTERISTIC_RESOLVING)
            session.characteristic = await self.resolver.resolve_characteristic(
                session.service,
                CYCLING_POWER_MEASUREMENT_UUID,
            )

            self._transition(SessionState.SUBSCRIBING)
            await self._subscribe(session)
            self._transition(SessionState.STREAMING)
        except TrainerctlError as exc:
            return await self._fail(exc, device)
        except BaseException:
            await self._release()
            self._transition(SessionState.FAILED)
            raise

        self.sink.log("Subscribed to power measurements")
        return SessionResult(state=SessionState.STREAMING, device=device)

    async def _connect(self, device: DeviceDescriptor) -> ConnectionSession:
        try:
            handle = await self.adapter.connect(device, timeout_s=self.profile.connect_timeout_s)
        except DeviceConnectionError:
            raise
        except Exception as exc:
            raise DeviceConnectionError(f"Error connecting to {device.name or device.id}: {exc}") from exc
        if handle is None:
            raise DeviceConnectionError(f"Adapter returned no connection handle for {device.id}")

        self.session = ConnectionSession(device=device, handle=handle)
        self.adapter.on_disconnect(handle, self._on_link_lost)
        LOGGER.info("Connected to %s (%s)", device.name, device.id)
        self.sink.log(f"Connected to {device.name or '<unnamed>'} (id={device.id})")
        return self.session

    async def _subscribe(self, session: ConnectionSession) -> None:
        characteristic = session.characteristic
        if characteristic is None:
            raise SessionStateError("Cannot subscribe before the measurement characteristic is resolved")
        status = await self.adapter.enable_notify(session.handle, characteristic)
        if status is not GattStatus.SUCCESS:
            raise SubscriptionError(
                f"Failed to subscribe to power measurements: {status.value}",
                status=status,
            )
        session.subscribed = True

        self._queue = asyncio.Queue(maxsize=self.profile.queue_size)
        self.adapter.on_notify(session.handle, characteristic, self._on_notification)
        session.notifying = True

    def _on_notification(self, data: bytes) -> None:
        queue = self._queue
        if queue is None:
            return
        try:
            queue.put_nowait((datetime.now(timezone.utc), bytes(data)))
        except asyncio.QueueFull:
            self.dropped_frames += 1
            LOGGER.warning("Notification queue full (%d frames), dropping frame", queue.maxsize)

    def _on_link_lost(self) -> None:
        session = self.session
        if session is None:
            return
        session.link_lost = True
        LOGGER.warning("Link to %s lost while %s", session.device.id, self.state.value)
        self._link_lost.set()

    async def readings(self, cancel: asyncio.Event) -> AsyncIterator[PowerReading]:
        """Yield decoded readings until ``cancel`` is set or the link drops."""
        if self.state is not SessionState.STREAMING or self._queue is None:
            raise SessionStateError(f"Session is not streaming ({self.state.value})")

        queue = self._queue
        cancel_wait = asyncio.ensure_future(cancel.wait())
        link_wait = asyncio.ensure_future(self._link_lost.wait())
        frame_get: asyncio.Future[_Frame] | None = None
        try:
            while not cancel.is_set():
                frame_get = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait(
                    {frame_get, cancel_wait, link_wait},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if frame_get not in done:
                    if link_wait in done and self.session is not None:
                        device = self.session.device
                        error = DeviceConnectionError(f"Lost connection to {device.name or device.id}")
                        await self._fail(error, device)
                    break

                received_at, payload = frame_get.result()
                try:
                    reading = decode_power_measurement(payload, timestamp=received_at)
                except DecodeError as exc:
                    self.decode_errors += 1
                    LOGGER.warning("Skipping malformed frame %s: %s", payload.hex(), exc)
                    self.sink.log(f"Skipping malformed frame: {exc}")
                    continue
                yield reading
        finally:
            if frame_get is not None and not frame_get.done():
                frame_get.cancel()
            cancel_wait.cancel()
            link_wait.cancel()

    async def close(self) -> SessionResult:
        """Unregister the notification callback, then release the device handle.

        After a failure the session is already released; the failed result is
        returned again.
        """
        session = self.session
        if session is None:
            return self._failure or SessionResult(state=self.state)

        await self._release()
        self._transition(SessionState.CLOSED)
        self.sink.log(f"Disconnected from {session.device.name or session.device.id}")
        return SessionResult(state=SessionState.CLOSED, device=session.device)

    async def run(self, cancel: asyncio.Event, *, duration_s: float | None = None) -> SessionResult:
        """Open a session, emit readings to the sink until cancelled, then close.

        ``duration_s`` sets ``cancel`` that many seconds after streaming starts.
        """
        result = await self.open()
        if not result.ok:
            return result

        timer = None
        if duration_s is not None:
            timer = asyncio.get_running_loop().call_later(duration_s, cancel.set)
        try:
            async for reading in self.readings(cancel):
                self.sink.emit(reading)
        finally:
            if timer is not None:
                timer.cancel()
            result = await self.close()
        return result

    async def _fail(self, error: TrainerctlError, device: DeviceDescriptor | None) -> SessionResult:
        failed_in = self.state
        await self._release()
        self._transition(SessionState.FAILED)
        LOGGER.warning("Session failed while %s: %s", failed_in.value, error)
        self._failure = SessionResult(
            state=SessionState.FAILED,
            device=device,
            error=error,
            failed_in=failed_in,
        )
        return self._failure

    async def _release(self) -> None:
        session, self.session = self.session, None
        if session is None:
            return

        if session.subscribed and not session.link_lost and session.characteristic is not None:
            try:
                await self.adapter.remove_notify(session.handle, session.characteristic)
            except Exception as exc:
                LOGGER.warning("Failed to stop notifications on %s: %s", session.device.id, exc)
        self._queue = None

        try:
            await self.adapter.disconnect(session.handle)
        except Exception as exc:
            LOGGER.warning("Failed to disconnect %s: %s", session.device.id, exc)
        LOGGER.debug("Released session for %s", session.device.id)
