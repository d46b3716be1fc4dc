"""Capture sessions that turn a QR reader into a stream of raw scanned strings."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from typing import Any, Protocol, TextIO

from loguru import logger

from nailbliss_api.services.redemption.coordinator import RedemptionCoordinator, RedemptionOutcome


REAR_FACING = "environment"
_REAR_LABEL_HINTS = ("back", "rear", "environment")


class ScannerUnavailableError(RuntimeError):
    title = "Camera Error"
    default_message = "Unable to access camera. Please check permissions."

    def __init__(self, message: str | None = None) -> None:
        self.user_message = message or self.default_message
        super().__init__(self.user_message)


class NoCameraFoundError(ScannerUnavailableError):
    title = "No Camera Found"
    default_message = "No camera or QR reader is connected to this device."


class CameraPermissionDeniedError(ScannerUnavailableError):
    title = "Camera Permission Denied"
    default_message = "Allow camera access for this app in your device settings, then start scanning again."


class CameraUnsupportedError(ScannerUnavailableError):
    title = "Camera Not Supported"
    default_message = "This device cannot be used for scanning. Try another browser or a USB QR reader."


class CameraBusyError(ScannerUnavailableError):
    title = "Camera In Use"
    default_message = "Another scanner is already using the camera. Stop it before starting a new one."


class CaptureDevice(Protocol):
    label: str
    facing: str | None

    async def open(self) -> None:
        ...

    async def read(self) -> str | None:
        """Return the next decoded string, or ``None`` once the device is exhausted."""
        ...

    async def close(self) -> None:
        ...


def select_device(devices: Sequence[CaptureDevice]) -> CaptureDevice:
    """Prefer a rear-facing device; otherwise the first one enumerated."""

    if not devices:
        raise NoCameraFoundError()
    for device in devices:
        if device.facing == REAR_FACING:
            return device
    for device in devices:
        label = (device.label or "").lower()
        if any(hint in label for hint in _REAR_LABEL_HINTS):
            return device
    return devices[0]


DeviceSource = Sequence[CaptureDevice] | Callable[[], Awaitable[Sequence[CaptureDevice]]]

_active_session: "ScanSession | None" = None


class ScanSession:
    """Exclusive, scoped use of one capture device.

    Entering the session claims the camera for this process and opens the
    selected device; leaving it closes the device and releases the claim on
    every path, including a failed open.
    """

    def __init__(self, devices: DeviceSource) -> None:
        self._devices = devices
        self.device: CaptureDevice | None = None

    @staticmethod
    def camera_in_use() -> bool:
        return _active_session is not None

    async def __aenter__(self) -> "ScanSession":
        global _active_session

        if _active_session is not None:
            raise CameraBusyError()
        _active_session = self
        try:
            devices = self._devices if isinstance(self._devices, Sequence) else await self._devices()
            device = select_device(devices)
            try:
                await device.open()
            except PermissionError as exc:
                raise CameraPermissionDeniedError() from exc
            except (NotImplementedError, OSError) as exc:
                raise CameraUnsupportedError() from exc
        except BaseException:
            _active_session = None
            raise
        self.device = device
        logger.info("Scan session started", device=device.label, facing=device.facing)
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        global _active_session

        device, self.device = self.device, None
        try:
            if device is not None:
                await device.close()
        finally:
            if _active_session is self:
                _active_session = None
            logger.info("Scan session stopped", device=device.label if device else None)

    async def codes(self) -> AsyncIterator[str]:
        if self.device is None:
            raise RuntimeError("Scan session is not active")
        while True:
            raw = await self.device.read()
            if raw is None:
                return
            raw = raw.strip()
            if raw:
                yield raw

    async def feed(
        self,
        coordinator: RedemptionCoordinator,
        *,
        on_outcome: Callable[[RedemptionOutcome], Awaitable[None] | None] | None = None,
    ) -> int:
        """Forward every scanned string to the coordinator; returns how many were forwarded."""

        forwarded = 0
        async for raw in self.codes():
            outcome = await coordinator.submit_scan(raw)
            forwarded += 1
            if on_outcome is not None:
                result = on_outcome(outcome)
                if inspect.isawaitable(result):
                    await result
        return forwarded


class QueueCaptureDevice:
    """Device fed programmatically, e.g. by a browser that decodes frames itself."""

    def __init__(self, *, label: str = "virtual reader", facing: str | None = None) -> None:
        self.label = label
        self.facing = facing
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self.is_open = False

    def push(self, raw: str) -> None:
        self._queue.put_nowait(raw)

    def end(self) -> None:
        self._queue.put_nowait(None)

    async def open(self) -> None:
        self.is_open = True

    async def read(self) -> str | None:
        if not self.is_open:
            return None
        return await self._queue.get()

    async def close(self) -> None:
        self.is_open = False


class StreamCaptureDevice:
    """Line-oriented reader such as a keyboard-wedge QR scanner typing into stdin."""

    def __init__(self, stream: TextIO, *, label: str = "keyboard-wedge reader", facing: str | None = None) -> None:
        self.label = label
        self.facing = facing
        self._stream = stream

    async def open(self) -> None:
        if self._stream.closed or not self._stream.readable():
            raise CameraUnsupportedError("The QR reader input stream is not readable.")

    async def read(self) -> str | None:
        line = await asyncio.to_thread(self._stream.readline)
        return line if line else None

    async def close(self) -> None:
        return None


__all__ = [
    "CameraBusyError",
    "CameraPermissionDeniedError",
    "CameraUnsupportedError",
    "CaptureDevice",
    "NoCameraFoundError",
    "QueueCaptureDevice",
    "ScanSession",
    "ScannerUnavailableError",
    "StreamCaptureDevice",
    "select_device",
]
