import io

import pytest

from conftest import identity_for
from nailbliss_api.services.identity import Role
from nailbliss_api.services.redemption import NoticeKind, RedemptionCoordinator, RedemptionState
from nailbliss_api.services.scanner import (
    CameraBusyError,
    CameraPermissionDeniedError,
    CameraUnsupportedError,
    NoCameraFoundError,
    QueueCaptureDevice,
    ScanSession,
    StreamCaptureDevice,
    select_device,
)


class DeniedDevice(QueueCaptureDevice):
    async def open(self) -> None:
        raise PermissionError("camera permission denied")


class UnsupportedDevice(QueueCaptureDevice):
    async def open(self) -> None:
        raise NotImplementedError


def test_select_device_prefers_rear_facing() -> None:
    front = QueueCaptureDevice(label="FaceTime HD Camera", facing="user")
    rear = QueueCaptureDevice(label="Camera 2", facing="environment")
    labelled = QueueCaptureDevice(label="Back Camera")

    assert select_device([front, rear, labelled]) is rear
    assert select_device([front, labelled]) is labelled
    assert select_device([front]) is front


def test_select_device_requires_a_device() -> None:
    with pytest.raises(NoCameraFoundError):
        select_device([])


@pytest.mark.asyncio
async def test_session_yields_trimmed_codes_and_releases_device() -> None:
    device = QueueCaptureDevice()
    device.push("  first \n")
    device.push("")
    device.push("second")
    device.end()

    async with ScanSession([device]) as session:
        assert ScanSession.camera_in_use()
        codes = [code async for code in session.codes()]

    assert codes == ["first", "second"]
    assert not device.is_open
    assert not ScanSession.camera_in_use()


@pytest.mark.asyncio
async def test_only_one_session_may_own_the_camera() -> None:
    async with ScanSession([QueueCaptureDevice()]):
        with pytest.raises(CameraBusyError):
            async with ScanSession([QueueCaptureDevice()]):
                pass

    async with ScanSession([QueueCaptureDevice()]):
        pass


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("device", "error"),
    [
        (DeniedDevice(), CameraPermissionDeniedError),
        (UnsupportedDevice(), CameraUnsupportedError),
    ],
)
async def test_open_failures_are_actionable_and_release_the_camera(device, error) -> None:
    with pytest.raises(error) as exc_info:
        async with ScanSession([device]):
            pass

    assert exc_info.value.user_message
    assert not ScanSession.camera_in_use()


@pytest.mark.asyncio
async def test_async_device_enumeration() -> None:
    device = QueueCaptureDevice(facing="environment")

    async def enumerate_devices():
        return [device]

    async with ScanSession(enumerate_devices) as session:
        assert session.device is device


@pytest.mark.asyncio
async def test_stream_device_reads_lines_until_eof() -> None:
    stream = io.StringIO("one\ntwo\n")

    async with ScanSession([StreamCaptureDevice(stream)]) as session:
        codes = [code async for code in session.codes()]

    assert codes == ["one", "two"]


@pytest.mark.asyncio
async def test_feed_forwards_scans_to_coordinator(backend, codec, store) -> None:
    staff = backend.add_profile(role=Role.STAFF)
    customer = backend.add_profile()
    coordinator = RedemptionCoordinator(identity_for(staff), backend=backend, codec=codec, store=store)
    device = QueueCaptureDevice()
    device.push(codec.issue(customer.id))
    device.push("not a token")
    device.end()
    outcomes = []

    async with ScanSession([device]) as session:
        forwarded = await session.feed(coordinator, on_outcome=outcomes.append)

    assert forwarded == 2
    assert outcomes[0].state is RedemptionState.AWAITING_CONFIRMATION
    assert outcomes[1].notice.kind is NoticeKind.BUSY
    assert backend.credit_calls == []
