"""
Capture devices (camera, microphone) and scoped acquisition.

Devices are abstract collaborators: the portal supplies concrete ones (a
WebSocket-backed microphone, for example) and tests supply fakes.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, TypeVar

from common.entities import MediaPayload
from common.errors import CaptureDeviceError
from common.logging import get_logger

logger = get_logger(__name__)


class CaptureDevice(ABC):
    """A device that must be opened before use and released afterwards."""

    name: str = "device"

    @abstractmethod
    async def open(self) -> None:
        """Acquire the device."""

    @abstractmethod
    async def close(self) -> None:
        """Release the device. Must be safe to call once after open()."""


class CameraDevice(CaptureDevice):
    name = "camera"

    @abstractmethod
    async def read_frame(self) -> MediaPayload:
        """Grab one still frame."""


class MicrophoneDevice(CaptureDevice):
    name = "microphone"

    @abstractmethod
    def frames(self) -> AsyncIterator[bytes]:
        """16 kHz 16-bit mono PCM frames until the device stops."""


D = TypeVar("D", bound=CaptureDevice)


@asynccontextmanager
async def acquire(device: D) -> AsyncIterator[D]:
    """
    Open ``device`` for the duration of the block.

    The device is closed on every exit path, including errors and
    cancellation. Failure to open raises CaptureDeviceError.
    """
    try:
        await device.open()
    except CaptureDeviceError:
        raise
    except Exception as e:
        logger.warning(event="capture_device_unavailable", device=device.name, error=str(e))
        raise CaptureDeviceError(f"Could not acquire {device.name}: {e}") from e

    logger.info(event="capture_device_acquired", device=device.name)
    try:
        yield device
    finally:
        await device.close()
        logger.info(event="capture_device_released", device=device.name)
