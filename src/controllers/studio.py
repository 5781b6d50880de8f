"""
Studio view: upload or capture images, then apply one directive to all of
them through the batch queue.
"""

import asyncio
from contextlib import AsyncExitStack
from typing import AsyncGenerator, List, Optional, Union

from adapters.base import GenerativeGateway
from common.cancellation import CancellationToken
from common.catalog import PROMPT_SUGGESTIONS
from common.entities import Asset, MediaPayload
from common.errors import CaptureDeviceError
from common.logging import get_logger
from controllers.batch_queue import BatchAssetQueue
from controllers.capture import CameraDevice, acquire

logger = get_logger(__name__)

CAMERA_DENIED = "Access denied to the optical sensor (Camera)."


class StudioController:
    def __init__(self, gateway: GenerativeGateway):
        self.queue = BatchAssetQueue(gateway)
        self.selected_index = -1
        self.directive = ""
        self.error: Optional[str] = None
        self._camera: Optional[CameraDevice] = None
        self._camera_scope: Optional[AsyncExitStack] = None
        self._run_cancel: Optional[CancellationToken] = None
        self._batch_idle = asyncio.Event()
        self._batch_idle.set()

    @property
    def assets(self) -> List[Asset]:
        return self.queue.snapshot()

    @property
    def selected(self) -> Optional[Asset]:
        if 0 <= self.selected_index < len(self.queue):
            return self.queue.assets[self.selected_index]
        return None

    @property
    def camera_active(self) -> bool:
        return self._camera is not None

    @staticmethod
    def suggestions() -> List[str]:
        return list(PROMPT_SUGGESTIONS)

    def add_upload(self, upload: Union[str, MediaPayload]) -> Asset:
        """Add an uploaded image (data URL or payload); the first upload becomes selected."""
        payload = MediaPayload.from_data_url(upload) if isinstance(upload, str) else upload
        asset = self.queue.enqueue_payload(payload)
        if self.selected_index == -1:
            self.selected_index = 0
        self.error = None
        return asset

    async def start_camera(self, camera: CameraDevice) -> bool:
        if self._camera is not None:
            return True

        scope = AsyncExitStack()
        try:
            await scope.enter_async_context(acquire(camera))
        except CaptureDeviceError as e:
            await scope.aclose()
            self.error = CAMERA_DENIED
            logger.warning(event="studio_camera_denied", error=str(e))
            return False

        self._camera = camera
        self._camera_scope = scope
        return True

    async def stop_camera(self) -> None:
        scope, self._camera_scope, self._camera = self._camera_scope, None, None
        if scope is not None:
            await scope.aclose()

    async def capture_frame(self) -> Optional[Asset]:
        """Grab one frame as a new selected asset, then release the camera."""
        if self._camera is None:
            return None
        try:
            frame = await self._camera.read_frame()
        finally:
            await self.stop_camera()

        asset = self.queue.enqueue_payload(frame)
        self.selected_index = len(self.queue) - 1
        self.error = None
        return asset

    def select(self, index: int) -> Asset:
        if not 0 <= index < len(self.queue):
            raise IndexError(f"No asset at position {index}")
        self.selected_index = index
        return self.queue.assets[index]

    async def run_batch(
        self, directive: str, *, cancel: Optional[CancellationToken] = None
    ) -> AsyncGenerator[List[Asset], None]:
        if self.queue.is_running:
            raise RuntimeError("A batch run is already in progress")
        self.directive = directive
        self.error = None
        cancel = cancel or CancellationToken()
        self._run_cancel = cancel
        self._batch_idle.clear()
        batch = self.queue.run_batch(directive, cancel=cancel)
        try:
            async for snapshot in batch:
                yield snapshot
        finally:
            await batch.aclose()
            self._run_cancel = None
            self._batch_idle.set()

    async def stop_batch(self, reason: str = "Studio cleared") -> None:
        """Cancel a running batch and wait until it has unwound."""
        if self._run_cancel is not None:
            self._run_cancel.cancel(reason)
        await self._batch_idle.wait()

    async def clear(self) -> None:
        """Release the camera, stop any running batch, then empty the studio."""
        try:
            await self.stop_camera()
        finally:
            await self.stop_batch()
            self.queue.clear()
            self.selected_index = -1
            self.directive = ""
            self.error = None
