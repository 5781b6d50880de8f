"""
Batch Asset Queue: one directive applied to many assets, strictly in order.

Items are processed one at a time in insertion order. A failure is recorded
on its own asset and never stops the rest of the batch. Nothing is retried
automatically.
"""

import asyncio
from typing import AsyncGenerator, Awaitable, Callable, Dict, List, Optional, Union

from adapters.base import GenerativeGateway
from common.cancellation import CancellationToken
from common.entities import Asset, AssetStatus, MediaPayload
from common.errors import OperationCancelled
from common.logging import TimedLogger, get_logger

logger = get_logger(__name__)

FALLBACK_ERROR = "Shift protocol error."
CANCELLED_ERROR = "Cancelled"

ChangeCallback = Callable[[List[Asset]], Union[None, Awaitable[None]]]


class BatchAssetQueue:
    """Ordered collection of assets plus the sequential batch runner."""

    def __init__(self, gateway: GenerativeGateway, *, on_change: Optional[ChangeCallback] = None):
        self.gateway = gateway
        self.on_change = on_change
        self._assets: List[Asset] = []
        self._running = False

    @property
    def assets(self) -> List[Asset]:
        return list(self._assets)

    @property
    def is_running(self) -> bool:
        return self._running

    def __len__(self) -> int:
        return len(self._assets)

    def snapshot(self) -> List[Asset]:
        return [asset.model_copy(deep=True) for asset in self._assets]

    def enqueue(self, asset: Asset) -> Asset:
        self._assets.append(asset)
        return asset

    def enqueue_payload(self, payload: MediaPayload) -> Asset:
        return self.enqueue(Asset(original_data=payload))

    def get(self, asset_id: str) -> Asset:
        for asset in self._assets:
            if asset.id == asset_id:
                return asset
        raise KeyError(asset_id)

    def reset(self, asset_id: str) -> Asset:
        """Make a finished asset eligible for the next run."""
        asset = self.get(asset_id)
        if asset.status == AssetStatus.PROCESSING:
            raise RuntimeError("Cannot reset an asset while it is processing")
        asset.status = AssetStatus.IDLE
        asset.edited_data = None
        asset.error_message = None
        return asset

    def remove(self, asset_id: str) -> None:
        asset = self.get(asset_id)
        if asset.status == AssetStatus.PROCESSING:
            raise RuntimeError("Cannot remove an asset while it is processing")
        self._assets.remove(asset)

    def clear(self) -> None:
        if self._running:
            raise RuntimeError("Cannot clear the queue during a batch run")
        self._assets.clear()

    def summary(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in AssetStatus}
        for asset in self._assets:
            counts[asset.status.value] += 1
        return counts

    async def _changed(self) -> List[Asset]:
        snapshot = self.snapshot()
        if self.on_change is not None:
            result = self.on_change(snapshot)
            if asyncio.iscoroutine(result):
                await result
        return snapshot

    @staticmethod
    def _mark_cancelled(asset: Asset) -> None:
        asset.status = AssetStatus.ERROR
        asset.error_message = CANCELLED_ERROR

    async def run_batch(
        self,
        directive: str,
        *,
        cancel: Optional[CancellationToken] = None,
        reprocess_done: bool = False,
    ) -> AsyncGenerator[List[Asset], None]:
        """
        Apply ``directive`` to every eligible asset, yielding a snapshot after
        each status transition.

        Assets already ``done`` are skipped unless ``reprocess_done`` is set.
        A blank directive or an empty queue runs nothing. Cancellation marks
        the in-flight asset as failed with "Cancelled" and leaves the rest of
        the queue untouched.
        """
        directive = (directive or "").strip()
        if not directive or not self._assets:
            return
        if self._running:
            raise RuntimeError("A batch run is already in progress")

        self._running = True
        current: Optional[Asset] = None
        logger.info(event="batch_started", assets=len(self._assets), reprocess_done=reprocess_done)
        try:
            with TimedLogger(logger, "batch_finished", assets=len(self._assets)):
                for index, asset in enumerate(list(self._assets), start=1):
                    if asset.status == AssetStatus.DONE and not reprocess_done:
                        continue
                    if cancel is not None and cancel.cancelled:
                        break

                    current = asset
                    asset.status = AssetStatus.PROCESSING
                    asset.error_message = None
                    yield await self._changed()

                    try:
                        edited = await self.gateway.edit_asset(
                            asset.original_data, directive, cancel=cancel
                        )
                    except OperationCancelled:
                        self._mark_cancelled(asset)
                        current = None
                        yield await self._changed()
                        break
                    except Exception as e:
                        asset.status = AssetStatus.ERROR
                        asset.error_message = str(e) or FALLBACK_ERROR
                        logger.warning(
                            event="batch_item_failed",
                            asset_id=asset.id,
                            position=index,
                            error=str(e),
                            error_type=type(e).__name__,
                        )
                    else:
                        if edited is None:
                            asset.status = AssetStatus.ERROR
                            asset.error_message = f"Neural synthesis failed for asset {index}"
                        else:
                            asset.edited_data = edited
                            asset.status = AssetStatus.DONE

                    current = None
                    yield await self._changed()
        finally:
            # Task cancelled or consumer stopped mid-item
            if current is not None and current.status == AssetStatus.PROCESSING:
                self._mark_cancelled(current)
            self._running = False
            logger.info(event="batch_summary", **self.summary())
