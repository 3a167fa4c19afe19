"""Passive expiry: a background loop that deletes expired links.

The redirect path never deletes; it only refuses expired records. This
sweeper removes them from the store in batches and drops their cache
entries and buffered clicks.
"""

import asyncio
import contextlib
import datetime
import logging

from shortly.cache import CacheLayer
from shortly.config import Settings
from shortly.metrics import EXPIRED_LINKS_SWEPT_TOTAL
from shortly.store import LinkStore

__all__ = ["ExpirySweeper"]

logger = logging.getLogger("shortly.sweeper")


class ExpirySweeper:
    def __init__(self, store: LinkStore, cache: CacheLayer, settings: Settings) -> None:
        self._store = store
        self._cache = cache
        self._interval = settings.EXPIRY_SWEEP_INTERVAL_SECONDS
        self._batch_size = settings.EXPIRY_SWEEP_BATCH_SIZE
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self, now: datetime.datetime | None = None) -> int:
        """Delete one batch of expired links. Returns how many were removed."""
        codes = await self._store.purge_expired(now, batch_size=self._batch_size)
        for code in codes:
            await self._cache.invalidate(code)
            await self._cache.flush_click_buffer(code)
        if codes:
            EXPIRED_LINKS_SWEPT_TOTAL.inc(len(codes))
            logger.info(f"Swept {len(codes)} expired links")
        return len(codes)

    async def run(self) -> None:
        while True:
            try:
                # A full batch means more may be waiting; keep going without sleeping.
                while await self.sweep_once() >= self._batch_size:
                    pass
            except Exception as exc:
                logger.error(f"Expiry sweep failed: {exc}")
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self.run(), name="expiry-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
