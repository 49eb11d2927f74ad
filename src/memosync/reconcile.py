"""Reconciler: repair cache and index entries left behind by degraded writes.

Degraded memo ids reach the reconciler two ways: through the shared
DegradedQueue (written by every process's repository, see daemon.build_repository)
and, in-process, through attach() on its own repository. Each pass re-derives
the secondary state from the primary store: the cache entry is dropped and the
index document is upserted from the primary's current value (or deleted if the
memo is gone).
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from memosync.errors import DegradedWrite
    from memosync.outbox import DegradedQueue
    from memosync.repository import MemoRepository

logger = logging.getLogger(__name__)


class Reconciler:
    """Collect degraded memo ids and repair them on a polling loop."""

    def __init__(
        self,
        repository: MemoRepository,
        queue: DegradedQueue | None = None,
        poll_interval: float = 30.0,
    ) -> None:
        self.repository = repository
        self.queue = queue
        self.poll_interval = poll_interval
        self._pending: set[str] = set()

    @property
    def pending(self) -> frozenset[str]:
        queued = self.queue.pending().keys() if self.queue is not None else ()
        return frozenset(self._pending.union(queued))

    def attach(self) -> None:
        """Start receiving degraded-write events from the repository."""
        self.repository.add_degradation_listener(self.on_degraded)

    def on_degraded(self, event: DegradedWrite) -> None:
        self._pending.add(event.memo_id)

    async def run(self, shutdown_event: asyncio.Event | None = None) -> None:
        """Main loop: repair pending ids every poll_interval seconds."""
        logger.info("Reconciler started (interval=%.1fs)", self.poll_interval)
        while True:
            if shutdown_event and shutdown_event.is_set():
                break
            try:
                await self.reconcile_pending()
            except Exception as e:
                logger.error("Reconcile pass failed: %s", e)
            if shutdown_event:
                try:
                    await asyncio.wait_for(shutdown_event.wait(), timeout=self.poll_interval)
                    break
                except asyncio.TimeoutError:
                    pass
            else:
                await asyncio.sleep(self.poll_interval)
        logger.info("Reconciler stopped.")

    async def reconcile_pending(self) -> int:
        """Repair every pending id once. Returns how many were repaired."""
        queued: dict[str, list[Path]] = self.queue.pending() if self.queue is not None else {}
        repaired = 0
        for memo_id in sorted(self._pending.union(queued)):
            if not await self.reconcile(memo_id):
                continue
            self._pending.discard(memo_id)
            # Only the entries read above: a newer degradation stays queued.
            if memo_id in queued:
                self.queue.ack(queued[memo_id])
            repaired += 1
        if repaired:
            logger.info("Reconciled %d memo(s), %d still pending", repaired, len(self.pending))
        return repaired

    async def reconcile(self, memo_id: str) -> bool:
        return await self.repository.resync(memo_id)

    async def rebuild_owner(self, owner_id: str) -> int:
        """Re-index every memo an owner has in the primary store."""
        memos = await self.repository.list_by_owner(owner_id)
        indexed = 0
        for memo in memos:
            if await self.repository.resync(memo.id):
                indexed += 1
            else:
                self._pending.add(memo.id)
        logger.info("Rebuilt index for owner %s: %d/%d memo(s)", owner_id, indexed, len(memos))
        return indexed
