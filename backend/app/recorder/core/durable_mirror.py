"""
Durable Mirror

Write-behind persistence for the in-memory session store.

Writes are queued per key and drained by one worker task per key, so
records for one entity land in the order they were submitted. The
storage layer is synchronous file I/O and runs on the default
executor. Failed writes leave the key dirty; the reconciler re-writes
the CURRENT state of every dirty key, so a later success can never be
overwritten by an older retry.
"""

import asyncio
import logging
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional, Set, Tuple

from ..errors import DurableWriteFailure

# Configure logging
logger = logging.getLogger(__name__)

MirrorKey = Tuple[str, ...]

# Returns (write callable, args, on_success) for a key's current state
Resolver = Callable[[MirrorKey], Tuple[Callable, tuple, Optional[Callable[[], None]]]]


class DurableMirror:
    """Ordered, retrying write-behind to a synchronous storage backend"""

    def __init__(self, reconcile_interval: float = 5.0):
        self.reconcile_interval = reconcile_interval
        self._pending: Dict[MirrorKey, Deque] = {}
        self._workers: Dict[MirrorKey, asyncio.Task] = {}
        self._dirty: Set[MirrorKey] = set()
        self._resolver: Optional[Resolver] = None
        self._task: Optional[asyncio.Task] = None

    def set_resolver(self, resolver: Resolver):
        self._resolver = resolver

    def is_dirty(self, key: MirrorKey) -> bool:
        return key in self._dirty

    def dirty_keys(self) -> Set[MirrorKey]:
        return set(self._dirty)

    def mark_dirty(self, key: MirrorKey):
        self._dirty.add(key)

    async def run(self, fn: Callable, *args) -> Any:
        """Run a blocking storage call without stalling the event loop"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn, *args)

    # ==================== Ordered Writes ====================

    def submit(
        self,
        key: MirrorKey,
        fn: Callable,
        *args,
        on_success: Optional[Callable[[], None]] = None
    ) -> asyncio.Future:
        """
        Queue one write for a key without yielding to the event loop.

        Returns:
            Future resolving to None on success or the DurableWriteFailure
        """
        done = asyncio.get_running_loop().create_future()
        self._pending.setdefault(key, deque()).append((fn, args, on_success, done))
        if key not in self._workers:
            self._workers[key] = asyncio.create_task(self._drain(key))
        return done

    async def write(self, key: MirrorKey, fn: Callable, *args, on_success=None) -> Optional[DurableWriteFailure]:
        return await self.submit(key, fn, *args, on_success=on_success)

    async def _drain(self, key: MirrorKey):
        queue = self._pending[key]
        try:
            while queue:
                fn, args, on_success, done = queue.popleft()
                outcome = await self._apply(key, fn, args, on_success)
                if not done.done():
                    done.set_result(outcome)
        finally:
            self._workers.pop(key, None)
            if not queue:
                self._pending.pop(key, None)

    async def _apply(self, key, fn, args, on_success) -> Optional[DurableWriteFailure]:
        try:
            await self.run(fn, *args)
        except Exception as e:
            self._dirty.add(key)
            logger.warning(f"Durable write failed for {'/'.join(key)}: {e}")
            return DurableWriteFailure(f"Durable write failed for {'/'.join(key)}: {e}")

        self._dirty.discard(key)
        if on_success:
            on_success()
        return None

    async def flush(self):
        """Wait until every queued write has been applied"""
        while self._workers:
            await asyncio.gather(*list(self._workers.values()), return_exceptions=True)

    # ==================== Reconciliation ====================

    async def reconcile(self) -> int:
        """Re-write the current state of every dirty key; returns how many succeeded"""
        if self._resolver is None or not self._dirty:
            return 0

        submitted = []
        # Session keys first so orphaned step cleanup follows its session delete
        for key in sorted(self._dirty, key=lambda k: (k[0] != "session", k)):
            fn, args, on_success = self._resolver(key)
            submitted.append(self.submit(key, fn, *args, on_success=on_success))

        outcomes = await asyncio.gather(*submitted)
        repaired = sum(1 for outcome in outcomes if outcome is None)
        if repaired:
            logger.info(f"Reconciled {repaired} durable record(s)")
        return repaired

    async def _reconcile_loop(self):
        while True:
            await asyncio.sleep(self.reconcile_interval)
            try:
                await self.reconcile()
            except Exception as e:
                logger.error(f"Reconcile pass failed: {e}")

    def start(self):
        if self._task is None and self.reconcile_interval > 0:
            self._task = asyncio.create_task(self._reconcile_loop())

    async def close(self):
        """Stop the background loop, drain queued writes and reconcile once more"""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.flush()
        await self.reconcile()
