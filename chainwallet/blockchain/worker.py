"""
Background sealing worker.

Runs `Blockchain.mine_pending_transactions` on a dedicated thread so callers
stay responsive while proof of work runs. Completion is signalled through a
`concurrent.futures.Future`.

Every job gets its own cancellation event. `cancel()` stops only the job at
the head of the queue (the one sealing, or the next to start); jobs queued
behind it run normally.

The ledger's own lock still serializes the chain append and pool reset
against every other mutation.
"""

import logging
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Deque, Optional

from .ledger import Blockchain, Block

logger = logging.getLogger(__name__)


class MiningWorker:
    """Single-thread executor for block sealing."""

    def __init__(self, ledger: Blockchain):
        self._ledger = ledger
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="chainwallet-miner")
        # Cancel events of unfinished jobs, in execution order
        self._jobs: Deque[threading.Event] = deque()
        self._jobs_lock = threading.Lock()

    @property
    def ledger(self) -> Blockchain:
        return self._ledger

    def submit(self, miner_address: str) -> 'Future[Optional[Block]]':
        """
        Queue a mine of the pending pool as it is when the job starts.

        Returns:
            Future resolving to the sealed block, or None for an empty pool.
            It raises SealingCancelled if `cancel()` interrupts the seal.
        """
        cancel_event = threading.Event()
        with self._jobs_lock:
            self._jobs.append(cancel_event)
        try:
            future = self._executor.submit(self._run, miner_address, cancel_event)
        except RuntimeError:
            # Executor already shut down
            with self._jobs_lock:
                self._jobs.remove(cancel_event)
            raise
        logger.debug("Queued mining job for %s", miner_address)
        return future

    def _run(self, miner_address: str, cancel_event: threading.Event) -> Optional[Block]:
        try:
            return self._ledger.mine_pending_transactions(miner_address, cancel_event=cancel_event)
        finally:
            with self._jobs_lock:
                self._jobs.remove(cancel_event)

    def cancel(self) -> None:
        """Stop the current job, if any. Queued jobs are not affected."""
        with self._jobs_lock:
            if self._jobs:
                self._jobs[0].set()

    def cancel_all(self) -> None:
        """Stop the current job and every job queued behind it."""
        with self._jobs_lock:
            for event in self._jobs:
                event.set()

    def shutdown(self, wait: bool = True) -> None:
        self.cancel_all()
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> 'MiningWorker':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
