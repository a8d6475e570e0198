"""Periodic eviction of expired files and stale sessions.

The sweeper runs as a background asyncio task for the process lifetime.
Each cycle first evicts expired files, then empty stale sessions, so a
session emptied by file expiry can go in the same pass. Errors are logged
and the loop keeps going.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional, Tuple

from .files.service import TransferService

logger = logging.getLogger(__name__)


class LifecycleSweeper:
    """Background task that calls :meth:`sweep_once` every *interval_seconds*."""

    def __init__(self, service: TransferService, interval_seconds: float = 60.0) -> None:
        self._service = service
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task] = None  # type: ignore[type-arg]

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the background sweep task."""
        if self.running:
            return
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info("Lifecycle sweeper started (interval=%ss)", self._interval)

    async def stop(self) -> None:
        """Cancel the sweep task."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Lifecycle sweeper stopped")

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.sweep_once()
            except Exception:
                logger.exception("Sweep cycle failed")

    async def sweep_once(self) -> Tuple[int, int]:
        """Run one cycle.

        Returns:
            ``(files_evicted, sessions_evicted)``
        """
        now = self._service.now()
        files_evicted = await self._service.evict_expired(now)
        sessions_evicted = self._service.evict_stale_sessions(now)
        if files_evicted or sessions_evicted:
            logger.info(
                "Sweep: evicted %d expired files and %d stale sessions",
                files_evicted,
                sessions_evicted,
            )
        return files_evicted, sessions_evicted
