from __future__ import annotations

import asyncio
import logging
import os
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

ApplyFn = Callable[[str, list[str]], Awaitable[None]]

DEFAULT_SETTLE_SECONDS = 0.5


def _settle_seconds() -> float:
    try:
        return float(os.getenv("REORDER_SETTLE_SECONDS", str(DEFAULT_SETTLE_SECONDS)))
    except Exception:
        return DEFAULT_SETTLE_SECONDS


class ReorderDebouncer:
    """Collapse bursts of reorder requests into one write per project.

    Only the most recent order submitted for a project is applied, once no new
    order has arrived for ``settle_seconds``. Applies never overlap.
    """

    def __init__(self, apply: ApplyFn, settle_seconds: Optional[float] = None) -> None:
        self._apply = apply
        self.settle_seconds = _settle_seconds() if settle_seconds is None else settle_seconds
        self._pending: dict[str, list[str]] = {}
        self._timers: dict[str, asyncio.Task] = {}
        self._sleeping: set[str] = set()
        self._apply_lock = asyncio.Lock()

    def pending(self, project_id: str) -> Optional[list[str]]:
        order = self._pending.get(project_id)
        return list(order) if order is not None else None

    def submit(self, project_id: str, node_ids: list[str]) -> None:
        self._pending[project_id] = list(node_ids)
        self._cancel_sleeping(project_id)
        self._sleeping.add(project_id)
        self._timers[project_id] = asyncio.create_task(self._fire(project_id))

    def _cancel_sleeping(self, project_id: str) -> None:
        # a timer past its sleep is applying and must finish
        if project_id in self._sleeping:
            self._sleeping.discard(project_id)
            task = self._timers.pop(project_id, None)
            if task is not None:
                task.cancel()

    async def _fire(self, project_id: str) -> None:
        await asyncio.sleep(self.settle_seconds)
        self._sleeping.discard(project_id)
        if self._timers.get(project_id) is asyncio.current_task():
            del self._timers[project_id]
        try:
            await self._apply_pending(project_id)
        except Exception:
            logger.exception("Debounced reorder for project %s failed", project_id)

    async def _apply_pending(self, project_id: str) -> None:
        async with self._apply_lock:
            order = self._pending.pop(project_id, None)
            if order is None:
                return
            logger.debug("Applying debounced reorder for project %s (%s nodes)", project_id, len(order))
            await self._apply(project_id, order)

    async def flush(self, project_id: Optional[str] = None) -> None:
        """Apply pending orders now instead of waiting out the quiet period."""
        project_ids = [project_id] if project_id is not None else list(self._pending)
        for pid in project_ids:
            self._cancel_sleeping(pid)
            await self._apply_pending(pid)

    async def aclose(self) -> None:
        await self.flush()
        async with self._apply_lock:
            pass
        for task in list(self._timers.values()):
            task.cancel()
        self._timers.clear()
        self._sleeping.clear()
