"""
Typed progress channel shared by the pipeline stages.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Union, Awaitable

from ..models.render import RenderProgress, RenderStatus

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[RenderProgress], Union[None, Awaitable[None]]]


class ProgressChannel:
    """
    Fan-out of RenderProgress events to any number of subscribers.

    One channel is created per pass (assignment or render). Subscribers may be
    plain functions or coroutines; a failing subscriber is logged and skipped.
    """

    def __init__(self, name: str = "progress", keep_history: int = 200):
        self.name = name
        self._subscribers: List[ProgressCallback] = []
        self._latest: Dict[str, RenderProgress] = {}
        self._history: List[RenderProgress] = []
        self._keep_history = keep_history

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Register a callback. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def publish(self, event: RenderProgress) -> None:
        self._latest[event.chapter_id] = event
        self._history.append(event)
        if len(self._history) > self._keep_history:
            del self._history[: len(self._history) - self._keep_history]

        for callback in list(self._subscribers):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning(f"Progress subscriber error on {self.name}: {e}")

    async def report(
        self,
        chapter_id: str,
        progress: float,
        status: RenderStatus = RenderStatus.RENDERING,
        error: Optional[str] = None
    ) -> None:
        """Shortcut to build and publish an event."""
        await self.publish(RenderProgress(
            chapter_id=chapter_id,
            progress=max(0.0, min(100.0, progress)),
            status=status,
            error=error,
        ))

    def latest(self, chapter_id: str) -> Optional[RenderProgress]:
        return self._latest.get(chapter_id)

    @property
    def history(self) -> List[RenderProgress]:
        return list(self._history)
