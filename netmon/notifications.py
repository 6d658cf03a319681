"""
Best-effort publish/subscribe sink for alerts and discovery progress.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List

logger = logging.getLogger(__name__)

Handler = Callable[[str, Any], Awaitable[None]]


def alert_topic(owner: str) -> str:
    return f"/user/{owner}/alerts"


def discovery_topic(run_id: str) -> str:
    return f"/topic/discovery/{run_id}/progress"


class NotificationSink:
    """
    Fans published payloads out to registered async handlers.

    Delivery is at-most-once: a failing handler is logged and skipped,
    nothing is retried.
    """

    def __init__(self):
        """Initialize the sink with an empty handler list."""
        self._handlers: List[Handler] = []

    def register_handler(self, handler: Handler) -> None:
        """
        Register an async handler.

        Args:
            handler: Async function taking (topic, payload)
        """
        self._handlers.append(handler)

    async def publish(self, topic: str, payload: Any) -> None:
        """
        Deliver ``payload`` on ``topic`` to every handler concurrently.
        """
        if not self._handlers:
            logger.debug(f"No handlers for {topic}")
            return

        results = await asyncio.gather(
            *(handler(topic, payload) for handler in self._handlers),
            return_exceptions=True
        )
        for result in results:
            if isinstance(result, Exception):
                logger.warning(f"Notification handler failed for {topic}: {result}")
