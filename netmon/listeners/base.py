import asyncio
import abc
import logging
from typing import Any, Dict, Tuple

logger = logging.getLogger(__name__)


class BaseListener(abc.ABC):
    """Abstract base class for datagram listeners.

    A listener owns one bound socket. Every datagram is either decoded and
    queued with ``enqueue`` or discarded with ``drop``; the counters reflect
    both outcomes.
    """

    def __init__(self, queue: asyncio.Queue):
        """
        Args:
            queue: Queue shared with the processor workers.
        """
        self.queue = queue
        self._is_running = False
        self.received = 0
        self.dropped = 0

    @abc.abstractmethod
    async def start(self) -> None:
        """Bind the socket and start receiving."""

    @abc.abstractmethod
    async def stop(self) -> None:
        """Close the socket."""

    @abc.abstractmethod
    def process_data(self, data: bytes, addr: Tuple[str, int]) -> None:
        """Decode one datagram from ``addr`` and enqueue or drop it."""

    def enqueue(self, message: Any, addr: Tuple[str, int]) -> bool:
        """Queue a decoded message; a full queue counts as a drop."""
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.error(f"{type(self).__name__}: queue full, dropping datagram from {addr[0]}")
            return False
        self.received += 1
        return True

    def drop(self, reason: str, addr: Tuple[str, int]) -> None:
        self.dropped += 1
        logger.warning(f"{type(self).__name__}: dropping datagram from {addr[0]}: {reason}")

    @property
    def statistics(self) -> Dict[str, int]:
        return {"received": self.received, "dropped": self.dropped}

    @property
    def is_running(self) -> bool:
        return self._is_running
