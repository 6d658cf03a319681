"""
Polling orchestrator: due-check, eligibility, liveness probe, domain polls
and circuit breaking per device.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Callable, Dict, Iterable, List, Optional

from netmon.models.device import Device, PollStatus
from netmon.polling.pollers.base import DomainPoller
from netmon.polling.pollers.interfaces import InterfacePoller
from netmon.polling.pollers.profiles import (
    IcmpProfilePoller, IpProfilePoller, SystemInfoPoller, UdpProfilePoller,
)
from netmon.polling.pollers.system_units import SystemUnitPoller
from netmon.polling.reconciler import RecordReconciler
from netmon.snmp.client import SNMPClient, DEFAULT_MAX_ENTRIES
from netmon.storage.store import Store

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 30
DEFAULT_FAILURE_THRESHOLD = 5


def default_pollers(
    client: SNMPClient,
    reconciler: RecordReconciler,
    max_entries: int = DEFAULT_MAX_ENTRIES
) -> List[DomainPoller]:
    """The six domain pollers in cycle order."""
    return [
        SystemInfoPoller(client, reconciler, max_entries),
        InterfacePoller(client, reconciler, max_entries),
        SystemUnitPoller(client, reconciler, max_entries),
        IpProfilePoller(client, reconciler, max_entries),
        IcmpProfilePoller(client, reconciler, max_entries),
        UdpProfilePoller(client, reconciler, max_entries),
    ]


@dataclass
class PollingStatistics:
    total_devices: int
    enabled_devices: int
    successful_polls: int
    failed_polls: int
    last_polling_run: Optional[datetime]


class PollingOrchestrator:
    """
    Drives per-device poll cycles.

    Devices are polled one at a time within a tick. Each domain poller is
    isolated: its failure is logged and the next domain still runs.
    """

    def __init__(
        self,
        store: Store,
        client: SNMPClient,
        pollers: Optional[List[DomainPoller]] = None,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC)
    ):
        """
        Initialize the orchestrator.

        Args:
            store: Store holding devices and polled records
            client: Protocol client
            pollers: Domain pollers in cycle order (defaults to all six)
            tick_interval: Seconds between scheduled ticks
            failure_threshold: Consecutive failures that disable an endpoint
            max_entries: Walk bound handed to the default pollers
            clock: Source of the current time
        """
        self.store = store
        self.client = client
        self.pollers = pollers if pollers is not None else default_pollers(
            client, RecordReconciler(store), max_entries
        )
        self.tick_interval = tick_interval
        self.failure_threshold = failure_threshold
        self.clock = clock
        self.last_polling_run: Optional[datetime] = None
        self._tick_tasks = set()

    async def tick(self) -> None:
        """Poll every eligible, due device once."""
        self.last_polling_run = self.clock()
        devices = await self.store.list_devices()
        eligible = [d for d in devices if d.is_eligible()]
        logger.debug(f"Polling tick: {len(eligible)} of {len(devices)} devices eligible")

        for device in eligible:
            try:
                await self.poll_device(device)
            except Exception as e:
                logger.error(f"Unexpected error polling {device.address}: {e}", exc_info=True)

    async def poll_device(self, device: Device) -> Optional[PollStatus]:
        """
        Run one poll cycle for ``device`` if it is eligible and due.

        Returns:
            The resulting poll status, or None if the device was skipped
        """
        endpoint = device.endpoint
        if not device.is_eligible():
            logger.debug(f"Skipping {device.address}: monitoring or polling disabled")
            return None

        now = self.clock()
        if not endpoint.is_due(now):
            logger.debug(f"Skipping {device.address}: not due until "
                         f"{endpoint.poll_interval}s after {endpoint.last_poll_time}")
            return None

        if not await self.client.test_connection(endpoint):
            await self._handle_failure(device, now, "Device not reachable via SNMP")
            return PollStatus.FAILURE

        endpoint.last_poll_time = now
        endpoint.consecutive_failures = 0
        endpoint.last_poll_status = PollStatus.SUCCESS
        endpoint.error_message = None

        for poller in self.pollers:
            try:
                await poller.poll(device)
            except Exception as e:
                logger.warning(f"{poller.name} poll failed for {device.address}: {e}")

        await self.store.save_device(device)
        logger.info(f"Polled {device.name} ({device.address})")
        return PollStatus.SUCCESS

    async def _handle_failure(self, device: Device, now: datetime, message: str) -> None:
        endpoint = device.endpoint
        endpoint.last_poll_time = now
        endpoint.last_poll_status = PollStatus.FAILURE
        endpoint.error_message = message
        endpoint.consecutive_failures += 1

        if endpoint.consecutive_failures >= self.failure_threshold:
            endpoint.enabled = False
            logger.warning(f"Disabled polling for {device.address} after "
                           f"{endpoint.consecutive_failures} consecutive failures")
        else:
            logger.warning(f"Poll failed for {device.address} "
                           f"({endpoint.consecutive_failures}/{self.failure_threshold}): {message}")

        await self.store.save_device(device)

    async def poll_device_by_id(self, device_id: int) -> Optional[PollStatus]:
        """On-demand poll of one device; same gates as a scheduled tick."""
        device = await self.store.find_device(device_id)
        if device is None:
            logger.warning(f"Poll requested for unknown device {device_id}")
            return None
        return await self.poll_device(device)

    async def poll_devices_by_ids(self, device_ids: Iterable[int]) -> Dict[int, Optional[PollStatus]]:
        results = {}
        for device_id in device_ids:
            results[device_id] = await self.poll_device_by_id(device_id)
        return results

    async def test_device_connectivity(self, device_id: int) -> bool:
        device = await self.store.find_device(device_id)
        if device is None:
            return False
        return await self.client.test_connection(device.endpoint)

    async def get_statistics(self) -> PollingStatistics:
        devices = await self.store.list_devices()
        statuses = [d.endpoint.last_poll_status for d in devices]
        return PollingStatistics(
            total_devices=len(devices),
            enabled_devices=sum(1 for d in devices if d.endpoint.enabled),
            successful_polls=statuses.count(PollStatus.SUCCESS),
            failed_polls=sum(1 for s in statuses if s is not None and s != PollStatus.SUCCESS),
            last_polling_run=self.last_polling_run,
        )

    async def run(self, stop_event: asyncio.Event) -> None:
        """
        Tick at a fixed rate until ``stop_event`` is set.

        A tick that outlasts the interval is not waited for; the next tick
        starts on schedule and overlaps it.
        """
        loop = asyncio.get_running_loop()
        logger.info(f"Polling loop started with {self.tick_interval}s interval")
        next_tick = loop.time()

        while not stop_event.is_set():
            task = asyncio.create_task(self.tick(), name="polling_tick")
            self._tick_tasks.add(task)
            task.add_done_callback(self._tick_tasks.discard)

            next_tick += self.tick_interval
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=max(0.0, next_tick - loop.time()))
            except asyncio.TimeoutError:
                continue

        for task in list(self._tick_tasks):
            task.cancel()
        if self._tick_tasks:
            await asyncio.gather(*self._tick_tasks, return_exceptions=True)
        logger.info("Polling loop stopped")
