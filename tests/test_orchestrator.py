import asyncio
import unittest
from datetime import datetime, timedelta, UTC
from unittest.mock import AsyncMock, Mock

from netmon.models.device import Device, DeviceEndpoint, PollStatus
from netmon.polling.orchestrator import PollingOrchestrator, default_pollers
from netmon.polling.pollers.base import DomainPoller
from netmon.polling.reconciler import RecordReconciler
from netmon.snmp.client import SNMPClient
from netmon.storage.store import SQLiteStore


def _poller(name, side_effect=None):
    poller = Mock(spec=DomainPoller)
    poller.name = name
    poller.poll = AsyncMock(side_effect=side_effect)
    return poller


class TestPollingOrchestrator(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.store = await SQLiteStore.open(":memory:")
        self.client = Mock(spec=SNMPClient)
        self.client.test_connection = AsyncMock(return_value=True)
        self.now = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    async def asyncTearDown(self):
        await self.store.close()

    async def _device(self, poll_interval=300, **kwargs):
        endpoint = DeviceEndpoint(address="10.0.0.1", poll_interval=poll_interval, **kwargs)
        return await self.store.save_device(Device(name="core-router", endpoint=endpoint, owner="noc"))

    def _orchestrator(self, pollers):
        return PollingOrchestrator(self.store, self.client, pollers=pollers, clock=lambda: self.now)

    async def test_circuit_breaker_disables_after_five_failures(self):
        self.client.test_connection.return_value = False
        device = await self._device(poll_interval=0)
        poller = _poller("interfaces")
        orchestrator = self._orchestrator([poller])

        for _ in range(5):
            self.assertEqual(await orchestrator.poll_device(device), PollStatus.FAILURE)

        stored = await self.store.find_device(device.id)
        self.assertFalse(stored.endpoint.enabled)
        self.assertEqual(stored.endpoint.consecutive_failures, 5)

        self.assertIsNone(await orchestrator.poll_device(stored))
        self.assertEqual(self.client.test_connection.await_count, 5)
        poller.poll.assert_not_awaited()

    async def test_success_resets_failure_counter(self):
        device = await self._device(poll_interval=0, consecutive_failures=3)
        status = await self._orchestrator([_poller("interfaces")]).poll_device(device)

        stored = await self.store.find_device(device.id)
        self.assertEqual(status, PollStatus.SUCCESS)
        self.assertEqual(stored.endpoint.consecutive_failures, 0)
        self.assertEqual(stored.endpoint.last_poll_status, PollStatus.SUCCESS)

    async def test_domain_failure_is_isolated(self):
        device = await self._device()
        failing = _poller("interfaces", side_effect=RuntimeError("walk blew up"))
        healthy = _poller("system units")

        with self.assertLogs("netmon.polling.orchestrator", level="WARNING"):
            status = await self._orchestrator([failing, healthy]).poll_device(device)

        self.assertEqual(status, PollStatus.SUCCESS)
        healthy.poll.assert_awaited_once_with(device)

    async def test_device_not_due_is_skipped(self):
        device = await self._device(last_poll_time=self.now - timedelta(seconds=60))
        poller = _poller("interfaces")

        self.assertIsNone(await self._orchestrator([poller]).poll_device(device))
        self.client.test_connection.assert_not_awaited()

    async def test_on_demand_poll_uses_due_gate(self):
        device = await self._device(last_poll_time=self.now - timedelta(seconds=60))
        orchestrator = self._orchestrator([_poller("interfaces")])

        self.assertIsNone(await orchestrator.poll_device_by_id(device.id))
        self.assertIsNone(await orchestrator.poll_device_by_id(9999))

    async def test_monitoring_disabled_device_is_skipped(self):
        endpoint = DeviceEndpoint(address="10.0.0.2")
        device = await self.store.save_device(
            Device(name="lab", endpoint=endpoint, monitoring_enabled=False)
        )
        self.assertIsNone(await self._orchestrator([]).poll_device(device))

    async def test_tick_polls_each_eligible_device(self):
        await self._device()
        await self.store.save_device(Device(name="edge", endpoint=DeviceEndpoint(address="10.0.0.2")))
        await self.store.save_device(
            Device(name="off", endpoint=DeviceEndpoint(address="10.0.0.3", enabled=False))
        )
        poller = _poller("interfaces")

        await self._orchestrator([poller]).tick()
        self.assertEqual(poller.poll.await_count, 2)

    async def test_statistics(self):
        device = await self._device()
        orchestrator = self._orchestrator([])
        await orchestrator.tick()

        stats = await orchestrator.get_statistics()
        self.assertEqual(stats.total_devices, 1)
        self.assertEqual(stats.enabled_devices, 1)
        self.assertEqual(stats.successful_polls, 1)
        self.assertEqual(stats.last_polling_run, self.now)
        self.assertTrue(await orchestrator.test_device_connectivity(device.id))

    async def test_run_stops_on_event(self):
        orchestrator = PollingOrchestrator(self.store, self.client, pollers=[], tick_interval=0.01)
        orchestrator.tick = AsyncMock()
        stop = asyncio.Event()

        task = asyncio.create_task(orchestrator.run(stop))
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

        self.assertGreaterEqual(orchestrator.tick.await_count, 2)

    def test_default_pollers_cover_six_domains(self):
        pollers = default_pollers(self.client, RecordReconciler(Mock()))
        self.assertEqual(len(pollers), 6)
        self.assertEqual(pollers[0].name, "system info")


if __name__ == '__main__':
    unittest.main()
