import asyncio
import unittest
from unittest.mock import AsyncMock, Mock

import pytest

from netmon.discovery.engine import DiscoveryEngine, deduplicate_edges, deduplicate_nodes
from netmon.discovery.prober import DeviceProber, detect_vendor, infer_device_type
from netmon.discovery.scanner import AddressScanner, expand_target
from netmon.errors import DiscoveryError
from netmon.models.topology import (
    ConnectionType, DeviceType, DiscoveryRequest, DiscoveryRun, DiscoveryStage,
    DiscoveryStatus, Neighbor, TopologyEdge, TopologyNode,
)
from netmon.notifications import NotificationSink
from netmon.snmp import oids
from netmon.snmp.client import SNMPClient


class FakeProber:
    """Answers probes from an in-memory adjacency map."""

    def __init__(self, graph, failing=()):
        self.graph = graph
        self.failing = set(failing)
        self.probed = []

    async def probe_device(self, address, request):
        self.probed.append(address)
        if address in self.failing:
            raise ConnectionError("agent timeout")
        return TopologyNode(ip=address, name=f"dev-{address}", device_type=DeviceType.ROUTER)

    async def layer2_neighbors(self, address, request):
        return [
            Neighbor(address=peer, connection_type=ConnectionType.LAYER2, protocol="LLDP")
            for peer in self.graph.get(address, [])
        ]

    async def layer3_neighbors(self, address, request):
        return []


GRAPH = {
    "10.0.0.1": ["10.0.0.2"],
    "10.0.0.2": ["10.0.0.1", "10.0.0.3"],
    "10.0.0.3": ["10.0.0.2"],
}


def _request(max_hops=3, **kwargs):
    kwargs.setdefault("use_icmp", False)
    kwargs.setdefault("discover_layer3", False)
    return DiscoveryRequest(target="10.0.0.1", max_hops=max_hops, **kwargs)


class TestDiscoveryEngine(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.prober = FakeProber(GRAPH)
        self.sink = NotificationSink()
        self.store = Mock()
        self.store.save_discovery_run = AsyncMock()
        self.engine = DiscoveryEngine(self.prober, scanner=Mock(spec=AddressScanner),
                                      store=self.store, sink=self.sink)

    async def test_full_walk_deduplicates_nodes_and_edges(self):
        run = await self.engine.run_discovery(DiscoveryRun(request=_request(max_hops=3)))

        self.assertEqual(run.status, DiscoveryStatus.COMPLETE)
        self.assertEqual(run.stage, DiscoveryStage.COMPLETED)
        self.assertEqual(run.progress, 100)
        self.assertEqual(sorted(n.ip for n in run.nodes), ["10.0.0.1", "10.0.0.2", "10.0.0.3"])
        # 1-2 is reported from both ends
        self.assertEqual(len(run.edges), 2)
        self.assertEqual(self.prober.probed, ["10.0.0.1", "10.0.0.2", "10.0.0.3"])
        self.store.save_discovery_run.assert_awaited_once_with(run)

    async def test_hop_bound(self):
        run = await self.engine.run_discovery(DiscoveryRun(request=_request(max_hops=1)))

        ips = {n.ip for n in run.nodes}
        self.assertEqual(ips, {"10.0.0.1", "10.0.0.2"})
        self.assertNotIn("10.0.0.3", ips)
        self.assertEqual(self.prober.probed, ["10.0.0.1"])

    async def test_probe_failure_degrades_to_minimal_node(self):
        self.prober.failing = {"10.0.0.1"}
        with self.assertLogs("netmon.discovery.engine", level="WARNING"):
            run = await self.engine.run_discovery(DiscoveryRun(request=_request()))

        self.assertEqual(run.status, DiscoveryStatus.COMPLETE)
        self.assertEqual(len(run.nodes), 1)
        self.assertEqual(run.nodes[0].ip, "10.0.0.1")
        self.assertTrue(run.nodes[0].reachable)
        self.assertEqual(run.nodes[0].device_type, DeviceType.UNKNOWN)
        self.assertTrue(run.warnings)

    async def test_cancel_between_hops(self):
        async def cancel_after_first_hop(topic, payload):
            if payload["current_activity"] == "Hop 1 complete":
                await self.engine.cancel_discovery(payload["discovery_id"])

        self.sink.register_handler(cancel_after_first_hop)
        run = await self.engine.run_discovery(DiscoveryRun(request=_request(max_hops=3)))

        self.assertEqual(run.status, DiscoveryStatus.CANCELLED)
        self.assertEqual(run.stage, DiscoveryStage.CANCELLED)
        self.assertEqual({n.ip for n in run.nodes}, {"10.0.0.1", "10.0.0.2"})
        self.assertEqual(len(run.edges), 1)
        self.assertEqual(self.prober.probed, ["10.0.0.1"])

    async def test_cancel_while_building_topology(self):
        stages = []

        async def cancel_on_finalize(topic, payload):
            stages.append(payload["stage"])
            if payload["stage"] == "BUILDING_TOPOLOGY":
                self.assertTrue(await self.engine.cancel_discovery(payload["discovery_id"]))

        self.sink.register_handler(cancel_on_finalize)
        run = await self.engine.run_discovery(DiscoveryRun(request=_request(max_hops=1)))

        self.assertEqual(run.status, DiscoveryStatus.CANCELLED)
        self.assertEqual(run.stage, DiscoveryStage.CANCELLED)
        self.assertNotIn("COMPLETED", stages)

    async def test_failure_in_flight_after_cancel_leaves_run_untouched(self):
        started, release = asyncio.Event(), asyncio.Event()

        async def slow_failure(address, request):
            started.set()
            await release.wait()
            raise ConnectionError("agent timeout")

        self.prober.probe_device = slow_failure
        run = DiscoveryRun(request=_request())
        task = asyncio.create_task(self.engine.run_discovery(run))
        await started.wait()

        self.assertTrue(await self.engine.cancel_discovery(run.id))
        release.set()
        await task

        self.assertEqual(run.status, DiscoveryStatus.CANCELLED)
        self.assertEqual(run.warnings, [])
        self.assertEqual(run.nodes, [])

    async def test_unusable_requests_are_rejected(self):
        for request in (_request(concurrency=0), _request(max_hops=-1)):
            with self.assertRaises(DiscoveryError):
                await asyncio.wait_for(self.engine.run_discovery(DiscoveryRun(request=request)), 2)
            with self.assertRaises(DiscoveryError):
                await self.engine.start_discovery(request)
        self.assertEqual(self.engine.runs, {})

    async def test_progress_is_published(self):
        snapshots = []

        async def collect(topic, payload):
            snapshots.append((topic, payload))

        self.sink.register_handler(collect)
        run = await self.engine.run_discovery(DiscoveryRun(request=_request(max_hops=2)))

        topics = {topic for topic, _ in snapshots}
        self.assertEqual(topics, {f"/topic/discovery/{run.id}/progress"})
        self.assertEqual(snapshots[0][1]["percent_complete"], 0)
        self.assertIn(50, [p["percent_complete"] for _, p in snapshots])
        self.assertTrue(snapshots[-1][1]["complete"])
        self.assertEqual(snapshots[-1][1]["stage"], "COMPLETED")

    async def test_icmp_sweep_seeds_pending(self):
        self.engine.scanner.sweep = AsyncMock(return_value=["10.0.0.5", "10.0.0.6"])
        request = DiscoveryRequest(target="10.0.0.0/29", use_icmp=True, use_snmp=False)

        run = await self.engine.run_discovery(DiscoveryRun(request=request))

        self.assertEqual(sorted(n.ip for n in run.nodes), ["10.0.0.5", "10.0.0.6"])
        self.assertEqual(self.prober.probed, [])

    async def test_start_get_and_cancel_registry(self):
        run_id = await self.engine.start_discovery(_request())
        self.assertIsNotNone(self.engine.get_run(run_id))
        await self.engine.wait(run_id)

        self.assertEqual(self.engine.get_run(run_id).status, DiscoveryStatus.COMPLETE)
        self.assertFalse(await self.engine.cancel_discovery(run_id))
        self.assertFalse(await self.engine.cancel_discovery("missing"))
        self.assertIsNone(self.engine.get_run("missing"))

    async def test_invalid_target_fails_run(self):
        request = DiscoveryRequest(target="not-an-address", use_icmp=False)
        with self.assertLogs("netmon.discovery.engine", level="ERROR"):
            run = await self.engine.run_discovery(DiscoveryRun(request=request))

        self.assertEqual(run.status, DiscoveryStatus.FAILED)
        self.assertEqual(run.stage, DiscoveryStage.FAILED)
        self.assertTrue(run.warnings)


class TestDeduplication(unittest.TestCase):
    def test_nodes_keep_first_seen(self):
        first = TopologyNode(ip="10.0.0.1", name="first")
        nodes = deduplicate_nodes([first, TopologyNode(ip="10.0.0.1", name="second"),
                                   TopologyNode(mac="00:11:22:33:44:55")])
        self.assertEqual(len(nodes), 2)
        self.assertIs(nodes[0], first)

    def test_edges_collapse_both_directions(self):
        edges = deduplicate_edges([
            TopologyEdge(source_id="a", target_id="b"),
            TopologyEdge(source_id="b", target_id="a"),
            TopologyEdge(source_id="a", target_id="a"),
        ])
        self.assertEqual(len(edges), 1)
        self.assertEqual(edges[0].source_id, "a")


class TestExpandTarget(unittest.TestCase):
    def test_single_address(self):
        self.assertEqual(expand_target("10.0.0.1"), ["10.0.0.1"])

    def test_cidr_excludes_network_and_broadcast(self):
        self.assertEqual(expand_target("10.0.0.0/30"), ["10.0.0.1", "10.0.0.2"])

    def test_last_octet_range(self):
        self.assertEqual(expand_target("10.0.0.5-7"), ["10.0.0.5", "10.0.0.6", "10.0.0.7"])

    def test_invalid_targets(self):
        for target in ("bogus", "10.0.0.9-3", "10.0.0.0/8"):
            with self.assertRaises(DiscoveryError):
                expand_target(target)


class TestDeviceInference(unittest.TestCase):
    def test_vendor(self):
        self.assertEqual(detect_vendor("Cisco IOS Software, C2960 Software"), "Cisco")
        self.assertEqual(detect_vendor("Juniper Networks, Inc. ex2200"), "Juniper")
        self.assertIsNone(detect_vendor("mystery box"))
        self.assertIsNone(detect_vendor(None))

    def test_device_type(self):
        self.assertEqual(infer_device_type("Cisco IOS", 6, 1), DeviceType.ROUTER)
        self.assertEqual(infer_device_type("Cisco IOS", 2, 2), DeviceType.SWITCH)
        self.assertEqual(infer_device_type("HP LaserJet 4250", 72, None), DeviceType.PRINTER)
        self.assertEqual(infer_device_type("Linux web01 5.15.0", 72, 2), DeviceType.SERVER)
        self.assertEqual(infer_device_type(None, None, None), DeviceType.UNKNOWN)


def _walk_tables(tables):
    async def walk(endpoint, root, max_entries=None):
        return tables.get(root, {})
    return walk


@pytest.mark.asyncio
async def test_probe_device_builds_node():
    client = Mock(spec=SNMPClient)
    client.get_multiple = AsyncMock(return_value={
        oids.SYS_DESCR: "Cisco IOS Software, ISR4331",
        oids.SYS_NAME: "edge-rtr",
        oids.SYS_OBJECT_ID: "1.3.6.1.4.1.9.1.2068",
        oids.SYS_SERVICES: 6,
    })
    client.get = AsyncMock(return_value=1)

    node = await DeviceProber(client).probe_device("10.0.0.1", _request())

    assert node.ip == "10.0.0.1"
    assert node.name == "edge-rtr"
    assert node.device_type == DeviceType.ROUTER
    assert node.vendor == "Cisco"


@pytest.mark.asyncio
async def test_probe_device_silent_agent():
    client = Mock(spec=SNMPClient)
    client.get_multiple = AsyncMock(return_value={})

    assert await DeviceProber(client).probe_device("10.0.0.1", _request()) is None


@pytest.mark.asyncio
async def test_lldp_neighbors_are_parsed():
    client = Mock(spec=SNMPClient)
    client.walk = AsyncMock(side_effect=_walk_tables({
        oids.LLDP_REM_SYS_NAME: {f"{oids.LLDP_REM_SYS_NAME}.0.5.1": "access-sw2"},
        oids.LLDP_REM_PORT_ID: {f"{oids.LLDP_REM_PORT_ID}.0.5.1": "Gi0/48"},
        oids.LLDP_REM_MAN_ADDR_IF_SUBTYPE: {
            f"{oids.LLDP_REM_MAN_ADDR_IF_SUBTYPE}.0.5.1.1.4.10.0.0.2": 2,
        },
        oids.LLDP_LOC_PORT_DESC: {f"{oids.LLDP_LOC_PORT_DESC}.5": "GigabitEthernet1/0/5"},
    }))

    neighbors = await DeviceProber(client).layer2_neighbors("10.0.0.1", _request())

    assert len(neighbors) == 1
    neighbor = neighbors[0]
    assert neighbor.address == "10.0.0.2"
    assert neighbor.name == "access-sw2"
    assert neighbor.protocol == "LLDP"
    assert neighbor.local_interface == "GigabitEthernet1/0/5"
    assert neighbor.remote_interface == "Gi0/48"


@pytest.mark.asyncio
async def test_cdp_neighbors_decode_hex_address():
    client = Mock(spec=SNMPClient)
    client.walk = AsyncMock(side_effect=_walk_tables({
        oids.CDP_CACHE_ADDRESS: {f"{oids.CDP_CACHE_ADDRESS}.10001.1": "0x0a000003"},
        oids.CDP_CACHE_DEVICE_ID: {f"{oids.CDP_CACHE_DEVICE_ID}.10001.1": "core-sw1"},
        oids.CDP_CACHE_DEVICE_PORT: {f"{oids.CDP_CACHE_DEVICE_PORT}.10001.1": "Te1/1/1"},
    }))

    neighbors = await DeviceProber(client).layer2_neighbors("10.0.0.1", _request())

    assert [(n.address, n.name, n.protocol) for n in neighbors] == [("10.0.0.3", "core-sw1", "CDP")]


@pytest.mark.asyncio
async def test_layer3_neighbors_skip_default_and_self():
    client = Mock(spec=SNMPClient)
    client.walk = AsyncMock(return_value={
        f"{oids.IP_ROUTE_NEXT_HOP}.0.0.0.0": "10.0.0.254",
        f"{oids.IP_ROUTE_NEXT_HOP}.10.1.0.0": "0.0.0.0",
        f"{oids.IP_ROUTE_NEXT_HOP}.10.2.0.0": "10.0.0.254",
        f"{oids.IP_ROUTE_NEXT_HOP}.10.3.0.0": "10.0.0.1",
    })

    neighbors = await DeviceProber(client).layer3_neighbors("10.0.0.1", _request())

    assert [n.address for n in neighbors] == ["10.0.0.254"]
    assert neighbors[0].connection_type == ConnectionType.LAYER3


@pytest.mark.asyncio
async def test_sweep_returns_responding_addresses():
    scanner = AddressScanner(concurrency=2)
    scanner.ping = AsyncMock(side_effect=lambda address: address.endswith(".2"))

    assert await scanner.sweep("10.0.0.0/29") == ["10.0.0.2"]
    assert scanner.ping.await_count == 6
