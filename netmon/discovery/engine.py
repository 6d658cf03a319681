"""
Hop-bounded topology discovery.

Each hop probes its whole batch concurrently and waits for every probe
before the next hop is scheduled. Cancellation is a status flip observed
at the start of each hop and before each probe.
"""

import asyncio
import logging
from datetime import datetime, UTC
from typing import Dict, List, Optional, Set, Tuple

from netmon.errors import DiscoveryError
from netmon.discovery.prober import DeviceProber
from netmon.discovery.scanner import AddressScanner, expand_target
from netmon.models.topology import (
    DiscoveryProgress, DiscoveryRequest, DiscoveryRun, DiscoveryStage,
    DeviceType, DiscoveryStatus, Neighbor, TopologyEdge, TopologyNode,
)
from netmon.notifications import NotificationSink, discovery_topic
from netmon.storage.store import Store

logger = logging.getLogger(__name__)

ProbeResult = Tuple[TopologyNode, List[Neighbor]]


def deduplicate_nodes(nodes: List[TopologyNode]) -> List[TopologyNode]:
    """Keep the first node seen per identity."""
    seen: Set[str] = set()
    unique = []
    for node in nodes:
        key = node.identity()
        if key not in seen:
            seen.add(key)
            unique.append(node)
    return unique


def deduplicate_edges(edges: List[TopologyEdge]) -> List[TopologyEdge]:
    """Keep the first edge seen per unordered endpoint pair; drop self-loops."""
    seen: Set[frozenset] = set()
    unique = []
    for edge in edges:
        key = edge.identity()
        if edge.source_id == edge.target_id or key in seen:
            continue
        seen.add(key)
        unique.append(edge)
    return unique


def validate_request(request: DiscoveryRequest) -> None:
    """
    Raises:
        DiscoveryError: If the worker pool or hop bound cannot make progress
    """
    if request.concurrency < 1:
        raise DiscoveryError(f"Discovery concurrency must be at least 1, got {request.concurrency}")
    if request.max_hops < 0:
        raise DiscoveryError(f"Discovery max_hops must not be negative, got {request.max_hops}")


class _Topology:
    """Nodes and edges accumulated by one run, indexed by node identity."""

    def __init__(self, run: DiscoveryRun):
        self.run = run
        self.by_identity: Dict[str, TopologyNode] = {}

    def add_node(self, node: TopologyNode) -> TopologyNode:
        """Add ``node`` or enrich the node already holding its identity."""
        existing = self.by_identity.get(node.identity())
        if existing is None:
            self.by_identity[node.identity()] = node
            self.run.nodes.append(node)
            return node

        for attr in ("mac", "name", "sys_descr", "sys_object_id", "vendor"):
            if getattr(existing, attr) is None:
                setattr(existing, attr, getattr(node, attr))
        if existing.device_type == DeviceType.UNKNOWN:
            existing.device_type = node.device_type
        existing.reachable = existing.reachable or node.reachable
        existing.attributes.update(node.attributes)
        return existing

    def add_edge(self, source: TopologyNode, target: TopologyNode, neighbor: Neighbor) -> None:
        self.run.edges.append(TopologyEdge(
            source_id=source.id,
            target_id=target.id,
            connection_type=neighbor.connection_type,
            source_interface=neighbor.local_interface,
            target_interface=neighbor.remote_interface,
            protocol=neighbor.protocol,
        ))


class DiscoveryEngine:
    """
    Runs discovery requests and keeps a registry of their state.
    """

    def __init__(
        self,
        prober: DeviceProber,
        scanner: Optional[AddressScanner] = None,
        store: Optional[Store] = None,
        sink: Optional[NotificationSink] = None
    ):
        """
        Initialize the engine.

        Args:
            prober: Device and neighbor prober
            scanner: Liveness scanner (defaults to a ping scanner)
            store: Store that finished runs are persisted to
            sink: Where progress snapshots are published
        """
        self.prober = prober
        self.scanner = scanner or AddressScanner()
        self.store = store
        self.sink = sink or NotificationSink()
        self.runs: Dict[str, DiscoveryRun] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    async def start_discovery(self, request: DiscoveryRequest) -> str:
        """
        Register a run and execute it in the background; returns the run id.

        Raises:
            DiscoveryError: If the request is rejected by ``validate_request``
        """
        validate_request(request)
        run = DiscoveryRun(request=request)
        self.runs[run.id] = run
        task = asyncio.create_task(self.run_discovery(run), name=f"discovery_{run.id}")
        self._tasks[run.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(run.id, None))
        logger.info(f"Discovery {run.id} started for {request.target}")
        return run.id

    def get_run(self, run_id: str) -> Optional[DiscoveryRun]:
        return self.runs.get(run_id)

    async def cancel_discovery(self, run_id: str) -> bool:
        """
        Request cancellation. In-flight probes finish but their results are
        discarded.

        Returns:
            False if the run is unknown or already finished
        """
        run = self.runs.get(run_id)
        if run is None or run.is_terminal:
            return False

        run.status = DiscoveryStatus.CANCELLED
        run.stage = DiscoveryStage.CANCELLED
        run.completed_at = datetime.now(UTC)
        logger.info(f"Discovery {run_id} cancelled at hop {run.hop}")
        await self._publish(run, "Discovery cancelled", complete=True)
        return True

    async def wait(self, run_id: str) -> None:
        """Wait for a background run to finish."""
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        for run_id in list(self._tasks):
            await self.cancel_discovery(run_id)
        await asyncio.gather(*self._tasks.values(), return_exceptions=True)

    async def run_discovery(self, run: DiscoveryRun) -> DiscoveryRun:
        """
        Execute ``run`` to a terminal status and return it.

        Raises:
            DiscoveryError: If the request is rejected by ``validate_request``
        """
        validate_request(run.request)
        self.runs.setdefault(run.id, run)
        if run.is_terminal:
            return run

        run.status = DiscoveryStatus.IN_PROGRESS
        await self._advance(run, DiscoveryStage.INITIALIZING, 0, "Initializing discovery")

        try:
            await self._discover(run)
            if not run.is_terminal:
                await self._advance(run, DiscoveryStage.BUILDING_TOPOLOGY, 90, "Building topology")
            # a cancel can land while the snapshot above is being published
            if not run.is_terminal:
                run.nodes = deduplicate_nodes(run.nodes)
                run.edges = deduplicate_edges(run.edges)
                run.status = DiscoveryStatus.COMPLETE
                run.completed_at = datetime.now(UTC)
                await self._advance(run, DiscoveryStage.COMPLETED, 100, "Discovery complete", force=True)
                logger.info(f"Discovery {run.id} complete: {len(run.nodes)} nodes, {len(run.edges)} edges")
        except Exception as e:
            if not run.is_terminal:
                logger.error(f"Discovery {run.id} failed: {e}", exc_info=True)
                run.warnings.append(f"Discovery failed: {e}")
                run.status = DiscoveryStatus.FAILED
                run.completed_at = datetime.now(UTC)
                await self._advance(run, DiscoveryStage.FAILED, run.progress, str(e), force=True)

        await self._persist(run)
        return run

    async def _discover(self, run: DiscoveryRun) -> None:
        request = run.request
        topology = _Topology(run)
        seeds = expand_target(request.target)

        if request.use_icmp:
            await self._advance(run, DiscoveryStage.ICMP_SCAN, 5, f"Scanning {request.target}")
            alive = await self.scanner.sweep(request.target)
            if run.is_terminal:
                return
            for address in alive:
                topology.add_node(TopologyNode(ip=address, reachable=True))
            # a single seed is probed even when it ignores echo requests
            pending = list(dict.fromkeys((seeds if len(seeds) == 1 else []) + alive))
            await self._advance(run, DiscoveryStage.ICMP_SCAN, 20,
                                f"{len(alive)} addresses responding")
        else:
            pending = seeds

        processed: Set[str] = set()
        for hop in range(1, request.max_hops + 1):
            if run.is_terminal:
                return
            batch = [address for address in dict.fromkeys(pending) if address not in processed]
            if not batch:
                break

            run.hop = hop
            processed.update(batch)
            await self._advance(run, DiscoveryStage.SNMP_DISCOVERY, run.progress,
                                f"Hop {hop}: probing {len(batch)} devices")

            semaphore = asyncio.Semaphore(request.concurrency)

            async def probe(address: str) -> Optional[ProbeResult]:
                async with semaphore:
                    if run.is_terminal:
                        return None
                    return await self._probe(run, address)

            results = await asyncio.gather(*(probe(address) for address in batch))
            if run.is_terminal:
                return

            pending = []
            for result in results:
                if result is None:
                    continue
                node, neighbors = result
                source = topology.add_node(node)
                for neighbor in neighbors:
                    target = topology.add_node(TopologyNode(
                        ip=neighbor.address,
                        name=neighbor.name,
                        reachable=False,
                    ))
                    topology.add_edge(source, target, neighbor)
                    if neighbor.address and neighbor.address not in processed:
                        pending.append(neighbor.address)

            percent = 20 + int(60 * hop / request.max_hops)
            await self._advance(run, DiscoveryStage.SNMP_DISCOVERY, percent,
                                f"Hop {hop} complete")

    async def _probe(self, run: DiscoveryRun, address: str) -> ProbeResult:
        """Probe one address; failures degrade to a minimal node."""
        request = run.request
        if not request.use_snmp:
            return TopologyNode(ip=address, reachable=True), []

        await self._publish(run, "Probing device", current_target=address)
        try:
            node = await self.prober.probe_device(address, request)
        except Exception as e:
            logger.warning(f"Probe of {address} failed: {e}")
            if not run.is_terminal:
                run.warnings.append(f"Probe of {address} failed: {e}")
            node = None
        if node is None:
            return TopologyNode(ip=address, reachable=True), []

        neighbors: List[Neighbor] = []
        if node.device_type.is_network_device:
            if request.discover_layer2:
                await self._publish(run, "Reading LLDP/CDP neighbors", current_target=address,
                                    stage=DiscoveryStage.LLDP_DISCOVERY)
                neighbors.extend(await self._neighbors(run, address, self.prober.layer2_neighbors))
            if request.discover_layer3:
                neighbors.extend(await self._neighbors(run, address, self.prober.layer3_neighbors))
        return node, neighbors

    async def _neighbors(self, run: DiscoveryRun, address: str, fetch) -> List[Neighbor]:
        try:
            return await fetch(address, run.request)
        except Exception as e:
            logger.warning(f"Neighbor probe of {address} failed: {e}")
            if not run.is_terminal:
                run.warnings.append(f"Neighbor probe of {address} failed: {e}")
            return []

    async def _advance(
        self,
        run: DiscoveryRun,
        stage: DiscoveryStage,
        percent: int,
        activity: str,
        force: bool = False
    ) -> None:
        """Move the run to ``stage``/``percent`` and publish a snapshot."""
        if run.is_terminal and not force:
            return
        run.stage = stage
        run.progress = percent
        await self._publish(run, activity, complete=run.is_terminal)

    async def _publish(
        self,
        run: DiscoveryRun,
        activity: str,
        current_target: Optional[str] = None,
        stage: Optional[DiscoveryStage] = None,
        complete: bool = False
    ) -> None:
        progress = DiscoveryProgress(
            discovery_id=run.id,
            percent_complete=run.progress,
            stage=stage or run.stage,
            current_activity=activity,
            current_target=current_target,
            devices_found=len(run.nodes),
            connections_found=len(run.edges),
            complete=complete,
            status_message=run.status.value,
        )
        await self.sink.publish(discovery_topic(run.id), progress.to_dict())

    async def _persist(self, run: DiscoveryRun) -> None:
        if self.store is None:
            return
        try:
            await self.store.save_discovery_run(run)
        except Exception as e:
            logger.error(f"Failed to persist discovery run {run.id}: {e}")
