"""
Discovery run and topology graph models.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Dict, List, Optional

from netmon.models.credentials import SNMPCredential, SNMPVersion


class DiscoveryStatus(Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({
    DiscoveryStatus.COMPLETE,
    DiscoveryStatus.FAILED,
    DiscoveryStatus.CANCELLED,
})


class DiscoveryStage(Enum):
    INITIALIZING = "INITIALIZING"
    ICMP_SCAN = "ICMP_SCAN"
    SNMP_DISCOVERY = "SNMP_DISCOVERY"
    LLDP_DISCOVERY = "LLDP_DISCOVERY"
    BUILDING_TOPOLOGY = "BUILDING_TOPOLOGY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class DeviceType(Enum):
    ROUTER = "ROUTER"
    SWITCH = "SWITCH"
    FIREWALL = "FIREWALL"
    SERVER = "SERVER"
    WORKSTATION = "WORKSTATION"
    PRINTER = "PRINTER"
    WIRELESS_ACCESS_POINT = "WIRELESS_ACCESS_POINT"
    UNKNOWN = "UNKNOWN"

    @property
    def is_network_device(self) -> bool:
        return self in (DeviceType.ROUTER, DeviceType.SWITCH)


class ConnectionType(Enum):
    LAYER2 = "LAYER2"
    LAYER3 = "LAYER3"
    WIRELESS = "WIRELESS"
    VIRTUAL = "VIRTUAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class TopologyNode:
    """A discovered device. Identity is ip, then mac, then id."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    ip: Optional[str] = None
    mac: Optional[str] = None
    name: Optional[str] = None
    device_type: DeviceType = DeviceType.UNKNOWN
    sys_descr: Optional[str] = None
    sys_object_id: Optional[str] = None
    vendor: Optional[str] = None
    reachable: bool = True
    attributes: Dict[str, Any] = field(default_factory=dict)

    def identity(self) -> str:
        return self.ip or self.mac or self.id


@dataclass
class TopologyEdge:
    """A link between two nodes. Identity is the unordered node-id pair."""
    source_id: str
    target_id: str
    connection_type: ConnectionType = ConnectionType.UNKNOWN
    source_interface: Optional[str] = None
    target_interface: Optional[str] = None
    protocol: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def identity(self) -> frozenset:
        return frozenset((self.source_id, self.target_id))


@dataclass
class Neighbor:
    """A neighbor relationship reported by a device."""
    address: Optional[str]
    connection_type: ConnectionType
    protocol: str
    name: Optional[str] = None
    local_interface: Optional[str] = None
    remote_interface: Optional[str] = None


@dataclass
class DiscoveryRequest:
    """
    Parameters of a discovery run.

    Attributes:
        target: Seed address, CIDR block or ``a.b.c.d-e`` range
        use_icmp: Run the liveness sweep before protocol discovery
        use_snmp: Probe devices for protocol details
        discover_layer2: Expand through LLDP/CDP neighbors
        discover_layer3: Expand through routing next hops
        max_hops: Neighbor expansion depth
        concurrency: Worker pool width
    """
    target: str
    use_icmp: bool = True
    use_snmp: bool = True
    discover_layer2: bool = True
    discover_layer3: bool = True
    max_hops: int = 3
    concurrency: int = 10
    version: SNMPVersion = SNMPVersion.V2C
    credential: SNMPCredential = field(default_factory=SNMPCredential)
    port: int = 161
    timeout: float = 1.5
    retries: int = 2


@dataclass
class DiscoveryProgress:
    """Progress snapshot published to the progress sink."""
    discovery_id: str
    percent_complete: int
    stage: DiscoveryStage
    current_activity: str = ""
    current_target: Optional[str] = None
    devices_found: int = 0
    connections_found: int = 0
    complete: bool = False
    status_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "discovery_id": self.discovery_id,
            "percent_complete": self.percent_complete,
            "stage": self.stage.value,
            "current_activity": self.current_activity,
            "current_target": self.current_target,
            "devices_found": self.devices_found,
            "connections_found": self.connections_found,
            "complete": self.complete,
            "status_message": self.status_message,
        }


@dataclass
class DiscoveryRun:
    """State of one discovery run."""
    request: DiscoveryRequest
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: DiscoveryStatus = DiscoveryStatus.PENDING
    stage: DiscoveryStage = DiscoveryStage.INITIALIZING
    nodes: List[TopologyNode] = field(default_factory=list)
    edges: List[TopologyEdge] = field(default_factory=list)
    hop: int = 0
    progress: int = 0
    warnings: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
