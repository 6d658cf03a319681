"""
Notification, event and alert data models.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Optional, Dict, Any


class TrapType(Enum):
    """Derived classification of a notification."""
    COLD_START = "COLD_START"
    WARM_START = "WARM_START"
    LINK_DOWN = "LINK_DOWN"
    LINK_UP = "LINK_UP"
    AUTHENTICATION_FAILURE = "AUTHENTICATION_FAILURE"
    EGP_NEIGHBOR_LOSS = "EGP_NEIGHBOR_LOSS"
    ENTERPRISE_SPECIFIC = "ENTERPRISE_SPECIFIC"
    DEVICE_DOWN = "DEVICE_DOWN"
    DEVICE_UP = "DEVICE_UP"
    INTERFACE_DOWN = "INTERFACE_DOWN"
    INTERFACE_UP = "INTERFACE_UP"
    SYSTEM_RESTART = "SYSTEM_RESTART"
    CONFIGURATION_CHANGE = "CONFIGURATION_CHANGE"
    TEMPERATURE_ALARM = "TEMPERATURE_ALARM"
    FAN_FAILURE = "FAN_FAILURE"
    POWER_FAILURE = "POWER_FAILURE"
    CPU_HIGH = "CPU_HIGH"
    MEMORY_LOW = "MEMORY_LOW"
    DISK_FULL = "DISK_FULL"
    THRESHOLD_EXCEEDED = "THRESHOLD_EXCEEDED"
    UNKNOWN = "UNKNOWN"


class Severity(Enum):
    """Severity shared by events and alerts, most severe first."""
    CRITICAL = "CRITICAL"
    MAJOR = "MAJOR"
    MINOR = "MINOR"
    WARNING = "WARNING"
    INFO = "INFO"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def at_least(self, other: "Severity") -> bool:
        """True if this severity is as severe as ``other`` or worse."""
        return self.rank <= other.rank


_SEVERITY_RANK = {
    Severity.CRITICAL: 0,
    Severity.MAJOR: 1,
    Severity.MINOR: 2,
    Severity.WARNING: 3,
    Severity.INFO: 4,
}


class AlertType(Enum):
    SYSTEM_UP = "SYSTEM_UP"
    SYSTEM_DOWN = "SYSTEM_DOWN"
    INTERFACE_DOWN = "INTERFACE_DOWN"
    INTERFACE_UP = "INTERFACE_UP"
    DEVICE_DOWN = "DEVICE_DOWN"
    DEVICE_UP = "DEVICE_UP"
    CONNECTIVITY = "CONNECTIVITY"
    PERFORMANCE = "PERFORMANCE"
    CONFIGURATION_CHANGED = "CONFIGURATION_CHANGED"


class AlertStatus(Enum):
    OPEN = "OPEN"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"


@dataclass
class TrapMessage:
    """
    A decoded inbound notification, normalized across v1 and v2c shapes.

    Attributes:
        source_ip: Sender address
        source_port: Sender UDP port
        community: Community string carried by the message
        version: 'v1' or 'v2c'
        trap_oid: Notification identifier
        uptime: Agent uptime in hundredths of a second
        varbinds: Field map, OID text to value
        enterprise_oid: v1 enterprise, or snmpTrapEnterprise on v2c
        generic_trap: v1 generic trap code
        specific_trap: v1 specific trap code
        agent_address: v1 agent-addr field
    """
    source_ip: str
    source_port: int
    community: str
    version: str
    trap_oid: str
    uptime: Optional[int] = None
    varbinds: Dict[str, Any] = field(default_factory=dict)
    enterprise_oid: Optional[str] = None
    generic_trap: Optional[int] = None
    specific_trap: Optional[int] = None
    agent_address: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    received_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class TrapEvent:
    """
    Stored notification, deduplicated by ``hash_key`` within a time bucket.
    """
    hash_key: str
    source_ip: str
    source_port: int
    community: str
    trap_oid: str
    trap_type: TrapType
    severity: Severity
    first_occurrence: datetime
    last_occurrence: datetime
    description: str = ""
    version: str = "v2c"
    enterprise_oid: Optional[str] = None
    generic_trap: Optional[int] = None
    specific_trap: Optional[int] = None
    uptime: Optional[int] = None
    varbinds: Dict[str, Any] = field(default_factory=dict)
    raw_data: str = ""
    duplicate_count: int = 1
    processed: bool = False
    alert_created: bool = False
    alert_id: Optional[int] = None
    device_id: Optional[int] = None
    id: Optional[int] = None


@dataclass
class Alert:
    """An alert derived from a notification event."""
    alert_type: AlertType
    severity: Severity
    title: str
    message: str
    alert_key: str
    source_type: str = "SNMP_TRAP"
    status: AlertStatus = AlertStatus.OPEN
    device_id: Optional[int] = None
    owner: Optional[str] = None
    source_event_id: Optional[int] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    id: Optional[int] = None
