"""
Polled record models: per-index table rows and per-device singleton profiles.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class RecordKind(Enum):
    """Indexed record tables. The value is the backing table name."""
    INTERFACE = "interfaces"
    SYSTEM_UNIT = "system_units"
    UDP_LISTENER = "udp_listeners"


class ProfileKind(Enum):
    """Singleton profile tables. The value is the backing table name."""
    SYSTEM_INFO = "system_info"
    IP = "ip_profiles"
    ICMP = "icmp_profiles"
    UDP = "udp_profiles"


class InterfaceType(Enum):
    """ifType values tracked by the interface poller."""
    OTHER = "OTHER"
    ETHERNET_CSMACD = "ETHERNET_CSMACD"
    PPP = "PPP"
    SOFTWARE_LOOPBACK = "SOFTWARE_LOOPBACK"
    FDDI = "FDDI"
    TUNNEL = "TUNNEL"

    @classmethod
    def from_code(cls, code: Optional[int]) -> "InterfaceType":
        return _IF_TYPE_CODES.get(code, cls.OTHER)


_IF_TYPE_CODES = {
    1: InterfaceType.OTHER,
    6: InterfaceType.ETHERNET_CSMACD,
    23: InterfaceType.PPP,
    24: InterfaceType.SOFTWARE_LOOPBACK,
    37: InterfaceType.FDDI,
    131: InterfaceType.TUNNEL,
}


class InterfaceStatus(Enum):
    """ifAdminStatus / ifOperStatus values."""
    UP = "UP"
    DOWN = "DOWN"
    TESTING = "TESTING"

    @classmethod
    def from_code(cls, code: Optional[int]) -> "InterfaceStatus":
        return _IF_STATUS_CODES.get(code, cls.DOWN)


_IF_STATUS_CODES = {
    1: InterfaceStatus.UP,
    2: InterfaceStatus.DOWN,
    3: InterfaceStatus.TESTING,
}


class UdpEntryStatus(Enum):
    OTHER = "OTHER"
    INVALID = "INVALID"
    VALID = "VALID"


# entPhysicalClass
PHYSICAL_CLASS_NAMES = {
    1: "other",
    2: "unknown",
    3: "chassis",
    4: "backplane",
    5: "container",
    6: "powerSupply",
    7: "fan",
    8: "sensor",
    9: "module",
    10: "port",
    11: "stack",
    12: "cpu",
}


def physical_class_name(code: Optional[int]) -> str:
    if code in PHYSICAL_CLASS_NAMES:
        return PHYSICAL_CLASS_NAMES[code]
    return f"unknown({code})"


@dataclass
class IndexedRecord:
    """
    One row of a polled table, unique per (device_id, index).

    Attributes:
        device_id: Owning device
        index: Table index within the device (ifIndex, entPhysicalIndex, ...)
        attributes: Values mirrored from the agent
        id: Store identifier, stable across polls
        created_at: When the record was first stored
        updated_at: When the record was last written
    """
    device_id: int
    index: int
    attributes: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class SingletonProfile:
    """
    At most one per device and kind, overwritten on every successful poll.
    """
    device_id: int
    kind: ProfileKind
    attributes: Dict[str, Any] = field(default_factory=dict)
    updated_at: Optional[datetime] = None
