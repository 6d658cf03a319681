"""
Lookup tables that classify notifications and map them onto alerts.
"""

import hashlib
from datetime import datetime
from typing import Optional, Tuple

from netmon.models.message import AlertType, Severity, TrapType
from netmon.snmp import oids

DEDUP_WINDOW_MS = 5 * 60 * 1000

GENERIC_TRAP_TYPES = {
    0: TrapType.COLD_START,
    1: TrapType.WARM_START,
    2: TrapType.LINK_DOWN,
    3: TrapType.LINK_UP,
    4: TrapType.AUTHENTICATION_FAILURE,
    5: TrapType.EGP_NEIGHBOR_LOSS,
    6: TrapType.ENTERPRISE_SPECIFIC,
}

# snmpTraps.N, identical meaning to v1 generic code N - 1
STANDARD_TRAP_OIDS = {
    f"{oids.SNMP_GENERIC_TRAPS}.{code + 1}": trap_type
    for code, trap_type in GENERIC_TRAP_TYPES.items()
    if code < 6
}

# Checked in order against the lower-cased identifier text
KEYWORD_TRAP_TYPES: Tuple[Tuple[Tuple[str, ...], TrapType], ...] = (
    (("temperature", "temp"), TrapType.TEMPERATURE_ALARM),
    (("fan",), TrapType.FAN_FAILURE),
    (("power",), TrapType.POWER_FAILURE),
    (("cpu",), TrapType.CPU_HIGH),
    (("memory", "mem"), TrapType.MEMORY_LOW),
    (("disk",), TrapType.DISK_FULL),
    (("interface", "port"), TrapType.INTERFACE_DOWN),
    (("config",), TrapType.CONFIGURATION_CHANGE),
    (("restart", "reboot"), TrapType.SYSTEM_RESTART),
)

TYPE_SEVERITY = {
    TrapType.COLD_START: Severity.CRITICAL,
    TrapType.WARM_START: Severity.CRITICAL,
    TrapType.DEVICE_DOWN: Severity.CRITICAL,
    TrapType.POWER_FAILURE: Severity.CRITICAL,
    TrapType.FAN_FAILURE: Severity.CRITICAL,
    TrapType.LINK_DOWN: Severity.MAJOR,
    TrapType.INTERFACE_DOWN: Severity.MAJOR,
    TrapType.SYSTEM_RESTART: Severity.MAJOR,
    TrapType.AUTHENTICATION_FAILURE: Severity.MAJOR,
    TrapType.TEMPERATURE_ALARM: Severity.MINOR,
    TrapType.CPU_HIGH: Severity.MINOR,
    TrapType.MEMORY_LOW: Severity.MINOR,
    TrapType.DISK_FULL: Severity.MINOR,
    TrapType.LINK_UP: Severity.WARNING,
    TrapType.INTERFACE_UP: Severity.WARNING,
    TrapType.DEVICE_UP: Severity.WARNING,
    TrapType.CONFIGURATION_CHANGE: Severity.WARNING,
    TrapType.EGP_NEIGHBOR_LOSS: Severity.WARNING,
    TrapType.THRESHOLD_EXCEEDED: Severity.WARNING,
}

TYPE_ALERT = {
    TrapType.COLD_START: AlertType.SYSTEM_UP,
    TrapType.WARM_START: AlertType.SYSTEM_UP,
    TrapType.SYSTEM_RESTART: AlertType.SYSTEM_UP,
    TrapType.LINK_DOWN: AlertType.INTERFACE_DOWN,
    TrapType.INTERFACE_DOWN: AlertType.INTERFACE_DOWN,
    TrapType.LINK_UP: AlertType.INTERFACE_UP,
    TrapType.INTERFACE_UP: AlertType.INTERFACE_UP,
    TrapType.DEVICE_DOWN: AlertType.DEVICE_DOWN,
    TrapType.DEVICE_UP: AlertType.DEVICE_UP,
    TrapType.AUTHENTICATION_FAILURE: AlertType.CONNECTIVITY,
    TrapType.TEMPERATURE_ALARM: AlertType.SYSTEM_DOWN,
    TrapType.FAN_FAILURE: AlertType.SYSTEM_DOWN,
    TrapType.POWER_FAILURE: AlertType.SYSTEM_DOWN,
    TrapType.CPU_HIGH: AlertType.PERFORMANCE,
    TrapType.MEMORY_LOW: AlertType.PERFORMANCE,
    TrapType.CONFIGURATION_CHANGE: AlertType.CONFIGURATION_CHANGED,
}

TYPE_DESCRIPTION = {
    TrapType.COLD_START: "Device cold start detected",
    TrapType.WARM_START: "Device warm start detected",
    TrapType.LINK_DOWN: "Network link down",
    TrapType.LINK_UP: "Network link up",
    TrapType.INTERFACE_DOWN: "Interface down",
    TrapType.INTERFACE_UP: "Interface up",
    TrapType.DEVICE_DOWN: "Device is down",
    TrapType.DEVICE_UP: "Device is up",
    TrapType.AUTHENTICATION_FAILURE: "SNMP authentication failure",
    TrapType.EGP_NEIGHBOR_LOSS: "EGP neighbor loss",
    TrapType.TEMPERATURE_ALARM: "Temperature alarm",
    TrapType.FAN_FAILURE: "Fan failure detected",
    TrapType.POWER_FAILURE: "Power failure detected",
    TrapType.CPU_HIGH: "High CPU utilization",
    TrapType.MEMORY_LOW: "Low memory condition",
    TrapType.DISK_FULL: "Disk space full",
    TrapType.CONFIGURATION_CHANGE: "Configuration change detected",
    TrapType.SYSTEM_RESTART: "System restart detected",
    TrapType.THRESHOLD_EXCEEDED: "Threshold exceeded",
}

ALERT_THRESHOLD = Severity.MINOR


def compute_hash_key(source_ip: str, trap_oid: str, when: datetime) -> str:
    """md5 of source, identifier and the 5-minute bucket ``when`` falls in."""
    bucket = int(when.timestamp() * 1000) // DEDUP_WINDOW_MS
    return hashlib.md5(f"{source_ip}:{trap_oid}:{bucket}".encode("utf-8")).hexdigest()


def classify_type(trap_oid: Optional[str], generic_trap: Optional[int] = None) -> TrapType:
    """
    Classify a notification.

    v1 generic codes win; otherwise the identifier is matched against the
    standard snmpTraps OIDs, then keyword heuristics.
    """
    if generic_trap is not None and generic_trap in GENERIC_TRAP_TYPES:
        return GENERIC_TRAP_TYPES[generic_trap]

    if not trap_oid:
        return TrapType.UNKNOWN

    for standard_oid, trap_type in STANDARD_TRAP_OIDS.items():
        if oids.is_under(trap_oid, standard_oid):
            return trap_type

    text = trap_oid.lower()
    for keywords, trap_type in KEYWORD_TRAP_TYPES:
        if any(keyword in text for keyword in keywords):
            return trap_type

    return TrapType.UNKNOWN


def classify_severity(trap_type: TrapType) -> Severity:
    return TYPE_SEVERITY.get(trap_type, Severity.INFO)


def alert_type_for(trap_type: TrapType) -> AlertType:
    return TYPE_ALERT.get(trap_type, AlertType.CONNECTIVITY)


def describe(trap_type: TrapType) -> str:
    return TYPE_DESCRIPTION.get(trap_type, "SNMP trap received")


def requires_alert(severity: Severity) -> bool:
    """Alerts are raised for MINOR and worse."""
    return severity.at_least(ALERT_THRESHOLD)
