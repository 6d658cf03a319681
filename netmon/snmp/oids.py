"""
Numeric OIDs used by the pollers, the trap receiver and discovery.
"""

# SNMPv2-MIB system group
SYS_DESCR = "1.3.6.1.2.1.1.1.0"
SYS_OBJECT_ID = "1.3.6.1.2.1.1.2.0"
SYS_UPTIME = "1.3.6.1.2.1.1.3.0"
SYS_CONTACT = "1.3.6.1.2.1.1.4.0"
SYS_NAME = "1.3.6.1.2.1.1.5.0"
SYS_LOCATION = "1.3.6.1.2.1.1.6.0"
SYS_SERVICES = "1.3.6.1.2.1.1.7.0"

# HOST-RESOURCES-MIB hrSystem group
HR_SYSTEM = "1.3.6.1.2.1.25.1"

# IF-MIB ifTable
IF_TABLE_ENTRY = "1.3.6.1.2.1.2.2.1"
IF_INDEX = IF_TABLE_ENTRY + ".1"

# ENTITY-MIB entPhysicalTable
ENT_PHYSICAL_ENTRY = "1.3.6.1.2.1.47.1.1.1.1"
ENT_PHYSICAL_CLASS = ENT_PHYSICAL_ENTRY + ".5"

# IP-MIB
IP_GROUP = "1.3.6.1.2.1.4"
IP_FORWARDING = IP_GROUP + ".1.0"
IP_AD_ENT_NET_MASK = IP_GROUP + ".20.1.3"
IP_ROUTE_NEXT_HOP = IP_GROUP + ".21.1.7"
IP_NET_TO_MEDIA_PHYS_ADDRESS = IP_GROUP + ".22.1.2"

# ICMP and UDP groups
ICMP_GROUP = "1.3.6.1.2.1.5"
UDP_GROUP = "1.3.6.1.2.1.7"
UDP_LOCAL_ADDRESS = UDP_GROUP + ".5.1.1"

# SNMPv2 notification plumbing
SNMP_TRAP_OID = "1.3.6.1.6.3.1.1.4.1.0"
SNMP_TRAP_ENTERPRISE = "1.3.6.1.6.3.1.1.4.3.0"
SNMP_GENERIC_TRAPS = "1.3.6.1.6.3.1.1.5"

# LLDP-MIB
LLDP_LOC_PORT_DESC = "1.0.8802.1.1.2.1.3.7.1.4"
LLDP_REM_PORT_ID = "1.0.8802.1.1.2.1.4.1.1.7"
LLDP_REM_SYS_NAME = "1.0.8802.1.1.2.1.4.1.1.9"
LLDP_REM_MAN_ADDR_IF_SUBTYPE = "1.0.8802.1.1.2.1.4.2.1.3"

# CISCO-CDP-MIB cdpCacheTable
CDP_CACHE_ADDRESS = "1.3.6.1.4.1.9.9.23.1.2.1.1.4"
CDP_CACHE_DEVICE_ID = "1.3.6.1.4.1.9.9.23.1.2.1.1.6"
CDP_CACHE_DEVICE_PORT = "1.3.6.1.4.1.9.9.23.1.2.1.1.7"


def is_under(oid: str, root: str) -> bool:
    """True if ``oid`` equals ``root`` or lies in its subtree."""
    return oid == root or oid.startswith(root + ".")


def index_suffix(oid: str, root: str) -> str:
    """Return the instance part of ``oid`` below ``root`` ('' if none)."""
    if not is_under(oid, root):
        raise ValueError(f"{oid} is not under {root}")
    return oid[len(root) + 1:]
