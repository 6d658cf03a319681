"""
Protocol probes used by discovery: device details and neighbor tables.
"""

import ipaddress
import logging
import re
from typing import Any, Dict, List, Optional, Set

from netmon.models.device import DeviceEndpoint
from netmon.models.topology import (
    ConnectionType, DeviceType, DiscoveryRequest, Neighbor, TopologyNode,
)
from netmon.snmp import oids
from netmon.snmp.client import SNMPClient
from netmon.snmp.parsers import parse_hex_ip, parse_hex_string

logger = logging.getLogger(__name__)

DETAIL_OIDS = [oids.SYS_DESCR, oids.SYS_OBJECT_ID, oids.SYS_NAME, oids.SYS_SERVICES]

# Checked in order against the lower-cased sysDescr
VENDOR_PATTERNS = (
    (re.compile(r"cisco"), "Cisco"),
    (re.compile(r"juniper|junos"), "Juniper"),
    (re.compile(r"arista"), "Arista"),
    (re.compile(r"mikrotik|routeros"), "MikroTik"),
    (re.compile(r"fortinet|fortigate"), "Fortinet"),
    (re.compile(r"palo alto|pan-os"), "Palo Alto Networks"),
    (re.compile(r"hewlett|procurve|aruba|\bhp\b"), "HPE"),
    (re.compile(r"dell|powerconnect"), "Dell"),
    (re.compile(r"ubiquiti|edgeos|unifi"), "Ubiquiti"),
    (re.compile(r"huawei"), "Huawei"),
    (re.compile(r"netgear"), "Netgear"),
    (re.compile(r"linux"), "Linux"),
    (re.compile(r"windows"), "Microsoft"),
)

DESCR_DEVICE_TYPES = (
    (("firewall", "fortigate", "pan-os", "adaptive security appliance"), DeviceType.FIREWALL),
    (("access point", "wireless", "aironet"), DeviceType.WIRELESS_ACCESS_POINT),
    (("printer", "laserjet", "jetdirect"), DeviceType.PRINTER),
    (("windows server", "linux", "freebsd", "vmware"), DeviceType.SERVER),
    (("windows",), DeviceType.WORKSTATION),
)

# sysServices layer bits (RFC 1213): 2 = datalink, 4 = internet
SERVICES_LAYER2 = 0x02
SERVICES_LAYER3 = 0x04


def detect_vendor(sys_descr: Optional[str]) -> Optional[str]:
    if not sys_descr:
        return None
    text = sys_descr.lower()
    for pattern, vendor in VENDOR_PATTERNS:
        if pattern.search(text):
            return vendor
    return None


def infer_device_type(
    sys_descr: Optional[str],
    sys_services: Optional[int],
    ip_forwarding: Optional[int]
) -> DeviceType:
    """
    Infer a device type.

    Description keywords for firewalls, access points, printers and hosts
    win; otherwise ipForwarding=1 or the sysServices layer-3 bit means
    router and the layer-2 bit means switch.
    """
    text = (sys_descr or "").lower()
    for keywords, device_type in DESCR_DEVICE_TYPES:
        if any(keyword in text for keyword in keywords):
            return device_type

    services = sys_services if isinstance(sys_services, int) else 0
    if ip_forwarding == 1 or services & SERVICES_LAYER3:
        return DeviceType.ROUTER
    if services & SERVICES_LAYER2:
        return DeviceType.SWITCH
    return DeviceType.UNKNOWN


def decode_address(value: Any) -> Optional[str]:
    """Decode an address column that may arrive as dotted text or hex octets."""
    if value is None:
        return None
    text = parse_hex_ip(value)
    try:
        return str(ipaddress.ip_address(text))
    except ValueError:
        return None


def decode_text(value: Any) -> Optional[str]:
    return parse_hex_string(value)


class DeviceProber:
    """Probes one address for device details and neighbor sets."""

    def __init__(self, client: SNMPClient, max_entries: int = 100):
        self.client = client
        self.max_entries = max_entries

    @staticmethod
    def endpoint_for(address: str, request: DiscoveryRequest) -> DeviceEndpoint:
        return DeviceEndpoint(
            address=address,
            port=request.port,
            version=request.version,
            credential=request.credential,
            timeout=request.timeout,
            retries=request.retries,
        )

    async def probe_device(self, address: str, request: DiscoveryRequest) -> Optional[TopologyNode]:
        """
        Fetch system details for ``address``.

        Returns:
            A populated node, or None when the agent does not answer
        """
        endpoint = self.endpoint_for(address, request)
        details = await self.client.get_multiple(endpoint, DETAIL_OIDS)
        if not details:
            return None

        sys_descr = details.get(oids.SYS_DESCR)
        sys_services = details.get(oids.SYS_SERVICES)
        ip_forwarding = await self.client.get(endpoint, oids.IP_FORWARDING)

        return TopologyNode(
            ip=address,
            name=details.get(oids.SYS_NAME),
            device_type=infer_device_type(sys_descr, sys_services, ip_forwarding),
            sys_descr=sys_descr,
            sys_object_id=details.get(oids.SYS_OBJECT_ID),
            vendor=detect_vendor(sys_descr),
            reachable=True,
            attributes={"sys_services": sys_services, "ip_forwarding": ip_forwarding},
        )

    async def layer2_neighbors(self, address: str, request: DiscoveryRequest) -> List[Neighbor]:
        """LLDP remote table entries plus the CDP cache."""
        endpoint = self.endpoint_for(address, request)
        neighbors = await self._lldp_neighbors(endpoint)
        neighbors.extend(await self._cdp_neighbors(endpoint))
        return neighbors

    async def _lldp_neighbors(self, endpoint: DeviceEndpoint) -> List[Neighbor]:
        # remote tables are indexed by timeMark.localPortNum.remIndex
        names = await self.client.walk(endpoint, oids.LLDP_REM_SYS_NAME, self.max_entries)
        if not names:
            return []
        port_ids = await self.client.walk(endpoint, oids.LLDP_REM_PORT_ID, self.max_entries)
        man_addrs = await self.client.walk(endpoint, oids.LLDP_REM_MAN_ADDR_IF_SUBTYPE, self.max_entries)
        local_ports = await self.client.walk(endpoint, oids.LLDP_LOC_PORT_DESC, self.max_entries)

        # management address index: timeMark.localPort.remIndex.subtype.len.a.b.c.d
        addresses: Dict[str, str] = {}
        for oid in man_addrs:
            parts = oids.index_suffix(oid, oids.LLDP_REM_MAN_ADDR_IF_SUBTYPE).split(".")
            if len(parts) >= 9 and parts[3] == "1" and parts[4] == "4":
                addresses[".".join(parts[:3])] = ".".join(parts[5:9])

        neighbors = []
        for oid, name in names.items():
            key = oids.index_suffix(oid, oids.LLDP_REM_SYS_NAME)
            local_port = key.split(".")[1] if "." in key else None
            neighbors.append(Neighbor(
                address=addresses.get(key),
                connection_type=ConnectionType.LAYER2,
                protocol="LLDP",
                name=decode_text(name),
                local_interface=decode_text(local_ports.get(f"{oids.LLDP_LOC_PORT_DESC}.{local_port}")),
                remote_interface=decode_text(port_ids.get(f"{oids.LLDP_REM_PORT_ID}.{key}")),
            ))
        return neighbors

    async def _cdp_neighbors(self, endpoint: DeviceEndpoint) -> List[Neighbor]:
        # cdpCacheTable is indexed by ifIndex.deviceIndex
        cache_addresses = await self.client.walk(endpoint, oids.CDP_CACHE_ADDRESS, self.max_entries)
        if not cache_addresses:
            return []
        device_ids = await self.client.walk(endpoint, oids.CDP_CACHE_DEVICE_ID, self.max_entries)
        device_ports = await self.client.walk(endpoint, oids.CDP_CACHE_DEVICE_PORT, self.max_entries)

        neighbors = []
        for oid, raw_address in cache_addresses.items():
            key = oids.index_suffix(oid, oids.CDP_CACHE_ADDRESS)
            neighbors.append(Neighbor(
                address=decode_address(raw_address),
                connection_type=ConnectionType.LAYER2,
                protocol="CDP",
                name=decode_text(device_ids.get(f"{oids.CDP_CACHE_DEVICE_ID}.{key}")),
                local_interface=key.split(".")[0],
                remote_interface=decode_text(device_ports.get(f"{oids.CDP_CACHE_DEVICE_PORT}.{key}")),
            ))
        return neighbors

    async def layer3_neighbors(
        self,
        address: str,
        request: DiscoveryRequest,
        own_addresses: Optional[Set[str]] = None
    ) -> List[Neighbor]:
        """Distinct routing next hops, excluding 0.0.0.0 and the device's own addresses."""
        endpoint = self.endpoint_for(address, request)
        next_hops = await self.client.walk(endpoint, oids.IP_ROUTE_NEXT_HOP, self.max_entries)
        excluded = {"0.0.0.0", address} | (own_addresses or set())

        seen: Set[str] = set()
        neighbors = []
        for value in next_hops.values():
            hop = decode_address(value)
            if hop is None or hop in excluded or hop in seen:
                continue
            seen.add(hop)
            neighbors.append(Neighbor(
                address=hop,
                connection_type=ConnectionType.LAYER3,
                protocol="ROUTE",
            ))
        return neighbors
