"""
Singleton profile pollers: system info, IP, ICMP and UDP statistics.
"""

import ipaddress
import logging
from datetime import datetime, UTC
from typing import Any, Dict

from netmon.models.device import Device
from netmon.models.records import ProfileKind, RecordKind, UdpEntryStatus
from netmon.polling.pollers.base import ScalarProfilePoller
from netmon.snmp import oids
from netmon.snmp.parsers import parse_hex_string, to_int, truncate

logger = logging.getLogger(__name__)


class SystemInfoPoller(ScalarProfilePoller):
    """SNMPv2-MIB system group plus HOST-RESOURCES hrSystem when available."""

    name = "system info"
    kind = ProfileKind.SYSTEM_INFO
    group_oid = "1.3.6.1.2.1.1"
    FIELDS = {
        1: "sys_descr",
        2: "sys_object_id",
        3: "sys_uptime",
        4: "sys_contact",
        5: "sys_name",
        6: "sys_location",
        7: "sys_services",
    }

    HR_FIELDS = {
        1: "hr_system_uptime",
        2: "hr_system_date",
        3: "hr_system_initial_load_device",
        4: "hr_system_initial_load_parameters",
        5: "hr_system_num_users",
        6: "hr_system_processes",
        7: "hr_system_max_processes",
    }

    TEXT_LIMITS = {
        "sys_descr": 1000,
        "sys_contact": 255,
        "sys_name": 255,
        "sys_location": 255,
        "hr_system_initial_load_parameters": 255,
    }

    async def build_attributes(self, device: Device, scalars: Dict[str, Any]) -> Dict[str, Any]:
        attributes = dict(scalars)

        # Host resources are optional; fetched separately so their absence
        # cannot void the system group
        hr_map = {f"{oids.HR_SYSTEM}.{sub_id}.0": name for sub_id, name in self.HR_FIELDS.items()}
        hr_values = await self.client.get_multiple(device.endpoint, list(hr_map))
        for oid, name in hr_map.items():
            attributes[name] = hr_values.get(oid)

        for name, limit in self.TEXT_LIMITS.items():
            if attributes.get(name) is not None:
                attributes[name] = truncate(parse_hex_string(attributes[name]), limit, name, device.address)

        attributes["last_polled"] = datetime.now(UTC).isoformat()
        return attributes


class IpProfilePoller(ScalarProfilePoller):
    """IP-MIB ip group scalars."""

    name = "IP profile"
    kind = ProfileKind.IP
    group_oid = oids.IP_GROUP
    FIELDS = {
        1: "ip_forwarding",
        2: "ip_default_ttl",
        3: "ip_in_receives",
        4: "ip_in_hdr_errors",
        5: "ip_in_addr_errors",
        6: "ip_forw_datagrams",
        7: "ip_in_unknown_protos",
        8: "ip_in_discards",
        9: "ip_in_delivers",
        10: "ip_out_requests",
        11: "ip_out_discards",
        12: "ip_out_no_routes",
        13: "ip_reasm_timeout",
        14: "ip_reasm_reqds",
        15: "ip_reasm_oks",
        16: "ip_reasm_fails",
        17: "ip_frag_oks",
        18: "ip_frag_fails",
        19: "ip_frag_creates",
        23: "ip_routing_discards",
    }

    async def build_attributes(self, device: Device, scalars: Dict[str, Any]) -> Dict[str, Any]:
        attributes = dict(scalars)
        # ipForwarding: 1 = forwarding, 2 = notForwarding
        attributes["ip_forwarding"] = to_int(scalars.get("ip_forwarding")) == 1
        attributes["ip_address"] = device.address
        attributes["subnet_mask"] = None
        attributes["broadcast_address"] = None

        mask = await self.client.get(device.endpoint, f"{oids.IP_AD_ENT_NET_MASK}.{device.address}")
        if mask:
            try:
                network = ipaddress.IPv4Network(f"{device.address}/{mask}", strict=False)
            except ValueError:
                logger.warning(f"Ignoring invalid netmask {mask!r} reported by {device.address}")
            else:
                attributes["subnet_mask"] = str(mask)
                attributes["broadcast_address"] = str(network.broadcast_address)
        return attributes


class IcmpProfilePoller(ScalarProfilePoller):
    """IP-MIB icmp group scalars."""

    name = "ICMP profile"
    kind = ProfileKind.ICMP
    group_oid = oids.ICMP_GROUP
    FIELDS = {
        1: "icmp_in_msgs",
        2: "icmp_in_errors",
        3: "icmp_in_dest_unreachs",
        4: "icmp_in_time_excds",
        5: "icmp_in_parm_probs",
        6: "icmp_in_src_quenchs",
        7: "icmp_in_redirects",
        8: "icmp_in_echos",
        9: "icmp_in_echo_reps",
        10: "icmp_in_timestamps",
        11: "icmp_in_timestamp_reps",
        12: "icmp_in_addr_masks",
        13: "icmp_in_addr_mask_reps",
        14: "icmp_out_msgs",
        15: "icmp_out_errors",
        16: "icmp_out_dest_unreachs",
        17: "icmp_out_time_excds",
        18: "icmp_out_parm_probs",
        19: "icmp_out_src_quenchs",
        20: "icmp_out_redirects",
        21: "icmp_out_echos",
        22: "icmp_out_echo_reps",
        23: "icmp_out_timestamps",
        24: "icmp_out_timestamp_reps",
        25: "icmp_out_addr_masks",
        26: "icmp_out_addr_mask_reps",
    }


def udp_listener_index(address: str, port: int) -> int:
    """Pack an IPv4 listener address and port into one integer index."""
    return int(ipaddress.IPv4Address(address)) << 16 | port


class UdpProfilePoller(ScalarProfilePoller):
    """
    UDP-MIB scalars plus the udpTable listener entries.

    Listener entries are indexed records; the profile mirrors the first
    listener's local address and port.
    """

    name = "UDP profile"
    kind = ProfileKind.UDP
    group_oid = oids.UDP_GROUP
    FIELDS = {
        1: "udp_in_datagrams",
        2: "udp_no_ports",
        3: "udp_in_errors",
        4: "udp_out_datagrams",
    }

    def _parse_listeners(self, table: Dict[str, Any]) -> Dict[int, Dict[str, Any]]:
        listeners = {}
        for oid in table:
            parts = oids.index_suffix(oid, oids.UDP_LOCAL_ADDRESS).split(".")
            if len(parts) != 5:
                continue
            address = ".".join(parts[:4])
            try:
                port = int(parts[4])
                index = udp_listener_index(address, port)
            except ValueError:
                logger.debug(f"Skipping malformed udpTable index {oid}")
                continue
            listeners[index] = {
                "local_address": address,
                "local_port": port,
                "status": UdpEntryStatus.VALID.value,
            }
        return listeners

    async def build_attributes(self, device: Device, scalars: Dict[str, Any]) -> Dict[str, Any]:
        attributes = dict(scalars)
        table = await self.client.walk(device.endpoint, oids.UDP_LOCAL_ADDRESS, self.max_entries)
        listeners = self._parse_listeners(table)

        async def apply(record):
            record.attributes = dict(listeners[record.index])

        if listeners:
            await self.reconciler.reconcile(RecordKind.UDP_LISTENER, device.id, listeners.keys(), apply)
        else:
            logger.warning(f"No udpTable entries returned by {device.address}, keeping stored listeners")

        first = next(iter(listeners.values()), None)
        attributes["local_address"] = first["local_address"] if first else "0.0.0.0"
        attributes["local_port"] = first["local_port"] if first else 0
        attributes["entry_status"] = (first["status"] if first else UdpEntryStatus.INVALID.value)
        attributes["listener_count"] = len(listeners)
        return attributes
