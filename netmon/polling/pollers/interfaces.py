"""
IF-MIB interface table poller.
"""

import logging
from typing import Any, Dict, List

from netmon.models.device import Device
from netmon.models.records import IndexedRecord, InterfaceStatus, InterfaceType, RecordKind
from netmon.polling.pollers.base import DomainPoller
from netmon.snmp import oids
from netmon.snmp.parsers import format_mac_address, parse_hex_string, to_int, truncate

logger = logging.getLogger(__name__)

DESCRIPTION_LIMIT = 1000
MAC_ADDRESS_LIMIT = 500

# ifEntry column -> attribute name
COLUMNS = {
    2: "description",
    3: "if_type",
    4: "mtu",
    5: "speed",
    6: "mac_address",
    7: "admin_status",
    8: "oper_status",
    9: "last_change",
    10: "in_octets",
    11: "in_ucast_pkts",
    13: "in_discards",
    14: "in_errors",
    16: "out_octets",
    17: "out_ucast_pkts",
    19: "out_discards",
    20: "out_errors",
}


class InterfacePoller(DomainPoller):
    """Walks ifIndex, then fetches each interface's columns in one round trip."""

    name = "interfaces"

    async def fetch_indices(self, device: Device) -> List[int]:
        table = await self.client.walk(device.endpoint, oids.IF_INDEX, self.max_entries)
        indices = []
        for value in table.values():
            index = to_int(value)
            if index is not None and index > 0:
                indices.append(index)
        return indices

    def map_values(self, device: Device, index: int, values: Dict[str, Any]) -> Dict[str, Any]:
        raw = {name: values.get(f"{oids.IF_TABLE_ENTRY}.{column}.{index}")
               for column, name in COLUMNS.items()}
        context = f"{device.address} ifIndex {index}"

        attributes = dict(raw)
        attributes["if_index"] = index
        attributes["description"] = truncate(
            parse_hex_string(raw["description"]), DESCRIPTION_LIMIT, "description", context
        )
        attributes["mac_address"] = truncate(
            format_mac_address(raw["mac_address"]), MAC_ADDRESS_LIMIT, "mac_address", context
        )
        attributes["if_type"] = InterfaceType.from_code(to_int(raw["if_type"])).value
        attributes["admin_status"] = InterfaceStatus.from_code(to_int(raw["admin_status"])).value
        attributes["oper_status"] = InterfaceStatus.from_code(to_int(raw["oper_status"])).value
        return attributes

    async def poll(self, device: Device) -> None:
        indices = await self.fetch_indices(device)
        if not indices:
            logger.warning(f"No interfaces returned by {device.address}")
            return

        async def apply(record: IndexedRecord) -> None:
            column_oids = [f"{oids.IF_TABLE_ENTRY}.{column}.{record.index}" for column in COLUMNS]
            values = await self.client.get_multiple(device.endpoint, column_oids)
            if not values:
                logger.warning(f"No data for {device.address} ifIndex {record.index}, keeping previous values")
                return
            record.attributes = self.map_values(device, record.index, values)

        result = await self.reconciler.reconcile(RecordKind.INTERFACE, device.id, indices, apply)
        logger.info(f"Polled {len(indices)} interfaces on {device.address} "
                    f"({result.created} new, {result.deleted} removed)")
