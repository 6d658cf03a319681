"""
ENTITY-MIB physical unit poller.
"""

import logging
from typing import Any, Dict, List

from netmon.models.device import Device
from netmon.models.records import IndexedRecord, RecordKind, physical_class_name
from netmon.polling.pollers.base import DomainPoller
from netmon.snmp import oids
from netmon.snmp.parsers import parse_hex_string, to_int, truncate

logger = logging.getLogger(__name__)

TEXT_LIMIT = 255
DESCRIPTION_LIMIT = 1000

# entPhysicalEntry column -> attribute name
COLUMNS = {
    2: "description",
    3: "vendor_type",
    5: "physical_class",
    7: "name",
    8: "hardware_rev",
    9: "firmware_rev",
    10: "software_rev",
    11: "serial_number",
    12: "manufacturer",
    13: "model_name",
    14: "alias",
    15: "asset_id",
    16: "is_fru",
}

TEXT_FIELDS = (
    "name", "hardware_rev", "firmware_rev", "software_rev",
    "serial_number", "manufacturer", "model_name", "alias", "asset_id",
)


class SystemUnitPoller(DomainPoller):
    """
    Physical inventory (chassis, modules, fans, power supplies, ...).

    entPhysicalIndex is not-accessible, so indices come from the instance
    suffix of the entPhysicalClass column.
    """

    name = "system units"

    async def fetch_indices(self, device: Device) -> List[int]:
        table = await self.client.walk(device.endpoint, oids.ENT_PHYSICAL_CLASS, self.max_entries)
        indices = []
        for oid in table:
            index = to_int(oids.index_suffix(oid, oids.ENT_PHYSICAL_CLASS))
            if index is not None and index > 0:
                indices.append(index)
        return indices

    def map_values(self, device: Device, index: int, values: Dict[str, Any]) -> Dict[str, Any]:
        raw = {name: values.get(f"{oids.ENT_PHYSICAL_ENTRY}.{column}.{index}")
               for column, name in COLUMNS.items()}
        context = f"{device.address} entPhysicalIndex {index}"

        attributes = dict(raw)
        attributes["unit_index"] = index
        attributes["description"] = truncate(
            parse_hex_string(raw["description"]), DESCRIPTION_LIMIT, "description", context
        )
        for field in TEXT_FIELDS:
            attributes[field] = truncate(parse_hex_string(raw[field]), TEXT_LIMIT, field, context)

        class_code = to_int(raw["physical_class"])
        attributes["physical_class"] = class_code
        attributes["class_name"] = physical_class_name(class_code)
        # TruthValue: 1 = true, 2 = false
        attributes["is_fru"] = to_int(raw["is_fru"]) == 1
        return attributes

    async def poll(self, device: Device) -> None:
        indices = await self.fetch_indices(device)
        if not indices:
            logger.warning(f"No physical units returned by {device.address}")
            return

        async def apply(record: IndexedRecord) -> None:
            column_oids = [f"{oids.ENT_PHYSICAL_ENTRY}.{column}.{record.index}" for column in COLUMNS]
            values = await self.client.get_multiple(device.endpoint, column_oids)
            if not values:
                logger.warning(f"No data for {device.address} entPhysicalIndex {record.index}")
                return
            record.attributes = self.map_values(device, record.index, values)

        result = await self.reconciler.reconcile(RecordKind.SYSTEM_UNIT, device.id, indices, apply)
        logger.info(f"Polled {len(indices)} physical units on {device.address} "
                    f"({result.created} new, {result.deleted} removed)")
