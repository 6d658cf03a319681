"""
Base classes for per-domain pollers.
"""

import abc
import logging
from typing import Any, Dict

from netmon.models.device import Device
from netmon.models.records import ProfileKind
from netmon.polling.reconciler import RecordReconciler
from netmon.snmp.client import SNMPClient, DEFAULT_MAX_ENTRIES

logger = logging.getLogger(__name__)


class DomainPoller(abc.ABC):
    """
    Extracts one domain of data from a device and stores it.

    Pollers may raise; the orchestrator isolates each domain so a failure
    here does not stop the other domains of the same cycle.
    """

    name = "domain"

    def __init__(
        self,
        client: SNMPClient,
        reconciler: RecordReconciler,
        max_entries: int = DEFAULT_MAX_ENTRIES
    ):
        """
        Args:
            client: Protocol client used for fetches and walks
            reconciler: Record reconciler bound to the store
            max_entries: Bound on index-table walks
        """
        self.client = client
        self.reconciler = reconciler
        self.max_entries = max_entries

    @abc.abstractmethod
    async def poll(self, device: Device) -> None:
        """Poll ``device`` and persist the results."""
        pass


class ScalarProfilePoller(DomainPoller):
    """
    Poller for a MIB group of ``.0`` scalars stored as a singleton profile.

    Subclasses set ``kind``, ``group_oid`` and ``FIELDS`` (sub-identifier
    to attribute name) and may post-process in ``build_attributes``.
    """

    kind: ProfileKind
    group_oid: str
    FIELDS: Dict[int, str] = {}

    def scalar_oids(self) -> Dict[str, str]:
        return {f"{self.group_oid}.{sub_id}.0": name for sub_id, name in self.FIELDS.items()}

    async def fetch_scalars(self, device: Device) -> Dict[str, Any]:
        oid_map = self.scalar_oids()
        values = await self.client.get_multiple(device.endpoint, list(oid_map))
        if not values:
            return {}
        return {name: values.get(oid) for oid, name in oid_map.items()}

    async def build_attributes(self, device: Device, scalars: Dict[str, Any]) -> Dict[str, Any]:
        return scalars

    async def poll(self, device: Device) -> None:
        scalars = await self.fetch_scalars(device)
        if not scalars:
            logger.warning(f"No {self.name} data returned by {device.address}")
            return

        attributes = await self.build_attributes(device, scalars)
        await self.reconciler.reconcile_profile(self.kind, device.id, attributes)
        logger.debug(f"Updated {self.name} profile for {device.address}")
