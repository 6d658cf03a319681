"""
Generic upsert and stale-delete of polled records.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from netmon.models.records import IndexedRecord, ProfileKind, RecordKind, SingletonProfile
from netmon.storage.store import Store

logger = logging.getLogger(__name__)

RecordUpdater = Callable[[IndexedRecord], Awaitable[None]]


@dataclass
class ReconcileResult:
    created: int = 0
    updated: int = 0
    deleted: int = 0


class RecordReconciler:
    """
    Turns a freshly walked index set into stored records.

    Phase one fetches or creates the record for every index and applies the
    caller's field updates. Phase two deletes every stored index for the
    device that the walk no longer reports.
    """

    def __init__(self, store: Store):
        self.store = store

    async def reconcile(
        self,
        kind: RecordKind,
        device_id: int,
        indices: Iterable[int],
        update: RecordUpdater
    ) -> ReconcileResult:
        """
        Upsert one record per index, then delete stale records.

        Args:
            kind: Record table
            device_id: Owning device
            indices: Indices reported by the latest walk
            update: Coroutine that fills a record's attributes in place

        Returns:
            Counts of created, updated and deleted records
        """
        result = ReconcileResult()
        fresh = list(dict.fromkeys(indices))
        if not fresh:
            # an empty walk means the agent did not answer, not that the table is empty
            logger.debug(f"No {kind.value} indices for device {device_id}, keeping stored records")
            return result
        to_save = []

        for index in fresh:
            record = await self.store.find_by_device_and_index(kind, device_id, index)
            if record is None:
                record = IndexedRecord(device_id=device_id, index=index)
                result.created += 1
            else:
                result.updated += 1
            await update(record)
            to_save.append(record)

        if to_save:
            await self.store.save_or_update(kind, to_save)

        fresh_set = set(fresh)
        stale = [
            record for record in await self.store.find_all_by_device(kind, device_id)
            if record.index not in fresh_set
        ]
        if stale:
            result.deleted = await self.store.delete_many(kind, stale)
            logger.info(f"Removed {result.deleted} stale {kind.value} records for device {device_id}: "
                        f"{sorted(r.index for r in stale)}")

        logger.debug(f"Reconciled {kind.value} for device {device_id}: {result}")
        return result

    async def reconcile_profile(
        self,
        kind: ProfileKind,
        device_id: int,
        attributes: Dict[str, Any]
    ) -> SingletonProfile:
        """
        Create or overwrite the singleton profile of a device. Never deletes.
        """
        profile: Optional[SingletonProfile] = await self.store.find_profile(kind, device_id)
        if profile is None:
            profile = SingletonProfile(device_id=device_id, kind=kind)
        profile.attributes = dict(attributes)
        return await self.store.save_profile(profile)
