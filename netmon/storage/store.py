"""
Store contract consumed by the pollers, the event processor and discovery,
plus its SQLite implementation.
"""

import abc
import json
import logging
from datetime import datetime, UTC
from typing import Iterable, List, Optional

from netmon.models.credentials import SNMPCredential, SNMPVersion
from netmon.models.device import Device, DeviceEndpoint, PollStatus
from netmon.models.message import Alert, AlertStatus, AlertType, Severity, TrapEvent, TrapType
from netmon.models.records import IndexedRecord, ProfileKind, RecordKind, SingletonProfile
from netmon.models.topology import DiscoveryRun
from netmon.storage.database import Database

logger = logging.getLogger(__name__)


class Store(abc.ABC):
    """Persistence operations the monitoring core depends on."""

    # Devices

    @abc.abstractmethod
    async def save_device(self, device: Device) -> Device:
        """Insert or update a device, assigning ``device.id`` on insert."""

    @abc.abstractmethod
    async def find_device(self, device_id: int) -> Optional[Device]:
        pass

    @abc.abstractmethod
    async def find_device_by_address(self, address: str) -> Optional[Device]:
        pass

    @abc.abstractmethod
    async def list_devices(self) -> List[Device]:
        pass

    # Indexed records

    @abc.abstractmethod
    async def find_by_device_and_index(
        self, kind: RecordKind, device_id: int, index: int
    ) -> Optional[IndexedRecord]:
        pass

    @abc.abstractmethod
    async def find_all_by_device(self, kind: RecordKind, device_id: int) -> List[IndexedRecord]:
        pass

    @abc.abstractmethod
    async def save_or_update(self, kind: RecordKind, records: List[IndexedRecord]) -> List[IndexedRecord]:
        """Persist records, keyed by (device_id, index). Assigns ids to new records."""

    @abc.abstractmethod
    async def delete_many(self, kind: RecordKind, records: Iterable[IndexedRecord]) -> int:
        pass

    # Singleton profiles

    @abc.abstractmethod
    async def find_profile(self, kind: ProfileKind, device_id: int) -> Optional[SingletonProfile]:
        pass

    @abc.abstractmethod
    async def save_profile(self, profile: SingletonProfile) -> SingletonProfile:
        pass

    # Trap events and alerts

    @abc.abstractmethod
    async def find_event_by_hash_key(self, hash_key: str) -> Optional[TrapEvent]:
        pass

    @abc.abstractmethod
    async def save_event(self, event: TrapEvent) -> TrapEvent:
        pass

    @abc.abstractmethod
    async def list_events(self, limit: int = 100) -> List[TrapEvent]:
        pass

    @abc.abstractmethod
    async def save_alert(self, alert: Alert) -> Alert:
        pass

    @abc.abstractmethod
    async def find_recent_alert(self, alert_key: str, since: datetime) -> Optional[Alert]:
        """Most recent open alert with ``alert_key`` created at or after ``since``."""

    @abc.abstractmethod
    async def list_alerts(self, limit: int = 100) -> List[Alert]:
        pass

    # Discovery

    @abc.abstractmethod
    async def save_discovery_run(self, run: DiscoveryRun) -> None:
        pass


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteStore(Store):
    """Store backed by aiosqlite."""

    DEVICE_COLUMNS = (
        "id, name, address, owner, monitoring_enabled, port, snmp_version, credential, "
        "timeout, retries, poll_interval, enabled, last_poll_time, last_poll_status, "
        "consecutive_failures, error_message"
    )

    EVENT_COLUMNS = (
        "id, hash_key, source_ip, source_port, community, version, trap_oid, enterprise_oid, "
        "generic_trap, specific_trap, uptime, varbinds, raw_data, trap_type, severity, "
        "description, duplicate_count, first_occurrence, last_occurrence, processed, "
        "alert_created, alert_id, device_id"
    )

    ALERT_COLUMNS = (
        "id, alert_key, alert_type, severity, status, source_type, title, message, "
        "device_id, owner, source_event_id, created_at"
    )

    def __init__(self, database: Database):
        """
        Initialize the store.

        Args:
            database: Database instance for storage operations
        """
        self.database = database

    @classmethod
    async def open(cls, db_path: str) -> "SQLiteStore":
        database = Database(db_path)
        await database.initialize()
        return cls(database)

    async def close(self) -> None:
        await self.database.close()

    # Devices

    def _row_to_device(self, row) -> Device:
        endpoint = DeviceEndpoint(
            address=row[2],
            port=row[5],
            version=SNMPVersion(row[6]),
            credential=SNMPCredential.from_dict(json.loads(row[7])),
            timeout=row[8],
            retries=row[9],
            poll_interval=row[10],
            enabled=bool(row[11]),
            last_poll_time=_parse_ts(row[12]),
            last_poll_status=PollStatus(row[13]) if row[13] else None,
            consecutive_failures=row[14],
            error_message=row[15],
        )
        return Device(
            id=row[0],
            name=row[1],
            owner=row[3],
            monitoring_enabled=bool(row[4]),
            endpoint=endpoint,
        )

    async def save_device(self, device: Device) -> Device:
        ep = device.endpoint
        values = (
            device.name,
            ep.address,
            device.owner,
            int(device.monitoring_enabled),
            ep.port,
            ep.version.value,
            json.dumps(ep.credential.to_dict()),
            ep.timeout,
            ep.retries,
            ep.poll_interval,
            int(ep.enabled),
            _ts(ep.last_poll_time),
            ep.last_poll_status.value if ep.last_poll_status else None,
            ep.consecutive_failures,
            ep.error_message,
        )

        if device.id is None:
            cursor = await self.database.execute(
                """
                INSERT INTO devices (
                    name, address, owner, monitoring_enabled, port, snmp_version, credential,
                    timeout, retries, poll_interval, enabled, last_poll_time, last_poll_status,
                    consecutive_failures, error_message
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                values
            )
            device.id = cursor.lastrowid
        else:
            await self.database.execute(
                """
                UPDATE devices SET
                    name = ?, address = ?, owner = ?, monitoring_enabled = ?, port = ?,
                    snmp_version = ?, credential = ?, timeout = ?, retries = ?,
                    poll_interval = ?, enabled = ?, last_poll_time = ?, last_poll_status = ?,
                    consecutive_failures = ?, error_message = ?
                WHERE id = ?
                """,
                values + (device.id,)
            )
        await self.database.commit()
        return device

    async def find_device(self, device_id: int) -> Optional[Device]:
        row = await self.database.fetchone(
            f"SELECT {self.DEVICE_COLUMNS} FROM devices WHERE id = ?", (device_id,)
        )
        return self._row_to_device(row) if row else None

    async def find_device_by_address(self, address: str) -> Optional[Device]:
        row = await self.database.fetchone(
            f"SELECT {self.DEVICE_COLUMNS} FROM devices WHERE address = ?", (address,)
        )
        return self._row_to_device(row) if row else None

    async def list_devices(self) -> List[Device]:
        rows = await self.database.fetchall(
            f"SELECT {self.DEVICE_COLUMNS} FROM devices ORDER BY id"
        )
        return [self._row_to_device(row) for row in rows]

    # Indexed records

    @staticmethod
    def _row_to_record(row) -> IndexedRecord:
        return IndexedRecord(
            id=row[0],
            device_id=row[1],
            index=row[2],
            attributes=json.loads(row[3]),
            created_at=_parse_ts(row[4]),
            updated_at=_parse_ts(row[5]),
        )

    async def find_by_device_and_index(
        self, kind: RecordKind, device_id: int, index: int
    ) -> Optional[IndexedRecord]:
        row = await self.database.fetchone(
            f"SELECT id, device_id, record_index, attributes, created_at, updated_at "
            f"FROM {kind.value} WHERE device_id = ? AND record_index = ?",
            (device_id, index)
        )
        return self._row_to_record(row) if row else None

    async def find_all_by_device(self, kind: RecordKind, device_id: int) -> List[IndexedRecord]:
        rows = await self.database.fetchall(
            f"SELECT id, device_id, record_index, attributes, created_at, updated_at "
            f"FROM {kind.value} WHERE device_id = ? ORDER BY record_index",
            (device_id,)
        )
        return [self._row_to_record(row) for row in rows]

    async def save_or_update(self, kind: RecordKind, records: List[IndexedRecord]) -> List[IndexedRecord]:
        now = datetime.now(UTC)
        for record in records:
            record.created_at = record.created_at or now
            record.updated_at = now
            await self.database.execute(
                f"""
                INSERT INTO {kind.value} (device_id, record_index, attributes, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(device_id, record_index) DO UPDATE SET
                    attributes = excluded.attributes,
                    updated_at = excluded.updated_at
                """,
                (
                    record.device_id,
                    record.index,
                    json.dumps(record.attributes, default=str),
                    _ts(record.created_at),
                    _ts(record.updated_at),
                )
            )
            if record.id is None:
                row = await self.database.fetchone(
                    f"SELECT id FROM {kind.value} WHERE device_id = ? AND record_index = ?",
                    (record.device_id, record.index)
                )
                record.id = row[0]
        await self.database.commit()
        return records

    async def delete_many(self, kind: RecordKind, records: Iterable[IndexedRecord]) -> int:
        keys = [(r.device_id, r.index) for r in records]
        if not keys:
            return 0
        await self.database.executemany(
            f"DELETE FROM {kind.value} WHERE device_id = ? AND record_index = ?", keys
        )
        await self.database.commit()
        return len(keys)

    # Singleton profiles

    async def find_profile(self, kind: ProfileKind, device_id: int) -> Optional[SingletonProfile]:
        row = await self.database.fetchone(
            f"SELECT device_id, attributes, updated_at FROM {kind.value} WHERE device_id = ?",
            (device_id,)
        )
        if not row:
            return None
        return SingletonProfile(
            device_id=row[0],
            kind=kind,
            attributes=json.loads(row[1]),
            updated_at=_parse_ts(row[2]),
        )

    async def save_profile(self, profile: SingletonProfile) -> SingletonProfile:
        profile.updated_at = datetime.now(UTC)
        await self.database.execute(
            f"""
            INSERT INTO {profile.kind.value} (device_id, attributes, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(device_id) DO UPDATE SET
                attributes = excluded.attributes,
                updated_at = excluded.updated_at
            """,
            (profile.device_id, json.dumps(profile.attributes, default=str), _ts(profile.updated_at))
        )
        await self.database.commit()
        return profile

    # Trap events

    @staticmethod
    def _row_to_event(row) -> TrapEvent:
        return TrapEvent(
            id=row[0],
            hash_key=row[1],
            source_ip=row[2],
            source_port=row[3],
            community=row[4],
            version=row[5],
            trap_oid=row[6],
            enterprise_oid=row[7],
            generic_trap=row[8],
            specific_trap=row[9],
            uptime=row[10],
            varbinds=json.loads(row[11]) if row[11] else {},
            raw_data=row[12] or "",
            trap_type=TrapType(row[13]),
            severity=Severity(row[14]),
            description=row[15] or "",
            duplicate_count=row[16],
            first_occurrence=_parse_ts(row[17]),
            last_occurrence=_parse_ts(row[18]),
            processed=bool(row[19]),
            alert_created=bool(row[20]),
            alert_id=row[21],
            device_id=row[22],
        )

    async def find_event_by_hash_key(self, hash_key: str) -> Optional[TrapEvent]:
        row = await self.database.fetchone(
            f"SELECT {self.EVENT_COLUMNS} FROM trap_events WHERE hash_key = ?", (hash_key,)
        )
        return self._row_to_event(row) if row else None

    async def save_event(self, event: TrapEvent) -> TrapEvent:
        values = (
            event.hash_key,
            event.source_ip,
            event.source_port,
            event.community,
            event.version,
            event.trap_oid,
            event.enterprise_oid,
            event.generic_trap,
            event.specific_trap,
            event.uptime,
            json.dumps(event.varbinds, default=str),
            event.raw_data,
            event.trap_type.value,
            event.severity.value,
            event.description,
            event.duplicate_count,
            _ts(event.first_occurrence),
            _ts(event.last_occurrence),
            int(event.processed),
            int(event.alert_created),
            event.alert_id,
            event.device_id,
        )

        if event.id is None:
            cursor = await self.database.execute(
                """
                INSERT INTO trap_events (
                    hash_key, source_ip, source_port, community, version, trap_oid,
                    enterprise_oid, generic_trap, specific_trap, uptime, varbinds, raw_data,
                    trap_type, severity, description, duplicate_count, first_occurrence,
                    last_occurrence, processed, alert_created, alert_id, device_id
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                values
            )
            event.id = cursor.lastrowid
        else:
            await self.database.execute(
                """
                UPDATE trap_events SET
                    hash_key = ?, source_ip = ?, source_port = ?, community = ?, version = ?,
                    trap_oid = ?, enterprise_oid = ?, generic_trap = ?, specific_trap = ?,
                    uptime = ?, varbinds = ?, raw_data = ?, trap_type = ?, severity = ?,
                    description = ?, duplicate_count = ?, first_occurrence = ?,
                    last_occurrence = ?, processed = ?, alert_created = ?, alert_id = ?,
                    device_id = ?
                WHERE id = ?
                """,
                values + (event.id,)
            )
        await self.database.commit()
        return event

    async def list_events(self, limit: int = 100) -> List[TrapEvent]:
        rows = await self.database.fetchall(
            f"SELECT {self.EVENT_COLUMNS} FROM trap_events ORDER BY id LIMIT ?", (limit,)
        )
        return [self._row_to_event(row) for row in rows]

    # Alerts

    @staticmethod
    def _row_to_alert(row) -> Alert:
        return Alert(
            id=row[0],
            alert_key=row[1],
            alert_type=AlertType(row[2]),
            severity=Severity(row[3]),
            status=AlertStatus(row[4]),
            source_type=row[5],
            title=row[6],
            message=row[7],
            device_id=row[8],
            owner=row[9],
            source_event_id=row[10],
            created_at=_parse_ts(row[11]),
        )

    async def save_alert(self, alert: Alert) -> Alert:
        values = (
            alert.alert_key,
            alert.alert_type.value,
            alert.severity.value,
            alert.status.value,
            alert.source_type,
            alert.title,
            alert.message,
            alert.device_id,
            alert.owner,
            alert.source_event_id,
            _ts(alert.created_at),
        )
        if alert.id is None:
            cursor = await self.database.execute(
                """
                INSERT INTO alerts (
                    alert_key, alert_type, severity, status, source_type, title, message,
                    device_id, owner, source_event_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                values
            )
            alert.id = cursor.lastrowid
        else:
            await self.database.execute(
                """
                UPDATE alerts SET
                    alert_key = ?, alert_type = ?, severity = ?, status = ?, source_type = ?,
                    title = ?, message = ?, device_id = ?, owner = ?, source_event_id = ?,
                    created_at = ?
                WHERE id = ?
                """,
                values + (alert.id,)
            )
        await self.database.commit()
        return alert

    async def find_recent_alert(self, alert_key: str, since: datetime) -> Optional[Alert]:
        row = await self.database.fetchone(
            f"""
            SELECT {self.ALERT_COLUMNS} FROM alerts
            WHERE alert_key = ? AND status = ? AND created_at >= ?
            ORDER BY created_at DESC LIMIT 1
            """,
            (alert_key, AlertStatus.OPEN.value, _ts(since))
        )
        return self._row_to_alert(row) if row else None

    async def list_alerts(self, limit: int = 100) -> List[Alert]:
        rows = await self.database.fetchall(
            f"SELECT {self.ALERT_COLUMNS} FROM alerts ORDER BY id LIMIT ?", (limit,)
        )
        return [self._row_to_alert(row) for row in rows]

    # Discovery

    async def save_discovery_run(self, run: DiscoveryRun) -> None:
        nodes = [
            {
                "id": n.id,
                "ip": n.ip,
                "mac": n.mac,
                "name": n.name,
                "device_type": n.device_type.value,
                "sys_descr": n.sys_descr,
                "vendor": n.vendor,
                "reachable": n.reachable,
            }
            for n in run.nodes
        ]
        edges = [
            {
                "id": e.id,
                "source_id": e.source_id,
                "target_id": e.target_id,
                "connection_type": e.connection_type.value,
                "source_interface": e.source_interface,
                "target_interface": e.target_interface,
                "protocol": e.protocol,
            }
            for e in run.edges
        ]
        await self.database.execute(
            """
            INSERT INTO discovery_runs (id, target, status, nodes, edges, warnings, started_at, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status = excluded.status,
                nodes = excluded.nodes,
                edges = excluded.edges,
                warnings = excluded.warnings,
                completed_at = excluded.completed_at
            """,
            (
                run.id,
                run.request.target,
                run.status.value,
                json.dumps(nodes),
                json.dumps(edges),
                json.dumps(run.warnings),
                _ts(run.started_at),
                _ts(run.completed_at),
            )
        )
        await self.database.commit()
        logger.info(f"Saved discovery run {run.id} ({run.status.value}, "
                    f"{len(run.nodes)} nodes, {len(run.edges)} edges)")
