"""
Trap processor: deduplication, classification, persistence and alerting
of decoded notifications.
"""

import asyncio
import json
import logging
from datetime import datetime, timedelta, UTC
from typing import Callable, Optional

from netmon.models.device import Device
from netmon.models.message import Alert, TrapEvent, TrapMessage
from netmon.notifications import NotificationSink, alert_topic
from netmon.processors import classifier
from netmon.storage.store import Store

logger = logging.getLogger(__name__)

ALERT_DEDUP_WINDOW = timedelta(minutes=5)


def render_raw_data(message: TrapMessage) -> str:
    """Human-readable rendering of a notification for the event record."""
    lines = [
        f"SNMP Trap from {message.source_ip}:{message.source_port} ({message.version})",
        f"Community: {message.community}",
        f"Trap OID: {message.trap_oid}",
    ]
    if message.enterprise_oid:
        lines.append(f"Enterprise: {message.enterprise_oid}")
    if message.generic_trap is not None:
        lines.append(f"Generic: {message.generic_trap} Specific: {message.specific_trap}")
    if message.uptime is not None:
        lines.append(f"Uptime: {message.uptime}")
    lines.append(f"Variables: {json.dumps(message.varbinds, default=str)}")
    return "\n".join(lines)


class TrapProcessor:
    """
    Consumes TrapMessages from a queue on a small pool of worker tasks.

    Each message is handled under one lock, from the hash-key lookup to
    the final save, so concurrent deliveries of the same notification
    never create two rows or lose a duplicate count.
    """

    def __init__(
        self,
        store: Store,
        queue: Optional[asyncio.Queue] = None,
        sink: Optional[NotificationSink] = None,
        workers: int = 4,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC)
    ):
        """
        Initialize the processor.

        Args:
            store: Store for events and alerts
            queue: Queue of TrapMessage objects fed by the listener
            sink: Where alert notifications are published
            workers: Number of concurrent worker tasks
            clock: Source of the current time (drives the dedup bucket)
        """
        self.store = store
        self.queue = queue or asyncio.Queue()
        self.sink = sink or NotificationSink()
        self.workers = workers
        self.clock = clock
        self.tasks = []
        self.running = False
        self._dedup_lock = asyncio.Lock()

    async def start(self) -> None:
        """Start the worker tasks."""
        if self.running:
            logger.warning("TrapProcessor already running")
            return

        self.running = True
        self.tasks = [
            asyncio.create_task(self.process_loop(), name=f"trap_worker_{i}")
            for i in range(self.workers)
        ]
        logger.info(f"TrapProcessor started with {self.workers} workers")

    async def stop(self) -> None:
        """Stop the worker tasks."""
        if not self.running:
            return

        self.running = False
        for task in self.tasks:
            task.cancel()
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks = []
        logger.info("TrapProcessor stopped")

    async def process_loop(self) -> None:
        """Worker loop: take messages off the queue and process them."""
        while self.running:
            try:
                try:
                    message = await asyncio.wait_for(self.queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue

                try:
                    await self.process(message)
                finally:
                    self.queue.task_done()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error processing trap: {e}", exc_info=True)

    async def process(self, message: TrapMessage) -> TrapEvent:
        """
        Deduplicate, classify and persist one notification.

        Returns:
            The stored event (the existing one when this is a duplicate)
        """
        now = self.clock()
        hash_key = classifier.compute_hash_key(message.source_ip, message.trap_oid, now)

        async with self._dedup_lock:
            existing = await self.store.find_event_by_hash_key(hash_key)
            if existing is not None:
                existing.duplicate_count += 1
                existing.last_occurrence = now
                await self.store.save_event(existing)
                logger.debug(f"Duplicate trap {message.trap_oid} from {message.source_ip} "
                             f"(count {existing.duplicate_count})")
                return existing

            device = await self.store.find_device_by_address(message.source_ip)
            event = self._build_event(message, hash_key, now, device)
            await self.store.save_event(event)
            logger.info(f"Trap {event.trap_type.value} ({event.severity.value}) from {message.source_ip}")

            if classifier.requires_alert(event.severity):
                alert = await self._raise_alert(event, device)
                event.alert_created = True
                event.alert_id = alert.id

            event.processed = True
            await self.store.save_event(event)
        return event

    def _build_event(
        self,
        message: TrapMessage,
        hash_key: str,
        now: datetime,
        device: Optional[Device]
    ) -> TrapEvent:
        trap_type = classifier.classify_type(message.trap_oid, message.generic_trap)
        return TrapEvent(
            hash_key=hash_key,
            source_ip=message.source_ip,
            source_port=message.source_port,
            community=message.community,
            version=message.version,
            trap_oid=message.trap_oid,
            enterprise_oid=message.enterprise_oid,
            generic_trap=message.generic_trap,
            specific_trap=message.specific_trap,
            uptime=message.uptime,
            varbinds=dict(message.varbinds),
            raw_data=render_raw_data(message),
            trap_type=trap_type,
            severity=classifier.classify_severity(trap_type),
            description=classifier.describe(trap_type),
            first_occurrence=now,
            last_occurrence=now,
            device_id=device.id if device else None,
        )

    async def _raise_alert(self, event: TrapEvent, device: Optional[Device]) -> Alert:
        """Create (or reuse a recent open) alert for ``event`` and notify the owner."""
        now = self.clock()
        alert_type = classifier.alert_type_for(event.trap_type)
        alert_key = f"{event.device_id or event.source_ip}:{alert_type.value}:{event.trap_oid}"

        recent = await self.store.find_recent_alert(alert_key, now - ALERT_DEDUP_WINDOW)
        if recent is not None:
            logger.debug(f"Reusing open alert {recent.id} for {alert_key}")
            return recent

        owner = device.owner if device else None
        alert = Alert(
            alert_type=alert_type,
            severity=event.severity,
            title=f"SNMP Trap: {event.trap_type.value}",
            message=f"{event.description} from device {event.source_ip}",
            alert_key=alert_key,
            device_id=event.device_id,
            owner=owner,
            source_event_id=event.id,
            created_at=now,
        )
        await self.store.save_alert(alert)

        if owner:
            await self.sink.publish(alert_topic(owner), alert)
        else:
            logger.warning(f"Alert {alert.id} for {event.source_ip} has no device owner to notify")
        return alert
