#!/usr/bin/env python3
"""
netmon daemon - runs the poller, trap pipeline and discovery engine.
"""

import asyncio
import argparse
import signal
import sys
from typing import Dict, Any, Optional

from netmon.config import DeviceLoader, load_config
from netmon.discovery.engine import DiscoveryEngine
from netmon.discovery.prober import DeviceProber
from netmon.discovery.scanner import AddressScanner
from netmon.listeners.trap_listener import SNMPTrapListener
from netmon.logger import setup_logging, get_logger
from netmon.notifications import NotificationSink
from netmon.polling.orchestrator import PollingOrchestrator
from netmon.processors.trap_processor import TrapProcessor
from netmon.snmp.client import SNMPClient
from netmon.storage.store import SQLiteStore


class NetmonDaemon:
    """Main netmon daemon class."""

    def __init__(self):
        """Initialize the netmon daemon."""
        self.config: Optional[Dict[str, Any]] = None
        self.logger = get_logger(__name__)
        self.trap_queue: Optional[asyncio.Queue] = None
        self.store: Optional[SQLiteStore] = None
        self.client: Optional[SNMPClient] = None
        self.sink = NotificationSink()
        self.listeners = []
        self.processor: Optional[TrapProcessor] = None
        self.orchestrator: Optional[PollingOrchestrator] = None
        self.discovery: Optional[DiscoveryEngine] = None
        self.polling_task: Optional[asyncio.Task] = None
        self.shutdown_event = asyncio.Event()

    async def main(self) -> None:
        """Main entry point for the netmon daemon."""
        try:
            args = self._parse_args()
            self.config = load_config(args.config)

            logging_config = self.config.get('logging', {})
            setup_logging(
                logging_config.get('file', 'logs/netmon.log'),
                debug=logging_config.get('debug', False),
                levels=logging_config.get('levels')
            )

            # Re-initialize logger after setup
            self.logger = get_logger(__name__)
            self.logger.info("Starting netmon daemon")

            db_path = self.config.get('storage', {}).get('db_path', 'data/netmon.db')
            self.store = await SQLiteStore.open(db_path)

            polling_config = self.config.get('polling', {})
            max_entries = polling_config.get('max_walk_entries', 100)
            self.client = SNMPClient(max_entries=max_entries)

            await self._load_devices()

            # Processor first so it's ready for traps
            self.trap_queue = asyncio.Queue()
            await self._start_processor()
            await self._start_listeners()

            self.discovery = DiscoveryEngine(
                prober=DeviceProber(self.client, max_entries),
                scanner=AddressScanner(),
                store=self.store,
                sink=self.sink,
            )
            self._start_polling(polling_config, max_entries)

            self._setup_signal_handlers()

            self.logger.info("netmon daemon is running")
            await self.shutdown_event.wait()

            await self.shutdown()

        except Exception as e:
            self.logger.error(f"Fatal error in netmon daemon: {e}", exc_info=True)
            await self.shutdown()
            sys.exit(1)

    def _parse_args(self) -> argparse.Namespace:
        """Parse command line arguments."""
        parser = argparse.ArgumentParser(
            description="netmon - SNMP polling, trap handling and topology discovery"
        )
        parser.add_argument(
            '-c', '--config',
            type=str,
            default='config/netmon.yaml',
            help='Path to configuration file (default: config/netmon.yaml)'
        )
        return parser.parse_args()

    async def _load_devices(self) -> None:
        """Persist configured devices, keeping the poll state of known ones."""
        for device in DeviceLoader.load_devices(self.config):
            existing = await self.store.find_device_by_address(device.address)
            if existing is not None:
                device.id = existing.id
                device.endpoint.last_poll_time = existing.endpoint.last_poll_time
                device.endpoint.last_poll_status = existing.endpoint.last_poll_status
                device.endpoint.consecutive_failures = existing.endpoint.consecutive_failures
                device.endpoint.error_message = existing.endpoint.error_message
                # a breaker trip survives restarts until the config changes
                device.endpoint.enabled = device.endpoint.enabled and existing.endpoint.enabled
            await self.store.save_device(device)

        devices = await self.store.list_devices()
        self.logger.info(f"{len(devices)} devices registered")

    async def _start_listeners(self) -> None:
        """Start the trap listener if enabled."""
        snmp_config = self.config.get('listeners', {}).get('snmp', {})
        if not snmp_config.get('enabled', True):
            self.logger.warning("No listeners enabled in configuration")
            return

        try:
            port = snmp_config.get('port', 5162)
            host = snmp_config.get('host', '0.0.0.0')
            listener = SNMPTrapListener(
                queue=self.trap_queue,
                port=port,
                host=host,
                community=snmp_config.get('community', 'public')
            )
            await listener.start()
            self.listeners.append(listener)
        except Exception as e:
            self.logger.error(f"Failed to start SNMP trap listener: {e}")

    async def _start_processor(self) -> None:
        """Start the trap processor."""
        workers = self.config.get('listeners', {}).get('snmp', {}).get('workers', 4)
        self.processor = TrapProcessor(
            store=self.store,
            queue=self.trap_queue,
            sink=self.sink,
            workers=workers
        )
        await self.processor.start()

    def _start_polling(self, polling_config: Dict[str, Any], max_entries: int) -> None:
        self.orchestrator = PollingOrchestrator(
            store=self.store,
            client=self.client,
            tick_interval=polling_config.get('tick_interval', 30),
            failure_threshold=polling_config.get('failure_threshold', 5),
            max_entries=max_entries,
        )
        self.polling_task = asyncio.create_task(
            self.orchestrator.run(self.shutdown_event), name="polling_loop"
        )

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(
                    sig,
                    lambda s=sig: self.shutdown_event.set()
                )
            except NotImplementedError:
                # Signal handlers are not implemented on Windows
                pass

        self.logger.debug("Signal handlers installed for SIGINT and SIGTERM")

    async def shutdown(self) -> None:
        """Gracefully shutdown the netmon daemon."""
        self.logger.info("Initiating graceful shutdown...")
        self.shutdown_event.set()

        for listener in self.listeners:
            try:
                await listener.stop()
            except Exception as e:
                self.logger.error(f"Error stopping listener {type(listener).__name__}: {e}")
        self.listeners.clear()

        if self.processor:
            try:
                await self.processor.stop()
            except Exception as e:
                self.logger.error(f"Error stopping trap processor: {e}")

        if self.polling_task:
            await asyncio.gather(self.polling_task, return_exceptions=True)
            self.polling_task = None

        if self.discovery:
            await self.discovery.shutdown()

        if self.client:
            await self.client.close()
            self.client = None

        if self.store:
            await self.store.close()
            self.store = None

        self.logger.info("netmon daemon shutdown complete")


def main() -> None:
    """Entry point for the netmon daemon."""
    daemon = NetmonDaemon()

    try:
        asyncio.run(daemon.main())
    except KeyboardInterrupt:
        pass
    except Exception as e:
        print(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
