"""
Liveness sweep over a discovery target.
"""

import asyncio
import ipaddress
import logging
from typing import List

from netmon.errors import DiscoveryError

logger = logging.getLogger(__name__)

MAX_TARGET_ADDRESSES = 4096


def expand_target(target: str) -> List[str]:
    """
    Expand a discovery target into individual IPv4 addresses.

    Accepts a single address, a CIDR block (network and broadcast
    addresses excluded) or a last-octet range such as ``10.0.0.5-20``.

    Raises:
        DiscoveryError: If the target cannot be parsed or is too large
    """
    target = target.strip()
    try:
        if "/" in target:
            network = ipaddress.ip_network(target, strict=False)
            _check_size(target, network.num_addresses)
            return [str(host) for host in network.hosts()] or [str(network.network_address)]

        if "-" in target:
            start_text, end_text = target.split("-", 1)
            start = ipaddress.IPv4Address(start_text)
            if "." in end_text:
                end = ipaddress.IPv4Address(end_text)
            else:
                end = ipaddress.IPv4Address(f"{start_text.rsplit('.', 1)[0]}.{end_text}")
            if end < start:
                raise DiscoveryError(f"Range end precedes start in {target}")
            _check_size(target, int(end) - int(start) + 1)
            return [str(ipaddress.IPv4Address(value)) for value in range(int(start), int(end) + 1)]

        return [str(ipaddress.ip_address(target))]
    except ValueError as e:
        raise DiscoveryError(f"Invalid discovery target {target!r}: {e}") from e


def _check_size(target: str, count: int) -> None:
    if count > MAX_TARGET_ADDRESSES:
        raise DiscoveryError(f"Target {target} expands to {count} addresses "
                             f"(limit {MAX_TARGET_ADDRESSES})")


class AddressScanner:
    """Pings addresses through the system ``ping`` command."""

    def __init__(self, timeout: float = 1.0, concurrency: int = 10):
        self.timeout = timeout
        self.concurrency = concurrency

    async def ping(self, address: str) -> bool:
        """Return True if ``address`` answers one echo request."""
        try:
            proc = await asyncio.create_subprocess_exec(
                'ping', '-c', '1', '-W', str(max(1, int(self.timeout))), address,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL
            )
        except OSError as e:
            logger.debug(f"Unable to run ping for {address}: {e}")
            return False

        try:
            await asyncio.wait_for(proc.wait(), timeout=self.timeout + 1)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return False
        return proc.returncode == 0

    async def sweep(self, target: str) -> List[str]:
        """
        Ping every address in ``target``.

        Returns:
            Responding addresses, in target order
        """
        addresses = expand_target(target)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def probe(address: str) -> bool:
            async with semaphore:
                return await self.ping(address)

        results = await asyncio.gather(*(probe(address) for address in addresses))
        alive = [address for address, up in zip(addresses, results) if up]
        logger.info(f"Liveness sweep of {target}: {len(alive)}/{len(addresses)} responding")
        return alive
