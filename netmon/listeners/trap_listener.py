"""
SNMP trap listener for netmon.

Receives v1 Trap-PDUs and v2c SNMPv2-Trap-PDUs over UDP, checks the
community string and normalizes both shapes into TrapMessage objects.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from pyasn1.codec.ber import decoder
from pysnmp.proto import api

from netmon.errors import TrapDecodeError
from netmon.listeners.base import BaseListener
from netmon.models.message import TrapMessage
from netmon.snmp import oids
from netmon.snmp.client import to_python

logger = logging.getLogger(__name__)


def v1_trap_oid(enterprise: str, generic_trap: int, specific_trap: int) -> str:
    """Map v1 enterprise/generic/specific to the equivalent v2 notification OID."""
    if generic_trap == 6:
        return f"{enterprise}.0.{specific_trap}"
    return f"{oids.SNMP_GENERIC_TRAPS}.{generic_trap + 1}"


def normalize_v1(
    addr: Tuple[str, int],
    community: str,
    enterprise: str,
    agent_address: Optional[str],
    generic_trap: int,
    specific_trap: int,
    timestamp: Optional[int],
    varbinds: List[Tuple[str, Any]]
) -> TrapMessage:
    source_ip, source_port = addr
    return TrapMessage(
        source_ip=source_ip,
        source_port=source_port,
        community=community,
        version="v1",
        trap_oid=v1_trap_oid(enterprise, generic_trap, specific_trap),
        uptime=timestamp,
        varbinds=dict(varbinds),
        enterprise_oid=enterprise,
        generic_trap=generic_trap,
        specific_trap=specific_trap,
        agent_address=agent_address,
    )


def normalize_v2c(
    addr: Tuple[str, int],
    community: str,
    varbinds: List[Tuple[str, Any]]
) -> TrapMessage:
    """
    Normalize a v2c notification.

    Raises:
        TrapDecodeError: If the snmpTrapOID.0 field is missing
    """
    source_ip, source_port = addr
    fields: Dict[str, Any] = dict(varbinds)

    trap_oid = fields.get(oids.SNMP_TRAP_OID)
    if not trap_oid:
        raise TrapDecodeError(f"v2c trap from {source_ip} carries no snmpTrapOID")

    uptime = fields.get(oids.SYS_UPTIME)
    return TrapMessage(
        source_ip=source_ip,
        source_port=source_port,
        community=community,
        version="v2c",
        trap_oid=str(trap_oid),
        uptime=uptime if isinstance(uptime, int) else None,
        varbinds=fields,
        enterprise_oid=fields.get(oids.SNMP_TRAP_ENTERPRISE),
    )


def _convert_varbinds(raw_varbinds) -> List[Tuple[str, Any]]:
    return [(str(name), to_python(value)) for name, value in raw_varbinds]


def decode_trap(data: bytes, addr: Tuple[str, int]) -> TrapMessage:
    """
    Decode one trap datagram.

    Raises:
        TrapDecodeError: On undecodable data, unsupported versions or
            non-trap PDUs
    """
    try:
        version = int(api.decodeMessageVersion(data))
    except Exception as e:
        raise TrapDecodeError(f"Undecodable datagram from {addr[0]}: {e}") from e

    if version not in api.PROTOCOL_MODULES:
        raise TrapDecodeError(f"Unsupported SNMP version {version} from {addr[0]}")

    p_mod = api.PROTOCOL_MODULES[version]
    try:
        message, _ = decoder.decode(data, asn1Spec=p_mod.Message())
        pdu = p_mod.apiMessage.get_pdu(message)
        community = bytes(p_mod.apiMessage.get_community(message)).decode("utf-8", errors="replace")

        if not pdu.isSameTypeWith(p_mod.TrapPDU()):
            raise TrapDecodeError(f"Ignoring non-trap PDU from {addr[0]}")

        if version == api.SNMP_VERSION_1:
            return normalize_v1(
                addr,
                community,
                enterprise=str(p_mod.apiTrapPDU.get_enterprise(pdu)),
                agent_address=p_mod.apiTrapPDU.get_agent_address(pdu).prettyPrint(),
                generic_trap=int(p_mod.apiTrapPDU.get_generic_trap(pdu)),
                specific_trap=int(p_mod.apiTrapPDU.get_specific_trap(pdu)),
                timestamp=int(p_mod.apiTrapPDU.get_timestamp(pdu)),
                varbinds=_convert_varbinds(p_mod.apiTrapPDU.get_varbinds(pdu)),
            )

        return normalize_v2c(addr, community, _convert_varbinds(p_mod.apiPDU.get_varbinds(pdu)))
    except TrapDecodeError:
        raise
    except Exception as e:
        raise TrapDecodeError(f"Malformed trap from {addr[0]}: {e}") from e


class TrapProtocol(asyncio.DatagramProtocol):
    """Protocol handler for trap UDP datagrams."""

    def __init__(self, listener: 'SNMPTrapListener'):
        self.listener = listener

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        """Called when a datagram is received."""
        self.listener.process_data(data, addr)


class SNMPTrapListener(BaseListener):
    """
    Listener for SNMP v1/v2c traps over UDP.

    Datagrams whose community does not match the expected one are dropped
    without a reply.
    """

    def __init__(
        self,
        queue: asyncio.Queue,
        port: int = 5162,
        host: str = "0.0.0.0",
        community: str = "public"
    ):
        """
        Initialize the trap listener.

        Args:
            queue: Queue to put decoded TrapMessages into
            port: UDP port to listen on (default: 5162)
            host: Host interface to bind to (default: "0.0.0.0")
            community: Expected community string
        """
        super().__init__(queue)
        self.port = port
        self.host = host
        self.community = community
        self.transport: Optional[asyncio.DatagramTransport] = None
        self.protocol: Optional[TrapProtocol] = None

    async def start(self) -> None:
        """Start listening for traps."""
        loop = asyncio.get_running_loop()
        self.protocol = TrapProtocol(self)

        self.transport, _ = await loop.create_datagram_endpoint(
            lambda: self.protocol,
            local_addr=(self.host, self.port)
        )
        self._is_running = True
        logger.info(f"SNMP trap listener started on {self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the listener and clean up resources."""
        if self.transport:
            self.transport.close()
            self.transport = None
            self.protocol = None
            self._is_running = False
            logger.info("SNMP trap listener stopped")

    def process_data(self, data: bytes, addr: Tuple[str, int]) -> None:
        """
        Decode a trap datagram and queue it for processing.

        Args:
            data: Raw UDP payload
            addr: Tuple of (source_ip, source_port)
        """
        try:
            message = decode_trap(data, addr)
        except TrapDecodeError as e:
            self.drop(str(e), addr)
            return

        if message.community != self.community:
            self.drop("community mismatch", addr)
            return

        self.enqueue(message, addr)
