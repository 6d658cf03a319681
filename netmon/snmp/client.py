"""
Async SNMP client with a per-endpoint session registry.

Sessions (engine, auth data, transport target) are built on first use of an
endpoint and reused afterwards. Nothing is evicted automatically; callers
own the lifecycle and must call ``close()`` on shutdown.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from pyasn1.type import univ
from pysnmp.hlapi.v3arch.asyncio import (
    get_cmd, next_cmd,
    SnmpEngine, CommunityData, UsmUserData,
    UdpTransportTarget, ContextData,
    ObjectType, ObjectIdentity,
    usmNoAuthProtocol,
    usmHMACMD5AuthProtocol,
    usmHMACSHAAuthProtocol,
    usmHMAC128SHA224AuthProtocol,
    usmHMAC192SHA256AuthProtocol,
    usmHMAC256SHA384AuthProtocol,
    usmHMAC384SHA512AuthProtocol,
    usmNoPrivProtocol,
    usmDESPrivProtocol,
    usmAesCfb128Protocol,
    usmAesCfb192Protocol,
    usmAesCfb256Protocol,
)
from pysnmp.proto.rfc1905 import NoSuchObject, NoSuchInstance, EndOfMibView

from netmon.models.credentials import AuthProtocol, PrivProtocol, SNMPVersion
from netmon.models.device import DeviceEndpoint
from netmon.snmp import oids

logger = logging.getLogger(__name__)

AuthData = Union[CommunityData, UsmUserData]

DEFAULT_MAX_ENTRIES = 100

AUTH_PROTOCOLS = {
    AuthProtocol.NONE: usmNoAuthProtocol,
    AuthProtocol.MD5: usmHMACMD5AuthProtocol,
    AuthProtocol.SHA: usmHMACSHAAuthProtocol,
    AuthProtocol.SHA224: usmHMAC128SHA224AuthProtocol,
    AuthProtocol.SHA256: usmHMAC192SHA256AuthProtocol,
    AuthProtocol.SHA384: usmHMAC256SHA384AuthProtocol,
    AuthProtocol.SHA512: usmHMAC384SHA512AuthProtocol,
}

PRIV_PROTOCOLS = {
    PrivProtocol.NONE: usmNoPrivProtocol,
    PrivProtocol.DES: usmDESPrivProtocol,
    PrivProtocol.AES128: usmAesCfb128Protocol,
    PrivProtocol.AES192: usmAesCfb192Protocol,
    PrivProtocol.AES256: usmAesCfb256Protocol,
}


def build_auth(endpoint: DeviceEndpoint) -> AuthData:
    """
    Build pysnmp auth data for an endpoint.

    Returns CommunityData for v1/v2c or UsmUserData for v3.
    """
    credential = endpoint.credential

    if endpoint.version == SNMPVersion.V1:
        return CommunityData(credential.community, mpModel=0)
    if endpoint.version == SNMPVersion.V2C:
        return CommunityData(credential.community, mpModel=1)

    usm_kwargs = {}

    if credential.auth_protocol != AuthProtocol.NONE:
        usm_kwargs['authKey'] = credential.auth_password
        usm_kwargs['authProtocol'] = AUTH_PROTOCOLS[credential.auth_protocol]

    if credential.priv_protocol != PrivProtocol.NONE:
        usm_kwargs['privKey'] = credential.priv_password
        usm_kwargs['privProtocol'] = PRIV_PROTOCOLS[credential.priv_protocol]

    return UsmUserData(credential.security_name, **usm_kwargs)


def to_python(value: Any) -> Optional[Any]:
    """
    Convert a pysnmp value to a plain Python value.

    Integer-family types become ``int``; everything else becomes its
    pretty-printed text. Exception values (noSuchObject etc.) become None.
    """
    if value is None or isinstance(value, (NoSuchObject, NoSuchInstance, EndOfMibView)):
        return None
    if isinstance(value, univ.Integer):
        return int(value)
    return value.prettyPrint()


@dataclass
class SNMPSession:
    """Cached per-endpoint protocol state."""
    engine: SnmpEngine
    auth: AuthData
    target: UdpTransportTarget
    context: ContextData
    timeout: float
    retries: int


class SNMPClient:
    """
    SNMP client offering get, batched get and table walk.

    Transport and agent errors are never raised to callers: ``get`` returns
    None, ``get_multiple`` and ``walk`` return an empty dict.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        """
        Initialize the client.

        Args:
            max_entries: Default bound on the number of entries a walk returns
        """
        self.max_entries = max_entries
        self._sessions: Dict[Tuple, SNMPSession] = {}
        self._key_locks: Dict[Tuple, asyncio.Lock] = {}

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    async def _create_session(self, endpoint: DeviceEndpoint) -> SNMPSession:
        target = await UdpTransportTarget.create(
            (endpoint.address, endpoint.port),
            timeout=endpoint.timeout,
            retries=endpoint.retries
        )
        context_name = endpoint.credential.context_name
        return SNMPSession(
            engine=SnmpEngine(),
            auth=build_auth(endpoint),
            target=target,
            context=ContextData(contextName=context_name) if context_name else ContextData(),
            timeout=endpoint.timeout,
            retries=endpoint.retries,
        )

    async def get_session(self, endpoint: DeviceEndpoint) -> SNMPSession:
        """Return the cached session for ``endpoint``, creating it once per key."""
        key = endpoint.session_key()
        session = self._sessions.get(key)
        if session is not None:
            return session

        lock = self._key_locks.setdefault(key, asyncio.Lock())
        async with lock:
            session = self._sessions.get(key)
            if session is None:
                session = await self._create_session(endpoint)
                self._sessions[key] = session
                logger.debug(f"Created SNMP session for {endpoint.address}:{endpoint.port} "
                             f"({endpoint.version.value})")
        return session

    async def _request(self, command, endpoint: DeviceEndpoint, oid_list: List[str]):
        """
        Run one pysnmp command and return its var-binds, or None on any error.
        """
        try:
            session = await self.get_session(endpoint)
            # pysnmp retries internally; this only guards against a wedged dispatcher
            deadline = session.timeout * (session.retries + 1) + 2
            error_indication, error_status, error_index, var_binds = await asyncio.wait_for(
                command(
                    session.engine,
                    session.auth,
                    session.target,
                    session.context,
                    *[ObjectType(ObjectIdentity(oid)) for oid in oid_list],
                    lookupMib=False
                ),
                timeout=deadline
            )
        except asyncio.TimeoutError:
            logger.debug(f"SNMP request to {endpoint.address} timed out")
            return None
        except Exception as e:
            logger.debug(f"SNMP request to {endpoint.address} failed: {type(e).__name__}: {e}")
            return None

        if error_indication:
            logger.debug(f"SNMP error from {endpoint.address}: {error_indication}")
            return None
        if error_status:
            logger.debug(f"SNMP agent {endpoint.address} returned {error_status.prettyPrint()} "
                         f"at index {error_index}")
            return None
        return var_binds

    async def get(self, endpoint: DeviceEndpoint, oid: str) -> Optional[Any]:
        """
        Fetch a single value.

        Returns:
            The converted value, or None when unavailable
        """
        var_binds = await self._request(get_cmd, endpoint, [oid])
        if not var_binds:
            return None
        return to_python(var_binds[0][1])

    async def get_multiple(self, endpoint: DeviceEndpoint, oid_list: List[str]) -> Dict[str, Any]:
        """
        Fetch several values in one round trip.

        All-or-nothing: any transport or agent error yields an empty dict.
        OIDs the agent does not implement are left out of the result.
        """
        if not oid_list:
            return {}
        var_binds = await self._request(get_cmd, endpoint, list(oid_list))
        if not var_binds:
            return {}

        results = {}
        for var_bind in var_binds:
            value = to_python(var_bind[1])
            if value is not None:
                results[str(var_bind[0])] = value
        return results

    async def walk(
        self,
        endpoint: DeviceEndpoint,
        root_oid: str,
        max_entries: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Walk the subtree under ``root_oid`` with repeated GETNEXT requests.

        Stops when the returned OID leaves the subtree, on any error, when
        the agent stops advancing, or after ``max_entries`` entries.

        Returns:
            Dict of OID text to value, in walk order
        """
        max_entries = max_entries or self.max_entries
        results: Dict[str, Any] = {}
        current = root_oid

        while len(results) < max_entries:
            var_binds = await self._request(next_cmd, endpoint, [current])
            if not var_binds:
                break

            name, value = str(var_binds[0][0]), var_binds[0][1]
            if not oids.is_under(name, root_oid) or name == current:
                break

            converted = to_python(value)
            if converted is None:
                break

            results[name] = converted
            current = name

        return results

    async def test_connection(self, endpoint: DeviceEndpoint) -> bool:
        """Liveness probe: True if the agent answers a sysName fetch."""
        return await self.get(endpoint, oids.SYS_NAME) is not None

    async def close(self) -> None:
        """Close every cached session and empty the registry."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        self._key_locks.clear()

        for session in sessions:
            try:
                session.engine.close_dispatcher()
            except Exception as e:
                logger.error(f"Error closing SNMP session: {e}")

        logger.info(f"Closed {len(sessions)} SNMP sessions")
