"""
Device and endpoint models for polled network devices.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Tuple

from netmon.models.credentials import SNMPCredential, SNMPVersion


class PollStatus(Enum):
    """Outcome of the most recent poll cycle for a device."""
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    TIMEOUT = "TIMEOUT"
    UNREACHABLE = "UNREACHABLE"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"


@dataclass
class DeviceEndpoint:
    """
    Management endpoint of a device.

    Attributes:
        address: IP address or hostname of the agent
        port: UDP port of the agent
        version: SNMP protocol version
        credential: Community or v3 user credential
        timeout: Per-request timeout in seconds
        retries: Retry count per request
        poll_interval: Seconds between poll cycles
        enabled: Endpoint polling switch (cleared by the circuit breaker)
        last_poll_time: Time of the last poll attempt
        last_poll_status: Outcome of the last poll attempt
        consecutive_failures: Failed cycles since the last success
        error_message: Reason for the last failure
    """
    address: str
    port: int = 161
    version: SNMPVersion = SNMPVersion.V2C
    credential: SNMPCredential = field(default_factory=SNMPCredential)
    timeout: float = 5.0
    retries: int = 3
    poll_interval: int = 300
    enabled: bool = True
    last_poll_time: Optional[datetime] = None
    last_poll_status: Optional[PollStatus] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None

    def session_key(self) -> Tuple[str, int, str, str, float, int]:
        """Key under which the protocol client caches sessions."""
        return (
            self.address,
            self.port,
            self.version.value,
            self.credential.identity(self.version),
            self.timeout,
            self.retries,
        )

    def is_due(self, now: datetime) -> bool:
        """True when the endpoint has never been polled or its interval has elapsed."""
        if self.last_poll_time is None:
            return True
        return now >= self.last_poll_time + timedelta(seconds=self.poll_interval)


@dataclass
class Device:
    """
    A monitored device.

    Attributes:
        name: Display name
        endpoint: Management endpoint
        owner: User notified about alerts raised for this device
        monitoring_enabled: Device-level monitoring switch
        id: Store identifier, assigned on first save
    """
    name: str
    endpoint: DeviceEndpoint
    owner: Optional[str] = None
    monitoring_enabled: bool = True
    id: Optional[int] = None

    @property
    def address(self) -> str:
        return self.endpoint.address

    def is_eligible(self) -> bool:
        return self.monitoring_enabled and self.endpoint.enabled
