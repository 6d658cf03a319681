"""
Credential models for SNMP community and user-based (v3) security.
"""

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SNMPVersion(Enum):
    """Supported SNMP protocol versions."""
    V1 = "v1"
    V2C = "v2c"
    V3 = "v3"


class AuthProtocol(Enum):
    """SNMPv3 authentication algorithms."""
    NONE = "NONE"
    MD5 = "MD5"
    SHA = "SHA"
    SHA224 = "SHA224"
    SHA256 = "SHA256"
    SHA384 = "SHA384"
    SHA512 = "SHA512"


class PrivProtocol(Enum):
    """SNMPv3 privacy algorithms."""
    NONE = "NONE"
    DES = "DES"
    AES128 = "AES128"
    AES192 = "AES192"
    AES256 = "AES256"


@dataclass
class SNMPCredential:
    """
    Credential used to talk to a single agent.

    v1/v2c agents only look at ``community``. v3 agents use the
    security name plus the auth/priv algorithm pairs.

    Attributes:
        community: Community string for v1/v2c
        security_name: SNMPv3 user name
        auth_protocol: Authentication algorithm (NONE disables auth)
        auth_password: Authentication passphrase
        priv_protocol: Privacy algorithm (NONE disables encryption)
        priv_password: Privacy passphrase
        context_name: Optional SNMPv3 context
    """
    community: str = "public"
    security_name: Optional[str] = None
    auth_protocol: AuthProtocol = AuthProtocol.NONE
    auth_password: Optional[str] = None
    priv_protocol: PrivProtocol = PrivProtocol.NONE
    priv_password: Optional[str] = None
    context_name: str = ""

    def identity(self, version: SNMPVersion) -> str:
        """
        Return the part of the credential that identifies a session.

        v3 identities cover the user, both algorithms, the context and a
        digest of the passphrases, so a changed secret opens a new session.
        """
        if version != SNMPVersion.V3:
            return self.community
        secrets = f"{self.auth_password or ''}\x00{self.priv_password or ''}"
        digest = hashlib.sha256(secrets.encode("utf-8")).hexdigest()[:16]
        return ":".join((
            self.security_name or "",
            self.auth_protocol.value,
            self.priv_protocol.value,
            self.context_name,
            digest,
        ))

    def to_dict(self) -> dict:
        return {
            "community": self.community,
            "security_name": self.security_name,
            "auth_protocol": self.auth_protocol.value,
            "auth_password": self.auth_password,
            "priv_protocol": self.priv_protocol.value,
            "priv_password": self.priv_password,
            "context_name": self.context_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SNMPCredential":
        return cls(
            community=data.get("community") or "public",
            security_name=data.get("security_name"),
            auth_protocol=AuthProtocol(data.get("auth_protocol") or "NONE"),
            auth_password=data.get("auth_password"),
            priv_protocol=PrivProtocol(data.get("priv_protocol") or "NONE"),
            priv_password=data.get("priv_password"),
            context_name=data.get("context_name") or "",
        )
