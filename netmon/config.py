"""
Configuration and device loading utilities for netmon.
"""

import logging
import yaml
from typing import Any, Dict, List

from netmon.errors import ConfigError
from netmon.models.credentials import AuthProtocol, PrivProtocol, SNMPCredential, SNMPVersion
from netmon.models.device import Device, DeviceEndpoint
from netmon.models.topology import DiscoveryRequest

logger = logging.getLogger(__name__)


def load_config(path: str) -> Dict[str, Any]:
    """
    Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file

    Returns:
        Dictionary containing the configuration data

    Raises:
        FileNotFoundError: If the configuration file doesn't exist
        yaml.YAMLError: If the YAML file is malformed
    """
    try:
        with open(path, 'r', encoding='utf-8') as file:
            config_data = yaml.safe_load(file)
            return config_data if config_data is not None else {}
    except FileNotFoundError:
        raise FileNotFoundError(f"Configuration file not found: {path}")
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Error parsing YAML file {path}: {e}")


def _enum_value(enum_cls, raw: Any, field: str, context: str):
    # versions are lower-case ("v2c"), algorithm names upper-case ("SHA256")
    text = str(raw).lower() if enum_cls is SNMPVersion else str(raw).upper()
    try:
        return enum_cls(text)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ConfigError(f"Unknown {field} {raw!r} for {context} (expected one of: {allowed})")


def parse_credential(data: Dict[str, Any], context: str) -> SNMPCredential:
    """Build a credential from a device or discovery config mapping."""
    return SNMPCredential(
        community=data.get('community', 'public'),
        security_name=data.get('security_name'),
        auth_protocol=_enum_value(AuthProtocol, data.get('auth_protocol', 'NONE'),
                                  'auth_protocol', context),
        auth_password=data.get('auth_password'),
        priv_protocol=_enum_value(PrivProtocol, data.get('priv_protocol', 'NONE'),
                                  'priv_protocol', context),
        priv_password=data.get('priv_password'),
        context_name=data.get('context_name', ''),
    )


class DeviceLoader:
    """Loader for monitored devices from the ``devices:`` config section."""

    @staticmethod
    def load_devices(config: Dict[str, Any]) -> List[Device]:
        """
        Build devices from configuration.

        Args:
            config: Loaded configuration dictionary

        Returns:
            List of Device objects (not yet persisted)

        Raises:
            ConfigError: On missing addresses or unknown version/algorithm names
        """
        entries = config.get('devices') or []
        if not isinstance(entries, list):
            raise ConfigError("'devices' must be a list")

        devices = []
        for position, entry in enumerate(entries):
            address = entry.get('address') if isinstance(entry, dict) else None
            if not address:
                raise ConfigError(f"Device entry {position} has no address")

            version = _enum_value(SNMPVersion, entry.get('version', 'v2c'), 'version', address)
            if version == SNMPVersion.V3 and not entry.get('security_name'):
                raise ConfigError(f"Device {address} uses v3 but has no security_name")

            endpoint = DeviceEndpoint(
                address=address,
                port=int(entry.get('port', 161)),
                version=version,
                credential=parse_credential(entry, address),
                timeout=float(entry.get('timeout', 5.0)),
                retries=int(entry.get('retries', 3)),
                poll_interval=int(entry.get('poll_interval', 300)),
                enabled=bool(entry.get('enabled', True)),
            )
            devices.append(Device(
                name=entry.get('name', address),
                endpoint=endpoint,
                owner=entry.get('owner'),
                monitoring_enabled=bool(entry.get('monitoring_enabled', True)),
            ))
            logger.info(f"Loaded device: {address}")

        return devices


def build_discovery_request(target: str, config: Dict[str, Any], **overrides) -> DiscoveryRequest:
    """
    Build a discovery request for ``target`` from ``discovery.defaults``
    merged with ``overrides``.
    """
    settings = dict((config.get('discovery') or {}).get('defaults') or {})
    settings.update(overrides)

    if int(settings.get('concurrency', 10)) < 1:
        raise ConfigError(f"Discovery concurrency for {target} must be at least 1")
    if int(settings.get('max_hops', 3)) < 0:
        raise ConfigError(f"Discovery max_hops for {target} must not be negative")

    return DiscoveryRequest(
        target=target,
        use_icmp=bool(settings.get('use_icmp', True)),
        use_snmp=bool(settings.get('use_snmp', True)),
        discover_layer2=bool(settings.get('discover_layer2', True)),
        discover_layer3=bool(settings.get('discover_layer3', True)),
        max_hops=int(settings.get('max_hops', 3)),
        concurrency=int(settings.get('concurrency', 10)),
        version=_enum_value(SNMPVersion, settings.get('version', 'v2c'), 'version', target),
        credential=parse_credential(settings, target),
        port=int(settings.get('port', 161)),
        timeout=float(settings.get('timeout', 1.5)),
        retries=int(settings.get('retries', 2)),
    )
