"""
Helpers for turning raw agent values into display and storage values.
"""

import logging
import re
from typing import Any, Optional

logger = logging.getLogger(__name__)

_HEX_COLON = re.compile(r'^[0-9a-fA-F]{2}(:[0-9a-fA-F]{2})+$')
_HEX_PREFIXED = re.compile(r'^0x([0-9a-fA-F]{2})+$')


def is_hex_format(value: Optional[str]) -> bool:
    """True for '0x0a0b' or '0a:0b' style renderings of binary octets."""
    if not value:
        return False
    return bool(_HEX_PREFIXED.match(value) or _HEX_COLON.match(value))


def _hex_bytes(value: str) -> bytes:
    if value.startswith('0x'):
        return bytes.fromhex(value[2:])
    return bytes.fromhex(value.replace(':', ''))


def parse_hex_string(value: Any) -> Optional[str]:
    """
    Decode a hex-rendered octet string to text.

    Printable ASCII characters are kept, anything else is rendered as
    ``\\xHH``. Values that are not hex renderings are returned unchanged.
    """
    if value is None:
        return None
    text = str(value)
    if not is_hex_format(text):
        return text

    chars = []
    for byte in _hex_bytes(text):
        if 32 <= byte < 127:
            chars.append(chr(byte))
        elif byte == 0:
            continue
        else:
            chars.append(f"\\x{byte:02x}")
    return ''.join(chars)


def format_mac_address(value: Any) -> Optional[str]:
    """
    Format a physical address as ``XX:XX:XX:XX:XX:XX``.

    Accepts ``0x`` prefixed hex, colon/dash separated hex or bare hex.
    Returns None for empty input and the input unchanged when it is not
    six octets long.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    digits = text[2:] if text.startswith('0x') else re.sub(r'[:\-.]', '', text)
    if len(digits) != 12 or not re.fullmatch(r'[0-9a-fA-F]{12}', digits):
        return text
    digits = digits.upper()
    return ':'.join(digits[i:i + 2] for i in range(0, 12, 2))


def parse_hex_ip(value: Any) -> Optional[str]:
    """Decode a 4-octet hex rendering to dotted-quad; other input is returned as text."""
    if value is None:
        return None
    text = str(value)
    if is_hex_format(text):
        octets = _hex_bytes(text)
        if len(octets) == 4:
            return '.'.join(str(b) for b in octets)
    return text


def to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def truncate(value: Optional[str], limit: int, field: str, context: str = "") -> Optional[str]:
    """
    Clip ``value`` to ``limit`` characters, logging a warning when clipped.
    """
    if value is None or len(value) <= limit:
        return value
    logger.warning(
        f"Truncating {field} for {context or 'record'}: {len(value)} chars exceeds limit {limit}"
    )
    return value[:limit]
