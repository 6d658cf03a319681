"""
netmon - SNMP network monitoring core

Device polling, trap handling and topology discovery over SNMP.
"""

from .daemon import NetmonDaemon
from .config import load_config

__version__ = "1.0.0"
__all__ = ["NetmonDaemon", "load_config"]
