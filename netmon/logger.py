"""
Logging setup for the netmon daemon.

The file handler keeps plain text; the console handler colours the level
and the ``netmon.<component>`` part of the logger name.
"""

import logging
import sys
from pathlib import Path
from typing import Dict, Optional

import colorama

LOG_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Third-party loggers that flood DEBUG output with per-packet detail
QUIET_LIBRARIES = {
    'pysnmp': logging.WARNING,
    'pyasn1': logging.WARNING,
    'aiosqlite': logging.INFO,
    'asyncio': logging.INFO,
}


class ConsoleFormatter(logging.Formatter):
    """Colours severity and the netmon component on console output."""

    LEVEL_COLORS = {
        'DEBUG': colorama.Fore.CYAN,
        'INFO': colorama.Fore.GREEN,
        'WARNING': colorama.Fore.YELLOW,
        'ERROR': colorama.Fore.RED,
        'CRITICAL': colorama.Fore.RED + colorama.Style.BRIGHT,
    }
    COMPONENT_COLOR = colorama.Fore.MAGENTA
    RESET = colorama.Style.RESET_ALL

    def format(self, record):
        line = super().format(record)

        # the name is coloured first; the level replacement consumes its leading "| "
        if component_of(record.name):
            line = line.replace(f"| {record.name} |",
                                f"| {self.COMPONENT_COLOR}{record.name}{self.RESET} |", 1)

        color = self.LEVEL_COLORS.get(record.levelname)
        if color:
            level = f"| {record.levelname} |"
            line = line.replace(level, f"{color}{level}{self.RESET}", 1)
        return line


def component_of(logger_name: str) -> Optional[str]:
    """
    Return the netmon subsystem a logger belongs to.

    ``netmon.discovery.engine`` -> ``discovery``; non-netmon loggers -> None.
    """
    parts = logger_name.split('.')
    if parts[0] != 'netmon' or len(parts) < 2:
        return None
    return parts[1]


def setup_logging(log_file: str, debug: bool = False,
                  levels: Optional[Dict[str, str]] = None) -> None:
    """
    Configure the root logger for the daemon.

    Args:
        log_file: Path of the log file; parent directories are created.
        debug: DEBUG when True, otherwise INFO.
        levels: Optional per-logger overrides, e.g.
            ``{"netmon.discovery": "DEBUG"}`` from ``logging.levels``.
    """
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    colorama.init()

    log_level = logging.DEBUG if debug else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ConsoleFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(console_handler)

    for name, level in QUIET_LIBRARIES.items():
        logging.getLogger(name).setLevel(max(level, log_level))

    for name, level_name in (levels or {}).items():
        level = logging.getLevelName(str(level_name).upper())
        if not isinstance(level, int):
            root_logger.warning(f"Ignoring unknown log level {level_name!r} for {name}")
            continue
        logging.getLogger(name).setLevel(level)

    root_logger.debug(f"Logging initialized at {logging.getLevelName(log_level)} to {log_file}")


def get_logger(name: str) -> logging.Logger:
    """Return the logger for ``name`` (typically ``__name__``)."""
    return logging.getLogger(name)
