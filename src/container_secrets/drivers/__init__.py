"""
Secret drivers.

Registry of available drivers, keyed by driver type.
"""

from typing import Dict, Optional, Type

from ..errors import InvalidDriver
from ..process import DEFAULT_TIMEOUT
from .base import Driver
from .file import FileDriver
from .passdriver import PassDriver
from .shell import ShellDriver

DRIVERS: Dict[str, Type[Driver]] = {
    "file": FileDriver,
    "pass": PassDriver,
    "shell": ShellDriver,
}


def get_driver(
    driver_type: str,
    options: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
) -> Driver:
    """Build the driver registered under ``driver_type``."""
    driver_class = DRIVERS.get(driver_type)
    if driver_class is None:
        raise InvalidDriver(
            f"unknown secrets driver {driver_type!r} (available: {', '.join(sorted(DRIVERS))})",
            driver=driver_type,
        )
    return driver_class(options, timeout)


__all__ = ["DRIVERS", "Driver", "FileDriver", "PassDriver", "ShellDriver", "get_driver"]
