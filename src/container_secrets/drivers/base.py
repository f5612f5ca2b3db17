"""
Secrets Driver Interface

A driver stores the raw bytes of secrets, keyed by secret ID. Drivers
know nothing about names; name uniqueness belongs to the manager.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..process import DEFAULT_TIMEOUT


class Driver(ABC):
    """
    Abstract base class for secret drivers.

    Implementations validate every ID with ``validate_key`` before it is
    used in a path or command.
    """

    driver_type: str = "base"

    def __init__(self, options: Optional[Dict[str, str]] = None, timeout: Optional[float] = DEFAULT_TIMEOUT):
        """
        Initialize the driver.

        Args:
            options: Driver-specific options (never secret data)
            timeout: Seconds a driver subprocess may run before it is killed
        """
        self.options = dict(options or {})
        self.timeout = timeout

    @abstractmethod
    def store(self, secret_id: str, data: bytes) -> None:
        """
        Store data under a new ID.

        Raises:
            InvalidKey: If the ID is not a safe key
            AlreadyExists: If the ID already has data (never overwritten)
            DriverError: If the backend fails
        """

    @abstractmethod
    def lookup(self, secret_id: str) -> bytes:
        """
        Return the data stored under an ID.

        Raises:
            InvalidKey: If the ID is not a safe key
            NotFound: If there is no data for the ID
            DriverError: If the backend fails
        """

    @abstractmethod
    def delete(self, secret_id: str) -> None:
        """
        Remove the data stored under an ID.

        Raises:
            InvalidKey: If the ID is not a safe key
            NotFound: If there is no data for the ID
            DriverError: If the backend fails
        """

    @abstractmethod
    def list(self) -> List[str]:
        """
        List the IDs the backend holds data for.

        Raises:
            DriverError: If the backend fails
        """
