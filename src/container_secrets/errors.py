"""Exceptions raised by container-secrets.

Every error carries the secret name, ID and driver type when they are known.
Secret data is never part of a message.
"""

from typing import Optional


class SecretsError(Exception):
    """Base exception for secrets errors."""

    def __init__(
        self,
        message: str,
        secret_name: Optional[str] = None,
        secret_id: Optional[str] = None,
        driver: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.secret_name = secret_name
        self.secret_id = secret_id
        self.driver = driver


class ConfigError(SecretsError):
    """Invalid configuration value."""
    pass


class InvalidName(SecretsError, ValueError):
    """Secret name violates the naming rules."""
    pass


class InvalidKey(SecretsError, ValueError):
    """Driver key could escape the driver's namespace."""
    pass


class InvalidData(SecretsError, ValueError):
    """Secret data is empty or too large."""
    pass


class InvalidDriver(SecretsError):
    """Unknown driver type or unusable driver options."""
    pass


class NameAlreadyInUse(SecretsError):
    """Another secret already has this name."""
    pass


class ConflictingOptions(SecretsError):
    """Replace and IgnoreIfExists were both requested."""
    pass


class NotFound(SecretsError):
    """No secret (or no driver entry) matches."""
    pass


class Ambiguous(SecretsError):
    """An ID prefix matches more than one secret."""
    pass


class AlreadyExists(SecretsError):
    """Driver already holds data for this ID."""
    pass


class MetadataError(SecretsError):
    """Metadata file could not be read or written."""
    pass


class DriverError(SecretsError):
    """A driver operation failed.

    ``operation`` is one of store/lookup/delete/list. ``returncode`` and
    ``stderr`` are set when the failure came from a subprocess.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        secret_id: Optional[str] = None,
        driver: Optional[str] = None,
        returncode: Optional[int] = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message, secret_id=secret_id, driver=driver)
        self.operation = operation
        self.returncode = returncode
        self.stderr = stderr


class DriverTimeout(DriverError):
    """A driver subprocess ran past its timeout and was killed."""
    pass


class CleanupError(SecretsError):
    """A compensating action failed, leaving orphaned driver data."""
    pass
