"""File driver: one owner-only file per secret ID."""

import os
from pathlib import Path
from typing import Dict, List, Optional

from ..errors import AlreadyExists, DriverError, InvalidDriver, NotFound
from ..process import DEFAULT_TIMEOUT
from ..validation import validate_key
from .base import Driver


class FileDriver(Driver):
    """
    Stores each secret as ``<path>/<id>``.

    Options:
        path: Root directory for secret files (required)
    """

    driver_type = "file"

    def __init__(self, options: Optional[Dict[str, str]] = None, timeout: Optional[float] = DEFAULT_TIMEOUT):
        super().__init__(options, timeout)
        path = self.options.get("path")
        if not path:
            raise InvalidDriver("file driver requires a 'path' option", driver=self.driver_type)
        self.path = Path(path).expanduser()

    def _secret_path(self, secret_id: str) -> Path:
        validate_key(secret_id)
        return self.path / secret_id

    def _error(self, operation: str, secret_id: Optional[str], e: OSError) -> DriverError:
        target = f"{operation} {secret_id}" if secret_id else operation
        return DriverError(
            f"{target}: {e}",
            operation=operation,
            secret_id=secret_id,
            driver=self.driver_type,
        )

    def store(self, secret_id: str, data: bytes) -> None:
        target = self._secret_path(secret_id)
        try:
            self.path.mkdir(mode=0o700, parents=True, exist_ok=True)
            # O_EXCL: an existing file is never overwritten
            fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError:
            raise AlreadyExists(
                f"{secret_id}: secret data already exists", secret_id=secret_id, driver=self.driver_type
            )
        except OSError as e:
            raise self._error("store", secret_id, e) from e

        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
        except OSError as e:
            target.unlink(missing_ok=True)
            raise self._error("store", secret_id, e) from e

    def lookup(self, secret_id: str) -> bytes:
        target = self._secret_path(secret_id)
        try:
            return target.read_bytes()
        except FileNotFoundError:
            raise NotFound(f"{secret_id}: no secret data with ID", secret_id=secret_id, driver=self.driver_type)
        except OSError as e:
            raise self._error("lookup", secret_id, e) from e

    def delete(self, secret_id: str) -> None:
        target = self._secret_path(secret_id)
        try:
            target.unlink()
        except FileNotFoundError:
            raise NotFound(f"{secret_id}: no secret data with ID", secret_id=secret_id, driver=self.driver_type)
        except OSError as e:
            raise self._error("delete", secret_id, e) from e

    def list(self) -> List[str]:
        if not self.path.exists():
            return []
        try:
            return sorted(entry.name for entry in self.path.iterdir() if entry.is_file())
        except OSError as e:
            raise self._error("list", None, e) from e
