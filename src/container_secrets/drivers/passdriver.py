"""
Pass Driver

Keeps secrets gpg-encrypted in a pass-style store: each ID becomes
``<root>/<id>.gpg``, encrypted to ``key`` with an isolated gpg home.
Encryption itself is entirely gpg's business.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

from ..errors import AlreadyExists, DriverError, InvalidKey, NotFound
from ..process import DEFAULT_TIMEOUT, ProcessResult, run_command
from ..validation import MAX_DATA_SIZE, validate_key
from .base import Driver

logger = logging.getLogger(__name__)

DEFAULT_ROOT = "~/.password-store"
DEFAULT_GPG_HOME = "~/.gnupg"


class PassDriver(Driver):
    """
    gpg-backed secrets driver.

    Options:
        root: Store directory (default: ~/.password-store)
        key: gpg key ID/email to encrypt to (default: --default-recipient-self)
        gpghomedir: gpg home directory (default: ~/.gnupg)
    """

    driver_type = "pass"
    gpg_binary = "gpg"

    def __init__(self, options: Optional[Dict[str, str]] = None, timeout: Optional[float] = DEFAULT_TIMEOUT):
        super().__init__(options, timeout)
        self.root = Path(self.options.get("root") or DEFAULT_ROOT).expanduser().resolve()
        self.key = self.options.get("key", "")
        self.gpg_home = Path(self.options.get("gpghomedir") or DEFAULT_GPG_HOME).expanduser()

    def gpg(
        self,
        *args: str,
        input: Optional[bytes] = None,
        max_output: Optional[int] = None,
        operation: Optional[str] = None,
        secret_id: Optional[str] = None,
    ) -> ProcessResult:
        """Run gpg in batch mode against the driver's gpg home."""
        argv = [self.gpg_binary, "--homedir", str(self.gpg_home), "--batch", *args]
        return run_command(
            argv,
            input=input,
            timeout=self.timeout,
            max_output=max_output,
            driver=self.driver_type,
            operation=operation,
            secret_id=secret_id,
        )

    def _entry_path(self, secret_id: str) -> Path:
        validate_key(secret_id)
        path = (self.root / f"{secret_id}.gpg").resolve()
        # second check: the resolved entry must sit directly in root
        if path.parent != self.root:
            raise InvalidKey(f"invalid key {secret_id!r}: outside store root", secret_id=secret_id)
        return path

    def _failed(self, operation: str, secret_id: Optional[str], result: ProcessResult) -> DriverError:
        target = f"{operation} {secret_id}" if secret_id else operation
        return DriverError(
            f"{target}: gpg exited with status {result.returncode}",
            operation=operation,
            secret_id=secret_id,
            driver=self.driver_type,
            returncode=result.returncode,
            stderr=result.stderr,
        )

    def store(self, secret_id: str, data: bytes) -> None:
        path = self._entry_path(secret_id)
        if path.exists():
            raise AlreadyExists(
                f"{secret_id}: secret data already exists", secret_id=secret_id, driver=self.driver_type
            )

        try:
            self.root.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            raise DriverError(
                f"store {secret_id}: {e}", operation="store", secret_id=secret_id, driver=self.driver_type
            ) from e

        recipient = ["-r", self.key] if self.key else ["--default-recipient-self"]
        logger.debug("Encrypting %s to %s", secret_id, self.key or "default recipient")
        try:
            result = self.gpg(
                "--encrypt", *recipient, "-o", str(path),
                input=data, operation="store", secret_id=secret_id,
            )
        except BaseException:
            path.unlink(missing_ok=True)
            raise
        if not result.ok:
            path.unlink(missing_ok=True)
            raise self._failed("store", secret_id, result)

    def lookup(self, secret_id: str) -> bytes:
        path = self._entry_path(secret_id)
        if not path.exists():
            raise NotFound(f"{secret_id}: no secret data with ID", secret_id=secret_id, driver=self.driver_type)

        result = self.gpg(
            "--decrypt", str(path),
            max_output=MAX_DATA_SIZE, operation="lookup", secret_id=secret_id,
        )
        if not result.ok:
            raise self._failed("lookup", secret_id, result)
        return result.stdout

    def delete(self, secret_id: str) -> None:
        path = self._entry_path(secret_id)
        try:
            path.unlink()
        except FileNotFoundError:
            raise NotFound(f"{secret_id}: no secret data with ID", secret_id=secret_id, driver=self.driver_type)
        except OSError as e:
            raise DriverError(
                f"delete {secret_id}: {e}", operation="delete", secret_id=secret_id, driver=self.driver_type
            ) from e

    def list(self) -> List[str]:
        if not self.root.exists():
            return []
        try:
            return sorted(entry.stem for entry in self.root.glob("*.gpg") if entry.is_file())
        except OSError as e:
            raise DriverError(f"list: {e}", operation="list", driver=self.driver_type) from e
