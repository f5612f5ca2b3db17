"""
Shell Driver

Runs user-supplied commands for each operation. The secret ID reaches the
command only through the SECRET_ID environment variable, never through the
command text.

Exit status convention:
    store, list:     non-zero exit is a DriverError
    lookup, delete:  non-zero exit means the ID has no data (NotFound)
"""

import logging
import os
from typing import Dict, List, Optional

from ..errors import AlreadyExists, DriverError, InvalidDriver, NotFound
from ..process import DEFAULT_TIMEOUT, ProcessResult, run_command
from ..validation import MAX_DATA_SIZE, validate_key
from .base import Driver

logger = logging.getLogger(__name__)

SECRET_ID_ENV = "SECRET_ID"
SHELL = "/bin/sh"
COMMANDS = ("store", "lookup", "list", "delete")
MAX_LIST_OUTPUT = 16 * 1024 * 1024


class ShellDriver(Driver):
    """
    Secrets driver built from four shell command templates.

    Options:
        store:  reads the secret from stdin, e.g. ``cat - > /dir/$SECRET_ID``
        lookup: writes the secret to stdout, e.g. ``cat /dir/$SECRET_ID``
        list:   prints one ID per line, e.g. ``ls /dir``
        delete: removes the secret, e.g. ``rm /dir/$SECRET_ID``
    """

    driver_type = "shell"

    def __init__(self, options: Optional[Dict[str, str]] = None, timeout: Optional[float] = DEFAULT_TIMEOUT):
        super().__init__(options, timeout)
        missing = [name for name in COMMANDS if not self.options.get(name)]
        if missing:
            raise InvalidDriver(
                f"shell driver requires option(s): {', '.join(missing)}", driver=self.driver_type
            )
        self.commands = {name: self.options[name] for name in COMMANDS}

    def _run(
        self,
        operation: str,
        secret_id: Optional[str] = None,
        data: Optional[bytes] = None,
        max_output: Optional[int] = None,
    ) -> ProcessResult:
        env = os.environ.copy()
        if secret_id is not None:
            validate_key(secret_id)
            env[SECRET_ID_ENV] = secret_id
        else:
            env.pop(SECRET_ID_ENV, None)

        return run_command(
            [SHELL, "-c", self.commands[operation]],
            input=data,
            env=env,
            timeout=self.timeout,
            max_output=max_output,
            driver=self.driver_type,
            operation=operation,
            secret_id=secret_id,
        )

    def _failed(self, operation: str, secret_id: Optional[str], result: ProcessResult) -> DriverError:
        target = f"{operation} {secret_id}" if secret_id else operation
        return DriverError(
            f"{target}: command exited with status {result.returncode}",
            operation=operation,
            secret_id=secret_id,
            driver=self.driver_type,
            returncode=result.returncode,
            stderr=result.stderr,
        )

    def store(self, secret_id: str, data: bytes) -> None:
        # never overwrite existing data
        if self._run("lookup", secret_id, max_output=MAX_DATA_SIZE).ok:
            raise AlreadyExists(
                f"{secret_id}: secret data already exists", secret_id=secret_id, driver=self.driver_type
            )

        result = self._run("store", secret_id, data)
        if not result.ok:
            raise self._failed("store", secret_id, result)

    def lookup(self, secret_id: str) -> bytes:
        result = self._run("lookup", secret_id, max_output=MAX_DATA_SIZE)
        if not result.ok:
            logger.debug("lookup %s exited %d: %s", secret_id, result.returncode, result.stderr)
            raise NotFound(f"{secret_id}: no secret data with ID", secret_id=secret_id, driver=self.driver_type)
        return result.stdout

    def delete(self, secret_id: str) -> None:
        result = self._run("delete", secret_id)
        if not result.ok:
            logger.debug("delete %s exited %d: %s", secret_id, result.returncode, result.stderr)
            raise NotFound(f"{secret_id}: no secret data with ID", secret_id=secret_id, driver=self.driver_type)

    def list(self) -> List[str]:
        result = self._run("list", max_output=MAX_LIST_OUTPUT)
        if not result.ok:
            raise self._failed("list", None, result)

        ids = []
        for line in result.stdout.decode(errors="replace").splitlines():
            secret_id = line.strip()
            if secret_id:
                ids.append(secret_id)
        return ids
