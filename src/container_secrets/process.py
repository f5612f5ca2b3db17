"""Subprocess runner shared by the pass and shell drivers."""

import logging
import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import BinaryIO, Dict, List, Optional, Sequence, Union

from .errors import DriverError, DriverTimeout

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0
CHUNK_SIZE = 64 * 1024
# stderr only feeds error messages
MAX_STDERR = 64 * 1024


@dataclass
class ProcessResult:
    """Exit status and captured output of a finished command."""

    returncode: int
    stdout: bytes
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _kill_group(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


class _Reader(threading.Thread):
    """Drains a pipe in chunks, keeping at most ``limit`` bytes."""

    def __init__(self, pipe: BinaryIO, limit: Optional[int], on_overflow=None):
        super().__init__(daemon=True)
        self.pipe = pipe
        self.limit = limit
        self.on_overflow = on_overflow
        self.chunks: List[bytes] = []
        self.size = 0
        self.overflowed = False

    def run(self) -> None:
        with self.pipe:
            while True:
                chunk = self.pipe.read(CHUNK_SIZE)
                if not chunk:
                    return
                if self.limit is not None and self.size + len(chunk) > self.limit:
                    self.overflowed = True
                    if self.on_overflow is not None:
                        self.on_overflow()
                        return
                    # keep draining so the child never blocks on a full pipe
                    continue
                self.chunks.append(chunk)
                self.size += len(chunk)

    def data(self) -> bytes:
        return b"".join(self.chunks)


def _write_input(pipe: BinaryIO, data: bytes) -> None:
    try:
        with pipe:
            for start in range(0, len(data), CHUNK_SIZE):
                pipe.write(data[start:start + CHUNK_SIZE])
    except BrokenPipeError:
        # child exited without reading everything; its exit status tells the story
        pass


def run_command(
    argv: Sequence[str],
    input: Union[bytes, BinaryIO, None] = None,
    stdout: Optional[BinaryIO] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
    max_output: Optional[int] = None,
    driver: Optional[str] = None,
    operation: Optional[str] = None,
    secret_id: Optional[str] = None,
) -> ProcessResult:
    """
    Run a command to completion.

    ``input`` is either bytes fed to stdin in chunks or an open binary file
    handed to the child as its stdin. When ``stdout`` is an open binary
    file the child writes straight into it and ``ProcessResult.stdout``
    is empty; otherwise stdout is read incrementally, and a child that
    writes more than ``max_output`` bytes is killed with a DriverError.

    The child runs in its own session. On timeout the whole process group
    is killed and DriverTimeout is raised. A non-zero exit is not an
    error here; callers decide what it means.
    """
    if isinstance(input, (bytes, bytearray)):
        stdin_arg, data = subprocess.PIPE, bytes(input)
    elif input is None:
        stdin_arg, data = subprocess.DEVNULL, None
    else:
        stdin_arg, data = input, None

    try:
        proc = subprocess.Popen(
            list(argv),
            stdin=stdin_arg,
            stdout=stdout if stdout is not None else subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=env,
            start_new_session=True,
        )
    except OSError as e:
        raise DriverError(
            f"{argv[0]}: failed to start: {e}",
            operation=operation,
            secret_id=secret_id,
            driver=driver,
        ) from e

    threads: List[threading.Thread] = []
    out_reader = None
    if proc.stdout is not None:
        out_reader = _Reader(proc.stdout, max_output, on_overflow=lambda: _kill_group(proc))
        threads.append(out_reader)
    err_reader = _Reader(proc.stderr, MAX_STDERR)
    threads.append(err_reader)
    if proc.stdin is not None:
        threads.append(threading.Thread(target=_write_input, args=(proc.stdin, data), daemon=True))

    deadline = None if timeout is None else time.monotonic() + timeout
    try:
        for thread in threads:
            thread.start()
        proc.wait(timeout=timeout)
        # a leftover grandchild may still hold the pipes open
        for thread in threads:
            thread.join(None if deadline is None else max(deadline - time.monotonic(), 0))
            if thread.is_alive():
                raise subprocess.TimeoutExpired(list(argv), timeout)
    except subprocess.TimeoutExpired:
        _kill_group(proc)
        proc.wait()
        for thread in threads:
            thread.join()
        logger.warning("%s %s timed out after %ss (pid %d killed)", driver, operation, timeout, proc.pid)
        raise DriverTimeout(
            f"{operation} timed out after {timeout}s",
            operation=operation,
            secret_id=secret_id,
            driver=driver,
        )
    except BaseException:
        _kill_group(proc)
        proc.wait()
        raise

    if out_reader is not None and out_reader.overflowed:
        logger.warning("%s %s: output exceeded %d bytes (pid %d killed)", driver, operation, max_output, proc.pid)
        raise DriverError(
            f"{operation}: command output exceeds {max_output} bytes",
            operation=operation,
            secret_id=secret_id,
            driver=driver,
        )

    return ProcessResult(
        returncode=proc.returncode,
        stdout=out_reader.data() if out_reader is not None else b"",
        stderr=err_reader.data().decode(errors="replace").strip(),
    )
