"""Cross-process lock for the metadata file.

Readers take a shared flock, writers an exclusive one. Each writer stamps
the lock file with a fresh "last writer" token; a holder compares the
token with the one it saw last to learn whether another process wrote
in between.
"""

import fcntl
import itertools
import os
import struct
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

TOKEN_SIZE = 64

_counter = itertools.count(1)


def new_writer_token() -> bytes:
    """(time, per-process counter, pid) padded with random bytes."""
    head = struct.pack("<QQI", time.time_ns(), next(_counter), os.getpid())
    return head + os.urandom(TOKEN_SIZE - len(head))


class LockFile:
    """flock-based shared/exclusive lock with change detection."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._fd: Optional[int] = None
        self._exclusive = False
        self._last_token: Optional[bytes] = None

    @property
    def locked(self) -> bool:
        return self._fd is not None

    @property
    def exclusive_held(self) -> bool:
        return self._fd is not None and self._exclusive

    @contextmanager
    def exclusive(self) -> Iterator["LockFile"]:
        with self._acquire(fcntl.LOCK_EX):
            yield self

    @contextmanager
    def shared(self) -> Iterator["LockFile"]:
        with self._acquire(fcntl.LOCK_SH):
            yield self

    @contextmanager
    def _acquire(self, mode: int) -> Iterator[None]:
        if self._fd is not None:
            raise RuntimeError(f"lock already held: {self.path}")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o600)
        try:
            fcntl.flock(fd, mode)
            self._fd = fd
            self._exclusive = mode == fcntl.LOCK_EX
            try:
                yield
            finally:
                self._fd = None
                self._exclusive = False
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def modified(self) -> bool:
        """
        Report whether another writer touched the lock since we last looked.

        Must be called with the lock held. The first call always reports
        True, so callers load their state at least once.
        """
        if self._fd is None:
            raise RuntimeError(f"lock not held: {self.path}")

        current = os.pread(self._fd, TOKEN_SIZE, 0)
        changed = self._last_token is None or current != self._last_token
        self._last_token = current
        return changed

    def touch(self) -> None:
        """Record a write. Requires the exclusive lock."""
        if not self.exclusive_held:
            raise RuntimeError(f"exclusive lock not held: {self.path}")

        token = new_writer_token()
        os.pwrite(self._fd, token, 0)
        self._last_token = token

    def forget(self) -> None:
        """Drop the remembered token so the next ``modified()`` reports True."""
        self._last_token = None
