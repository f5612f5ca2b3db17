"""Metadata store: the on-disk record set of secrets.

All records live in one YAML file next to a lock file. Every locked
operation reloads the file first if another process wrote since our last
look, so nothing acts on a stale snapshot.
"""

import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List

import yaml

from .errors import AlreadyExists, Ambiguous, MetadataError, NameAlreadyInUse, NotFound
from .lock import LockFile
from .validation import is_id_shaped

logger = logging.getLogger(__name__)

METADATA_FILE = "secrets.yaml"
LOCK_FILE = "secrets.lock"


@dataclass
class Secret:
    """Metadata record for one secret. Never holds the secret data."""

    id: str
    name: str
    driver: str
    driver_options: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, str] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)
    created_at: datetime = None
    updated_at: datetime = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "driver": self.driver,
            "driver_options": dict(self.driver_options),
            "metadata": dict(self.metadata),
            "labels": dict(self.labels),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Secret":
        def _time(value):
            if value is None or isinstance(value, datetime):
                return value
            return datetime.fromisoformat(value)

        return cls(
            id=data["id"],
            name=data["name"],
            driver=data["driver"],
            driver_options={str(k): str(v) for k, v in (data.get("driver_options") or {}).items()},
            metadata={str(k): str(v) for k, v in (data.get("metadata") or {}).items()},
            labels={str(k): str(v) for k, v in (data.get("labels") or {}).items()},
            created_at=_time(data.get("created_at")),
            updated_at=_time(data.get("updated_at")),
        )


class MetadataStore:
    """
    Record set of Secret entries guarded by a cross-process lock.

    Reads take the shared lock, writes the exclusive one. ``transaction()``
    holds the exclusive lock across several calls; the individual methods
    join an already held lock instead of taking their own.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self.path = self.root / METADATA_FILE
        self._lock = LockFile(self.root / LOCK_FILE)
        self._mutex = threading.RLock()
        self._secrets: Dict[str, Secret] = {}

    @contextmanager
    def transaction(self) -> Iterator["MetadataStore"]:
        """Exclusive lock for a read-modify-write sequence."""
        with self._locked(exclusive=True):
            yield self

    @contextmanager
    def snapshot(self) -> Iterator["MetadataStore"]:
        """Shared lock for consistent reads."""
        with self._locked(exclusive=False):
            yield self

    @contextmanager
    def _locked(self, exclusive: bool) -> Iterator[None]:
        with self._mutex:
            if self._lock.locked:
                if exclusive and not self._lock.exclusive_held:
                    raise RuntimeError("cannot upgrade a shared metadata lock")
                yield
                return

            self.root.mkdir(mode=0o700, parents=True, exist_ok=True)
            acquire = self._lock.exclusive if exclusive else self._lock.shared
            with acquire():
                if self._lock.modified():
                    try:
                        self._reload()
                    except MetadataError:
                        self._lock.forget()
                        raise
                yield

    def _reload(self) -> None:
        logger.debug("Reloading secrets metadata from %s", self.path)
        if not self.path.exists():
            self._secrets = {}
            return

        try:
            with open(self.path) as f:
                raw = yaml.safe_load(f) or {}
            records = raw.get("secrets") or {}
            self._secrets = {sid: Secret.from_dict(rec) for sid, rec in records.items()}
        except (OSError, yaml.YAMLError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise MetadataError(f"Failed to read secrets metadata {self.path}: {e}") from e

    def _commit(self, secrets: Dict[str, Secret]) -> None:
        """Write the new record set atomically, then adopt it.

        The lock token is stamped before the new file is published, so no
        reader can see the new file while still holding the old token.
        """
        content = {"secrets": {sid: s.to_dict() for sid, s in secrets.items()}}

        fd, temp_name = tempfile.mkstemp(prefix=".secrets-", suffix=".tmp", dir=self.root)
        try:
            with os.fdopen(fd, "w") as f:
                yaml.safe_dump(content, f, default_flow_style=False, sort_keys=False)
                f.flush()
                os.fsync(f.fileno())
            self._lock.touch()
            try:
                os.replace(temp_name, self.path)
            except BaseException:
                # our token no longer describes what we hold in memory
                self._lock.forget()
                raise
        except OSError as e:
            raise MetadataError(f"Failed to write secrets metadata {self.path}: {e}") from e
        finally:
            if os.path.exists(temp_name):
                os.unlink(temp_name)

        self._secrets = secrets

    def _check_unique(self, secrets: Dict[str, Secret], secret: Secret) -> None:
        if secret.id in secrets:
            raise AlreadyExists(
                f"secret ID {secret.id} already in use", secret_id=secret.id, driver=secret.driver
            )
        for existing in secrets.values():
            if existing.name == secret.name:
                raise NameAlreadyInUse(
                    f"{secret.name}: secret name in use", secret_name=secret.name
                )

    def add(self, secret: Secret) -> None:
        with self.transaction():
            self._check_unique(self._secrets, secret)
            secrets = dict(self._secrets)
            secrets[secret.id] = secret
            self._commit(secrets)

    def remove(self, secret_id: str) -> Secret:
        with self.transaction():
            if secret_id not in self._secrets:
                raise NotFound(f"no such secret ID: {secret_id}", secret_id=secret_id)
            secrets = dict(self._secrets)
            removed = secrets.pop(secret_id)
            self._commit(secrets)
            return removed

    def replace(self, old_id: str, secret: Secret) -> Secret:
        """Swap ``old_id`` for ``secret`` in a single write."""
        with self.transaction():
            if old_id not in self._secrets:
                raise NotFound(f"no such secret ID: {old_id}", secret_id=old_id)
            secrets = dict(self._secrets)
            removed = secrets.pop(old_id)
            self._check_unique(secrets, secret)
            secrets[secret.id] = secret
            self._commit(secrets)
            return removed

    def find_by_name(self, name: str) -> Secret:
        with self.snapshot():
            for secret in self._secrets.values():
                if secret.name == name:
                    return secret
        raise NotFound(f"{name}: no such secret", secret_name=name)

    def find_by_id(self, id_or_prefix: str) -> Secret:
        """
        Resolve an exact ID, then an unambiguous ID prefix. Input that does
        not look like an ID at all is matched against names instead.
        """
        with self.snapshot():
            if id_or_prefix in self._secrets:
                return self._secrets[id_or_prefix]

            if not is_id_shaped(id_or_prefix):
                return self.find_by_name(id_or_prefix)

            matches = [sid for sid in self._secrets if sid.startswith(id_or_prefix)]
            if len(matches) > 1:
                raise Ambiguous(
                    f"{id_or_prefix}: prefix matches {len(matches)} secrets",
                    secret_id=id_or_prefix,
                )
            if not matches:
                raise NotFound(f"{id_or_prefix}: no such secret", secret_id=id_or_prefix)
            return self._secrets[matches[0]]

    def has_id(self, secret_id: str) -> bool:
        with self.snapshot():
            return secret_id in self._secrets

    def all(self) -> List[Secret]:
        with self.snapshot():
            return list(self._secrets.values())
