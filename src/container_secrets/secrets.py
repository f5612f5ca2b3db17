"""Secrets manager: names, IDs and metadata on top of the drivers."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .config import get_default_driver, get_default_secrets_dir, get_driver_timeout
from .drivers import Driver, get_driver
from .errors import (
    AlreadyExists,
    CleanupError,
    ConflictingOptions,
    DriverError,
    NameAlreadyInUse,
    NotFound,
    SecretsError,
)
from .store import MetadataStore, Secret
from .validation import new_id, validate_data, validate_name

logger = logging.getLogger(__name__)

FILE_DRIVER_DIR = "filedriver"
MAX_ID_ATTEMPTS = 10


@dataclass
class StoreOptions:
    """Options for SecretsManager.store()."""

    driver_options: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, str] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)
    replace: bool = False
    ignore_if_exists: bool = False


class SecretsManager:
    """
    Stores, looks up and deletes named secrets.

    Metadata lives under ``path``; secret data goes to the driver named by
    each secret. Mutations hold the exclusive metadata lock from
    validation until commit, so two processes never interleave.
    """

    def __init__(self, path: Union[str, Path, None] = None, timeout: Optional[float] = None):
        self.path = Path(path).expanduser() if path else get_default_secrets_dir()
        self.timeout = timeout if timeout is not None else get_driver_timeout()
        self._store = MetadataStore(self.path)

    def _driver_options(self, driver_type: str, options: Dict[str, str]) -> Dict[str, str]:
        options = dict(options)
        if driver_type == "file" and not options.get("path"):
            options["path"] = str(self.path / FILE_DRIVER_DIR)
        return options

    def _driver(self, driver_type: str, options: Dict[str, str]) -> Driver:
        return get_driver(driver_type, options, self.timeout)

    def _new_id(self) -> str:
        while True:
            secret_id = new_id()
            if not self._store.has_id(secret_id):
                return secret_id
            logger.debug("Secret ID collision on %s, generating another", secret_id)

    def _resolve(self, name_or_id: str) -> Secret:
        """Exact name first, then exact ID, then unambiguous ID prefix."""
        try:
            return self._store.find_by_name(name_or_id)
        except NotFound:
            return self._store.find_by_id(name_or_id)

    def _store_data(self, driver: Driver, data: bytes) -> str:
        """Hand data to the driver under a fresh ID; return the ID."""
        for _ in range(MAX_ID_ATTEMPTS):
            secret_id = self._new_id()
            try:
                driver.store(secret_id, data)
                return secret_id
            except AlreadyExists:
                logger.warning("Driver %s already holds data for %s, generating another ID",
                               driver.driver_type, secret_id)
        raise AlreadyExists(
            f"could not find a free secret ID after {MAX_ID_ATTEMPTS} attempts",
            driver=driver.driver_type,
        )

    def _rollback(self, driver: Driver, secret: Secret, error: Exception) -> None:
        logger.warning("Metadata write for %s failed, removing driver data %s", secret.name, secret.id)
        try:
            driver.delete(secret.id)
        except SecretsError as cleanup_error:
            logger.error("Rollback of %s on driver %s failed: %s", secret.id, secret.driver, cleanup_error)
            raise CleanupError(
                f"{secret.name}: storing metadata failed ({error}) and removing "
                f"driver data {secret.id} failed ({cleanup_error}); data is orphaned",
                secret_name=secret.name,
                secret_id=secret.id,
                driver=secret.driver,
            ) from cleanup_error

    def _remove_replaced_data(self, old: Secret, new: Secret) -> None:
        try:
            self._driver(old.driver, old.driver_options).delete(old.id)
        except NotFound:
            logger.warning("Replaced secret %s had no driver data for %s", old.name, old.id)
        except SecretsError as e:
            logger.error("Removing replaced data %s on driver %s failed: %s", old.id, old.driver, e)
            raise CleanupError(
                f"{new.name}: replaced by {new.id}, but removing old driver data "
                f"{old.id} failed ({e}); data is orphaned",
                secret_name=old.name,
                secret_id=old.id,
                driver=old.driver,
            ) from e

    def store(
        self,
        name: str,
        data: bytes,
        driver_type: Optional[str] = None,
        options: Optional[StoreOptions] = None,
    ) -> str:
        """
        Store a secret and return its ID.

        With ``replace`` an existing secret of the same name is swapped for
        the new one (new ID, original creation time); its data is removed
        only after the new data is stored and committed. With
        ``ignore_if_exists`` an existing secret's ID is returned untouched.

        Raises:
            ConflictingOptions: replace and ignore_if_exists both set
            InvalidName, InvalidData, InvalidDriver: before any side effect
            NameAlreadyInUse: name taken and neither option set
            DriverError: the driver failed; no metadata was written
            CleanupError: a compensating delete failed
        """
        options = options or StoreOptions()
        if options.replace and options.ignore_if_exists:
            raise ConflictingOptions(
                "replace and ignore_if_exists are mutually exclusive", secret_name=name
            )

        validate_name(name)
        validate_data(data)
        driver_type = driver_type or get_default_driver()
        driver_options = self._driver_options(driver_type, options.driver_options)
        driver = self._driver(driver_type, driver_options)

        with self._store.transaction():
            try:
                existing = self._store.find_by_name(name)
            except NotFound:
                existing = None

            if existing is not None:
                if options.ignore_if_exists:
                    logger.debug("Secret %s exists as %s, ignoring", name, existing.id)
                    return existing.id
                if not options.replace:
                    raise NameAlreadyInUse(f"{name}: secret name in use", secret_name=name)

            secret_id = self._store_data(driver, data)

            now = datetime.now(timezone.utc)
            secret = Secret(
                id=secret_id,
                name=name,
                driver=driver_type,
                driver_options=driver_options,
                metadata=dict(options.metadata),
                labels=dict(options.labels),
                created_at=existing.created_at if existing is not None else now,
                updated_at=now,
            )

            try:
                if existing is not None:
                    self._store.replace(existing.id, secret)
                else:
                    self._store.add(secret)
            except SecretsError as e:
                self._rollback(driver, secret, e)
                raise

            if existing is not None:
                logger.info("Replaced secret %s: %s -> %s", name, existing.id, secret_id)
                self._remove_replaced_data(existing, secret)
            else:
                logger.info("Stored secret %s as %s", name, secret_id)

        return secret_id

    def lookup(self, name_or_id: str) -> Secret:
        """Return the metadata of a secret by name, ID or ID prefix."""
        with self._store.snapshot():
            return self._resolve(name_or_id)

    def lookup_secret_data(self, name_or_id: str) -> Tuple[Secret, bytes]:
        """Return a secret's metadata and its data."""
        with self._store.snapshot():
            secret = self._resolve(name_or_id)
            data = self._driver(secret.driver, secret.driver_options).lookup(secret.id)
        return secret, data

    def exists(self, name_or_id: str) -> bool:
        try:
            self.lookup(name_or_id)
        except NotFound:
            return False
        return True

    def delete(self, name_or_id: str) -> str:
        """
        Delete a secret and its driver data; return the removed ID.

        The driver data goes first. If the driver fails, the metadata is
        left as it was.
        """
        with self._store.transaction():
            secret = self._resolve(name_or_id)
            driver = self._driver(secret.driver, secret.driver_options)
            try:
                driver.delete(secret.id)
            except NotFound as e:
                raise DriverError(
                    f"{secret.name}: driver {secret.driver} has no data for {secret.id}",
                    operation="delete",
                    secret_id=secret.id,
                    driver=secret.driver,
                ) from e
            self._store.remove(secret.id)

        logger.info("Deleted secret %s (%s)", secret.name, secret.id)
        return secret.id

    def list(self) -> List[Secret]:
        """All secret metadata records."""
        return self._store.all()
