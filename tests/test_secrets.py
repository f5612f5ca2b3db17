"""Tests for the secrets manager."""

import pytest

from container_secrets.drivers import FileDriver
from container_secrets.errors import (
    Ambiguous,
    CleanupError,
    ConflictingOptions,
    DriverError,
    InvalidData,
    InvalidDriver,
    InvalidName,
    MetadataError,
    NameAlreadyInUse,
    NotFound,
)
from container_secrets.secrets import SecretsManager, StoreOptions
from container_secrets.store import MetadataStore, Secret

DRIVER = "file"


def file_data(manager):
    """IDs the manager's default file driver holds data for."""
    return FileDriver({"path": str(manager.path / "filedriver")}).list()


class TestStoreAndLookup:
    """Basic store/lookup behaviour."""

    def test_store_and_lookup_data(self, manager):
        """Stored bytes and metadata come back unchanged."""
        options = StoreOptions(metadata={"immutable": "true"})
        manager.store("mysecret", b"mydata", DRIVER, options)

        assert manager.lookup("mysecret").name == "mysecret"
        secret, data = manager.lookup_secret_data("mysecret")
        assert data == b"mydata"
        assert secret.metadata == {"immutable": "true"}

    def test_first_creation_times_equal(self, manager):
        manager.store("mysecret", b"mydata", DRIVER)
        secret = manager.lookup("mysecret")
        assert secret.created_at == secret.updated_at

    def test_one_char_name(self, manager):
        manager.store("a", b"mydata", DRIVER)
        assert manager.lookup("a").name == "a"

    @pytest.mark.parametrize("name", ["", "a" * 254, "a,b", "a/b", "a=b", "a\x00b", "??", "-a", "a."])
    def test_invalid_names(self, manager, name):
        """Bad names fail before anything is written."""
        with pytest.raises(InvalidName):
            manager.store(name, b"mydata", DRIVER)
        assert manager.list() == []
        assert file_data(manager) == []

    def test_invalid_data(self, manager):
        with pytest.raises(InvalidData):
            manager.store("mysecret", b"", DRIVER)
        assert manager.list() == []

    def test_unknown_driver(self, manager):
        with pytest.raises(InvalidDriver):
            manager.store("mysecret", b"mydata", "vault")
        assert manager.list() == []

    def test_multiple_secrets(self, manager):
        id1 = manager.store("mysecret", b"mydata", DRIVER)
        id2 = manager.store("mysecret2", b"mydata2", DRIVER)

        assert len(manager.list()) == 2
        assert manager.lookup_secret_data(id1)[1] == b"mydata"
        assert manager.lookup_secret_data(id2)[1] == b"mydata2"

    def test_name_may_equal_id_prefix(self, manager):
        """A name that looks like another secret's ID prefix is still allowed."""
        secret_id = manager.store("mysecret", b"mydata", DRIVER)
        manager.store(secret_id[:5], b"other", DRIVER)
        assert manager.lookup(secret_id[:5]).name == secret_id[:5]

    def test_labels_and_driver_options_kept(self, manager, tmp_path):
        path = tmp_path / "elsewhere"
        options = StoreOptions(driver_options={"path": str(path)}, labels={"env": "prod"})
        secret_id = manager.store("mysecret", b"mydata", DRIVER, options)

        secret = manager.lookup(secret_id)
        assert secret.labels == {"env": "prod"}
        assert secret.driver_options == {"path": str(path)}
        assert (path / secret_id).read_bytes() == b"mydata"

    def test_default_file_driver_path(self, manager):
        secret_id = manager.store("mysecret", b"mydata", DRIVER)
        assert manager.lookup(secret_id).driver_options == {"path": str(manager.path / "filedriver")}
        assert file_data(manager) == [secret_id]

    def test_default_driver_from_env(self, manager, monkeypatch):
        monkeypatch.setenv("CONTAINER_SECRETS_DRIVER", "file")
        manager.store("mysecret", b"mydata")
        assert manager.lookup("mysecret").driver == "file"


class TestStoreOptions:
    """The replace / ignore_if_exists table."""

    def test_duplicate_name(self, manager):
        """Second store of a name fails and leaves the original alone."""
        id1 = manager.store("mysecret", b"mydata", DRIVER)
        with pytest.raises(NameAlreadyInUse):
            manager.store("mysecret", b"otherdata", DRIVER)

        assert [s.id for s in manager.list()] == [id1]
        assert manager.lookup_secret_data("mysecret")[1] == b"mydata"
        assert file_data(manager) == [id1]

    def test_replace(self, manager):
        id1 = manager.store("mysecret", b"mydata", DRIVER)
        original = manager.lookup(id1)

        id2 = manager.store("mysecret", b"mydata", DRIVER, StoreOptions(replace=True))
        assert id2 != id1

        replaced = manager.lookup(id2)
        assert replaced.created_at == original.created_at
        assert replaced.updated_at > original.updated_at
        assert replaced.created_at != replaced.updated_at

        with pytest.raises(NotFound):
            manager.lookup_secret_data(id1)
        assert manager.lookup_secret_data(id2)[1] == b"mydata"
        assert file_data(manager) == [id2]
        assert len(manager.list()) == 1

    def test_replace_without_existing_creates(self, manager):
        secret_id = manager.store("mysecret", b"mydata", DRIVER, StoreOptions(replace=True))
        secret = manager.lookup("mysecret")
        assert secret.id == secret_id
        assert secret.created_at == secret.updated_at

    @pytest.mark.parametrize("existing", [True, False])
    def test_conflicting_options(self, manager, existing):
        if existing:
            manager.store("mysecret", b"mydata", DRIVER)
        before = manager.list()

        with pytest.raises(ConflictingOptions):
            manager.store("mysecret", b"new", DRIVER, StoreOptions(replace=True, ignore_if_exists=True))
        assert manager.list() == before

    def test_ignore_if_exists_returns_existing(self, manager):
        id1 = manager.store("mysecret", b"mydata", DRIVER)
        before = manager.lookup(id1)

        id2 = manager.store("mysecret", b"otherdata", DRIVER, StoreOptions(ignore_if_exists=True))
        assert id2 == id1
        assert manager.lookup(id1) == before
        assert manager.lookup_secret_data(id1)[1] == b"mydata"

    def test_ignore_if_exists_creates(self, manager):
        secret_id = manager.store("mysecret", b"mydata", DRIVER, StoreOptions(ignore_if_exists=True))
        assert manager.lookup("mysecret").id == secret_id


class TestLookup:
    """Name, ID and prefix resolution."""

    def test_lookup_by_name(self, manager):
        secret_id = manager.store("mysecret", b"mydata", DRIVER)
        assert manager.lookup("mysecret").id == secret_id

    def test_lookup_by_id_and_prefix(self, manager):
        secret_id = manager.store("mysecret", b"mydata", DRIVER)
        assert manager.lookup(secret_id).id == secret_id
        assert manager.lookup(secret_id[:5]) == manager.lookup(secret_id)

    def test_ambiguous_prefix(self, tmp_path):
        manager = SecretsManager(tmp_path / "secrets")
        store = MetadataStore(manager.path)
        for secret_id, name in (("abc111", "one"), ("abc222", "two")):
            store.add(Secret(id=secret_id, name=name, driver=DRIVER))

        with pytest.raises(Ambiguous):
            manager.lookup("abc")
        assert manager.lookup("abc1").name == "one"

    def test_lookup_bogus(self, manager):
        with pytest.raises(NotFound):
            manager.lookup("bogus")
        assert not manager.exists("bogus")

    def test_exists(self, manager):
        manager.store("mysecret", b"mydata", DRIVER)
        assert manager.exists("mysecret")

    def test_shared_between_managers(self, manager):
        """A second manager on the same path sees the first one's writes."""
        other = SecretsManager(manager.path)
        assert other.list() == []
        secret_id = manager.store("mysecret", b"mydata", DRIVER)
        assert other.lookup_secret_data("mysecret")[1] == b"mydata"
        other.delete(secret_id)
        assert manager.list() == []


class TestDelete:
    """Deleting secrets."""

    def test_delete(self, manager):
        secret_id = manager.store("mysecret", b"mydata", DRIVER)
        assert manager.delete("mysecret") == secret_id

        with pytest.raises(NotFound):
            manager.lookup("mysecret")
        with pytest.raises(NotFound):
            manager.lookup_secret_data("mysecret")
        assert file_data(manager) == []

    def test_delete_not_exist(self, manager):
        manager.store("other", b"mydata", DRIVER)
        before = manager.list()
        with pytest.raises(NotFound):
            manager.delete("mysecret")
        assert manager.list() == before

    def test_driver_failure_keeps_metadata(self, manager, monkeypatch):
        manager.store("mysecret", b"mydata", DRIVER)

        def fail(self, secret_id):
            raise DriverError("disk on fire", operation="delete", secret_id=secret_id, driver="file")

        monkeypatch.setattr(FileDriver, "delete", fail)
        with pytest.raises(DriverError):
            manager.delete("mysecret")
        assert manager.lookup_secret_data("mysecret")[1] == b"mydata"

    def test_missing_driver_data_is_reported(self, manager):
        secret_id = manager.store("mysecret", b"mydata", DRIVER)
        (manager.path / "filedriver" / secret_id).unlink()

        with pytest.raises(DriverError):
            manager.delete("mysecret")
        assert manager.exists("mysecret")


class TestFailures:
    """No partial state on failures."""

    def test_driver_store_failure_writes_no_metadata(self, manager, shell_options):
        options = StoreOptions(driver_options=dict(shell_options, store="exit 1"))
        with pytest.raises(DriverError):
            manager.store("mysecret", b"mydata", "shell", options)
        assert manager.list() == []

    def test_metadata_failure_rolls_back_driver(self, manager, monkeypatch):
        def fail(self, secret):
            raise MetadataError("read-only filesystem")

        monkeypatch.setattr(MetadataStore, "add", fail)
        with pytest.raises(MetadataError):
            manager.store("mysecret", b"mydata", DRIVER)
        assert file_data(manager) == []

    def test_failed_rollback_is_reported(self, manager, monkeypatch):
        def fail_add(self, secret):
            raise MetadataError("read-only filesystem")

        def fail_delete(self, secret_id):
            raise DriverError("disk on fire", operation="delete", secret_id=secret_id, driver="file")

        monkeypatch.setattr(MetadataStore, "add", fail_add)
        monkeypatch.setattr(FileDriver, "delete", fail_delete)
        with pytest.raises(CleanupError) as exc_info:
            manager.store("mysecret", b"mydata", DRIVER)
        assert exc_info.value.secret_id == file_data(manager)[0]

    def test_replace_keeps_old_data_when_new_store_fails(self, manager, shell_options):
        id1 = manager.store("mysecret", b"mydata", DRIVER)
        options = StoreOptions(driver_options=dict(shell_options, store="exit 1"), replace=True)

        with pytest.raises(DriverError):
            manager.store("mysecret", b"newdata", "shell", options)
        assert manager.lookup("mysecret").id == id1
        assert manager.lookup_secret_data("mysecret")[1] == b"mydata"

    def test_replace_cleanup_failure_is_reported(self, manager, monkeypatch):
        id1 = manager.store("mysecret", b"mydata", DRIVER)

        def fail(self, secret_id):
            raise DriverError("disk on fire", operation="delete", secret_id=secret_id, driver="file")

        monkeypatch.setattr(FileDriver, "delete", fail)
        with pytest.raises(CleanupError) as exc_info:
            manager.store("mysecret", b"newdata", DRIVER, StoreOptions(replace=True))
        assert exc_info.value.secret_id == id1
        assert manager.lookup_secret_data("mysecret")[1] == b"newdata"


class TestDrivers:
    """Manager behaviour across drivers."""

    def test_shell_driver(self, manager, shell_options):
        options = StoreOptions(driver_options=shell_options)
        secret_id = manager.store("mysecret", b"mydata", "shell", options)
        assert manager.lookup_secret_data("mysecret")[1] == b"mydata"
        assert manager.delete(secret_id) == secret_id
        assert manager.list() == []

    def test_mixed_drivers_replace(self, manager, shell_options):
        """Replacing moves the secret to the new driver and cleans the old one."""
        id1 = manager.store("mysecret", b"mydata", DRIVER)
        id2 = manager.store(
            "mysecret", b"newdata", "shell",
            StoreOptions(driver_options=shell_options, replace=True),
        )
        assert file_data(manager) == []
        assert manager.lookup(id2).driver == "shell"
        with pytest.raises(NotFound):
            manager.lookup(id1)

