"""Shared fixtures for container-secrets tests."""

import pytest

from container_secrets.secrets import SecretsManager


@pytest.fixture
def manager(tmp_path):
    """A manager with its metadata under a temp directory."""
    return SecretsManager(tmp_path / "secrets", timeout=10)


@pytest.fixture
def shell_options(tmp_path):
    """Shell driver templates over a temp directory."""
    base = tmp_path / "shell-store"
    base.mkdir()
    return {
        "delete": f"rm {base}/${{SECRET_ID}}",
        "list": f"ls {base}",
        "lookup": f"cat {base}/${{SECRET_ID}} ",
        "store": f"cat - > {base}/${{SECRET_ID}}",
    }
