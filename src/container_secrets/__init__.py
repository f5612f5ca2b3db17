"""
container-secrets - named secret storage for container tooling.

Secrets get a stable human name and an immutable random ID. Metadata lives
in a single locked record file; the secret bytes are handed to a driver:

- file: one owner-only file per ID
- pass: gpg-encrypted entries in a pass-style store
- shell: user-supplied store/lookup/list/delete commands

Requires: gpg (for the pass driver only)
"""

__version__ = "0.1.0"

from .errors import (
    AlreadyExists,
    Ambiguous,
    CleanupError,
    ConfigError,
    ConflictingOptions,
    DriverError,
    DriverTimeout,
    InvalidData,
    InvalidDriver,
    InvalidKey,
    InvalidName,
    MetadataError,
    NameAlreadyInUse,
    NotFound,
    SecretsError,
)
from .secrets import SecretsManager, StoreOptions
from .store import Secret

__all__ = [
    "__version__",
    "SecretsManager",
    "StoreOptions",
    "Secret",
    "SecretsError",
    "InvalidName",
    "InvalidKey",
    "InvalidData",
    "InvalidDriver",
    "NameAlreadyInUse",
    "ConflictingOptions",
    "NotFound",
    "Ambiguous",
    "AlreadyExists",
    "DriverError",
    "DriverTimeout",
    "CleanupError",
    "MetadataError",
    "ConfigError",
]
