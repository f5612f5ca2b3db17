"""Name/key validation and secret ID generation."""

import re
from secrets import token_hex

from .errors import InvalidData, InvalidKey, InvalidName

# Secret names: letters, digits and . @ _ -, starting and ending alphanumeric
NAME_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9.@_-]*[A-Za-z0-9])?$")
MAX_NAME_LENGTH = 253

ID_LENGTH = 25
ID_PATTERN = re.compile(r"^[0-9a-f]+$")

# 512000 bytes is the upper bound (exclusive) for secret data
MAX_DATA_SIZE = 512000


def validate_name(name: str) -> None:
    """
    Check a secret name.

    Raises InvalidName for empty names, names of 254 characters or more,
    and names with characters outside [A-Za-z0-9.@_-] (this rules out
    NUL, comma, '=' and path separators). The first and last
    characters must be letters or digits.
    """
    if not isinstance(name, str) or not name:
        raise InvalidName("secret name must not be empty", secret_name=name)

    if len(name) > MAX_NAME_LENGTH:
        raise InvalidName(
            f"secret name must be at most {MAX_NAME_LENGTH} characters", secret_name=name
        )

    if not NAME_PATTERN.fullmatch(name):
        raise InvalidName(
            f"invalid secret name {name!r}: only letters, digits and . @ _ - are allowed, "
            "starting and ending with a letter or digit",
            secret_name=name,
        )


def validate_key(key: str) -> None:
    """
    Check a driver key before it is used in a path or command.

    Keys live in one flat namespace: no separators, no '.' or '..',
    no NUL. Must be called before any interpolation, never after.
    """
    if not isinstance(key, str) or not key:
        raise InvalidKey("invalid key: empty", secret_id=key)

    if key in (".", "..") or ".." in key:
        raise InvalidKey(f"invalid key {key!r}: path traversal", secret_id=key)

    if "/" in key or "\\" in key or "\x00" in key:
        raise InvalidKey(f"invalid key {key!r}: must not contain separators", secret_id=key)


def validate_data(data: bytes) -> None:
    """Secret data must be non-empty and smaller than MAX_DATA_SIZE."""
    if not data or len(data) >= MAX_DATA_SIZE:
        raise InvalidData(
            f"secret data must be larger than 0 and less than {MAX_DATA_SIZE} bytes"
        )


def new_id() -> str:
    """Random hex ID of ID_LENGTH characters. Callers retry on collision."""
    return token_hex((ID_LENGTH + 1) // 2)[:ID_LENGTH]


def is_id_shaped(value: str) -> bool:
    """True if value could be a (possibly truncated) secret ID."""
    return 0 < len(value) <= ID_LENGTH and bool(ID_PATTERN.fullmatch(value))
