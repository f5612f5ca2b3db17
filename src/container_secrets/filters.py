"""Filtering of secret listings."""

from typing import Dict, Iterable, List

from .store import Secret

FILTER_KEYS = ("name", "id", "driver", "label")


def parse_filters(values: Iterable[str]) -> Dict[str, List[str]]:
    """
    Parse ``key=value`` filter strings into a dict of value lists.

    >>> parse_filters(["name=db", "label=env=prod", "name=web"])
    {'name': ['db', 'web'], 'label': ['env=prod']}
    """
    filters: Dict[str, List[str]] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or key not in FILTER_KEYS:
            raise ValueError(
                f"invalid filter {item!r}: use one of {', '.join(k + '=...' for k in FILTER_KEYS)}"
            )
        filters.setdefault(key, []).append(value)
    return filters


def _match_label(secret: Secret, wanted: str) -> bool:
    key, sep, value = wanted.partition("=")
    if key not in secret.labels:
        return False
    return not sep or secret.labels[key] == value


def matches(secret: Secret, filters: Dict[str, List[str]]) -> bool:
    """Different keys must all match; values of one key are alternatives."""
    for key, values in filters.items():
        if key == "name":
            ok = secret.name in values
        elif key == "id":
            ok = any(secret.id.startswith(v) for v in values)
        elif key == "driver":
            ok = secret.driver in values
        elif key == "label":
            ok = any(_match_label(secret, v) for v in values)
        else:
            raise ValueError(f"unknown filter key: {key}")
        if not ok:
            return False
    return True


def filter_secrets(secrets: Iterable[Secret], filters: Dict[str, List[str]]) -> List[Secret]:
    return [s for s in secrets if matches(s, filters)]
