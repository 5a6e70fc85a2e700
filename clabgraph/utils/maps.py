"""First-write-wins helpers.

Several compile steps merge information from links in declaration order and
must keep whatever was seen first. They all go through these two functions.
"""
from __future__ import annotations

from typing import Any, Mapping, MutableMapping, TypeVar

K = TypeVar("K")
V = TypeVar("V")


def set_if_absent(target: MutableMapping[K, V], key: K, value: V) -> V:
    """Insert ``value`` under ``key`` unless the key exists; return the stored value."""
    if key not in target:
        target[key] = value
    return target[key]


def merge_if_absent(target: MutableMapping[str, Any], source: Mapping[str, Any]) -> None:
    """Copy keys from ``source`` into ``target`` without overwriting.

    Values that are None or an empty string count as "not provided" and are
    never copied.
    """
    for key, value in source.items():
        if value is None or value == "":
            continue
        set_if_absent(target, key, value)
