"""Uniform member/index access over structured data.

Data bound to a template is a tree of mappings, sequences and scalars, usually
loaded from JSON or YAML. The helpers here give the rest of the package one way
to walk that tree without caring which container type sits at each level.

Typical usage:
    >>> data = {"Products": [{"Name": "Tea"}, {"Name": "Coffee"}]}
    >>> products = get_member(data, "Products")
    >>> get_member(get_index(products, 1), "Name")
    'Coffee'
    >>> get_index(products, 5) is MISSING
    True
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping, Sequence
from typing import Any


class _Missing:
    """Sentinel for a member or element that does not exist."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def is_sequence(value: Any) -> bool:
    """Check if a value is a sequence of items (strings and bytes are scalars)."""
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def get_member(value: Any, name: str) -> Any:
    """Get a named member of a mapping.

    Args:
        value: Current node in the data tree.
        name: Member name.

    Returns:
        The member value, or MISSING if the node is not a mapping or has no
        such key.
    """
    if isinstance(value, Mapping):
        return value.get(name, MISSING)
    return MISSING


def get_index(value: Any, index: int) -> Any:
    """Get an element of a sequence by position.

    Negative and out-of-range indices never wrap around; they yield MISSING.
    """
    if not is_sequence(value):
        return MISSING
    if index < 0 or index >= len(value):
        return MISSING
    return value[index]


def to_structured(value: Any) -> Any:
    """Convert dataclass instances (recursively) into plain mappings.

    Mappings and sequences are rebuilt so nested dataclasses are converted too;
    every other value is returned unchanged.
    """
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: to_structured(getattr(value, f.name))
            for f in dataclasses.fields(value)
        }
    if isinstance(value, Mapping):
        return {key: to_structured(item) for key, item in value.items()}
    if is_sequence(value):
        return [to_structured(item) for item in value]
    return value
