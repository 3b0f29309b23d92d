"""Synthetic token metadata for test mints."""

from __future__ import annotations

META_ARRAY_ITEM_SIZE = 3


def random_meta_map(size: int) -> dict[str, str]:
    """Return `{"key0": "value0", ...}` with `size` entries, in key order.

    Despite the name the output is deterministic; it only stands in for real
    metadata when exercising a freshly installed contract.
    """
    if size < 0:
        raise ValueError("meta size cannot be negative")
    return {f"key{i}": f"value{i}" for i in range(size)}


def random_meta_array(size: int, *, item_size: int = META_ARRAY_ITEM_SIZE) -> list[dict[str, str]]:
    if size < 0:
        raise ValueError("meta array size cannot be negative")
    return [random_meta_map(item_size) for _ in range(size)]
