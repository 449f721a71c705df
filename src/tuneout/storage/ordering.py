"""Fractional sort keys for drag-to-reorder.

A move computes one new key from its neighbours, so reordering touches a
single row regardless of list length. Halving the gap between the same two
neighbours eventually exhausts float precision; callers check
:func:`needs_rebalance` and renumber the sibling set when that happens.
"""

from __future__ import annotations

from collections.abc import Sequence

DEFAULT_REBALANCE_EPSILON = 1e-9


def key_for_move(keys: Sequence[float], target: int, *, descending: bool = True) -> float:
    """Return the sort key for an item inserted at *target*.

    *keys* are the sibling keys in display order with the moved item already
    removed, and *target* is the zero-based insertion index into that list
    (``0`` is the front, ``len(keys)`` the end).
    """
    if target < 0 or target > len(keys):
        msg = f"target {target} out of range for {len(keys)} siblings"
        raise ValueError(msg)

    if not keys:
        return 1.0

    if descending:
        if target == 0:
            return keys[0] + 1.0
        if target == len(keys):
            return _below(keys[-1])
        upper, lower = keys[target - 1], keys[target]
        return upper - (upper - lower) / 2.0

    # Ascending display: the front holds the smallest key, so prepending
    # halves towards zero and appending steps past the maximum.
    if target == 0:
        return _below(keys[0])
    if target == len(keys):
        return keys[-1] + 1.0
    lower, upper = keys[target - 1], keys[target]
    return lower + (upper - lower) / 2.0


def _below(key: float) -> float:
    # Halving only moves a key downwards while it is positive.
    if key > 0:
        return key / 2.0
    return key - 1.0


def needs_rebalance(keys: Sequence[float], epsilon: float = DEFAULT_REBALANCE_EPSILON) -> bool:
    """Return True when two adjacent keys are closer than *epsilon*.

    *keys* must already be in display order (either direction).
    """
    return any(abs(a - b) < epsilon for a, b in zip(keys, keys[1:]))


def rebalanced_keys(count: int, *, descending: bool = True) -> list[float]:
    """Consecutive integer keys for *count* items, in display order."""
    if descending:
        return [float(count - i) for i in range(count)]
    return [float(i + 1) for i in range(count)]


def insert_key(keys: Sequence[float], target: int, key: float) -> list[float]:
    """Return *keys* with *key* placed at *target*."""
    result = list(keys)
    result.insert(target, key)
    return result
