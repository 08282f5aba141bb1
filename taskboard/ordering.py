"""Integer rank arithmetic for columns and task lists.

Columns on a board carry ``order`` values ``0..N-1``. Every function here
mutates the columns in place and leaves that range gap-free, provided it
was gap-free on entry.
"""
from __future__ import annotations

from typing import Iterable, Mapping

from .models import Column


def next_order(columns: Iterable[Column]) -> int:
    return max((c.order for c in columns), default=-1) + 1


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def slide(columns: list[Column], column: Column, new_order: int) -> bool:
    """Move ``column`` to ``new_order`` and shift the siblings in between.

    Moving right pulls the siblings in ``(old, new]`` one slot left; moving
    left pushes the siblings in ``[new, old)`` one slot right. ``new_order``
    is clamped to the current range. Returns ``False`` for a no-op.
    """
    new_order = clamp(new_order, 0, max(len(columns) - 1, 0))
    old_order = column.order
    if new_order == old_order:
        return False
    for sibling in columns:
        if sibling is column:
            continue
        if old_order < new_order and old_order < sibling.order <= new_order:
            sibling.order -= 1
        elif new_order < old_order and new_order <= sibling.order < old_order:
            sibling.order += 1
    column.order = new_order
    return True


def close_gap(columns: Iterable[Column], removed_order: int) -> None:
    for sibling in columns:
        if sibling.order > removed_order:
            sibling.order -= 1


def renumber(columns: list[Column], requested: Mapping[str, int] | None = None) -> None:
    """Apply ``requested`` orders by column id, then renumber ``0..N-1``.

    Listed columns win ties against unlisted ones; remaining ties keep the
    previous relative order.
    """
    requested = requested or {}
    ranked = sorted(
        columns,
        key=lambda c: (requested.get(c.id, c.order), c.id not in requested, c.order, c.id),
    )
    for position, column in enumerate(ranked):
        column.order = position


def is_contiguous(columns: Iterable[Column]) -> bool:
    orders = sorted(c.order for c in columns)
    return orders == list(range(len(orders)))


def remove_first(items: list[str], value: str) -> int:
    """Remove the first occurrence of ``value``; return its index or -1."""
    try:
        index = items.index(value)
    except ValueError:
        return -1
    del items[index]
    return index


def insert_at(items: list[str], value: str, index: int) -> int:
    """Insert ``value`` at ``index`` clamped to ``[0, len]``; return the index used."""
    index = clamp(index, 0, len(items))
    items.insert(index, value)
    return index
