"""Windowing for long activity lists.

Only the slice of items intersecting the scroll viewport (plus overscan) is
materialized. Each returned item keeps its true cumulative offset so that
absolutely positioned rendering stays correct.
"""
from __future__ import annotations

from bisect import bisect_left, bisect_right
from dataclasses import dataclass, field
from itertools import accumulate
from typing import Callable, Sequence, Union

from weekendly.schemas import Activity

DEFAULT_OVERSCAN = 5
DEFAULT_THRESHOLD = 50
TIMELINE_THRESHOLD = 30

ItemSize = Union[float, Callable[[int], float]]


@dataclass(frozen=True)
class VirtualItem:
    index: int
    start: float
    end: float
    size: float


@dataclass(frozen=True)
class ViewportWindow:
    items: list[VirtualItem] = field(default_factory=list)
    total_height: float = 0.0
    windowed: bool = False

    @property
    def indexes(self) -> list[int]:
        return [item.index for item in self.items]

    def offset_of(self, index: int) -> float:
        for item in self.items:
            if item.index == index:
                return item.start
        raise IndexError(index)


def _sizes(count: int, item_size: ItemSize) -> list[float]:
    if callable(item_size):
        return [max(0.0, float(item_size(i))) for i in range(count)]
    return [max(0.0, float(item_size))] * count


def compute_window(
    count: int,
    item_size: ItemSize,
    container_height: float,
    scroll_offset: float,
    overscan: int = DEFAULT_OVERSCAN,
    threshold: int = DEFAULT_THRESHOLD,
) -> ViewportWindow:
    count = max(0, int(count))
    if count == 0:
        return ViewportWindow()
    sizes = _sizes(count, item_size)
    ends = list(accumulate(sizes))
    starts = [end - size for end, size in zip(ends, sizes)]
    total = ends[-1]

    if count <= threshold:
        items = [VirtualItem(i, starts[i], ends[i], sizes[i]) for i in range(count)]
        return ViewportWindow(items=items, total_height=total, windowed=False)

    scroll_offset = max(0.0, float(scroll_offset))
    bottom = scroll_offset + max(0.0, float(container_height))
    overscan = max(0, int(overscan))

    # First item whose end exceeds the scroll offset.
    first = min(bisect_right(ends, scroll_offset), count - 1)
    # Last item whose start is above the bottom edge.
    last = max(bisect_left(starts, bottom) - 1, first)

    first = max(0, first - overscan)
    last = min(count - 1, last + overscan)
    items = [VirtualItem(i, starts[i], ends[i], sizes[i]) for i in range(first, last + 1)]
    return ViewportWindow(items=items, total_height=total, windowed=True)


def activity_height(activity: Activity, min_height: float, max_height: float) -> float:
    height = min_height
    if activity.notes and len(activity.notes) > 50:
        height += 20
    if activity.mood:
        height += 15
    if activity.duration_mins > 120:
        height += 10
    return min(max(height, min_height), max_height)


def timeline_window(
    activities: Sequence[Activity],
    container_height: float,
    scroll_offset: float,
    min_item_height: float = 64,
    max_item_height: float = 140,
    overscan: int = DEFAULT_OVERSCAN,
    threshold: int = TIMELINE_THRESHOLD,
) -> ViewportWindow:
    """Variable-height window; heights are recomputed from the list on every call."""
    heights = [activity_height(a, min_item_height, max_item_height) for a in activities]
    return compute_window(
        len(heights),
        lambda index: heights[index],
        container_height,
        scroll_offset,
        overscan=overscan,
        threshold=threshold,
    )
