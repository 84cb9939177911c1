"""Interval algebra over half-open ``[start, end)`` intervals.

Every function takes and returns plain lists and never mutates its inputs.
Intervals with ``start >= end`` are empty and are dropped by ``normalize``.
"""

from datetime import datetime
from typing import Iterable, NamedTuple


class Interval(NamedTuple):
    start: datetime
    end: datetime

    @property
    def is_empty(self) -> bool:
        return self.start >= self.end


def overlaps(first: Interval, second: Interval) -> bool:
    return first.start < second.end and second.start < first.end


def normalize(intervals: Iterable[Interval]) -> list[Interval]:
    """Sort and merge overlapping or touching intervals."""
    ordered = sorted(
        (Interval(*interval) for interval in intervals if interval[0] < interval[1]),
        key=lambda interval: interval.start,
    )
    if not ordered:
        return []

    merged = [ordered[0]]
    for current in ordered[1:]:
        last = merged[-1]
        if current.start <= last.end:
            if current.end > last.end:
                merged[-1] = Interval(last.start, current.end)
        else:
            merged.append(current)

    return merged


def union(first: Iterable[Interval], second: Iterable[Interval]) -> list[Interval]:
    return normalize([*first, *second])


def subtract(base: Iterable[Interval], removed: Iterable[Interval]) -> list[Interval]:
    """Remove every portion of ``removed`` from ``base``.

    One base interval can come back as zero, one or two pieces.
    """
    blocks = normalize(removed)
    result: list[Interval] = []

    for interval in normalize(base):
        pieces = [interval]
        for block in blocks:
            if block.start >= interval.end:
                break
            if block.end <= interval.start:
                continue

            remaining = []
            for piece in pieces:
                if not overlaps(piece, block):
                    remaining.append(piece)
                    continue
                if piece.start < block.start:
                    remaining.append(Interval(piece.start, block.start))
                if block.end < piece.end:
                    remaining.append(Interval(block.end, piece.end))
            pieces = remaining

        result.extend(pieces)

    return result


def intersect(first: Iterable[Interval], second: Iterable[Interval]) -> list[Interval]:
    left = normalize(first)
    right = normalize(second)
    result: list[Interval] = []
    i = j = 0

    while i < len(left) and j < len(right):
        start = max(left[i].start, right[j].start)
        end = min(left[i].end, right[j].end)
        if start < end:
            result.append(Interval(start, end))

        # Advance whichever interval finishes first.
        if left[i].end < right[j].end:
            i += 1
        else:
            j += 1

    return result
