"""Grouping of line numbers into consecutive runs."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


def group_consecutive_lines(lines: Iterable[int]) -> list[list[int]]:
    """Split line numbers into maximal runs of consecutive integers.

    Duplicates are collapsed. Runs are returned in ascending order of their
    first line, each run sorted.

    >>> group_consecutive_lines({2, 3, 4, 6, 8, 9})
    [[2, 3, 4], [6], [8, 9]]
    """
    ordered = sorted(set(lines))
    if not ordered:
        return []

    groups: list[list[int]] = []
    current = [ordered[0]]
    for line in ordered[1:]:
        if line == current[-1] + 1:
            current.append(line)
        else:
            groups.append(current)
            current = [line]
    groups.append(current)

    return groups
