"""
Constraint application shared by the selection and pagination engines.

Out-of-range requests are clamped into range and never rejected.
"""

from typing import Optional


def clamp(value: int, lower: int, upper: int) -> int:
    """Clamp ``value`` into ``[lower, upper]``; an inverted range collapses to ``lower``"""
    if upper < lower:
        upper = lower
    return max(lower, min(value, upper))


def constrain_quantity(requested: int, max_quantity: int, group_remaining: Optional[int] = None) -> int:
    """Quantity allowed for one selection entry.

    ``group_remaining`` is what the group limit leaves for this entry once
    every other entry is counted.
    """
    upper = max(max_quantity, 0)
    if group_remaining is not None:
        upper = min(upper, max(group_remaining, 0))
    return clamp(int(requested), 0, upper)


def constrain_page(page: int, total_pages: Optional[int]) -> int:
    """1-based page number within the known page count"""
    upper = total_pages if total_pages else 1
    return clamp(int(page), 1, upper)


def constrain_page_size(page_size: int, max_page_size: int) -> int:
    return clamp(int(page_size), 1, max_page_size)


__all__ = ["clamp", "constrain_quantity", "constrain_page", "constrain_page_size"]
