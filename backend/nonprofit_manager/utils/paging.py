"""Pagination and small date helpers shared by services."""

import calendar
import math
from datetime import date, timedelta
from typing import Tuple

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


def clamp_paging(page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> Tuple[int, int]:
    """Clamp `page` to >= 1 and `page_size` to 1..MAX_PAGE_SIZE."""
    page = max(1, page or 1)
    page_size = max(1, min(MAX_PAGE_SIZE, page_size or DEFAULT_PAGE_SIZE))
    return page, page_size


def paged(items: list, total_count: int, page: int, page_size: int) -> dict:
    return {
        "items": items,
        "total_count": total_count,
        "page": page,
        "page_size": page_size,
        "total_pages": math.ceil(total_count / page_size) if page_size else 0,
    }


def add_months(d: date, months: int) -> date:
    """Shift `d` by whole months, clamping the day to the month's end."""
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def advance(d: date, pattern: str, interval: int = 1) -> date:
    """Next occurrence after `d` for a recurrence pattern value.

    Unknown patterns fall back to monthly.
    """
    interval = max(1, interval or 1)
    if pattern == "Daily":
        return d + timedelta(days=interval)
    if pattern == "Weekly":
        return d + timedelta(weeks=interval)
    if pattern == "BiWeekly":
        return d + timedelta(weeks=2 * interval)
    if pattern == "Quarterly":
        return add_months(d, 3 * interval)
    if pattern == "Yearly":
        return add_months(d, 12 * interval)
    return add_months(d, interval)
