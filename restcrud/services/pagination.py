"""Page window bookkeeping for grid searches."""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Any

DEFAULT_ROWS = 20

# Largest OFFSET/LIMIT the database accepts (signed 64-bit).
MAX_SQL_INT = 2**63 - 1


@dataclass(frozen=True)
class PageWindow:
    page: int
    rows: int
    offset: int

    @property
    def limit(self) -> int:
        return self.rows


def _to_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def resolve_page_window(
    rows: Any,
    page: Any,
    *,
    default_rows: int = DEFAULT_ROWS,
    max_rows: int | None = None,
) -> PageWindow:
    """Turn raw `rows` / `page` parameters into a safe offset/limit window.

    Args:
        rows: Requested rows per page (any type; coerced to int).
        page: Requested 1-based page number (any type; coerced to int).
        default_rows: Used when rows is missing, non-numeric or below 1.
        max_rows: Optional cap for rows per page.

    Returns:
        PageWindow with page >= 1, rows >= 1 and 0 <= offset <= MAX_SQL_INT.
    """
    rows_int = _to_int(rows)
    page_int = _to_int(page)

    rows_int = rows_int if rows_int is not None and rows_int >= 1 else default_rows
    page_int = page_int if page_int is not None and page_int >= 1 else 1
    if max_rows and rows_int > max_rows:
        rows_int = max_rows
    rows_int = min(rows_int, MAX_SQL_INT)
    page_int = min(page_int, MAX_SQL_INT // rows_int)

    offset = (page_int * rows_int) - rows_int
    offset = offset if offset >= 0 else 0
    return PageWindow(page=page_int, rows=rows_int, offset=offset)


def page_count(count: int, rows: int) -> int:
    """Number of pages needed to show `count` items, `rows` at a time."""
    if rows < 1:
        raise ValueError("rows must be >= 1")
    return math.ceil(count / rows)
