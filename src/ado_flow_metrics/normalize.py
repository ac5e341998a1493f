"""Post-processing of replayed column dates.

When decreasing-date fixing is enabled, dates up to the last populated column
are made non-decreasing: gaps are forward-filled and dates earlier than a
preceding column are raised to it. Columns after the last populated one stay
empty because the item has not reached them yet. When the fix is disabled the
only adjustment is seeding the first column with the creation date.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Union

from .models import BoardColumnSchema, ColumnDateMap


def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def seed_first_column(
    column_dates: ColumnDateMap,
    schema: BoardColumnSchema,
    created_at: Union[date, datetime],
) -> ColumnDateMap:
    """Return a copy of ``column_dates`` with an empty first column set to ``created_at``."""
    result = {header: column_dates.get(header) for header in schema.headers}
    if schema.headers and result[schema.headers[0]] is None:
        result[schema.headers[0]] = _as_date(created_at)
    return result


def last_data_index(column_dates: ColumnDateMap, schema: BoardColumnSchema) -> int:
    """Return the highest schema index holding a date, or ``-1`` when none does."""
    for index in range(len(schema.headers) - 1, -1, -1):
        if column_dates.get(schema.headers[index]) is not None:
            return index
    return -1


def normalize_dates(
    column_dates: ColumnDateMap,
    schema: BoardColumnSchema,
    created_at: Union[date, datetime],
) -> ColumnDateMap:
    """Enforce non-decreasing dates across the populated prefix of the board.

    The input map is left untouched; a new map keyed by every schema header is
    returned.
    """
    result = seed_first_column(column_dates, schema, created_at)
    running_max: date = _as_date(created_at)

    for index in range(last_data_index(result, schema) + 1):
        header = schema.headers[index]
        value: Optional[date] = result[header]
        if value is None or value < running_max:
            result[header] = running_max
        else:
            running_max = value

    return result


def finalize_dates(
    column_dates: ColumnDateMap,
    schema: BoardColumnSchema,
    created_at: Union[date, datetime],
    fix_decreasing_dates: bool,
) -> ColumnDateMap:
    if fix_decreasing_dates:
        return normalize_dates(column_dates, schema, created_at)
    return seed_first_column(column_dates, schema, created_at)
