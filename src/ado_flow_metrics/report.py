"""Report headers and CSV serialization for flow metrics rows.

This module provides utilities for:
- Building the ordered report header list from the board and extra fields.
- Rendering a ``FlowMetricsRow`` into a header-keyed record.
- Writing records positionally to a CSV file.

Rows are kept as header-keyed dictionaries everywhere else; positional layout
only exists here and in the cache loader.
"""

from __future__ import annotations

import csv
import os
import tempfile
from typing import Dict, Iterable, List, Sequence

from .errors import DataValidationError
from .models import BoardColumnSchema, ExtraField, FlowMetricsRow
from .timestamps import format_date, format_timestamp

ID_HEADER = "ID"
CHANGED_DATE_HEADER = "Changed Date"

LEADING_HEADERS = ("ID", "Work Item Type", "Title", "Tags")
STATE_HEADERS = ("State", "Area Path")
TRAILING_HEADERS = ("Blocked", "Blocked Days", "Changed Date")


def build_headers(schema: BoardColumnSchema, extra_fields: Sequence[ExtraField]) -> List[str]:
    """Build the ordered report header list.

    Layout: identity fields, configured extra fields, state fields, one header
    per board column (split columns followed by their ``Done`` header), then
    the blocked and changed-date fields.
    """
    headers = [
        *LEADING_HEADERS,
        *(extra_field.header for extra_field in extra_fields),
        *STATE_HEADERS,
        *schema.headers,
        *TRAILING_HEADERS,
    ]
    duplicates = sorted({header for header in headers if headers.count(header) > 1})
    if duplicates:
        raise DataValidationError(f"Report headers are not unique: {duplicates}")
    return headers


def row_to_record(row: FlowMetricsRow, headers: Sequence[str]) -> Dict[str, str]:
    """Render a row as strings keyed by header.

    Raises:
        KeyError: If ``headers`` names a column the row cannot provide.
    """
    detail = row.detail
    values: Dict[str, str] = {
        "ID": str(detail.id),
        "Work Item Type": detail.work_item_type,
        "Title": detail.title,
        "Tags": detail.tags,
        "State": detail.state,
        "Area Path": detail.area_path,
        "Blocked": detail.blocked,
        "Blocked Days": str(row.blocked_days),
        "Changed Date": format_timestamp(detail.changed_date),
    }
    values.update(detail.extra)
    for header, value in row.column_dates.items():
        values[header] = format_date(value)

    return {header: values[header] for header in headers}


def write_report(path: str, headers: Sequence[str], records: Iterable[Dict[str, str]]) -> int:
    """Write records to ``path`` as CSV and return the number of data rows.

    The file is written next to its destination and moved into place, so an
    aborted run never leaves a truncated export behind for the next run's cache.
    """
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)

    count = 0
    handle, temp_path = tempfile.mkstemp(prefix=".flow-metrics-", suffix=".csv", dir=directory)
    try:
        with os.fdopen(handle, "w", newline="", encoding="utf-8") as csv_file:
            writer = csv.writer(csv_file)
            writer.writerow(headers)
            for record in records:
                writer.writerow([record.get(header, "") for header in headers])
                count += 1
        os.replace(temp_path, path)
    except BaseException:
        if os.path.exists(temp_path):
            os.remove(temp_path)
        raise

    return count
