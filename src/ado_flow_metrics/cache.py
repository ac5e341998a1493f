"""Incremental delta cache built from the previous CSV export.

The previous export is read once at startup. Every live work item is then
classified against it:

- New: no cached row exists, the item is replayed.
- Changed: the cached ``Changed Date`` differs from the live one, the item is
  replayed.
- Unchanged: the dates match, the cached row is reused verbatim without any
  detail or history fetch.

Items that only exist in the cache are dropped. A cache that cannot be trusted
(missing, unreadable, or written for a different header layout) is discarded
and the run falls back to replaying everything.
"""

from __future__ import annotations

import csv
import logging
import os
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .models import CacheEntry, FlowMetricsRow, ReconcileResult, WorkItemId
from .report import CHANGED_DATE_HEADER, ID_HEADER, row_to_record
from .timestamps import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)


def load_cache(path: str, expected_headers: Sequence[str]) -> Optional[Dict[WorkItemId, CacheEntry]]:
    """Load a prior export as cache entries keyed by work item ID.

    Returns ``None`` instead of raising whenever the file cannot be used; the
    caller then reprocesses every item.
    """
    if not os.path.isfile(path):
        logger.info("No previous export found; processing all work items", extra={"path": path})
        return None

    try:
        with open(path, newline="", encoding="utf-8") as csv_file:
            rows = list(csv.reader(csv_file))
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        logger.warning("Discarding unreadable cache", extra={"path": path, "error": str(exc)})
        return None

    if not rows:
        logger.warning("Discarding empty cache", extra={"path": path})
        return None

    header = rows[0]
    if header != list(expected_headers):
        logger.warning(
            "Discarding cache written with a different column layout",
            extra={"path": path, "cached_headers": header, "expected_headers": list(expected_headers)},
        )
        return None

    if ID_HEADER not in header or CHANGED_DATE_HEADER not in header:
        logger.warning("Discarding cache without ID or Changed Date columns", extra={"path": path})
        return None

    entries: Dict[WorkItemId, CacheEntry] = {}
    for line_number, row in enumerate(rows[1:], start=2):
        if not row:
            continue
        if len(row) != len(header):
            logger.warning(
                "Discarding cache with a misaligned row",
                extra={"path": path, "line_number": line_number},
            )
            return None

        values = dict(zip(header, row))
        try:
            item_id = int(values[ID_HEADER])
        except ValueError:
            logger.warning(
                "Discarding cache with an invalid work item ID",
                extra={"path": path, "line_number": line_number},
            )
            return None

        entries[item_id] = CacheEntry(
            item_id=item_id,
            changed_date=values[CHANGED_DATE_HEADER],
            values=values,
        )

    logger.info("Loaded previous export", extra={"path": path, "cached_items": len(entries)})
    return entries


def dates_match(stored: str, live: Union[str, datetime]) -> bool:
    """Compare changed dates as instants when both parse, otherwise as raw strings."""
    stored_at = parse_timestamp(stored)
    live_at = parse_timestamp(live)
    if stored_at is not None and live_at is not None:
        return stored_at == live_at

    live_text = format_timestamp(live) if isinstance(live, datetime) else str(live)
    return stored.strip() == live_text.strip()


def reconcile(
    cache: Optional[Mapping[WorkItemId, CacheEntry]],
    live_changed_dates: Mapping[WorkItemId, Union[str, datetime]],
) -> ReconcileResult:
    """Split live work items into those to replay and those to reuse from cache."""
    result = ReconcileResult()
    cache = cache or {}

    for item_id, live_changed_date in live_changed_dates.items():
        entry = cache.get(item_id)
        if entry is None:
            result.to_reprocess.add(item_id)
            result.new_count += 1
        elif not dates_match(entry.changed_date, live_changed_date):
            result.to_reprocess.add(item_id)
            result.changed_count += 1
        else:
            result.to_reuse[item_id] = entry
            result.unchanged_count += 1

    result.dropped_count = sum(1 for item_id in cache if item_id not in live_changed_dates)

    logger.info(
        "Reconciled work items against previous export",
        extra={
            "new": result.new_count,
            "changed": result.changed_count,
            "unchanged": result.unchanged_count,
            "dropped": result.dropped_count,
        },
    )
    return result


def merge_rows(
    reused: Mapping[WorkItemId, CacheEntry],
    fresh: Iterable[FlowMetricsRow],
    headers: Sequence[str],
) -> List[Dict[str, str]]:
    """Merge cached and freshly computed rows into header-keyed records ordered by ID.

    Raises:
        ValueError: If an item appears both as a reused and a fresh row.
    """
    records: Dict[WorkItemId, Dict[str, str]] = {
        item_id: dict(entry.values) for item_id, entry in reused.items()
    }
    for row in fresh:
        if row.item_id in records:
            raise ValueError(f"Work item {row.item_id} was both reused from cache and reprocessed.")
        records[row.item_id] = row_to_record(row, headers)

    return [records[item_id] for item_id in sorted(records)]
