"""Per-work-item flow metrics computation.

This module turns work item IDs into assembled ``FlowMetricsRow`` objects:
- fetch the item's static fields and its revision updates;
- normalize the updates into ordered field-change events;
- replay the events against the board to get column dates and blocked days;
- finalize the dates (seed or monotonic fix) and assemble the row.

Items are independent of each other, so they can be processed by a bounded
worker pool. Results are collected by ID and returned in ID order, which makes
sequential and parallel runs produce identical output.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Tuple

from .ado_client import AdoClient
from .events import normalize_updates
from .models import BoardColumnSchema, ExtraField, FlowMetricsRow, WorkItemId
from .normalize import finalize_dates
from .replay import replay

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FlowContext:
    """Run-wide inputs shared read-only by every item computation."""

    schema: BoardColumnSchema
    column_field: str
    done_field: str
    blocked_field: str
    as_of: date
    fix_decreasing_dates: bool = False
    extra_fields: Tuple[ExtraField, ...] = ()


def process_work_item(
    ado_client: AdoClient,
    item_id: WorkItemId,
    context: FlowContext,
) -> FlowMetricsRow:
    """Fetch, replay and assemble the report row for one work item."""
    detail = ado_client.get_work_item_detail(
        item_id,
        blocked_field=context.blocked_field,
        extra_fields=context.extra_fields,
    )
    updates = ado_client.list_work_item_updates(item_id)
    events = normalize_updates(
        item_id,
        updates,
        column_field=context.column_field,
        done_field=context.done_field,
        blocked_field=context.blocked_field,
    )

    result = replay(events, context.schema, as_of=context.as_of)
    column_dates = finalize_dates(
        result.column_dates,
        context.schema,
        created_at=detail.created_date,
        fix_decreasing_dates=context.fix_decreasing_dates,
    )

    logger.debug(
        "Replayed work item history",
        extra={
            "item_id": item_id,
            "updates": len(updates),
            "events": len(events),
            "blocked_days": result.blocked_days,
        },
    )

    return FlowMetricsRow(detail=detail, column_dates=column_dates, blocked_days=result.blocked_days)


def compute_rows(
    ado_client: AdoClient,
    item_ids: Iterable[WorkItemId],
    context: FlowContext,
    max_workers: int = 1,
) -> List[FlowMetricsRow]:
    """Compute rows for many work items, sequentially or with a bounded worker pool.

    ``max_workers <= 1`` runs in the calling thread. Any failure aborts the
    whole computation; no item is silently dropped.
    """
    ordered_ids = sorted(set(item_ids))
    rows: Dict[WorkItemId, FlowMetricsRow] = {}

    if not ordered_ids:
        return []

    if max_workers <= 1 or len(ordered_ids) == 1:
        for item_id in ordered_ids:
            rows[item_id] = process_work_item(ado_client, item_id, context)
    else:
        with ThreadPoolExecutor(max_workers=min(max_workers, len(ordered_ids))) as executor:
            future_to_item = {
                executor.submit(process_work_item, ado_client, item_id, context): item_id
                for item_id in ordered_ids
            }
            try:
                for future in as_completed(future_to_item):
                    rows[future_to_item[future]] = future.result()
            except BaseException:
                for pending in future_to_item:
                    pending.cancel()
                raise

    logger.info(
        "Computed flow metrics rows",
        extra={"items_total": len(ordered_ids), "max_workers": max_workers},
    )

    return [rows[item_id] for item_id in ordered_ids]
