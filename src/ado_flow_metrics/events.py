"""Turn raw Azure DevOps work item updates into ordered field-change events."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Sequence, Tuple

from .errors import DataValidationError
from .models import BlockedFlag, FieldChangeEvent, WorkItemId
from .timestamps import parse_timestamp

CHANGED_DATE_FIELD = "System.ChangedDate"


def _parse_done(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def _coalesce_by_revision(updates: Sequence[Mapping[str, Any]]) -> List[Tuple[int, Dict[str, Any]]]:
    """Merge field changes sharing a revision number, keeping first-seen order."""
    merged: Dict[int, Dict[str, Any]] = {}
    order: List[int] = []

    for update in updates:
        rev = update.get("rev")
        if rev is None:
            raise DataValidationError(f"Work item update is missing its revision number: {update}")
        rev = int(rev)
        if rev not in merged:
            merged[rev] = {}
            order.append(rev)
        merged[rev].update(update.get("fields") or {})

    # sorted() is stable, so equal revisions keep their fetch order
    return sorted(((rev, merged[rev]) for rev in order), key=lambda pair: pair[0])


def normalize_updates(
    item_id: WorkItemId,
    updates: Sequence[Mapping[str, Any]],
    column_field: str,
    done_field: str,
    blocked_field: str,
) -> List[FieldChangeEvent]:
    """Build the ordered event sequence the column replay consumes.

    Args:
        item_id: Work item the updates belong to.
        updates: Raw ``wit/workItems/{id}/updates`` entries in fetch order.
        column_field: Board column field reference (``WEF_<guid>_Kanban.Column``).
        done_field: Board done field reference (``WEF_<guid>_Kanban.Column.Done``).
        blocked_field: Blocked field reference, for example ``Microsoft.VSTS.CMMI.Blocked``.

    Returns:
        One event per revision that touches the board column, the done flag or
        the blocked flag, in strictly increasing revision order.
    """
    events: List[FieldChangeEvent] = []

    for rev, fields in _coalesce_by_revision(updates):
        column_name = None
        column_is_done = None
        blocked = None

        column_change = fields.get(column_field)
        if column_change and column_change.get("newValue"):
            column_name = str(column_change["newValue"])

        done_change = fields.get(done_field)
        if done_change and "newValue" in done_change:
            column_is_done = _parse_done(done_change["newValue"])

        blocked_change = fields.get(blocked_field)
        if blocked_change is not None:
            # A cleared blocked field means the item is no longer blocked
            blocked = BlockedFlag.parse(blocked_change.get("newValue")) or BlockedFlag.NO

        if column_name is None and column_is_done is None and blocked is None:
            continue

        changed_at = parse_timestamp((fields.get(CHANGED_DATE_FIELD) or {}).get("newValue"))
        events.append(
            FieldChangeEvent(
                item_id=item_id,
                revision=rev,
                changed_at=changed_at,
                column_name=column_name,
                column_is_done=column_is_done,
                blocked=blocked,
            )
        )

    return events
