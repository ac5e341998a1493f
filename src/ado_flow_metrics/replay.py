"""Column replay state machine for a single work item's board history.

The replay folds an ordered sequence of ``FieldChangeEvent`` through a pure
``step`` function. For every event it:

- opens or closes blocked intervals, accumulating whole blocked days;
- tracks the current board column and its done flag, routing done split
  columns to their ``"<name> Done"`` header;
- records the first date the item entered each column;
- on backflow (moving left of the furthest column reached) clears the dates of
  every column past the new position and stamps the revisited column with the
  revisit date.

Columns that are not on the current board are ignored for date capture while
the running column and done state keep following the item.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Iterable, List, Optional

from .models import (
    BlockedFlag,
    BoardColumnSchema,
    FieldChangeEvent,
    ReplayResult,
    ReplayState,
)
from .timestamps import days_between

logger = logging.getLogger(__name__)


def initial_state(schema: BoardColumnSchema) -> ReplayState:
    return ReplayState(column_dates=(None,) * len(schema))


def _apply_blocked(state: ReplayState, event: FieldChangeEvent) -> ReplayState:
    if event.blocked is BlockedFlag.YES and not state.is_blocked:
        return replace(state, is_blocked=True, blocked_since=event.changed_at)

    if event.blocked is BlockedFlag.NO and state.is_blocked:
        blocked_days = state.blocked_days
        if state.blocked_since is not None and event.changed_at is not None:
            blocked_days += days_between(state.blocked_since, event.changed_at)
        return replace(state, is_blocked=False, blocked_since=None, blocked_days=blocked_days)

    return state


def _apply_column(
    state: ReplayState,
    event: FieldChangeEvent,
    schema: BoardColumnSchema,
) -> ReplayState:
    current_column = state.current_column
    current_is_done = state.current_is_done

    if event.column_name is not None and event.column_name != current_column:
        current_column = event.column_name
        current_is_done = False
    if event.column_is_done is not None:
        current_is_done = event.column_is_done

    state = replace(state, current_column=current_column, current_is_done=current_is_done)
    if current_column is None:
        return state

    target_header = schema.target_header(current_column, current_is_done)
    target_index = schema.index_of(target_header)
    if target_index is None:
        logger.debug(
            "Ignoring board column that is not on the current board",
            extra={"item_id": event.item_id, "revision": event.revision, "column": target_header},
        )
        return state

    dates: List[Optional[date]] = list(state.column_dates)
    entered_on = event.changed_at.date() if event.changed_at is not None else None

    if target_index < state.max_index_reached:
        for index in range(target_index + 1, state.max_index_reached + 1):
            dates[index] = None
        if entered_on is not None:
            dates[target_index] = entered_on
        logger.debug(
            "Backflow detected",
            extra={
                "item_id": event.item_id,
                "revision": event.revision,
                "from_index": state.max_index_reached,
                "to_index": target_index,
            },
        )
        return replace(state, column_dates=tuple(dates), max_index_reached=target_index)

    if dates[target_index] is None and entered_on is not None:
        dates[target_index] = entered_on

    return replace(
        state,
        column_dates=tuple(dates),
        max_index_reached=max(state.max_index_reached, target_index),
    )


def step(state: ReplayState, event: FieldChangeEvent, schema: BoardColumnSchema) -> ReplayState:
    """Apply one event to the replay state and return the new state.

    ``state`` is never mutated, so each transition can be exercised in isolation.
    """
    if event.blocked is not None:
        state = _apply_blocked(state, event)
    if event.touches_column:
        state = _apply_column(state, event, schema)
    return state


def close_open_interval(state: ReplayState, as_of: date) -> ReplayState:
    """Close a blocked interval still open at the end of the history against ``as_of``."""
    if not state.is_blocked or state.blocked_since is None:
        return state
    return replace(
        state,
        blocked_days=state.blocked_days + days_between(state.blocked_since, as_of),
    )


def replay(
    events: Iterable[FieldChangeEvent],
    schema: BoardColumnSchema,
    as_of: date,
) -> ReplayResult:
    """Replay ordered events into a column date map and a blocked-day total.

    Args:
        events: Field-change events in strictly increasing revision order.
        schema: Board headers with split columns expanded.
        as_of: Run date used to close a blocked interval that is still open.

    Returns:
        ``ReplayResult`` whose ``column_dates`` has exactly one key per schema header.
    """
    state = initial_state(schema)
    for event in events:
        state = step(state, event, schema)
    state = close_open_interval(state, as_of)

    return ReplayResult(
        column_dates=dict(zip(schema.headers, state.column_dates)),
        blocked_days=state.blocked_days,
    )
