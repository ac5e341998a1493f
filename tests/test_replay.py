"""Tests for the board column replay state machine."""

import sys
from datetime import date, datetime, timezone
from pathlib import Path

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ado_flow_metrics.models import BlockedFlag, BoardColumn, BoardColumnSchema, FieldChangeEvent
from ado_flow_metrics.replay import initial_state, replay, step

AS_OF = date(2024, 2, 1)


def _at(day: int, hour: int = 12) -> datetime:
    return datetime(2024, 1, day, hour, 0, 0, tzinfo=timezone.utc)


def _event(
    rev: int,
    changed_at: datetime | None,
    column: str | None = None,
    done: bool | None = None,
    blocked: BlockedFlag | None = None,
) -> FieldChangeEvent:
    return FieldChangeEvent(
        item_id=1,
        revision=rev,
        changed_at=changed_at,
        column_name=column,
        column_is_done=done,
        blocked=blocked,
    )


def _simple_schema() -> BoardColumnSchema:
    return BoardColumnSchema(headers=("Backlog", "Doing", "Review", "Done"))


def _split_schema() -> BoardColumnSchema:
    return BoardColumnSchema.from_columns(
        [
            BoardColumn(name="New", column_type="incoming"),
            BoardColumn(name="Active", is_split=True),
            BoardColumn(name="Closed", column_type="outgoing"),
        ]
    )


def test_forward_moves_record_first_entry_dates():
    """Verify each column gets the date the item first entered it."""
    events = [
        _event(1, _at(1), column="Backlog"),
        _event(2, _at(2), column="Doing"),
        _event(3, _at(5), column="Review"),
    ]

    result = replay(events, _simple_schema(), as_of=AS_OF)

    assert result.column_dates == {
        "Backlog": date(2024, 1, 1),
        "Doing": date(2024, 1, 2),
        "Review": date(2024, 1, 5),
        "Done": None,
    }
    assert result.blocked_days == 0


def test_backflow_clears_later_columns_and_keeps_latest_revisit():
    """Verify a regression to Doing clears Review and stamps Doing with the revisit date."""
    events = [
        _event(1, _at(1), column="Backlog"),
        _event(2, _at(2), column="Doing"),
        _event(3, _at(3), column="Review"),
        _event(4, _at(4), column="Doing"),
    ]

    result = replay(events, _simple_schema(), as_of=AS_OF)

    assert result.column_dates == {
        "Backlog": date(2024, 1, 1),
        "Doing": date(2024, 1, 4),
        "Review": None,
        "Done": None,
    }


def test_backflow_then_forward_again_records_new_entry_dates():
    """Verify columns cleared by backflow are re-captured when the item moves forward again."""
    events = [
        _event(1, _at(1), column="Backlog"),
        _event(2, _at(2), column="Doing"),
        _event(3, _at(3), column="Review"),
        _event(4, _at(4), column="Doing"),
        _event(5, _at(8), column="Review"),
        _event(6, _at(9), column="Done"),
    ]

    result = replay(events, _simple_schema(), as_of=AS_OF)

    assert result.column_dates["Doing"] == date(2024, 1, 4)
    assert result.column_dates["Review"] == date(2024, 1, 8)
    assert result.column_dates["Done"] == date(2024, 1, 9)


def test_skipped_columns_stay_empty_on_forward_jump():
    """Verify jumping over a column leaves it unset."""
    events = [
        _event(1, _at(1), column="Backlog"),
        _event(2, _at(3), column="Done"),
    ]

    result = replay(events, _simple_schema(), as_of=AS_OF)

    assert result.column_dates["Doing"] is None
    assert result.column_dates["Review"] is None
    assert result.column_dates["Done"] == date(2024, 1, 3)


def test_done_flag_on_split_column_routes_to_done_header():
    """Verify the done flag moves a split column item into its Done sub-column."""
    events = [
        _event(1, _at(1), column="New"),
        _event(2, _at(2), column="Active"),
        _event(3, _at(4), done=True),
        _event(4, _at(6), column="Closed"),
    ]

    result = replay(events, _split_schema(), as_of=AS_OF)

    assert result.column_dates == {
        "New": date(2024, 1, 1),
        "Active": date(2024, 1, 2),
        "Active Done": date(2024, 1, 4),
        "Closed": date(2024, 1, 6),
    }


def test_column_and_done_in_same_revision_enters_done_header():
    """Verify a column change carrying done=True lands directly in the Done sub-column."""
    events = [
        _event(1, _at(1), column="New"),
        _event(2, _at(3), column="Active", done=True),
    ]

    result = replay(events, _split_schema(), as_of=AS_OF)

    assert result.column_dates["Active"] is None
    assert result.column_dates["Active Done"] == date(2024, 1, 3)


def test_done_flag_resets_when_column_changes():
    """Verify moving back into a split column starts in its doing half."""
    events = [
        _event(1, _at(1), column="Active"),
        _event(2, _at(2), done=True),
        _event(3, _at(3), column="Closed"),
        _event(4, _at(5), column="Active"),
    ]

    result = replay(events, _split_schema(), as_of=AS_OF)

    assert result.column_dates["Active"] == date(2024, 1, 5)
    assert result.column_dates["Active Done"] is None
    assert result.column_dates["Closed"] is None


def test_unknown_column_is_ignored_but_still_tracked():
    """Verify columns missing from the board never appear in the map yet update running state."""
    events = [
        _event(1, _at(1), column="Active"),
        _event(2, _at(2), column="Retired Column"),
        _event(3, _at(3), done=True),
        _event(4, _at(4), column="Active"),
    ]

    result = replay(events, _split_schema(), as_of=AS_OF)

    assert set(result.column_dates) == {"New", "Active", "Active Done", "Closed"}
    assert result.column_dates["Active"] == date(2024, 1, 1)
    assert result.column_dates["Active Done"] is None


def test_event_without_timestamp_updates_state_but_not_dates():
    """Verify an event lacking a timestamp still advances the furthest column reached."""
    events = [
        _event(1, _at(1), column="Backlog"),
        _event(2, None, column="Review"),
        _event(3, _at(6), column="Doing"),
    ]

    result = replay(events, _simple_schema(), as_of=AS_OF)

    assert result.column_dates["Review"] is None
    assert result.column_dates["Doing"] == date(2024, 1, 6)


def test_blocked_interval_counts_whole_days():
    """Verify a Yes/No pair adds the calendar-day difference."""
    events = [
        _event(1, _at(1, hour=18), blocked=BlockedFlag.YES),
        _event(2, _at(4, hour=9), blocked=BlockedFlag.NO),
    ]

    result = replay(events, _simple_schema(), as_of=AS_OF)

    assert result.blocked_days == 3


def test_blocked_interval_on_same_day_contributes_zero():
    """Verify same-day blocked intervals are truncated to zero days."""
    events = [
        _event(1, _at(2, hour=8), blocked=BlockedFlag.YES),
        _event(2, _at(2, hour=20), blocked=BlockedFlag.NO),
    ]

    result = replay(events, _simple_schema(), as_of=AS_OF)

    assert result.blocked_days == 0


def test_blocked_intervals_accumulate_and_ignore_repeated_flags():
    """Verify repeated Yes keeps the original start and unmatched No is ignored."""
    events = [
        _event(1, _at(1), blocked=BlockedFlag.NO),
        _event(2, _at(2), blocked=BlockedFlag.YES),
        _event(3, _at(3), blocked=BlockedFlag.YES),
        _event(4, _at(5), blocked=BlockedFlag.NO),
        _event(5, _at(10), blocked=BlockedFlag.YES),
        _event(6, _at(11), blocked=BlockedFlag.NO),
    ]

    result = replay(events, _simple_schema(), as_of=AS_OF)

    assert result.blocked_days == 4


def test_open_blocked_interval_is_closed_against_run_date():
    """Verify a still-blocked item counts days up to the run date."""
    events = [
        _event(1, _at(1), column="Backlog"),
        _event(2, _at(21), blocked=BlockedFlag.YES),
    ]

    result = replay(events, _simple_schema(), as_of=date(2024, 1, 31))

    assert result.blocked_days == 10


def test_step_does_not_mutate_previous_state():
    """Verify step returns a new state and leaves its input untouched."""
    schema = _simple_schema()
    state = initial_state(schema)

    next_state = step(state, _event(1, _at(1), column="Doing"), schema)

    assert state.column_dates == (None, None, None, None)
    assert state.max_index_reached == -1
    assert next_state.column_dates == (None, date(2024, 1, 1), None, None)
    assert next_state.max_index_reached == 1
    assert next_state.current_column == "Doing"


def test_step_blocked_transition_opens_interval():
    """Verify a Yes event opens a blocked interval at the event time."""
    schema = _simple_schema()

    state = step(initial_state(schema), _event(1, _at(3), blocked=BlockedFlag.YES), schema)

    assert state.is_blocked is True
    assert state.blocked_since == _at(3)
    assert state.blocked_days == 0
