"""Domain models for Azure DevOps board flow metrics.

These dataclasses intentionally model only the subset of API payload fields that
are required to replay a work item's board history and assemble its report row.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Set, Tuple

WorkItemId = int
ColumnDateMap = Dict[str, Optional[date]]

DONE_SUFFIX = " Done"


class BlockedFlag(Enum):
    """Value of the work item's blocked field."""

    YES = "Yes"
    NO = "No"

    @classmethod
    def parse(cls, value: object) -> Optional["BlockedFlag"]:
        """Parse a raw field value, returning ``None`` for anything unrecognized."""
        if value is None:
            return None
        normalized = str(value).strip().lower()
        if normalized == "yes":
            return cls.YES
        if normalized == "no":
            return cls.NO
        return None


@dataclass(frozen=True, slots=True)
class FieldChangeEvent:
    """One revision of a work item, reduced to the fields the replay cares about."""

    item_id: WorkItemId
    revision: int
    changed_at: Optional[datetime]
    column_name: Optional[str] = None
    column_is_done: Optional[bool] = None
    blocked: Optional[BlockedFlag] = None

    @property
    def touches_column(self) -> bool:
        return self.column_name is not None or self.column_is_done is not None


@dataclass(frozen=True, slots=True)
class BoardColumn:
    """Represents a Kanban board column returned by Azure DevOps."""

    name: str
    is_split: bool = False
    column_type: str = "inProgress"


@dataclass(frozen=True, slots=True)
class BoardColumnSchema:
    """Ordered report headers for a board, with split columns expanded.

    Every split column ``X`` is immediately followed by its virtual ``"X Done"``
    header, so list position defines flow direction for backflow detection.
    """

    headers: Tuple[str, ...]
    split_columns: FrozenSet[str] = frozenset()

    def __post_init__(self) -> None:
        if len(set(self.headers)) != len(self.headers):
            raise ValueError(f"Board column headers must be unique: {self.headers}")

    @classmethod
    def from_columns(cls, columns: Iterable[BoardColumn]) -> "BoardColumnSchema":
        headers = []
        split_columns: Set[str] = set()
        for column in columns:
            headers.append(column.name)
            if column.is_split:
                split_columns.add(column.name)
                headers.append(column.name + DONE_SUFFIX)
        return cls(headers=tuple(headers), split_columns=frozenset(split_columns))

    def __len__(self) -> int:
        return len(self.headers)

    def index_of(self, header: str) -> Optional[int]:
        """Return the position of ``header`` or ``None`` when it is not on the board."""
        try:
            return self.headers.index(header)
        except ValueError:
            return None

    def target_header(self, column_name: str, is_done: bool) -> str:
        """Resolve the header for a column, routing done split columns to ``"<name> Done"``."""
        if is_done and column_name in self.split_columns:
            return column_name + DONE_SUFFIX
        return column_name

    def empty_dates(self) -> ColumnDateMap:
        return {header: None for header in self.headers}


@dataclass(frozen=True, slots=True)
class ReplayState:
    """Snapshot of a work item's board position while its history is replayed."""

    column_dates: Tuple[Optional[date], ...]
    current_column: Optional[str] = None
    current_is_done: bool = False
    max_index_reached: int = -1
    is_blocked: bool = False
    blocked_since: Optional[datetime] = None
    blocked_days: int = 0


@dataclass(slots=True)
class ReplayResult:
    """Outcome of replaying one work item's history."""

    column_dates: ColumnDateMap
    blocked_days: int


@dataclass(frozen=True, slots=True)
class ExtraField:
    """An additional work item field exported under a configured header."""

    header: str
    reference: str


@dataclass(slots=True)
class WorkItemDetail:
    """Static work item fields copied into the report row."""

    id: WorkItemId
    work_item_type: str
    title: str
    state: str
    area_path: str
    created_date: datetime
    changed_date: datetime
    tags: str = ""
    blocked: str = ""
    extra: Dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class FlowMetricsRow:
    """One assembled report row, produced exactly once per item per run."""

    detail: WorkItemDetail
    column_dates: ColumnDateMap
    blocked_days: int

    @property
    def item_id(self) -> WorkItemId:
        return self.detail.id


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A row read back from a prior export, keyed by header name."""

    item_id: WorkItemId
    changed_date: str
    values: Dict[str, str]


@dataclass(slots=True)
class ReconcileResult:
    """Partition of live work items into reprocess and reuse sets."""

    to_reprocess: Set[WorkItemId] = field(default_factory=set)
    to_reuse: Dict[WorkItemId, CacheEntry] = field(default_factory=dict)
    new_count: int = 0
    changed_count: int = 0
    unchanged_count: int = 0
    dropped_count: int = 0
