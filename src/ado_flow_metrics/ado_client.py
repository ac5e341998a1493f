"""Azure DevOps REST API client for board and work item history retrieval."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

import requests
from requests.auth import HTTPBasicAuth

from .config import Config
from .errors import ApiError, DataValidationError
from .models import BoardColumn, ExtraField, WorkItemDetail, WorkItemId
from .timestamps import parse_timestamp

logger = logging.getLogger(__name__)

DETAIL_FIELDS = (
    "System.Id",
    "System.WorkItemType",
    "System.Title",
    "System.Tags",
    "System.State",
    "System.AreaPath",
    "System.CreatedDate",
    "System.ChangedDate",
)


def _segment(value: str) -> str:
    return quote(value, safe="")


def _field_text(value: Any) -> str:
    """Render a work item field value as report text."""
    if value is None:
        return ""
    if isinstance(value, dict):
        # Identity fields come back as objects
        return str(value.get("displayName") or value.get("uniqueName") or "")
    if isinstance(value, bool):
        return "True" if value else "False"
    return str(value)


class AdoClient:
    """Small, typed client for Azure DevOps boards and work item tracking APIs."""

    _API_VERSION = "7.1"
    _UPDATES_PAGE_SIZE = 200
    _BATCH_SIZE = 200
    _MAX_RETRIES = 5
    _MAX_BACKOFF_SECONDS = 30

    def __init__(self, config: Config, timeout_seconds: int = 30) -> None:
        """Initialize an authenticated Azure DevOps API client.

        Args:
            config: Validated runtime configuration including org/project/PAT.
            timeout_seconds: Per-request timeout in seconds.
        """
        self._timeout_seconds = timeout_seconds
        self._project_url = (
            f"https://dev.azure.com/{_segment(config.organization)}/{_segment(config.project)}"
        )

        self._session = requests.Session()
        self._session.auth = HTTPBasicAuth("", config.pat)
        self._session.headers.update({"Accept": "application/json"})

    def _build_url(self, path: str, team: Optional[str] = None) -> str:
        """Build a fully qualified API URL from a path below ``_apis``.

        Team-scoped resources such as boards live below ``{project}/{team}/_apis``.
        """
        scope = f"{self._project_url}/{_segment(team)}" if team else self._project_url
        return f"{scope}/_apis/{path.lstrip('/')}"

    def _extract_backoff_seconds(self, response: requests.Response, attempt: int) -> int:
        """Compute exponential backoff seconds, honoring Retry-After when available."""
        retry_after_header = response.headers.get("Retry-After")
        if retry_after_header:
            try:
                retry_after_seconds = int(retry_after_header)
                return min(self._MAX_BACKOFF_SECONDS, max(1, retry_after_seconds))
            except ValueError:
                pass

        return min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1))

    def _request_json(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Any] = None,
        team: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Execute a request with retry logic for network errors and 429/5xx responses.

        Raises:
            ApiError: If the request repeatedly fails, returns HTTP >= 400,
                or does not return valid JSON.
        """
        url = self._build_url(path, team=team)
        query = dict(params or {})
        query["api-version"] = self._API_VERSION

        last_error: Optional[Exception] = None

        for attempt in range(1, self._MAX_RETRIES + 1):
            try:
                response = self._session.request(
                    method,
                    url,
                    params=query,
                    json=json_body,
                    timeout=self._timeout_seconds,
                )
            except requests.RequestException as exc:
                last_error = exc
                if attempt == self._MAX_RETRIES:
                    raise ApiError(f"Azure DevOps request failed after retries: {method} {url}") from exc
                logger.debug(
                    "Retrying Azure DevOps request after network error",
                    extra={"url": url, "attempt": attempt, "error": str(exc)},
                )
                time.sleep(min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1)))
                continue

            status_code = response.status_code
            is_retryable = status_code == 429 or 500 <= status_code <= 599

            if is_retryable and attempt < self._MAX_RETRIES:
                backoff_seconds = self._extract_backoff_seconds(response, attempt)
                logger.debug(
                    "Retrying Azure DevOps request",
                    extra={"url": url, "attempt": attempt, "status_code": status_code},
                )
                time.sleep(backoff_seconds)
                continue

            if status_code >= 400:
                raise ApiError(
                    "Azure DevOps API request failed: "
                    f"{method} {url} returned {status_code} - {response.text}"
                )

            try:
                payload = response.json()
            except ValueError as exc:
                raise ApiError(f"Azure DevOps API returned invalid JSON: {method} {url}") from exc

            if not isinstance(payload, dict):
                raise ApiError(f"Azure DevOps API returned unexpected payload shape: {method} {url}")

            return payload

        raise ApiError(f"Azure DevOps request failed after retries: {method} {url}") from last_error

    def _get_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        team: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self._request_json("GET", path, params=params, team=team)

    def _post_json(self, path: str, json_body: Any, team: Optional[str] = None) -> Dict[str, Any]:
        return self._request_json("POST", path, json_body=json_body, team=team)

    def get_board_columns(self, team: str, board: str) -> List[BoardColumn]:
        """List the Kanban columns of a team board, left to right."""
        payload = self._get_json(f"work/boards/{_segment(board)}/columns", team=team)
        columns: List[BoardColumn] = []

        for item in payload.get("value", []):
            name = item.get("name")
            if not name:
                continue
            columns.append(
                BoardColumn(
                    name=str(name),
                    is_split=bool(item.get("isSplit")),
                    column_type=str(item.get("columnType") or "inProgress"),
                )
            )

        if not columns:
            raise DataValidationError(f"Board '{board}' of team '{team}' has no columns.")

        return columns

    def get_board_fields(self, team: str, board: str) -> Tuple[str, str]:
        """Return the reference names of the board's column and done fields.

        Raises:
            DataValidationError: If the board does not expose its Kanban fields.
        """
        payload = self._get_json(f"work/boards/{_segment(board)}", team=team)
        fields = payload.get("fields") or {}
        column_field = (fields.get("columnField") or {}).get("referenceName")
        done_field = (fields.get("doneField") or {}).get("referenceName")

        if not column_field or not done_field:
            raise DataValidationError(
                f"Board '{board}' of team '{team}' does not expose its column and done fields."
            )

        return str(column_field), str(done_field)

    def query_work_item_ids(self, wiql: str, team: Optional[str] = None) -> List[WorkItemId]:
        """Run a WIQL query and return the matching work item IDs in query order."""
        payload = self._post_json("wit/wiql", {"query": wiql}, team=team)
        item_ids: List[WorkItemId] = []

        for item in payload.get("workItems", []):
            item_id = item.get("id")
            if item_id is not None:
                item_ids.append(int(item_id))

        return item_ids

    def get_changed_dates(self, item_ids: Sequence[WorkItemId]) -> Dict[WorkItemId, datetime]:
        """Fetch ``System.ChangedDate`` for many work items in bounded batches.

        Raises:
            ApiError: If a returned work item has no parseable changed date.
        """
        changed_dates: Dict[WorkItemId, datetime] = {}

        for start in range(0, len(item_ids), self._BATCH_SIZE):
            batch = list(item_ids[start : start + self._BATCH_SIZE])
            payload = self._post_json(
                "wit/workitemsbatch",
                {"ids": batch, "fields": ["System.Id", "System.ChangedDate"]},
            )

            for item in payload.get("value", []):
                item_id = item.get("id")
                fields = item.get("fields") or {}
                changed_date = parse_timestamp(fields.get("System.ChangedDate"))
                if item_id is None or changed_date is None:
                    raise ApiError(
                        "Azure DevOps work item batch payload is missing required fields: "
                        f"payload={item}"
                    )
                changed_dates[int(item_id)] = changed_date

        return changed_dates

    def get_work_item_detail(
        self,
        item_id: WorkItemId,
        blocked_field: str,
        extra_fields: Sequence[ExtraField] = (),
    ) -> WorkItemDetail:
        """Fetch the static fields of a work item.

        Raises:
            ApiError: If identity or date fields are missing from the payload.
        """
        references = list(DETAIL_FIELDS) + [blocked_field]
        references.extend(
            extra_field.reference for extra_field in extra_fields if extra_field.reference not in references
        )
        payload = self._get_json(
            f"wit/workitems/{item_id}",
            params={"fields": ",".join(references)},
        )

        fields = payload.get("fields") or {}
        created_date = parse_timestamp(fields.get("System.CreatedDate"))
        changed_date = parse_timestamp(fields.get("System.ChangedDate"))
        if created_date is None or changed_date is None:
            raise ApiError(
                "Azure DevOps work item payload is missing required fields: "
                f"item_id={item_id}, payload={payload}"
            )

        return WorkItemDetail(
            id=int(payload.get("id", item_id)),
            work_item_type=_field_text(fields.get("System.WorkItemType")),
            title=_field_text(fields.get("System.Title")),
            state=_field_text(fields.get("System.State")),
            area_path=_field_text(fields.get("System.AreaPath")),
            created_date=created_date,
            changed_date=changed_date,
            tags=_field_text(fields.get("System.Tags")),
            blocked=_field_text(fields.get(blocked_field)),
            extra={
                extra_field.header: _field_text(fields.get(extra_field.reference))
                for extra_field in extra_fields
            },
        )

    def list_work_item_updates(self, item_id: WorkItemId) -> List[Dict[str, Any]]:
        """List the raw revision updates of a work item, oldest first.

        Uses offset pagination via ``$top``/``$skip`` until a partial page is returned.
        """
        updates: List[Dict[str, Any]] = []
        skip = 0

        while True:
            payload = self._get_json(
                f"wit/workItems/{item_id}/updates",
                params={"$top": self._UPDATES_PAGE_SIZE, "$skip": skip},
            )
            page_items = payload.get("value", [])
            updates.extend(page_items)

            if len(page_items) < self._UPDATES_PAGE_SIZE:
                break

            skip += self._UPDATES_PAGE_SIZE

        return updates
