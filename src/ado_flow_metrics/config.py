"""Configuration parsing and validation for the ADO flow metrics exporter."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from .errors import AuthenticationError, ConfigurationError
from .models import ExtraField

DEFAULT_BLOCKED_FIELD = "Microsoft.VSTS.CMMI.Blocked"
DEFAULT_WIQL = (
    "SELECT [System.Id] FROM WorkItems "
    "WHERE [System.TeamProject] = @project AND [System.State] <> 'Removed' "
    "ORDER BY [System.Id]"
)
RESERVED_HEADERS = frozenset(
    {
        "ID",
        "Work Item Type",
        "Title",
        "Tags",
        "State",
        "Area Path",
        "Blocked",
        "Blocked Days",
        "Changed Date",
    }
)


@dataclass(frozen=True)
class Config:
    """Validated runtime settings used by the flow metrics exporter."""

    organization: str
    project: str
    team: str
    board: str
    pat: str
    output_path: str
    wiql: str = DEFAULT_WIQL
    fix_decreasing_dates: bool = False
    max_workers: int = 8
    use_cache: bool = True
    blocked_field: str = DEFAULT_BLOCKED_FIELD
    extra_fields: Tuple[ExtraField, ...] = ()


def parse_extra_fields(entries: Iterable[str]) -> Tuple[ExtraField, ...]:
    """Parse ``"Header=Reference.Name"`` pairs into explicit extra-field definitions.

    Raises:
        ConfigurationError: If a pair is malformed, a header is repeated, or a
            header collides with a built-in report header.
    """
    extra_fields = []
    seen_headers = set()

    for entry in entries:
        header, separator, reference = entry.partition("=")
        header = header.strip()
        reference = reference.strip()
        if not separator or not header or not reference:
            raise ConfigurationError(
                f"Invalid extra field '{entry}': expected 'Header=Field.ReferenceName'."
            )
        if header in RESERVED_HEADERS:
            raise ConfigurationError(f"Extra field header '{header}' collides with a built-in column.")
        if header in seen_headers:
            raise ConfigurationError(f"Extra field header '{header}' is configured more than once.")
        seen_headers.add(header)
        extra_fields.append(ExtraField(header=header, reference=reference))

    return tuple(extra_fields)


def load_config(
    organization: str,
    project: str,
    team: str,
    board: str,
    output_path: str,
    wiql: Optional[str] = None,
    fix_decreasing_dates: bool = False,
    max_workers: int = 8,
    use_cache: bool = True,
    blocked_field: Optional[str] = None,
    extra_fields: Iterable[str] = (),
) -> Config:
    """Build and validate application configuration.

    Args:
        organization: Azure DevOps organization name.
        project: Azure DevOps project name.
        team: Team owning the board.
        board: Board (backlog level) name, for example ``Stories``.
        output_path: CSV report path; also read back as the delta cache.
        wiql: Optional WIQL query selecting work items; passed through as is.
        fix_decreasing_dates: Enforce non-decreasing column dates.
        max_workers: Worker pool width; ``1`` runs sequentially.
        use_cache: Reuse unchanged rows from the previous export.
        blocked_field: Reference name of the blocked field.
        extra_fields: ``"Header=Reference.Name"`` pairs for additional columns.

    Returns:
        A validated ``Config`` instance.

    Raises:
        ConfigurationError: If a value is missing or out of range.
        AuthenticationError: If ``ADO_PAT`` is not configured.
    """
    for name, value in (
        ("org", organization),
        ("project", project),
        ("team", team),
        ("board", board),
        ("output", output_path),
    ):
        if not value or not value.strip():
            raise ConfigurationError(f"Invalid value for '{name}': expected a non-empty string.")

    if max_workers <= 0:
        raise ConfigurationError("Invalid value for 'max_workers': expected an integer greater than 0.")

    parsed_extra_fields = parse_extra_fields(extra_fields)

    pat: str = os.getenv("ADO_PAT", "").strip()
    if not pat:
        raise AuthenticationError(
            "Missing required Azure DevOps Personal Access Token. "
            "Set the 'ADO_PAT' environment variable before running the flow metrics export."
        )

    return Config(
        organization=organization.strip(),
        project=project.strip(),
        team=team.strip(),
        board=board.strip(),
        pat=pat,
        output_path=output_path,
        wiql=wiql.strip() if wiql and wiql.strip() else DEFAULT_WIQL,
        fix_decreasing_dates=fix_decreasing_dates,
        max_workers=max_workers,
        use_cache=use_cache,
        blocked_field=(blocked_field or DEFAULT_BLOCKED_FIELD).strip(),
        extra_fields=parsed_extra_fields,
    )
