"""Command-line argument parsing for the ADO flow metrics exporter."""

from __future__ import annotations

import argparse


def _positive_int(value: str) -> int:
    """Parse and validate a positive integer CLI value.

    Args:
        value: Raw command-line argument value.

    Returns:
        The validated positive integer.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive integer.
    """
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be an integer") from exc

    if parsed <= 0:
        raise argparse.ArgumentTypeError("must be greater than 0")

    return parsed


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments for a flow metrics export.

    Returns:
        Parsed CLI arguments describing the board to read, the work items to
        export and where the CSV report (and its delta cache) lives.
    """
    parser = argparse.ArgumentParser(
        prog="ado-flow-metrics",
        description=(
            "Export Azure DevOps Kanban flow metrics: the date each work item "
            "entered every board column, plus blocked days."
        ),
    )

    parser.add_argument(
        "--org",
        required=True,
        help="Azure DevOps organization name.",
    )
    parser.add_argument(
        "--project",
        required=True,
        help="Azure DevOps project name.",
    )
    parser.add_argument(
        "--team",
        required=True,
        help="Team that owns the board.",
    )
    parser.add_argument(
        "--board",
        default="Stories",
        help="Board (backlog level) name (default: Stories).",
    )
    parser.add_argument(
        "--output",
        default="flow-metrics.csv",
        help="CSV report path; the previous report is reused as delta cache (default: flow-metrics.csv).",
    )
    parser.add_argument(
        "--wiql",
        default=None,
        help="WIQL query selecting the work items to export (default: all non-removed items in the project).",
    )
    parser.add_argument(
        "--extra-field",
        action="append",
        default=[],
        metavar="HEADER=REFERENCE",
        help="Additional work item field to export, e.g. 'Story Points=Microsoft.VSTS.Scheduling.StoryPoints' (repeatable).",
    )
    parser.add_argument(
        "--blocked-field",
        default=None,
        help="Reference name of the blocked field (default: Microsoft.VSTS.CMMI.Blocked).",
    )
    parser.add_argument(
        "--fix-decreasing-dates",
        action="store_true",
        help="Forward-fill skipped columns and raise dates that are earlier than a preceding column.",
    )
    parser.add_argument(
        "--max-workers",
        type=_positive_int,
        default=8,
        help="Number of work items processed in parallel; 1 runs sequentially (default: 8).",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Ignore the previous report and reprocess every work item.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    return parser.parse_args()
