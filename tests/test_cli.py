"""Tests for command-line argument parsing."""

import sys
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ado_flow_metrics.cli import parse_args

REQUIRED = ["ado-flow-metrics", "--org", "my-org", "--project", "my-project", "--team", "my-team"]


def test_parse_args_with_valid_arguments(monkeypatch):
    """Verify CLI parsing succeeds when all arguments are provided."""
    monkeypatch.setattr(
        sys,
        "argv",
        REQUIRED
        + [
            "--board",
            "Features",
            "--output",
            "report.csv",
            "--extra-field",
            "Story Points=Microsoft.VSTS.Scheduling.StoryPoints",
            "--extra-field",
            "Owner=System.AssignedTo",
            "--fix-decreasing-dates",
            "--max-workers",
            "4",
            "--no-cache",
        ],
    )

    args = parse_args()

    assert args.org == "my-org"
    assert args.project == "my-project"
    assert args.team == "my-team"
    assert args.board == "Features"
    assert args.output == "report.csv"
    assert args.extra_field == [
        "Story Points=Microsoft.VSTS.Scheduling.StoryPoints",
        "Owner=System.AssignedTo",
    ]
    assert args.fix_decreasing_dates is True
    assert args.max_workers == 4
    assert args.no_cache is True


def test_parse_args_defaults(monkeypatch):
    """Verify optional arguments fall back to their defaults."""
    monkeypatch.setattr(sys, "argv", list(REQUIRED))

    args = parse_args()

    assert args.board == "Stories"
    assert args.output == "flow-metrics.csv"
    assert args.wiql is None
    assert args.extra_field == []
    assert args.blocked_field is None
    assert args.fix_decreasing_dates is False
    assert args.max_workers == 8
    assert args.no_cache is False
    assert args.verbose is False


def test_parse_args_with_zero_workers_fails_validation(monkeypatch):
    """Verify CLI parsing exits with an error when --max-workers is not positive."""
    monkeypatch.setattr(sys, "argv", REQUIRED + ["--max-workers", "0"])

    with pytest.raises(SystemExit):
        parse_args()


def test_parse_args_without_team_fails(monkeypatch):
    """Verify the team is required."""
    monkeypatch.setattr(sys, "argv", ["ado-flow-metrics", "--org", "o", "--project", "p"])

    with pytest.raises(SystemExit):
        parse_args()
