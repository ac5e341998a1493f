"""Entry point for the Azure DevOps flow metrics exporter."""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone

from .ado_client import AdoClient
from .cache import load_cache, merge_rows, reconcile
from .cli import parse_args
from .config import load_config
from .errors import ApiError, AuthenticationError, ConfigurationError, DataValidationError
from .flow import FlowContext, compute_rows
from .models import BoardColumnSchema
from .report import build_headers, write_report

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIGURATION = 2
EXIT_AUTHENTICATION = 3
EXIT_API = 4
EXIT_DATA_VALIDATION = 5


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def orchestrate_flow_metrics() -> int:
    """Run a full export and map failures to process exit codes.

    Returns:
        ``0`` on success, ``2`` for configuration errors, ``3`` for missing
        credentials, ``4`` for Azure DevOps API failures, ``5`` for invalid
        board or payload data and ``1`` for anything unexpected.
    """
    try:
        args = parse_args()
        configure_logging(args.verbose)

        config = load_config(
            organization=args.org,
            project=args.project,
            team=args.team,
            board=args.board,
            output_path=args.output,
            wiql=args.wiql,
            fix_decreasing_dates=args.fix_decreasing_dates,
            max_workers=args.max_workers,
            use_cache=not args.no_cache,
            blocked_field=args.blocked_field,
            extra_fields=args.extra_field,
        )
        ado_client = AdoClient(config=config)

        print(f"Reading board '{config.board}' of team '{config.team}'...")
        schema = BoardColumnSchema.from_columns(ado_client.get_board_columns(config.team, config.board))
        column_field, done_field = ado_client.get_board_fields(config.team, config.board)
        headers = build_headers(schema, config.extra_fields)

        print("Querying work items...")
        item_ids = ado_client.query_work_item_ids(config.wiql, team=config.team)
        live_changed_dates = ado_client.get_changed_dates(item_ids)

        cache = load_cache(config.output_path, headers) if config.use_cache else None
        reconciliation = reconcile(cache, live_changed_dates)
        print(
            f"Work items: {len(live_changed_dates)} "
            f"(new={reconciliation.new_count}, changed={reconciliation.changed_count}, "
            f"unchanged={reconciliation.unchanged_count})"
        )

        context = FlowContext(
            schema=schema,
            column_field=column_field,
            done_field=done_field,
            blocked_field=config.blocked_field,
            as_of=datetime.now(timezone.utc).date(),
            fix_decreasing_dates=config.fix_decreasing_dates,
            extra_fields=config.extra_fields,
        )
        fresh_rows = compute_rows(
            ado_client=ado_client,
            item_ids=reconciliation.to_reprocess,
            context=context,
            max_workers=config.max_workers,
        )

        records = merge_rows(reconciliation.to_reuse, fresh_rows, headers)
        row_count = write_report(config.output_path, headers, records)
        print(f"Wrote {row_count} work items to '{config.output_path}'.")
        return EXIT_OK
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION
    except AuthenticationError as exc:
        print(f"Authentication error: {exc}", file=sys.stderr)
        return EXIT_AUTHENTICATION
    except ApiError as exc:
        print(f"Azure DevOps API error: {exc}", file=sys.stderr)
        return EXIT_API
    except DataValidationError as exc:
        print(f"Data validation error: {exc}", file=sys.stderr)
        return EXIT_DATA_VALIDATION
    except Exception:
        logger.exception("Unexpected error while exporting flow metrics")
        return EXIT_UNEXPECTED


def main() -> int:
    return orchestrate_flow_metrics()


if __name__ == "__main__":
    raise SystemExit(main())
