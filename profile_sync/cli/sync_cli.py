"""
Command-line interface for profile reconciliation.

Usage:
    profile-sync run [options]
    profile-sync show-query [--max-results N]
"""

import argparse
import os
import sys

from dotenv import load_dotenv
from pydantic import ValidationError

from ..config import DEFAULT_AID_PROP_NAME, Settings
from ..core.errors import ConfigError
from ..core.mappings import REQUIRED_FIELDS
from ..observability import metrics
from ..observability.logger import get_logger, setup_logger
from ..pipeline import ReconciliationPipeline
from ..remote.query_builder import build_missing_fields_query

logger = get_logger(__name__)


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """
    Apply command-line overrides on top of environment settings.

    Args:
        settings: Settings loaded from the environment
        args: Parsed arguments

    Returns:
        Settings with overrides applied

    Raises:
        ConfigError: If an override violates a setting's constraints
    """
    overrides = {}
    if getattr(args, "dry_run", False):
        overrides["dry_run"] = True
    if getattr(args, "force", False):
        overrides["force_update_if_different"] = True
    if getattr(args, "max_results", None) is not None:
        overrides["max_jql_results"] = args.max_results
    if getattr(args, "dry_run_limit", None) is not None:
        overrides["dry_run_limit"] = args.dry_run_limit
    if getattr(args, "run_tag", None):
        overrides["run_id"] = args.run_tag
    try:
        return Settings.model_validate({**settings.model_dump(), **overrides})
    except ValidationError as e:
        raise ConfigError(f"Invalid command-line option: {e}") from e


def run_command(args: argparse.Namespace) -> int:
    """
    Execute a reconciliation run.

    Args:
        args: Command-line arguments

    Returns:
        Process exit code
    """
    try:
        settings = apply_overrides(Settings.from_env(), args)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if args.metrics_port:
        metrics.start_metrics_server(args.metrics_port)
        logger.info(f"Serving metrics on port {args.metrics_port}")

    logger.info(
        f"Starting reconciliation run {settings.run_id}",
        extra={"run_id": settings.run_id, "dry_run": settings.dry_run}
    )

    try:
        pipeline = ReconciliationPipeline(settings)
        result = pipeline.run()
    except Exception as e:
        logger.error(f"Reconciliation run failed: {e}", exc_info=True)
        return 1

    logger.info("=" * 60)
    logger.info("RECONCILIATION COMPLETE")
    logger.info("=" * 60)
    logger.info(f"Profiles queried: {result.profiles_queried}")
    logger.info(f"Profiles without join key: {result.rows_without_join_key}")
    logger.info(f"Keys requested / resolved: {result.keys_requested} / {result.keys_resolved}")
    logger.info(f"Rows without database record: {result.rows_not_found}")
    logger.info(f"Rows already up to date: {result.rows_without_changes}")
    logger.info(f"Updates planned / sent: {result.updates_planned} / {result.updates_sent}")
    if result.failed_batches:
        logger.warning(f"Failed update batches: {result.failed_batches}")
    logger.info("=" * 60)

    return 0


def show_query_command(args: argparse.Namespace) -> int:
    """
    Print the generated JQL script without contacting any service.

    Options default to MAX_JQL_RESULTS and AID_PROP_NAME, as for `run`;
    mandatory credentials are not needed.
    """
    load_dotenv()
    max_results = args.max_results
    if max_results is None:
        raw = os.environ.get("MAX_JQL_RESULTS") or "0"
        try:
            max_results = int(raw)
        except ValueError:
            logger.error(f"Configuration error: MAX_JQL_RESULTS is not an integer: {raw!r}")
            return 1
    aid_prop_name = args.aid_prop_name or os.environ.get("AID_PROP_NAME", DEFAULT_AID_PROP_NAME)

    script = build_missing_fields_query(REQUIRED_FIELDS, max_results, aid_prop_name)
    print(script)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="profile-sync",
        description="Backfill missing subscription fields on analytics profiles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview what would be updated
  profile-sync run --dry-run --dry-run-limit 500

  # Live run that also overwrites values that differ from the database
  profile-sync run --force

  # Inspect the query sent to the analytics platform
  profile-sync show-query --max-results 100
        """
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "text"],
        default=None,
        help="Log output format (default: env LOG_FORMAT or json)"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: env LOG_LEVEL or INFO)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run a reconciliation")
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Simulate updates without writing to the analytics platform"
    )
    run_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite populated values that differ from the database"
    )
    run_parser.add_argument(
        "--max-results",
        type=int,
        default=None,
        help="Cap the number of profiles selected by the query (0 = unlimited)"
    )
    run_parser.add_argument(
        "--dry-run-limit",
        type=int,
        default=None,
        help="In dry-run mode, look up at most this many join keys"
    )
    run_parser.add_argument(
        "--run-tag",
        default=None,
        help="Explicit run identifier (default: env SYNC_RUN_TAG or current time)"
    )
    run_parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port during the run"
    )

    query_parser = subparsers.add_parser("show-query", help="Print the generated JQL script")
    query_parser.add_argument(
        "--max-results",
        type=int,
        default=None,
        help="Result cap embedded in the script (default: env MAX_JQL_RESULTS or 0 = unlimited)"
    )
    query_parser.add_argument(
        "--aid-prop-name",
        default=None,
        help="Profile property holding the join key (default: env AID_PROP_NAME)"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logger(level=args.log_level, format_type=args.log_format)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "run":
        return run_command(args)
    if args.command == "show-query":
        return show_query_command(args)
    return 1


if __name__ == "__main__":
    sys.exit(main())
