"""
Command-line entry point.

Run from a Jenkins stage after the Postman CLI has written its report::

    xray-sync results.json
    xray-sync results.json --config config/sync_config.yaml --summary-out sync-summary.json

Exit codes:
    0  all records processed or skipped
    1  fatal error (settings, report parsing, Xray authentication)
    2  run completed but at least one record failed remotely
"""

from __future__ import annotations

import argparse
import sys
import warnings
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from loguru import logger

from xray_sync import __version__
from xray_sync.errors import AuthError, ConfigurationError, KeyExtractionWarning, ParseError
from xray_sync.jira_client.jira_client import JiraClient
from xray_sync.jira_client.xray_client import XrayClient, XraySession
from xray_sync.postman.key_extractor import KeyExtractor
from xray_sync.postman.report_parser import load_report
from xray_sync.settings import load_settings
from xray_sync.sync.key_store import KeyMappingStore
from xray_sync.sync.reconciler import Reconciler

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_RECORD_ERRORS = 2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for a synchronization run."""
    parser = argparse.ArgumentParser(
        prog="xray-sync",
        description="Synchronize Postman CLI results into Jira/Xray",
    )
    parser.add_argument(
        "results",
        nargs="?",
        default="./results.json",
        help="Path to the Postman JSON report (default: ./results.json)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default="",
        help="Optional YAML/JSON settings file; environment variables take precedence",
    )
    parser.add_argument(
        "--env-file",
        type=str,
        default=".env",
        help="dotenv file loaded before reading the environment (default: .env)",
    )
    parser.add_argument(
        "--key-map",
        type=str,
        default="",
        help="JSON file persisting case/bug keys between runs",
    )
    parser.add_argument(
        "--summary-out",
        type=str,
        default="",
        help="Write the run summary as JSON to this path",
    )
    parser.add_argument(
        "--allow-record-errors",
        action="store_true",
        help="Exit 0 even when individual records failed remotely",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit structured JSON log lines",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug output",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def _format_record(record: Dict[str, Any]) -> str:
    fmt = (
        "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
        "{message}"
    )
    if record["extra"]:
        fmt += " <dim>{extra}</dim>"
    return fmt + "\n{exception}"


def configure_logging(verbose: bool = False, json_logs: bool = False) -> None:
    """Replace loguru's default sink with the CLI's stderr sink."""
    logger.remove()
    level = "DEBUG" if verbose else "INFO"
    if json_logs:
        logger.add(sys.stderr, level=level, serialize=True)
    else:
        logger.add(sys.stderr, level=level, format=_format_record)


def _save_key_map(store: KeyMappingStore) -> bool:
    try:
        store.save()
    except OSError as e:
        logger.error(f"[Sync] Cannot write key map {store.path}: {e}")
        return False
    return True


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the synchronizer."""
    args = parse_args(argv)
    configure_logging(args.verbose, args.log_json)
    # Already reported through the logger by the extractor
    warnings.simplefilter("ignore", KeyExtractionWarning)

    logger.info("=" * 60)
    logger.info(f"[Sync] postman-xray-sync {__version__}")
    logger.info("=" * 60)
    logger.info(f"[Sync] Results: {args.results}")

    if args.env_file:
        load_dotenv(args.env_file, override=False)

    try:
        settings = load_settings(args.config or None)
        report = load_report(args.results)
        store = KeyMappingStore.load(args.key_map or settings.key_map_path)
    except (ConfigurationError, ParseError) as e:
        logger.error(f"[Sync] {e}")
        return EXIT_FATAL

    jira = JiraClient(settings.jira)
    xray = XrayClient(settings.xray, session=XraySession())
    try:
        xray.authenticate()
        reconciler = Reconciler(
            jira,
            xray,
            extractor=KeyExtractor(settings.patterns),
            store=store,
            pipeline_url=settings.pipeline_url,
        )
        summary = reconciler.reconcile(report)
    except AuthError as e:
        logger.error(f"[Sync] Xray authentication failed: {e}")
        return EXIT_FATAL
    except ConfigurationError as e:
        logger.error(f"[Sync] {e}")
        return EXIT_FATAL
    finally:
        saved = _save_key_map(store)
        jira.close()
        xray.close()

    if not saved:
        return EXIT_FATAL

    if args.summary_out:
        summary.export_json(args.summary_out)

    logger.info(
        f"[Sync] Summary: processed={summary.processed} "
        f"skipped={summary.skipped} errored={summary.errored}"
    )
    if summary.has_errors and not args.allow_record_errors:
        logger.warning(f"[Sync] {summary.errored} record(s) failed; exiting with {EXIT_RECORD_ERRORS}")
        return EXIT_RECORD_ERRORS
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
