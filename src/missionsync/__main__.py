"""Mission sync entry point.

Changes:
  - 2026-02-15: Added `migrate` command for legacy mission documents.
  - 2026-02-14: Initial `serve` command.
"""

import argparse
import logging
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path

from missionsync.config import get_settings
from missionsync.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _version() -> str:
    try:
        return get_version("missionsync")
    except PackageNotFoundError:
        return "unknown"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="missionsync",
        description="Mission sync - stream mission document changes to live viewers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  missionsync                         Start the server (default)
  missionsync serve --port 9000       Start on another port
  missionsync migrate --dry-run       Show which legacy documents would get headers
  missionsync migrate --force         Re-encode every document
""",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="serve",
        choices=["serve", "migrate"],
        help="What to run (default: serve)",
    )
    parser.add_argument("--root", type=Path, default=None, help="Override the document root")
    parser.add_argument("--host", type=str, default=None, help="Host to bind")
    parser.add_argument("--port", "-p", type=int, default=None, help="Port to bind")
    parser.add_argument(
        "--dry-run", action="store_true", help="migrate: report without writing files"
    )
    parser.add_argument(
        "--force", action="store_true", help="migrate: re-encode documents that have headers"
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {_version()}")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level)

    settings = get_settings()
    overrides = {}
    if args.root is not None:
        overrides["root_path"] = args.root
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if overrides:
        settings = settings.model_copy(update=overrides)

    if args.command == "migrate":
        from missionsync.migrate import migrate_missions

        report = migrate_missions(settings, dry_run=args.dry_run, force=args.force)
        return 1 if report.failed else 0

    from missionsync.server import run_server

    try:
        run_server(settings)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
