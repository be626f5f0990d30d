"""Command-line entry point for dupreaper."""

import argparse
import logging
import sys

from dupreaper.config import BACKENDS, ReaperConfig
from dupreaper.errors import ReaperError
from dupreaper.log import configure_logging
from dupreaper.reaper import Reaper

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dupreaper",
        description="Terminate every other process running the same executable as this one.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="list duplicates without terminating them",
    )
    parser.add_argument(
        "--max-process-ids",
        type=int,
        default=None,
        metavar="N",
        help="cap the process snapshot at N entries (default: unbounded)",
    )
    parser.add_argument("--backend", choices=BACKENDS, default=None, help="process API to use")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="logging level (default: INFO)",
    )
    parser.add_argument("--watch", action="store_true", help="open the interactive watch screen")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for the dupreaper command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = ReaperConfig.from_env().merged(
            {
                "dry_run": args.dry_run,
                "max_process_ids": args.max_process_ids,
                "backend": args.backend,
            }
        )
    except ValueError as exc:
        parser.error(str(exc))

    if args.watch:
        return _watch(config, args.log_level)

    configure_logging(args.log_level)
    try:
        report = Reaper(config=config).reap()
    except ReaperError as exc:
        logger.error("%s", exc)
        return 1

    if report.dry_run:
        for record in report.matched:
            print(f"{record.pid}\t{record.image_path}")
    else:
        print(report.count)
    return 1 if report.aborted else 0


def _watch(config: ReaperConfig, log_level: str) -> int:
    from textual.logging import TextualHandler

    from dupreaper.app import ReaperApp

    configure_logging(log_level, handler=TextualHandler())
    app = ReaperApp(Reaper(config=config))
    app.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
