"""Main module for the images queue CLI."""

import sys
import signal
import asyncio
import argparse
from typing import List, Optional

from . import __version__
from .core import ConfigurationError, PipelineConfig, RunResult, SweepCancelledError, get_logger, load_config
from .core.factories import LoggerFactory, open_services
from .core.image_utils import DEFAULT_PATTERNS
from .core.logging_config import set_debug_logging
from .processors import Consumer, Producer

EXIT_OK = 0
EXIT_CONFIGURATION_ERROR = 1
EXIT_ITEMS_FAILED = 2


class CLIArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors with the configuration error status."""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(EXIT_CONFIGURATION_ERROR, f"{self.prog}: error: {message}\n")


def build_parser() -> CLIArgumentParser:
    """
    Build the argument parser for the ``images-queue`` command.

    Returns:
        A `CLIArgumentParser` with the produce, consume and version subcommands.
    """
    parser = CLIArgumentParser(
        prog="images-queue",
        description="Images Queue - stage images in S3, enqueue references on SQS, resize on drain",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Stage and enqueue every image in a folder
  images-queue produce --folder ./incoming

  # Preview what a consumer sweep would do
  images-queue consume --simulate

  # Show version
  images-queue version
        """,
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to appsettings.json (default: ./appsettings.json if present)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    produce_parser = subparsers.add_parser(
        "produce", help="Upload images from a local folder and enqueue references"
    )
    produce_parser.add_argument("--folder", required=True, help="Folder containing images to enqueue")
    produce_parser.add_argument(
        "--pattern",
        default=DEFAULT_PATTERNS,
        help=f"File pattern(s) separated by semicolons (default: {DEFAULT_PATTERNS})",
    )
    produce_parser.add_argument(
        "--simulate",
        "--dry-run",
        dest="simulate",
        action="store_true",
        help="Log the decisions without uploading, enqueuing or deleting anything",
    )

    consume_parser = subparsers.add_parser(
        "consume", help="Drain the queue, resize images and upload the results"
    )
    consume_parser.add_argument(
        "--simulate",
        "--dry-run",
        dest="simulate",
        action="store_true",
        help="Peek one batch and log the decisions without changing anything",
    )

    subparsers.add_parser("version", help="Show version information")
    return parser


def _install_cancel_handlers(cancel_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel_event.set)
        except (NotImplementedError, RuntimeError, ValueError):
            # Not supported on this platform or outside the main thread
            pass


async def dispatch(args: argparse.Namespace, config: PipelineConfig) -> RunResult:
    """Open the service clients and run the requested sweep."""
    cancel_event = asyncio.Event()
    _install_cancel_handlers(cancel_event)

    async with open_services(config) as (store, queue):
        if args.command == "produce":
            producer = Producer(
                store, queue, config, LoggerFactory.create_logger("images-queue.producer", config.debug)
            )
            return await producer.run(
                args.folder, args.pattern, simulate=args.simulate, cancel_event=cancel_event
            )
        consumer = Consumer(
            store, queue, config, LoggerFactory.create_logger("images-queue.consumer", config.debug)
        )
        return await consumer.run(simulate=args.simulate, cancel_event=cancel_event)


def run(argv: Optional[List[str]] = None) -> int:
    """
    Parse arguments, run one sweep and map its outcome to an exit status.

    Returns:
        0 when every item succeeded, 1 on configuration or argument errors,
        2 when at least one item failed or the sweep was cancelled.
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        # --help exits 0, usage errors exit with EXIT_CONFIGURATION_ERROR
        return e.code if isinstance(e.code, int) else EXIT_CONFIGURATION_ERROR
    logger = get_logger("images-queue")

    if args.command == "version":
        print("Images Queue CLI")
        print(f"Version {__version__}")
        return EXIT_OK
    if args.command is None:
        parser.print_help()
        return EXIT_CONFIGURATION_ERROR

    if args.debug:
        set_debug_logging()

    try:
        config = load_config(args.config, debug=True if args.debug else None)
        config.require_connection()
        result = asyncio.run(dispatch(args, config))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIGURATION_ERROR
    except (SweepCancelledError, KeyboardInterrupt):
        logger.warning("Processing interrupted; remaining items were not handled.")
        return EXIT_ITEMS_FAILED

    return result.exit_code


def main() -> None:
    """Console script entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
