"""
Orchestrator - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for a worker process.

- Provides argparse-based CLI
- Loads configuration from CLI, environment and .env
- Loads configuration sources into the worker
- Entry point for the application

============================================================
USAGE
============================================================
python -m orchestrator.cli --env production --conf coin:coin
python -m orchestrator.cli --worker-type wrk-api --root /srv/wrk
python -m orchestrator.cli --show-facilities

============================================================
"""

import argparse
import asyncio
import logging
import sys
from typing import Callable, List, Optional, Tuple

from dotenv import load_dotenv

from .models import LifecycleState, RuntimeConfig
from .core import Orchestrator, setup_logging
from .registry import FacilityCatalog, identity_key
from core.exceptions import ConfigurationError


WorkerSetup = Callable[[Orchestrator], None]


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="facility-runtime",
        description="Worker process with ordered facility lifecycle",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Configuration sources:
  --conf coin          Load config/coin.json into the tree root
  --conf coin:coin     Load config/coin.json scoped under "coin"

Examples:
  %(prog)s --env production --conf coin:coin
  %(prog)s --worker-type wrk-api --root /srv/wrk
  %(prog)s --show-facilities
        """
    )

    # --------------------------------------------------------
    # Worker Options
    # --------------------------------------------------------
    worker_group = parser.add_argument_group("Worker Options")

    worker_group.add_argument(
        "--env", "-e",
        type=str,
        metavar="NAME",
        help="Environment name (default: $WORKER_ENV or development)",
    )

    worker_group.add_argument(
        "--root",
        type=str,
        metavar="PATH",
        help="Worker root holding config/ and status/ (default: $WORKER_ROOT or cwd)",
    )

    worker_group.add_argument(
        "--worker-type", "-w",
        type=str,
        metavar="NAME",
        help="Worker type, prefixes the status file (default: $WORKER_TYPE or worker)",
    )

    # --------------------------------------------------------
    # Configuration Options
    # --------------------------------------------------------
    conf_group = parser.add_argument_group("Configuration Options")

    conf_group.add_argument(
        "--conf", "-c",
        action="append",
        default=[],
        metavar="SOURCE[:GROUP]",
        help="Configuration source to load; repeatable",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: $LOG_LEVEL or INFO)",
    )

    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        help="Logging format (default: $LOG_FORMAT or text)",
    )

    # --------------------------------------------------------
    # System Options
    # --------------------------------------------------------
    system_group = parser.add_argument_group("System Options")

    system_group.add_argument(
        "--shutdown-timeout",
        type=float,
        metavar="SECONDS",
        help="Deadline for in-flight work at shutdown (default: wait indefinitely)",
    )

    system_group.add_argument(
        "--no-status-persistence",
        action="store_true",
        help="Do not load or save the status snapshot",
    )

    # --------------------------------------------------------
    # Version/Info
    # --------------------------------------------------------
    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 1.0.0",
    )

    parser.add_argument(
        "--show-facilities",
        action="store_true",
        help="Show the facility start order and exit",
    )

    return parser


# ============================================================
# CLI VALIDATION
# ============================================================

def parse_conf_arg(value: str) -> Tuple[str, Optional[str]]:
    """
    Split SOURCE[:GROUP].

    Raises:
        ValueError: If the source is empty
    """
    source, _, group = value.partition(":")
    source = source.strip()
    group = group.strip()

    if not source:
        raise ValueError(f"Invalid --conf value: {value!r}")

    return source, group or None


def validate_args(args: argparse.Namespace) -> List[str]:
    """
    Validate CLI arguments.

    Args:
        args: Parsed arguments

    Returns:
        List of validation errors
    """
    errors = []

    if args.shutdown_timeout is not None and args.shutdown_timeout <= 0:
        errors.append("--shutdown-timeout must be positive")

    for value in args.conf:
        try:
            parse_conf_arg(value)
        except ValueError as e:
            errors.append(str(e))

    return errors


# ============================================================
# CLI CONFIGURATION BUILDER
# ============================================================

def build_config(args: argparse.Namespace) -> RuntimeConfig:
    """
    Build runtime configuration from environment and CLI arguments.

    CLI arguments win over environment variables.
    """
    config = RuntimeConfig.from_env()

    if args.env:
        config.env = args.env
    if args.root:
        config.root = args.root
    if args.worker_type:
        config.worker_type = args.worker_type
    if args.log_level:
        config.log_level = args.log_level
    if args.log_format:
        config.log_format = args.log_format
    if args.shutdown_timeout is not None:
        config.shutdown_timeout_seconds = args.shutdown_timeout
    if args.no_status_persistence:
        config.status_persistence_enabled = False

    return config


# ============================================================
# SHOW FACILITIES
# ============================================================

def show_facilities(orchestrator: Orchestrator) -> None:
    """Print the facility start order."""
    print(f"\nFacility start order for worker: {orchestrator.config.worker_type}")
    print("=" * 60)

    for i, descriptor in enumerate(orchestrator.get_start_order(), 1):
        key = identity_key(descriptor.name, descriptor.label)
        print(f"  {i:2d}. [{descriptor.priority:4d}] {key:30s} - {descriptor.kind}:{descriptor.name}")

    print()


def print_banner(config: RuntimeConfig) -> None:
    """Print startup banner."""
    print()
    print("=" * 60)
    print("  FACILITY RUNTIME")
    print("=" * 60)
    print(f"  Worker:     {config.worker_type}")
    print(f"  Env:        {config.env}")
    print(f"  Root:       {config.root}")
    print(f"  Log Level:  {config.log_level}")
    print("=" * 60)
    print()


# ============================================================
# MAIN ENTRY POINT
# ============================================================

async def async_main(
    args: argparse.Namespace,
    catalog: Optional[FacilityCatalog] = None,
    setup: Optional[WorkerSetup] = None,
) -> int:
    """
    Async main entry point.

    Args:
        args: Parsed arguments
        catalog: Facility catalog (default: built-ins)
        setup: Declares worker facilities on the fresh orchestrator

    Returns:
        Exit code
    """
    logger = logging.getLogger(__name__)
    config = build_config(args)

    try:
        orchestrator = Orchestrator(config=config, catalog=catalog)
    except ConfigurationError as e:
        logger.error(f"Fatal error: {e}")
        return 1

    setup_logging(config.log_level, config.log_format, orchestrator.correlation_id)

    try:
        orchestrator.init()
        for value in args.conf:
            source, group = parse_conf_arg(value)
            orchestrator.load_conf(source, group=group)

        if setup is not None:
            setup(orchestrator)
    except ConfigurationError as e:
        logger.critical(e.to_log_format())
        return 1

    if args.show_facilities:
        show_facilities(orchestrator)
        return 0

    exit_code = 0
    try:
        logger.info("Starting worker (press Ctrl+C to stop)...")
        await orchestrator.run_forever()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        exit_code = 130
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        exit_code = 1

    if orchestrator.state in (
        LifecycleState.RUNNING,
        LifecycleState.FAILED,
        LifecycleState.STOPPING,
    ):
        try:
            await orchestrator.stop()
        except Exception as e:
            logger.error(f"Shutdown failed: {e}", exc_info=True)
            exit_code = exit_code or 1

    return exit_code


def main(
    argv: Optional[List[str]] = None,
    catalog: Optional[FacilityCatalog] = None,
    setup: Optional[WorkerSetup] = None,
) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])
        catalog: Facility catalog (default: built-ins)
        setup: Declares worker facilities on the fresh orchestrator

    Returns:
        Exit code
    """
    load_dotenv()

    parser = create_parser()
    args = parser.parse_args(argv)

    # Validate arguments
    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    if not args.show_facilities:
        print_banner(build_config(args))

    return asyncio.run(async_main(args, catalog=catalog, setup=setup))


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
