"""
mpriscell - Entry Point

Run with: python -m mpriscell
"""

import argparse
import asyncio
import dataclasses
import logging
import sys
from pathlib import Path

from mpriscell import __version__
from mpriscell.config import ModuleConfig, load_config
from mpriscell.core import ConfigError, PlayerConnectionError
from mpriscell.host import OutputHost, default_control_path, send_click
from mpriscell.module import MprisModule
from mpriscell.protocol.mpris import MprisBus


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    # stdout carries the cell output
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("dbus_fast").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="mpriscell",
        description="mpriscell - MPRIS now-playing cell for status bars",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to the TOML config file (default: ~/.config/mpriscell/config.toml)",
    )

    parser.add_argument(
        "-p",
        "--player",
        type=str,
        default=None,
        help="Player to follow (default: playerctld, the most recently active player)",
    )

    parser.add_argument(
        "-i",
        "--interval",
        type=int,
        default=None,
        help="Seconds between periodic refreshes, 0 disables them (default: 0)",
    )

    parser.add_argument(
        "-f",
        "--format",
        type=str,
        default=None,
        help="Default format template",
    )

    parser.add_argument(
        "-s",
        "--socket",
        type=Path,
        default=None,
        help="Control socket for clicks (default: $XDG_RUNTIME_DIR/mpriscell-<player>.sock)",
    )

    parser.add_argument(
        "--click",
        type=int,
        metavar="BUTTON",
        default=None,
        help="Send a click (1 left, 2 middle, 3 right) to the running cell and exit",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ModuleConfig:
    """Load the config file and apply command line overrides."""
    config = load_config(args.config)

    overrides = {}
    if args.player is not None:
        overrides["player"] = args.player
    if args.interval is not None:
        overrides["interval"] = args.interval
    if args.format is not None:
        overrides["format"] = args.format
    if not overrides:
        return config

    # Run overrides through the same validation as the file
    merged = ModuleConfig.from_mapping(overrides)
    return dataclasses.replace(config, **{key: getattr(merged, key) for key in overrides})


async def run_module(config: ModuleConfig, control_path: Path) -> None:
    """Start and run the module."""
    module = MprisModule.from_bus(config, MprisBus(), OutputHost(), control_path)
    await module.run()


async def run_click(control_path: Path, button: int) -> int:
    """Deliver a click to the running cell; 0 if it was handled."""
    logger = logging.getLogger(__name__)
    try:
        handled = await send_click(control_path, button)
    except OSError as e:
        logger.error("No running cell at %s: %s", control_path, e)
        return 1
    if not handled:
        logger.info("Click %d was not handled", button)
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    logger = logging.getLogger(__name__)

    try:
        config = build_config(args)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    control_path = args.socket or default_control_path(config.player)
    if args.click is not None:
        return asyncio.run(run_click(control_path, args.click))

    logger.info("Starting mpriscell...")

    try:
        asyncio.run(run_module(config, control_path))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    except PlayerConnectionError as e:
        logger.error("%s", e)
        return 1
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

    logger.info("mpriscell stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
