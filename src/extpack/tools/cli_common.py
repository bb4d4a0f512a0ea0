"""
Shared CLI argument parsing and factory creation for extpack tools.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from ..factory.api import Factory
from ..factory.registry import RegistryConfigError, load_factory


def add_config_arguments(parser: argparse.ArgumentParser) -> None:
    """
    Add --config and --verbose arguments to the parser.

    Args:
        parser: ArgumentParser to add arguments to.
    """
    parser.add_argument(
        "--config",
        dest="config_path",
        type=str,
        metavar="PATH",
        help="YAML file listing ext types to register (default: none)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )


def configure_logging(args: argparse.Namespace) -> None:
    """Configure root logging from the --verbose flag."""
    logging.basicConfig(
        level=logging.DEBUG if getattr(args, "verbose", False) else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def factory_from_args(args: argparse.Namespace) -> Optional[Factory]:
    """
    Build a Factory with the types from --config registered.

    Args:
        args: Parsed arguments with a config_path attribute.

    Returns:
        Factory on success (empty when no config is given).
        None when the config cannot be loaded (error printed to stderr).
    """
    if not args.config_path:
        return Factory()

    config_path = Path(args.config_path)
    if not config_path.is_absolute():
        config_path = Path.cwd() / config_path
    try:
        return load_factory(config_path.resolve())
    except RegistryConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return None
