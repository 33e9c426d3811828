"""Entry point for the devcontainer feature composer.

This module provides the main() function and command-line interface.
"""

from __future__ import annotations

import argparse
import sys

from devcompose.constants import DEBUG_MODE
from devcompose.dependencies import check_and_install_dependencies
from devcompose.errors import DevComposeError

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the ``devcompose`` command."""
    parser = argparse.ArgumentParser(
        prog="devcompose",
        description="Resolve devcontainer features and their dependencies",
        epilog=(
            "Features may be given as full references (ghcr.io/devcontainers/features/go:1), "
            "catalog keys (devcontainers:go) or bare ids (go)."
        ),
    )
    parser.add_argument("features", nargs="*", help="Features to include")
    parser.add_argument("--list", action="store_true", help="List the features available in the catalog and exit")
    parser.add_argument("--catalog", help="Use a local features 'src' directory instead of cloning repositories")
    parser.add_argument(
        "--account",
        action="append",
        help="GitHub account providing a features repository (repeatable)",
    )
    parser.add_argument("--branch", help="Branch of the features repositories")
    parser.add_argument("--config", help="TOML configuration file with a [devcompose] table")
    parser.add_argument("--image", help="Base image written to devcontainer.json")
    parser.add_argument("--timeout", type=float, help="Seconds allowed for each manifest lookup")
    parser.add_argument("--workers", type=int, help="Number of parallel manifest lookups")
    parser.add_argument("--offline", action="store_true", help="Do not clone repositories or fetch manifests")
    parser.add_argument(
        "--skip-discovery",
        action="store_true",
        help="Do not clone feature repositories; fetch manifests on demand",
    )
    parser.add_argument("--output", help="Project directory to write .devcontainer/devcontainer.json into")
    parser.add_argument(
        "--debug",
        action="store_true",
        default=DEBUG_MODE,
        help="Enable debug mode with verbose logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the devcompose command.

    Parameters
    ----------
    argv : list[str] | None, optional
        Command line arguments, by default ``sys.argv[1:]``

    Returns
    -------
    int
        Process exit code

    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.features and not args.list:
        parser.error("at least one feature is required unless --list is given")

    # Check and install dependencies before importing modules that need them
    check_and_install_dependencies()

    from devcompose.cli import run  # noqa: PLC0415
    from devcompose.logging_utils import get_logger, setup_logging  # noqa: PLC0415

    setup_logging(args.debug)
    logger = get_logger(__name__)
    logger.debug("Starting devcompose with arguments %s", vars(args))

    try:
        return run(args)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        return EXIT_INTERRUPTED
    except DevComposeError as e:
        logger.error("%s", e)
        return EXIT_FAILURE
    except OSError as e:
        logger.error("Unexpected error: %s", e)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
