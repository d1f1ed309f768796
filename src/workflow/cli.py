#!/usr/bin/env python3
"""CLI interface for the firmware diff workflow.

Positional usage mirrors the CI job that drives it:

    ipsw-diff [os_type] [device] [old_build] new_build [diff_only] [force_diff]

Pass an empty string for old_build to infer it from the build listing.
"""

import argparse
import sys

from common.constants import DEFAULT_DEVICE, DEFAULT_OS_TYPE
from common.env import env
from common.logger import error, get_logger, setup_logging, success, warning
from toolkit.ipsw import IpswToolkit

from .errors import ToolError
from .main import run
from .models import RunConfig

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def _flag(value: str) -> bool:
    """Parse a 0/1 positional flag."""
    if value in ("0", "1"):
        return value == "1"
    raise argparse.ArgumentTypeError(f"expected 0 or 1, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ipsw-diff",
        description="Diff two firmware builds and package the binaries whose code changed",
    )
    parser.add_argument("os_type", nargs="?", default=DEFAULT_OS_TYPE, help="OS type (default: macOS)")
    parser.add_argument("device", nargs="?", default=DEFAULT_DEVICE, help="Device id (default: Mac14,3)")
    parser.add_argument(
        "old_build",
        nargs="?",
        default="",
        help="Previous build id; empty to infer it from the build listing",
    )
    parser.add_argument("new_build", nargs="?", default="", help="New build id (required)")
    parser.add_argument(
        "diff_only", nargs="?", type=_flag, default=False, help="1 to stop after the diff (default: 0)"
    )
    parser.add_argument(
        "force_diff", nargs="?", type=_flag, default=False, help="1 to recompute the diff (default: 0)"
    )
    parser.add_argument("--log-file", default=None, help="Also write a timestamped log to this file")
    parser.add_argument(
        "--no-advisories",
        action="store_true",
        help="Skip the security update lookup",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> RunConfig:
    """Combine CLI arguments with environment configuration."""
    return RunConfig(
        os_type=args.os_type or DEFAULT_OS_TYPE,
        device=args.device or DEFAULT_DEVICE,
        new_build=(args.new_build or "").strip(),
        old_build=(args.old_build or "").strip() or None,
        base_dir=env.base_dir().resolve(),
        architectures=env.architectures(),
        diff_only=args.diff_only,
        force_diff=args.force_diff,
        tag_versions=env.tag_versions(),
        diff_part_size=env.diff_part_size(),
        archive_part_size=env.archive_part_size(),
        security_updates_url=None if args.no_advisories else env.security_updates_url(),
    )


def main(argv: list[str] | None = None, toolkit=None) -> int:
    """Main entry point for the CLI.

    Returns:
        0 on success, 1 on a fatal error, 130 when interrupted
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(log_file=args.log_file)

    config = config_from_args(args)
    if not config.new_build:
        error("NEW_BUILD required")
        return EXIT_FAILURE

    try:
        if toolkit is None:
            toolkit = IpswToolkit()
            toolkit.check_requirements()
        report = run(config, toolkit)
    except KeyboardInterrupt:
        error("Caught Ctrl-C, aborting...")
        return EXIT_INTERRUPTED
    except ToolError as e:
        error(str(e))
        return EXIT_FAILURE

    for message in report.warnings:
        warning(message)
    if not report.ok:
        return EXIT_FAILURE
    success(f"Done with {len(report.warnings)} warning(s)")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
