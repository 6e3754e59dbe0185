"""Command-line entry point: ``libmem-release <platform>``."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from typing import NoReturn

from libmem_release.config import ENVIRONMENT_HELP, Settings
from libmem_release.errors import ReleaseBuildError
from libmem_release.orchestrator import run_release_build
from libmem_release.platforms import SUPPORTED_PLATFORMS


class _ArgumentParser(argparse.ArgumentParser):
    """Parser whose usage errors exit with status 1."""

    def error(self, message: str) -> NoReturn:
        self.print_help(sys.stderr)
        self.exit(1, f"\nerror: {message}\n")


def _epilog() -> str:
    lines = ["Environment variables:"]
    lines.extend(f"  {name}: {description}" for name, description in ENVIRONMENT_HELP)
    lines.append("")
    lines.append("Supported platforms:")
    lines.extend(f"  - {platform}" for platform in SUPPORTED_PLATFORMS)
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="libmem-release",
        description="Build libmem for one platform and package the release artifacts.",
        epilog=_epilog(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("platform", help="Target platform identifier, e.g. linux-gnu-x86_64.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.platform not in SUPPORTED_PLATFORMS:
        parser.print_help(sys.stderr)
        print(f"\nerror: Unknown platform: {args.platform}", file=sys.stderr)
        return 1

    try:
        run_release_build(args.platform, Settings.from_env())
    except ReleaseBuildError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("error: interrupted", file=sys.stderr)
        return 130
    return 0
