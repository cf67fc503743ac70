#!/usr/bin/env python3
"""
Command-line entry point for utm-codex.

Installs UTM, clones a Windows template VM, boots it and installs Codex CLI
inside the guest over SSH.

UTM has no stable CLI for creating a Windows VM from scratch, so the template
must be created once in the UTM GUI with guest tools and OpenSSH Server enabled
for the user given with --user.
"""

import argparse
import sys
from pathlib import Path
from typing import List, NoReturn, Optional

from rich.console import Console
from rich.text import Text

from utmcodex import __version__
from utmcodex.config import ProvisionConfig, build_config
from utmcodex.errors import ProvisionError
from utmcodex.logging import LOG_TAG, configure_logging
from utmcodex.pipeline import ProvisionPipeline

console = Console()
err_console = Console(stderr=True)

EPILOG = """example:
  utm-codex --template ~/Documents/UTM/WindowsBase.utm --name CodexWin --user codex
"""


def print_error(message: str) -> None:
    """Print the single tagged diagnostic line used for every fatal error."""
    err_console.print(
        Text.assemble((f"{LOG_TAG} ERROR: ", "bold red"), message),
        soft_wrap=True,
    )


def print_status(message: str) -> None:
    console.print(Text.assemble((f"{LOG_TAG} ", "cyan"), message), soft_wrap=True)


class ArgumentParser(argparse.ArgumentParser):
    """argparse that reports usage errors with the tagged diagnostic and exit 1."""

    def error(self, message: str) -> NoReturn:
        if message.startswith("unrecognized arguments: "):
            message = "Unknown argument: " + message[len("unrecognized arguments: "):]
        print_error(message)
        sys.exit(1)


def create_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="utm-codex",
        description="Install UTM, clone a Windows template VM and install Codex CLI in it",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
    )
    parser.add_argument("--version", action="version", version=f"utm-codex {__version__}")
    parser.add_argument(
        "--template",
        metavar="PATH",
        help="Template VM bundle (default: ~/Documents/UTM/WindowsBase.utm)",
    )
    parser.add_argument("--name", metavar="NAME", help="Name of the new VM (default: CodexWin)")
    parser.add_argument("--user", metavar="USER", help="SSH user inside the guest (default: codex)")
    parser.add_argument(
        "--force-install",
        action="store_true",
        default=None,
        help="Reinstall UTM even if it is already installed",
    )
    parser.add_argument(
        "--config",
        type=Path,
        metavar="PATH",
        help="YAML file with default settings (flags take precedence)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Log verbosity (default: INFO)",
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON")
    parser.add_argument(
        "--log-file",
        type=Path,
        metavar="PATH",
        help="Also write JSON log records to PATH",
    )
    return parser


def parse_config(args: argparse.Namespace) -> ProvisionConfig:
    return build_config(
        overrides={
            "template": args.template,
            "name": args.name,
            "user": args.user,
            "force_install": args.force_install,
        },
        config_file=args.config,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    try:
        configure_logging(
            level=args.log_level, json_output=args.json_logs, log_file=args.log_file
        )
    except OSError as e:
        print_error(f"Cannot open log file {args.log_file}: {e}")
        return 1

    try:
        config = parse_config(args)
        result = ProvisionPipeline(config).run()
    except ProvisionError as e:
        print_error(str(e))
        return 1
    except KeyboardInterrupt:
        print_error("Interrupted.")
        return 130

    print_status(f"Guest IP: {result.ip_address}")
    print_status(f"Done. You can SSH with: ssh {config.user}@{result.ip_address}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
