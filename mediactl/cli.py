"""mediactl command line: start, stop, restart, destroy, check-vpn and backup."""

from __future__ import annotations

import argparse
import sys
from typing import Callable, Optional

from . import __version__
from .backup import run_backup
from .compose import install_custom_compose
from .config import COMMAND_DESCRIPTIONS, MediactlConfig, initialize_config, setup_logging, get_logger
from .egress import ContainerProber, LocalProber, check_vpn
from .errors import CommandError, MediactlError
from .orchestrator import ComposeOrchestrator, container_running, ensure_docker_available
from .readiness import wait_for_services

logger = get_logger(__name__)


def format_commands() -> str:
    width = max(len(name) for name in COMMAND_DESCRIPTIONS)
    lines = ["commands:"]
    for name, description in COMMAND_DESCRIPTIONS.items():
        lines.append(f"  {name.ljust(width)}  {description}")
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mediactl",
        description="Manage your containerized media server stack.",
        epilog=format_commands(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="Path to a mediactl.yaml configuration file")
    parser.add_argument(
        "--install-dir",
        help="Directory holding docker-compose.yaml and config/ (default: $INSTALL_DIRECTORY)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", metavar="command")
    subparsers.add_parser("help", help=COMMAND_DESCRIPTIONS["--help"])
    subparsers.add_parser("start", help=COMMAND_DESCRIPTIONS["start"])
    subparsers.add_parser("stop", help=COMMAND_DESCRIPTIONS["stop"])
    subparsers.add_parser("restart", help=COMMAND_DESCRIPTIONS["restart"])

    destroy = subparsers.add_parser("destroy", help=COMMAND_DESCRIPTIONS["destroy"])
    destroy.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")

    subparsers.add_parser("check-vpn", help=COMMAND_DESCRIPTIONS["check-vpn"])

    backup = subparsers.add_parser("backup", help=COMMAND_DESCRIPTIONS["backup"])
    backup.add_argument(
        "destination", nargs="?", default=".", help="Directory to write the backup to (default: .)"
    )
    backup.add_argument(
        "--no-stop", action="store_true", help="Back up without stopping the services first"
    )
    return parser


def confirm(prompt: str, input_func: Callable[[str], str] = input) -> bool:
    try:
        response = input_func(f"{prompt} [y/N] ").strip().lower()
    except EOFError:
        return False
    return response in {"y", "yes"}


def cmd_start(config: MediactlConfig, orchestrator: ComposeOrchestrator, args) -> None:
    install_custom_compose(config)
    logger.info("Starting media stack...")
    orchestrator.start_all()
    wait_for_services(orchestrator, config.readiness)


def cmd_stop(config: MediactlConfig, orchestrator: ComposeOrchestrator, args) -> None:
    logger.info("Stopping media stack...")
    orchestrator.stop_all()
    logger.info("Media stack stopped")


def cmd_restart(config: MediactlConfig, orchestrator: ComposeOrchestrator, args) -> None:
    logger.info("Restarting media stack...")
    orchestrator.stop_all()
    orchestrator.start_all()
    wait_for_services(orchestrator, config.readiness)


def cmd_destroy(config: MediactlConfig, orchestrator: ComposeOrchestrator, args) -> None:
    if not args.yes and not confirm(
        "Are you sure you want to destroy all your media stack containers?"
    ):
        logger.info("Nothing was destroyed")
        return
    orchestrator.teardown_all()
    logger.info("Your media stack containers were destroyed")
    logger.info(f"Your configuration is still in {config.install_path / 'config'}")


def cmd_check_vpn(config: MediactlConfig, orchestrator: ComposeOrchestrator, args) -> None:
    container = config.vpn.container
    if not container_running(container):
        raise CommandError(f"Container '{container}' is not running")
    check_vpn(LocalProber(), ContainerProber(orchestrator, container), config.vpn)


def cmd_backup(config: MediactlConfig, orchestrator: ComposeOrchestrator, args) -> None:
    run_backup(config, args.destination, None if args.no_stop else orchestrator)


COMMANDS = {
    "start": cmd_start,
    "stop": cmd_stop,
    "restart": cmd_restart,
    "destroy": cmd_destroy,
    "check-vpn": cmd_check_vpn,
    "backup": cmd_backup,
}


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_usage(sys.stderr)
        print("mediactl: error: a command is required (see mediactl --help)", file=sys.stderr)
        return 2
    if args.command == "help":
        parser.print_help()
        return 0

    try:
        config = initialize_config(args.config, args.install_dir).get_config()
        setup_logging(config, verbose=args.verbose)
        ensure_docker_available()
        orchestrator = ComposeOrchestrator(config)
        COMMANDS[args.command](config, orchestrator, args)
        return 0
    except MediactlError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
