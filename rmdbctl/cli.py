"""CLI entry points for the RMDB console."""

from __future__ import annotations

import argparse
import dataclasses
from pathlib import Path
from typing import List, Optional

from rmdbctl.capabilities import HostCapabilities
from rmdbctl.config import parse_settings
from rmdbctl.credentials import CredentialSession, authenticate_interactive
from rmdbctl.exceptions import ManagerError
from rmdbctl.executor import CommandExecutor
from rmdbctl.lifecycle import ContainerLifecycle
from rmdbctl.models import ExistenceVerdict, LifecycleResult, Outcome, Settings, TrustLevel
from rmdbctl.utils import log

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_UNVERIFIED = 2


def show_config(settings: Settings) -> None:
    """Print the resolved settings."""
    for field in dataclasses.fields(settings):
        value = getattr(settings, field.name)
        if isinstance(value, TrustLevel):
            value = value.value
        elif isinstance(value, tuple):
            value = ", ".join(str(item) for item in value) or "-"
        print(f"  {field.name}: {value}")


def print_verdict(verdict: ExistenceVerdict) -> None:
    print(f"  name:              {verdict.name}")
    print(f"  exists:            {'yes' if verdict.exists else 'no'}")
    print(f"  managed:           {'yes' if verdict.managed else 'no'}")
    print(f"  ghost:             {'yes' if verdict.ghost else 'no'}")
    print(f"  listed (lxc-*):    {'yes' if verdict.listed_by_primary else 'no'}")
    print(f"  listed (lxc):      {'yes' if verdict.listed_by_secondary else 'no'}")
    print(f"  storage:           {verdict.storage_path or '-'}")
    if verdict.exists:
        print(f"  status:            {verdict.status.value}")
        print(f"  attach probe:      {'ok' if verdict.attach_succeeds else 'failed'}")
    for note in verdict.notes:
        print(f"  note: {note}")


def report(action: str, result: LifecycleResult) -> int:
    """Log a lifecycle outcome and map it to an exit status."""
    if result.outcome is Outcome.SUCCEEDED:
        return EXIT_OK
    if result.outcome is Outcome.UNVERIFIED:
        log("WARN", f"{action} {result.name}: the command succeeded but its effect is not observable yet (unverified)")
        log("WARN", f"Run 'verify {result.name}' later to check again")
        return EXIT_UNVERIFIED
    detail = ""
    if result.result is not None and result.result.stderr.strip():
        detail = f": {result.result.stderr.strip().splitlines()[-1]}"
    log("ERROR", f"{action} {result.name} failed{detail}")
    return EXIT_FAILED


def run_command(args: argparse.Namespace, lifecycle: ContainerLifecycle) -> int:
    command = args.command
    if command == "list":
        containers = lifecycle.reconciler.list_containers()
        if not containers:
            log("WARN", "No containers found")
            return EXIT_OK
        width = max(len(record.name) for record in containers)
        for record in containers:
            print(f"  {record.name:<{width}}  {record.status.value:<8}  ({record.source})")
        return EXIT_OK
    if command == "ghosts":
        ghosts = lifecycle.reconciler.find_ghosts()
        if not ghosts:
            log("INFO", "No ghost containers")
        for name in ghosts:
            print(f"  {name}")
        return EXIT_OK
    if command == "verify":
        print_verdict(lifecycle.verify(args.name))
        return EXIT_OK
    if command == "create":
        result = lifecycle.create(
            args.name, template=args.template, release=args.release, dist=args.dist, arch=args.arch
        )
        return report("create", result)
    if command == "start":
        return report("start", lifecycle.start(args.name))
    if command == "stop":
        return report("stop", lifecycle.stop(args.name))
    if command == "destroy":
        return report("destroy", lifecycle.destroy(args.name))
    if command == "cleanup-ghost":
        lifecycle.cleanup_ghost(args.name)
        return EXIT_OK
    if command == "info":
        details = lifecycle.info(args.name)
        print(f"  name:   {details.name}")
        print(f"  status: {details.status.value}")
        print(f"  ip:     {details.ip or '-'}")
        print(f"  arch:   {details.arch}")
        return EXIT_OK
    raise ManagerError(f"Unknown command: {command}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rmdbctl", description="RMDB LXC container console")
    parser.add_argument(
        "--mode",
        choices=[level.value for level in TrustLevel],
        default=None,
        help="Trust level (overrides RMDB_MODE; default: readonly)",
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML settings file")
    sub = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")
    sub.add_parser("list", help="List existing containers")
    sub.add_parser("ghosts", help="List names the runtime knows but that have no directory")
    sub.add_parser("show-config", help="Show resolved settings and exit")
    for name, help_text in (
        ("verify", "Reconcile every signal for one container"),
        ("start", "Start a container"),
        ("stop", "Stop a container"),
        ("destroy", "Stop and destroy a container"),
        ("cleanup-ghost", "Remove stale lock files left by a ghost"),
        ("info", "Show status, IP and architecture"),
    ):
        sub.add_parser(name, help=help_text).add_argument("name")
    create = sub.add_parser("create", help="Create a container")
    create.add_argument("name")
    create.add_argument("--template", default=None)
    create.add_argument("--release", default=None)
    create.add_argument("--dist", default=None, help="Distribution for the download template fallback")
    create.add_argument("--arch", default=None, help="Architecture for the download template fallback")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = parse_settings(args.config)
    except ManagerError as exc:
        log("ERROR", str(exc))
        return EXIT_FAILED
    if args.mode:
        settings.trust = TrustLevel.parse(args.mode)

    if args.command == "show-config":
        show_config(settings)
        return EXIT_OK

    capabilities = HostCapabilities.detect()
    session = None
    if settings.trust is TrustLevel.ADMIN:
        if not capabilities.has_sudo:
            log("ERROR", "Admin mode requires sudo, which was not found on this host")
            return EXIT_FAILED
        session = CredentialSession(
            keepalive_interval=settings.keepalive_interval,
            settle_delay=settings.auth_settle,
        )
    log("DEBUG", f"Mode: {settings.trust.value}")

    try:
        if session is not None:
            if not authenticate_interactive(session):
                log("ERROR", "Admin mode needs an authenticated sudo session")
                return EXIT_FAILED
            session.start_keepalive()
            if not session.ensure_fresh():
                return EXIT_FAILED
        executor = CommandExecutor(settings.trust, capabilities, session, timeout=settings.command_timeout)
        return run_command(args, ContainerLifecycle(executor, settings))
    except ManagerError as exc:
        log("ERROR", str(exc))
        return EXIT_FAILED
    except Exception as exc:
        log("ERROR", f"Unexpected error: {exc}")
        import traceback

        traceback.print_exc()
        return EXIT_FAILED
    finally:
        if session is not None:
            session.shutdown()
