"""Command line interface for minimem-sync.

Subcommands:
    init-central PATH   Create or confirm the central repository and record it
    init --path P       Map the memory directory to a central path
    list                Show registry mappings
    remove              Unmap the memory directory
    status              Show per-file sync status
    push / pull / sync  Copy changes to / from / both ways
    validate            Check the central repository and registry
    conflicts           List quarantined conflicts
    log                 Show recent sync operations

Settings are resolved once per invocation (CLI > env > .env > YAML >
defaults) and passed to every command. ``SyncError`` ends the command
with its message on stderr and exit code 1.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import yaml
from dotenv import load_dotenv

from . import __version__
from .config import POLICIES, Settings, load_settings
from .config_loader import (
    discover_config_files,
    load_hierarchical_config,
    update_global_config,
)
from .config_schema import build_config, yaml_fallbacks
from .logger import setup_logging
from .sync.central import init_central_repo, validate_central_repo
from .sync.conflicts import list_quarantined_conflicts
from .sync.engine import SyncEngine
from .sync.errors import SyncError
from .sync.history import read_sync_log
from .sync.mappings import init_sync, list_mappings, remove_sync, require_central_repo
from .sync.models import DirectoryType
from .sync.reporter import (
    format_status,
    format_sync_report,
    report_to_json,
    status_to_json,
)
from .sync.validation import format_validation_result, validate_registry

logger = logging.getLogger(__name__)


def _print_json(data: dict | list) -> None:
    print(json.dumps(data, indent=2, default=str))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_init_central(args: argparse.Namespace, settings: Settings) -> int:
    result = init_central_repo(Path(args.path))
    if not result.success:
        print(f"Error: {result.message}", file=sys.stderr)
        return 1
    print(result.message)
    if not args.no_save:
        config_file = update_global_config({"central_repo": result.path})
        print(f"Recorded central repository in {config_file}")
    return 0


def _cmd_init(args: argparse.Namespace, settings: Settings) -> int:
    result = init_sync(
        Path(args.dir),
        args.path,
        settings,
        include=args.include,
        exclude=args.exclude,
    )
    for warning in result.warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    m = result.mapping
    print(f"Mapped {m.local_path} -> {m.path} (machine {m.machine_id})")
    print(f"Central copy: {result.remote_dir}")
    if result.directory_type == DirectoryType.PROJECT_BOUND:
        print(
            "Note: this directory is inside a git repository; "
            "the sync configuration takes precedence."
        )
    print("Run 'minimem-sync sync' to copy files.")
    return 0


def _cmd_list(args: argparse.Namespace, settings: Settings) -> int:
    listings = list_mappings(settings)
    if args.json:
        _print_json(
            [
                {
                    **item.mapping.model_dump(by_alias=True),
                    "currentMachine": item.is_current_machine,
                }
                for item in listings
            ]
        )
        return 0
    if not listings:
        print("No mappings registered.")
        return 0
    for item in listings:
        m = item.mapping
        marker = "*" if item.is_current_machine else " "
        print(f"{marker} {m.path:<30} {m.machine_id:<24} {m.local_path}")
    return 0


def _cmd_remove(args: argparse.Namespace, settings: Settings) -> int:
    removed = remove_sync(Path(args.dir), settings)
    if removed is None:
        print("Sync disabled; no registry mapping was found.")
    else:
        print(f"Removed mapping {removed.path} for {removed.machine_id}.")
    print("Local files, central files and sync state were left in place.")
    return 0


def _cmd_status(args: argparse.Namespace, settings: Settings) -> int:
    status = asyncio.run(SyncEngine(Path(args.dir), settings).status())
    if args.json:
        _print_json(status_to_json(status))
    else:
        print(format_status(status))
    return 0


def _transfer(
    args: argparse.Namespace, settings: Settings, direction: str
) -> int:
    engine = SyncEngine(Path(args.dir), settings)
    report = asyncio.run(
        engine.run(
            direction,  # type: ignore[arg-type]
            force=getattr(args, "force", False),
            dry_run=args.dry_run,
        )
    )
    if args.json:
        _print_json(report_to_json(report))
    else:
        print(format_sync_report(report))
    return 0 if report.success else 1


def _cmd_push(args: argparse.Namespace, settings: Settings) -> int:
    return _transfer(args, settings, "push")


def _cmd_pull(args: argparse.Namespace, settings: Settings) -> int:
    return _transfer(args, settings, "pull")


def _cmd_sync(args: argparse.Namespace, settings: Settings) -> int:
    return _transfer(args, settings, "both")


def _cmd_validate(args: argparse.Namespace, settings: Settings) -> int:
    central_repo, _ = require_central_repo(settings)
    central = validate_central_repo(central_repo)
    print(f"Central repository: {central_repo}")
    for warning in central.warnings:
        print(f"  [WARN] {warning}")
    print("")
    result = validate_registry(central_repo, settings.machine_id)
    if args.json:
        _print_json(result.model_dump())
    else:
        print(format_validation_result(result))
    return 0 if result.valid else 1


def _cmd_conflicts(args: argparse.Namespace, settings: Settings) -> int:
    conflicts = list_quarantined_conflicts(Path(args.dir))
    if not conflicts:
        print("No quarantined conflicts.")
        return 0
    for entry in conflicts:
        print(f"{entry.timestamp}  ({entry.path})")
        for name in entry.files:
            print(f"  {name}")
    return 0


def _cmd_log(args: argparse.Namespace, settings: Settings) -> int:
    entries = read_sync_log(Path(args.dir), limit=args.limit)
    if args.json:
        _print_json(entries)
        return 0
    if not entries:
        print("No sync operations recorded.")
        return 0
    for e in reversed(entries):
        flag = "ok" if e.get("success") else "FAILED"
        print(
            f"{e.get('timestamp')}  {e.get('operation'):<5} {flag:<6} "
            f"pushed={e.get('pushed', 0)} pulled={e.get('pulled', 0)} "
            f"conflicts={e.get('conflicts', 0)} errors={e.get('errors', 0)}"
        )
    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="minimem-sync",
        description="Synchronize memory directories through a central git repository",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # One-time setup of the central repository
  minimem-sync init-central ~/memory-central

  # Map this memory directory to 'work/' and sync it
  minimem-sync --dir ~/notes init --path work/
  minimem-sync --dir ~/notes sync

  # Preview what a push would do
  minimem-sync push --dry-run
        """,
    )
    parser.add_argument(
        "--dir",
        default=".",
        help="Memory directory (default: current directory)",
    )
    parser.add_argument(
        "--central-repo",
        help="Central repository path (overrides MINIMEM_CENTRAL_REPO and config files)",
    )
    parser.add_argument("--machine-id", help="Machine id (overrides MINIMEM_MACHINE_ID)")
    parser.add_argument(
        "--policy",
        choices=POLICIES,
        help="Change classification policy (default: three-way)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--version",
        action="version",
        version=f"minimem-sync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-central", help="Create or confirm the central repository")
    p.add_argument("path", help="Central repository path")
    p.add_argument(
        "--no-save",
        action="store_true",
        help="Do not record the path in the global config file",
    )
    p.set_defaults(func=_cmd_init_central)

    p = sub.add_parser("init", help="Map the memory directory to a central path")
    p.add_argument("--path", required=True, help="Central path, e.g. 'work/'")
    p.add_argument(
        "--include", action="append", help="Glob of files to sync (repeatable)"
    )
    p.add_argument(
        "--exclude", action="append", help="Glob of files to skip (repeatable)"
    )
    p.set_defaults(func=_cmd_init)

    p = sub.add_parser("list", help="Show registry mappings")
    p.add_argument("--json", action="store_true", help="JSON output")
    p.set_defaults(func=_cmd_list)

    p = sub.add_parser("remove", help="Unmap the memory directory")
    p.set_defaults(func=_cmd_remove)

    p = sub.add_parser("status", help="Show per-file sync status")
    p.add_argument("--json", action="store_true", help="JSON output")
    p.set_defaults(func=_cmd_status)

    for name, func, help_text, force_help in (
        ("push", _cmd_push, "Copy local changes to the central repository",
         "Overwrite central copies of conflicting files"),
        ("pull", _cmd_pull, "Copy central changes into the memory directory",
         "Overwrite local copies of conflicting files"),
        ("sync", _cmd_sync, "Push and pull in one pass", None),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--dry-run", action="store_true", help="Preview without writing")
        p.add_argument("--json", action="store_true", help="JSON output")
        if force_help:
            p.add_argument("--force", action="store_true", help=force_help)
        p.set_defaults(func=func)

    p = sub.add_parser("validate", help="Check the central repository and registry")
    p.add_argument("--json", action="store_true", help="JSON output")
    p.set_defaults(func=_cmd_validate)

    p = sub.add_parser("conflicts", help="List quarantined conflicts")
    p.set_defaults(func=_cmd_conflicts)

    p = sub.add_parser("log", help="Show recent sync operations")
    p.add_argument("--limit", type=int, default=20, help="Entries to show (default: 20)")
    p.add_argument("--json", action="store_true", help="JSON output")
    p.set_defaults(func=_cmd_log)

    return parser


def _load_fallbacks() -> dict:
    if not discover_config_files():
        return {}
    return yaml_fallbacks(build_config(load_hierarchical_config()))


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    load_dotenv()

    try:
        fallbacks = _load_fallbacks()
    except (ValueError, yaml.YAMLError) as e:
        setup_logging(mode="cli", debug=args.debug)
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(
        mode="cli",
        debug=args.debug,
        log_file=fallbacks.get("log_file"),
        level=fallbacks.get("log_level"),
    )

    try:
        settings = load_settings(
            central_repo=args.central_repo,
            machine_id=args.machine_id,
            policy=args.policy,
            debug=args.debug,
            yaml_fallbacks=fallbacks,
        )
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    try:
        return args.func(args, settings)
    except SyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
