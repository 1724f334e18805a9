#!/usr/bin/env python3
"""Command line interface for the VyOS config engine.

Usage:
    vyos-engine preview MODEL.yaml
    vyos-engine apply DEVICE MODEL.yaml [--no-save] [--confirm-minutes N] [--timeout-ms MS]
    vyos-engine confirm DEVICE [--no-save]
    vyos-engine rollback DEVICE [REVISION]
    vyos-engine compare DEVICE [--revision N]
    vyos-engine discard DEVICE
    vyos-engine restore DEVICE --backup-dir DIR [--file BACKUP]
    vyos-engine remove DEVICE MODEL.yaml
    vyos-engine show DEVICE [--parsed]
    vyos-engine parse CONFIG.txt [--strict]
    vyos-engine test DEVICE
    vyos-engine history [--device DEVICE]

Model files are YAML (or JSON) documents with a ``kind`` key, e.g.::

    kind: interface
    name: eth1
    type: ethernet
    description: LAN Interface
    addresses:
      ipv4:
        - 192.168.1.1/24

Environment:
    VYOS_PASSWORD             Device credentials (unless set per device)
    VYOS_ENGINE_LOG_LEVEL     Console log level
"""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .config.inventory import DeviceInventory
from .config_engine import (
    CommandBatch,
    CommandBuilder,
    ConfigEngine,
    ConfigParser,
    ConflictPolicy,
    EngineError,
    ModelLoader,
)
from .config_store.backup import FileBackupSink
from .utils.audit_log import get_recent_changes, setup_audit_logging
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _add_batch_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("device", help="Device ID from the inventory")
    parser.add_argument("model", type=Path, help="Model file (YAML or JSON)")
    parser.add_argument("--no-commit", action="store_true", help="Do not commit (implies --no-save)")
    parser.add_argument("--no-save", action="store_true", help="Commit without saving")
    parser.add_argument("--timeout-ms", type=int, default=60_000, help="Session time budget (default: 60000)")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="vyos-engine",
        description="Manage VyOS router configuration through its CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Show the statements a model turns into
    vyos-engine preview configs/eth1.yaml

    # Apply it, backing up the active configuration first
    vyos-engine apply edge-1 configs/eth1.yaml --backup-dir ./backups

    # Read a device's configuration as typed models
    vyos-engine show edge-1 --parsed
""",
    )
    parser.add_argument("--devices", type=str, help="Inventory file (default: search ./configs/devices.yaml etc.)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    preview = sub.add_parser("preview", help="Print the statements a model would send")
    preview.add_argument("model", type=Path, help="Model file (YAML or JSON)")
    preview.add_argument("--no-commit", action="store_true", help="Leave out commit (implies --no-save)")
    preview.add_argument("--no-save", action="store_true", help="Leave out save")
    preview.add_argument("--delete", action="store_true", help="Preview removal instead of creation")

    apply = sub.add_parser("apply", help="Apply a model to a device")
    _add_batch_options(apply)
    apply.add_argument("--backup-dir", type=Path, help="Back up the active configuration here first")
    apply.add_argument("--confirm-minutes", type=int, help="Use commit-confirm; revert unless confirmed in time")

    remove = sub.add_parser("remove", help="Delete the configuration a model owns")
    _add_batch_options(remove)
    remove.add_argument("--backup-dir", type=Path, help="Back up the active configuration here first")

    confirm = sub.add_parser("confirm", help="Confirm a pending commit-confirm")
    confirm.add_argument("device", help="Device ID from the inventory")
    confirm.add_argument("--no-save", action="store_true", help="Confirm without saving")

    rollback = sub.add_parser("rollback", help="Commit an archived revision")
    rollback.add_argument("device", help="Device ID from the inventory")
    rollback.add_argument("revision", type=int, nargs="?", default=0, help="Archive revision (default: 0)")
    rollback.add_argument("--backup-dir", type=Path, help="Back up the active configuration here first")

    compare = sub.add_parser("compare", help="Show configuration differences")
    compare.add_argument("device", help="Device ID from the inventory")
    compare.add_argument("--revision", type=int, help="Compare against this archived revision")

    discard = sub.add_parser("discard", help="Discard uncommitted changes")
    discard.add_argument("device", help="Device ID from the inventory")

    restore = sub.add_parser("restore", help="Replace the active configuration with a backup")
    restore.add_argument("device", help="Device ID from the inventory")
    restore.add_argument("--backup-dir", type=Path, required=True, help="Backup directory")
    restore.add_argument("--file", type=Path, help="Backup file (default: the latest for the device)")

    show = sub.add_parser("show", help="Print a device's active configuration")
    show.add_argument("device", help="Device ID from the inventory")
    show.add_argument("--parsed", action="store_true", help="Print parsed models as JSON")

    parse = sub.add_parser("parse", help="Parse saved 'show configuration commands' output")
    parse.add_argument("config", type=Path, help="File with set statements")
    parse.add_argument("--strict", action="store_true", help="Reject leaf/branch conflicts")

    test = sub.add_parser("test", help="Check connectivity to a device")
    test.add_argument("device", help="Device ID from the inventory")

    history = sub.add_parser("history", help="Show recent audit records")
    history.add_argument("--device", help="Only records for this device")
    history.add_argument("--limit", type=int, default=20, help="Maximum records (default: 20)")

    return parser


def cmd_preview(args: argparse.Namespace) -> int:
    kind, model = ModelLoader().load_file(args.model)
    builder = CommandBuilder()
    statements = (
        builder.build_delete_commands(kind, model) if args.delete else builder.build(kind, model)
    )
    commit = not args.no_commit
    batch = CommandBatch(statements=statements, commit=commit, save=commit and not args.no_save)
    for line in batch.lifecycle_statements():
        print(line)
    return 0


async def cmd_batch(args: argparse.Namespace) -> int:
    kind, model = ModelLoader().load_file(args.model)
    inventory = DeviceInventory(args.devices)
    sink = FileBackupSink(args.backup_dir) if args.backup_dir else None
    engine = ConfigEngine(inventory, backup_sink=sink)

    commit = not args.no_commit
    try:
        if args.command == "apply" and args.confirm_minutes:
            result = await engine.commit_confirm(
                args.device, kind, model, minutes=args.confirm_minutes, timeout_ms=args.timeout_ms
            )
        else:
            operation = engine.apply if args.command == "apply" else engine.remove
            result = await operation(
                args.device,
                kind,
                model,
                commit=commit,
                save=commit and not args.no_save,
                timeout_ms=args.timeout_ms,
            )
    finally:
        await inventory.close_all()

    return _report(result)


def _report(result) -> int:
    _print_json(result.to_dict())
    if not result.success and result.error is not None:
        logger.error(getattr(result.error, "user_message", str(result.error)))
    return 0 if result.success else 1


async def cmd_lifecycle(args: argparse.Namespace) -> int:
    """confirm, rollback, compare, discard and restore."""
    inventory = DeviceInventory(args.devices)
    sink = FileBackupSink(args.backup_dir) if getattr(args, "backup_dir", None) else None
    engine = ConfigEngine(inventory, backup_sink=sink)
    try:
        if args.command == "compare":
            print(await engine.compare(args.device, args.revision))
            return 0
        if args.command == "confirm":
            result = await engine.confirm(args.device, save=not args.no_save)
        elif args.command == "rollback":
            result = await engine.rollback(args.device, args.revision)
        elif args.command == "discard":
            result = await engine.discard(args.device)
        else:
            path = args.file or sink.latest(args.device)
            if path is None:
                logger.error(f"No backups of {args.device} in {args.backup_dir}")
                return 1
            result = await engine.restore(args.device, sink.load(path))
    finally:
        await inventory.close_all()

    return _report(result)


async def cmd_show(args: argparse.Namespace) -> int:
    inventory = DeviceInventory(args.devices)
    engine = ConfigEngine(inventory)
    try:
        if args.parsed:
            _print_json((await engine.get_parsed_configuration(args.device)).to_dict())
        else:
            print(await engine.get_configuration(args.device))
    finally:
        await inventory.close_all()
    return 0


def cmd_parse(args: argparse.Namespace) -> int:
    policy = ConflictPolicy.STRICT if args.strict else ConflictPolicy.COERCE
    parsed = ConfigParser(policy).parse(args.config.read_text(encoding="utf-8"))
    _print_json(parsed.to_dict())
    return 0


async def cmd_test(args: argparse.Namespace) -> int:
    inventory = DeviceInventory(args.devices)
    engine = ConfigEngine(inventory)
    try:
        result = await engine.test_connection(args.device)
    finally:
        await inventory.close_all()
    _print_json(vars(result))
    return 0 if result.success else 1


def cmd_history(args: argparse.Namespace) -> int:
    for record in get_recent_changes(device_id=args.device, limit=args.limit):
        status = "OK" if record.success else f"FAIL ({record.error_kind})"
        print(f"{record.timestamp}  {record.device_id:15s}  {record.operation:14s}  {status}  {record.description}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the vyos-engine CLI."""
    args = build_parser().parse_args(argv)

    setup_logging()
    setup_audit_logging()
    if args.verbose:
        logging.getLogger("vyos_config_engine").setLevel(logging.DEBUG)

    try:
        if args.command == "preview":
            return cmd_preview(args)
        if args.command in ("apply", "remove"):
            return asyncio.run(cmd_batch(args))
        if args.command in ("confirm", "rollback", "compare", "discard", "restore"):
            return asyncio.run(cmd_lifecycle(args))
        if args.command == "show":
            return asyncio.run(cmd_show(args))
        if args.command == "parse":
            return cmd_parse(args)
        if args.command == "test":
            return asyncio.run(cmd_test(args))
        return cmd_history(args)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except (EngineError, FileNotFoundError, KeyError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
