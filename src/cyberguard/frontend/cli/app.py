"""
Command-line front end for the CyberGuard vault.

Commands:
  status                         -> storage mode, node identity, index stats
  store <json|@file> [--type T] [--title T] [--no-encrypt] [--pin]
  get <cid> [--encrypted]        -> print the decoded record
  export <cid> [-o path]         -> write the record as pretty JSON
  list [--type T] [--oldest]     -> index entries, newest first by default
  stats                          -> counts by type / storage method
  delete <cid>                   -> stop tracking a record
  clear --yes                    -> empty the index (and the local blob table offline)
  peers                          -> connected IPFS peers

Settings come from CYBERGUARD_* environment variables; flags override them.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from cyberguard import __version__
from cyberguard.config import Settings
from cyberguard.core.exceptions import CyberGuardError
from cyberguard.core.models import RecordType, StorageResult
from cyberguard.frontend.cli.context import AppContext, build_context
from cyberguard.frontend.cli.logging_config import configure_logging

logger = logging.getLogger(__name__)

RECORD_TYPES = [t.value for t in RecordType]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cyberguard", description="Encrypted record vault backed by IPFS")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--db", dest="db_path", type=Path, help="path to the local database")
    parser.add_argument("--api", dest="ipfs_api", help="Kubo RPC URL, e.g. http://127.0.0.1:5001")
    parser.add_argument("--offline", action="store_true", default=None, help="never contact an IPFS node")
    parser.add_argument("--timeout", type=float, help="backend call timeout in seconds")
    parser.add_argument("-v", "--verbose", action="count", default=0)

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status")
    sub.add_parser("stats")
    sub.add_parser("peers")

    p = sub.add_parser("store")
    p.add_argument("payload", help="JSON text, or @path to read JSON from a file")
    p.add_argument("--type", choices=RECORD_TYPES, default=RecordType.OTHER.value)
    p.add_argument("--title")
    p.add_argument("--no-encrypt", dest="encrypt", action="store_false")
    p.add_argument("--pin", action="store_true")

    p = sub.add_parser("get")
    p.add_argument("cid")
    p.add_argument("--encrypted", action="store_true", default=None,
                   help="treat an unindexed record as encrypted")

    p = sub.add_parser("export")
    p.add_argument("cid")
    p.add_argument("-o", "--output", type=Path)

    p = sub.add_parser("list")
    p.add_argument("--type", choices=RECORD_TYPES)
    p.add_argument("--oldest", action="store_true")

    p = sub.add_parser("delete")
    p.add_argument("cid")

    p = sub.add_parser("clear")
    p.add_argument("--yes", action="store_true", help="confirm; this cannot be undone")

    return parser


def _load_payload(raw: str) -> Any:
    if raw.startswith("@"):
        raw = Path(raw[1:]).expanduser().read_text(encoding="utf-8")
    try:
        return json.loads(raw)
    except ValueError:
        # plain text is a valid record too
        return raw


def _emit(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _report(result: StorageResult) -> int:
    if result.success:
        _emit(result.data)
        return 0
    print(f"ERROR [{result.error_type}]: {result.error}", file=sys.stderr)
    return 1


async def run_command(ctx: AppContext, args: argparse.Namespace) -> int:
    storage = ctx.storage
    cmd = args.command

    if cmd == "status":
        status = {"mode": ctx.mode.value if ctx.mode else None, "db": str(ctx.settings.db_path)}
        if ctx.client.is_connected:
            status["node"] = await ctx.client.node_info()
        elif ctx.client.connection_error:
            status["connection_error"] = ctx.client.connection_error
        status["stats"] = storage.stats()
        _emit(status)
        return 0

    if cmd == "stats":
        _emit(storage.stats())
        return 0

    if cmd == "peers":
        peers = await ctx.client.list_peers()
        _emit([p.__dict__ for p in peers])
        return 0

    if cmd == "store":
        metadata = {"type": args.type}
        if args.title:
            metadata["title"] = args.title
        return _report(await storage.store(_load_payload(args.payload), metadata, encrypt=args.encrypt, pin=args.pin))

    if cmd == "get":
        return _report(await storage.retrieve(args.cid, encrypted=args.encrypted))

    if cmd == "export":
        result = await storage.export(args.cid)
        if not result.success:
            return _report(result)
        out = args.output or Path(result.data["filename"])
        out.write_text(result.data["content"], encoding="utf-8")
        print(str(out))
        return 0

    if cmd == "list":
        entries = storage.list_index(type=args.type, order="oldest" if args.oldest else "newest")
        _emit([e.to_dict() for e in entries])
        return 0

    if cmd == "delete":
        return _report(await storage.delete(args.cid))

    if cmd == "clear":
        if not args.yes:
            print("Refusing to clear without --yes", file=sys.stderr)
            return 2
        return _report(await storage.clear_all())

    print(f"Unknown command: {cmd}", file=sys.stderr)
    return 2


async def _main(args: argparse.Namespace, settings: Settings) -> int:
    ctx = await build_context(settings)
    try:
        return await run_command(ctx, args)
    finally:
        await ctx.aclose()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(logging.DEBUG if args.verbose > 1 else logging.INFO if args.verbose else logging.WARNING)

    try:
        settings = Settings.from_env().override(
            db_path=args.db_path,
            ipfs_api=args.ipfs_api,
            offline=args.offline,
            timeout=args.timeout,
        )
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    try:
        return asyncio.run(_main(args, settings))
    except CyberGuardError as e:
        # peers/status outside connected mode, or a failing backend call
        print(f"ERROR [{type(e).__name__}]: {e}", file=sys.stderr)
        return 1


def run() -> None:
    sys.exit(main())
