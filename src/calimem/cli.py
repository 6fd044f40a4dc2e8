from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os

from calimem.core.models import Memory
from calimem.errors import CalimemError
from calimem.store import MemoryStoreConfig, SQLiteMemoryStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="calimem")
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    parser.add_argument(
        "--db",
        default=os.getenv("DATABASE_PATH", MemoryStoreConfig.db_path),
        help="Path to the memory database",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--json", action="store_true", help="Print memories as JSON lines")

    commands = parser.add_subparsers(dest="command")

    search = commands.add_parser("search", help="Search stored memories")
    search.add_argument("query", nargs="?", default=None)
    search.add_argument("-c", "--conversation", default=None)
    search.add_argument("-t", "--tag", action="append", dest="tags", default=None)
    search.add_argument("-n", "--max-count", type=int, default=10)

    listing = commands.add_parser("list", help="List memories, newest first")
    listing.add_argument("-c", "--conversation", default=None)
    listing.add_argument("-n", "--limit", type=int, default=100)
    listing.add_argument("--offset", type=int, default=0)

    prune = commands.add_parser("prune", help="Delete memories past the retention window")
    prune.add_argument("-c", "--conversation", default=None)
    prune.add_argument(
        "--retention-ms",
        type=int,
        default=None,
        help="Override the configured retention window",
    )
    return parser


def _print_memories(memories: list[Memory], as_json: bool) -> None:
    for memory in memories:
        if as_json:
            print(json.dumps(memory.model_dump(mode="json"), ensure_ascii=False))
        else:
            print(f"{memory.id}  [{memory.conversation_id}]  {memory.content}")


async def _run(args: argparse.Namespace) -> int:
    async with SQLiteMemoryStore(MemoryStoreConfig(db_path=args.db)) as store:
        if args.command == "search":
            memories = await store.search(
                args.query,
                conversation_id=args.conversation,
                tags=args.tags,
                max_count=args.max_count,
            )
            _print_memories(memories, args.json)
        elif args.command == "list":
            memories = await store.list_memories(
                args.conversation, limit=args.limit, offset=args.offset
            )
            _print_memories(memories, args.json)
        elif args.command == "prune":
            removed = await store.prune(args.conversation, retention_ms=args.retention_ms)
            print(f"Pruned {removed} memories")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        try:
            from importlib.metadata import version

            print(version("calimem"))
        except Exception:
            print("calimem")
        return 0

    if args.command is None:
        parser.print_help()
        return 0

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    try:
        return asyncio.run(_run(args))
    except CalimemError as e:
        print(f"error: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
