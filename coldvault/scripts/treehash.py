#!/usr/bin/env python3
"""
Tree hash CLI for coldvault

Computes archive hashes and multipart plans for local files, and folds part
tree hashes into an archive tree hash.

Usage:
    python -m coldvault.scripts.treehash hash archive.tar
    python -m coldvault.scripts.treehash plan archive.tar --json
    python -m coldvault.scripts.treehash combine 0=<hex> 1=<hex> 2=<hex>
"""

import argparse
import asyncio
import json
import logging
import re
import sys
from typing import Dict
from typing import List
from typing import Optional

from coldvault.config import Config
from coldvault.config import get_config
from coldvault.errors import ColdVaultError
from coldvault.errors import InvalidArgument
from coldvault.errors import PayloadValidationError
from coldvault.hashing.tree_hash import TreeHasher
from coldvault.hashing.tree_hash import build_tree_hash_from_map
from coldvault.logging_config import setup_loki_logging
from coldvault.multipart import MultipartUploadSession
from coldvault.payload import FilePayload
from coldvault.validators import validate_archive_payload


logger = logging.getLogger(__name__)

_PART_INDEX_PATTERN = re.compile(r"[0-9]+")


def _parse_part_hashes(items: List[str]) -> Dict[int, str]:
    part_hashes: Dict[int, str] = {}
    for item in items:
        index, sep, value = item.partition("=")
        if not sep or not _PART_INDEX_PATTERN.fullmatch(index.strip()):
            raise InvalidArgument(f"Expected <part index>=<tree hash>, got {item!r}")
        part_hashes[int(index)] = value.strip()
    return part_hashes


def cmd_hash(args: argparse.Namespace, config: Config) -> Dict[str, object]:
    payload = FilePayload(args.path)
    try:
        validate_archive_payload(payload, config.max_archive_size_bytes)
        single_upload = True
    except PayloadValidationError:
        single_upload = False
    hasher = TreeHasher(payload, timing_threshold_ms=config.hash_timing_threshold_ms)
    return {
        "path": args.path,
        "length": payload.content_length,
        "sha256": hasher.hash,
        "tree_hash": hasher.tree_hash,
        "single_upload": single_upload,
    }


async def cmd_plan(args: argparse.Namespace, config: Config) -> Dict[str, object]:
    if args.part_size_mb is not None:
        object.__setattr__(config, "slicing_strategy", "fixed")
        object.__setattr__(config, "fixed_part_size_mb", args.part_size_mb)
    session = MultipartUploadSession(FilePayload(args.path), config=config)
    initiate_headers = session.start()
    parts = await session.prepare_parts_async()
    for part in parts:
        session.record_part(part.part_number, part.hashed.tree_hash)
    return {
        "path": args.path,
        "upload_id": session.upload_id,
        "part_size_mb": session.part_size_in_mb,
        "initiate_headers": initiate_headers,
        "parts": [{"part_number": p.part_number, "range": str(p.slice.range), "headers": p.headers} for p in parts],
        "archive_tree_hash": session.archive_tree_hash() if parts else None,
    }


def cmd_combine(args: argparse.Namespace) -> Dict[str, object]:
    return {"tree_hash": build_tree_hash_from_map(_parse_part_hashes(args.hashes))}


def _print(result: Dict[str, object], as_json: bool) -> None:
    if as_json:
        print(json.dumps(result, indent=2))
        return
    for key, value in result.items():
        if key == "parts" and isinstance(value, list):
            for part in value:
                print(f"part {part['part_number']:>6}  {part['range']:<32} {part['headers']}")
            continue
        print(f"{key}: {value}")


async def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Tree hash CLI for coldvault")
    parser.add_argument("--json", action="store_true", help="Print JSON output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    hash_parser = subparsers.add_parser("hash", help="Linear SHA-256 and tree hash of a file")
    hash_parser.add_argument("path", help="File to hash")

    plan_parser = subparsers.add_parser("plan", help="Slice a file into parts and hash each part")
    plan_parser.add_argument("path", help="File to plan")
    plan_parser.add_argument("--part-size-mb", type=int, help="Use a fixed part size instead of the computed one")

    combine_parser = subparsers.add_parser("combine", help="Fold part tree hashes into an archive tree hash")
    combine_parser.add_argument("hashes", nargs="+", help="<part index>=<tree hash> pairs")

    args = parser.parse_args(argv)
    config = get_config()
    setup_loki_logging(config, "treehash")

    try:
        if args.command == "hash":
            result = cmd_hash(args, config)
        elif args.command == "plan":
            result = await cmd_plan(args, config)
        else:
            result = cmd_combine(args)
    except ColdVaultError as e:
        logger.error(f"{e.code}: {e.message}")
        return 1
    except OSError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1

    _print(result, args.json)
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
