"""Hash the parts of one archive on worker threads."""

from __future__ import annotations

import asyncio
import logging
from typing import List
from typing import Sequence
from typing import Tuple

from coldvault.hashing.tree_hash import Hashed
from coldvault.hashing.tree_hash import TreeHasher
from coldvault.payload import is_forward_only
from coldvault.planning.slicing import PayloadSlice
from coldvault.upload_context import part_context
from coldvault.utils import async_timing_context


logger = logging.getLogger(__name__)


async def hash_slices(
    slices: Sequence[PayloadSlice],
    *,
    max_concurrency: int = 4,
    timing_threshold_ms: float = 100.0,
) -> List[Tuple[PayloadSlice, Hashed]]:
    """Compute (linear hash, tree hash) for every slice.

    Each slice gets its own TreeHasher on a worker thread, at most
    max_concurrency at a time. Slices of a forward-only stream are hashed one
    after another in part order. Results are ordered by part number.
    """
    ordered = sorted(slices, key=lambda s: s.part_number)
    if not ordered:
        return []

    async def hash_one(part: PayloadSlice) -> Tuple[PayloadSlice, Hashed]:
        hasher = TreeHasher(part.payload, timing_threshold_ms=timing_threshold_ms)
        with part_context(part.part_number):
            hashed = await asyncio.to_thread(hasher.build_hashes)
            logger.debug(f"Part {part.part_number} range={part.range} tree_hash={hashed.tree_hash}")
        return part, hashed

    extra = {"parts": len(ordered), "length": sum(part.length for part in ordered)}
    async with async_timing_context("hash_slices", log_threshold_ms=timing_threshold_ms, extra=extra):
        if any(is_forward_only(part.payload) for part in ordered):
            return [await hash_one(part) for part in ordered]

        semaphore = asyncio.Semaphore(max(1, max_concurrency))

        async def bounded(part: PayloadSlice) -> Tuple[PayloadSlice, Hashed]:
            async with semaphore:
                return await hash_one(part)

        return list(await asyncio.gather(*[bounded(part) for part in ordered]))
