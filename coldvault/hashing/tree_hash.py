"""Linear SHA-256 and SHA-256 tree hashes of archive payloads.

The tree hash splits the payload into 1 MiB chunks, hashes each chunk, then
repeatedly hashes adjacent pairs of digests until one root remains. When a
level has an odd number of digests the last one is carried up unchanged.

Tree hashes of parts combine into the tree hash of the whole archive as long
as every part except the last is a multiple of 1 MiB, so the same reduction
folds per-part tree hashes reported by the service.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import AsyncIterator
from typing import Iterable
from typing import List
from typing import Mapping
from typing import Optional
from typing import Union

from coldvault.errors import EmptyInput
from coldvault.errors import HashingIOError
from coldvault.errors import InvalidArgument
from coldvault.payload import BytesPayload
from coldvault.payload import Payload
from coldvault.utils import timing_context


logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
DIGEST_SIZE = 32


@dataclass(frozen=True)
class Unhashed:
    """Hashing pass has not run (or failed)."""


@dataclass(frozen=True)
class Hashed:
    hash: str
    tree_hash: str


HashState = Union[Unhashed, Hashed]


def _sha256(data: Union[bytes, bytearray, memoryview]) -> bytes:
    return hashlib.sha256(data).digest()


def reduce_digests(digests: Iterable[bytes]) -> bytes:
    """Reduce ordered leaf digests to the tree hash root.

    Each level pairs (0, 1), (2, 3), ... and hashes left || right; an unpaired
    trailing digest moves up as is, after the paired results.
    """
    level: List[bytes] = list(digests)
    if not level:
        raise EmptyInput("Cannot build a tree hash from zero digests")

    while len(level) > 1:
        next_level = [_sha256(level[i] + level[i + 1]) for i in range(0, len(level) - 1, 2)]
        if len(level) % 2 == 1:
            next_level.append(level[-1])
        level = next_level
    return level[0]


def _digest_from_hex(part_number: int, value: str) -> bytes:
    try:
        digest = bytes.fromhex(value)
    except (TypeError, ValueError) as e:
        raise InvalidArgument(f"Tree hash for part {part_number} is not hex: {value!r}") from e
    if len(digest) != DIGEST_SIZE:
        raise InvalidArgument(f"Tree hash for part {part_number} has {len(digest)} bytes, expected {DIGEST_SIZE}")
    return digest


def build_tree_hash_from_map(part_hashes: Mapping[int, str]) -> str:
    """Fold per-part tree hashes into the archive tree hash.

    Args:
        part_hashes: {part index: hex tree hash}. Order is taken from the
            numeric index, not from insertion order.

    Returns:
        Hex-encoded archive tree hash.
    """
    if not part_hashes:
        raise EmptyInput("No part hashes to combine")
    leaves = [_digest_from_hex(index, part_hashes[index]) for index in sorted(part_hashes)]
    return reduce_digests(leaves).hex()


class _ChunkAccumulator:
    """Running linear hash plus the queue of 1 MiB chunk digests."""

    def __init__(self) -> None:
        self.linear = hashlib.sha256()
        self.leaves: List[bytes] = []
        self.size = 0

    def add_chunk(self, chunk: Union[bytes, bytearray, memoryview]) -> None:
        self.linear.update(chunk)
        self.leaves.append(_sha256(chunk))
        self.size += len(chunk)

    def result(self) -> Hashed:
        if not self.leaves:
            # Empty payload: both hashes are the digest of no bytes
            empty = self.linear.hexdigest()
            return Hashed(hash=empty, tree_hash=empty)
        return Hashed(hash=self.linear.hexdigest(), tree_hash=reduce_digests(self.leaves).hex())


def _read_full(stream, size: int) -> bytes:  # type: ignore[no-untyped-def]
    """Read up to size bytes, looping over short reads."""
    first = stream.read(size)
    if not first or len(first) == size:
        return first or b""
    pieces = [first]
    got = len(first)
    while got < size:
        more = stream.read(size - got)
        if not more:
            break
        pieces.append(more)
        got += len(more)
    return b"".join(pieces)


class TreeHasher:
    """Computes the linear hash and tree hash of one payload in one pass.

    Both values are computed on first access and cached. A read error leaves
    the hasher unhashed so the pass can be retried with a fresh payload.
    Not safe for concurrent use; give each worker its own hasher.
    """

    def __init__(self, payload: Payload, *, timing_threshold_ms: float = 100.0) -> None:
        self.payload = payload
        self.timing_threshold_ms = timing_threshold_ms
        self.state: HashState = Unhashed()

    def build_hashes(self) -> Hashed:
        acc = _ChunkAccumulator()
        with timing_context(
            "tree_hash",
            log_threshold_ms=self.timing_threshold_ms,
            extra={"length": self.payload.content_length},
        ):
            try:
                with self.payload.open_stream() as stream:
                    while True:
                        chunk = _read_full(stream, CHUNK_SIZE)
                        if not chunk:
                            break
                        acc.add_chunk(chunk)
            except OSError as e:
                self.state = Unhashed()
                logger.error(f"Hashing failed after {acc.size} bytes of {self.payload!r}: {e}")
                raise HashingIOError(f"Failed to read payload for hashing: {e}") from e

        self.state = acc.result()
        logger.debug(f"Hashed {acc.size} bytes in {len(acc.leaves)} chunks tree_hash={self.state.tree_hash}")
        return self.state

    def _hashed(self) -> Hashed:
        if isinstance(self.state, Hashed):
            return self.state
        return self.build_hashes()

    @property
    def hash(self) -> str:
        return self._hashed().hash

    @property
    def tree_hash(self) -> str:
        return self._hashed().tree_hash

    def get_hash(self) -> str:
        return self.hash

    def get_tree_hash(self) -> str:
        return self.tree_hash


def tree_hash_bytes(data: Union[bytes, bytearray, memoryview]) -> Hashed:
    return TreeHasher(BytesPayload(data), timing_threshold_ms=float("inf")).build_hashes()


async def tree_hash_async_stream(stream: AsyncIterator[bytes], *, expected_length: Optional[int] = None) -> Hashed:
    """Hash an async byte stream whose pieces have arbitrary sizes.

    Pieces are re-buffered into 1 MiB chunks so the result matches hashing the
    same bytes through TreeHasher.
    """
    acc = _ChunkAccumulator()
    buffer = bytearray()
    async for piece in stream:
        if not piece:
            continue
        buffer.extend(piece)
        while len(buffer) >= CHUNK_SIZE:
            acc.add_chunk(bytes(buffer[:CHUNK_SIZE]))
            del buffer[:CHUNK_SIZE]
    if buffer:
        acc.add_chunk(bytes(buffer))

    if expected_length is not None and acc.size != expected_length:
        raise HashingIOError(f"Stream ended after {acc.size} bytes, expected {expected_length}")
    return acc.result()
