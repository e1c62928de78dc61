"""Client-side bookkeeping for one multipart archive upload.

The session slices the payload, hashes each part and builds its upload
headers, then collects the tree hashes the service confirms and checks the
folded archive tree hash against the service's final answer. Transport is
left to the caller:

    session = MultipartUploadSession(FilePayload(path))
    session.start()
    for part in session.iter_parts():
        confirmed = client.upload_part(upload_id, part.headers, part.slice.payload)
        session.record_part(part.part_number, confirmed)
    session.verify(client.complete(upload_id, session.archive_tree_hash()))

Parts of a forward-only StreamPayload are read into memory once, so the
part payload can still be opened for upload after it has been hashed.
"""

from __future__ import annotations

import asyncio
import dataclasses
from dataclasses import dataclass
from typing import Dict
from typing import Iterator
from typing import List
from typing import Optional

from coldvault.config import Config
from coldvault.config import get_config
from coldvault.errors import HashingIOError
from coldvault.errors import InvalidArgument
from coldvault.errors import TreeHashMismatch
from coldvault.hashing.part_hasher import hash_slices
from coldvault.hashing.tree_hash import Hashed
from coldvault.hashing.tree_hash import TreeHasher
from coldvault.hashing.tree_hash import build_tree_hash_from_map
from coldvault.headers import build_initiate_headers
from coldvault.headers import build_upload_part_headers
from coldvault.payload import Payload
from coldvault.payload import buffer_payload
from coldvault.payload import is_forward_only
from coldvault.planning.slicing import PayloadSlice
from coldvault.planning.slicing import SlicingStrategy
from coldvault.planning.slicing import get_slicing_strategy
from coldvault.upload_context import generate_upload_id
from coldvault.upload_context import get_logger_with_upload_id
from coldvault.upload_context import part_context
from coldvault.upload_context import upload_id_context


@dataclass(frozen=True)
class PreparedPart:
    slice: PayloadSlice
    hashed: Hashed
    headers: Dict[str, str]

    @property
    def part_number(self) -> int:
        return self.slice.part_number


class MultipartUploadSession:
    def __init__(
        self,
        payload: Payload,
        strategy: Optional[SlicingStrategy] = None,
        config: Optional[Config] = None,
        upload_id: Optional[str] = None,
    ) -> None:
        self.config = config or get_config()
        self.payload = payload
        self.strategy: SlicingStrategy = strategy or get_slicing_strategy(self.config)
        self.upload_id = upload_id or generate_upload_id()
        self.part_tree_hashes: Dict[int, str] = {}
        self.log = get_logger_with_upload_id(__name__, self.upload_id)

    def start(self) -> Dict[str, str]:
        """Pick the part size and return the headers that announce it."""
        token = upload_id_context.set(self.upload_id)
        try:
            self.strategy.start_slicing(self.payload)
            self.part_tree_hashes.clear()
            self.log.info(
                f"Multipart upload prepared: length={self.payload.content_length} "
                f"part_size_mb={self.strategy.part_size_in_mb}"
            )
            return build_initiate_headers(self.strategy.part_size_in_mb)
        finally:
            upload_id_context.reset(token)

    @property
    def part_size_in_mb(self) -> int:
        return self.strategy.part_size_in_mb

    @property
    def part_size_bytes(self) -> int:
        return self.strategy.part_size_bytes

    @property
    def remaining(self) -> int:
        return self.strategy.remaining

    def _prepare(self, part: PayloadSlice, hashed: Hashed) -> PreparedPart:
        return PreparedPart(slice=part, hashed=hashed, headers=build_upload_part_headers(part.range, hashed))

    def _buffer_forward_only(self, part: PayloadSlice) -> PayloadSlice:
        """Swap a forward-only part for an in-memory copy that can be read twice."""
        if not is_forward_only(part.payload):
            return part
        try:
            buffered = buffer_payload(part.payload)
        except OSError as e:
            raise HashingIOError(f"Failed to read part {part.part_number}: {e}") from e
        if buffered.content_length != part.length:
            raise HashingIOError(
                f"Part {part.part_number} ended after {buffered.content_length} bytes, expected {part.length}"
            )
        self.log.debug(f"Buffered forward-only part {part.part_number} ({part.length} bytes)")
        return dataclasses.replace(part, payload=buffered)

    def iter_parts(self) -> Iterator[PreparedPart]:
        """Yield each part with its hashes and headers, hashing lazily in order."""
        for part in self.strategy:
            token = upload_id_context.set(self.upload_id)
            try:
                with part_context(part.part_number):
                    part = self._buffer_forward_only(part)
                    hasher = TreeHasher(part.payload, timing_threshold_ms=self.config.hash_timing_threshold_ms)
                    prepared = self._prepare(part, hasher.build_hashes())
            finally:
                upload_id_context.reset(token)
            yield prepared

    async def prepare_parts_async(self) -> List[PreparedPart]:
        """Slice the whole payload, then hash all parts concurrently.

        A forward-only payload is read into memory in full before hashing starts.
        """
        token = upload_id_context.set(self.upload_id)
        try:
            slices = [await asyncio.to_thread(self._buffer_forward_only, part) for part in self.strategy]
            results = await hash_slices(
                slices,
                max_concurrency=self.config.hash_max_concurrency,
                timing_threshold_ms=self.config.hash_timing_threshold_ms,
            )
            return [self._prepare(part, hashed) for part, hashed in results]
        finally:
            upload_id_context.reset(token)

    def record_part(self, part_number: int, tree_hash: str) -> None:
        """Store the tree hash the service confirmed for part_number."""
        if part_number < 1:
            raise InvalidArgument(f"part_number must be 1 or greater, got {part_number}")
        previous = self.part_tree_hashes.get(part_number)
        if previous is not None and previous.lower() != tree_hash.lower():
            self.log.warning(f"Part {part_number} re-recorded with a different tree hash ({previous} -> {tree_hash})")
        self.part_tree_hashes[part_number] = tree_hash.lower()

    def archive_tree_hash(self) -> str:
        return build_tree_hash_from_map(self.part_tree_hashes)

    def verify(self, service_tree_hash: str) -> str:
        """Compare the folded tree hash with the service's; raise on mismatch."""
        computed = self.archive_tree_hash()
        if computed != service_tree_hash.strip().lower():
            self.log.error(f"Archive tree hash mismatch: computed={computed} service={service_tree_hash}")
            raise TreeHashMismatch(computed, service_tree_hash)
        return computed
