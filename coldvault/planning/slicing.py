"""Slicing strategies: pick one part size per archive and hand out parts.

No IO; slices are lazy views over the source payload.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from dataclasses import dataclass
from typing import Iterator
from typing import Optional
from typing import Protocol

from coldvault.errors import InvalidArgument
from coldvault.errors import MissingLength
from coldvault.errors import SlicingExhausted
from coldvault.errors import SlicingNotStarted
from coldvault.payload import Payload
from coldvault.payload import PayloadSlicer
from coldvault.planning.content_range import MIB_SHIFT
from coldvault.planning.content_range import ContentRange
from coldvault.utils import is_power_of_two


logger = logging.getLogger(__name__)

MIB = 1 << MIB_SHIFT
# Largest part the service accepts, in MiB (4 GiB)
MAX_PART_SIZE = 4096
# (part size / number of parts) ratio
DEFAULT_RATIO = 0.32


def calculate_part_size(length: int, ratio: float = DEFAULT_RATIO, max_part_size: int = MAX_PART_SIZE) -> int:
    """Part size in MiB for an archive of length bytes.

    Grows with the square root of the archive size so the part count stays
    bounded, rounded up to the next power of two and clamped to
    [1, max_part_size].
    """
    if length < 0:
        raise InvalidArgument(f"length must be non-negative, got {length}")
    length_in_mb = length // MIB + 1
    fp_part_size_in_mb = math.sqrt(ratio * length_in_mb)
    # Next power of two (an exact power of two still moves up one step)
    part_size_in_mb = int(2 ** (math.floor(math.log2(fp_part_size_in_mb)) + 1))
    if part_size_in_mb < 1:
        return 1
    if part_size_in_mb > max_part_size:
        return max_part_size
    return part_size_in_mb


@dataclass(frozen=True)
class SlicingState:
    total_length: int
    part_size_bytes: int
    bytes_copied: int = 0
    part_index: int = 0

    @property
    def remaining(self) -> int:
        return self.total_length - self.bytes_copied

    @property
    def exhausted(self) -> bool:
        return self.bytes_copied >= self.total_length


@dataclass(frozen=True)
class PayloadSlice:
    payload: Payload
    range: ContentRange
    part_number: int

    @property
    def offset(self) -> int:
        return self.range.start

    @property
    def length(self) -> int:
        return self.range.length


class SlicingStrategy(Protocol):
    def start_slicing(self, payload: Payload) -> None: ...

    def has_next(self) -> bool: ...

    def next_slice(self) -> PayloadSlice: ...

    @property
    def remaining(self) -> int: ...

    @property
    def part_size_in_mb(self) -> int: ...

    @property
    def part_size_bytes(self) -> int: ...

    def __iter__(self) -> Iterator[PayloadSlice]: ...


class BaseSlicingStrategy:
    """Shared slicing state machine; subclasses only choose the part size.

    Phases: not started (state is None), slicing, exhausted. The run state is
    an immutable SlicingState replaced on every next_slice(); a single
    strategy instance serves one upload at a time.
    """

    def __init__(self, slicer: Optional[PayloadSlicer] = None) -> None:
        self.slicer = slicer or PayloadSlicer()
        self._payload: Optional[Payload] = None
        self.state: Optional[SlicingState] = None

    def calculate_part_size(self, length: int) -> int:
        raise NotImplementedError

    def start_slicing(self, payload: Payload) -> None:
        if payload is None:
            raise InvalidArgument("payload is required")
        total = payload.content_length
        if total is None:
            raise MissingLength(f"Payload {payload!r} does not declare a content length")
        part_size_in_mb = self.calculate_part_size(total)
        self._payload = payload
        self.state = SlicingState(total_length=total, part_size_bytes=part_size_in_mb << MIB_SHIFT)
        logger.debug(f"Slicing {total} bytes into parts of {part_size_in_mb} MiB")

    def _require_state(self) -> SlicingState:
        if self.state is None:
            raise SlicingNotStarted("start_slicing() must be called before next_slice()")
        return self.state

    def has_next(self) -> bool:
        return self.state is not None and not self.state.exhausted

    def next_slice(self) -> PayloadSlice:
        state = self._require_state()
        if state.exhausted:
            raise SlicingExhausted(f"All {state.total_length} bytes have already been sliced")
        payload = self._payload
        if payload is None:
            raise SlicingNotStarted("Slicing state has no payload; call start_slicing() first")

        slice_length = min(state.remaining, state.part_size_bytes)
        sliced = self.slicer.slice(payload, state.bytes_copied, slice_length)
        content_range = ContentRange(state.bytes_copied, state.bytes_copied + slice_length - 1)
        self.state = dataclasses.replace(
            state,
            bytes_copied=state.bytes_copied + slice_length,
            part_index=state.part_index + 1,
        )
        return PayloadSlice(payload=sliced, range=content_range, part_number=self.state.part_index)

    @property
    def remaining(self) -> int:
        return self._require_state().remaining

    def get_remaining(self) -> int:
        return self.remaining

    @property
    def part_size_in_mb(self) -> int:
        return self._require_state().part_size_bytes >> MIB_SHIFT

    @property
    def part_size_bytes(self) -> int:
        return self._require_state().part_size_bytes

    def __iter__(self) -> Iterator[PayloadSlice]:
        self._require_state()
        while self.has_next():
            yield self.next_slice()


class PowerOfTwoSlicingStrategy(BaseSlicingStrategy):
    """Part size grows with the square root of the archive length."""

    def __init__(
        self,
        slicer: Optional[PayloadSlicer] = None,
        *,
        ratio: float = DEFAULT_RATIO,
        max_part_size: int = MAX_PART_SIZE,
    ) -> None:
        super().__init__(slicer)
        if ratio <= 0:
            raise InvalidArgument(f"ratio must be positive, got {ratio}")
        if not is_power_of_two(max_part_size) or max_part_size > MAX_PART_SIZE:
            raise InvalidArgument(f"max_part_size must be a power of two up to {MAX_PART_SIZE}, got {max_part_size}")
        self.ratio = ratio
        self.max_part_size = max_part_size

    def calculate_part_size(self, length: int) -> int:
        return calculate_part_size(length, self.ratio, self.max_part_size)


class FixedSizeSlicingStrategy(BaseSlicingStrategy):
    """Every part (but the last) has the same configured size."""

    def __init__(self, part_size_in_mb: int, slicer: Optional[PayloadSlicer] = None) -> None:
        super().__init__(slicer)
        if not is_power_of_two(part_size_in_mb) or part_size_in_mb > MAX_PART_SIZE:
            raise InvalidArgument(
                f"part size must be a power of two between 1 and {MAX_PART_SIZE} MiB, got {part_size_in_mb}"
            )
        self.fixed_part_size_in_mb = part_size_in_mb

    def calculate_part_size(self, length: int) -> int:
        return self.fixed_part_size_in_mb


def get_slicing_strategy(config) -> BaseSlicingStrategy:  # type: ignore[no-untyped-def]
    """Build the strategy named by config.slicing_strategy."""
    name = config.slicing_strategy
    if name == "power_of_two":
        return PowerOfTwoSlicingStrategy(ratio=config.slicing_ratio, max_part_size=config.max_part_size_mb)
    if name == "fixed":
        return FixedSizeSlicingStrategy(config.fixed_part_size_mb)
    raise InvalidArgument(f"Unknown slicing strategy: {name!r}")
