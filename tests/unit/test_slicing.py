import io
from types import SimpleNamespace

import pytest

from coldvault.errors import InvalidArgument
from coldvault.errors import MissingLength
from coldvault.errors import SlicingExhausted
from coldvault.errors import SlicingNotStarted
from coldvault.hashing.tree_hash import build_tree_hash_from_map
from coldvault.hashing.tree_hash import tree_hash_bytes
from coldvault.payload import BytesPayload
from coldvault.payload import FilePayload
from coldvault.payload import StreamPayload
from coldvault.planning.content_range import ContentRange
from coldvault.planning.slicing import DEFAULT_RATIO
from coldvault.planning.slicing import MAX_PART_SIZE
from coldvault.planning.slicing import FixedSizeSlicingStrategy
from coldvault.planning.slicing import PowerOfTwoSlicingStrategy
from coldvault.planning.slicing import SlicingState
from coldvault.planning.slicing import calculate_part_size
from coldvault.planning.slicing import get_slicing_strategy

from .helpers import MB
from .helpers import NonSeekableReader


def _read(payload) -> bytes:
    with payload.open_stream() as stream:
        return stream.read()


# ---------------------------------------------------------------------------
# calculate_part_size
# ---------------------------------------------------------------------------


class TestCalculatePartSize:
    def test_defaults(self):
        assert DEFAULT_RATIO == 0.32
        assert MAX_PART_SIZE == 4096

    @pytest.mark.parametrize(
        "length,expected",
        [
            (0, 1),
            (1, 1),
            (MB, 1),
            (5 * MB, 2),
            (100 * MB, 8),
            (1024 * MB, 32),
        ],
    )
    def test_known_sizes(self, length, expected):
        assert calculate_part_size(length) == expected

    def test_clamped_to_max(self):
        assert calculate_part_size(100 * 1024 * 1024 * MB) == MAX_PART_SIZE

    def test_custom_max(self):
        assert calculate_part_size(1024 * MB, max_part_size=16) == 16

    @pytest.mark.parametrize("length", [0, 1, MB - 1, MB, 3 * MB + 5, 77 * MB, 10**10, 10**12, 10**14])
    def test_always_power_of_two_in_bounds(self, length):
        size = calculate_part_size(length)
        assert 1 <= size <= MAX_PART_SIZE
        assert size & (size - 1) == 0

    def test_monotonic_in_length(self):
        sizes = [calculate_part_size(n * 256 * MB) for n in range(0, 200)]
        assert sizes == sorted(sizes)

    def test_negative_length(self):
        with pytest.raises(InvalidArgument):
            calculate_part_size(-1)


# ---------------------------------------------------------------------------
# PowerOfTwoSlicingStrategy
# ---------------------------------------------------------------------------


class TestPowerOfTwoSlicingStrategy:
    def test_slices_cover_payload_exactly(self):
        data = bytes(range(256)) * (5 * MB // 256) + b"x" * 123
        strategy = PowerOfTwoSlicingStrategy()
        strategy.start_slicing(BytesPayload(data))

        assert strategy.part_size_in_mb == 2
        assert strategy.get_remaining() == len(data)

        slices = []
        while strategy.has_next():
            slices.append(strategy.next_slice())
            assert strategy.part_size_in_mb == 2

        assert [s.part_number for s in slices] == [1, 2, 3]
        assert [s.range for s in slices] == [
            ContentRange(0, 2 * MB - 1),
            ContentRange(2 * MB, 4 * MB - 1),
            ContentRange(4 * MB, len(data) - 1),
        ]
        assert sum(s.length for s in slices) == len(data)
        assert b"".join(_read(s.payload) for s in slices) == data
        assert strategy.remaining == 0

    @pytest.mark.parametrize("length", [1, 7, MB - 1, MB, MB + 1, 3 * MB, 9 * MB + 3])
    def test_ranges_contiguous_ascending(self, length):
        strategy = PowerOfTwoSlicingStrategy()
        strategy.start_slicing(BytesPayload(b"\0" * length))

        next_start = 0
        for part_number, s in enumerate(strategy, start=1):
            assert s.part_number == part_number
            assert s.range.start == next_start
            assert s.payload.content_length == s.length
            next_start = s.range.end + 1
        assert next_start == length

    def test_one_byte_payload(self):
        strategy = PowerOfTwoSlicingStrategy()
        strategy.start_slicing(BytesPayload(b"z"))
        s = strategy.next_slice()
        assert s.range == ContentRange(0, 0)
        assert _read(s.payload) == b"z"

    def test_next_before_start(self):
        strategy = PowerOfTwoSlicingStrategy()
        assert strategy.has_next() is False
        with pytest.raises(SlicingNotStarted):
            strategy.next_slice()
        with pytest.raises(SlicingNotStarted):
            _ = strategy.remaining

    def test_next_after_exhausted(self):
        strategy = PowerOfTwoSlicingStrategy()
        strategy.start_slicing(BytesPayload(b"abc"))
        strategy.next_slice()
        assert strategy.has_next() is False
        with pytest.raises(SlicingExhausted):
            strategy.next_slice()

    def test_empty_payload_is_exhausted_immediately(self):
        strategy = PowerOfTwoSlicingStrategy()
        strategy.start_slicing(BytesPayload(b""))
        assert strategy.has_next() is False
        assert list(strategy) == []
        with pytest.raises(SlicingExhausted):
            strategy.next_slice()

    def test_state_without_payload_is_not_started(self):
        strategy = PowerOfTwoSlicingStrategy()
        strategy.state = SlicingState(total_length=10, part_size_bytes=MB)
        with pytest.raises(SlicingNotStarted):
            strategy.next_slice()

    def test_missing_length(self):
        strategy = PowerOfTwoSlicingStrategy()
        with pytest.raises(MissingLength):
            strategy.start_slicing(StreamPayload(io.BytesIO(b"abc")))
        with pytest.raises(SlicingNotStarted):
            strategy.next_slice()

    def test_run_state_is_replaced_not_mutated(self):
        strategy = PowerOfTwoSlicingStrategy()
        strategy.start_slicing(BytesPayload(b"\0" * (3 * MB)))
        before = strategy.state
        assert before == SlicingState(total_length=3 * MB, part_size_bytes=2 * MB)

        strategy.next_slice()

        assert before.bytes_copied == 0
        assert strategy.state.bytes_copied == 2 * MB
        assert strategy.state.part_index == 1

    def test_restart_resets_progress(self):
        strategy = PowerOfTwoSlicingStrategy()
        strategy.start_slicing(BytesPayload(b"\0" * (3 * MB)))
        list(strategy)
        strategy.start_slicing(BytesPayload(b"\0" * 10))
        assert strategy.remaining == 10
        assert strategy.next_slice().part_number == 1

    def test_slices_share_source_bytes(self):
        data = bytearray(b"a" * (2 * MB))
        strategy = FixedSizeSlicingStrategy(1)
        strategy.start_slicing(BytesPayload(data))
        first = strategy.next_slice()
        data[0:1] = b"b"
        assert _read(first.payload)[:1] == b"b"

    def test_file_payload_slices(self, tmp_path):
        data = bytes(range(256)) * (3 * MB // 256) + b"end"
        path = tmp_path / "archive.bin"
        path.write_bytes(data)

        strategy = FixedSizeSlicingStrategy(1)
        strategy.start_slicing(FilePayload(path))
        slices = list(strategy)

        assert len(slices) == 4
        assert b"".join(_read(s.payload) for s in slices) == data
        assert _read(slices[2].payload) == data[2 * MB : 3 * MB]

    def test_forward_only_stream_sliced_in_order(self):
        data = bytes(range(256)) * (2 * MB // 256) + b"rest"
        strategy = FixedSizeSlicingStrategy(1)
        strategy.start_slicing(StreamPayload(NonSeekableReader(data), content_length=len(data)))

        pieces = [_read(s.payload) for s in strategy]
        assert b"".join(pieces) == data
        assert [len(p) for p in pieces] == [MB, MB, 4]

    def test_part_tree_hashes_fold_to_archive_tree_hash(self):
        data = bytes(range(256)) * (9 * MB // 256) + b"tail"
        strategy = PowerOfTwoSlicingStrategy()
        strategy.start_slicing(BytesPayload(data))

        part_hashes = {s.part_number: tree_hash_bytes(_read(s.payload)).tree_hash for s in strategy}

        assert len(part_hashes) > 1
        assert build_tree_hash_from_map(part_hashes) == tree_hash_bytes(data).tree_hash

    def test_invalid_construction(self):
        with pytest.raises(InvalidArgument):
            PowerOfTwoSlicingStrategy(ratio=0)
        with pytest.raises(InvalidArgument):
            PowerOfTwoSlicingStrategy(max_part_size=100)


# ---------------------------------------------------------------------------
# FixedSizeSlicingStrategy / get_slicing_strategy
# ---------------------------------------------------------------------------


class TestFixedSizeSlicingStrategy:
    def test_uses_fixed_size(self):
        strategy = FixedSizeSlicingStrategy(4)
        strategy.start_slicing(BytesPayload(b"\0" * (10 * MB)))
        assert strategy.part_size_in_mb == 4
        assert strategy.part_size_bytes == 4 * MB
        assert [s.length for s in strategy] == [4 * MB, 4 * MB, 2 * MB]

    @pytest.mark.parametrize("size", [0, 3, 6, 8192, -2])
    def test_rejects_invalid_sizes(self, size):
        with pytest.raises(InvalidArgument):
            FixedSizeSlicingStrategy(size)


class TestGetSlicingStrategy:
    def test_power_of_two(self):
        cfg = SimpleNamespace(slicing_strategy="power_of_two", slicing_ratio=0.32, max_part_size_mb=4096)
        strategy = get_slicing_strategy(cfg)
        assert isinstance(strategy, PowerOfTwoSlicingStrategy)

    def test_fixed(self):
        cfg = SimpleNamespace(slicing_strategy="fixed", fixed_part_size_mb=16)
        strategy = get_slicing_strategy(cfg)
        assert isinstance(strategy, FixedSizeSlicingStrategy)
        assert strategy.fixed_part_size_in_mb == 16

    def test_unknown(self):
        with pytest.raises(InvalidArgument):
            get_slicing_strategy(SimpleNamespace(slicing_strategy="random"))
