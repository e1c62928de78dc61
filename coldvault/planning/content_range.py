"""Inclusive byte ranges with the textual forms used by the archive service.

Two encodings exist:
    "<start>-<end>"            range as reported in part listings
    "bytes <start>-<end>/*"    Content-Range header of an in-progress part upload
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from coldvault.errors import InvalidArgument
from coldvault.errors import InvalidRange
from coldvault.errors import RangeParseError


MIB_SHIFT = 20

_RANGE_PATTERN = re.compile(r"([0-9]+)-([0-9]+)")


@dataclass(frozen=True)
class ContentRange:
    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < 0:
            raise InvalidRange(f"Range bounds must be non-negative: {self.start}-{self.end}")
        if self.end < self.start:
            raise InvalidRange(f"Range end {self.end} is before start {self.start}")

    @property
    def from_(self) -> int:
        return self.start

    @property
    def to(self) -> int:
        return self.end

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def to_header_string(self) -> str:
        # Total length is unknown while a multipart upload is in progress
        return f"bytes {self.start}-{self.end}/*"

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"

    @classmethod
    def build(cls, start: int, end: int) -> ContentRange:
        """Build a range for an upload request.

        The service rejects the empty "0-0" range, so it is refused here as well.
        """
        if start == 0 and end == 0:
            raise InvalidRange("Range 0-0 is not accepted")
        return cls(start, end)

    @classmethod
    def from_string(cls, value: Optional[str]) -> ContentRange:
        """Parse "<start>-<end>" (no sign, no "bytes" prefix)."""
        if not value:
            raise RangeParseError(f"Cannot parse empty range: {value!r}")
        match = _RANGE_PATTERN.fullmatch(value)
        if match is None:
            raise RangeParseError(f"Invalid range format: {value!r}")
        return cls(int(match.group(1)), int(match.group(2)))

    @classmethod
    def from_part_number(cls, part_number: int, part_size_in_mb: int) -> ContentRange:
        """Range covered by the zero-based part_number for parts of part_size_in_mb MiB."""
        if part_number < 0:
            raise InvalidArgument(f"part_number must be non-negative, got {part_number}")
        if part_size_in_mb <= 0:
            raise InvalidArgument(f"part_size_in_mb must be positive, got {part_size_in_mb}")
        part_size = part_size_in_mb << MIB_SHIFT
        start = part_number * part_size
        return cls(start, start + part_size - 1)
