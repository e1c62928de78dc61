"""Byte payloads that can be sliced and hashed without loading them whole.

A payload only needs a declared length (which may be unknown) and a way to
open a binary stream. Slices are lazy views: opening a slice opens the source
and reads at most the slice's length from its offset.
"""

from __future__ import annotations

import io
import os
from typing import BinaryIO
from typing import Optional
from typing import Protocol
from typing import Union

from coldvault.errors import InvalidArgument


_SKIP_BUFFER_SIZE = 1 << 20


class Payload(Protocol):
    content_length: Optional[int]

    def open_stream(self) -> BinaryIO: ...


class BytesPayload:
    """In-memory payload. Slices share the underlying buffer."""

    def __init__(self, data: Union[bytes, bytearray, memoryview]) -> None:
        self._data = memoryview(data).cast("B")
        self.content_length: Optional[int] = self._data.nbytes

    def open_stream(self) -> BinaryIO:
        return io.BufferedReader(_MemoryReader(self._data))  # type: ignore[return-value]

    def view(self, offset: int, length: int) -> BytesPayload:
        return BytesPayload(self._data[offset : offset + length])

    def __repr__(self) -> str:
        return f"BytesPayload(length={self.content_length})"


class FilePayload:
    """Payload backed by a file on disk; length is taken from the filesystem."""

    def __init__(self, path: Union[str, os.PathLike]) -> None:
        self.path = os.fspath(path)
        self.content_length: Optional[int] = os.stat(self.path).st_size

    def open_stream(self) -> BinaryIO:
        return open(self.path, "rb")

    def __repr__(self) -> str:
        return f"FilePayload(path={self.path!r}, length={self.content_length})"


class StreamPayload:
    """Single-use payload wrapping an already-open, forward-only stream.

    The length may be unknown. Every open_stream() call returns a reader over
    the same underlying stream, so slices must be consumed in ascending order.
    The underlying stream is never closed by coldvault.
    """

    def __init__(self, stream: BinaryIO, content_length: Optional[int] = None) -> None:
        self._stream = stream
        self.content_length = content_length
        self.position = 0

    def open_stream(self) -> BinaryIO:
        return _SharedStreamReader(self)  # type: ignore[return-value]

    def _read(self, size: int) -> bytes:
        data = self._stream.read(size)
        self.position += len(data)
        return data

    def __repr__(self) -> str:
        return f"StreamPayload(length={self.content_length}, position={self.position})"


class SlicedPayload:
    """Bounded view over [offset, offset + length) of another payload."""

    def __init__(self, source: Payload, offset: int, length: int) -> None:
        self.source = source
        self.offset = offset
        self.content_length: Optional[int] = length

    def open_stream(self) -> BinaryIO:
        stream = self.source.open_stream()
        try:
            _advance(stream, self.offset)
        except BaseException:
            stream.close()
            raise
        return io.BufferedReader(_BoundedReader(stream, int(self.content_length or 0)))  # type: ignore[return-value]

    def __repr__(self) -> str:
        return f"SlicedPayload(source={self.source!r}, offset={self.offset}, length={self.content_length})"


class PayloadSlicer:
    """Produces views over payloads without copying their bytes."""

    def slice(self, payload: Payload, offset: int, length: int) -> Payload:
        if offset < 0 or length < 0:
            raise InvalidArgument(f"Slice bounds must be non-negative: offset={offset} length={length}")
        total = payload.content_length
        if total is not None and offset + length > total:
            raise InvalidArgument(f"Slice [{offset}, {offset + length}) exceeds payload length {total}")
        if isinstance(payload, BytesPayload):
            return payload.view(offset, length)
        return SlicedPayload(payload, offset, length)


def is_forward_only(payload: Payload) -> bool:
    """True when payload, or the payload it slices, can only be read once."""
    while isinstance(payload, SlicedPayload):
        payload = payload.source
    return isinstance(payload, StreamPayload)


def buffer_payload(payload: Payload) -> BytesPayload:
    """Read payload into memory so it can be opened more than once."""
    with payload.open_stream() as stream:
        data = stream.read()
    return BytesPayload(data)


def _advance(stream: BinaryIO, offset: int) -> None:
    """Position a freshly opened stream at offset."""
    if stream.seekable():
        stream.seek(offset, io.SEEK_SET)
        return

    current = stream.tell() if isinstance(stream, _SharedStreamReader) else 0
    if current > offset:
        raise InvalidArgument(f"Cannot rewind forward-only stream from {current} to {offset}")

    remaining = offset - current
    while remaining > 0:
        skipped = stream.read(min(remaining, _SKIP_BUFFER_SIZE))
        if not skipped:
            break
        remaining -= len(skipped)


class _MemoryReader(io.RawIOBase):
    def __init__(self, view: memoryview) -> None:
        self._view = view
        self._pos = 0

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if whence == io.SEEK_SET:
            pos = offset
        elif whence == io.SEEK_CUR:
            pos = self._pos + offset
        elif whence == io.SEEK_END:
            pos = self._view.nbytes + offset
        else:
            raise ValueError(f"Invalid whence: {whence}")
        self._pos = max(0, min(pos, self._view.nbytes))
        return self._pos

    def tell(self) -> int:
        return self._pos

    def readinto(self, buffer) -> int:  # type: ignore[no-untyped-def]
        out = memoryview(buffer).cast("B")
        n = min(out.nbytes, self._view.nbytes - self._pos)
        out[:n] = self._view[self._pos : self._pos + n]
        self._pos += n
        return n


class _BoundedReader(io.RawIOBase):
    def __init__(self, inner: BinaryIO, limit: int) -> None:
        self._inner = inner
        self._remaining = limit

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:  # type: ignore[no-untyped-def]
        if self._remaining <= 0:
            return 0
        out = memoryview(buffer).cast("B")
        data = self._inner.read(min(out.nbytes, self._remaining))
        n = len(data)
        out[:n] = data
        self._remaining -= n
        return n

    def close(self) -> None:
        try:
            self._inner.close()
        finally:
            super().close()


class _SharedStreamReader(io.RawIOBase):
    def __init__(self, owner: StreamPayload) -> None:
        self._owner = owner

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def tell(self) -> int:
        return self._owner.position

    def readinto(self, buffer) -> int:  # type: ignore[no-untyped-def]
        out = memoryview(buffer).cast("B")
        data = self._owner._read(out.nbytes)
        n = len(data)
        out[:n] = data
        return n
