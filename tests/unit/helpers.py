import io


MB = 1024 * 1024


class NonSeekableReader(io.RawIOBase):
    """Forward-only reader, like a socket or pipe."""

    def __init__(self, data: bytes) -> None:
        self._inner = io.BytesIO(data)

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def readinto(self, buffer) -> int:
        data = self._inner.read(len(buffer))
        buffer[: len(data)] = data
        return len(data)


class FailingReader(io.RawIOBase):
    """Returns fail_after bytes, then raises OSError."""

    def __init__(self, fail_after: int) -> None:
        self._left = fail_after

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if self._left <= 0:
            raise OSError("disk went away")
        n = min(len(buffer), self._left)
        buffer[:n] = b"x" * n
        self._left -= n
        return n


class FailingPayload:
    def __init__(self, content_length: int, fail_after: int) -> None:
        self.content_length = content_length
        self.fail_after = fail_after
        self.opened = 0

    def open_stream(self):
        self.opened += 1
        return io.BufferedReader(FailingReader(self.fail_after))


def data_of(size: int, byte: bytes = b"a") -> bytes:
    return byte * size
