import contextvars
import logging
import uuid
from contextlib import contextmanager
from typing import Any
from typing import Iterator
from typing import MutableMapping
from typing import Optional


NO_UPLOAD_ID = "no-upload-id"
NO_PART = "-"

upload_id_context: contextvars.ContextVar[str] = contextvars.ContextVar("upload_id", default=NO_UPLOAD_ID)
part_number_context: contextvars.ContextVar[Optional[int]] = contextvars.ContextVar("part_number", default=None)


def generate_upload_id() -> str:
    """Generate a 16-character hex id used to correlate one archive's log lines."""
    return uuid.uuid4().hex[:16]


@contextmanager
def part_context(part_number: int) -> Iterator[None]:
    """Tag log records and timing lines emitted inside the block with part_number.

    asyncio.to_thread copies the current context, so hashing threads started
    inside the block see the part number too.
    """
    token = part_number_context.set(part_number)
    try:
        yield
    finally:
        part_number_context.reset(token)


class UploadIDLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that stamps a fixed upload_id on every record.

    Useful in worker threads, where the contextvar set by the caller is not
    visible.
    """

    def __init__(self, logger: logging.Logger, upload_id: Optional[str] = None):
        super().__init__(logger, {"upload_id": upload_id or NO_UPLOAD_ID})

    def process(self, msg: str, kwargs: MutableMapping[str, Any]) -> tuple[str, MutableMapping[str, Any]]:
        kwargs.setdefault("extra", {})
        kwargs["extra"]["upload_id"] = self.extra.get("upload_id", NO_UPLOAD_ID) if self.extra else NO_UPLOAD_ID
        return msg, kwargs


def get_logger_with_upload_id(name: str, upload_id: Optional[str] = None) -> UploadIDLoggerAdapter:
    return UploadIDLoggerAdapter(logging.getLogger(name), upload_id or upload_id_context.get())
