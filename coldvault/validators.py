"""Validation of archive payloads and part sizes before an upload starts."""

from typing import Optional

from coldvault.errors import MissingLength
from coldvault.errors import PayloadValidationError
from coldvault.payload import Payload
from coldvault.planning.slicing import MAX_PART_SIZE
from coldvault.utils import is_power_of_two


MAX_CONTENT_SIZE = 1 << 32  # 4 GiB

_RULES_HINT = "See https://docs.aws.amazon.com/amazonglacier/latest/dev/api-archive-post.html"


def _reason(payload: Optional[Payload], reason: str) -> str:
    return f"Payload '{payload!r}' doesn't match archive upload rules. Reason: {reason}. {_RULES_HINT}"


def validate_archive_payload(payload: Optional[Payload], max_content_size: int = MAX_CONTENT_SIZE) -> int:
    """Check a payload can be sent as a single archive upload.

    Returns:
        The payload's content length.
    """
    if payload is None:
        raise PayloadValidationError(_reason(payload, "Archive must have a payload"))
    length = payload.content_length
    if length is None:
        raise MissingLength(_reason(payload, "Content length must be set"))
    if length > max_content_size:
        raise PayloadValidationError(_reason(payload, f"Max content size is {max_content_size} but was {length}"))
    return length


def validate_part_size(part_size_in_mb: int) -> int:
    if not is_power_of_two(part_size_in_mb) or part_size_in_mb > MAX_PART_SIZE:
        raise PayloadValidationError(
            f"Part size must be a power of two between 1 and {MAX_PART_SIZE} MiB, got {part_size_in_mb}"
        )
    return part_size_in_mb
