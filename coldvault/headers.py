"""Header names and values for part uploads.

Only builds the values; sending them is up to the caller's HTTP client.
"""

from typing import Dict

from coldvault.hashing.tree_hash import Hashed
from coldvault.planning.content_range import MIB_SHIFT
from coldvault.planning.content_range import ContentRange
from coldvault.validators import validate_part_size


DEFAULT_AMAZON_HEADERTAG = "amz"
HEADER_PREFIX = f"x-{DEFAULT_AMAZON_HEADERTAG}-"
TREE_HASH = HEADER_PREFIX + "sha256-tree-hash"
CONTENT_SHA256 = HEADER_PREFIX + "content-sha256"
PART_SIZE = HEADER_PREFIX + "part-size"
CONTENT_RANGE = "Content-Range"


def build_upload_part_headers(content_range: ContentRange, hashed: Hashed) -> Dict[str, str]:
    return {
        CONTENT_RANGE: content_range.to_header_string(),
        TREE_HASH: hashed.tree_hash,
        CONTENT_SHA256: hashed.hash,
    }


def build_initiate_headers(part_size_in_mb: int) -> Dict[str, str]:
    """Headers announcing the part size (in bytes) when a multipart upload starts."""
    validate_part_size(part_size_in_mb)
    return {PART_SIZE: str(part_size_in_mb << MIB_SHIFT)}
