"""Slicing and SHA-256 tree hashing for multipart cold-storage archive uploads."""

from coldvault.errors import ColdVaultError  # noqa: F401
from coldvault.hashing.tree_hash import Hashed  # noqa: F401
from coldvault.hashing.tree_hash import TreeHasher  # noqa: F401
from coldvault.hashing.tree_hash import build_tree_hash_from_map  # noqa: F401
from coldvault.payload import BytesPayload  # noqa: F401
from coldvault.payload import FilePayload  # noqa: F401
from coldvault.payload import StreamPayload  # noqa: F401
from coldvault.planning.content_range import ContentRange  # noqa: F401
from coldvault.planning.slicing import FixedSizeSlicingStrategy  # noqa: F401
from coldvault.planning.slicing import PowerOfTwoSlicingStrategy  # noqa: F401
from coldvault.planning.slicing import calculate_part_size  # noqa: F401


__all__ = [
    "BytesPayload",
    "ColdVaultError",
    "ContentRange",
    "FilePayload",
    "FixedSizeSlicingStrategy",
    "Hashed",
    "PowerOfTwoSlicingStrategy",
    "StreamPayload",
    "TreeHasher",
    "build_tree_hash_from_map",
    "calculate_part_size",
]
