import dataclasses

import dotenv

from coldvault.utils import env
from coldvault.utils import env_bool


dotenv.load_dotenv()


SLICING_STRATEGIES = ("power_of_two", "fixed")


@dataclasses.dataclass
class Config:
    """Client configuration settings."""

    # Logging
    log_level: str = env("COLDVAULT_LOG_LEVEL:INFO")
    loki_url: str = env("LOKI_URL:", convert=str)
    loki_enabled: bool = env("LOKI_ENABLED:false", convert=env_bool)
    environment: str = env("ENVIRONMENT:development")

    # Slicing
    # power_of_two sizes parts from the archive length, fixed always uses fixed_part_size_mb
    slicing_strategy: str = env("COLDVAULT_SLICING_STRATEGY:power_of_two")
    # (part size / number of parts) ratio
    slicing_ratio: float = env("COLDVAULT_SLICING_RATIO:0.32", convert=float)
    max_part_size_mb: int = env("COLDVAULT_MAX_PART_SIZE_MB:4096", convert=int)
    fixed_part_size_mb: int = env("COLDVAULT_FIXED_PART_SIZE_MB:64", convert=int)

    # Single-request archive upload limit
    max_archive_size_bytes: int = env("COLDVAULT_MAX_ARCHIVE_SIZE_BYTES:4294967296", convert=int)  # 4 GiB

    # Hashing
    hash_max_concurrency: int = env("COLDVAULT_HASH_MAX_CONCURRENCY:4", convert=int)
    hash_timing_threshold_ms: float = env("COLDVAULT_HASH_TIMING_THRESHOLD_MS:100", convert=float)


def get_config() -> Config:
    """Get client configuration."""
    cfg = Config()

    strategy = (cfg.slicing_strategy or "").strip().strip("\"'").lower()
    if strategy not in SLICING_STRATEGIES:
        raise ValueError(
            f"COLDVAULT_SLICING_STRATEGY must be one of {SLICING_STRATEGIES}, got {cfg.slicing_strategy!r}"
        )
    object.__setattr__(cfg, "slicing_strategy", strategy)

    if cfg.slicing_ratio <= 0:
        raise ValueError(f"COLDVAULT_SLICING_RATIO must be positive, got {cfg.slicing_ratio}")

    if cfg.hash_max_concurrency < 1:
        object.__setattr__(cfg, "hash_max_concurrency", 1)

    return cfg
