"""Utility modules and functions for coldvault.

Combines the environment helpers from utils_core.py with the timing utilities.
"""

from coldvault.utils.timing import async_timing_context  # noqa: F401
from coldvault.utils.timing import timing_context  # noqa: F401
from coldvault.utils_core import env  # noqa: F401
from coldvault.utils_core import env_bool  # noqa: F401
from coldvault.utils_core import is_power_of_two  # noqa: F401


__all__ = [
    # From utils_core.py
    "env",
    "env_bool",
    "is_power_of_two",
    # From timing.py
    "async_timing_context",
    "timing_context",
]
