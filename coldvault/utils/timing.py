"""Timing instrumentation for hashing and slicing passes.

Lines look like ``TIMING tree_hash duration_ms=3.10 length=1048576 mib_per_s=322.58 part=2``.
Throughput is added when the extra fields carry a byte ``length``; the part
number is taken from the current part context.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from contextlib import contextmanager
from typing import Any
from typing import AsyncGenerator
from typing import Generator

from coldvault.upload_context import part_number_context


logger = logging.getLogger(__name__)

_MIB = 1024 * 1024


def _format_fields(fields: dict[str, Any]) -> str:
    return " ".join(f"{k}={v}" for k, v in fields.items())


def _finish(operation: str, ctx: dict[str, Any], log_threshold_ms: float, extra: dict[str, Any] | None) -> None:
    duration_ms = (time.perf_counter() - ctx["start"]) * 1000.0
    ctx["duration_ms"] = duration_ms
    if duration_ms < log_threshold_ms:
        return

    fields = dict(extra or {})
    length = fields.get("length")
    if isinstance(length, int) and duration_ms > 0:
        fields["mib_per_s"] = f"{length / _MIB / (duration_ms / 1000.0):.2f}"
    part_number = part_number_context.get()
    if part_number is not None:
        fields.setdefault("part", part_number)

    logger.info(f"TIMING {operation} duration_ms={duration_ms:.2f} {_format_fields(fields)}".strip())


@contextmanager
def timing_context(
    operation: str, *, log_threshold_ms: float = 0.0, extra: dict[str, Any] | None = None
) -> Generator[dict[str, Any], None, None]:
    """Time a synchronous block and log it once it finishes.

    Args:
        operation: Name of the operation being timed
        log_threshold_ms: Only log if duration reaches this threshold (ms). 0 = always log.
        extra: Additional fields for the log line; a ``length`` in bytes adds throughput

    Yields:
        Timing dict with 'start' field, will have 'duration_ms' on exit
    """
    ctx: dict[str, Any] = {"start": time.perf_counter()}
    try:
        yield ctx
    finally:
        _finish(operation, ctx, log_threshold_ms, extra)


@asynccontextmanager
async def async_timing_context(
    operation: str, *, log_threshold_ms: float = 0.0, extra: dict[str, Any] | None = None
) -> AsyncGenerator[dict[str, Any], None]:
    """Async counterpart of timing_context, used around concurrent part hashing."""
    ctx: dict[str, Any] = {"start": time.perf_counter()}
    try:
        yield ctx
    finally:
        _finish(operation, ctx, log_threshold_ms, extra)
