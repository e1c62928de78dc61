import logging

import pytest

from coldvault.upload_context import part_context
from coldvault.utils import async_timing_context
from coldvault.utils import timing_context


def test_timing_context_logs(caplog):
    with caplog.at_level(logging.INFO, logger="coldvault.utils.timing"):
        with timing_context("tree_hash", extra={"length": 42}) as ctx:
            pass
    assert "duration_ms" in ctx
    assert "TIMING tree_hash" in caplog.text
    assert "length=42" in caplog.text


def test_timing_context_threshold_suppresses_log(caplog):
    with caplog.at_level(logging.INFO, logger="coldvault.utils.timing"):
        with timing_context("tree_hash", log_threshold_ms=float("inf")):
            pass
    assert "TIMING" not in caplog.text


@pytest.mark.asyncio
async def test_async_timing_context_logs_on_error(caplog):
    with caplog.at_level(logging.INFO, logger="coldvault.utils.timing"):
        with pytest.raises(RuntimeError):
            async with async_timing_context("hash_slices", extra={"parts": 3}):
                raise RuntimeError("boom")
    assert "TIMING hash_slices" in caplog.text
    assert "parts=3" in caplog.text


def test_timing_context_reports_throughput_and_part(caplog):
    with caplog.at_level(logging.INFO, logger="coldvault.utils.timing"):
        with part_context(4):
            with timing_context("tree_hash", extra={"length": 1024 * 1024}):
                pass
    assert "mib_per_s=" in caplog.text
    assert "part=4" in caplog.text


def test_timing_context_without_length_has_no_throughput(caplog):
    with caplog.at_level(logging.INFO, logger="coldvault.utils.timing"):
        with timing_context("tree_hash", extra={"length": None}):
            pass
    assert "mib_per_s" not in caplog.text
    assert "part=" not in caplog.text
