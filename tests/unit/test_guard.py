"""
Unit tests for src/guard.py

Tests deadline enforcement and quarantine on timeout or access denial.
"""

import asyncio

import pytest

from src.errors import AccessDenied, TimedOut, UpstreamError
from src.guard import TimeoutGuard


class TestTimeoutGuard:
    """Tests for TimeoutGuard.run()."""

    @pytest.mark.asyncio
    async def test_returns_result_within_deadline(self, pool):
        guard = TimeoutGuard(pool, timeout=1.0)

        async def fast():
            return 42

        assert await guard.run(fast(), "search") == 42

    @pytest.mark.asyncio
    async def test_timeout_quarantines_identity(self, pool):
        guard = TimeoutGuard(pool, timeout=0.01)
        handle = await pool.acquire()

        with pytest.raises(TimedOut) as exc_info:
            await guard.run(asyncio.sleep(1), "search", handle)

        assert exc_info.value.operation == "search"
        assert str(exc_info.value) == "Operation search timed out"
        assert await pool.is_quarantined(handle.identity.name)
        assert handle.identity.name not in pool.available
        assert handle.identity.name not in pool.busy

    @pytest.mark.asyncio
    async def test_timeout_without_handle(self, pool):
        guard = TimeoutGuard(pool, timeout=0.01)

        with pytest.raises(TimedOut):
            await guard.run(asyncio.sleep(1), "get tweet")

        assert pool.stats()["quarantined"] == 0

    @pytest.mark.asyncio
    async def test_access_denied_quarantines_identity(self, pool):
        guard = TimeoutGuard(pool, timeout=1.0)
        handle = await pool.acquire()

        async def denied():
            raise AccessDenied("search", "Denied by access control")

        with pytest.raises(AccessDenied):
            await guard.run(denied(), "search", handle)

        assert await pool.is_quarantined(handle.identity.name)

    @pytest.mark.asyncio
    async def test_other_errors_leave_pool_untouched(self, pool):
        guard = TimeoutGuard(pool, timeout=1.0)
        handle = await pool.acquire()

        async def broken():
            raise UpstreamError("search", ValueError("bad payload"))

        with pytest.raises(UpstreamError):
            await guard.run(broken(), "search", handle)

        assert not await pool.is_quarantined(handle.identity.name)
        assert handle.identity.name in pool.busy
