"""Unit tests for the job registry."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from backoffice.core.errors import ServiceUnavailableError
from backoffice.core.jobs.registry import (
    ArqPoolHolder,
    close_arq_pool,
    enqueue,
    enqueue_optional,
    init_arq_pool,
    queue_status,
)


@pytest.fixture(autouse=True)
def reset_arq_pool():
    ArqPoolHolder.pool = None
    yield
    ArqPoolHolder.pool = None


class TestPoolLifecycle:
    """Tests for init_arq_pool, close_arq_pool and queue_status."""

    async def test_init_creates_pool_once(self):
        mock_pool = AsyncMock()

        with patch(
            "backoffice.core.jobs.registry.create_pool", new_callable=AsyncMock
        ) as mock_create:
            mock_create.return_value = mock_pool

            assert await init_arq_pool() is mock_pool
            assert await init_arq_pool() is mock_pool
            mock_create.assert_awaited_once()

        assert queue_status() == "ok"

    async def test_close_clears_pool(self):
        mock_pool = AsyncMock()
        ArqPoolHolder.pool = mock_pool

        await close_arq_pool()

        mock_pool.close.assert_awaited_once()
        assert queue_status() == "unavailable"

    async def test_close_without_pool_is_noop(self):
        await close_arq_pool()

        assert ArqPoolHolder.pool is None


class TestEnqueue:
    """Tests for enqueue and enqueue_optional."""

    async def test_enqueue_passes_options_through(self):
        mock_pool = AsyncMock()
        ArqPoolHolder.pool = mock_pool

        result = await enqueue(
            "export_activities",
            filters={},
            _defer_by=timedelta(minutes=5),
            _job_id="export-1",
        )

        assert result is mock_pool.enqueue_job.return_value
        mock_pool.enqueue_job.assert_awaited_once_with(
            "export_activities",
            _defer_by=timedelta(minutes=5),
            _job_id="export-1",
            filters={},
        )

    async def test_enqueue_without_pool_is_unavailable(self):
        with pytest.raises(ServiceUnavailableError) as exc_info:
            await enqueue("export_activities")

        assert exc_info.value.error_code == "job_queue_unavailable"
        assert exc_info.value.status_code == 503

    async def test_enqueue_redis_failure_is_unavailable(self):
        mock_pool = AsyncMock()
        mock_pool.enqueue_job.side_effect = RedisConnectionError("down")
        ArqPoolHolder.pool = mock_pool

        with pytest.raises(ServiceUnavailableError):
            await enqueue("export_activities")

    async def test_optional_job_skipped_without_pool(self):
        assert await enqueue_optional("deliver_webhook", "http://hook", {}) is None

    async def test_optional_job_skipped_on_redis_error(self):
        mock_pool = AsyncMock()
        mock_pool.enqueue_job.side_effect = RedisConnectionError("down")
        ArqPoolHolder.pool = mock_pool

        assert await enqueue_optional("deliver_webhook", "http://hook", {}) is None
