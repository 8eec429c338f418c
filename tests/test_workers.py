"""Tests for background archival and event publishing."""
import os
import pytest
from unittest.mock import patch, MagicMock, AsyncMock
from uuid import uuid4

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-jwt-tokens-minimum-64-chars-long-1234567890abcdef")

from app.events.publisher import channel_for, publish_event
from app.workers.artifact_archiver import (
    TASK_NAME,
    archive_approved_change_order,
    enqueue_archival,
)
from app.workers.celery_app import celery_app


class TestArchiver:
    def test_task_is_registered_under_its_name(self):
        assert archive_approved_change_order.name == TASK_NAME

    def test_celery_uses_json(self):
        assert celery_app.conf.task_serializer == "json"

    def test_archives_via_persist(self):
        co_id = str(uuid4())
        persist = AsyncMock(return_value=f"project/{co_id}.pdf")
        with patch("app.workers.artifact_archiver.persist_approved_artifact", persist):
            path = archive_approved_change_order(co_id)
        assert path == f"project/{co_id}.pdf"
        persist.assert_awaited_once_with(co_id)

    def test_failure_is_raised_for_retry(self):
        persist = AsyncMock(side_effect=RuntimeError("storage down"))
        with patch("app.workers.artifact_archiver.persist_approved_artifact", persist):
            with pytest.raises(RuntimeError):
                archive_approved_change_order(str(uuid4()))

    def test_enqueue(self):
        co_id = uuid4()
        with patch("app.workers.artifact_archiver.archive_approved_change_order") as task:
            assert enqueue_archival(co_id) is True
        task.delay.assert_called_once_with(str(co_id))

    def test_enqueue_failure_is_not_raised(self):
        with patch("app.workers.artifact_archiver.archive_approved_change_order") as task:
            task.delay.side_effect = ConnectionError("broker down")
            assert enqueue_archival(uuid4()) is False


class TestPublisher:
    def test_channel_is_per_company(self):
        assert channel_for("abc") == "events:abc"

    @pytest.mark.asyncio
    async def test_publishes_to_redis(self):
        redis_client = MagicMock()
        with patch("redis.from_url", return_value=redis_client):
            published = await publish_event("company-1", "change_order.sent", {"co_number": "CO-001"})
        assert published is True
        channel, message = redis_client.publish.call_args.args
        assert channel == "events:company-1"
        assert '"change_order.sent"' in message

    @pytest.mark.asyncio
    async def test_redis_down_is_logged_not_raised(self):
        with patch("redis.from_url", side_effect=ConnectionError("no redis")):
            published = await publish_event(
                "company-2", "change_order.approved", {"co_number": "CO-002"}
            )
        assert published is False
