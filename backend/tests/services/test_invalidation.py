"""Tests for InvalidationNotifier."""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from keyword_intel.core.redis import RedisManager
from keyword_intel.services.invalidation import DEFAULT_CHANNEL, InvalidationNotifier

from tests.conftest import MockRedis


class Recorder:
    def __init__(self) -> None:
        self.tags: list[str] = []

    async def __call__(self, tag: str) -> None:
        self.tags.append(tag)


async def failing_handler(tag: str) -> None:
    raise RuntimeError(f"cannot drop {tag}")


class TestInvalidationNotifier:
    """Tests for subscriber fan-out and Redis publishing."""

    @pytest.mark.asyncio
    async def test_subscribers_receive_tag(self) -> None:
        """Test every subscriber is called with the tag."""
        notifier = InvalidationNotifier()
        first, second = Recorder(), Recorder()
        notifier.subscribe(first)
        notifier.subscribe(second)

        assert await notifier.invalidate("research:1") is True
        assert first.tags == ["research:1"]
        assert second.tags == ["research:1"]

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_stop_others(self) -> None:
        """Test one handler raising still reaches the rest."""
        notifier = InvalidationNotifier()
        recorder = Recorder()
        notifier.subscribe(failing_handler)
        notifier.subscribe(recorder)

        assert await notifier.invalidate("research:1") is False
        assert recorder.tags == ["research:1"]

    @pytest.mark.asyncio
    async def test_unsubscribe(self) -> None:
        """Test removed handlers are no longer called."""
        notifier = InvalidationNotifier()
        recorder = Recorder()
        notifier.subscribe(recorder)
        notifier.unsubscribe(recorder)
        notifier.unsubscribe(recorder)

        await notifier.invalidate("research:1")

        assert recorder.tags == []

    @pytest.mark.asyncio
    async def test_publishes_to_redis(
        self, mock_redis: MockRedis, mock_redis_manager: RedisManager
    ) -> None:
        """Test tags are published on the configured channel."""
        notifier = InvalidationNotifier(mock_redis_manager)

        assert await notifier.invalidate("research:1") is True
        assert mock_redis.published == [(DEFAULT_CHANNEL, "research:1")]

    @pytest.mark.asyncio
    async def test_publish_failure_reported(
        self, mock_redis: MockRedis, mock_redis_manager: RedisManager
    ) -> None:
        """Test a failed publish is logged and reported, not raised."""
        mock_redis.fail_with = RedisConnectionError("connection refused")
        recorder = Recorder()
        notifier = InvalidationNotifier(mock_redis_manager)
        notifier.subscribe(recorder)

        assert await notifier.invalidate("research:1") is False
        assert recorder.tags == ["research:1"]

    @pytest.mark.asyncio
    async def test_unavailable_redis_skipped(
        self, mock_redis_unavailable: RedisManager
    ) -> None:
        """Test an unconfigured Redis is not an error."""
        notifier = InvalidationNotifier(mock_redis_unavailable)
        assert await notifier.invalidate("research:1") is True
