"""Cache invalidation signals.

Writers call ``invalidate(tag)`` after changing data that readers may hold
a cached view of (e.g. ``research:{id}`` after clustering finishes).
Tags go to in-process subscribers and, when Redis is configured, are
published on a Redis channel for other processes.

Invalidation is best effort: a failing subscriber or publish is logged
and does not stop the others.
"""

from collections.abc import Awaitable, Callable

from keyword_intel.core.errors import StoreError
from keyword_intel.core.logging import get_logger
from keyword_intel.core.redis import RedisManager

logger = get_logger(__name__)

DEFAULT_CHANNEL = "kwi:invalidate"

InvalidationHandler = Callable[[str], Awaitable[None]]


class InvalidationNotifier:
    """Fans invalidation tags out to subscribers and a Redis channel."""

    def __init__(
        self,
        redis: RedisManager | None = None,
        channel: str = DEFAULT_CHANNEL,
    ) -> None:
        self._redis = redis
        self._channel = channel
        self._handlers: list[InvalidationHandler] = []

    def subscribe(self, handler: InvalidationHandler) -> None:
        """Register an async handler called with every tag."""
        self._handlers.append(handler)

    def unsubscribe(self, handler: InvalidationHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def invalidate(self, tag: str) -> bool:
        """Signal that data behind ``tag`` changed.

        Returns:
            True if every subscriber and the publish succeeded.
        """
        ok = True

        for handler in list(self._handlers):
            try:
                await handler(tag)
            except Exception as e:
                ok = False
                logger.error(
                    "Invalidation handler failed",
                    extra={
                        "tag": tag,
                        "handler": getattr(handler, "__qualname__", repr(handler)),
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                    },
                    exc_info=True,
                )

        if self._redis is not None and self._redis.available:
            try:
                receivers = await self._redis.publish(self._channel, tag)
                logger.debug(
                    "Invalidation published",
                    extra={"tag": tag, "channel": self._channel, "receivers": receivers},
                )
            except StoreError as e:
                ok = False
                logger.warning(
                    "Invalidation publish failed",
                    extra={"tag": tag, "channel": self._channel, "error_message": e.message},
                )

        logger.info(
            "Cache invalidated",
            extra={"tag": tag, "handler_count": len(self._handlers), "success": ok},
        )
        return ok
