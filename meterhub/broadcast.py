"""
Redis broadcast sink for live snapshot payloads.

Publishes JSON payloads on Redis pub/sub channels named
``{prefix}:{topic}`` and caches the latest payload per topic under
``latest:{topic}`` with a TTL, so a subscriber that connects between cycles
can read the current state immediately.

Publishing is best-effort: connection or command failures are logged but do
not propagate, since nothing is surfaced through the broadcast channel itself.
Payloads holding NaN or infinity are refused rather than sent as invalid JSON.

CHANGELOG:
- 2026-10-19: Refuse non-finite floats in payloads
- 2026-10-12: Cache the latest payload per topic
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as redis

logger = logging.getLogger(__name__)

DEVICE_DATA_TOPIC = "device-data-update"
CONSUMPTION_TODAY_TOPIC = "consumption-today-update"


class RedisBroadcaster:
    """Publishes topic payloads through Redis.

    Args:
        client: Async Redis client.
        channel_prefix: Prefix of the pub/sub channel name.
        cache_ttl_s: TTL of the ``latest:{topic}`` cache key.
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        channel_prefix: str = "notifications",
        cache_ttl_s: int = 30,
    ) -> None:
        self._client = client
        self._channel_prefix = channel_prefix
        self._cache_ttl_s = cache_ttl_s

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> RedisBroadcaster:
        """Create a broadcaster with a client built from a Redis URL."""
        return cls(redis.from_url(url), **kwargs)

    def channel_for(self, topic: str) -> str:
        """Return the pub/sub channel name for *topic*."""
        return f"{self._channel_prefix}:{topic}"

    async def publish(self, topic: str, payload: Any) -> bool:
        """Publish *payload* as JSON on the topic channel.

        Args:
            topic: Broadcast topic, e.g. :data:`DEVICE_DATA_TOPIC`.
            payload: JSON-serialisable payload.

        Returns:
            bool: True when the publish succeeded.
        """
        try:
            message = json.dumps(payload, ensure_ascii=False, allow_nan=False)
        except ValueError:
            logger.error(
                "Topic %s payload is not valid JSON, not published", topic, exc_info=True
            )
            return False
        try:
            receivers = await self._client.publish(self.channel_for(topic), message)
            await self._client.set(f"latest:{topic}", message, ex=self._cache_ttl_s)
        except Exception:
            logger.warning("Broadcast of topic %s failed", topic, exc_info=True)
            return False
        logger.debug("Published %s to %s subscriber(s)", topic, receivers)
        return True

    async def aclose(self) -> None:
        """Close the underlying Redis client."""
        await self._client.aclose()
