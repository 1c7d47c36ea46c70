"""Store change feed over Redis Pub/Sub: publish side + listener task."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

import redis.asyncio as aioredis

from dm_service.application.dto.query import Change
from dm_service.infrastructure.bus.serializer import (
    change_from_payload,
    deserialize_event,
    serialize_event,
)

logger = logging.getLogger(__name__)

CHANGE_EVENT = "store.changed"
RETRY_DELAY_SECONDS = 5


class RedisPubSubPublisher:
    """Implements application.ports.bus.EventPublisher."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def publish(
        self, channel: str, payload: dict[str, Any], event_type: str = CHANGE_EVENT,
    ) -> None:
        raw = serialize_event(event_type, payload)
        await self._redis.publish(channel, raw)


OnChangeCallback = Callable[[Change, str], None]
OnResyncCallback = Callable[[], None]


class RedisChangeSubscriber:
    """Listens to the change channel and hands every change to the store.

    The listener reconnects after failures. Changes published while it was
    disconnected are lost, so every (re)connect triggers ``on_resync`` and the
    store re-runs all of its live queries.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str,
        on_change: OnChangeCallback,
        on_resync: OnResyncCallback,
    ) -> None:
        self._redis = redis
        self._channel = channel
        self._on_change = on_change
        self._on_resync = on_resync
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name="redis-change-subscriber")
        logger.info("Change feed subscriber started on channel=%s", self._channel)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            logger.info("Change feed subscriber stopped")

    async def _run(self) -> None:
        first = True
        while True:
            try:
                await self._listen(resync=not first)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Change feed error, retrying in %ss", RETRY_DELAY_SECONDS)
                await asyncio.sleep(RETRY_DELAY_SECONDS)
            first = False

    async def _listen(self, *, resync: bool) -> None:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self._channel)
        try:
            if resync:
                self._on_resync()
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    event_type, data = deserialize_event(message["data"])
                    if event_type != CHANGE_EVENT:
                        continue
                    change, origin = change_from_payload(data)
                    self._on_change(change, origin)
                except Exception:
                    logger.exception("Error processing change event")
        finally:
            await pubsub.unsubscribe(self._channel)
            await pubsub.aclose()
