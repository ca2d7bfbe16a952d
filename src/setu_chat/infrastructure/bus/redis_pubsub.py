"""Redis Pub/Sub: publisher, per-topic event bus and the server fan-out subscriber."""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable, Coroutine

import redis.asyncio as aioredis

from setu_chat.application.ports.bus import BroadcastHandler, ChangeHandler
from setu_chat.config import settings
from setu_chat.domain.value_objects.ids import messages_topic
from setu_chat.infrastructure.bus.serializer import (
    change_from_frame,
    deserialize_event,
    serialize_event,
)

logger = logging.getLogger(__name__)


def channel_name(topic: str, prefix: str | None = None) -> str:
    return f"{prefix or settings.REDIS_CHANNEL_PREFIX}:{topic}"


def topic_of(channel: str | bytes, prefix: str | None = None) -> str:
    if isinstance(channel, bytes):
        channel = channel.decode()
    return channel.removeprefix(f"{prefix or settings.REDIS_CHANNEL_PREFIX}:")


class RedisPubSubPublisher:
    """Implements application.ports.bus.EventPublisher."""

    def __init__(self, redis: aioredis.Redis, *, prefix: str | None = None) -> None:
        self._redis = redis
        self._prefix = prefix

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        data = {k: v for k, v in payload.items() if k != "event_type"}
        raw = serialize_event(payload.get("event_type", "unknown"), data)
        await self._redis.publish(channel_name(channel, self._prefix), raw)

    async def publish_broadcast(
        self,
        topic: str,
        event: str,
        payload: dict[str, Any],
        *,
        origin: str | None = None,
    ) -> None:
        raw = serialize_event(event, payload, origin=origin)
        await self._redis.publish(channel_name(topic, self._prefix), raw)


FrameCallback = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]


class RedisTopicSubscription:
    """One pubsub connection and listener task for one topic."""

    def __init__(
        self,
        redis: aioredis.Redis,
        topic: str,
        callback: FrameCallback,
        *,
        origin: str | None = None,
        prefix: str | None = None,
    ) -> None:
        self.topic = topic
        self._redis = redis
        self._channel = channel_name(topic, prefix)
        self._callback = callback
        self._origin = origin
        self._pubsub: Any = None
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._pubsub = self._redis.pubsub()
        await self._pubsub.subscribe(self._channel)
        self._task = asyncio.create_task(self._listen(), name=f"redis-sub:{self.topic}")
        logger.debug("Subscribed to %s", self._channel)

    async def _listen(self) -> None:
        async for message in self._pubsub.listen():
            if message["type"] != "message":
                continue
            try:
                event_type, data, origin = deserialize_event(message["data"])
                if self._origin is not None and origin == self._origin:
                    continue
                await self._callback(event_type, data)
            except Exception:
                logger.exception("Error processing frame on %s", self._channel)

    async def close(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._pubsub is not None:
            await self._pubsub.unsubscribe(self._channel)
            await self._pubsub.aclose()
            self._pubsub = None
            logger.debug("Unsubscribed from %s", self._channel)


class RedisBroadcastChannel(RedisTopicSubscription):
    async def send(self, event: str, payload: dict[str, Any]) -> None:
        raw = serialize_event(str(event), payload, origin=self._origin)
        await self._redis.publish(self._channel, raw)


class RedisEventBus:
    """Implements application.ports.bus.EventBus over Redis Pub/Sub."""

    def __init__(self, redis: aioredis.Redis, *, prefix: str | None = None) -> None:
        self._redis = redis
        self._prefix = prefix

    async def subscribe_changes(
        self, conversation_id: str, handler: ChangeHandler,
    ) -> RedisTopicSubscription:
        async def _on_frame(event_type: str, data: dict[str, Any]) -> None:
            await handler(change_from_frame(event_type, data))

        subscription = RedisTopicSubscription(
            self._redis, messages_topic(conversation_id), _on_frame, prefix=self._prefix,
        )
        await subscription.start()
        return subscription

    async def open_broadcast(
        self, topic: str, handler: BroadcastHandler,
    ) -> RedisBroadcastChannel:
        channel = RedisBroadcastChannel(
            self._redis, topic, handler, origin=uuid.uuid4().hex, prefix=self._prefix,
        )
        await channel.start()
        return channel


OnFrameCallback = Callable[[str, str, dict[str, Any], str | None], Coroutine[Any, Any, None]]


class RedisPubSubSubscriber:
    """Background task relaying every topic under the prefix to a callback."""

    def __init__(
        self,
        redis: aioredis.Redis,
        callback: OnFrameCallback,
        *,
        prefix: str | None = None,
    ) -> None:
        self._redis = redis
        self._prefix = prefix
        self._pattern = channel_name("*", prefix)
        self._callback = callback
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        self._task = asyncio.create_task(self._listen(), name="redis-pubsub-subscriber")
        logger.info("Redis Pub/Sub subscriber started on pattern=%s", self._pattern)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            logger.info("Redis Pub/Sub subscriber stopped")

    async def _listen(self) -> None:
        pubsub = self._redis.pubsub()
        await pubsub.psubscribe(self._pattern)
        try:
            async for message in pubsub.listen():
                if message["type"] != "pmessage":
                    continue
                try:
                    event_type, data, origin = deserialize_event(message["data"])
                    topic = topic_of(message["channel"], self._prefix)
                    await self._callback(topic, event_type, data, origin)
                except Exception:
                    logger.exception("Error processing pubsub message")
        finally:
            await pubsub.punsubscribe(self._pattern)
            await pubsub.aclose()
