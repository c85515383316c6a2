"""
Redis publish/subscribe event bus.

Redis pub/sub is fire-and-forget: no acknowledgement, no redelivery, and a
message published while nobody is subscribed is lost. Within one channel and
one subscriber, messages arrive in publish order, and ``subscribe`` yields
them in that order.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import suppress

import redis.asyncio as redis
import structlog
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from workflow_engine.config.settings import RedisSettings
from workflow_engine.exceptions import ConnectivityError

log = structlog.get_logger(__name__)

# Seconds to wait before each resubscribe attempt; the last value repeats.
RESUBSCRIBE_BACKOFF = (0.5, 1.0, 2.0, 4.0, 8.0)


class RedisEventBus:
    """Publish text payloads and subscribe to named channels."""

    def __init__(self, client: redis.Redis, poll_interval: float = 1.0) -> None:
        self._client = client
        self.poll_interval = poll_interval

    @classmethod
    def from_settings(cls, settings: RedisSettings, poll_interval: float = 1.0) -> RedisEventBus:
        client = redis.Redis(
            host=settings.host,
            port=settings.port,
            password=settings.password,
            db=settings.db,
        )
        return cls(client, poll_interval=poll_interval)

    async def connect(self, timeout: float = 5.0) -> None:
        """Verify the server answers ``PING`` within ``timeout`` seconds.

        Raises:
            ConnectivityError: If Redis is unreachable or does not answer in time
        """
        try:
            await asyncio.wait_for(self._client.ping(), timeout=timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            log.error("redis_connect_failed", error=str(e) or type(e).__name__)
            raise ConnectivityError(f"Failed to connect to Redis: {e or type(e).__name__}", service="redis") from e
        log.info("redis_connected")

    async def publish(self, channel: str, payload: str | bytes) -> int:
        """Publish a payload; returns the number of subscribers that received it."""
        receivers = await self._client.publish(channel, payload)
        log.debug("event_published", channel=channel, receivers=receivers)
        return receivers

    async def subscribe(
        self,
        channel: str,
        stop: asyncio.Event,
        ready: asyncio.Event | None = None,
    ) -> AsyncIterator[bytes | str]:
        """Yield payloads received on ``channel`` until ``stop`` is set.

        Payloads are yielded as delivered by the client, raw bytes unless the
        client decodes responses. Decoding is left to the consumer so invalid
        UTF-8 can be rejected there.

        The stop flag is checked at least every ``poll_interval`` seconds
        while the channel is quiet. ``ready`` is set once the subscription
        is registered with the server, so callers can publish without racing
        the subscribe.

        A receive error after the subscription is up does not end the
        iteration: the subscription is dropped and re-established with
        backoff until it succeeds or ``stop`` is set. Messages published
        while disconnected are lost.
        """
        pubsub: PubSub | None = await self._open_subscription(channel)
        log.info("channel_subscribed", channel=channel)
        if ready is not None:
            ready.set()
        try:
            while not stop.is_set():
                try:
                    message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=self.poll_interval)
                except (RedisError, OSError) as e:
                    log.warning("channel_receive_failed", channel=channel, error=str(e) or type(e).__name__)
                    await self._release(pubsub, channel)
                    pubsub = None
                    pubsub = await self._resubscribe(channel, stop)
                    if pubsub is None:
                        break
                    continue
                if message is None or message.get("type") != "message":
                    continue
                yield message.get("data")
        finally:
            if pubsub is not None:
                await self._release(pubsub, channel)
            log.info("channel_unsubscribed", channel=channel)

    async def _open_subscription(self, channel: str) -> PubSub:
        pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        try:
            await pubsub.subscribe(channel)
        except BaseException:
            with suppress(RedisError, OSError):
                await pubsub.aclose()
            raise
        return pubsub

    async def _resubscribe(self, channel: str, stop: asyncio.Event) -> PubSub | None:
        """Re-establish the subscription, or return None once ``stop`` is set."""
        attempt = 0
        while not stop.is_set():
            delay = RESUBSCRIBE_BACKOFF[min(attempt, len(RESUBSCRIBE_BACKOFF) - 1)]
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop.wait(), timeout=delay)
            if stop.is_set():
                return None
            attempt += 1
            try:
                pubsub = await self._open_subscription(channel)
            except (RedisError, OSError) as e:
                log.warning(
                    "channel_resubscribe_failed",
                    channel=channel,
                    attempt=attempt,
                    error=str(e) or type(e).__name__,
                )
                continue
            log.info("channel_resubscribed", channel=channel, attempts=attempt)
            return pubsub
        return None

    @staticmethod
    async def _release(pubsub: PubSub, channel: str) -> None:
        with suppress(RedisError, OSError):
            await pubsub.unsubscribe(channel)
        with suppress(RedisError, OSError):
            await pubsub.aclose()

    async def close(self) -> None:
        await self._client.aclose()
