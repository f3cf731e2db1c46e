"""Redis pub/sub relay — fan events out across API processes.

Learn: The EventBus only knows the sockets connected to *this* process.
When several uvicorn workers sit behind a load balancer, an operator's
dashboard may be connected to worker B while the job update lands on
worker A. The relay closes that gap:

1. EventBus.broadcast delivers locally, then relay.publish()
2. Every process runs relay.listen(), which feeds foreign events into
   its own EventBus.deliver()

Redis pub/sub is fire-and-forget, exactly like the local bus: if no one is
listening, the message is lost. Each frame carries the publishing
instance's id so a process never re-delivers its own events.

Channel naming: homedesk:events:{business_id}
"""

import asyncio
import json
import uuid
from typing import Awaitable, Callable, Optional

import redis.asyncio as aioredis
import structlog

from homedesk.events.models import OutboundEvent

logger = structlog.get_logger()

Deliver = Callable[[OutboundEvent], Awaitable[int]]


class RedisRelay:
    """Publishes local broadcasts and replays remote ones."""

    def __init__(
        self,
        redis: aioredis.Redis,
        channel_prefix: str = "homedesk:events",
        instance_id: Optional[str] = None,
        retry_delay: float = 1.0,
        max_retry_delay: float = 30.0,
    ):
        self.redis = redis
        self.channel_prefix = channel_prefix
        self.instance_id = instance_id or uuid.uuid4().hex
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay

    def channel_for(self, event: OutboundEvent) -> str:
        tenant_id = event.tenant_id
        suffix = str(tenant_id) if tenant_id is not None else "global"
        return f"{self.channel_prefix}:{suffix}"

    async def publish(self, event: OutboundEvent) -> None:
        """Publish an event for other processes. Never raises."""
        payload = json.dumps(
            {"origin": self.instance_id, **event.to_wire()},
            default=str,
        )
        try:
            await self.redis.publish(self.channel_for(event), payload)
        except Exception as e:
            logger.warning(
                "realtime.relay_publish_failed",
                type=event.type,
                error=str(e),
            )

    async def listen(self, deliver: Deliver) -> None:
        """Forward events published by other processes to ``deliver``.

        Runs until cancelled (the app lifespan cancels it on shutdown).
        If the Redis connection drops, the failure is logged and the
        subscription is re-established after a backoff that doubles up to
        max_retry_delay. Events published while disconnected are lost.
        """
        pattern = f"{self.channel_prefix}:*"
        delay = self.retry_delay
        while True:
            pubsub = self.redis.pubsub()
            try:
                await pubsub.psubscribe(pattern)
                logger.info("realtime.relay_listening", pattern=pattern)
                async for message in pubsub.listen():
                    if message["type"] != "pmessage":
                        continue
                    delay = self.retry_delay
                    await self.handle_message(message["data"], deliver)
                logger.warning("realtime.relay_stream_ended", pattern=pattern, retry_in=delay)
            except Exception as e:
                logger.warning("realtime.relay_listen_failed", error=str(e), retry_in=delay)
            finally:
                await self._close_pubsub(pubsub, pattern)

            await asyncio.sleep(delay)
            delay = min(delay * 2, self.max_retry_delay)

    async def _close_pubsub(self, pubsub, pattern: str) -> None:
        # The connection may already be gone; cleanup must not mask the cause.
        try:
            await pubsub.punsubscribe(pattern)
        except Exception as e:
            logger.debug("realtime.relay_unsubscribe_failed", error=str(e))
        try:
            await pubsub.aclose()
        except Exception as e:
            logger.debug("realtime.relay_close_failed", error=str(e))

    async def handle_message(self, raw: str | bytes, deliver: Deliver) -> bool:
        """Decode one relayed frame and deliver it unless it is our own echo."""
        try:
            data = json.loads(raw)
            if data.get("origin") == self.instance_id:
                return False
            event = OutboundEvent.from_wire(data)
        except (json.JSONDecodeError, KeyError, AttributeError, TypeError) as e:
            logger.warning("realtime.relay_bad_frame", error=str(e))
            return False

        await deliver(event)
        return True
