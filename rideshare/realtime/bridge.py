"""
Redis pub/sub bridge for multi-instance fan-out.

Each instance publishes room broadcasts to ``rideshare:room:<ride_id>`` and
listens on the pattern, delivering whatever arrives to its own local room.
A single instance does not need this.
"""

from __future__ import annotations

import asyncio
import json
import logging

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "rideshare:room:"


class RedisRoomBridge:
    def __init__(self, client: aioredis.Redis):
        self.redis = client
        self._pubsub = None
        self._task: asyncio.Task | None = None

    async def publish(self, ride_id: str, event: dict) -> None:
        await self.redis.publish(f"{CHANNEL_PREFIX}{ride_id}", json.dumps(event))

    async def start(self, hub) -> None:
        self._pubsub = self.redis.pubsub()
        await self._pubsub.psubscribe(f"{CHANNEL_PREFIX}*")
        self._task = asyncio.create_task(self._listen(hub))
        logger.info("Realtime Redis bridge started")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        if self._pubsub is not None:
            await self._pubsub.punsubscribe()
            await self._pubsub.aclose()
        logger.info("Realtime Redis bridge stopped")

    async def _listen(self, hub) -> None:
        async for message in self._pubsub.listen():
            await self.dispatch(hub, message)

    async def dispatch(self, hub, message: dict) -> None:
        """Deliver one pub/sub message to the local room it addresses."""
        if message.get("type") != "pmessage":
            return
        channel = message["channel"]
        if isinstance(channel, bytes):
            channel = channel.decode()
        ride_id = channel[len(CHANNEL_PREFIX):]
        try:
            event = json.loads(message["data"])
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed bridge message on %s", channel)
            return
        await hub.deliver_local(ride_id, event)
