from __future__ import annotations

import json
import logging
import os
from contextlib import suppress
from datetime import datetime
from typing import Any, AsyncIterator

import redis.asyncio as redis

# purpose: fan lab inventory events out to websocket listeners over redis pub/sub
# status: active

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
_redis = None


async def get_redis():
    global _redis
    if _redis is None:
        if os.getenv("TESTING") == "1":
            from fakeredis import aioredis
            _redis = aioredis.FakeRedis()
        else:
            _redis = redis.from_url(REDIS_URL)
    return _redis


def lab_channel(lab_id: int) -> str:
    return f"lab:{lab_id}"


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _serialize_event(event: dict[str, Any]) -> str:
    return json.dumps(event, default=_json_default)


async def publish_lab_event(lab_id: int, event: dict[str, Any]) -> None:
    """Publish an inventory event for ``lab_id``; delivery problems are only logged."""

    try:
        r = await get_redis()
        await r.publish(lab_channel(lab_id), _serialize_event(event))
    except Exception:
        logger.exception("Failed to publish %s for lab %s", event.get("type"), lab_id)


async def iter_lab_events(lab_id: int) -> AsyncIterator[str]:
    r = await get_redis()
    channel = lab_channel(lab_id)
    pubsub = r.pubsub()
    await pubsub.subscribe(channel)
    try:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            data = message.get("data")
            if isinstance(data, bytes):
                yield data.decode()
            else:
                yield str(data)
    finally:
        with suppress(Exception):
            await pubsub.unsubscribe(channel)
        with suppress(AttributeError):
            await pubsub.close()
