# services/notification_service.py
"""Short-lived toasts per viewer, stored in a Redis sorted set scored by expiry."""
import json
import logging
import time
import uuid
from typing import Any, Dict, List, Optional

from redis.asyncio import Redis

from fitacademy.services.cache_keys import notifications_key

logger = logging.getLogger(__name__)

TYPES = ("success", "error", "info", "warning")
MAX_KEPT = 5


async def push(r: Redis, user_id: str, kind: str, message: str, *, ttl: int = 5,
               now: Optional[float] = None) -> Dict[str, Any]:
    if kind not in TYPES:
        raise ValueError(f"Unknown notification type: {kind}")
    now = time.time() if now is None else now
    item = {
        "id": uuid.uuid4().hex,
        "type": kind,
        "message": message,
        "timestamp": now,
    }
    key = notifications_key(user_id)
    async with r.pipeline(transaction=True) as pipe:
        pipe.zadd(key, {json.dumps(item, ensure_ascii=False): now + ttl})
        # newest first, keep the latest MAX_KEPT
        pipe.zremrangebyrank(key, 0, -(MAX_KEPT + 1))
        pipe.expire(key, ttl + 1)
        await pipe.execute()
    logger.debug(f"Notification for {user_id}: [{kind}] {message}")
    return item


async def list_active(r: Redis, user_id: str, *, now: Optional[float] = None) -> List[Dict[str, Any]]:
    now = time.time() if now is None else now
    key = notifications_key(user_id)
    await r.zremrangebyscore(key, "-inf", now)
    raw = await r.zrevrange(key, 0, MAX_KEPT - 1)
    items = []
    for entry in raw:
        try:
            items.append(json.loads(entry))
        except json.JSONDecodeError:
            await r.zrem(key, entry)
    return items
