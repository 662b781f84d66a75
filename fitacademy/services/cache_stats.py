# services/cache_stats.py
from typing import Dict, Any
from redis.asyncio import Redis

HITS_HASH = "cache_stats:hits"
MISSES_HASH = "cache_stats:misses"

async def hit(r: Redis, namespace: str) -> None:
    await r.hincrby(HITS_HASH, namespace, 1)

async def miss(r: Redis, namespace: str) -> None:
    await r.hincrby(MISSES_HASH, namespace, 1)

async def get_stats(r: Redis) -> Dict[str, Any]:
    hits = {k: int(v) for k, v in (await r.hgetall(HITS_HASH) or {}).items()}
    misses = {k: int(v) for k, v in (await r.hgetall(MISSES_HASH) or {}).items()}
    total_hits, total_misses = sum(hits.values()), sum(misses.values())
    return {
        "hits": hits,
        "misses": misses,
        "totals": {
            "hits": total_hits,
            "misses": total_misses,
            "hit_ratio": round(total_hits / max(1, total_hits + total_misses) * 100, 2),
        },
    }
