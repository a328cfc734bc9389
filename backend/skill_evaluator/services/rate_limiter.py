"""Per-user, per-operation throttle for the generative evaluator routes.

Each (user, operation) pair owns a token bucket in Redis holding up to
``RATE_LIMIT_GENERATION_BURST`` tokens that refill at
``RATE_LIMIT_GENERATION_RPM / 60`` per second. Redis supplies the clock,
so every API replica agrees on refill timing. The bucket key expires once
it would have refilled completely.

The limiter is off when the RPM setting is 0 or below, and it lets calls
through whenever Redis is unreachable.
"""

import logging
from functools import lru_cache

import redis
from redis.commands.core import Script

from skill_evaluator.config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "rl:eval"

# KEYS[1] bucket, ARGV[1] burst, ARGV[2] tokens per millisecond.
# Returns the remaining whole tokens after this call, or -1 when rejected.
_BUCKET_LUA = """
local burst = tonumber(ARGV[1])
local per_ms = tonumber(ARGV[2])
local clock = redis.call('TIME')
local now_ms = clock[1] * 1000 + math.floor(clock[2] / 1000)

local state = redis.call('HMGET', KEYS[1], 'tokens', 'at')
local tokens = tonumber(state[1]) or burst
local at = tonumber(state[2]) or now_ms
tokens = math.min(burst, tokens + math.max(0, now_ms - at) * per_ms)

local remaining = -1
if tokens >= 1 then
    tokens = tokens - 1
    remaining = math.floor(tokens)
end

redis.call('HSET', KEYS[1], 'tokens', tostring(tokens), 'at', now_ms)
redis.call('PEXPIRE', KEYS[1], math.ceil((burst - tokens) / per_ms) + 1000)
return remaining
"""


@lru_cache
def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(settings.REDIS_URL, decode_responses=True, max_connections=10)


@lru_cache
def _bucket_script() -> Script:
    return _get_redis().register_script(_BUCKET_LUA)


def bucket_key(user_id: object, operation: str) -> str:
    return f"{KEY_PREFIX}:{operation}:{user_id}"


def allow(user_id: object, operation: str) -> bool:
    """Take one token from the caller's bucket for ``operation``."""
    rpm = settings.RATE_LIMIT_GENERATION_RPM
    if rpm <= 0:
        return True

    key = bucket_key(user_id, operation)
    per_ms = rpm / 60_000.0
    try:
        remaining = _bucket_script()(keys=[key], args=[settings.RATE_LIMIT_GENERATION_BURST, per_ms])
    except redis.RedisError as e:
        logger.warning("Rate limiter unavailable, allowing %s: %s", key, e)
        return True

    if int(remaining) < 0:
        logger.info("Rate-limited %s", key)
        return False
    return True
