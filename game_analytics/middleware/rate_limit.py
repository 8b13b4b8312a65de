from fastapi import Request, status
from fastapi.responses import JSONResponse
import time
import redis
import structlog
from game_analytics.core.config import settings

logger = structlog.get_logger()

UNLIMITED_PATHS = {"/api/health"}


class RedisTokenBucket:
    """Redis-backed request limiter with an in-process fallback"""

    def __init__(self, rate: int, period: int, redis_url: str):
        """
        Args:
            rate: Number of requests allowed
            period: Time period in seconds
            redis_url: Redis instance shared by every API worker
        """
        self.rate = rate
        self.period = period
        self.buckets = {}
        try:
            self.redis_client = redis.from_url(redis_url, decode_responses=False)
            self.redis_client.ping()
            self.use_redis = True
            logger.info("rate_limiter_using_redis")
        except redis.RedisError as e:
            logger.warning("rate_limiter_redis_failed_using_memory", error=str(e))
            self.redis_client = None
            self.use_redis = False

    def is_allowed(self, key: str) -> bool:
        """
        Check if request is allowed for given key

        Args:
            key: Identifier (client IP address)

        Returns:
            True if allowed, False if rate limit exceeded
        """
        if self.use_redis:
            return self._is_allowed_redis(key)
        else:
            return self._is_allowed_memory(key)

    def _is_allowed_redis(self, key: str) -> bool:
        """Sliding window over a sorted set of request timestamps"""
        redis_key = f"rate_limit:{key}"
        now = time.time()
        window_start = now - self.period

        pipe = self.redis_client.pipeline()
        pipe.zremrangebyscore(redis_key, 0, window_start)
        pipe.zcard(redis_key)
        pipe.zadd(redis_key, {str(now): now})
        pipe.expire(redis_key, self.period)
        results = pipe.execute()

        # results[1] is the count before adding current request
        return results[1] < self.rate

    def _is_allowed_memory(self, key: str) -> bool:
        """Fallback: in-memory token bucket"""
        now = time.time()
        bucket = self.buckets.setdefault(key, {"tokens": self.rate, "last_update": now})

        # Refill tokens based on time passed
        refill_amount = ((now - bucket["last_update"]) / self.period) * self.rate
        bucket["last_update"] = now
        bucket["tokens"] = min(self.rate, bucket["tokens"] + refill_amount)

        if bucket["tokens"] >= 1:
            bucket["tokens"] -= 1
            return True

        return False

    def get_remaining(self, key: str) -> int:
        """Get remaining requests for a key"""
        if self.use_redis:
            redis_key = f"rate_limit:{key}"
            now = time.time()
            count = self.redis_client.zcount(redis_key, now - self.period, now)
            return max(0, self.rate - count)
        else:
            bucket = self.buckets.get(key)
            if not bucket:
                return self.rate
            return int(bucket["tokens"])


def build_rate_limiter() -> RedisTokenBucket:
    return RedisTokenBucket(
        rate=settings.rate_limit_requests,
        period=settings.rate_limit_period,
        redis_url=settings.redis_url,
    )


async def rate_limit_middleware(request: Request, call_next):
    """
    Rate limiting middleware

    Limits requests per client IP; the dashboard fires a dozen reports per
    "Apply Filters" click, so the default allowance is generous.
    """
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None or request.url.path in UNLIMITED_PATHS:
        return await call_next(request)

    client_ip = request.client.host if request.client else "unknown"
    rate_limit_key = f"ip:{client_ip}"

    if not limiter.is_allowed(rate_limit_key):
        logger.warning("rate_limit_exceeded", key=rate_limit_key, path=request.url.path)

        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"error": "Rate limit exceeded. Please try again later."},
            headers={
                "X-RateLimit-Limit": str(limiter.rate),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(limiter.period),
                "Retry-After": str(limiter.period)
            }
        )

    response = await call_next(request)

    remaining = limiter.get_remaining(rate_limit_key)
    response.headers["X-RateLimit-Limit"] = str(limiter.rate)
    response.headers["X-RateLimit-Remaining"] = str(max(0, remaining))
    response.headers["X-RateLimit-Reset"] = str(limiter.period)

    return response
