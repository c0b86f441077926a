"""
Redis-based rate limiting for API endpoints.
Fixed window counter per view and client; fails open when Redis is down.
"""
import logging
import time
from functools import wraps

import redis
from django.conf import settings
from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)

_redis_client = None
_redis_retry_at = 0.0

# Seconds to wait after a failed connection before trying Redis again
REDIS_RETRY_INTERVAL = 30


def get_redis_client():
    """
    Connect lazily; returns None if Redis cannot be reached.

    A failed connection is remembered for REDIS_RETRY_INTERVAL seconds so
    requests made meanwhile skip rate limiting without waiting on a connect.
    """
    global _redis_client, _redis_retry_at
    if _redis_client is None:
        if time.monotonic() < _redis_retry_at:
            return None
        try:
            client = redis.Redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=2
            )
            client.ping()
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.warning(
                f"Redis connection failed: {e}. Rate limiting skipped for "
                f"{REDIS_RETRY_INTERVAL}s."
            )
            _redis_retry_at = time.monotonic() + REDIS_RETRY_INTERVAL
            return None
        _redis_client = client
    return _redis_client


def get_client_ip(request):
    """Extract client IP address from request."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', 'unknown')


def get_client_key(request):
    """Authenticated users are limited per account, anonymous ones per IP."""
    user = getattr(request, 'user', None)
    if user is not None and user.is_authenticated:
        return f"user:{user.pk}"
    return f"ip:{get_client_ip(request)}"


def rate_limit(max_requests: int = 20, window_seconds: int = 60):
    """
    Rate limiting decorator for DRF view methods.

    Args:
        max_requests: Maximum number of requests allowed in the window
        window_seconds: Time window in seconds

    Usage:
        @rate_limit(5, 60)  # 5 requests per minute
        def post(self, request, pk):
            ...
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(self, request, *args, **kwargs):
            if not getattr(settings, 'RATE_LIMIT_ENABLED', True):
                return view_func(self, request, *args, **kwargs)

            client = get_redis_client()
            if client is None:
                return view_func(self, request, *args, **kwargs)

            key = f"rate_limit:{view_func.__qualname__}:{get_client_key(request)}"
            try:
                current_count = client.incr(key)
                if current_count == 1:
                    client.expire(key, window_seconds)
                ttl = client.ttl(key)
            except redis.RedisError as e:
                logger.error(f"Redis error in rate limiting: {e}")
                return view_func(self, request, *args, **kwargs)

            if current_count > max_requests:
                logger.warning(f"Rate limit exceeded for {key}")
                return Response(
                    {
                        'error': 'RATE_LIMITED',
                        'detail': f'Maximum {max_requests} requests per {window_seconds} seconds allowed.',
                        'retry_after': ttl
                    },
                    status=status.HTTP_429_TOO_MANY_REQUESTS,
                    headers={
                        'X-RateLimit-Limit': str(max_requests),
                        'X-RateLimit-Remaining': '0',
                        'X-RateLimit-Reset': str(ttl),
                        'Retry-After': str(ttl)
                    }
                )

            response = view_func(self, request, *args, **kwargs)
            response['X-RateLimit-Limit'] = str(max_requests)
            response['X-RateLimit-Remaining'] = str(max(0, max_requests - current_count))
            response['X-RateLimit-Reset'] = str(ttl)
            return response

        return wrapper
    return decorator
