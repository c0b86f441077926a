"""
Tests for Redis-backed rate limiting.

Test Cases:
1. Requests over the limit get 429 with rate limit headers
2. Redis errors let the request through
3. A failed Redis connection is not retried until the retry interval passes
"""
from unittest.mock import MagicMock, patch

import redis
from django.test import SimpleTestCase, override_settings
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.test import APIRequestFactory
from rest_framework.views import APIView

from core import rate_limiting
from core.rate_limiting import REDIS_RETRY_INTERVAL, get_redis_client, rate_limit


class ThrottledView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    @rate_limit(max_requests=2, window_seconds=60)
    def get(self, request):
        return Response({'ok': True})


@override_settings(RATE_LIMIT_ENABLED=True)
class RateLimitDecoratorTestCase(SimpleTestCase):

    def setUp(self):
        self.factory = APIRequestFactory()
        self.view = ThrottledView.as_view()
        self.client_mock = MagicMock()
        self.client_mock.ttl.return_value = 60

    def call_view(self):
        with patch('core.rate_limiting.get_redis_client', return_value=self.client_mock):
            return self.view(self.factory.get('/throttled/', REMOTE_ADDR='10.0.0.7'))

    def test_requests_over_limit_rejected(self):
        self.client_mock.incr.side_effect = [1, 2, 3]

        first = self.call_view()
        second = self.call_view()
        third = self.call_view()

        self.assertEqual(first.status_code, status.HTTP_200_OK)
        self.assertEqual(first['X-RateLimit-Remaining'], '1')
        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertEqual(third.status_code, status.HTTP_429_TOO_MANY_REQUESTS)
        self.assertEqual(third.data['error'], 'RATE_LIMITED')
        self.assertEqual(third['Retry-After'], '60')

        key = self.client_mock.incr.call_args[0][0]
        self.assertTrue(key.endswith('ip:10.0.0.7'))
        self.client_mock.expire.assert_called_once_with(key, 60)

    def test_redis_error_lets_request_through(self):
        self.client_mock.incr.side_effect = redis.RedisError('connection reset')

        with self.assertLogs('core.rate_limiting', level='ERROR'):
            response = self.call_view()

        self.assertEqual(response.status_code, status.HTTP_200_OK)

    @override_settings(RATE_LIMIT_ENABLED=False)
    def test_disabled_rate_limit_skips_redis(self):
        with patch('core.rate_limiting.get_redis_client') as get_client:
            response = self.view(self.factory.get('/throttled/'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        get_client.assert_not_called()


class RedisClientTestCase(SimpleTestCase):

    def setUp(self):
        patcher = patch.multiple(rate_limiting, _redis_client=None, _redis_retry_at=0.0)
        patcher.start()
        self.addCleanup(patcher.stop)

        clock = patch('core.rate_limiting.time.monotonic', return_value=1000.0)
        self.clock = clock.start()
        self.addCleanup(clock.stop)

    def test_failed_connection_not_retried_within_interval(self):
        """
        Given: Redis refuses the first connection
        Then: Later calls inside the retry interval return None without connecting
        """
        broken = MagicMock()
        broken.ping.side_effect = redis.ConnectionError('refused')

        with patch('core.rate_limiting.redis.Redis.from_url', return_value=broken) as from_url:
            with self.assertLogs('core.rate_limiting', level='WARNING'):
                self.assertIsNone(get_redis_client())

            self.clock.return_value = 1000.0 + REDIS_RETRY_INTERVAL - 1
            self.assertIsNone(get_redis_client())

        self.assertEqual(from_url.call_count, 1)

    def test_reconnects_after_interval(self):
        broken = MagicMock()
        broken.ping.side_effect = redis.ConnectionError('refused')
        healthy = MagicMock()

        with patch('core.rate_limiting.redis.Redis.from_url', side_effect=[broken, healthy]):
            with self.assertLogs('core.rate_limiting', level='WARNING'):
                self.assertIsNone(get_redis_client())

            self.clock.return_value = 1000.0 + REDIS_RETRY_INTERVAL + 1
            self.assertIs(get_redis_client(), healthy)
            self.assertIs(get_redis_client(), healthy)
