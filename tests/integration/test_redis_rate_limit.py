"""
Tests du backend Redis (script Lua de compare-and-increment).

Necessitent un Redis joignable via REDIS_TEST_URL
(ex: redis://localhost:6379/15); ignores sinon. La base est videe.
"""
import os
import uuid
from concurrent.futures import ThreadPoolExecutor

import pytest
import redis

from app.services.rate_limit import (
    DEVELOPMENT_RULES,
    KEY_PREFIX,
    RateLimiter,
    RateLimitType,
    RedisRateLimitBackend,
)

pytestmark = [pytest.mark.integration, pytest.mark.redis]


@pytest.fixture
def redis_client():
    url = os.environ.get("REDIS_TEST_URL")
    if not url:
        pytest.skip("REDIS_TEST_URL non defini")

    client = redis.Redis.from_url(url, decode_responses=True, socket_connect_timeout=1)
    try:
        client.ping()
    except redis.RedisError:
        pytest.skip(f"Redis injoignable sur {url}")

    client.flushdb()
    yield client
    client.flushdb()
    client.close()


@pytest.fixture
def backend(redis_client):
    return RedisRateLimitBackend(redis_client)


def window_key() -> str:
    return f"{KEY_PREFIX}:auth:{uuid.uuid4().hex}"


class TestRedisHit:

    def test_n_allowed_then_denied(self, backend):
        key = window_key()

        results = [backend.hit(key, 3, 60_000, now_ms=1000) for _ in range(4)]

        assert [allowed for allowed, _, _ in results] == [True, True, True, False]
        assert [count for _, count, _ in results] == [1, 2, 3, 3]
        assert {reset for _, _, reset in results} == {61_000}

    def test_window_restarts_after_reset_time(self, backend):
        key = window_key()
        for _ in range(3):
            backend.hit(key, 3, 60_000, now_ms=1000)

        allowed, count, reset_time = backend.hit(key, 3, 60_000, now_ms=61_000)

        assert (allowed, count, reset_time) == (True, 1, 121_000)

    def test_key_expires_with_window(self, backend, redis_client):
        key = window_key()
        backend.hit(key, 3, 60_000, now_ms=1000)

        assert 0 < redis_client.pttl(key) <= 60_000

    def test_peek_and_reset(self, backend):
        key = window_key()
        backend.hit(key, 3, 60_000, now_ms=1000)
        backend.hit(key, 3, 60_000, now_ms=1000)

        assert backend.peek(key, now_ms=2000) == (2, 61_000)
        assert backend.peek(key, now_ms=61_000) == (0, None)

        backend.reset(key)
        assert backend.peek(key, now_ms=2000) == (0, None)

    def test_concurrent_hits_never_exceed_limit(self, backend):
        key = window_key()

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda _: backend.hit(key, 5, 60_000, now_ms=1000)[0], range(100)))

        assert results.count(True) == 5


class TestRedisAttempts:

    def test_history_is_bounded_by_horizon(self, backend):
        key = f"{KEY_PREFIX}:attempts:{uuid.uuid4().hex}"

        backend.record_attempt(key, now_ms=1000, horizon_ms=10_000)
        backend.record_attempt(key, now_ms=5000, horizon_ms=10_000)
        history = backend.record_attempt(key, now_ms=12_000, horizon_ms=10_000)

        assert history == [5000, 12_000]

    def test_keys_skip_attempt_histories(self, backend):
        key = window_key()
        backend.hit(key, 3, 60_000, now_ms=1000)
        backend.record_attempt(f"{KEY_PREFIX}:attempts:x", now_ms=1000, horizon_ms=10_000)

        assert backend.keys() == [key]


def test_limiter_over_redis(redis_client):
    limiter = RateLimiter(rules=DEVELOPMENT_RULES, backend=RedisRateLimitBackend(redis_client))
    identifier = f"10.0.0.{uuid.uuid4().int % 250}:pytest"

    results = [limiter.check(identifier, RateLimitType.AUTH) for _ in range(6)]

    assert [r.allowed for r in results] == [True] * 5 + [False]
    assert limiter.backend.name == "redis"
