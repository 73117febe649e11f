from fastapi import FastAPI
from fastapi.testclient import TestClient

from forum.core.ratelimit import (
    RATE_LIMIT_MESSAGE,
    FixedWindowRateLimiter,
    RateLimitConfig,
    RateLimitMiddleware,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_limiter_blocks_after_max_and_resets() -> None:
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(
        RateLimitConfig(window_seconds=15, max_requests=3), clock=clock
    )

    assert [limiter.hit("10.0.0.1")[0] for _ in range(3)] == [True, True, True]
    clock.now += 5
    allowed, retry_after = limiter.hit("10.0.0.1")
    assert allowed is False
    assert retry_after == 10

    # other clients have their own counter
    assert limiter.hit("10.0.0.2") == (True, 0)

    clock.now += 10
    assert limiter.hit("10.0.0.1") == (True, 0)


def test_retry_after_is_at_least_one_second() -> None:
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(
        RateLimitConfig(window_seconds=15, max_requests=1), clock=clock
    )
    limiter.hit("a")
    clock.now += 14.9
    assert limiter.hit("a") == (False, 1)


def test_reset_clears_counters() -> None:
    limiter = FixedWindowRateLimiter(RateLimitConfig(max_requests=1))
    limiter.hit("a")
    assert limiter.hit("a")[0] is False
    limiter.reset()
    assert limiter.hit("a")[0] is True


def test_applies_to() -> None:
    config = RateLimitConfig(prefix="/api", exempt_paths=("/api/auth/me",))
    assert config.applies_to("/api/prompts")
    assert not config.applies_to("/api/auth/me")
    assert not config.applies_to("/health")
    assert not RateLimitConfig(enabled=False).applies_to("/api/prompts")


def build_client(config: RateLimitConfig) -> TestClient:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, limiter=FixedWindowRateLimiter(config))

    @app.get("/api/items")
    def items() -> dict:
        return {"ok": True}

    @app.get("/api/auth/me")
    def me() -> dict:
        return {"ok": True}

    @app.get("/health")
    def health() -> dict:
        return {"ok": True}

    return TestClient(app)


def test_middleware_returns_429_with_retry_after() -> None:
    client = build_client(
        RateLimitConfig(max_requests=2, exempt_paths=("/api/auth/me",))
    )
    assert client.get("/api/items").status_code == 200
    assert client.get("/api/items").status_code == 200

    r = client.get("/api/items")
    assert r.status_code == 429
    assert r.json() == {"error": RATE_LIMIT_MESSAGE}
    assert int(r.headers["Retry-After"]) >= 1

    assert client.get("/api/auth/me").status_code == 200
    assert client.get("/health").status_code == 200


def test_middleware_keys_on_forwarded_for() -> None:
    client = build_client(RateLimitConfig(max_requests=1))
    assert client.get("/api/items", headers={"X-Forwarded-For": "1.1.1.1"}).status_code == 200
    assert client.get("/api/items", headers={"X-Forwarded-For": "2.2.2.2, 10.0.0.1"}).status_code == 200
    assert client.get("/api/items", headers={"X-Forwarded-For": "1.1.1.1"}).status_code == 429


def test_disabled_limiter_never_blocks() -> None:
    client = build_client(RateLimitConfig(enabled=False, max_requests=1))
    assert all(client.get("/api/items").status_code == 200 for _ in range(5))
