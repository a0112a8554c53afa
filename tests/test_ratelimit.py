from ratelimit import RateLimiter


def test_allows_up_to_limit():
    limiter = RateLimiter(limit=3)
    results = [limiter.hit("1.2.3.4")[0] for _ in range(4)]
    assert results == [True, True, True, False]


def test_counts_per_ip():
    limiter = RateLimiter(limit=1)
    assert limiter.hit("1.1.1.1")[0]
    assert limiter.hit("2.2.2.2")[0]
    assert not limiter.hit("1.1.1.1")[0]


def test_headers():
    limiter = RateLimiter(limit=100, window_minutes=15)
    allowed, headers = limiter.hit("1.2.3.4")
    assert allowed
    assert headers["RateLimit-Policy"] == "100;w=900"
    assert headers["RateLimit-Limit"] == "100"
    assert headers["RateLimit-Remaining"] == "99"
    assert 0 <= int(headers["RateLimit-Reset"]) <= 900
    assert "Retry-After" not in headers
    assert not any(name.startswith("X-RateLimit") for name in headers)


def test_retry_after_when_limited():
    limiter = RateLimiter(limit=1)
    limiter.hit("1.2.3.4")
    allowed, headers = limiter.hit("1.2.3.4")
    assert not allowed
    assert headers["RateLimit-Remaining"] == "0"
    assert "Retry-After" in headers
