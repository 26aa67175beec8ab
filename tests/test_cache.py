import pytest
from sqlalchemy.exc import OperationalError

from quizboard.cache import ResponseCache


def test_hit_within_ttl_does_not_recompute():
    cache = ResponseCache(ttl=60)
    calls = []

    def compute():
        calls.append(1)
        return {"value": len(calls)}

    assert cache.get_or_compute("/api/scoreboard/xp", compute) == {"value": 1}
    assert cache.get_or_compute("/api/scoreboard/xp", compute) == {"value": 1}
    assert len(calls) == 1
    assert len(cache) == 1


def test_keys_are_independent():
    cache = ResponseCache(ttl=60)
    cache.set("/a", 1)
    assert cache.get_or_compute("/b", lambda: 2) == 2
    assert cache.get("/a") == 1


def test_error_returns_fallback_without_caching(caplog):
    cache = ResponseCache(ttl=60)

    def broken():
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    result = cache.get_or_compute("/api/public/stats", broken, fallback={"total_users": 0},
                                  errors=(OperationalError,))
    assert result == {"total_users": 0}
    assert len(cache) == 0
    assert "degraded" in caplog.text
    assert cache.get_or_compute("/api/public/stats", lambda: {"total_users": 3}) == {"total_users": 3}


def test_unexpected_errors_propagate():
    cache = ResponseCache(ttl=60)
    with pytest.raises(KeyError):
        cache.get_or_compute("/x", lambda: {}["missing"], errors=(OperationalError,))


def test_header_and_clear():
    cache = ResponseCache(ttl=120)
    assert cache.header() == "public, max-age=120"
    assert cache.header(private=True) == "private, max-age=120"
    cache.set("/a", 1)
    cache.clear()
    assert len(cache) == 0
