"""Tests for TtlCache."""

from __future__ import annotations

import pytest

from decomposer.cache import TtlCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestTtlCache:
    def test_empty_cache_returns_none(self) -> None:
        assert TtlCache[int]().get() is None

    def test_value_expires_at_ttl(self) -> None:
        clock = FakeClock()
        cache: TtlCache[str] = TtlCache(10, clock=clock)
        cache.set("v")
        clock.now = 9.9
        assert cache.get() == "v"
        clock.now = 10.0
        assert cache.get() is None

    def test_get_or_load_calls_loader_once_until_expiry(self) -> None:
        clock = FakeClock()
        cache: TtlCache[list[int]] = TtlCache(5, clock=clock)
        calls: list[int] = []

        def loader() -> list[int]:
            calls.append(1)
            return [len(calls)]

        assert cache.get_or_load(loader) == [1]
        assert cache.get_or_load(loader) == [1]
        clock.now = 6
        assert cache.get_or_load(loader) == [2]
        assert len(calls) == 2

    def test_clear(self) -> None:
        cache: TtlCache[int] = TtlCache()
        cache.set(1)
        cache.clear()
        assert cache.get() is None

    @pytest.mark.parametrize("ttl", [0, -1])
    def test_ttl_must_be_positive(self, ttl: float) -> None:
        with pytest.raises(ValueError, match="ttl must be positive"):
            TtlCache(ttl)
