"""
Tests for the multi-layer cache.
"""

import pytest

from core.cache_manager import (
    CacheLayer, CacheManager, EvictionPolicy, LayerConfig, WarmupStrategy, normalize_query,
)


def small_configs(max_entries=3, memory_limit_mb=1.0):
    return {
        CacheLayer.PATTERN: LayerConfig(max_entries, 60, EvictionPolicy.LFU, memory_limit_mb),
        CacheLayer.ANALYSIS: LayerConfig(max_entries, 60, EvictionPolicy.LRU, memory_limit_mb, compress=True),
        CacheLayer.CONTEXT: LayerConfig(max_entries, 60, EvictionPolicy.TTL, memory_limit_mb),
        CacheLayer.RESULT: LayerConfig(max_entries, 60, EvictionPolicy.LRU, memory_limit_mb),
    }


@pytest.fixture
def cache(clock):
    return CacheManager(small_configs(), clock=clock)


# ============================================================================
# GET / SET
# ============================================================================

def test_hit_and_miss_statistics(cache):
    cache.set(CacheLayer.RESULT, 'a', 1)

    assert cache.get(CacheLayer.RESULT, 'a') == 1
    assert cache.get(CacheLayer.RESULT, 'missing') is None

    stats = cache.get_stats()['result']
    assert stats['hits'] == 1
    assert stats['misses'] == 1
    assert stats['hit_rate'] == 0.5


def test_layers_are_independent(cache):
    cache.set(CacheLayer.RESULT, 'key', 'result')

    assert cache.get(CacheLayer.CONTEXT, 'key') is None
    assert cache.size(CacheLayer.RESULT) == 1
    assert cache.size(CacheLayer.CONTEXT) == 0


def test_entries_expire(cache, clock):
    cache.set(CacheLayer.RESULT, 'a', 1)
    clock.advance(59)
    assert cache.get(CacheLayer.RESULT, 'a') == 1

    clock.advance(1)
    assert cache.get(CacheLayer.RESULT, 'a') is None
    assert cache.get_stats()['result']['expirations'] == 1


def test_custom_ttl(cache, clock):
    cache.set(CacheLayer.RESULT, 'a', 1, ttl_seconds=5)
    clock.advance(5)

    assert cache.get(CacheLayer.RESULT, 'a') is None


def test_compressed_layer_round_trips(cache):
    value = {'intent': 'technical', 'scores': [0.1, 0.9]}
    cache.set(CacheLayer.ANALYSIS, 'k', value)

    assert cache.get(CacheLayer.ANALYSIS, 'k') == value
    assert cache.memory_usage(CacheLayer.ANALYSIS) > 0


def test_get_or_compute(cache):
    calls = []

    def compute():
        calls.append(1)
        return 'computed'

    assert cache.get_or_compute(CacheLayer.CONTEXT, 'k', compute) == 'computed'
    assert cache.get_or_compute(CacheLayer.CONTEXT, 'k', compute) == 'computed'
    assert len(calls) == 1


# ============================================================================
# EVICTION
# ============================================================================

def test_lru_evicts_least_recently_used(cache):
    for key in 'abc':
        cache.set(CacheLayer.RESULT, key, key)
    cache.get(CacheLayer.RESULT, 'a')
    cache.set(CacheLayer.RESULT, 'd', 'd')

    assert cache.get(CacheLayer.RESULT, 'b') is None
    assert cache.get(CacheLayer.RESULT, 'a') == 'a'
    assert cache.size(CacheLayer.RESULT) == 3
    assert cache.get_stats()['result']['evictions'] == 1


def test_lfu_evicts_least_frequently_used(cache):
    for key in 'abc':
        cache.set(CacheLayer.PATTERN, key, key)
    cache.get(CacheLayer.PATTERN, 'a')
    cache.get(CacheLayer.PATTERN, 'a')
    cache.get(CacheLayer.PATTERN, 'c')
    cache.set(CacheLayer.PATTERN, 'd', 'd')

    assert cache.get(CacheLayer.PATTERN, 'b') is None
    assert cache.get(CacheLayer.PATTERN, 'a') == 'a'


def test_ttl_policy_evicts_soonest_expiry(cache):
    cache.set(CacheLayer.CONTEXT, 'short', 1, ttl_seconds=10)
    cache.set(CacheLayer.CONTEXT, 'long', 2, ttl_seconds=100)
    cache.set(CacheLayer.CONTEXT, 'mid', 3, ttl_seconds=50)
    cache.set(CacheLayer.CONTEXT, 'new', 4)

    assert cache.get(CacheLayer.CONTEXT, 'short') is None
    assert cache.get(CacheLayer.CONTEXT, 'long') == 2


def test_overwrite_does_not_evict(cache):
    for key in 'abc':
        cache.set(CacheLayer.RESULT, key, key)
    cache.set(CacheLayer.RESULT, 'a', 'updated')

    assert cache.size(CacheLayer.RESULT) == 3
    assert cache.get(CacheLayer.RESULT, 'a') == 'updated'


# ============================================================================
# INVALIDATION / SWEEP
# ============================================================================

def test_invalidate(cache):
    cache.set(CacheLayer.RESULT, 'a', 1)

    assert cache.invalidate(CacheLayer.RESULT, 'a')
    assert not cache.invalidate(CacheLayer.RESULT, 'a')


def test_invalidate_pattern(cache):
    cache.set(CacheLayer.RESULT, 'result:hello:1', 1)
    cache.set(CacheLayer.RESULT, 'result:debug:1', 2)
    cache.set(CacheLayer.CONTEXT, 'context:hello:1', 3)

    assert cache.invalidate_pattern(r':hello:', CacheLayer.RESULT) == 1
    assert cache.get(CacheLayer.CONTEXT, 'context:hello:1') == 3
    assert cache.invalidate_pattern(r'hello') == 1


def test_clear_single_layer(cache):
    cache.set(CacheLayer.RESULT, 'a', 1)
    cache.set(CacheLayer.PATTERN, 'b', 2)
    cache.clear(CacheLayer.RESULT)

    assert cache.size(CacheLayer.RESULT) == 0
    assert cache.size(CacheLayer.PATTERN) == 1


def test_sweep_removes_expired(cache, clock):
    cache.set(CacheLayer.RESULT, 'a', 1, ttl_seconds=5)
    cache.set(CacheLayer.RESULT, 'b', 2)
    clock.advance(10)

    cleaned = cache.sweep()
    assert cleaned[CacheLayer.RESULT] == 1
    assert cache.size(CacheLayer.RESULT) == 1


def test_sweep_enforces_memory_budget(clock):
    cache = CacheManager(small_configs(max_entries=10, memory_limit_mb=0.000001), clock=clock)
    for i in range(5):
        cache.set(CacheLayer.RESULT, f"k{i}", 'x' * 100)

    cleaned = cache.sweep()
    assert cleaned[CacheLayer.RESULT] == 1
    assert cache.size(CacheLayer.RESULT) == 4


def test_background_sweep_starts_and_stops(cache):
    cache.start_background_sweep()
    assert cache._sweep_thread.is_alive()

    cache.stop()
    assert cache._sweep_thread is None


# ============================================================================
# KEYS / WARM-UP
# ============================================================================

def test_keys_use_normalized_query():
    assert normalize_query("  Hello   World ") == 'hello_world'
    assert CacheManager.pattern_key("Hi there") == 'pattern:hi_there'
    assert CacheManager.analysis_key("Hi", "abc") == 'analysis:hi:abc'
    assert CacheManager.analysis_key("Hi") == 'analysis:hi'
    assert CacheManager.result_key("Hi", "abc") == 'result:hi:abc'
    assert normalize_query("x" * 50) == "x" * 50


def test_long_queries_sharing_a_prefix_get_distinct_keys():
    prefix = "create a small landing page for my coffee shop app"
    first = normalize_query(prefix + " with a menu")
    second = normalize_query(prefix + " but first debug this undefined error")

    assert first.startswith(normalize_query(prefix)[:50])
    assert first != second
    assert CacheManager.result_key(prefix + " a", "h") != CacheManager.result_key(prefix + " b", "h")
    assert normalize_query(prefix.upper() + "  WITH A MENU") == first


def test_warm_up_skips_failures_and_misses(clock):
    cache = CacheManager(small_configs(max_entries=10), clock=clock)

    def loader(query):
        if query == 'boom':
            raise RuntimeError("loader failed")
        return None if query == 'skip' else query.upper()

    loaded = cache.warm_up(loader, [
        WarmupStrategy(['later'], priority=2),
        WarmupStrategy(['hi', 'skip', 'boom'], priority=1),
        WarmupStrategy(['never'], priority=0, preload_on_startup=False),
    ])

    assert loaded == 2
    assert cache.get(CacheLayer.PATTERN, CacheManager.pattern_key('hi')) == 'HI'
    assert cache.get(CacheLayer.PATTERN, CacheManager.pattern_key('never')) is None
