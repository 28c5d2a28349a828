"""
Multi-Layer Cache Manager

Four independent in-memory layers share one manager:
- pattern:  LFU, 24h TTL - pattern match results for common queries
- analysis: LRU, 1h TTL, compressed - classification / intent results
- context:  LRU, 30min TTL - selected context for (query, history)
- result:   LRU, 15min TTL - complete analysis results

Each layer has its own entry cap and memory budget. Inserting into a full
layer evicts the bottom 10% according to the layer's policy before the new
entry goes in. A background sweep removes expired entries and trims layers
that exceed their memory budget.

Author: AI System
Version: 2.0
"""

import hashlib
import pickle
import re
import sys
import threading
import time
import zlib
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from logger import get_logger

logger = get_logger(__name__)


class CacheLayer(str, Enum):
    PATTERN = "pattern"
    ANALYSIS = "analysis"
    CONTEXT = "context"
    RESULT = "result"


class EvictionPolicy(str, Enum):
    LRU = "lru"
    LFU = "lfu"
    TTL = "ttl"


@dataclass
class LayerConfig:
    """Configuration for a single cache layer"""
    max_entries: int
    ttl_seconds: float
    eviction_policy: EvictionPolicy
    memory_limit_mb: float
    compress: bool = False
    eviction_fraction: float = 0.1
    sweep_eviction_fraction: float = 0.2


def default_layer_configs() -> Dict[CacheLayer, LayerConfig]:
    return {
        CacheLayer.PATTERN: LayerConfig(1000, 24 * 60 * 60, EvictionPolicy.LFU, 10),
        CacheLayer.ANALYSIS: LayerConfig(5000, 60 * 60, EvictionPolicy.LRU, 50, compress=True),
        CacheLayer.CONTEXT: LayerConfig(2000, 30 * 60, EvictionPolicy.LRU, 25),
        CacheLayer.RESULT: LayerConfig(1000, 15 * 60, EvictionPolicy.LRU, 15),
    }


@dataclass
class CacheEntry:
    """Single cached value with expiry and access bookkeeping"""
    key: str
    value: Any
    timestamp: float
    expires_at: float
    hit_count: int = 0
    size_bytes: int = 0
    compressed: bool = False

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class LayerStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    sets: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


@dataclass
class WarmupStrategy:
    """Queries preloaded into the pattern layer at startup"""
    queries: List[str]
    priority: int
    preload_on_startup: bool = True


# Readable query prefix kept in cache keys
KEY_PREFIX_CHARS = 50

DEFAULT_WARMUP = [
    WarmupStrategy(['hi', 'hello', 'hey', 'thanks', 'thank you'], priority=1),
    WarmupStrategy(['debug', 'error', 'fix', 'help'], priority=2),
]


def normalize_query(query: str) -> str:
    """
    Canonical form used inside cache keys.

    Keeps the first 50 characters readable; longer queries get a digest of
    the full normalized text so queries sharing a prefix never collide.
    """
    normalized = re.sub(r'\s+', '_', query.lower().strip())
    if len(normalized) <= KEY_PREFIX_CHARS:
        return normalized
    digest = hashlib.sha1(normalized.encode('utf-8')).hexdigest()[:16]
    return f"{normalized[:KEY_PREFIX_CHARS]}~{digest}"


class CacheManager:
    """
    Thread-safe multi-layer cache with per-layer eviction policies.

    Entries never leave their layer. Layers are guarded by one RLock; all
    operations are in-memory and short, so contention is negligible.
    """

    def __init__(
        self,
        layer_configs: Optional[Dict[CacheLayer, LayerConfig]] = None,
        sweep_interval_seconds: float = 300.0,
        clock: Callable[[], float] = time.time,
        verbose: bool = False
    ):
        self.configs = layer_configs or default_layer_configs()
        self.sweep_interval_seconds = sweep_interval_seconds
        self.clock = clock
        self.verbose = verbose

        self._layers: Dict[CacheLayer, "OrderedDict[str, CacheEntry]"] = {
            layer: OrderedDict() for layer in self.configs
        }
        self._stats: Dict[CacheLayer, LayerStats] = {layer: LayerStats() for layer in self.configs}
        self._lock = threading.RLock()

        self._sweep_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    # ========================================================================
    # CORE OPERATIONS
    # ========================================================================

    def get(self, layer: CacheLayer, key: str) -> Optional[Any]:
        """Get value from a layer, or None on miss / expiry"""
        with self._lock:
            cache = self._layers[layer]
            stats = self._stats[layer]
            entry = cache.get(key)

            if entry is None:
                stats.misses += 1
                return None

            now = self.clock()
            if entry.is_expired(now):
                del cache[key]
                stats.expirations += 1
                stats.misses += 1
                return None

            entry.hit_count += 1
            entry.timestamp = now
            cache.move_to_end(key)
            stats.hits += 1

            if self.verbose:
                print(f"[CACHE] Hit [{layer.value}]: {key[:30]} (hits={entry.hit_count})")

            return self._decode(entry)

    def set(self, layer: CacheLayer, key: str, value: Any, ttl_seconds: Optional[float] = None):
        """Store a value, evicting by policy first if the layer is full"""
        config = self.configs[layer]
        ttl = ttl_seconds if ttl_seconds is not None else config.ttl_seconds
        stored, size, compressed = self._encode(value, config.compress)

        with self._lock:
            cache = self._layers[layer]
            now = self.clock()

            if key in cache:
                del cache[key]
            elif len(cache) >= config.max_entries:
                count = max(1, int(config.max_entries * config.eviction_fraction))
                self._evict(layer, count)

            cache[key] = CacheEntry(
                key=key,
                value=stored,
                timestamp=now,
                expires_at=now + ttl,
                size_bytes=size,
                compressed=compressed,
            )
            self._stats[layer].sets += 1

    def get_or_compute(self, layer: CacheLayer, key: str, compute_fn: Callable[[], Any],
                       ttl_seconds: Optional[float] = None) -> Any:
        """Get from cache or compute and cache"""
        value = self.get(layer, key)
        if value is not None:
            return value
        value = compute_fn()
        if value is not None:
            self.set(layer, key, value, ttl_seconds)
        return value

    def invalidate(self, layer: CacheLayer, key: str) -> bool:
        with self._lock:
            return self._layers[layer].pop(key, None) is not None

    def invalidate_pattern(self, pattern: str, layer: Optional[CacheLayer] = None) -> int:
        """Remove every key matching a regex in one or all layers"""
        regex = re.compile(pattern)
        layers = [layer] if layer else list(self._layers)
        removed = 0

        with self._lock:
            for name in layers:
                cache = self._layers[name]
                doomed = [key for key in cache if regex.search(key)]
                for key in doomed:
                    del cache[key]
                removed += len(doomed)

        logger.info(f"Invalidated {removed} entries matching '{pattern}' in {layer.value if layer else 'all'}")
        return removed

    def clear(self, layer: Optional[CacheLayer] = None):
        with self._lock:
            for name in ([layer] if layer else list(self._layers)):
                self._layers[name].clear()

    def size(self, layer: CacheLayer) -> int:
        with self._lock:
            return len(self._layers[layer])

    # ========================================================================
    # LAYER KEYS
    # ========================================================================

    @staticmethod
    def pattern_key(query: str) -> str:
        return f"pattern:{normalize_query(query)}"

    @staticmethod
    def analysis_key(query: str, context_hash: Optional[str] = None) -> str:
        base = f"analysis:{normalize_query(query)}"
        return f"{base}:{context_hash}" if context_hash else base

    @staticmethod
    def context_key(query: str, history_hash: str) -> str:
        return f"context:{normalize_query(query)}:{history_hash}"

    @staticmethod
    def result_key(query: str, full_context_hash: str) -> str:
        return f"result:{normalize_query(query)}:{full_context_hash}"

    # ========================================================================
    # EVICTION & SWEEP
    # ========================================================================

    def _evict(self, layer: CacheLayer, count: int) -> int:
        """Evict `count` least valuable entries. Caller holds the lock."""
        cache = self._layers[layer]
        policy = self.configs[layer].eviction_policy

        if policy == EvictionPolicy.LRU:
            # OrderedDict order is access order, oldest first
            victims = list(cache.keys())[:count]
        elif policy == EvictionPolicy.LFU:
            victims = [e.key for e in sorted(cache.values(), key=lambda e: e.hit_count)[:count]]
        else:
            victims = [e.key for e in sorted(cache.values(), key=lambda e: e.expires_at)[:count]]

        for key in victims:
            del cache[key]

        self._stats[layer].evictions += len(victims)
        if self.verbose and victims:
            print(f"[CACHE] Evicted {len(victims)} from {layer.value} ({policy.value})")
        return len(victims)

    def memory_usage(self, layer: CacheLayer) -> int:
        with self._lock:
            return sum(entry.size_bytes for entry in self._layers[layer].values())

    def sweep(self) -> Dict[CacheLayer, int]:
        """Remove expired entries, then trim layers over their memory budget"""
        cleaned: Dict[CacheLayer, int] = {}

        with self._lock:
            now = self.clock()
            for layer, cache in self._layers.items():
                config = self.configs[layer]
                expired = [key for key, entry in cache.items() if entry.is_expired(now)]
                for key in expired:
                    del cache[key]
                self._stats[layer].expirations += len(expired)
                removed = len(expired)

                budget = config.memory_limit_mb * 1024 * 1024
                if cache and self.memory_usage(layer) > budget:
                    extra = max(1, int(len(cache) * config.sweep_eviction_fraction))
                    removed += self._evict(layer, extra)

                cleaned[layer] = removed
                if removed:
                    logger.debug(f"Sweep [{layer.value}] removed {removed}, remaining {len(cache)}")

        return cleaned

    def start_background_sweep(self):
        """Run `sweep` on a daemon thread every sweep interval"""
        if self._sweep_thread and self._sweep_thread.is_alive():
            return
        self._stop_event.clear()
        self._sweep_thread = threading.Thread(
            target=self._sweep_loop, name="cache-sweep", daemon=True
        )
        self._sweep_thread.start()
        logger.info(f"Cache sweep started (every {self.sweep_interval_seconds:.0f}s)")

    def _sweep_loop(self):
        while not self._stop_event.wait(self.sweep_interval_seconds):
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Cache sweep failed: {e}", exc_info=True)

    def stop(self):
        """Stop the sweep thread and run one final sweep"""
        self._stop_event.set()
        if self._sweep_thread:
            self._sweep_thread.join(timeout=1.0)
            self._sweep_thread = None
        self.sweep()

    # ========================================================================
    # WARM-UP
    # ========================================================================

    def warm_up(self, loader: Callable[[str], Any],
                strategies: Iterable[WarmupStrategy] = DEFAULT_WARMUP) -> int:
        """
        Preload the pattern layer with results for common queries.

        Args:
            loader: Computes the value for a query (e.g. PatternMatcher.match)
            strategies: Query groups, loaded in priority order

        Returns:
            Number of entries preloaded
        """
        loaded = 0
        for strategy in sorted(strategies, key=lambda s: s.priority):
            if not strategy.preload_on_startup:
                continue
            for query in strategy.queries:
                try:
                    value = loader(query)
                except Exception as e:
                    logger.warning(f"Warm-up failed for '{query}': {e}")
                    continue
                if value is not None:
                    self.set(CacheLayer.PATTERN, self.pattern_key(query), value)
                    loaded += 1

        logger.info(f"Cache warm-up complete: {loaded} entries")
        return loaded

    # ========================================================================
    # STATS
    # ========================================================================

    def get_stats(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            stats = {}
            for layer, cache in self._layers.items():
                layer_stats = self._stats[layer]
                stats[layer.value] = {
                    'entries': len(cache),
                    'max_entries': self.configs[layer].max_entries,
                    'memory_bytes': self.memory_usage(layer),
                    'hits': layer_stats.hits,
                    'misses': layer_stats.misses,
                    'hit_rate': layer_stats.hit_rate,
                    'evictions': layer_stats.evictions,
                    'expirations': layer_stats.expirations,
                }
            return stats

    # ========================================================================
    # ENCODING
    # ========================================================================

    @staticmethod
    def _encode(value: Any, compress: bool):
        try:
            raw = pickle.dumps(value)
        except (pickle.PicklingError, TypeError, AttributeError):
            return value, sys.getsizeof(value), False
        if compress:
            packed = zlib.compress(raw)
            return packed, len(packed), True
        return value, len(raw), False

    @staticmethod
    def _decode(entry: CacheEntry) -> Any:
        if entry.compressed:
            return pickle.loads(zlib.decompress(entry.value))
        return entry.value
