"""
Engine configuration.

One dataclass gathers every tunable the engine hands to its components.
`IntelligenceConfig.from_env()` reads the deployment values from `Config`.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from config import Config
from core.cache_manager import CacheLayer, LayerConfig, default_layer_configs
from core.circuit_breaker import CircuitConfig
from intelligence.query_classifier import ClassifierWeights


@dataclass
class IntelligenceConfig:
    # Pattern registry
    custom_patterns: List[Dict[str, Any]] = field(default_factory=list)
    include_default_patterns: bool = True

    # Cache
    cache_layers: Dict[CacheLayer, LayerConfig] = field(default_factory=default_layer_configs)
    enable_result_cache: bool = True
    cache_sweep_interval_seconds: float = 300.0
    start_cache_sweeper: bool = False

    # Classification
    classifier_weights: ClassifierWeights = field(default_factory=ClassifierWeights)

    # Resilience
    circuit: CircuitConfig = field(default_factory=CircuitConfig)
    max_retry_attempts: int = 3
    initial_retry_delay: float = 0.1
    fallback_cache_ttl_seconds: float = 300.0

    # Engine limits
    stage_timeout_seconds: float = 5.0
    max_concurrent_stages: int = 3

    # Context
    relevance_threshold: float = 0.3
    max_context_messages: int = 5
    context_scoring_strategy: str = 'relevance_formula'
    context_max_tokens: int = 1200
    context_reserve_tokens: int = 200

    # Metrics
    baseline_tokens: int = 2000
    slow_query_ms: float = 500.0
    min_token_efficiency: float = 0.2

    verbose: bool = False

    @classmethod
    def from_env(cls) -> 'IntelligenceConfig':
        return cls(
            enable_result_cache=Config.ENABLE_RESULT_CACHE,
            cache_sweep_interval_seconds=Config.CACHE_SWEEP_INTERVAL_SECONDS,
            circuit=CircuitConfig(
                failure_threshold=Config.CIRCUIT_FAILURE_THRESHOLD,
                success_threshold=Config.CIRCUIT_SUCCESS_THRESHOLD,
                timeout_seconds=Config.CIRCUIT_TIMEOUT_SECONDS,
            ),
            max_retry_attempts=Config.MAX_RETRY_ATTEMPTS,
            initial_retry_delay=Config.INITIAL_RETRY_DELAY,
            fallback_cache_ttl_seconds=Config.FALLBACK_CACHE_TTL_SECONDS,
            stage_timeout_seconds=Config.STAGE_TIMEOUT_SECONDS,
            max_concurrent_stages=Config.MAX_CONCURRENT_STAGES,
            relevance_threshold=Config.RELEVANCE_THRESHOLD,
            max_context_messages=Config.MAX_CONTEXT_MESSAGES,
            context_max_tokens=Config.CONTEXT_MAX_TOKENS,
            context_reserve_tokens=Config.CONTEXT_RESERVE_TOKENS,
            baseline_tokens=Config.BASELINE_TOKENS,
            slow_query_ms=Config.SLOW_QUERY_MS,
            min_token_efficiency=Config.MIN_TOKEN_EFFICIENCY,
            verbose=Config.VERBOSE,
        )
