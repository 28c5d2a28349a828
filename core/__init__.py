"""Core System - caching, resilience, stage execution and metrics"""

# Multi-layer cache
from .cache_manager import (
    CacheLayer,
    CacheManager,
    EvictionPolicy,
    LayerConfig,
    default_layer_configs,
)

# Resilience and retry management
from .circuit_breaker import (
    CircuitBreaker,
    CircuitConfig,
    CircuitState,
)
from .resilience import (
    RetryAttempt,
    RetryContext,
    RetryManager,
)

# Stage execution
from .parallel_executor import (
    StageExecutor,
    StageTask,
    TaskStatus,
)

# Metrics
from .metrics import (
    Alert,
    MetricsCollector,
    QueryMetrics,
)

__all__ = [
    # Cache
    'CacheLayer',
    'CacheManager',
    'EvictionPolicy',
    'LayerConfig',
    'default_layer_configs',
    # Resilience
    'CircuitBreaker',
    'CircuitConfig',
    'CircuitState',
    'RetryAttempt',
    'RetryContext',
    'RetryManager',
    # Execution
    'StageExecutor',
    'StageTask',
    'TaskStatus',
    # Metrics
    'Alert',
    'MetricsCollector',
    'QueryMetrics',
]
