"""
Runtime configuration for the query intelligence engine.
All tunable thresholds live here so deployments can override them via env.
"""

import os
from typing import Dict, Any

from dotenv import load_dotenv

load_dotenv()


class Config:
    """Central configuration for all intelligence components."""

    # Engine
    STAGE_TIMEOUT_SECONDS = float(os.getenv('STAGE_TIMEOUT', '5.0'))
    MAX_CONCURRENT_STAGES = int(os.getenv('MAX_CONCURRENT_STAGES', '3'))
    ENABLE_RESULT_CACHE = os.getenv('ENABLE_RESULT_CACHE', 'true').lower() == 'true'

    # Circuit Breakers
    CIRCUIT_FAILURE_THRESHOLD = int(os.getenv('CIRCUIT_FAILURE_THRESHOLD', '5'))
    CIRCUIT_TIMEOUT_SECONDS = float(os.getenv('CIRCUIT_TIMEOUT', '60.0'))
    CIRCUIT_SUCCESS_THRESHOLD = int(os.getenv('CIRCUIT_SUCCESS_THRESHOLD', '3'))

    # Retry Configuration
    MAX_RETRY_ATTEMPTS = int(os.getenv('MAX_RETRIES', '3'))
    INITIAL_RETRY_DELAY = float(os.getenv('INITIAL_RETRY_DELAY', '0.1'))
    FALLBACK_CACHE_TTL_SECONDS = float(os.getenv('FALLBACK_CACHE_TTL', '300'))

    # Context Retrieval
    RELEVANCE_THRESHOLD = float(os.getenv('RELEVANCE_THRESHOLD', '0.3'))
    MAX_CONTEXT_MESSAGES = int(os.getenv('MAX_CONTEXT_MESSAGES', '5'))
    CONTEXT_MAX_TOKENS = int(os.getenv('CONTEXT_MAX_TOKENS', '1200'))
    CONTEXT_RESERVE_TOKENS = int(os.getenv('CONTEXT_RESERVE_TOKENS', '200'))

    # Cache
    CACHE_SWEEP_INTERVAL_SECONDS = float(os.getenv('CACHE_SWEEP_INTERVAL', '300'))

    # Metrics / Alerts
    BASELINE_TOKENS = int(os.getenv('BASELINE_TOKENS', '2000'))
    SLOW_QUERY_MS = float(os.getenv('SLOW_QUERY_MS', '500'))
    MIN_TOKEN_EFFICIENCY = float(os.getenv('MIN_TOKEN_EFFICIENCY', '0.2'))

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    VERBOSE = os.getenv('VERBOSE', 'false').lower() == 'true'

    @classmethod
    def get_config(cls) -> Dict[str, Any]:
        """Return all config values as a dictionary."""
        return {
            'stage_timeout': cls.STAGE_TIMEOUT_SECONDS,
            'max_concurrent_stages': cls.MAX_CONCURRENT_STAGES,
            'enable_result_cache': cls.ENABLE_RESULT_CACHE,
            'circuit_failure_threshold': cls.CIRCUIT_FAILURE_THRESHOLD,
            'circuit_timeout': cls.CIRCUIT_TIMEOUT_SECONDS,
            'circuit_success_threshold': cls.CIRCUIT_SUCCESS_THRESHOLD,
            'max_retry_attempts': cls.MAX_RETRY_ATTEMPTS,
            'initial_retry_delay': cls.INITIAL_RETRY_DELAY,
            'relevance_threshold': cls.RELEVANCE_THRESHOLD,
            'max_context_messages': cls.MAX_CONTEXT_MESSAGES,
            'context_max_tokens': cls.CONTEXT_MAX_TOKENS,
            'context_reserve_tokens': cls.CONTEXT_RESERVE_TOKENS,
            'baseline_tokens': cls.BASELINE_TOKENS,
            'log_level': cls.LOG_LEVEL,
            'verbose': cls.VERBOSE,
        }
