"""
Tests for error classification and the four-level fallback hierarchy.
"""

import pytest

from core.circuit_breaker import CircuitBreaker, CircuitConfig, CircuitState
from core.metrics import MetricsCollector
from core.resilience import RetryManager
from error_handler import (
    ComponentTimeoutError, ErrorCategory, ErrorClassifier, EscalationRequired, RecoveryAction,
)
from intelligence.base_types import ContextLevel, ProcessingStrategy, QueryType
from intelligence.confidence_scorer import ConfidenceScorer
from intelligence.error_recovery import ErrorHandler, FallbackResult


async def no_sleep(delay):
    return None


@pytest.fixture
def handler(clock):
    return ErrorHandler(retry_manager=RetryManager(max_retries=1, sleep=no_sleep), clock=clock)


def raiser(error):
    def operation():
        raise error
    return operation


# ============================================================================
# CLASSIFICATION
# ============================================================================

@pytest.mark.parametrize("error, category, action", [
    (PermissionError("nope"), ErrorCategory.PERMISSION, RecoveryAction.ESCALATE),
    ("HTTP 403 forbidden", ErrorCategory.PERMISSION, RecoveryAction.ESCALATE),
    (MemoryError(), ErrorCategory.RESOURCE, RecoveryAction.FALLBACK),
    (TimeoutError(), ErrorCategory.TRANSIENT, RecoveryAction.RETRY),
    (ComponentTimeoutError('deep_analysis', 0.5), ErrorCategory.TRANSIENT, RecoveryAction.RETRY),
    ("connection reset by peer", ErrorCategory.TRANSIENT, RecoveryAction.RETRY),
    (KeyError('primary_action'), ErrorCategory.LOGIC, RecoveryAction.FALLBACK),
    (ValueError("value was undefined"), ErrorCategory.LOGIC, RecoveryAction.FALLBACK),
    (RuntimeError("deep analyzer exploded"), ErrorCategory.UNKNOWN, RecoveryAction.FALLBACK),
])
def test_classify(error, category, action):
    classification = ErrorClassifier.classify(error, 'deep_analysis')

    assert classification.category == category
    assert classification.action == action
    assert classification.technical_details.startswith('[deep_analysis]')


def test_unknown_error_confidence():
    classification = ErrorClassifier.classify(RuntimeError("strange"))

    assert classification.confidence == 0.6
    assert not classification.is_retryable
    assert not classification.is_defect


# ============================================================================
# RETRY
# ============================================================================

def test_backoff_delays():
    manager = RetryManager(base_delay=1.0, max_delay=10.0, backoff_factor=2.0)

    assert [manager.calculate_delay(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]
    assert manager.calculate_delay(5) == 10.0


def test_jitter_stays_within_bounds():
    manager = RetryManager(base_delay=1.0, jitter=True)

    for _ in range(20):
        assert 0.8 <= manager.calculate_delay(1) <= 1.2


async def test_transient_failures_are_retried():
    delays = []

    async def record_sleep(delay):
        delays.append(delay)

    manager = RetryManager(base_delay=0.1, sleep=record_sleep)
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("connection dropped")
        return 'ok'

    assert await manager.execute_with_retry('k', 'context_retrieval', flaky) == 'ok'
    assert delays == pytest.approx([0.1, 0.2])
    stats = manager.get_statistics()
    assert stats['retry_budget_used'] == 2
    assert stats['failure_categories'] == {'transient': 2}
    assert stats['by_component']['context_retrieval'] == {'operations': 1, 'retries': 2, 'failed': 0}


async def test_retries_exhausted():
    manager = RetryManager(base_delay=0.1, sleep=no_sleep)
    calls = []

    async def always_down():
        calls.append(1)
        raise ConnectionError("network down")

    with pytest.raises(ConnectionError):
        await manager.execute_with_retry('k', 'context_retrieval', always_down)
    assert len(calls) == 3
    assert manager.get_statistics()['failed'] == 1


async def test_non_retryable_error_raised_immediately():
    manager = RetryManager(sleep=no_sleep)
    calls = []

    async def broken():
        calls.append(1)
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        await manager.execute_with_retry('k', 'deep_analysis', broken)
    assert len(calls) == 1


# ============================================================================
# FALLBACK HIERARCHY
# ============================================================================

@pytest.mark.parametrize("query, kind, tokens", [
    ("hello there", 'greeting', 50),
    ("can you help", 'help_request', 80),
    ("fix my build", 'debug_request', 200),
    ("explain closures", 'unknown', 100),
])
def test_level_one_pattern_fallback(handler, query, kind, tokens):
    result = handler.fallback('query_classification', query, 1)

    assert result.level == 1
    assert result.kind == kind
    assert result.estimated_tokens == tokens
    assert result.query_type == QueryType.SIMPLE
    assert result.confidence == 0.5


@pytest.mark.parametrize("query, query_type, tokens", [
    ("explain closures", QueryType.SIMPLE, 150),
    ("create a form", QueryType.MEDIUM, 400),
    ("build an error boundary", QueryType.COMPLEX, 800),
])
def test_level_two_regex_fallback(handler, query, query_type, tokens):
    result = handler.fallback('query_classification', query, 2)

    assert result.query_type == query_type
    assert result.estimated_tokens == tokens
    assert result.confidence == 0.4


def test_level_three_and_four(handler):
    full = handler.fallback('deep_analysis', "anything", 3)
    emergency = handler.fallback('surface_analysis', "anything", 4)

    assert full.estimated_tokens == 1500
    assert full.context_level == ContextLevel.COMPREHENSIVE
    assert full.strategy == ProcessingStrategy.COMPREHENSIVE_ANALYSIS
    assert emergency.estimated_tokens == 50
    assert emergency.confidence == 0.1
    assert emergency.strategy == ProcessingStrategy.EMERGENCY_FALLBACK
    assert emergency.recovery_action == RecoveryAction.EMERGENCY


def test_levels_are_clamped(handler):
    assert handler.fallback('deep_analysis', "x", 0).level == 1
    assert handler.fallback('deep_analysis', "x", 9).level == 4


def test_context_level_follows_tokens():
    def result(tokens):
        return FallbackResult(level=2, kind='x', query_type=QueryType.SIMPLE,
                              estimated_tokens=tokens, confidence=0.4, reason='r')

    assert result(200).context_level == ContextLevel.MINIMAL
    assert result(400).context_level == ContextLevel.TECHNICAL
    assert result(800).context_level == ContextLevel.COMPREHENSIVE


def test_fallbacks_are_cached_per_component_and_prefix(handler, clock):
    first = handler.fallback('deep_analysis', "hello there", 1)
    first.estimated_tokens = 9999

    assert handler.fallback('deep_analysis', "hello there", 1).estimated_tokens == 50
    assert handler.get_system_health()['fallback_cache_size'] == 1

    clock.advance(301)
    handler.fallback('surface_analysis', "hello there", 1)
    assert handler.get_system_health()['fallback_cache_size'] == 1


# ============================================================================
# GUARDED EXECUTION
# ============================================================================

async def test_success_passes_value_through(handler):
    outcome = await handler.execute_with_fallback('deep_analysis', "q", lambda: 'value')

    assert not outcome.degraded
    assert outcome.value == 'value'


async def test_unknown_error_becomes_next_level(handler):
    outcome = await handler.execute_with_fallback(
        'deep_analysis', "explain closures", raiser(RuntimeError("deep analyzer exploded")),
    )

    assert outcome.degraded
    assert outcome.fallback.level == 1
    assert outcome.fallback.category == ErrorCategory.UNKNOWN
    assert outcome.fallback.confidence == 0.5
    assert 'Unrecognized error' in outcome.fallback.reason
    assert outcome.error == 'deep analyzer exploded'


async def test_fallback_level_degrades_further(handler):
    outcome = await handler.execute_with_fallback(
        'deep_analysis', "explain closures", raiser(RuntimeError("boom")), fallback_level=1,
    )
    assert outcome.fallback.level == 2
    assert outcome.fallback.confidence == 0.4


async def test_permission_error_escalates(handler):
    outcome = await handler.execute_with_fallback(
        'context_retrieval', "show my files", raiser(PermissionError("access denied")),
    )

    assert outcome.fallback.level == 3
    assert outcome.fallback.estimated_tokens == 1500
    assert outcome.fallback.recovery_action == RecoveryAction.ESCALATE
    assert outcome.fallback.category == ErrorCategory.PERMISSION


def test_handle_error_raises_escalation(handler):
    with pytest.raises(EscalationRequired) as info:
        handler.handle_error('context_retrieval', "q", PermissionError("access denied"))
    assert info.value.component == 'context_retrieval'


async def test_logic_error_counts_against_accuracy(clock):
    scorer = ConfidenceScorer()
    handler = ErrorHandler(retry_manager=RetryManager(sleep=no_sleep), confidence_scorer=scorer, clock=clock)

    await handler.execute_with_fallback('deep_analysis', "q", raiser(KeyError('primary_action')))
    assert scorer.accuracy['deep_analysis'].total_predictions == 1
    assert scorer.accuracy['deep_analysis'].correct_predictions == 0


async def test_transient_error_recovers_on_retry(clock):
    handler = ErrorHandler(retry_manager=RetryManager(base_delay=0.1, sleep=no_sleep), clock=clock)
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise TimeoutError("stage timed out")
        return 'recovered'

    outcome = await handler.execute_with_fallback('context_retrieval', "q", flaky)
    assert outcome.value == 'recovered'
    assert handler.get_system_health()['total_errors'] == 0


async def test_open_circuit_skips_component(clock):
    metrics = MetricsCollector()
    alerts = []
    metrics.subscribe_alerts(alerts.append)
    handler = ErrorHandler(retry_manager=RetryManager(sleep=no_sleep), metrics=metrics, clock=clock)

    for _ in range(5):
        await handler.execute_with_fallback('deep_analysis', "q", raiser(RuntimeError("boom")))
    assert handler.is_circuit_breaker_open('deep_analysis')
    assert [a.alert_type for a in alerts] == ['circuit_open']

    calls = []
    outcome = await handler.execute_with_fallback('deep_analysis', "q", lambda: calls.append(1))
    assert calls == []
    assert outcome.degraded
    assert 'Circuit OPEN' in outcome.error


# ============================================================================
# HEALTH
# ============================================================================

def test_system_health_levels(clock):
    breaker = CircuitBreaker(CircuitConfig(failure_threshold=1), components=['a', 'b'], clock=clock)
    handler = ErrorHandler(circuit_breaker=breaker, clock=clock)
    assert handler.get_system_health()['status'] == 'healthy'

    handler.handle_error('a', "q", RuntimeError("boom"))
    health = handler.get_system_health()
    assert health['status'] == 'degraded'
    assert health['open_circuits'] == ['a']
    assert health['errors_by_category'] == {'unknown': 1}

    handler.handle_error('b', "q", RuntimeError("boom"))
    assert handler.get_system_health()['status'] == 'critical'


def test_recent_errors_and_clear(handler):
    handler.handle_error('deep_analysis', "q", KeyError('x'), fallback_level=2)

    recent = handler.recent_errors()
    assert recent[0]['component'] == 'deep_analysis'
    assert recent[0]['category'] == 'logic'
    assert recent[0]['fallback_level'] == 2

    handler.clear_error_history()
    assert handler.recent_errors() == []
    assert handler.circuit_breaker.get_state('deep_analysis') == CircuitState.CLOSED
