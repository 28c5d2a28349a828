"""
Error Recovery for Intelligence Components

Every component call made by the engine goes through `ErrorHandler`:

1. The component's circuit breaker is consulted; an open circuit skips the
   call and goes straight to fallback.
2. The call runs under the retry manager; transient failures are retried
   with exponential backoff.
3. Anything that still fails is classified and routed to the fallback
   hierarchy:

   Level 1  basic pattern reply         greeting 50, help 80, debug 200, other 100
   Level 2  simple regex classification simple 150, creation 400, complex 800
   Level 3  full-context pass-through   1500
   Level 4  emergency minimal response  50 tokens, confidence 0.1

   Each additional failure within one query moves one level down. Fallback
   results are cached per (component, query prefix) for five minutes.

Permission errors are never auto-recovered: `handle_error` raises
EscalationRequired to its caller.

Author: AI System
Version: 2.0
"""

import inspect
import re
import threading
import time
from collections import Counter, deque
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.circuit_breaker import CircuitBreaker, CircuitConfig, CircuitState
from core.resilience import RetryManager
from error_handler import (
    ErrorCategory, ErrorClassification, ErrorClassifier, EscalationRequired,
    RecoveryAction, format_error_for_log,
)
from intelligence.base_types import ContextLevel, ProcessingStrategy, QueryType
from logger import get_logger

logger = get_logger(__name__)

COMPONENTS = [
    'pattern_matching',
    'query_classification',
    'surface_analysis',
    'deep_analysis',
    'contextual_analysis',
    'complexity_analysis',
    'context_requirements',
    'context_retrieval',
    'confidence_scoring',
]

MAX_FALLBACK_LEVEL = 4
EMERGENCY_TOKENS = 50
EMERGENCY_CONFIDENCE = 0.1
FULL_CONTEXT_TOKENS = 1500

_GREETING = re.compile(r'^(hi|hello|hey)', re.IGNORECASE)
_HELP = re.compile(r'help|assist', re.IGNORECASE)
_DEBUG = re.compile(r'debug|error|fix', re.IGNORECASE)
_CREATION = re.compile(r'create|build|make', re.IGNORECASE)
_COMPLEX = re.compile(r'error|debug|complex|architecture', re.IGNORECASE)


@dataclass
class FallbackResult:
    """Degraded analysis produced when a component cannot answer"""
    level: int
    kind: str
    query_type: QueryType
    estimated_tokens: int
    confidence: float
    reason: str
    recovery_action: RecoveryAction = RecoveryAction.FALLBACK
    category: Optional[ErrorCategory] = None

    @property
    def context_level(self) -> ContextLevel:
        if self.estimated_tokens > 500:
            return ContextLevel.COMPREHENSIVE
        if self.estimated_tokens > 200:
            return ContextLevel.TECHNICAL
        return ContextLevel.MINIMAL

    @property
    def strategy(self) -> ProcessingStrategy:
        if self.level >= MAX_FALLBACK_LEVEL:
            return ProcessingStrategy.EMERGENCY_FALLBACK
        return {
            ContextLevel.MINIMAL: ProcessingStrategy.MINIMAL_CONTEXT,
            ContextLevel.TECHNICAL: ProcessingStrategy.TECHNICAL_CONTEXT,
            ContextLevel.COMPREHENSIVE: ProcessingStrategy.COMPREHENSIVE_ANALYSIS,
        }[self.context_level]


@dataclass
class ErrorRecord:
    component: str
    query: str
    classification: ErrorClassification
    timestamp: float
    fallback_level: int = 0


@dataclass
class ComponentOutcome:
    """What a guarded component call produced"""
    value: Any = None
    fallback: Optional[FallbackResult] = None
    error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.fallback is not None


class ErrorHandler:
    """
    Circuit breakers, retries and the fallback hierarchy behind one facade.

    The engine tracks how many fallbacks a query has already taken and passes
    that as `fallback_level`; the handler always degrades one level further.
    """

    def __init__(
        self,
        circuit_breaker: Optional[CircuitBreaker] = None,
        retry_manager: Optional[RetryManager] = None,
        confidence_scorer=None,
        metrics=None,
        fallback_cache_ttl: float = 300.0,
        max_history: int = 1000,
        clock: Callable[[], float] = time.time,
        verbose: bool = False
    ):
        self.clock = clock
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            CircuitConfig(), components=COMPONENTS, clock=clock
        )
        self.retry_manager = retry_manager or RetryManager()
        self.confidence_scorer = confidence_scorer
        self.metrics = metrics
        self.fallback_cache_ttl = fallback_cache_ttl
        self.verbose = verbose

        self.error_history: deque = deque(maxlen=max_history)
        self._fallback_cache: Dict[str, Tuple[float, FallbackResult]] = {}
        self._lock = threading.RLock()

    # ========================================================================
    # GUARDED EXECUTION
    # ========================================================================

    def is_circuit_breaker_open(self, component: str) -> bool:
        return self.circuit_breaker.is_open(component)

    async def execute_with_fallback(
        self,
        component: str,
        query: str,
        operation: Callable[[], Any],
        fallback_level: int = 0
    ) -> ComponentOutcome:
        """
        Run a component call behind its breaker and the retry manager.

        Never raises: failures come back as a ComponentOutcome carrying a
        FallbackResult the caller can turn into a safe default.
        """
        allowed, reason = self.circuit_breaker.can_execute(component)
        if not allowed:
            logger.info(f"Skipping {component}: {reason}")
            return ComponentOutcome(
                fallback=self.fallback(component, query, fallback_level + 1, reason=reason),
                error=reason,
            )

        async def attempt():
            result = operation()
            if inspect.isawaitable(result):
                result = await result
            return result

        operation_key = f"{component}:{query[:50]}:{self.clock()}"
        try:
            value = await self.retry_manager.execute_with_retry(operation_key, component, attempt)
        except Exception as e:
            try:
                fallback = self.handle_error(component, query, e, fallback_level)
            except EscalationRequired as escalation:
                logger.error(f"Escalation from {component}: {escalation}")
                fallback = self._full_context_fallback(
                    f"Escalated: {escalation.classification.explanation}"
                )
                fallback.recovery_action = RecoveryAction.ESCALATE
                fallback.category = escalation.classification.category
            return ComponentOutcome(fallback=fallback, error=str(e))

        self.circuit_breaker.record_success(component)
        return ComponentOutcome(value=value)

    def handle_error(self, component: str, query: str, error: BaseException,
                     fallback_level: int = 0) -> FallbackResult:
        """
        Classify a component failure and produce the next fallback level.

        Raises:
            EscalationRequired: for permission errors
        """
        classification = ErrorClassifier.classify(error, component)
        self._record_failure(component, error)

        with self._lock:
            self.error_history.append(ErrorRecord(
                component=component,
                query=query[:100],
                classification=classification,
                timestamp=self.clock(),
                fallback_level=fallback_level,
            ))

        logger.warning(format_error_for_log(classification, component))

        if classification.category == ErrorCategory.LOGIC and self.confidence_scorer is not None:
            self.confidence_scorer.record_outcome(component, False)

        if classification.action == RecoveryAction.ESCALATE:
            raise EscalationRequired(component, classification)

        fallback = self.fallback(component, query, fallback_level + 1, reason=classification.explanation)
        fallback.category = classification.category
        if classification.category == ErrorCategory.UNKNOWN:
            fallback.confidence = min(fallback.confidence, classification.confidence)
        return fallback

    def _record_failure(self, component: str, error: BaseException):
        was_open = self.circuit_breaker.get_state(component) == CircuitState.OPEN
        self.circuit_breaker.record_failure(component, error)
        metrics = self.circuit_breaker.get_metrics(component)
        if not was_open and metrics.state == CircuitState.OPEN and self.metrics is not None:
            self.metrics.record_circuit_open(
                component, metrics.error_count, self.circuit_breaker.config.failure_threshold
            )

    # ========================================================================
    # FALLBACK HIERARCHY
    # ========================================================================

    def fallback(self, component: str, query: str, level: int, reason: Optional[str] = None) -> FallbackResult:
        """Cached fallback for (component, query prefix) at the given level"""
        level = max(1, min(level, MAX_FALLBACK_LEVEL))
        cache_key = f"{component}_{query[:50]}"
        now = self.clock()

        with self._lock:
            cached = self._fallback_cache.get(cache_key)
            if cached and cached[0] > now and cached[1].level == level:
                logger.debug(f"Using cached fallback for {component}")
                return self._copy(cached[1])

        try:
            result = self._execute_level(level, query)
        except Exception as e:
            logger.error(f"Fallback level {level} failed for {component}: {e}", exc_info=True)
            result = self.emergency_fallback(f"Fallback failed: {e}")

        if reason:
            result.reason = f"{result.reason} ({reason})"

        with self._lock:
            self._fallback_cache[cache_key] = (now + self.fallback_cache_ttl, result)
            self._purge_expired(now)

        if self.verbose:
            print(f"[FALLBACK] {component} -> level {result.level} ({result.kind}, {result.estimated_tokens} tokens)")
        return self._copy(result)

    def _execute_level(self, level: int, query: str) -> FallbackResult:
        if level == 1:
            return self._pattern_fallback(query)
        if level == 2:
            return self._regex_fallback(query)
        if level == 3:
            return self._full_context_fallback()
        return self.emergency_fallback()

    @staticmethod
    def _pattern_fallback(query: str) -> FallbackResult:
        lowered = query.strip().lower()
        if _GREETING.search(lowered):
            kind, tokens = 'greeting', 50
        elif _HELP.search(lowered):
            kind, tokens = 'help_request', 80
        elif _DEBUG.search(lowered):
            kind, tokens = 'debug_request', 200
        else:
            kind, tokens = 'unknown', 100
        return FallbackResult(
            level=1, kind=kind, query_type=QueryType.SIMPLE, estimated_tokens=tokens,
            confidence=0.5, reason=f"Pattern fallback: {kind}",
        )

    @staticmethod
    def _regex_fallback(query: str) -> FallbackResult:
        query_type, tokens = QueryType.SIMPLE, 150
        if _CREATION.search(query):
            query_type, tokens = QueryType.MEDIUM, 400
        if _COMPLEX.search(query):
            query_type, tokens = QueryType.COMPLEX, 800
        return FallbackResult(
            level=2, kind=query_type.value.lower(), query_type=query_type, estimated_tokens=tokens,
            confidence=0.4, reason=f"Regex fallback: {query_type.value}",
        )

    @staticmethod
    def _full_context_fallback(reason: str = "Full-context pass-through") -> FallbackResult:
        return FallbackResult(
            level=3, kind='full_context', query_type=QueryType.COMPLEX,
            estimated_tokens=FULL_CONTEXT_TOKENS, confidence=0.3, reason=reason,
        )

    @staticmethod
    def emergency_fallback(reason: str = "Emergency minimal response") -> FallbackResult:
        return FallbackResult(
            level=4, kind='emergency', query_type=QueryType.SIMPLE,
            estimated_tokens=EMERGENCY_TOKENS, confidence=EMERGENCY_CONFIDENCE,
            reason=reason, recovery_action=RecoveryAction.EMERGENCY,
        )

    @staticmethod
    def _copy(result: FallbackResult) -> FallbackResult:
        return FallbackResult(**{name: getattr(result, name) for name in result.__dataclass_fields__})

    def _purge_expired(self, now: float):
        expired = [key for key, (expires_at, _) in self._fallback_cache.items() if expires_at <= now]
        for key in expired:
            del self._fallback_cache[key]

    # ========================================================================
    # HEALTH
    # ========================================================================

    def get_system_health(self) -> Dict[str, Any]:
        components = self.circuit_breaker.get_health_summary()
        open_circuits = [c['component_name'] for c in components if c['state'] == 'open']
        degraded = [c['component_name'] for c in components if c['status'] == 'degraded']

        if len(open_circuits) > len(components) / 2:
            status = 'critical'
        elif open_circuits or degraded:
            status = 'degraded'
        else:
            status = 'healthy'

        with self._lock:
            now = self.clock()
            recent = [r for r in self.error_history if now - r.timestamp < 300]
            categories = Counter(r.classification.category.value for r in self.error_history)
            cache_size = len(self._fallback_cache)

        return {
            'status': status,
            'components': components,
            'open_circuits': open_circuits,
            'degraded_components': degraded,
            'recent_errors': len(recent),
            'total_errors': len(self.error_history),
            'errors_by_category': dict(categories),
            'fallback_cache_size': cache_size,
            'retry': self.retry_manager.get_statistics(),
        }

    def recent_errors(self, count: int = 10) -> List[Dict[str, Any]]:
        with self._lock:
            records = list(self.error_history)[-count:]
        return [
            {
                'component': r.component,
                'category': r.classification.category.value,
                'action': r.classification.action.value,
                'explanation': r.classification.explanation,
                'fallback_level': r.fallback_level,
                'timestamp': r.timestamp,
            }
            for r in records
        ]

    def clear_error_history(self):
        with self._lock:
            self.error_history.clear()
            self._fallback_cache.clear()
        self.circuit_breaker.reset()
        self.retry_manager.reset()
        logger.info("Error history, fallback cache and circuit breakers cleared")
