"""
Query Metrics and Token Savings

Collects the per-query metrics feed, attributes token savings to the
strategy that produced them, and raises threshold alerts. Consumers
(dashboards, alert channels) subscribe; nothing here persists data.

Author: AI System
Version: 1.0
"""

import threading
import time
from collections import Counter, defaultdict, deque
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Deque, Dict, List, Optional

from logger import get_logger

logger = get_logger(__name__)


@dataclass
class QueryMetrics:
    """One record of the metrics feed"""
    query_id: str
    strategy: str
    analysis_time: float
    context_retrieval_time: float
    pattern_matching_time: float
    total_processing_time: float
    confidence_score: float
    token_estimate: int
    token_efficiency: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class Alert:
    """Threshold breach emitted to subscribers"""
    alert_type: str
    severity: str  # info | warning | critical
    message: str
    value: float
    threshold: float
    query_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


def token_efficiency(token_estimate: int, baseline_tokens: int) -> float:
    """(baseline - used) / baseline, clamped to [0, 1]"""
    if baseline_tokens <= 0:
        return 0.0
    return max(0.0, min(1.0, (baseline_tokens - token_estimate) / baseline_tokens))


class MetricsCollector:
    """
    Collects per-query metrics and savings analytics.

    Features:
    - Bounded metrics history
    - Subscriber callbacks for metrics and alerts
    - Savings attribution per strategy
    - Slow-query, low-efficiency and circuit-open alerts
    """

    def __init__(
        self,
        baseline_tokens: int = 2000,
        slow_query_ms: float = 500.0,
        min_efficiency: float = 0.2,
        max_history: int = 1000,
        verbose: bool = False
    ):
        self.baseline_tokens = baseline_tokens
        self.slow_query_ms = slow_query_ms
        self.min_efficiency = min_efficiency
        self.verbose = verbose

        self.history: Deque[QueryMetrics] = deque(maxlen=max_history)
        self.alerts: Deque[Alert] = deque(maxlen=max_history)

        self.strategy_counts: Counter = Counter()
        self.tokens_saved_by_strategy: Dict[str, int] = defaultdict(int)
        self.total_queries = 0
        self.total_tokens_used = 0
        self.total_tokens_saved = 0

        self._metric_subscribers: List[Callable[[QueryMetrics], None]] = []
        self._alert_subscribers: List[Callable[[Alert], None]] = []
        self._lock = threading.RLock()

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    def subscribe(self, callback: Callable[[QueryMetrics], None]):
        self._metric_subscribers.append(callback)

    def subscribe_alerts(self, callback: Callable[[Alert], None]):
        self._alert_subscribers.append(callback)

    def _notify(self, subscribers: List[Callable], payload: Any):
        for callback in list(subscribers):
            try:
                callback(payload)
            except Exception as e:
                logger.warning(f"Metrics subscriber failed: {e}")

    # =========================================================================
    # RECORDING
    # =========================================================================

    def record_query(
        self,
        query_id: str,
        strategy: str,
        token_estimate: int,
        confidence_score: float,
        analysis_time: float = 0.0,
        context_retrieval_time: float = 0.0,
        pattern_matching_time: float = 0.0,
        total_processing_time: float = 0.0,
    ) -> QueryMetrics:
        """Record one analyzed query and publish it to subscribers"""
        efficiency = token_efficiency(token_estimate, self.baseline_tokens)
        record = QueryMetrics(
            query_id=query_id,
            strategy=strategy,
            analysis_time=analysis_time,
            context_retrieval_time=context_retrieval_time,
            pattern_matching_time=pattern_matching_time,
            total_processing_time=total_processing_time,
            confidence_score=confidence_score,
            token_estimate=token_estimate,
            token_efficiency=efficiency,
        )

        saved = max(0, self.baseline_tokens - token_estimate)
        with self._lock:
            self.history.append(record)
            self.total_queries += 1
            self.total_tokens_used += token_estimate
            self.total_tokens_saved += saved
            self.strategy_counts[strategy] += 1
            self.tokens_saved_by_strategy[strategy] += saved

        if self.verbose:
            print(f"[METRICS] {query_id}: {strategy} {token_estimate} tokens "
                  f"({efficiency:.0%} efficient, {total_processing_time:.1f}ms)")

        self._notify(self._metric_subscribers, record)
        self._check_thresholds(record)
        return record

    def _check_thresholds(self, record: QueryMetrics):
        if record.total_processing_time > self.slow_query_ms:
            self.emit_alert(Alert(
                alert_type='slow_query',
                severity='warning',
                message=f"Query took {record.total_processing_time:.0f}ms",
                value=record.total_processing_time,
                threshold=self.slow_query_ms,
                query_id=record.query_id,
            ))
        if record.token_efficiency < self.min_efficiency:
            self.emit_alert(Alert(
                alert_type='low_token_efficiency',
                severity='info',
                message=f"Token efficiency {record.token_efficiency:.0%} below floor",
                value=record.token_efficiency,
                threshold=self.min_efficiency,
                query_id=record.query_id,
            ))

    def record_circuit_open(self, component: str, error_count: int, threshold: int):
        self.emit_alert(Alert(
            alert_type='circuit_open',
            severity='critical',
            message=f"Circuit opened for {component}",
            value=float(error_count),
            threshold=float(threshold),
        ))

    def emit_alert(self, alert: Alert):
        with self._lock:
            self.alerts.append(alert)
        log = logger.warning if alert.severity != 'info' else logger.info
        log(f"Alert [{alert.alert_type}] {alert.message}")
        self._notify(self._alert_subscribers, alert)

    # =========================================================================
    # ANALYTICS
    # =========================================================================

    def get_savings_analytics(self) -> Dict[str, Any]:
        with self._lock:
            potential = self.total_queries * self.baseline_tokens
            return {
                'total_queries': self.total_queries,
                'total_tokens_used': self.total_tokens_used,
                'total_tokens_saved': self.total_tokens_saved,
                'average_tokens_saved': self.total_tokens_saved / self.total_queries if self.total_queries else 0.0,
                'overall_efficiency': self.total_tokens_saved / potential if potential else 0.0,
                'by_strategy': {
                    strategy: {
                        'queries': count,
                        'tokens_saved': self.tokens_saved_by_strategy[strategy],
                    }
                    for strategy, count in self.strategy_counts.items()
                },
            }

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            records = list(self.history)
        if not records:
            return {'queries': 0}

        times = sorted(r.total_processing_time for r in records)
        return {
            'queries': len(records),
            'avg_processing_time_ms': sum(times) / len(times),
            'p95_processing_time_ms': times[min(len(times) - 1, int(len(times) * 0.95))],
            'avg_confidence': sum(r.confidence_score for r in records) / len(records),
            'avg_token_efficiency': sum(r.token_efficiency for r in records) / len(records),
            'alerts': len(self.alerts),
        }

    def recent(self, count: int = 10) -> List[Dict[str, Any]]:
        with self._lock:
            return [asdict(r) for r in list(self.history)[-count:]]
