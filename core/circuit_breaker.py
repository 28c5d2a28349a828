"""
Circuit Breaker Pattern Implementation

Isolates failing intelligence components so one broken analyzer cannot
drag down every query.

Circuit States:
- CLOSED: Normal operation, calls allowed
- OPEN: Too many failures, calls short-circuit to fallback
- HALF_OPEN: Timeout elapsed, calls allowed while recovery is tested

Transitions:
- CLOSED -> OPEN when error count reaches the failure threshold
- OPEN -> HALF_OPEN on the first call after the timeout window
- HALF_OPEN -> CLOSED after N consecutive successes
- HALF_OPEN -> OPEN on any failure
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from logger import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states"""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitMetrics:
    """Per-component breaker state and counters"""
    state: CircuitState = CircuitState.CLOSED
    error_count: int = 0
    success_count: int = 0
    consecutive_successes: int = 0
    total_failures: int = 0
    rejected_requests: int = 0
    last_error_time: Optional[float] = None
    last_error: Optional[str] = None
    timeout_until: Optional[float] = None
    last_state_change: Optional[float] = None
    circuit_opened_count: int = 0

    def success_rate(self) -> float:
        """Calculate success rate (0.0-1.0)"""
        total = self.success_count + self.total_failures
        if total == 0:
            return 1.0
        return self.success_count / total


@dataclass
class CircuitConfig:
    """Configuration for circuit breaker"""
    failure_threshold: int = 5      # Errors before opening circuit
    success_threshold: int = 3      # Consecutive successes to close from half-open
    timeout_seconds: float = 60.0   # Open window before recovery is attempted


class CircuitBreaker:
    """
    Per-component circuit breakers behind one lock.

    All state changes go through `_transition`, so the FSM can be tested
    without the engine.
    """

    def __init__(
        self,
        config: Optional[CircuitConfig] = None,
        components: Optional[List[str]] = None,
        clock: Callable[[], float] = time.time,
        verbose: bool = False
    ):
        self.config = config or CircuitConfig()
        self.clock = clock
        self.verbose = verbose

        self.metrics: Dict[str, CircuitMetrics] = {}
        self._lock = threading.RLock()

        for component in components or []:
            self._get_metrics(component)

    def _get_metrics(self, component: str) -> CircuitMetrics:
        """Get or create metrics for component"""
        if component not in self.metrics:
            self.metrics[component] = CircuitMetrics()
        return self.metrics[component]

    def _transition(self, component: str, new_state: CircuitState):
        """Single state transition function for every component"""
        metrics = self._get_metrics(component)
        old_state = metrics.state
        if old_state == new_state:
            return

        now = self.clock()
        metrics.state = new_state
        metrics.last_state_change = now

        if new_state == CircuitState.OPEN:
            metrics.timeout_until = now + self.config.timeout_seconds
            metrics.circuit_opened_count += 1
            metrics.consecutive_successes = 0
            logger.warning(
                f"Circuit OPEN for {component} after {metrics.error_count} errors, "
                f"retry in {self.config.timeout_seconds:.0f}s"
            )
        elif new_state == CircuitState.HALF_OPEN:
            metrics.consecutive_successes = 0
            logger.info(f"Circuit HALF_OPEN for {component}, testing recovery")
        else:
            metrics.timeout_until = None
            metrics.error_count = 0
            metrics.consecutive_successes = 0
            logger.info(f"Circuit CLOSED for {component}, component recovered")

        if self.verbose:
            print(f"[CIRCUIT] {component}: {old_state.value} -> {new_state.value}")

    def can_execute(self, component: str) -> Tuple[bool, Optional[str]]:
        """
        Check if a call should be allowed to proceed.

        Returns:
            (allowed, reason): Boolean indicating if allowed, and reason if not
        """
        with self._lock:
            metrics = self._get_metrics(component)

            if metrics.state == CircuitState.CLOSED:
                return (True, None)

            if metrics.state == CircuitState.OPEN:
                now = self.clock()
                if metrics.timeout_until is None or now >= metrics.timeout_until:
                    self._transition(component, CircuitState.HALF_OPEN)
                    return (True, "Circuit transitioning to HALF_OPEN for recovery test")

                metrics.rejected_requests += 1
                remaining = metrics.timeout_until - now
                return (False, f"Circuit OPEN for {component}. Recovery attempt in {remaining:.0f}s")

            return (True, "Circuit in HALF_OPEN state, testing recovery")

    def is_open(self, component: str) -> bool:
        """True while the component is short-circuited (timeout not yet elapsed)"""
        with self._lock:
            metrics = self._get_metrics(component)
            if metrics.state != CircuitState.OPEN:
                return False
            return metrics.timeout_until is not None and self.clock() < metrics.timeout_until

    def record_success(self, component: str):
        """Record successful call"""
        with self._lock:
            metrics = self._get_metrics(component)
            metrics.success_count += 1
            metrics.consecutive_successes += 1
            metrics.error_count = max(0, metrics.error_count - 1)

            if metrics.state == CircuitState.OPEN:
                # A call slipped through after the window; count it as the first trial call
                self._transition(component, CircuitState.HALF_OPEN)
                metrics.consecutive_successes = 1

            if metrics.state == CircuitState.HALF_OPEN and \
                    metrics.consecutive_successes >= self.config.success_threshold:
                self._transition(component, CircuitState.CLOSED)

    def record_failure(self, component: str, error: Optional[BaseException] = None):
        """Record failed call"""
        with self._lock:
            metrics = self._get_metrics(component)
            metrics.error_count += 1
            metrics.total_failures += 1
            metrics.consecutive_successes = 0
            metrics.last_error_time = self.clock()
            if error is not None:
                metrics.last_error = str(error)[:200]

            if metrics.state == CircuitState.HALF_OPEN:
                self._transition(component, CircuitState.OPEN)
            elif metrics.state == CircuitState.CLOSED and \
                    metrics.error_count >= self.config.failure_threshold:
                self._transition(component, CircuitState.OPEN)

    def get_state(self, component: str) -> CircuitState:
        with self._lock:
            return self._get_metrics(component).state

    def get_metrics(self, component: str) -> CircuitMetrics:
        with self._lock:
            return self._get_metrics(component)

    def reset(self, component: Optional[str] = None):
        """Manually reset one or every circuit to CLOSED with clean counters"""
        with self._lock:
            names = [component] if component else list(self.metrics)
            for name in names:
                self.metrics[name] = CircuitMetrics(last_state_change=self.clock())

    def health_status(self, component: str) -> str:
        """healthy | degraded | error"""
        with self._lock:
            metrics = self._get_metrics(component)
            if metrics.state == CircuitState.OPEN:
                return "error"
            if metrics.state == CircuitState.HALF_OPEN or metrics.error_count > 0:
                return "degraded"
            return "healthy"

    def get_health_summary(self) -> List[Dict[str, Any]]:
        """Health feed entry per component"""
        with self._lock:
            return [
                {
                    'component_name': name,
                    'status': self.health_status(name),
                    'state': metrics.state.value,
                    'error_count': metrics.error_count,
                    'success_count': metrics.success_count,
                    'success_rate': metrics.success_rate(),
                    'rejected_requests': metrics.rejected_requests,
                    'last_error': metrics.last_error,
                    'timeout_until': metrics.timeout_until,
                }
                for name, metrics in self.metrics.items()
            ]
