"""
Retry Management

Exponential backoff for transient component failures. Every failure is run
through the ErrorClassifier first; only transient categories earn another
attempt; anything else is re-raised at once so the recovery layer can pick
a fallback level.

Author: AI System
Version: 3.0
"""

import asyncio
import random
import time
from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from error_handler import ErrorClassification, ErrorClassifier
from logger import format_fields, get_logger

logger = get_logger(__name__)

# Completed operations remembered for statistics
MAX_TRACKED_OPERATIONS = 500


@dataclass
class RetryAttempt:
    """One call of a component operation"""
    attempt_number: int
    timestamp: float
    success: bool = False
    error: Optional[str] = None
    category: Optional[str] = None
    delay_seconds: float = 0.0


@dataclass
class RetryContext:
    """Attempt log for a single guarded component call"""
    operation_key: str
    component: str
    max_retries: int
    attempts: List[RetryAttempt] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    last_classification: Optional[ErrorClassification] = None

    @property
    def current_attempt(self) -> int:
        return len(self.attempts) + 1

    @property
    def succeeded(self) -> bool:
        return bool(self.attempts) and self.attempts[-1].success

    @property
    def should_retry(self) -> bool:
        """Another attempt is allowed only for retryable errors under the cap"""
        if self.last_classification is not None and not self.last_classification.is_retryable:
            return False
        return len(self.attempts) < self.max_retries

    @property
    def total_elapsed_time(self) -> float:
        return time.time() - self.started_at


class RetryManager:
    """
    Runs component operations with classifier-driven retries.

    The delay before retry n is base_delay * backoff_factor ** (n - 1),
    capped at max_delay, optionally jittered by up to 20% either way. A
    shared retry budget stops a failing dependency from multiplying load
    across many concurrent queries.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        backoff_factor: float = 2.0,
        jitter: bool = False,
        retry_budget: int = 50,
        sleep: Callable[[float], Any] = asyncio.sleep,
        verbose: bool = False
    ):
        """
        Args:
            max_retries: Attempts per operation, the first call included
            base_delay: Delay before the first retry, in seconds
            max_delay: Upper bound on any single delay
            backoff_factor: Growth of the delay per attempt
            jitter: Randomize delays by up to 20%
            retry_budget: Retries allowed across all operations until reset
            sleep: Awaitable sleep, replaceable in tests
            verbose: Print retry decisions
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter
        self.retry_budget = retry_budget
        self.sleep = sleep
        self.verbose = verbose

        self.operations: "OrderedDict[str, RetryContext]" = OrderedDict()
        self.retries_used = 0

    def calculate_delay(self, attempt_number: int) -> float:
        """Delay before the retry that follows `attempt_number` (1-indexed)"""
        delay = min(self.base_delay * self.backoff_factor ** (attempt_number - 1), self.max_delay)
        if not self.jitter:
            return delay
        spread = delay * 0.2
        return max(0.0, delay + random.uniform(-spread, spread))

    def _track(self, context: RetryContext):
        self.operations[context.operation_key] = context
        self.operations.move_to_end(context.operation_key)
        while len(self.operations) > MAX_TRACKED_OPERATIONS:
            self.operations.popitem(last=False)

    async def execute_with_retry(
        self,
        operation_key: str,
        component: str,
        operation: Callable[[], Any]
    ) -> Any:
        """
        Await `operation()` until it succeeds or may not be retried.

        Raises:
            The last exception, once it is non-retryable, the attempt cap is
            reached, or the shared retry budget is spent
        """
        context = RetryContext(operation_key, component, self.max_retries)
        self._track(context)

        while True:
            attempt = context.current_attempt
            try:
                result = await operation()
            except Exception as e:
                classification = ErrorClassifier.classify(e, component)
                context.last_classification = classification
                delay = self.calculate_delay(attempt)
                context.attempts.append(RetryAttempt(
                    attempt_number=attempt,
                    timestamp=time.time(),
                    error=str(e),
                    category=classification.category.value,
                    delay_seconds=delay,
                ))

                if not context.should_retry:
                    logger.debug("Giving up: " + format_fields(
                        component=component, attempts=attempt,
                        category=classification.category.value,
                        elapsed=f"{context.total_elapsed_time:.2f}s",
                    ))
                    if self.verbose:
                        print(f"[RETRY] {component}: giving up after {attempt} attempt(s): {e}")
                    raise

                if self.retries_used >= self.retry_budget:
                    logger.warning(f"Retry budget spent ({self.retries_used}/{self.retry_budget}), "
                                   f"not retrying {component}")
                    raise

                self.retries_used += 1
                logger.info(f"Retrying {component} in {delay:.2f}s "
                            f"(attempt {attempt + 1}/{self.max_retries}, {classification.category.value})")
                if self.verbose:
                    print(f"[RETRY] {component}: attempt {attempt + 1} after {delay:.2f}s")
                await self.sleep(delay)
                continue

            context.attempts.append(RetryAttempt(attempt_number=attempt, timestamp=time.time(), success=True))
            return result

    def get_statistics(self) -> Dict[str, Any]:
        """Retry counters overall and per component"""
        contexts = list(self.operations.values())
        succeeded = sum(1 for ctx in contexts if ctx.succeeded)

        by_component: Dict[str, Dict[str, int]] = {}
        for ctx in contexts:
            entry = by_component.setdefault(ctx.component, {'operations': 0, 'retries': 0, 'failed': 0})
            entry['operations'] += 1
            entry['retries'] += max(len(ctx.attempts) - 1, 0)
            if not ctx.succeeded:
                entry['failed'] += 1

        failure_categories = Counter(
            attempt.category for ctx in contexts for attempt in ctx.attempts if attempt.category
        )

        return {
            'total_operations': len(contexts),
            'successful': succeeded,
            'failed': len(contexts) - succeeded,
            'retry_budget_used': self.retries_used,
            'retry_budget_remaining': self.retry_budget - self.retries_used,
            'failure_categories': dict(failure_categories),
            'by_component': by_component,
        }

    def reset(self):
        self.operations.clear()
        self.retries_used = 0
