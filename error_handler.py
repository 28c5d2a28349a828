"""
Error Classification for Intelligence Components

Maps component failures onto a small taxonomy so the recovery layer knows
what to do with them:
- Transient errors (retry with backoff)
- Resource pressure (fallback immediately)
- Logic defects inside an analyzer (fallback, count against accuracy)
- Permission issues (escalate to the caller)
- Unknown errors (fallback with reduced confidence)

Author: AI System
Version: 2.0
"""

import asyncio
from enum import Enum
from typing import List, Optional, Union
from dataclasses import dataclass, field


class ErrorCategory(str, Enum):
    """Categories of errors with different handling strategies"""
    TRANSIENT = "transient"      # Timeout / network - retry with backoff
    RESOURCE = "resource"        # Memory pressure - fallback, no retry
    LOGIC = "logic"              # null/undefined/type errors - fallback
    PERMISSION = "permission"    # Access denied - escalate
    UNKNOWN = "unknown"          # Unrecognized - fallback


class RecoveryAction(str, Enum):
    """What the recovery layer should do next"""
    RETRY = "retry"
    FALLBACK = "fallback"
    ESCALATE = "escalate"
    EMERGENCY = "emergency"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


SEVERITY_CONFIDENCE = {
    ErrorSeverity.LOW: 0.8,
    ErrorSeverity.MEDIUM: 0.6,
    ErrorSeverity.HIGH: 0.4,
}


@dataclass
class ErrorClassification:
    """Complete error classification with recovery decision"""
    category: ErrorCategory
    action: RecoveryAction
    severity: ErrorSeverity
    confidence: float
    explanation: str
    technical_details: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)

    @property
    def is_retryable(self) -> bool:
        return self.action == RecoveryAction.RETRY

    @property
    def is_defect(self) -> bool:
        """Logic errors point at a bug in the component itself"""
        return self.category == ErrorCategory.LOGIC


# ============================================================================
# EXCEPTIONS
# ============================================================================

class IntelligenceError(Exception):
    """Base class for errors raised by intelligence components"""

    def __init__(self, message: str, component: Optional[str] = None):
        self.component = component
        super().__init__(message)


class ComponentTimeoutError(IntelligenceError, TimeoutError):
    """A pipeline stage exceeded its time budget"""

    def __init__(self, component: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"{component} timed out after {timeout_seconds:.1f}s", component
        )


class EscalationRequired(IntelligenceError):
    """Raised when an error must be surfaced instead of auto-recovered"""

    def __init__(self, component: str, classification: ErrorClassification):
        self.classification = classification
        super().__init__(
            f"{component} requires escalation: {classification.explanation}",
            component,
        )


class ErrorClassifier:
    """
    Pattern-based error classification.

    Checks the exception type first, then falls back to substring patterns
    on the message. Categories are checked in priority order.
    """

    TRANSIENT_PATTERNS = [
        'timeout',
        'timed out',
        'network',
        'connection',
        'fetch',
        'temporarily unavailable',
    ]

    RESOURCE_PATTERNS = [
        'out of memory',
        'memory',
        'heap',
        'resource exhausted',
    ]

    PERMISSION_PATTERNS = [
        'permission',
        'unauthorized',
        'forbidden',
        'access denied',
        '401',
        '403',
    ]

    LOGIC_PATTERNS = [
        'cannot read property',
        'undefined',
        'null',
        'nonetype',
        'has no attribute',
        'is not subscriptable',
        'unsupported operand',
    ]

    TRANSIENT_TYPES = (TimeoutError, asyncio.TimeoutError, ConnectionError)
    LOGIC_TYPES = (AttributeError, TypeError, KeyError, IndexError, ZeroDivisionError)

    @staticmethod
    def classify(error: Union[BaseException, str], component: Optional[str] = None) -> ErrorClassification:
        """
        Classify an error and return the recovery decision.

        Args:
            error: Exception instance or raw error message
            component: Optional component name (kept in the details)

        Returns:
            ErrorClassification with category, action and confidence
        """
        if isinstance(error, BaseException):
            error_msg = f"{type(error).__name__}: {error}"
        else:
            error_msg = str(error)
        details = f"[{component}] {error_msg}" if component else error_msg
        error_lower = error_msg.lower()

        if isinstance(error, PermissionError) or \
                ErrorClassifier._matches_patterns(error_lower, ErrorClassifier.PERMISSION_PATTERNS):
            return ErrorClassifier._build(
                ErrorCategory.PERMISSION, RecoveryAction.ESCALATE, ErrorSeverity.HIGH,
                "Access denied - cannot be recovered automatically", details,
                ["Check credentials for the calling service"],
            )

        if isinstance(error, MemoryError) or \
                ErrorClassifier._matches_patterns(error_lower, ErrorClassifier.RESOURCE_PATTERNS):
            return ErrorClassifier._build(
                ErrorCategory.RESOURCE, RecoveryAction.FALLBACK, ErrorSeverity.HIGH,
                "Resource pressure - switching to a cheaper path", details,
                ["Reduce cache budgets or concurrent stages"],
            )

        if isinstance(error, ErrorClassifier.TRANSIENT_TYPES) or \
                ErrorClassifier._matches_patterns(error_lower, ErrorClassifier.TRANSIENT_PATTERNS):
            return ErrorClassifier._build(
                ErrorCategory.TRANSIENT, RecoveryAction.RETRY, ErrorSeverity.MEDIUM,
                "Temporary failure - will retry", details,
                ["Operation will be retried with backoff"],
            )

        if isinstance(error, ErrorClassifier.LOGIC_TYPES) or \
                ErrorClassifier._matches_patterns(error_lower, ErrorClassifier.LOGIC_PATTERNS):
            return ErrorClassifier._build(
                ErrorCategory.LOGIC, RecoveryAction.FALLBACK, ErrorSeverity.MEDIUM,
                "Component logic error - using fallback analysis", details,
                ["Inspect component input handling"],
            )

        return ErrorClassification(
            category=ErrorCategory.UNKNOWN,
            action=RecoveryAction.FALLBACK,
            severity=ErrorSeverity.MEDIUM,
            confidence=0.6,
            explanation="Unrecognized error - using fallback analysis",
            technical_details=details,
        )

    @staticmethod
    def _build(category, action, severity, explanation, details, suggestions) -> ErrorClassification:
        return ErrorClassification(
            category=category,
            action=action,
            severity=severity,
            confidence=SEVERITY_CONFIDENCE[severity],
            explanation=explanation,
            technical_details=details,
            suggestions=suggestions,
        )

    @staticmethod
    def _matches_patterns(text: str, patterns: List[str]) -> bool:
        """Check if text matches any pattern (case-insensitive)"""
        return any(pattern in text for pattern in patterns)


def format_error_for_log(classification: ErrorClassification, component: str, attempt: int = 1) -> str:
    """One-line summary of a classified error for the component logs."""
    return (
        f"{component} failed ({classification.category.value}/{classification.severity.value}, "
        f"attempt {attempt}) -> {classification.action.value}: {classification.technical_details}"
    )
