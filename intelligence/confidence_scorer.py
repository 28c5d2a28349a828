"""
Confidence Scoring System

Combines every analysis signal into one confidence score and a risk
assessment. Six factors are blended:

    signal_strength      0.25   how strongly the classifier and layers fired
    consistency          0.20   whether the intent layers agree
    historical_accuracy  0.20   running accuracy of the contributing components
    pattern_reliability  0.15   how many indicator families fired strongly
    contextual_support   0.15   quality of the retrieved context
    uncertainty_penalty -0.05   low-confidence and disagreement signals

Component accuracy is learned from feedback via `record_outcome`.

Author: AI System
Version: 3.0
"""

import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from intelligence.base_types import (
    ContextResult, IntentAnalysis, QueryClassification, RiskLevel,
)
from logger import get_logger

logger = get_logger(__name__)

FACTOR_WEIGHTS = {
    'signal_strength': 0.25,
    'consistency': 0.20,
    'historical_accuracy': 0.20,
    'pattern_reliability': 0.15,
    'contextual_support': 0.15,
    'uncertainty_penalty': -0.05,
}

TRACKED_COMPONENTS = [
    'classification',
    'intent_analysis',
    'pattern_matching',
    'context_retrieval',
    'surface_analysis',
    'deep_analysis',
    'contextual_analysis',
]

# Components whose accuracy feeds the historical factor
HISTORICAL_COMPONENTS = ['classification', 'intent_analysis']

SEED_ACCURACY = 0.8
MIN_PREDICTIONS = 5
TREND_DELTA = 0.05


@dataclass
class ComponentAccuracy:
    correct_predictions: int = 0
    total_predictions: int = 0
    accuracy: float = SEED_ACCURACY
    trend: str = 'stable'  # improving | stable | declining

    @property
    def effective_accuracy(self) -> float:
        """Seed value until enough predictions have been recorded"""
        if self.total_predictions > MIN_PREDICTIONS:
            return self.accuracy
        return SEED_ACCURACY


@dataclass
class ConfidenceBreakdown:
    overall: float
    factors: Dict[str, float]
    confidence_level: str
    risk_level: RiskLevel
    risk_factors: List[str] = field(default_factory=list)
    mitigations: List[str] = field(default_factory=list)
    confidence_range: Tuple[float, float] = (0.0, 1.0)
    reliability: float = 0.0
    recommendations: List[str] = field(default_factory=list)


class ConfidenceScorer:
    """
    Score confidence in a completed analysis.

    Thread-safe: accuracy tracking is shared across concurrent queries.
    """

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.thresholds = {
            'high': 0.8,
            'medium': 0.6,
            'low': 0.4,
            'unreliable': 0.2,
        }
        self.accuracy: Dict[str, ComponentAccuracy] = {
            name: ComponentAccuracy() for name in TRACKED_COMPONENTS
        }
        self.recent_scores: deque = deque(maxlen=1000)
        self.level_counts: Dict[str, int] = defaultdict(int)
        self._lock = threading.RLock()

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    def calculate_overall_confidence(
        self,
        classification: QueryClassification,
        intent_analysis: IntentAnalysis,
        context: Optional[ContextResult] = None
    ) -> float:
        factors = self._calculate_factors(classification, intent_analysis, context)
        overall = self._combine(factors)

        with self._lock:
            self.recent_scores.append(overall)
            self.level_counts[self.confidence_level(overall)] += 1

        if self.verbose:
            print(f"[CONFIDENCE] {overall:.2f} ({self.confidence_level(overall)})")
        return overall

    def calculate_detailed_confidence(
        self,
        classification: QueryClassification,
        intent_analysis: IntentAnalysis,
        context: Optional[ContextResult] = None
    ) -> ConfidenceBreakdown:
        """Overall score plus risk assessment, range and recommendations"""
        factors = self._calculate_factors(classification, intent_analysis, context)
        overall = self._combine(factors)
        risk_level = self._risk_level(overall)
        risk_factors, mitigations = self._assess_risks(factors, classification)

        spread = factors['uncertainty_penalty'] * 0.3
        confidence_range = (max(0.0, overall - spread), min(1.0, overall + spread))

        reliability = (
            factors['consistency'] * 0.4
            + factors['historical_accuracy'] * 0.4
            + factors['pattern_reliability'] * 0.2
        )

        return ConfidenceBreakdown(
            overall=overall,
            factors=factors,
            confidence_level=self.confidence_level(overall),
            risk_level=risk_level,
            risk_factors=risk_factors,
            mitigations=mitigations,
            confidence_range=confidence_range,
            reliability=reliability,
            recommendations=self._recommendations(overall, factors),
        )

    def record_outcome(self, component: str, was_correct: bool):
        """Update running accuracy and trend for a component"""
        with self._lock:
            record = self.accuracy.setdefault(component, ComponentAccuracy())
            previous = record.accuracy

            record.total_predictions += 1
            if was_correct:
                record.correct_predictions += 1
            record.accuracy = record.correct_predictions / record.total_predictions

            if record.accuracy > previous + TREND_DELTA:
                record.trend = 'improving'
            elif record.accuracy < previous - TREND_DELTA:
                record.trend = 'declining'
            else:
                record.trend = 'stable'

        logger.debug(
            f"Outcome recorded for {component}: correct={was_correct} "
            f"accuracy={record.accuracy:.2f} trend={record.trend}"
        )

    def confidence_level(self, score: float) -> str:
        if score >= self.thresholds['high']:
            return 'high'
        if score >= self.thresholds['medium']:
            return 'medium'
        if score >= self.thresholds['low']:
            return 'low'
        if score >= self.thresholds['unreliable']:
            return 'very_low'
        return 'unreliable'

    def get_confidence_stats(self) -> Dict[str, Any]:
        with self._lock:
            scores = list(self.recent_scores)
            return {
                'thresholds': dict(self.thresholds),
                'total_scored': len(scores),
                'average_confidence': float(np.mean(scores)) if scores else 0.0,
                'level_distribution': dict(self.level_counts),
                'component_accuracy': {
                    name: {
                        'accuracy': record.accuracy,
                        'effective_accuracy': record.effective_accuracy,
                        'total_predictions': record.total_predictions,
                        'trend': record.trend,
                    }
                    for name, record in self.accuracy.items()
                },
            }

    def update_confidence_thresholds(self, **thresholds: float):
        with self._lock:
            for name, value in thresholds.items():
                if name not in self.thresholds:
                    raise ValueError(f"Unknown confidence threshold: {name}")
                if not 0.0 <= value <= 1.0:
                    raise ValueError(f"Threshold {name} must be within [0, 1], got {value}")
                self.thresholds[name] = value
        logger.info(f"Confidence thresholds updated: {self.thresholds}")

    # ========================================================================
    # FACTORS
    # ========================================================================

    def _calculate_factors(self, classification: QueryClassification,
                           intent_analysis: IntentAnalysis,
                           context: Optional[ContextResult]) -> Dict[str, float]:
        return {
            'signal_strength': self._signal_strength(classification, intent_analysis),
            'consistency': self._consistency(intent_analysis),
            'historical_accuracy': self._historical_accuracy(),
            'pattern_reliability': self._pattern_reliability(classification),
            'contextual_support': self._contextual_support(context),
            'uncertainty_penalty': self._uncertainty_penalty(classification, intent_analysis),
        }

    @staticmethod
    def _combine(factors: Dict[str, float]) -> float:
        total = sum(factors[name] * weight for name, weight in FACTOR_WEIGHTS.items())
        return max(0.0, min(total, 1.0))

    @staticmethod
    def _signal_strength(classification: QueryClassification, intent_analysis: IntentAnalysis) -> float:
        layers = intent_analysis.layers()
        avg_layer = sum(layer.confidence for layer in layers) / len(layers)
        base = (classification.confidence + intent_analysis.overall_confidence + avg_layer) / 3
        bonus = min(len(classification.indicators) * 0.1, 0.3)
        return min(base + bonus, 1.0)

    @staticmethod
    def _consistency(intent_analysis: IntentAnalysis) -> float:
        active = [layer for layer in intent_analysis.layers() if layer.confidence > 0]
        if len(active) < 2:
            return 0.5

        unique_types = len({layer.type for layer in active})
        intent_consistency = 1 - (unique_types - 1) / len(active)
        variance = float(np.var([layer.confidence for layer in active]))
        confidence_consistency = max(0.0, 1 - variance * 2)
        return (intent_consistency + confidence_consistency) / 2

    def _historical_accuracy(self) -> float:
        with self._lock:
            values = [
                self.accuracy[name].effective_accuracy
                for name in HISTORICAL_COMPONENTS if name in self.accuracy
            ]
        return sum(values) / len(values) if values else SEED_ACCURACY

    @staticmethod
    def _pattern_reliability(classification: QueryClassification) -> float:
        """Share of indicator families whose combined strength exceeds 0.6"""
        if not classification.indicators:
            return 0.5

        strength: Dict[str, float] = defaultdict(float)
        for indicator in classification.indicators:
            strength[indicator.type] += indicator.confidence * indicator.weight

        strong = sum(1 for value in strength.values() if value > 0.6)
        return min(strong / len(strength) * 1.2, 1.0)

    @staticmethod
    def _contextual_support(context: Optional[ContextResult]) -> float:
        if context is None or not context.selected_messages:
            return 0.3
        messages = context.selected_messages
        avg_relevance = sum(m.relevance_score for m in messages) / len(messages)
        support = context.quality_score + min(len(messages) * 0.1, 0.3) + avg_relevance * 0.2
        return min(support, 1.0)

    @staticmethod
    def _uncertainty_penalty(classification: QueryClassification, intent_analysis: IntentAnalysis) -> float:
        penalty = 0.0
        if classification.confidence < 0.6:
            penalty += 0.2
        layers = intent_analysis.layers()
        if len({layer.type for layer in layers}) == len(layers):
            penalty += 0.15
        if intent_analysis.overall_confidence < 0.6:
            penalty += 0.1
        return min(penalty, 0.5)

    # ========================================================================
    # RISK ASSESSMENT
    # ========================================================================

    @staticmethod
    def _risk_level(overall: float) -> RiskLevel:
        if overall >= 0.8:
            return RiskLevel.LOW
        if overall >= 0.6:
            return RiskLevel.MEDIUM
        return RiskLevel.HIGH

    @staticmethod
    def _assess_risks(factors: Dict[str, float],
                      classification: QueryClassification) -> Tuple[List[str], List[str]]:
        risks = []
        mitigations = []

        if factors['signal_strength'] < 0.5:
            risks.append('Weak classification signals')
            mitigations.append('Fall back to a broader context level')
        if factors['consistency'] < 0.5:
            risks.append('Intent layers disagree')
            mitigations.append('Ask a clarifying question before acting')
        if factors['historical_accuracy'] < 0.7:
            risks.append('Components have a poor recent track record')
            mitigations.append('Prefer comprehensive analysis until accuracy recovers')
        if factors['contextual_support'] < 0.4 and classification.primary_intent.value == 'continuation':
            risks.append('Continuation query without supporting context')
            mitigations.append('Include recent history regardless of relevance')
        if factors['uncertainty_penalty'] >= 0.3:
            risks.append('High uncertainty')
            mitigations.append('Widen the token budget')

        return risks, mitigations

    def _recommendations(self, overall: float, factors: Dict[str, float]) -> List[str]:
        recommendations = []
        if overall >= self.thresholds['high']:
            recommendations.append('Proceed with the recommended strategy')
        elif overall >= self.thresholds['medium']:
            recommendations.append('Proceed, monitoring response quality')
        else:
            recommendations.append('Use comprehensive analysis or request clarification')

        if factors['pattern_reliability'] < 0.4:
            recommendations.append('Consider registering a pattern for this query shape')
        if factors['contextual_support'] <= 0.3:
            recommendations.append('Provide more conversation history if available')
        return recommendations
