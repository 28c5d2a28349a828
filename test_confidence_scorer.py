"""
Tests for the multi-factor confidence scorer.
"""

import pytest

from conftest import make_history
from intelligence.base_types import (
    ClassificationIndicator, ComplexityLevel, ContextResult, IndicatorType, IntentAnalysis,
    IntentLayer, IntentLayerType, PrimaryIntent, QueryClassification, QueryType,
    RelevanceMetadata, RelevantMessage, RiskLevel,
)
from intelligence.confidence_scorer import ConfidenceScorer


def classification(confidence, indicators=(), intent=PrimaryIntent.TECHNICAL):
    return QueryClassification(
        query_type=QueryType.MEDIUM,
        complexity=ComplexityLevel.INTERMEDIATE,
        primary_intent=intent,
        confidence=confidence,
        indicators=list(indicators),
    )


def analysis(*layers, overall):
    surface, deep, contextual = (IntentLayer(type=t, confidence=c) for t, c in layers)
    return IntentAnalysis(surface=surface, deep=deep, contextual=contextual, overall_confidence=overall)


@pytest.fixture
def scorer():
    return ConfidenceScorer()


@pytest.fixture
def strong():
    indicators = [
        ClassificationIndicator(type=IndicatorType.DEEP, signal=f"technical_term:{term}", confidence=0.9, weight=0.8)
        for term in ('react', 'component', 'hook')
    ]
    return classification(0.9, indicators), analysis(
        (IntentLayerType.TECHNICAL, 0.9),
        (IntentLayerType.TECHNICAL, 0.9),
        (IntentLayerType.TECHNICAL, 0.9),
        overall=0.9,
    )


@pytest.fixture
def weak():
    return classification(0.2, intent=PrimaryIntent.CONTINUATION), analysis(
        (IntentLayerType.SOCIAL, 0.3),
        (IntentLayerType.TECHNICAL, 0.3),
        (IntentLayerType.CONTINUATION, 0.2),
        overall=0.3,
    )


# ============================================================================
# SCORING
# ============================================================================

def test_strong_agreeing_signals(scorer, strong):
    breakdown = scorer.calculate_detailed_confidence(*strong)

    assert breakdown.factors['signal_strength'] == pytest.approx(1.0)
    assert breakdown.factors['consistency'] == pytest.approx(1.0)
    assert breakdown.factors['historical_accuracy'] == pytest.approx(0.8)
    assert breakdown.factors['pattern_reliability'] == pytest.approx(1.0)
    assert breakdown.factors['contextual_support'] == pytest.approx(0.3)
    assert breakdown.factors['uncertainty_penalty'] == 0.0
    assert breakdown.overall == pytest.approx(0.805)
    assert breakdown.confidence_level == 'high'
    assert breakdown.risk_level == RiskLevel.LOW
    assert breakdown.confidence_range == (breakdown.overall, breakdown.overall)


def test_weak_disagreeing_signals(scorer, weak):
    breakdown = scorer.calculate_detailed_confidence(*weak)

    assert breakdown.factors['uncertainty_penalty'] == pytest.approx(0.45)
    assert breakdown.factors['pattern_reliability'] == 0.5
    assert breakdown.confidence_level == 'low'
    assert breakdown.risk_level == RiskLevel.HIGH
    assert 'Weak classification signals' in breakdown.risk_factors
    assert 'High uncertainty' in breakdown.risk_factors
    assert 'Continuation query without supporting context' in breakdown.risk_factors
    assert len(breakdown.mitigations) == len(breakdown.risk_factors)
    assert 'Provide more conversation history if available' in breakdown.recommendations


def test_overall_matches_detailed(scorer, strong):
    assert scorer.calculate_overall_confidence(*strong) == pytest.approx(
        scorer.calculate_detailed_confidence(*strong).overall
    )


def test_context_raises_support(scorer, strong):
    messages = [
        RelevantMessage(
            message=message,
            relevance_score=0.8,
            metadata=RelevanceMetadata(0.5, 0.9, 0.5, 0.5),
        )
        for message in make_history("react hook", "use a custom hook")
    ]
    context = ContextResult(selected_messages=messages, quality_score=0.6)

    breakdown = scorer.calculate_detailed_confidence(*strong, context)
    assert breakdown.factors['contextual_support'] == pytest.approx(0.96)


# ============================================================================
# ACCURACY TRACKING
# ============================================================================

def test_accuracy_uses_seed_until_enough_outcomes(scorer):
    for _ in range(5):
        scorer.record_outcome('classification', False)
    assert scorer.accuracy['classification'].effective_accuracy == 0.8

    scorer.record_outcome('classification', False)
    assert scorer.accuracy['classification'].effective_accuracy == 0.0


def test_poor_track_record_lowers_confidence(scorer, strong):
    before = scorer.calculate_overall_confidence(*strong)
    for _ in range(6):
        scorer.record_outcome('classification', False)

    breakdown = scorer.calculate_detailed_confidence(*strong)
    assert breakdown.factors['historical_accuracy'] == pytest.approx(0.4)
    assert breakdown.overall < before
    assert 'Components have a poor recent track record' in breakdown.risk_factors


def test_accuracy_trend(scorer):
    scorer.record_outcome('deep_analysis', False)
    assert scorer.accuracy['deep_analysis'].trend == 'declining'

    scorer.record_outcome('deep_analysis', True)
    assert scorer.accuracy['deep_analysis'].trend == 'improving'


def test_unknown_component_is_tracked(scorer):
    scorer.record_outcome('custom_component', True)
    assert scorer.accuracy['custom_component'].total_predictions == 1


# ============================================================================
# THRESHOLDS
# ============================================================================

@pytest.mark.parametrize("score, level", [
    (0.85, 'high'),
    (0.65, 'medium'),
    (0.45, 'low'),
    (0.25, 'very_low'),
    (0.1, 'unreliable'),
])
def test_confidence_levels(scorer, score, level):
    assert scorer.confidence_level(score) == level


def test_update_thresholds(scorer):
    scorer.update_confidence_thresholds(high=0.9)
    assert scorer.confidence_level(0.85) == 'medium'

    with pytest.raises(ValueError):
        scorer.update_confidence_thresholds(extreme=0.95)
    with pytest.raises(ValueError):
        scorer.update_confidence_thresholds(low=1.5)


def test_confidence_stats(scorer, strong, weak):
    scorer.calculate_overall_confidence(*strong)
    scorer.calculate_overall_confidence(*weak)

    stats = scorer.get_confidence_stats()
    assert stats['total_scored'] == 2
    assert stats['level_distribution'] == {'high': 1, 'low': 1}
    assert stats['component_accuracy']['classification']['effective_accuracy'] == 0.8
