"""Context selection: relevance-based retrieval and multi-signal scoring"""

from .retrieval import ContextRetrieval, ContextSelectionOptions
from .relevance_scorer import (
    RelevanceScorer,
    RelevanceScorerConfig,
    RelevanceScore,
    ScoringComponents,
    ScoringWeights,
    BoostFactors,
)
from .window import ContextWindowConfig, ContextWindowManager

__all__ = [
    'ContextRetrieval',
    'ContextSelectionOptions',
    'RelevanceScorer',
    'RelevanceScorerConfig',
    'RelevanceScore',
    'ScoringComponents',
    'ScoringWeights',
    'BoostFactors',
    'ContextWindowConfig',
    'ContextWindowManager',
]
