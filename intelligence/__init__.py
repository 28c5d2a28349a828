"""
Intelligence System v1.0

Query analysis engine: pattern shortcuts, rule-based classification,
layered intent analysis, relevance-scored context selection and
confidence scoring, behind circuit breakers and a fallback hierarchy.
"""

from .base_types import (
    QueryType, ComplexityLevel, PrimaryIntent, IndicatorType, IntentLayerType,
    ContextLevel, ProcessingStrategy, RiskLevel,
    ChatMessage, ChatContext, MessageMetadata,
    QueryClassification, ClassificationIndicator,
    IntentAnalysis, SurfaceAnalysis, DeepAnalysis, ContextualAnalysis, ComplexityAnalysis,
    ContextRequirements, ContextResult, RelevantMessage,
    PatternMatch, PatternMatchResult, PerformanceMetrics, AnalysisResult,
)

from .pattern_matcher import PatternMatcher
from .query_classifier import QueryClassifier, ClassifierWeights
from .analyzers import (
    SurfaceIntentAnalyzer,
    DeepIntentAnalyzer,
    ContextualIntentAnalyzer,
    ComplexityAnalyzer,
)
from .context import ContextRetrieval, ContextSelectionOptions, RelevanceScorer
from .confidence_scorer import ConfidenceScorer
from .error_recovery import ErrorHandler, FallbackResult
from .configuration import IntelligenceConfig
from .engine import IntelligenceEngine

__all__ = [
    # Base types
    'QueryType', 'ComplexityLevel', 'PrimaryIntent', 'IndicatorType', 'IntentLayerType',
    'ContextLevel', 'ProcessingStrategy', 'RiskLevel',
    'ChatMessage', 'ChatContext', 'MessageMetadata',
    'QueryClassification', 'ClassificationIndicator',
    'IntentAnalysis', 'SurfaceAnalysis', 'DeepAnalysis', 'ContextualAnalysis', 'ComplexityAnalysis',
    'ContextRequirements', 'ContextResult', 'RelevantMessage',
    'PatternMatch', 'PatternMatchResult', 'PerformanceMetrics', 'AnalysisResult',
    # Components
    'PatternMatcher',
    'QueryClassifier',
    'ClassifierWeights',
    'SurfaceIntentAnalyzer',
    'DeepIntentAnalyzer',
    'ContextualIntentAnalyzer',
    'ComplexityAnalyzer',
    'ContextRetrieval',
    'ContextSelectionOptions',
    'RelevanceScorer',
    'ConfidenceScorer',
    # Engine
    'ErrorHandler',
    'FallbackResult',
    'IntelligenceConfig',
    'IntelligenceEngine',
]

__version__ = '1.0.0'
