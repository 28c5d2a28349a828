"""
Query Classification Engine

Scores five independent signal families and turns them into a routing
classification:
- Technical term density (verb/noun dictionaries + verb-noun proximity)
- Social patterns (greeting, politeness, help, acknowledgment)
- Complexity keywords (architecture, security, scalability, multi-file scope)
- Error patterns (exceptions, stack traces, HTTP status, crashes)
- Context dependency (continuation and followup words, history presence)

Classification is deterministic: the same query and history always produce
the same result. Weights change only through update_weights.

Author: AI System
Version: 2.0
"""

import re
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Tuple

from intelligence.base_types import (
    ChatContext, ClassificationIndicator, ComplexityLevel, IndicatorType,
    PrimaryIntent, QueryClassification, QueryType,
)
from logger import get_logger

logger = get_logger(__name__)


@dataclass
class ClassifierWeights:
    """Weight of each signal family in the overall confidence"""
    technical_terms: float = 0.4
    social_indicators: float = 0.2
    complexity_keywords: float = 0.3
    error_patterns: float = 0.6
    context_dependency: float = 0.2


TECHNICAL_VERBS = [
    'debug', 'fix', 'optimize', 'refactor', 'implement', 'create', 'deploy', 'test',
    'build', 'setup', 'configure', 'install', 'update', 'add', 'remove', 'design',
    'analyze', 'review', 'merge', 'commit', 'push', 'pull', 'clone',
]

TECHNICAL_NOUNS = [
    'component', 'function', 'api', 'database', 'error', 'bug', 'endpoint', 'state',
    'props', 'hook', 'service', 'module', 'class', 'interface', 'variable', 'array',
    'object', 'response', 'request', 'server', 'client', 'framework', 'library',
    'package', 'dependency', 'environment', 'config',
]

CREATION_VERBS = {'create', 'build', 'implement', 'add', 'setup', 'design'}

COMPLEXITY_KEYWORDS = [
    'architecture', 'design pattern', 'scalability', 'performance', 'security',
    'authentication', 'authorization', 'optimization', 'refactoring', 'testing',
    'deployment', 'docker', 'kubernetes', 'microservices', 'database design',
    'concurrent', 'asynchronous', 'distributed', 'load balancing', 'caching',
]

MULTI_FILE_PATTERN = re.compile(r'multiple files|several files|project|app|application|system', re.IGNORECASE)

SOCIAL_PATTERNS: List[Tuple[str, re.Pattern, float]] = [
    ('greeting', re.compile(r"^(hi|hello|hey|sup|what's up)\b", re.IGNORECASE), 0.8),
    ('politeness', re.compile(r'\b(please|thank|thanks|thx|appreciated)\b', re.IGNORECASE), 0.6),
    ('help_request', re.compile(r'\b(help|assist|support)\b', re.IGNORECASE), 0.5),
    ('acknowledgment', re.compile(r'^(ok|okay|cool|got it|sounds good)\b', re.IGNORECASE), 0.7),
]

ERROR_PATTERNS: List[Tuple[str, re.Pattern, float]] = [
    ('runtime_error', re.compile(r'error|exception|failed|broken|not working|undefined|null', re.IGNORECASE), 0.8),
    ('stack_trace', re.compile(r'stack trace|line \d+|syntax error|reference error', re.IGNORECASE), 0.9),
    ('http_status', re.compile(r'500|404|401|403|cors|network error', re.IGNORECASE), 0.7),
    ('crash', re.compile(r"crash|freeze|hang|stuck|won't start", re.IGNORECASE), 0.8),
]

CONTINUATION_WORDS = {'this', 'that', 'it', 'also', 'and', 'plus', 'additionally'}
FOLLOWUP_WORDS = {'but', 'however', 'actually', 'wait', 'now'}


class QueryClassifier:
    """
    Rule-based query classifier.

    Intent, complexity and query type thresholds are applied to each
    family's raw score (0-1); the weights only shape the overall confidence.
    """

    def __init__(self, weights: Optional[ClassifierWeights] = None, verbose: bool = False):
        self.weights = weights or ClassifierWeights()
        self.verbose = verbose
        self.classifications = 0
        self.intent_counts: Dict[str, int] = {}
        self.query_type_counts: Dict[str, int] = {}

    def classify(self, query: str, context: Optional[ChatContext] = None) -> QueryClassification:
        """Classify a query given the conversation so far"""
        context = context or ChatContext()
        indicators: List[ClassificationIndicator] = []

        technical, creation = self._analyze_technical_content(query, indicators)
        social = self._analyze_social_patterns(query, indicators)
        complexity = self._analyze_complexity_signals(query, indicators)
        error = self._analyze_error_patterns(query, indicators)
        dependency = self._analyze_context_dependency(query, context, indicators)

        raw = {
            'technical': technical,
            'social': social,
            'complexity': complexity,
            'error': error,
            'context': dependency,
        }
        classification = self._determine_classification(raw, creation, indicators)

        self.classifications += 1
        self.intent_counts[classification.primary_intent.value] = \
            self.intent_counts.get(classification.primary_intent.value, 0) + 1
        self.query_type_counts[classification.query_type.value] = \
            self.query_type_counts.get(classification.query_type.value, 0) + 1

        logger.debug(
            f"Classified '{query[:50]}' as {classification.query_type.value}/"
            f"{classification.complexity.value}/{classification.primary_intent.value} "
            f"conf={classification.confidence:.2f} indicators={len(indicators)}"
        )
        return classification

    # ========================================================================
    # SIGNAL FAMILIES
    # ========================================================================

    def _analyze_technical_content(self, query: str, indicators: List[ClassificationIndicator]) -> Tuple[float, bool]:
        words = query.lower().split()
        if not words:
            return 0.0, False

        found_verbs: List[str] = []
        found_nouns: List[str] = []

        for word in words:
            for verb in TECHNICAL_VERBS:
                if verb in word:
                    found_verbs.append(verb)
                    indicators.append(ClassificationIndicator(
                        IndicatorType.DEEP, f"technical_verb:{verb}", 0.7, self.weights.technical_terms
                    ))
            for noun in TECHNICAL_NOUNS:
                if noun in word:
                    found_nouns.append(noun)
                    indicators.append(ClassificationIndicator(
                        IndicatorType.DEEP, f"technical_noun:{noun}", 0.6, self.weights.technical_terms
                    ))

        proximity = self._calculate_proximity_score(words, found_verbs, found_nouns)
        density = (len(found_verbs) + len(found_nouns)) / len(words)
        score = len(found_verbs) * 0.3 + len(found_nouns) * 0.2 + proximity + density * 0.5
        creation = any(verb in CREATION_VERBS for verb in found_verbs)
        return min(score, 1.0), creation

    @staticmethod
    def _calculate_proximity_score(words: List[str], verbs: List[str], nouns: List[str]) -> float:
        """Closer verb-noun pairs score higher: max(0, 0.5 - distance * 0.1)"""
        if not verbs or not nouns:
            return 0.0

        def first_index(term: str) -> int:
            return next((i for i, word in enumerate(words) if term in word), -1)

        best = 0.0
        for verb in set(verbs):
            verb_index = first_index(verb)
            for noun in set(nouns):
                noun_index = first_index(noun)
                if verb_index == -1 or noun_index == -1:
                    continue
                best = max(best, 0.5 - abs(verb_index - noun_index) * 0.1)
        return best

    def _analyze_social_patterns(self, query: str, indicators: List[ClassificationIndicator]) -> float:
        score = 0.0
        for name, pattern, weight in SOCIAL_PATTERNS:
            if pattern.search(query.strip()):
                score += weight * 0.3
                indicators.append(ClassificationIndicator(
                    IndicatorType.SURFACE, f"social_pattern:{name}", weight, self.weights.social_indicators
                ))
        return min(score, 1.0)

    def _analyze_complexity_signals(self, query: str, indicators: List[ClassificationIndicator]) -> float:
        score = 0.0
        lowered = query.lower()

        # Only the first keyword counts, overlapping keywords would double count
        for keyword in COMPLEXITY_KEYWORDS:
            if keyword in lowered:
                score += 0.4
                indicators.append(ClassificationIndicator(
                    IndicatorType.COMPLEXITY, f"complexity_keyword:{keyword}", 0.8,
                    self.weights.complexity_keywords
                ))
                break

        if MULTI_FILE_PATTERN.search(query):
            score += 0.3
            indicators.append(ClassificationIndicator(
                IndicatorType.COMPLEXITY, "multi_file_scope", 0.6, self.weights.complexity_keywords
            ))

        return min(score, 1.0)

    def _analyze_error_patterns(self, query: str, indicators: List[ClassificationIndicator]) -> float:
        score = 0.0
        for name, pattern, weight in ERROR_PATTERNS:
            if pattern.search(query):
                score += weight * 0.4
                indicators.append(ClassificationIndicator(
                    IndicatorType.COMPLEXITY, f"error_pattern:{name}", weight, self.weights.error_patterns
                ))
        return min(score, 1.0)

    def _analyze_context_dependency(self, query: str, context: ChatContext,
                                    indicators: List[ClassificationIndicator]) -> float:
        score = 0.0
        for word in query.lower().split():
            if word in CONTINUATION_WORDS:
                score += 0.2
                indicators.append(ClassificationIndicator(
                    IndicatorType.CONTEXTUAL, f"continuation:{word}", 0.6, self.weights.context_dependency
                ))
            if word in FOLLOWUP_WORDS:
                score += 0.3
                indicators.append(ClassificationIndicator(
                    IndicatorType.CONTEXTUAL, f"followup:{word}", 0.7, self.weights.context_dependency
                ))

        if context.messages:
            score += 0.2
            indicators.append(ClassificationIndicator(
                IndicatorType.CONTEXTUAL, "has_conversation_history", 0.5, self.weights.context_dependency
            ))

        return min(score, 1.0)

    # ========================================================================
    # DECISION
    # ========================================================================

    def _determine_classification(self, raw: Dict[str, float], creation: bool,
                                  indicators: List[ClassificationIndicator]) -> QueryClassification:
        weighted = {
            'technical': raw['technical'] * self.weights.technical_terms,
            'social': raw['social'] * self.weights.social_indicators,
            'complexity': raw['complexity'] * self.weights.complexity_keywords,
            'error': raw['error'] * self.weights.error_patterns,
            'context': raw['context'] * self.weights.context_dependency,
        }

        if raw['error'] > 0.4:
            intent = PrimaryIntent.ERROR
        elif raw['technical'] > 0.5:
            intent = PrimaryIntent.CREATION if creation else PrimaryIntent.TECHNICAL
        elif raw['complexity'] > 0.6:
            intent = PrimaryIntent.COMPLEX
        elif raw['context'] > 0.4:
            intent = PrimaryIntent.CONTINUATION
        else:
            intent = PrimaryIntent.SOCIAL

        if raw['complexity'] > 0.7 or raw['error'] > 0.6:
            complexity = ComplexityLevel.EXPERT
        elif raw['complexity'] > 0.5 or raw['technical'] > 0.7:
            complexity = ComplexityLevel.ADVANCED
        elif raw['technical'] > 0.5 or raw['error'] > 0.3:
            complexity = ComplexityLevel.INTERMEDIATE
        elif raw['technical'] > 0.3:
            complexity = ComplexityLevel.BASIC
        else:
            complexity = ComplexityLevel.MINIMAL

        if complexity in (ComplexityLevel.EXPERT, ComplexityLevel.ADVANCED) \
                or raw['error'] > 0.7 or raw['technical'] > 0.6:
            query_type = QueryType.COMPLEX
        elif complexity == ComplexityLevel.INTERMEDIATE or raw['technical'] > 0.4:
            query_type = QueryType.MEDIUM
        else:
            query_type = QueryType.SIMPLE

        return QueryClassification(
            query_type=query_type,
            complexity=complexity,
            primary_intent=intent,
            confidence=min(sum(weighted.values()), 1.0),
            indicators=indicators,
            scores=dict(raw),
        )

    # ========================================================================
    # ASSESSMENT & TUNING
    # ========================================================================

    def assess_classification_confidence(self, query: str, classification: QueryClassification) -> float:
        """Blend indicator strength, query length and indicator consistency"""
        indicators = classification.indicators
        if not indicators:
            return 0.0

        strength = sum(i.confidence * i.weight for i in indicators) / len(indicators)
        length_factor = min(len(query) / 100, 1.0)
        consistency = self._assess_indicator_consistency(indicators)
        return min((strength + length_factor + consistency) / 3, 1.0)

    @staticmethod
    def _assess_indicator_consistency(indicators: List[ClassificationIndicator]) -> float:
        """Share of indicators that belong to the dominant layer"""
        if not indicators:
            return 0.0
        groups: Dict[IndicatorType, int] = {}
        for indicator in indicators:
            groups[indicator.type] = groups.get(indicator.type, 0) + 1
        return max(groups.values()) / len(indicators)

    def update_weights(self, **weights: float):
        """Override one or more family weights"""
        for name, value in weights.items():
            if not hasattr(self.weights, name):
                raise ValueError(f"Unknown classification weight: {name}")
            setattr(self.weights, name, float(value))
        logger.info(f"Classification weights updated: {weights}")

    def get_classification_stats(self) -> Dict[str, Any]:
        return {
            'weights': asdict(self.weights),
            'classifications': self.classifications,
            'intent_distribution': dict(self.intent_counts),
            'query_type_distribution': dict(self.query_type_counts),
            'pattern_counts': {
                'technical_verbs': len(TECHNICAL_VERBS),
                'technical_nouns': len(TECHNICAL_NOUNS),
                'complexity_keywords': len(COMPLEXITY_KEYWORDS),
                'social_patterns': len(SOCIAL_PATTERNS),
                'error_patterns': len(ERROR_PATTERNS),
            },
        }
