"""
Relevance Scorer

Multi-signal relevance scoring for history messages. Five components are
blended with configurable weights:

    semantic    - TF-IDF, set cosine, phrase overlap or a hybrid of the three
    temporal    - exponential, linear or logarithmic decay by message age
    engagement  - followups, thanks, working solutions, code
    technical   - shared technical vocabulary
    coherence   - how well the message fits its conversational neighbours

The weighted score is multiplied by content boosts (code, errors, solutions,
questions, dense technical vocabulary) and capped at 1.0.

Author: AI System
Version: 1.0
"""

import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from intelligence.base_types import ChatMessage
from intelligence.context.text import (
    TECHNICAL_TERMS, extract_technical_terms, extract_terms, jaccard, term_frequencies,
    minutes_between,
)
from logger import get_logger

logger = get_logger(__name__)

ALGORITHMS = ('tfidf', 'cosine', 'semantic', 'hybrid')
DECAY_FUNCTIONS = ('exponential', 'linear', 'logarithmic')

CODE_PATTERN = re.compile(r'```|`[^`]+`|\bfunction\s*\(|=>|\bconst\s+\w+\s*=|\bdef\s+\w+\(|\bclass\s+\w+')
ERROR_PATTERN = re.compile(r'error|exception|failed|undefined|cannot read|stack trace', re.IGNORECASE)
SOLUTION_PATTERN = re.compile(r'\b(solution|fixed|solved|works now|try this|you can|here is how)\b', re.IGNORECASE)
QUESTION_PATTERN = re.compile(r'\?|^\s*(how|what|why|when|where|which|can|could)\b', re.IGNORECASE)

NEARBY_WINDOW_MINUTES = 10


@dataclass
class ScoringWeights:
    semantic: float = 0.35
    temporal: float = 0.20
    engagement: float = 0.20
    technical: float = 0.15
    coherence: float = 0.10


@dataclass
class BoostFactors:
    code: float = 1.3
    error: float = 1.4
    solution: float = 1.5
    question: float = 1.2
    technical_terms: float = 1.25
    max_boost: float = 2.0


@dataclass
class RelevanceScorerConfig:
    algorithm: str = 'hybrid'
    decay_function: str = 'exponential'
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    boosts: BoostFactors = field(default_factory=BoostFactors)


@dataclass
class ScoringComponents:
    semantic: float
    temporal: float
    engagement: float
    technical: float
    coherence: float

    def as_array(self) -> np.ndarray:
        return np.array([self.semantic, self.temporal, self.engagement, self.technical, self.coherence])


@dataclass
class RelevanceScore:
    message: ChatMessage
    final_score: float
    components: ScoringComponents
    boost_factor: float
    confidence: float
    reasoning: List[str] = field(default_factory=list)


class RelevanceScorer:
    """Weighted multi-component relevance scoring"""

    def __init__(self, config: Optional[RelevanceScorerConfig] = None,
                 now: Callable[[], datetime] = datetime.now):
        self.config = config or RelevanceScorerConfig()
        self.now = now

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    def score_message(self, query: str, message: ChatMessage,
                      context: Optional[Sequence[ChatMessage]] = None) -> RelevanceScore:
        context = list(context or [])
        weights = self.config.weights

        components = ScoringComponents(
            semantic=self.semantic_score(query, message.content, [m.content for m in context]),
            temporal=self.temporal_score(message.timestamp),
            engagement=self.engagement_score(message),
            technical=jaccard(extract_technical_terms(query), extract_technical_terms(message.content)),
            coherence=self.coherence_score(message, context),
        )

        weighted = (
            components.semantic * weights.semantic
            + components.temporal * weights.temporal
            + components.engagement * weights.engagement
            + components.technical * weights.technical
            + components.coherence * weights.coherence
        )
        boost = self.boost_factor(message.content)

        return RelevanceScore(
            message=message,
            final_score=min(weighted * boost, 1.0),
            components=components,
            boost_factor=boost,
            confidence=self.score_confidence(components, message.content),
            reasoning=self.explain(components, boost),
        )

    def score_messages(self, query: str, messages: Sequence[ChatMessage]) -> List[RelevanceScore]:
        """Score every message against the query, best first"""
        messages = list(messages)
        scores = [self.score_message(query, message, messages) for message in messages]
        return sorted(scores, key=lambda s: s.final_score, reverse=True)

    def update_config(self, algorithm: Optional[str] = None, decay_function: Optional[str] = None,
                      weights: Optional[Dict[str, float]] = None):
        if algorithm is not None:
            if algorithm not in ALGORITHMS:
                raise ValueError(f"Unknown scoring algorithm: {algorithm}")
            self.config.algorithm = algorithm
        if decay_function is not None:
            if decay_function not in DECAY_FUNCTIONS:
                raise ValueError(f"Unknown decay function: {decay_function}")
            self.config.decay_function = decay_function
        for name, value in (weights or {}).items():
            if not hasattr(self.config.weights, name):
                raise ValueError(f"Unknown scoring weight: {name}")
            setattr(self.config.weights, name, value)

    # ========================================================================
    # SEMANTIC SIMILARITY
    # ========================================================================

    def semantic_score(self, query: str, content: str, corpus: Sequence[str] = ()) -> float:
        algorithm = self.config.algorithm
        if algorithm == 'tfidf':
            return self.tfidf_similarity(query, content, corpus)
        if algorithm == 'cosine':
            return self.cosine_similarity(query, content)
        if algorithm == 'semantic':
            return self.phrase_similarity(query, content)
        return (
            self.tfidf_similarity(query, content, corpus) * 0.4
            + self.cosine_similarity(query, content) * 0.3
            + self.phrase_similarity(query, content) * 0.3
        )

    @staticmethod
    def tfidf_similarity(query: str, content: str, corpus: Sequence[str] = ()) -> float:
        """Cosine between TF-IDF vectors, idf = ln(1 + 1/df) over the corpus"""
        query_terms = extract_terms(query)
        content_terms = extract_terms(content)
        if not query_terms or not content_terms:
            return 0.0

        documents = [set(extract_terms(doc)) for doc in corpus] or [set(content_terms)]
        vocabulary = sorted(set(query_terms) | set(content_terms))
        idf = np.array([
            math.log(1 + 1 / max(sum(1 for doc in documents if term in doc), 1))
            for term in vocabulary
        ])

        query_tf = term_frequencies(query_terms)
        content_tf = term_frequencies(content_terms)
        q = np.array([query_tf.get(term, 0.0) for term in vocabulary]) * idf
        c = np.array([content_tf.get(term, 0.0) for term in vocabulary]) * idf

        norm = np.linalg.norm(q) * np.linalg.norm(c)
        if norm == 0:
            return 0.0
        return float(min(np.dot(q, c) / norm, 1.0))

    @staticmethod
    def cosine_similarity(query: str, content: str) -> float:
        """Set cosine: |Q & C| / sqrt(|Q| * |C|)"""
        query_terms = set(extract_terms(query))
        content_terms = set(extract_terms(content))
        if not query_terms or not content_terms:
            return 0.0
        return len(query_terms & content_terms) / math.sqrt(len(query_terms) * len(content_terms))

    @staticmethod
    def phrase_similarity(query: str, content: str) -> float:
        """Jaccard plus 0.1 per shared technical term and 0.15 per shared bigram"""
        query_terms = extract_terms(query)
        content_terms = extract_terms(content)
        if not query_terms or not content_terms:
            return 0.0

        score = jaccard(query_terms, content_terms)
        shared = set(query_terms) & set(content_terms)
        score += 0.1 * sum(1 for term in shared if term in TECHNICAL_TERMS)

        query_bigrams = set(zip(query_terms, query_terms[1:]))
        content_bigrams = set(zip(content_terms, content_terms[1:]))
        score += 0.15 * len(query_bigrams & content_bigrams)
        return min(score, 1.0)

    # ========================================================================
    # OTHER COMPONENTS
    # ========================================================================

    def temporal_score(self, timestamp: datetime) -> float:
        minutes = max(0.0, minutes_between(timestamp, self.now()))
        decay = self.config.decay_function
        if decay == 'linear':
            return max(0.0, 1 - minutes / 1440)
        if decay == 'logarithmic':
            return 1 / (1 + math.log(1 + minutes / 10))
        return 0.95 ** (minutes / 5)

    @staticmethod
    def engagement_score(message: ChatMessage) -> float:
        score = 0.5
        metadata = message.metadata
        if metadata is None:
            return score
        if metadata.user_followup_questions > 0:
            score += 0.25
        if metadata.user_said_thanks:
            score += 0.2
        if metadata.led_to_working_solution:
            score += 0.3
        if metadata.contained_code:
            score += 0.2
        return min(score, 1.0)

    def coherence_score(self, message: ChatMessage, context: Sequence[ChatMessage]) -> float:
        """Average similarity to messages sent within ten minutes of this one"""
        others = [m for m in context if m.id != message.id]
        if not others:
            return 0.5

        nearby = [
            m for m in others
            if abs(minutes_between(m.timestamp, message.timestamp)) < NEARBY_WINDOW_MINUTES
        ]
        if not nearby:
            return 0.3
        return float(np.mean([self.phrase_similarity(message.content, m.content) for m in nearby]))

    def boost_factor(self, content: str) -> float:
        boosts = self.config.boosts
        boost = 1.0
        if CODE_PATTERN.search(content):
            boost *= boosts.code
        if ERROR_PATTERN.search(content):
            boost *= boosts.error
        if SOLUTION_PATTERN.search(content):
            boost *= boosts.solution
        if QUESTION_PATTERN.search(content):
            boost *= boosts.question

        technical_count = len(extract_technical_terms(content))
        if technical_count:
            boost *= boosts.technical_terms ** min(technical_count / 5, 1.0)
        return min(boost, boosts.max_boost)

    @staticmethod
    def score_confidence(components: ScoringComponents, content: str) -> float:
        """Agreement between components plus a bonus for longer messages"""
        variance = float(np.var(components.as_array()))
        return (1 - min(variance, 1.0)) * 0.7 + min(len(content) / 500, 1.0) * 0.3

    @staticmethod
    def explain(components: ScoringComponents, boost: float) -> List[str]:
        reasons = []
        if components.semantic > 0.5:
            reasons.append(f"High semantic similarity ({components.semantic:.2f})")
        if components.temporal > 0.8:
            reasons.append("Recent message")
        if components.engagement > 0.7:
            reasons.append("High user engagement")
        if components.technical > 0.5:
            reasons.append("Strong technical overlap")
        if components.coherence > 0.6:
            reasons.append("Coherent with surrounding conversation")
        if boost > 1.0:
            reasons.append(f"Content boost x{boost:.2f}")
        return reasons or ["Low relevance across all signals"]
