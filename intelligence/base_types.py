"""
Base Types for Intelligence System

Defines the data structures shared by the matcher, classifier, analyzers,
context retrieval and engine. Everything a caller receives is a plain
dataclass so results can be logged, cached and compared.

Author: AI System
Version: 3.0
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime


# ============================================================================
# ENUMS
# ============================================================================

class QueryType(str, Enum):
    """Coarse routing bucket for a query"""
    SIMPLE = "SIMPLE"
    MEDIUM = "MEDIUM"
    COMPLEX = "COMPLEX"


class ComplexityLevel(str, Enum):
    MINIMAL = "minimal"
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


class PrimaryIntent(str, Enum):
    SOCIAL = "social"
    TECHNICAL = "technical"
    CONTINUATION = "continuation"
    COMPLEX = "complex"
    ERROR = "error"
    CREATION = "creation"


class IndicatorType(str, Enum):
    """Which analysis layer produced an indicator"""
    SURFACE = "surface"
    DEEP = "deep"
    CONTEXTUAL = "contextual"
    COMPLEXITY = "complexity"


class IntentLayerType(str, Enum):
    SOCIAL = "social"
    TECHNICAL = "technical"
    CONTINUATION = "continuation"
    COMPLEX = "complex"


class ContextLevel(str, Enum):
    MINIMAL = "minimal"
    TECHNICAL = "technical"
    COMPREHENSIVE = "comprehensive"


class ProcessingStrategy(str, Enum):
    """Processing tier recommended to the caller"""
    CACHED_RESPONSE = "cached_response"
    MINIMAL_CONTEXT = "minimal_context"
    TECHNICAL_CONTEXT = "technical_context"
    COMPREHENSIVE_ANALYSIS = "comprehensive_analysis"
    EMERGENCY_FALLBACK = "emergency_fallback"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ============================================================================
# CONVERSATION
# ============================================================================

@dataclass(frozen=True)
class MessageMetadata:
    """Engagement signals attached to a message by the chat layer"""
    contained_code: bool = False
    user_followup_questions: int = 0
    user_said_thanks: bool = False
    led_to_working_solution: bool = False
    error_context: bool = False


@dataclass(frozen=True)
class ChatMessage:
    """A single message in the conversation history"""
    id: str
    content: str
    role: str = "user"  # user | assistant
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Optional[MessageMetadata] = None


@dataclass
class ChatContext:
    """Conversation history in chronological order"""
    messages: List[ChatMessage] = field(default_factory=list)
    session_id: str = "default"
    timestamp: datetime = field(default_factory=datetime.now)

    def history_key(self, last: Optional[int] = None) -> str:
        """
        Fingerprint of the session and its recent history, used for cache keys.

        Message ids are only unique within a session, so the session id and
        each message's role, timestamp and content all take part.
        """
        recent = self.messages if last is None else self.messages[-last:]
        parts = [self.session_id]
        for m in recent:
            parts.append(f"{m.id}\x1f{m.role}\x1f{m.timestamp.isoformat()}\x1f{m.content}")
        return '\x1e'.join(parts)


# ============================================================================
# CLASSIFICATION
# ============================================================================

@dataclass(frozen=True)
class ClassificationIndicator:
    """A single weighted signal produced while classifying"""
    type: IndicatorType
    signal: str
    confidence: float
    weight: float


@dataclass
class QueryClassification:
    """Result of QueryClassifier.classify"""
    query_type: QueryType
    complexity: ComplexityLevel
    primary_intent: PrimaryIntent
    confidence: float
    indicators: List[ClassificationIndicator] = field(default_factory=list)
    scores: Dict[str, float] = field(default_factory=dict)


# ============================================================================
# INTENT LAYERS
# ============================================================================

@dataclass
class IntentLayer:
    """Common shape shared by every analyzer result"""
    type: IntentLayerType
    confidence: float
    indicators: List[str] = field(default_factory=list)


@dataclass
class SurfaceAnalysis(IntentLayer):
    politeness_level: float = 0.0
    conversational_tone: str = "casual"
    suggested_tone: str = "friendly"
    requires_social_response: bool = False
    response_hints: List[str] = field(default_factory=list)


@dataclass
class DeepAnalysis(IntentLayer):
    primary_action: Optional[str] = None
    primary_object: Optional[str] = None
    implementation_hints: List[str] = field(default_factory=list)
    complexity_indicators: List[str] = field(default_factory=list)
    domain_expertise: List[str] = field(default_factory=list)


@dataclass
class ContextualAnalysis(IntentLayer):
    context_dependency: float = 0.0
    conversation_flow: str = "new_topic"
    requires_history: bool = False
    history_depth: int = 0


@dataclass
class ComplexityAnalysis(IntentLayer):
    level: ComplexityLevel = ComplexityLevel.MINIMAL
    factors: List[str] = field(default_factory=list)
    recommended_tokens: int = 50
    required_expertise: List[str] = field(default_factory=list)
    multi_step: bool = False


@dataclass
class IntentAnalysis:
    """Three concurrent intent layers plus their mean confidence"""
    surface: IntentLayer
    deep: IntentLayer
    contextual: IntentLayer
    overall_confidence: float
    complexity: Optional[ComplexityAnalysis] = None

    def layers(self) -> List[IntentLayer]:
        return [self.surface, self.deep, self.contextual]


# ============================================================================
# CONTEXT
# ============================================================================

@dataclass
class ContextRequirements:
    level: ContextLevel
    domains: List[str] = field(default_factory=list)
    estimated_tokens: int = 50
    requires_history: bool = False
    requires_files: bool = False
    requires_project_context: bool = False
    max_history_messages: int = 0
    relevance_threshold: float = 0.3


@dataclass(frozen=True)
class RelevanceMetadata:
    semantic_similarity: float
    recency_factor: float
    engagement_score: float
    technical_overlap: float


@dataclass(frozen=True)
class RelevantMessage:
    """Snapshot of a history message plus its relevance score"""
    message: ChatMessage
    relevance_score: float
    metadata: RelevanceMetadata

    @property
    def content(self) -> str:
        return self.message.content


@dataclass
class ContextResult:
    selected_messages: List[RelevantMessage] = field(default_factory=list)
    total_considered: int = 0
    estimated_tokens: int = 0
    quality_score: float = 0.0
    selection_strategy: str = "minimal"
    fallback_used: bool = False
    relevance_threshold: float = 0.3
    tokens_trimmed: int = 0


# ============================================================================
# PATTERNS
# ============================================================================

@dataclass
class PatternMatch:
    """A registered pattern that matched the query"""
    pattern_id: str
    pattern_type: str
    query_type: QueryType
    confidence: float
    estimated_tokens: int
    fallback_response: str
    hit_count: int = 0


@dataclass
class PatternMatchResult:
    matched: bool
    pattern: Optional[PatternMatch] = None
    confidence: float = 0.0
    estimated_tokens: int = 0
    fallback_response: Optional[str] = None
    is_complete: bool = False


# ============================================================================
# RESULT
# ============================================================================

@dataclass
class PerformanceMetrics:
    """Stage timings in milliseconds"""
    analysis_time: float = 0.0
    context_retrieval_time: float = 0.0
    pattern_matching_time: float = 0.0
    total_processing_time: float = 0.0


@dataclass(frozen=True)
class AnalysisResult:
    """The single output contract of IntelligenceEngine.analyze_query"""
    query_id: str
    classification: QueryClassification
    intent_analysis: IntentAnalysis
    context_requirements: ContextRequirements
    pattern_matches: List[PatternMatch]
    confidence_score: float
    token_estimate: int
    recommended_strategy: ProcessingStrategy
    performance_metrics: PerformanceMetrics
    context: Optional[ContextResult] = None
    fallback_reason: Optional[str] = None

    @property
    def fallback_response(self) -> Optional[str]:
        """Canned reply to emit verbatim when the strategy is cached_response"""
        if self.recommended_strategy == ProcessingStrategy.CACHED_RESPONSE and self.pattern_matches:
            return self.pattern_matches[0].fallback_response
        return None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
