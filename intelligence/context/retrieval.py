"""
Context Retrieval

Selects the prior messages worth sending along with a query. Every history
message is scored as

    relevance = semantic * 0.4 + recency * 0.2 + engagement * 0.2 + technical * 0.2

and the best messages above a threshold are kept. Retrieval never raises:
any internal failure degrades to the most recent messages.

Author: AI System
Version: 2.0
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from intelligence.base_types import (
    ChatMessage, ContextResult, RelevanceMetadata, RelevantMessage,
)
from intelligence.context.text import (
    TECHNICAL_TERMS, estimate_tokens, extract_technical_terms, extract_terms, jaccard,
    minutes_between,
)
from logger import get_logger

logger = get_logger(__name__)

SEMANTIC_WEIGHT = 0.4
RECENCY_WEIGHT = 0.2
ENGAGEMENT_WEIGHT = 0.2
TECHNICAL_WEIGHT = 0.2


@dataclass
class ContextSelectionOptions:
    max_messages: Optional[int] = None
    relevance_threshold: Optional[float] = None
    prioritize_technical: bool = False
    time_window_hours: Optional[float] = None
    scoring_strategy: str = "relevance_formula"  # or "relevance_scorer"


class ContextRetrieval:
    """
    Relevance-based context selection.

    An optional RelevanceScorer can be plugged in and selected per call with
    `scoring_strategy="relevance_scorer"`.
    """

    STRATEGY = 'relevance_scoring'

    def __init__(
        self,
        relevance_threshold: float = 0.3,
        max_context_messages: int = 5,
        fallback_messages: int = 3,
        relevance_scorer=None,
        now: Callable[[], datetime] = datetime.now,
        verbose: bool = False
    ):
        self.relevance_threshold = relevance_threshold
        self.max_context_messages = max_context_messages
        self.fallback_messages = fallback_messages
        self.relevance_scorer = relevance_scorer
        self.now = now
        self.verbose = verbose

    def find_relevant_context(
        self,
        query: str,
        history: Sequence[ChatMessage],
        options: Optional[ContextSelectionOptions] = None
    ) -> ContextResult:
        """Score history against the query and return the best messages"""
        options = options or ContextSelectionOptions()
        history = list(history or [])

        try:
            max_messages = options.max_messages or self.max_context_messages
            threshold = options.relevance_threshold \
                if options.relevance_threshold is not None else self.relevance_threshold

            if not history:
                return ContextResult(
                    selection_strategy='No session history available',
                    relevance_threshold=threshold,
                )

            candidates = self._apply_time_window(history, options.time_window_hours)
            scored = [self.score_message(query, message, options, history) for message in candidates]
            kept = sorted(
                (m for m in scored if m.relevance_score >= threshold),
                key=lambda m: m.relevance_score,
                reverse=True,
            )
            selected = kept[:max_messages]

            result = ContextResult(
                selected_messages=selected,
                total_considered=len(candidates),
                estimated_tokens=sum(estimate_tokens(m.content) for m in selected),
                quality_score=self.selection_quality(selected),
                selection_strategy=self.STRATEGY if options.scoring_strategy != 'relevance_scorer'
                else 'relevance_scorer',
                relevance_threshold=threshold,
            )

            if self.verbose:
                print(f"[CONTEXT] selected {len(selected)}/{len(candidates)} "
                      f"({result.estimated_tokens} tokens, quality {result.quality_score:.2f})")
            return result

        except Exception as e:
            logger.warning(f"Context retrieval failed, using recency fallback: {e}", exc_info=True)
            return self.fallback_to_recency(history)

    # ========================================================================
    # SCORING
    # ========================================================================

    def score_message(self, query: str, message: ChatMessage,
                      options: Optional[ContextSelectionOptions] = None,
                      history: Optional[Sequence[ChatMessage]] = None) -> RelevantMessage:
        options = options or ContextSelectionOptions()

        semantic = self.semantic_similarity(query, message.content)
        recency = self.recency_factor(message.timestamp)
        engagement = self.engagement_score(message)
        technical = self.technical_overlap(query, message.content)

        if options.scoring_strategy == 'relevance_scorer' and self.relevance_scorer is not None:
            score = self.relevance_scorer.score_message(query, message, history or []).final_score
        else:
            score = (
                semantic * SEMANTIC_WEIGHT
                + recency * RECENCY_WEIGHT
                + engagement * ENGAGEMENT_WEIGHT
                + technical * TECHNICAL_WEIGHT
            )
            if options.prioritize_technical and technical > 0.5:
                score *= 1.2

        return RelevantMessage(
            message=message,
            relevance_score=max(0.0, min(score, 1.0)),
            metadata=RelevanceMetadata(
                semantic_similarity=semantic,
                recency_factor=recency,
                engagement_score=engagement,
                technical_overlap=technical,
            ),
        )

    @staticmethod
    def semantic_similarity(query: str, content: str) -> float:
        """Term overlap ratio plus 0.1 per shared technical term"""
        query_terms = set(extract_terms(query))
        content_terms = set(extract_terms(content))
        if not query_terms or not content_terms:
            return 0.0

        shared = query_terms & content_terms
        similarity = len(shared) / max(len(query_terms), len(content_terms))
        similarity += 0.1 * sum(1 for term in shared if term in TECHNICAL_TERMS)
        return min(similarity, 1.0)

    def recency_factor(self, timestamp: datetime) -> float:
        """0.9 ^ (minutes / 10); 1.0 for a message sent just now"""
        minutes_ago = max(0.0, minutes_between(timestamp, self.now()))
        return 0.9 ** (minutes_ago / 10)

    @staticmethod
    def engagement_score(message: ChatMessage) -> float:
        score = 0.5
        metadata = message.metadata
        if metadata is None:
            return score
        if metadata.user_followup_questions > 0:
            score += 0.3
        if metadata.contained_code:
            score += 0.4
        if metadata.user_said_thanks:
            score += 0.2
        if metadata.led_to_working_solution:
            score += 0.5
        if metadata.error_context:
            score += 0.3
        return min(score, 1.0)

    @staticmethod
    def technical_overlap(query: str, content: str) -> float:
        return jaccard(extract_technical_terms(query), extract_technical_terms(content))

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _apply_time_window(self, history: List[ChatMessage], hours: Optional[float]) -> List[ChatMessage]:
        if not hours:
            return history
        now = self.now()
        return [message for message in history if minutes_between(message.timestamp, now) <= hours * 60]

    @staticmethod
    def selection_quality(messages: List[RelevantMessage]) -> float:
        if not messages:
            return 0.0
        count = len(messages)
        avg_relevance = sum(m.relevance_score for m in messages) / count
        avg_technical = sum(m.metadata.technical_overlap for m in messages) / count
        avg_recency = sum(m.metadata.recency_factor for m in messages) / count
        return avg_relevance * 0.5 + avg_technical * 0.3 + avg_recency * 0.2

    def fallback_to_recency(self, history: Sequence[ChatMessage], count: Optional[int] = None) -> ContextResult:
        """
        Most recent messages with a placeholder relevance of 0.5.

        History is chronological, so the tail is the most recent part; no
        timestamps are compared. This is the last resort of retrieval and
        returns an empty selection rather than raising.
        """
        count = count or self.fallback_messages
        considered = 0
        try:
            history = list(history)
            considered = len(history)
            recent = history[-count:][::-1]
            selected = [
                RelevantMessage(
                    message=message,
                    relevance_score=0.5,
                    metadata=RelevanceMetadata(
                        semantic_similarity=0.3,
                        recency_factor=self._safe_recency(message),
                        engagement_score=0.3,
                        technical_overlap=0.1,
                    ),
                )
                for message in recent
            ]
            estimated_tokens = sum(estimate_tokens(m.content) for m in selected)
        except Exception as e:
            logger.error(f"Recency fallback failed, returning empty context: {e}")
            selected, estimated_tokens = [], 0

        return ContextResult(
            selected_messages=selected,
            total_considered=considered,
            estimated_tokens=estimated_tokens,
            quality_score=0.4 if selected else 0.0,
            selection_strategy='recency_fallback',
            fallback_used=True,
            relevance_threshold=0.0,
        )

    def _safe_recency(self, message: ChatMessage) -> float:
        try:
            return self.recency_factor(message.timestamp)
        except (TypeError, ValueError, AttributeError, OverflowError):
            return 0.5

    def update_config(self, relevance_threshold: Optional[float] = None,
                      max_context_messages: Optional[int] = None):
        if relevance_threshold is not None:
            self.relevance_threshold = relevance_threshold
        if max_context_messages is not None:
            self.max_context_messages = max_context_messages
        logger.info(
            f"Context retrieval config: threshold={self.relevance_threshold} "
            f"max_messages={self.max_context_messages}"
        )
