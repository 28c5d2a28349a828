"""
Context Window Management

Keeps a selected context inside its token budget. The budget is the smaller
of what the context requirements ask for and the window size minus the
reserve held back for the system prompt and the response.

Over budget, the lowest relevance messages are dropped first. If the
survivors are still too large, long messages are cut down to
`max_message_tokens`, and a lone message that still does not fit is cut to
the budget itself. At least one message always survives.

Author: AI System
Version: 1.0
"""

from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from intelligence.base_types import ContextResult, RelevantMessage
from intelligence.context.retrieval import ContextRetrieval
from intelligence.context.text import estimate_tokens
from logger import format_fields, get_logger

logger = get_logger(__name__)

TRUNCATION_MARKER = '...'


@dataclass
class ContextWindowConfig:
    max_tokens: int = 1200          # Whole context window
    reserve_tokens: int = 200       # Held back for system prompt and response
    max_message_tokens: int = 150   # Long messages are cut to this first


def _tokens(messages: List[RelevantMessage]) -> int:
    return sum(estimate_tokens(m.content) for m in messages)


def truncate_message(message: RelevantMessage, max_tokens: int) -> RelevantMessage:
    """Copy of `message` whose content fits in `max_tokens`, marker included"""
    if estimate_tokens(message.content) <= max_tokens:
        return message
    keep = max(0, max_tokens * 4 - len(TRUNCATION_MARKER))
    content = message.content[:keep] + TRUNCATION_MARKER
    return replace(message, message=replace(message.message, content=content))


class ContextWindowManager:
    """Trims retrieved context to a token budget"""

    def __init__(self, config: Optional[ContextWindowConfig] = None, verbose: bool = False):
        self.config = config or ContextWindowConfig()
        self.verbose = verbose

    def token_budget(self, requested_tokens: int) -> int:
        window = self.config.max_tokens - self.config.reserve_tokens
        return max(1, min(int(requested_tokens), window))

    def fit(self, context: Optional[ContextResult], requested_tokens: int) -> Optional[ContextResult]:
        """
        Trim `context` so its estimated tokens fit the budget.

        Contexts that already fit come back unchanged. Otherwise a new
        ContextResult is returned with the surviving messages best first,
        fresh token and quality figures, and `tokens_trimmed` set.
        """
        if context is None or not context.selected_messages:
            return context

        budget = self.token_budget(requested_tokens)
        original_tokens = _tokens(context.selected_messages)
        if original_tokens <= budget:
            return context

        try:
            messages, dropped = self.remove_by_relevance(context.selected_messages, budget)
            messages = self.truncate_long_messages(messages, budget)
            if _tokens(messages) > budget:
                messages = [truncate_message(messages[0], budget)]
        except Exception as e:
            logger.error(f"Context window trimming failed, keeping best message only: {e}", exc_info=True)
            best = max(context.selected_messages, key=lambda m: m.relevance_score)
            messages, dropped = [truncate_message(best, budget)], len(context.selected_messages) - 1

        tokens = _tokens(messages)
        logger.info("Context trimmed " + format_fields(
            budget=budget,
            tokens_before=original_tokens,
            tokens_after=tokens,
            dropped=dropped,
        ))
        if self.verbose:
            print(f"[WINDOW] {original_tokens} -> {tokens} tokens (budget {budget}, dropped {dropped})")

        return replace(
            context,
            selected_messages=messages,
            estimated_tokens=tokens,
            quality_score=ContextRetrieval.selection_quality(messages),
            tokens_trimmed=context.tokens_trimmed + original_tokens - tokens,
        )

    # ========================================================================
    # STRATEGIES
    # ========================================================================

    @staticmethod
    def remove_by_relevance(messages: List[RelevantMessage], budget: int) -> Tuple[List[RelevantMessage], int]:
        """Drop the least relevant messages until the rest fit; keeps at least one"""
        ranked = sorted(messages, key=lambda m: m.relevance_score, reverse=True)
        total = _tokens(ranked)
        dropped = 0
        while total > budget and len(ranked) > 1:
            total -= estimate_tokens(ranked.pop().content)
            dropped += 1
        return ranked, dropped

    def truncate_long_messages(self, messages: List[RelevantMessage], budget: int) -> List[RelevantMessage]:
        """Cut long messages, least relevant first, until the total fits"""
        messages = list(messages)
        total = _tokens(messages)
        for index in reversed(range(len(messages))):
            if total <= budget:
                break
            before = estimate_tokens(messages[index].content)
            if before > self.config.max_message_tokens:
                messages[index] = truncate_message(messages[index], self.config.max_message_tokens)
                total -= before - estimate_tokens(messages[index].content)
        return messages
