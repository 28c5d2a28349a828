"""
Tests for keeping retrieved context inside its token budget.
"""

import pytest

from conftest import NOW
from intelligence.base_types import ChatMessage, ContextResult, RelevanceMetadata, RelevantMessage
from intelligence.context import ContextRetrieval, ContextWindowConfig, ContextWindowManager
from intelligence.context.text import estimate_tokens


def relevant(message_id, tokens, score):
    return RelevantMessage(
        message=ChatMessage(id=message_id, content='a' * (tokens * 4), timestamp=NOW),
        relevance_score=score,
        metadata=RelevanceMetadata(
            semantic_similarity=score, recency_factor=1.0, engagement_score=0.5, technical_overlap=0.2,
        ),
    )


def context_of(*messages):
    return ContextResult(
        selected_messages=list(messages),
        total_considered=len(messages),
        estimated_tokens=sum(estimate_tokens(m.content) for m in messages),
        quality_score=0.6,
        selection_strategy='relevance_scoring',
    )


@pytest.fixture
def window():
    return ContextWindowManager()


def test_budget_is_capped_by_window_minus_reserve():
    window = ContextWindowManager(ContextWindowConfig(max_tokens=300, reserve_tokens=100))

    assert window.token_budget(5000) == 200
    assert window.token_budget(150) == 150


def test_context_within_budget_is_untouched(window):
    context = context_of(relevant('m1', 40, 0.9), relevant('m2', 40, 0.5))

    assert window.fit(context, 400) is context


def test_missing_or_empty_context_passes_through(window):
    empty = ContextResult()

    assert window.fit(None, 100) is None
    assert window.fit(empty, 100) is empty


def test_least_relevant_messages_are_dropped_first(window):
    context = context_of(relevant('high', 100, 0.9), relevant('low', 100, 0.5), relevant('mid', 100, 0.7))

    trimmed = window.fit(context, 250)

    assert [m.message.id for m in trimmed.selected_messages] == ['high', 'mid']
    assert trimmed.estimated_tokens == 200
    assert trimmed.tokens_trimmed == 100
    assert trimmed.selection_strategy == 'relevance_scoring'
    assert trimmed.quality_score == pytest.approx(ContextRetrieval.selection_quality(trimmed.selected_messages))


def test_long_message_is_truncated(window):
    context = context_of(relevant('essay', 1000, 0.8))

    trimmed = window.fit(context, 500)

    content = trimmed.selected_messages[0].content
    assert content.endswith('...')
    assert trimmed.estimated_tokens == estimate_tokens(content) == 150
    assert trimmed.tokens_trimmed == 850
    assert len(context.selected_messages[0].content) == 4000


def test_lone_message_is_cut_to_budget(window):
    trimmed = window.fit(context_of(relevant('m1', 120, 0.8)), 50)

    assert len(trimmed.selected_messages) == 1
    assert trimmed.estimated_tokens == 50


@pytest.mark.parametrize("requested", [60, 150, 333, 700, 2000])
def test_trimmed_context_never_exceeds_budget(window, requested):
    context = context_of(*(relevant(f"m{i}", 90 + 40 * i, 0.2 + 0.1 * i) for i in range(6)))

    trimmed = window.fit(context, requested)

    assert trimmed.selected_messages
    assert trimmed.estimated_tokens <= window.token_budget(requested)
    assert trimmed.estimated_tokens == sum(estimate_tokens(m.content) for m in trimmed.selected_messages)
