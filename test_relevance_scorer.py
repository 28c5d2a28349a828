"""
Tests for the multi-signal relevance scorer.
"""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import NOW, make_history
from intelligence.base_types import ChatMessage, MessageMetadata
from intelligence.context.relevance_scorer import (
    RelevanceScorer, RelevanceScorerConfig, ScoringComponents,
)


@pytest.fixture
def scorer(fixed_now):
    return RelevanceScorer(now=fixed_now)


# ============================================================================
# SIMILARITY
# ============================================================================

def test_cosine_similarity():
    assert RelevanceScorer.cosine_similarity("react hooks state", "react state management") == pytest.approx(2 / 3)


def test_phrase_similarity_counts_bigrams():
    # jaccard 0.5, two technical terms, one shared bigram
    assert RelevanceScorer.phrase_similarity("use react state", "react state hook") == pytest.approx(0.85)


def test_tfidf_similarity_bounds():
    assert RelevanceScorer.tfidf_similarity("react state hook", "react state hook") == pytest.approx(1.0)
    assert RelevanceScorer.tfidf_similarity("react state", "docker compose") == 0.0


@pytest.mark.parametrize("algorithm", ['tfidf', 'cosine', 'semantic', 'hybrid'])
def test_every_algorithm_stays_in_range(fixed_now, algorithm):
    scorer = RelevanceScorer(RelevanceScorerConfig(algorithm=algorithm), now=fixed_now)
    score = scorer.semantic_score("react state hook", "the react state hook pattern", ["react", "vue"])

    assert 0.0 < score <= 1.0


# ============================================================================
# TEMPORAL / ENGAGEMENT / COHERENCE
# ============================================================================

def test_exponential_decay(scorer):
    assert scorer.temporal_score(NOW) == pytest.approx(1.0)
    assert scorer.temporal_score(NOW - timedelta(minutes=5)) == pytest.approx(0.95)


def test_linear_and_logarithmic_decay(fixed_now):
    linear = RelevanceScorer(RelevanceScorerConfig(decay_function='linear'), now=fixed_now)
    logarithmic = RelevanceScorer(RelevanceScorerConfig(decay_function='logarithmic'), now=fixed_now)

    assert linear.temporal_score(NOW - timedelta(hours=12)) == pytest.approx(0.5)
    assert linear.temporal_score(NOW - timedelta(days=2)) == 0.0
    assert logarithmic.temporal_score(NOW) == pytest.approx(1.0)


def test_aware_timestamps_are_scored():
    now_utc = NOW.replace(tzinfo=timezone.utc)
    scorer = RelevanceScorer(now=lambda: now_utc)

    assert scorer.temporal_score(now_utc - timedelta(minutes=5)) == pytest.approx(0.95)
    assert RelevanceScorer().temporal_score(datetime.now(timezone.utc)) == pytest.approx(1.0, abs=1e-3)


def test_coherence_with_mixed_timezones(scorer):
    naive = ChatMessage(id='a', content="react state", timestamp=NOW)
    aware = ChatMessage(id='b', content="react state", timestamp=NOW.astimezone(timezone.utc))

    assert scorer.coherence_score(naive, [naive, aware]) == pytest.approx(1.0)


def test_engagement_score():
    message = ChatMessage(
        id='a', content='x', timestamp=NOW,
        metadata=MessageMetadata(user_followup_questions=2, user_said_thanks=True),
    )
    assert RelevanceScorer.engagement_score(message) == pytest.approx(0.95)


def test_coherence_without_neighbours(scorer):
    lonely = make_history("react state")
    spread = make_history("react state", "docker compose", minutes_apart=30)

    assert scorer.coherence_score(lonely[0], lonely) == 0.5
    assert scorer.coherence_score(spread[0], spread) == 0.3


# ============================================================================
# FINAL SCORE
# ============================================================================

def test_boost_is_capped():
    content = "How do I fix this error? try this: `x = 1`"
    assert RelevanceScorer(now=lambda: NOW).boost_factor(content) == 2.0


def test_plain_content_has_no_boost(scorer):
    assert scorer.boost_factor("plain words here") == 1.0


def test_score_messages_best_first(scorer, technical_history):
    scores = scorer.score_messages("react component error", technical_history)
    finals = [s.final_score for s in scores]

    assert finals == sorted(finals, reverse=True)
    assert all(0.0 <= f <= 1.0 for f in finals)
    assert all(0.0 <= s.confidence <= 1.0 for s in scores)


def test_explain_low_relevance():
    components = ScoringComponents(semantic=0.0, temporal=0.1, engagement=0.5, technical=0.0, coherence=0.3)
    assert RelevanceScorer.explain(components, 1.0) == ["Low relevance across all signals"]


def test_update_config_validates(scorer):
    scorer.update_config(algorithm='cosine', weights={'semantic': 0.5})
    assert scorer.config.algorithm == 'cosine'
    assert scorer.config.weights.semantic == 0.5

    with pytest.raises(ValueError):
        scorer.update_config(algorithm='bm25')
    with pytest.raises(ValueError):
        scorer.update_config(decay_function='cubic')
    with pytest.raises(ValueError):
        scorer.update_config(weights={'popularity': 1.0})
