"""
Tests for the four intent analyzers.
"""

import pytest

from conftest import make_history
from intelligence.analyzers import (
    ComplexityAnalyzer, ContextualIntentAnalyzer, DeepIntentAnalyzer, SurfaceIntentAnalyzer,
)
from intelligence.base_types import ComplexityLevel, IntentLayerType

DEBUG_QUERY = "debug this undefined error in my React component"


# ============================================================================
# SURFACE
# ============================================================================

class TestSurfaceIntentAnalyzer:

    def setup_method(self):
        self.analyzer = SurfaceIntentAnalyzer()

    def test_polite_greeting(self):
        result = self.analyzer.analyze("Hello there, could you please help me?")

        assert result.type == IntentLayerType.SOCIAL
        assert result.confidence == 1.0
        assert result.politeness_level == pytest.approx(0.34)
        assert result.conversational_tone == 'friendly'
        assert result.suggested_tone == 'friendly'
        assert result.requires_social_response
        assert result.indicators[0].startswith('greeting:')

    def test_urgent_frustration(self):
        result = self.analyzer.analyze("URGENT: production is broken!!")

        assert result.conversational_tone == 'urgent'
        assert result.suggested_tone == 'encouraging'
        assert not result.requires_social_response

    def test_no_social_signals(self):
        result = self.analyzer.analyze("explain closures")

        assert result.type == IntentLayerType.TECHNICAL
        assert result.confidence == pytest.approx(0.1)
        assert result.indicators == []

    @pytest.mark.parametrize("query", [
        "explain closures",
        "history of this file",
        "migrate the supabase schema",
        "the thanksgiving_banner component",
    ])
    def test_social_words_match_whole_words_only(self, query):
        result = self.analyzer.analyze(query)

        assert result.type == IntentLayerType.TECHNICAL
        assert result.indicators == []

    def test_acknowledgment_is_continuation(self):
        result = self.analyzer.analyze("ok got it")

        assert result.type == IntentLayerType.CONTINUATION

    def test_confusion_tone(self):
        result = self.analyzer.analyze("what do you mean by hoisting")

        assert result.conversational_tone == 'confused'
        assert result.suggested_tone == 'encouraging'


# ============================================================================
# DEEP
# ============================================================================

class TestDeepIntentAnalyzer:

    def setup_method(self):
        self.analyzer = DeepIntentAnalyzer()

    def test_debug_request(self):
        result = self.analyzer.analyze(DEBUG_QUERY)

        assert result.type == IntentLayerType.TECHNICAL
        assert result.confidence == 1.0
        assert result.primary_action == 'debug'
        assert result.implementation_hints == ['Provide step-by-step debugging approach']
        assert result.domain_expertise == ['frontend_frameworks']

    def test_complexity_indicators(self):
        result = self.analyzer.analyze("optimize api performance and security")

        assert result.complexity_indicators == ['performance_complexity', 'security_complexity']
        assert result.domain_expertise == ['backend_development']

    def test_social_query_has_low_confidence(self):
        result = self.analyzer.analyze("hello")

        assert result.type == IntentLayerType.SOCIAL
        assert result.confidence == pytest.approx(0.1)
        assert result.primary_action is None


# ============================================================================
# CONTEXTUAL
# ============================================================================

class TestContextualIntentAnalyzer:

    def setup_method(self):
        self.analyzer = ContextualIntentAnalyzer()

    def test_reference_pronoun_requires_history(self):
        history = make_history("How do I memoize a selector?", "Use createSelector from reselect.")
        result = self.analyzer.analyze("what about that one", history)

        assert result.requires_history
        assert result.history_depth == 2
        assert result.type == IntentLayerType.CONTINUATION
        assert result.context_dependency == pytest.approx(0.7)
        assert result.conversation_flow == 'continuation'

    def test_new_topic(self):
        result = self.analyzer.analyze("explain closures")

        assert not result.requires_history
        assert result.history_depth == 0
        assert result.conversation_flow == 'new_topic'

    def test_words_match_on_boundaries(self):
        result = self.analyzer.analyze("thistle android")

        assert result.context_dependency == 0.0
        assert result.indicators == []

    def test_history_depth_bounded_by_history(self):
        result = self.analyzer.analyze("also fix that and this", make_history("only message"))

        assert result.history_depth == 1
        assert result.conversation_flow == 'followup'

    def test_clarification_flow(self):
        result = self.analyzer.analyze("can you explain the previous answer")

        assert result.conversation_flow == 'clarification'
        assert 'reference:previous' in result.indicators


# ============================================================================
# COMPLEXITY
# ============================================================================

class TestComplexityAnalyzer:

    def setup_method(self):
        self.analyzer = ComplexityAnalyzer()

    @pytest.mark.parametrize("query, level, tokens", [
        ("hello", ComplexityLevel.MINIMAL, 50),
        ("add a button", ComplexityLevel.BASIC, 200),
        ("refactor the project files", ComplexityLevel.INTERMEDIATE, 400),
        (DEBUG_QUERY, ComplexityLevel.ADVANCED, 800),
        ("design the microservices architecture step by step", ComplexityLevel.EXPERT, 1200),
    ])
    def test_levels_and_budgets(self, query, level, tokens):
        result = self.analyzer.analyze(query)

        assert result.level == level
        assert result.recommended_tokens == tokens

    def test_factors_and_expertise(self):
        result = self.analyzer.analyze(DEBUG_QUERY)

        assert result.factors == ['error_debugging']
        assert result.required_expertise == ['frontend']
        assert result.type == IntentLayerType.COMPLEX
        assert result.confidence == pytest.approx(0.8)

    def test_multi_step(self):
        result = self.analyzer.analyze("first create the schema, then seed it, finally deploy to aws")

        assert result.multi_step
        assert 'devops' in result.required_expertise

    def test_minimal_is_social(self):
        result = self.analyzer.analyze("hello")

        assert result.type == IntentLayerType.SOCIAL
        assert result.factors == []
        assert result.confidence == pytest.approx(0.3)
