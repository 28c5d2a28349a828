"""
Contextual Intent Analyzer

Third analysis layer: how much the query leans on earlier conversation.
Pronouns, continuation and followup words push the dependency score up;
reference indicators decide how many history messages are needed.
"""

import re
from typing import List, Optional, Sequence

from intelligence.base_types import ChatMessage, ContextualAnalysis, IntentLayerType

CONTINUATION_WORDS = ['this', 'that', 'it', 'also', 'and', 'plus', 'additionally']
FOLLOWUP_WORDS = ['but', 'however', 'actually', 'wait', 'now', 'also']
REFERENCE_WORDS = ['above', 'previous', 'earlier', 'before', 'last']

CLARIFICATION_PHRASES = ['what do you mean', 'can you explain', 'clarify', 'confused']
FOLLOWUP_FLOW_WORDS = ['also', 'additionally', 'and', 'plus']

PRONOUN_PATTERN = re.compile(r'\b(this|that|it|they|them|those|these)\b', re.IGNORECASE)


def _contains_word(text: str, word: str) -> bool:
    return re.search(rf'\b{re.escape(word)}\b', text) is not None


class ContextualIntentAnalyzer:
    """Conversation-dependency analysis"""

    MAX_HISTORY_DEPTH = 5

    def analyze(self, query: str, history: Optional[Sequence[ChatMessage]] = None) -> ContextualAnalysis:
        history = list(history or [])
        indicators = self.find_reference_indicators(query)
        dependency = self.calculate_context_dependency(query, history)
        requires_history = dependency > 0.3 or bool(indicators)

        confidence = dependency * 0.6 + min(len(indicators) * 0.1, 0.3)
        if history:
            confidence += 0.1

        return ContextualAnalysis(
            type=IntentLayerType.CONTINUATION if requires_history else IntentLayerType.SOCIAL,
            confidence=min(confidence, 1.0),
            indicators=indicators,
            context_dependency=dependency,
            conversation_flow=self._determine_flow(query),
            requires_history=requires_history,
            history_depth=min(len(indicators) * 2, self.MAX_HISTORY_DEPTH, len(history)),
        )

    @staticmethod
    def find_reference_indicators(query: str) -> List[str]:
        indicators = []
        for word in query.lower().split():
            word = word.strip('.,!?;:')
            if word in CONTINUATION_WORDS:
                indicators.append(f"continuation:{word}")
            if word in FOLLOWUP_WORDS:
                indicators.append(f"followup:{word}")
            if word in REFERENCE_WORDS:
                indicators.append(f"reference:{word}")
        return indicators

    @staticmethod
    def calculate_context_dependency(query: str, history: Sequence[ChatMessage]) -> float:
        lowered = query.lower()
        dependency = min(len(PRONOUN_PATTERN.findall(query)) * 0.2, 0.4)
        continuations = sum(1 for word in CONTINUATION_WORDS if _contains_word(lowered, word))
        dependency += min(continuations * 0.3, 0.6)
        if history:
            dependency += 0.2
        return min(dependency, 1.0)

    @staticmethod
    def _determine_flow(query: str) -> str:
        lowered = query.lower()
        if any(phrase in lowered for phrase in CLARIFICATION_PHRASES):
            return 'clarification'
        if any(_contains_word(lowered, word) for word in FOLLOWUP_FLOW_WORDS):
            return 'followup'
        if any(_contains_word(lowered, word) for word in CONTINUATION_WORDS):
            return 'continuation'
        return 'new_topic'
