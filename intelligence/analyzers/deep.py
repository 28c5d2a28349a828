"""
Deep Intent Analyzer

Second analysis layer: what the user wants done technically. Finds
operation verbs and concept nouns, the primary action/object pair, and the
domains the answer will need.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from intelligence.base_types import ChatMessage, DeepAnalysis, IntentLayerType

TECHNICAL_VERBS = [
    'debug', 'fix', 'optimize', 'refactor', 'implement', 'create', 'deploy', 'test',
    'build', 'setup', 'configure', 'install', 'update', 'add', 'remove', 'design',
    'analyze', 'review', 'merge', 'commit', 'push', 'pull', 'clone',
]

TECHNICAL_NOUNS = [
    'component', 'function', 'api', 'database', 'error', 'bug', 'endpoint', 'state',
    'props', 'hook', 'service', 'module', 'class', 'interface', 'variable', 'array',
    'object', 'response', 'request', 'server', 'client',
]

IMPLEMENTATION_HINTS = {
    'debug': 'Provide step-by-step debugging approach',
    'fix': 'Provide step-by-step debugging approach',
    'create': 'Offer complete implementation with examples',
    'implement': 'Offer complete implementation with examples',
    'optimize': 'Include performance considerations',
    'refactor': 'Preserve behaviour and explain structural changes',
    'test': 'Include test cases alongside the code',
}

COMPLEXITY_INDICATORS = [
    ('architectural_complexity', re.compile(r'architecture|design pattern|scalability', re.IGNORECASE)),
    ('performance_complexity', re.compile(r'performance|optimization|memory', re.IGNORECASE)),
    ('security_complexity', re.compile(r'security|auth|encrypt', re.IGNORECASE)),
]

DOMAIN_EXPERTISE = [
    ('frontend_frameworks', re.compile(r'\b(react|vue|angular|svelte)\b', re.IGNORECASE)),
    ('backend_development', re.compile(r'\b(api|server|database|endpoint)\b', re.IGNORECASE)),
]


@dataclass(frozen=True)
class TechnicalSignal:
    type: str  # operation | concept
    value: str
    confidence: float
    context: str


class DeepIntentAnalyzer:
    """Technical verb/noun analysis"""

    def analyze(self, query: str, history: Optional[Sequence[ChatMessage]] = None) -> DeepAnalysis:
        signals = self.extract_technical_signals(query)
        words = query.lower().split()

        primary_action = next((w for w in words if any(v in w for v in TECHNICAL_VERBS)), None)
        primary_object = next((w for w in words if any(n in w for n in TECHNICAL_NOUNS)), None)

        hints: List[str] = []
        for signal in signals:
            hint = IMPLEMENTATION_HINTS.get(signal.value)
            if hint and hint not in hints:
                hints.append(hint)

        confidence = self._calculate_confidence(signals)
        return DeepAnalysis(
            type=IntentLayerType.TECHNICAL if confidence > 0.5 else IntentLayerType.SOCIAL,
            confidence=confidence,
            indicators=[f"{s.type}:{s.value}" for s in signals],
            primary_action=primary_action,
            primary_object=primary_object,
            implementation_hints=hints,
            complexity_indicators=[name for name, regex in COMPLEXITY_INDICATORS if regex.search(query)],
            domain_expertise=[name for name, regex in DOMAIN_EXPERTISE if regex.search(query)],
        )

    @staticmethod
    def extract_technical_signals(query: str) -> List[TechnicalSignal]:
        signals = []
        for word in query.lower().split():
            for verb in TECHNICAL_VERBS:
                if verb in word:
                    signals.append(TechnicalSignal('operation', verb, 0.8, word))
            for noun in TECHNICAL_NOUNS:
                if noun in word:
                    signals.append(TechnicalSignal('concept', noun, 0.7, word))
        return signals

    @staticmethod
    def _calculate_confidence(signals: List[TechnicalSignal]) -> float:
        if not signals:
            return 0.1
        average = sum(s.confidence for s in signals) / len(signals)
        return min(average + min(len(signals) * 0.1, 0.3), 1.0)
