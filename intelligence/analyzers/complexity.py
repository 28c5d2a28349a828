"""
Complexity Analyzer

Maps escalation factors (error debugging, multi-file scope, architecture
vocabulary) to a complexity tier and the token budget that tier needs.
"""

import re
from typing import List, Optional, Sequence

from intelligence.base_types import ChatMessage, ComplexityAnalysis, ComplexityLevel, IntentLayerType
from intelligence.analyzers.deep import TECHNICAL_VERBS

COMPLEXITY_KEYWORDS = [
    'architecture', 'design pattern', 'scalability', 'performance', 'security',
    'authentication', 'authorization', 'optimization', 'refactoring', 'testing',
    'deployment', 'docker', 'kubernetes', 'microservices', 'database design',
]

ERROR_PATTERN = re.compile(r'error|exception|failed|broken|not working|undefined|null', re.IGNORECASE)
MULTI_FILE_PATTERN = re.compile(r'multiple files|several files|project|app|application', re.IGNORECASE)

TOKEN_BUDGETS = {
    ComplexityLevel.MINIMAL: 50,
    ComplexityLevel.BASIC: 200,
    ComplexityLevel.INTERMEDIATE: 400,
    ComplexityLevel.ADVANCED: 800,
    ComplexityLevel.EXPERT: 1200,
}

EXPERTISE_PATTERNS = [
    ('frontend', re.compile(r'react|vue|angular', re.IGNORECASE)),
    ('backend', re.compile(r'node|express|api', re.IGNORECASE)),
    ('database', re.compile(r'database|sql|mongo', re.IGNORECASE)),
    ('devops', re.compile(r'deploy|docker|aws', re.IGNORECASE)),
]

MULTI_STEP_PATTERNS = [
    re.compile(r'step by step', re.IGNORECASE),
    re.compile(r'first.*then.*finally', re.IGNORECASE),
    re.compile(r'multiple.*steps', re.IGNORECASE),
    re.compile(r'process.*involves', re.IGNORECASE),
]


class ComplexityAnalyzer:
    """Escalation-factor analysis and token budgeting"""

    def analyze(self, query: str, history: Optional[Sequence[ChatMessage]] = None) -> ComplexityAnalysis:
        factors = self.detect_escalation_factors(query)
        level = self.determine_level(factors)

        return ComplexityAnalysis(
            type=IntentLayerType.SOCIAL if level == ComplexityLevel.MINIMAL else IntentLayerType.COMPLEX,
            confidence=0.8 if factors else 0.3,
            indicators=list(factors),
            level=level,
            factors=factors,
            recommended_tokens=TOKEN_BUDGETS[level],
            required_expertise=[name for name, regex in EXPERTISE_PATTERNS if regex.search(query)],
            multi_step=any(p.search(query) for p in MULTI_STEP_PATTERNS),
        )

    @staticmethod
    def detect_escalation_factors(query: str) -> List[str]:
        factors = []
        if ERROR_PATTERN.search(query):
            factors.append('error_debugging')
        if MULTI_FILE_PATTERN.search(query):
            factors.append('multi_file_context')

        lowered = query.lower()
        keyword = next((k for k in COMPLEXITY_KEYWORDS if k in lowered), None)
        if keyword:
            factors.append(f"architecture:{keyword}")

        if not factors and any(verb in word for word in lowered.split() for verb in TECHNICAL_VERBS):
            factors.append('technical_request')
        return factors

    @staticmethod
    def determine_level(factors: List[str]) -> ComplexityLevel:
        if not factors:
            return ComplexityLevel.MINIMAL
        if any(f.startswith('architecture') for f in factors):
            return ComplexityLevel.EXPERT
        if 'error_debugging' in factors:
            return ComplexityLevel.ADVANCED
        if 'multi_file_context' in factors:
            return ComplexityLevel.INTERMEDIATE
        return ComplexityLevel.BASIC
