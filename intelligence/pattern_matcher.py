"""
Pattern Matcher

Cheapest path through the engine. A short ordered registry of regexes
recognizes trivial queries (greetings, thanks, confirmations) and returns a
canned response plus a small token estimate, so the caller can skip building
LLM context entirely.

Author: AI System
Version: 2.0
"""

import re
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Pattern

from intelligence.base_types import PatternMatch, PatternMatchResult, QueryType
from logger import get_logger

logger = get_logger(__name__)


# Tokens a full-context call would have used for each query type
BASELINE_TOKENS = {
    QueryType.SIMPLE: 1500,
    QueryType.MEDIUM: 1800,
    QueryType.COMPLEX: 2500,
}


@dataclass
class RegisteredPattern:
    """A compiled pattern plus its running statistics"""
    id: str
    regex: Pattern
    response: str
    tokens: int
    query_type: QueryType
    pattern_type: str
    category: str
    confidence: float = 0.9
    effectiveness: float = 0.95
    tags: List[str] = field(default_factory=list)
    hit_count: int = 0
    tokens_saved: int = 0
    user_satisfaction: Optional[float] = None

    def to_match(self) -> PatternMatch:
        return PatternMatch(
            pattern_id=self.id,
            pattern_type=self.pattern_type,
            query_type=self.query_type,
            confidence=self.confidence,
            estimated_tokens=self.tokens,
            fallback_response=self.response,
            hit_count=self.hit_count,
        )


DEFAULT_EFFECTIVENESS = 0.95

DEFAULT_PATTERNS: List[Dict[str, Any]] = [
    {
        'id': 'pure_greeting',
        'pattern': r"^(hi|hello|hey|sup|what's up)[\s\.\!]*$",
        'response': (
            "Hi! I'm your coding assistant. I can help you:\n\n"
            "- Build apps and websites from scratch\n"
            "- Debug and fix code issues\n"
            "- Add features to existing projects\n"
            "- Explain how things work\n\n"
            "What are you working on today?"
        ),
        'tokens': 60,
        'query_type': QueryType.SIMPLE,
        'pattern_type': 'greeting',
        'category': 'social',
        'tags': ['greeting', 'introduction'],
    },
    {
        'id': 'gratitude',
        'pattern': r"^(thanks?|thank you|thx|appreciated?)[\s\.\!]*$",
        'response': "You're welcome! Let me know if you need anything else.",
        'tokens': 25,
        'query_type': QueryType.SIMPLE,
        'pattern_type': 'gratitude',
        'category': 'social',
        'tags': ['gratitude'],
    },
    {
        'id': 'status_check',
        'pattern': r"^(how are you|how's it going|status|working\?)[\s\.\!]*$",
        'response': "All systems running. Ready to help with your project - what should we build?",
        'tokens': 30,
        'query_type': QueryType.SIMPLE,
        'pattern_type': 'help_request',
        'category': 'status',
        'tags': ['status'],
    },
    {
        'id': 'debug_with_error',
        'pattern': r"^(hi|hey|hello).*(debug|fix|error|help).*(error|undefined|null|failed|exception)",
        'response': (
            "I can help debug that. To pinpoint the issue:\n\n"
            "1. Paste the complete error message, including line numbers\n"
            "2. Share the code where the error occurs\n"
            "3. Describe what you expected versus what happens"
        ),
        'tokens': 85,
        'query_type': QueryType.MEDIUM,
        'pattern_type': 'debug_request',
        'category': 'debugging',
        'tags': ['debugging', 'error'],
    },
    {
        'id': 'general_creation',
        'pattern': r"^(create|build|make).*(app|website|component|page)$",
        'response': (
            "Happy to build that. A few details first:\n\n"
            "1. What kind of app or site is it?\n"
            "2. Which features matter most?\n"
            "3. Any tech preferences (React, plain JS, a styling library)?"
        ),
        'tokens': 95,
        'query_type': QueryType.MEDIUM,
        'pattern_type': 'creation_request',
        'category': 'creation',
        'tags': ['creation', 'requirements'],
    },
    {
        'id': 'vague_help',
        'pattern': r"^(help|can you help|need help|assist)[\s\.\!]*$",
        'response': (
            "Of course. I can help with:\n\n"
            "- Building apps, websites and components\n"
            "- Debugging errors\n"
            "- Adding features to existing projects\n"
            "- Explaining code and technologies\n\n"
            "What's your current project or challenge?"
        ),
        'tokens': 80,
        'query_type': QueryType.SIMPLE,
        'pattern_type': 'help_request',
        'category': 'help',
        'tags': ['help'],
    },
    {
        'id': 'quick_confirmation',
        'pattern': r"^(yes|yeah|yep|sure|ok|okay|sounds good)[\s\.\!]*$",
        'response': "Great! What would you like me to work on?",
        'tokens': 20,
        'query_type': QueryType.SIMPLE,
        'pattern_type': 'continuation',
        'category': 'confirmation',
        'tags': ['confirmation'],
    },
    {
        'id': 'quick_negation',
        'pattern': r"^(no|nope|not now|maybe later)[\s\.\!]*$",
        'response': "No problem! I'll be here whenever you're ready.",
        'tokens': 25,
        'query_type': QueryType.SIMPLE,
        'pattern_type': 'continuation',
        'category': 'social',
        'tags': ['negation'],
    },
]


class PatternMatcher:
    """
    Ordered regex registry with canned responses.

    First match wins. Matching mutates only the pattern's hit count,
    effectiveness and savings counters, under a lock.
    """

    def __init__(self, custom_patterns: Optional[List[Dict[str, Any]]] = None,
                 include_defaults: bool = True, verbose: bool = False):
        self.verbose = verbose
        self.patterns: Dict[str, RegisteredPattern] = {}
        self.total_queries = 0
        self.total_matches = 0
        self._lock = threading.RLock()

        if include_defaults:
            for definition in DEFAULT_PATTERNS:
                self.register_pattern(effectiveness=DEFAULT_EFFECTIVENESS, **definition)

        for definition in custom_patterns or []:
            self.register_pattern(**self._custom_defaults(definition))

    @staticmethod
    def _custom_defaults(definition: Dict[str, Any]) -> Dict[str, Any]:
        merged = {
            'query_type': QueryType.SIMPLE,
            'pattern_type': 'technical_question',
            'category': 'custom',
            'effectiveness': 0.8,
        }
        merged.update(definition)
        return merged

    def register_pattern(
        self,
        id: str,
        pattern: str,
        response: str,
        tokens: int,
        query_type: QueryType = QueryType.SIMPLE,
        pattern_type: str = 'technical_question',
        category: str = 'custom',
        confidence: float = 0.9,
        effectiveness: float = 0.8,
        tags: Optional[List[str]] = None,
        flags: int = re.IGNORECASE,
    ) -> RegisteredPattern:
        """Compile and register a pattern; re-registering an id replaces it in place"""
        registered = RegisteredPattern(
            id=id,
            regex=re.compile(pattern, flags),
            response=response,
            tokens=int(tokens),
            query_type=QueryType(query_type),
            pattern_type=pattern_type,
            category=category,
            confidence=confidence,
            effectiveness=effectiveness,
            tags=list(tags or []),
        )
        with self._lock:
            self.patterns[id] = registered
        logger.debug(f"Registered pattern {id} ({registered.tokens} tokens)")
        return registered

    def unregister_pattern(self, pattern_id: str) -> bool:
        with self._lock:
            return self.patterns.pop(pattern_id, None) is not None

    # ========================================================================
    # MATCHING
    # ========================================================================

    def match(self, query: str) -> PatternMatchResult:
        """Return the first registered pattern that matches the normalized query"""
        with self._lock:
            self.total_queries += 1
            pattern_id = self.find_pattern_id(query)
            if pattern_id is None:
                return PatternMatchResult(matched=False)
            return self.record_hit(pattern_id)

    def find_pattern_id(self, query: str) -> Optional[str]:
        """First matching pattern id, without touching statistics"""
        normalized = query.strip().lower()
        with self._lock:
            for pattern in self.patterns.values():
                if pattern.regex.search(normalized):
                    return pattern.id
        return None

    def record_hit(self, pattern_id: str, count_query: bool = False,
                   query: Optional[str] = None) -> PatternMatchResult:
        """
        Count a match for a known pattern and build its result.

        Used directly when the pattern id came from the pattern cache. When
        `query` is given the pattern must still match it; otherwise nothing
        is counted and an unmatched result comes back.
        """
        with self._lock:
            pattern = self.patterns.get(pattern_id)
            if pattern is None:
                return PatternMatchResult(matched=False)
            if query is not None and not pattern.regex.search(query.strip().lower()):
                return PatternMatchResult(matched=False)
            if count_query:
                self.total_queries += 1

            pattern.hit_count += 1
            pattern.effectiveness = min(
                pattern.effectiveness + min(pattern.hit_count * 0.01, 0.05), 1.0
            )
            pattern.tokens_saved += BASELINE_TOKENS[pattern.query_type] - pattern.tokens
            self.total_matches += 1
            result = PatternMatchResult(
                matched=True,
                pattern=pattern.to_match(),
                confidence=pattern.confidence,
                estimated_tokens=pattern.tokens,
                fallback_response=pattern.response,
                is_complete=True,
            )

        if self.verbose:
            print(f"[PATTERN] {pattern.id} matched ({pattern.tokens} tokens, hits={pattern.hit_count})")
        return result

    def debug_pattern_matching(self, query: str) -> List[Dict[str, Any]]:
        """Evaluate every pattern without touching statistics"""
        normalized = query.strip().lower()
        with self._lock:
            rows = [
                {
                    'pattern_id': p.id,
                    'matched': bool(p.regex.search(normalized)),
                    'confidence': p.confidence,
                    'tokens': p.tokens,
                    'pattern': p.regex.pattern,
                }
                for p in self.patterns.values()
            ]
        return sorted(rows, key=lambda r: (not r['matched'], -r['confidence']))

    # ========================================================================
    # FEEDBACK & MAINTENANCE
    # ========================================================================

    def update_pattern_effectiveness(self, pattern_id: str, satisfaction: float) -> bool:
        """Blend user satisfaction (0-1) into the pattern's effectiveness"""
        with self._lock:
            pattern = self.patterns.get(pattern_id)
            if pattern is None:
                return False
            previous = pattern.user_satisfaction if pattern.user_satisfaction is not None else 0.8
            pattern.user_satisfaction = (previous + satisfaction) / 2
            pattern.effectiveness = min(pattern.user_satisfaction * 1.2, 1.0)
            return True

    def cleanup_ineffective_patterns(self, min_effectiveness: float = 0.3, min_hits: int = 10) -> List[str]:
        """Drop patterns that proved ineffective after enough traffic"""
        with self._lock:
            doomed = [
                p.id for p in self.patterns.values()
                if p.effectiveness < min_effectiveness and p.hit_count >= min_hits
            ]
            for pattern_id in doomed:
                del self.patterns[pattern_id]

        if doomed:
            logger.info(f"Removed {len(doomed)} ineffective patterns: {', '.join(doomed)}")
        return doomed

    def export_patterns(self) -> List[Dict[str, Any]]:
        """JSON-serializable pattern definitions, in registry order"""
        with self._lock:
            return [
                {
                    'id': p.id,
                    'pattern': p.regex.pattern,
                    'flags': p.regex.flags & ~re.UNICODE,
                    'response': p.response,
                    'tokens': p.tokens,
                    'query_type': p.query_type.value,
                    'pattern_type': p.pattern_type,
                    'category': p.category,
                    'confidence': p.confidence,
                    'effectiveness': p.effectiveness,
                    'tags': list(p.tags),
                }
                for p in self.patterns.values()
            ]

    def import_patterns(self, definitions: List[Dict[str, Any]]) -> int:
        """Register exported definitions; returns how many were imported"""
        imported = 0
        for definition in definitions:
            try:
                self.register_pattern(**definition)
                imported += 1
            except (re.error, TypeError, ValueError) as e:
                logger.warning(f"Skipping pattern {definition.get('id')}: {e}")
        return imported

    # ========================================================================
    # STATS
    # ========================================================================

    def get_pattern_stats(self) -> Dict[str, Any]:
        with self._lock:
            patterns = list(self.patterns.values())
            total_saved = sum(p.tokens_saved for p in patterns)
            most_used = sorted(patterns, key=lambda p: p.hit_count, reverse=True)[:5]

            return {
                'total_patterns': len(patterns),
                'total_queries': self.total_queries,
                'total_matches': self.total_matches,
                'hit_rate': self.total_matches / self.total_queries if self.total_queries else 0.0,
                'total_tokens_saved': total_saved,
                'average_token_savings': total_saved / self.total_matches if self.total_matches else 0.0,
                'most_used_patterns': [
                    {'id': p.id, 'hits': p.hit_count, 'tokens_saved': p.tokens_saved}
                    for p in most_used if p.hit_count > 0
                ],
                'pattern_effectiveness': {p.id: round(p.effectiveness, 3) for p in patterns},
            }
