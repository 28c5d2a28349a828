"""
Surface Intent Analyzer

First analysis layer: social wrappers around the request. Detects greetings,
thanks, politeness, confusion and frustration, estimates how polite and
urgent the user is, and suggests a tone for the reply.

Author: AI System
Version: 1.0
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from intelligence.base_types import ChatMessage, IntentLayerType, SurfaceAnalysis


@dataclass(frozen=True)
class SocialPattern:
    type: str
    regex: re.Pattern
    weight: float
    response_hint: str


@dataclass(frozen=True)
class SocialPatternMatch:
    type: str
    confidence: float
    matched_text: str
    position: str  # start | middle | end
    response_hint: str


def _p(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


SOCIAL_PATTERNS: List[SocialPattern] = [
    SocialPattern('greeting', _p(r"^(hi|hello|hey|sup|what's up|good morning|good afternoon|good evening|greetings)\b"),
                  0.9, "Respond with a friendly greeting and offer help"),
    SocialPattern('greeting', _p(r"\b(hi|hello|hey) (there|again|assistant)\b"),
                  0.8, "Personal greeting, respond warmly"),
    SocialPattern('farewell', _p(r"^(bye|goodbye|see you|thanks and goodbye|have a good|take care)\b"),
                  0.9, "Acknowledge farewell and offer future help"),
    SocialPattern('gratitude', _p(r"\b(thank you|thanks|thx|appreciated|grateful|awesome)\b"),
                  0.8, "Acknowledge thanks and offer continued help"),
    SocialPattern('gratitude', _p(r"\b(that was|you are|this is) (helpful|amazing|perfect|great|awesome)\b"),
                  0.7, "Express pleasure in helping"),
    SocialPattern('politeness', _p(r"\b(please|could you|would you|if you could|if possible)\b"),
                  0.6, "Match politeness level in response"),
    SocialPattern('politeness', _p(r"\b(excuse me|pardon|sorry to bother|hope you don't mind)\b"),
                  0.7, "Reassure that help is welcome"),
    SocialPattern('acknowledgment', _p(r"^(ok|okay|alright|got it|understood|makes sense|i see)\b"),
                  0.8, "Confirm understanding and offer next steps"),
    SocialPattern('acknowledgment', _p(r"\b(yes|yeah|yep|sure|sounds good|that works)\b"),
                  0.7, "Proceed with confidence"),
    SocialPattern('apology', _p(r"\b(sorry|my bad|apologies|my mistake|oops)\b"),
                  0.7, "Reassure and help move forward"),
    SocialPattern('request_help', _p(r"\b(help|assist|support|guidance|advice)\b"),
                  0.6, "Express eagerness to help"),
    SocialPattern('request_help', _p(r"\b(can you|are you able to|is it possible to)\b"),
                  0.5, "Confirm capability and willingness"),
    SocialPattern('small_talk', _p(r"\b(how are you|how's it going|how have you been|what's new)\b"),
                  0.8, "Brief positive response, redirect to help"),
    SocialPattern('encouragement', _p(r"\b(great job|well done|excellent|perfect|brilliant)\b"),
                  0.7, "Accept encouragement gracefully"),
    SocialPattern('confusion', _p(r"\b(confused|don't understand|not sure|unclear|lost)\b"),
                  0.8, "Offer clarification and a simpler explanation"),
    SocialPattern('confusion', _p(r"\b(what do you mean|can you explain|i don't get it)\b"),
                  0.9, "Provide a detailed explanation"),
    SocialPattern('frustration', _p(r"\b(frustrated|annoying|not working|broken|stupid)\b"),
                  0.8, "Acknowledge frustration and offer calm help"),
    SocialPattern('frustration', _p(r"\b(argh|ugh|damn|why won't|this sucks)\b"),
                  0.9, "Empathize and provide patient assistance"),
]

EXTRA_POLITENESS_MARKERS = [
    _p(r"\bplease\b"),
    _p(r"\bthank you\b"),
    _p(r"\bif you (could|would|don't mind)\b"),
    _p(r"\bi would appreciate\b"),
    _p(r"\bkindly\b"),
]

URGENCY_MARKERS = [
    _p(r"\b(urgent|asap|immediately|quickly|emergency|critical)\b"),
    re.compile(r"!!+"),
    re.compile(r"\bHELP\b"),
    _p(r"\b(broken|not working|failed)\b"),
]

FORMAL_MARKERS = [
    _p(r"would you kindly"),
    _p(r"i would like to request"),
    _p(r"could you please provide"),
    _p(r"i am writing to"),
]

CASUAL_MARKERS = [
    _p(r"\b(hey|sup|what's up)\b"),
    _p(r"\b(gonna|wanna|dunno)\b"),
    _p("lol|haha|\U0001F60A|\U0001F604|\U0001F44D"),
]

SOCIAL_RESPONSE_TYPES = {'greeting', 'farewell', 'gratitude', 'small_talk', 'encouragement'}


class SurfaceIntentAnalyzer:
    """Social pattern and politeness detection"""

    def __init__(self, patterns: Optional[List[SocialPattern]] = None):
        self.patterns = patterns or SOCIAL_PATTERNS

    def analyze(self, query: str, history: Optional[Sequence[ChatMessage]] = None) -> SurfaceAnalysis:
        matches = self.find_social_patterns(query)
        tone = self._determine_tone(matches, query)

        return SurfaceAnalysis(
            type=self._determine_type(matches),
            confidence=self._calculate_confidence(matches, query),
            indicators=[f"{m.type}:{m.matched_text[:15]}" for m in matches],
            politeness_level=self._calculate_politeness(matches, query),
            conversational_tone=tone,
            suggested_tone=self._suggest_tone(matches, tone),
            requires_social_response=any(m.type in SOCIAL_RESPONSE_TYPES for m in matches),
            response_hints=[m.response_hint for m in matches],
        )

    def find_social_patterns(self, query: str) -> List[SocialPatternMatch]:
        """All matching patterns, highest confidence first"""
        lowered = query.lower()
        matches = []
        for pattern in self.patterns:
            found = pattern.regex.search(lowered)
            if not found:
                continue
            matches.append(SocialPatternMatch(
                type=pattern.type,
                confidence=pattern.weight,
                matched_text=found.group(0),
                position=self._position(found.start(), len(query)),
                response_hint=pattern.response_hint,
            ))
        return sorted(matches, key=lambda m: m.confidence, reverse=True)

    @staticmethod
    def _position(index: int, length: int) -> str:
        if length == 0:
            return 'start'
        relative = index / length
        if relative < 0.2:
            return 'start'
        if relative > 0.8:
            return 'end'
        return 'middle'

    @staticmethod
    def _calculate_politeness(matches: List[SocialPatternMatch], query: str) -> float:
        factors = {'politeness': 0.4, 'gratitude': 0.3, 'apology': 0.2}
        score = sum(m.confidence * factors.get(m.type, 0.0) for m in matches)
        score += 0.1 * sum(1 for marker in EXTRA_POLITENESS_MARKERS if marker.search(query))
        return min(score, 1.0)

    @staticmethod
    def _determine_tone(matches: List[SocialPatternMatch], query: str) -> str:
        # Urgency and confusion win over stylistic markers
        if any(marker.search(query) for marker in URGENCY_MARKERS):
            return 'urgent'
        if any(m.type == 'confusion' for m in matches):
            return 'confused'
        if any(marker.search(query) for marker in FORMAL_MARKERS):
            return 'formal'
        if any(marker.search(query) for marker in CASUAL_MARKERS):
            return 'casual'
        if any(m.type in ('greeting', 'gratitude', 'encouragement') for m in matches):
            return 'friendly'
        return 'casual'

    @staticmethod
    def _suggest_tone(matches: List[SocialPatternMatch], tone: str) -> str:
        if any(m.type in ('frustration', 'confusion') for m in matches):
            return 'encouraging'
        if tone == 'formal':
            return 'professional'
        if tone in ('friendly', 'casual'):
            return 'friendly'
        return 'helpful'

    @staticmethod
    def _calculate_confidence(matches: List[SocialPatternMatch], query: str) -> float:
        if not matches:
            return 0.1
        confidence = max(m.confidence for m in matches)
        confidence += min(len(matches) * 0.1, 0.3)
        if any(m.position == 'start' for m in matches):
            confidence += 0.2
        if len(query) < 50:
            confidence += 0.1
        return min(confidence, 1.0)

    @staticmethod
    def _determine_type(matches: List[SocialPatternMatch]) -> IntentLayerType:
        if not matches:
            return IntentLayerType.TECHNICAL
        primary = matches[0].type
        if primary in ('greeting', 'farewell', 'gratitude', 'small_talk'):
            return IntentLayerType.SOCIAL
        if primary == 'request_help':
            return IntentLayerType.TECHNICAL
        if primary == 'acknowledgment':
            return IntentLayerType.CONTINUATION
        return IntentLayerType.SOCIAL
