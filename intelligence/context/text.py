"""
Tokenization and timing helpers shared by context retrieval and relevance
scoring.
"""

import math
import re
from collections import Counter
from datetime import datetime
from typing import Dict, List

TECHNICAL_TERMS = frozenset([
    'react', 'vue', 'angular', 'svelte', 'typescript', 'javascript', 'node', 'express',
    'api', 'rest', 'graphql', 'database', 'sql', 'mongodb', 'postgres', 'mysql',
    'component', 'function', 'hook', 'state', 'props', 'context', 'reducer',
    'error', 'bug', 'debug', 'test', 'testing', 'unit', 'integration',
    'deploy', 'build', 'webpack', 'vite', 'babel', 'eslint', 'prettier',
    'css', 'scss', 'tailwind', 'styled', 'bootstrap', 'flexbox', 'grid',
    'async', 'await', 'promise', 'callback', 'event', 'listener', 'handler',
    'dom', 'html', 'element', 'selector', 'query', 'fetch', 'axios',
    'server', 'client', 'frontend', 'backend', 'fullstack', 'spa', 'ssr',
])

STOP_WORDS = frozenset([
    'the', 'is', 'at', 'which', 'on', 'and', 'a', 'to', 'are', 'as', 'was',
    'will', 'be', 'have', 'has', 'had', 'do', 'does', 'did', 'can', 'could',
    'would', 'should', 'may', 'might', 'must', 'shall',
])

_PUNCTUATION = re.compile(r'[^\w\s]')


def extract_terms(text: str) -> List[str]:
    """Lowercase, strip punctuation, drop short words and stop words"""
    cleaned = _PUNCTUATION.sub(' ', text.lower())
    return [term for term in cleaned.split() if len(term) > 2 and term not in STOP_WORDS]


def extract_technical_terms(text: str) -> List[str]:
    return [term for term in extract_terms(text) if term in TECHNICAL_TERMS]


def term_frequencies(terms: List[str]) -> Dict[str, float]:
    """Term frequency normalized by document length"""
    if not terms:
        return {}
    counts = Counter(terms)
    return {term: count / len(terms) for term, count in counts.items()}


def jaccard(a: List[str], b: List[str]) -> float:
    set_a, set_b = set(a), set(b)
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)


def estimate_tokens(text: str) -> int:
    """Roughly four characters per token"""
    return math.ceil(len(text) / 4)


def minutes_between(start: datetime, end: datetime) -> float:
    """
    Signed minutes from `start` to `end`.

    Naive and aware datetimes may be mixed; a naive value is read as local
    time, the way `datetime.now()` produces it.
    """
    if (start.tzinfo is None) != (end.tzinfo is None):
        start, end = start.astimezone(), end.astimezone()
    return (end - start).total_seconds() / 60
