"""Intent analyzers: surface, deep, contextual and complexity layers"""

from .surface import SurfaceIntentAnalyzer
from .deep import DeepIntentAnalyzer
from .contextual import ContextualIntentAnalyzer
from .complexity import ComplexityAnalyzer

__all__ = [
    'SurfaceIntentAnalyzer',
    'DeepIntentAnalyzer',
    'ContextualIntentAnalyzer',
    'ComplexityAnalyzer',
]
