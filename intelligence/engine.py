"""
Intelligence Engine

Orchestrates the whole analysis pipeline for one query:

    pattern matching (early return)  ||  query classification
        -> surface / deep / contextual / complexity analyzers (concurrent)
        -> context requirements
        -> context retrieval (only when context is needed)
        -> confidence scoring
        -> AnalysisResult

Every component call is guarded by ErrorHandler (circuit breaker, retry,
fallback hierarchy) and runs on the StageExecutor pool with a per-stage
timeout. `analyze_query` never raises; the worst case is an emergency
result with confidence 0.1 and a 50-token budget.

Author: AI System
Version: 2.0
"""

import asyncio
import hashlib
import inspect
import threading
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from core.cache_manager import CacheLayer, CacheManager
from core.circuit_breaker import CircuitBreaker
from core.metrics import MetricsCollector
from core.parallel_executor import StageExecutor, StageTask
from core.resilience import RetryManager
from intelligence.analyzers import (
    ComplexityAnalyzer, ContextualIntentAnalyzer, DeepIntentAnalyzer, SurfaceIntentAnalyzer,
)
from intelligence.base_types import (
    AnalysisResult, ChatContext, ChatMessage, ClassificationIndicator, ComplexityAnalysis,
    ComplexityLevel, ContextLevel, ContextRequirements, ContextResult, ContextualAnalysis,
    DeepAnalysis, IndicatorType, IntentAnalysis, IntentLayerType, PatternMatch,
    PatternMatchResult, PerformanceMetrics, PrimaryIntent, ProcessingStrategy,
    QueryClassification, QueryType, SurfaceAnalysis,
)
from intelligence.configuration import IntelligenceConfig
from intelligence.confidence_scorer import ConfidenceScorer
from intelligence.context import (
    ContextRetrieval, ContextSelectionOptions, ContextWindowConfig, ContextWindowManager, RelevanceScorer,
)
from intelligence.error_recovery import COMPONENTS, ErrorHandler, FallbackResult
from intelligence.pattern_matcher import PatternMatcher
from intelligence.query_classifier import QueryClassifier
from logger import format_fields, get_logger

logger = get_logger(__name__)

COMPLEXITY_ORDER = [
    ComplexityLevel.MINIMAL,
    ComplexityLevel.BASIC,
    ComplexityLevel.INTERMEDIATE,
    ComplexityLevel.ADVANCED,
    ComplexityLevel.EXPERT,
]

LEVEL_TOKEN_FLOORS = {
    ContextLevel.MINIMAL: 50,
    ContextLevel.TECHNICAL: 400,
    ContextLevel.COMPREHENSIVE: 1200,
}

LEVEL_STRATEGIES = {
    ContextLevel.MINIMAL: ProcessingStrategy.MINIMAL_CONTEXT,
    ContextLevel.TECHNICAL: ProcessingStrategy.TECHNICAL_CONTEXT,
    ContextLevel.COMPREHENSIVE: ProcessingStrategy.COMPREHENSIVE_ANALYSIS,
}

SOCIAL_CATEGORIES = {'social', 'status', 'help', 'confirmation'}

# Components credited or blamed by record_feedback
FEEDBACK_COMPONENTS = ['classification', 'intent_analysis', 'surface_analysis',
                       'deep_analysis', 'contextual_analysis']


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _hash_history(context: ChatContext) -> str:
    return hashlib.md5(context.history_key().encode('utf-8')).hexdigest()[:16]


# ============================================================================
# COMPONENT REGISTRY
# ============================================================================

class ComponentRegistry:
    """
    Named components built on first use.

    Explicitly injected instances win over factories, so tests and callers
    can swap any single component.
    """

    def __init__(self, factories: Dict[str, Callable[[], Any]],
                 overrides: Optional[Dict[str, Any]] = None):
        self._factories = dict(factories)
        self._instances: Dict[str, Any] = dict(overrides or {})
        self._lock = threading.RLock()

        unknown = set(self._instances) - set(self._factories)
        if unknown:
            raise ValueError(f"Unknown components: {', '.join(sorted(unknown))}")

    def get(self, name: str) -> Any:
        with self._lock:
            if name not in self._instances:
                logger.debug(f"Loading component {name}")
                self._instances[name] = self._factories[name]()
            return self._instances[name]

    def register(self, name: str, instance: Any):
        if name not in self._factories:
            raise ValueError(f"Unknown component: {name}")
        with self._lock:
            self._instances[name] = instance

    def loaded(self) -> List[str]:
        with self._lock:
            return list(self._instances)


@dataclass
class QueryRun:
    """Per-query bookkeeping shared by the pipeline stages"""
    query_id: str
    query: str
    context: ChatContext
    start: float
    fallbacks: List[FallbackResult] = field(default_factory=list)
    succeeded: List[str] = field(default_factory=list)

    @property
    def history(self) -> List[ChatMessage]:
        return self.context.messages


class IntelligenceEngine:
    """
    Query analysis front door.

    Components are resolved lazily through a registry; pass `components` to
    inject replacements (keys: pattern_matcher, query_classifier,
    surface_analyzer, deep_analyzer, contextual_analyzer, complexity_analyzer,
    relevance_scorer, context_retrieval, confidence_scorer).
    """

    def __init__(
        self,
        config: Optional[IntelligenceConfig] = None,
        components: Optional[Dict[str, Any]] = None,
        cache_manager: Optional[CacheManager] = None,
        error_handler: Optional[ErrorHandler] = None,
        metrics: Optional[MetricsCollector] = None,
        executor: Optional[StageExecutor] = None
    ):
        self.config = config or IntelligenceConfig()
        self.verbose = self.config.verbose

        self.registry = ComponentRegistry(self._component_factories(), components)

        self.metrics = metrics or MetricsCollector(
            baseline_tokens=self.config.baseline_tokens,
            slow_query_ms=self.config.slow_query_ms,
            min_efficiency=self.config.min_token_efficiency,
            verbose=self.verbose,
        )
        self.cache = cache_manager or CacheManager(
            layer_configs=self.config.cache_layers,
            sweep_interval_seconds=self.config.cache_sweep_interval_seconds,
            verbose=self.verbose,
        )
        self.error_handler = error_handler or ErrorHandler(
            circuit_breaker=CircuitBreaker(self.config.circuit, components=COMPONENTS, verbose=self.verbose),
            retry_manager=RetryManager(
                max_retries=self.config.max_retry_attempts,
                base_delay=self.config.initial_retry_delay,
                verbose=self.verbose,
            ),
            confidence_scorer=self.confidence_scorer,
            metrics=self.metrics,
            fallback_cache_ttl=self.config.fallback_cache_ttl_seconds,
            verbose=self.verbose,
        )
        self.executor = executor or StageExecutor(
            max_concurrent=self.config.max_concurrent_stages,
            default_timeout=self.config.stage_timeout_seconds,
            verbose=self.verbose,
        )
        self.context_window = ContextWindowManager(
            ContextWindowConfig(
                max_tokens=self.config.context_max_tokens,
                reserve_tokens=self.config.context_reserve_tokens,
            ),
            verbose=self.verbose,
        )

        self._feedback: "OrderedDict[str, Tuple[List[str], Optional[str]]]" = OrderedDict()
        self._feedback_lock = threading.Lock()

        if self.config.start_cache_sweeper:
            self.cache.start_background_sweep()

    def _component_factories(self) -> Dict[str, Callable[[], Any]]:
        config = self.config
        return {
            'pattern_matcher': lambda: PatternMatcher(
                custom_patterns=config.custom_patterns,
                include_defaults=config.include_default_patterns,
                verbose=config.verbose,
            ),
            'query_classifier': lambda: QueryClassifier(config.classifier_weights, verbose=config.verbose),
            'surface_analyzer': SurfaceIntentAnalyzer,
            'deep_analyzer': DeepIntentAnalyzer,
            'contextual_analyzer': ContextualIntentAnalyzer,
            'complexity_analyzer': ComplexityAnalyzer,
            'relevance_scorer': RelevanceScorer,
            'context_retrieval': lambda: ContextRetrieval(
                relevance_threshold=config.relevance_threshold,
                max_context_messages=config.max_context_messages,
                relevance_scorer=self.registry.get('relevance_scorer'),
                verbose=config.verbose,
            ),
            'confidence_scorer': lambda: ConfidenceScorer(verbose=config.verbose),
        }

    @property
    def pattern_matcher(self) -> PatternMatcher:
        return self.registry.get('pattern_matcher')

    @property
    def confidence_scorer(self) -> ConfidenceScorer:
        return self.registry.get('confidence_scorer')

    # ========================================================================
    # ENTRY POINTS
    # ========================================================================

    async def analyze_query(self, query: str, context: Optional[ChatContext] = None) -> AnalysisResult:
        """Analyze one query; never raises"""
        run = QueryRun(
            query_id=f"q_{uuid.uuid4().hex[:12]}",
            query=query or '',
            context=context or ChatContext(),
            start=time.perf_counter(),
        )

        try:
            result = await self._analyze(run)
        except Exception as e:
            logger.error(f"Analysis failed for {run.query_id}, using emergency fallback: {e}", exc_info=True)
            result = self._emergency_result(run, f"Emergency fallback: {e}")

        self._record(run, result)
        return result

    def analyze_query_sync(self, query: str, context: Optional[ChatContext] = None) -> AnalysisResult:
        """Blocking wrapper for callers without an event loop"""
        return asyncio.run(self.analyze_query(query, context))

    # ========================================================================
    # PIPELINE
    # ========================================================================

    async def _analyze(self, run: QueryRun) -> AnalysisResult:
        logger.info(
            f"Analyzing {run.query_id}: '{run.query[:100]}' ({len(run.history)} history messages)"
        )
        history_hash = _hash_history(run.context)
        result_key = CacheManager.result_key(run.query, history_hash)

        if self.config.enable_result_cache:
            cached = self.cache.get(CacheLayer.RESULT, result_key)
            if cached is not None:
                logger.debug(f"Result cache hit for {run.query_id}")
                return replace(
                    cached,
                    query_id=run.query_id,
                    performance_metrics=PerformanceMetrics(total_processing_time=_elapsed_ms(run.start)),
                )

        # Phase 1: pattern matching races classification; a complete match wins
        pattern_start = time.perf_counter()
        stages = await self.executor.run_stages([
            StageTask('pattern_matching', lambda: self._match_pattern(run), early_return=True),
            StageTask('query_classification', lambda: self._classify(run)),
        ])
        pattern_time = _elapsed_ms(pattern_start)

        pattern_result: Optional[PatternMatchResult] = stages['pattern_matching'].result
        if pattern_result is not None and pattern_result.is_complete:
            return self._pattern_result(run, pattern_result, pattern_time)

        classification = stages['query_classification'].result
        if classification is None:
            fallback = self.error_handler.fallback(
                'query_classification', run.query, len(run.fallbacks) + 1, reason="No classification produced"
            )
            run.fallbacks.append(fallback)
            classification = self._fallback_classification(fallback)

        # Phase 2: intent layers
        analysis_start = time.perf_counter()
        intent_analysis = await self._analyze_intent(run, classification, history_hash)
        requirements = await self._guarded(
            run, 'context_requirements',
            lambda: self.determine_context_requirements(classification, intent_analysis, run.history),
            lambda fb: self._fallback_requirements(fb),
        )
        analysis_time = _elapsed_ms(analysis_start)

        if any(fb.level >= 4 for fb in run.fallbacks):
            return self._emergency_result(run, self._fallback_reason(run))

        # Phase 3: context
        context_start = time.perf_counter()
        context_result = await self._retrieve_context(run, requirements, history_hash)
        context_time = _elapsed_ms(context_start)

        # Phase 4: confidence
        confidence = await self._guarded(
            run, 'confidence_scoring',
            lambda: self.confidence_scorer.calculate_overall_confidence(
                classification, intent_analysis, context_result
            ),
            lambda fb: 0.5,
        )
        if any(fb.level >= 4 for fb in run.fallbacks):
            return self._emergency_result(run, self._fallback_reason(run))

        token_estimate = requirements.estimated_tokens
        if run.fallbacks:
            token_estimate = max(token_estimate, max(fb.estimated_tokens for fb in run.fallbacks))

        result = AnalysisResult(
            query_id=run.query_id,
            classification=classification,
            intent_analysis=intent_analysis,
            context_requirements=requirements,
            pattern_matches=[],
            confidence_score=max(0.0, min(float(confidence), 1.0)),
            token_estimate=max(0, int(token_estimate)),
            recommended_strategy=self.determine_processing_strategy(requirements, run.fallbacks),
            performance_metrics=PerformanceMetrics(
                analysis_time=analysis_time,
                context_retrieval_time=context_time,
                pattern_matching_time=pattern_time,
                total_processing_time=_elapsed_ms(run.start),
            ),
            context=context_result,
            fallback_reason=self._fallback_reason(run),
        )

        if self.config.enable_result_cache and not run.fallbacks:
            self.cache.set(CacheLayer.RESULT, result_key, result)

        logger.info("Analysis complete " + format_fields(
            query_id=run.query_id,
            query_type=classification.query_type.value,
            strategy=result.recommended_strategy.value,
            tokens=result.token_estimate,
            confidence=result.confidence_score,
            total_ms=result.performance_metrics.total_processing_time,
            fallbacks=len(run.fallbacks),
        ))
        return result

    async def _guarded(self, run: QueryRun, component: str, operation: Callable[[], Any],
                       default: Callable[[FallbackResult], Any]) -> Any:
        """Run a component on the pool behind its breaker; fallbacks become safe defaults"""

        async def stage():
            value = await asyncio.to_thread(operation)
            if inspect.isawaitable(value):
                value = await value
            return value

        outcome = await self.error_handler.execute_with_fallback(
            component,
            run.query,
            lambda: self.executor.run_stage(component, stage),
            fallback_level=len(run.fallbacks),
        )
        if outcome.degraded:
            run.fallbacks.append(outcome.fallback)
            return default(outcome.fallback)

        run.succeeded.append(component)
        return outcome.value

    async def _match_pattern(self, run: QueryRun) -> Optional[PatternMatchResult]:
        matcher = self.pattern_matcher
        pattern_key = CacheManager.pattern_key(run.query)

        def match() -> PatternMatchResult:
            pattern_id = self.cache.get(CacheLayer.PATTERN, pattern_key)
            if pattern_id is not None:
                cached = matcher.record_hit(pattern_id, count_query=True, query=run.query)
                if cached.is_complete:
                    return cached
                self.cache.invalidate(CacheLayer.PATTERN, pattern_key)
            result = matcher.match(run.query)
            if result.is_complete:
                self.cache.set(CacheLayer.PATTERN, pattern_key, result.pattern.pattern_id)
            return result

        result = await self._guarded(run, 'pattern_matching', match, lambda fb: None)
        if result is not None and result.is_complete:
            return result
        return None

    async def _classify(self, run: QueryRun) -> QueryClassification:
        classifier = self.registry.get('query_classifier')
        return await self._guarded(
            run, 'query_classification',
            lambda: classifier.classify(run.query, run.context),
            self._fallback_classification,
        )

    async def _analyze_intent(self, run: QueryRun, classification: QueryClassification,
                              history_hash: str) -> IntentAnalysis:
        analysis_key = CacheManager.analysis_key(run.query, history_hash)
        cached = self.cache.get(CacheLayer.ANALYSIS, analysis_key)
        if cached is not None:
            return cached

        surface_analyzer = self.registry.get('surface_analyzer')
        deep_analyzer = self.registry.get('deep_analyzer')
        contextual_analyzer = self.registry.get('contextual_analyzer')
        complexity_analyzer = self.registry.get('complexity_analyzer')
        failures_before = len(run.fallbacks)

        surface, deep, contextual, complexity = await asyncio.gather(
            self._guarded(
                run, 'surface_analysis', lambda: surface_analyzer.analyze(run.query, run.history),
                lambda fb: SurfaceAnalysis(type=IntentLayerType.SOCIAL, confidence=0.3),
            ),
            self._guarded(
                run, 'deep_analysis', lambda: deep_analyzer.analyze(run.query, run.history),
                lambda fb: DeepAnalysis(type=IntentLayerType.TECHNICAL, confidence=0.3),
            ),
            self._guarded(
                run, 'contextual_analysis', lambda: contextual_analyzer.analyze(run.query, run.history),
                lambda fb: ContextualAnalysis(type=IntentLayerType.CONTINUATION, confidence=0.2),
            ),
            self._guarded(
                run, 'complexity_analysis', lambda: complexity_analyzer.analyze(run.query, run.history),
                self._fallback_complexity,
            ),
        )

        intent_analysis = IntentAnalysis(
            surface=surface,
            deep=deep,
            contextual=contextual,
            overall_confidence=(surface.confidence + deep.confidence + contextual.confidence) / 3,
            complexity=complexity,
        )
        if len(run.fallbacks) == failures_before:
            self.cache.set(CacheLayer.ANALYSIS, analysis_key, intent_analysis)
        return intent_analysis

    async def _retrieve_context(self, run: QueryRun, requirements: ContextRequirements,
                                history_hash: str) -> Optional[ContextResult]:
        if requirements.level == ContextLevel.MINIMAL and not requirements.requires_history:
            return None
        if not run.history:
            return ContextResult(selection_strategy='No session history available',
                                 relevance_threshold=requirements.relevance_threshold)

        context_key = CacheManager.context_key(run.query, history_hash)
        cached = self.cache.get(CacheLayer.CONTEXT, context_key)
        if cached is not None:
            return self.context_window.fit(cached, requirements.estimated_tokens)

        retrieval = self.registry.get('context_retrieval')
        options = ContextSelectionOptions(
            max_messages=requirements.max_history_messages or self.config.max_context_messages,
            relevance_threshold=requirements.relevance_threshold,
            prioritize_technical=requirements.level != ContextLevel.MINIMAL,
            scoring_strategy=self.config.context_scoring_strategy,
        )
        failures_before = len(run.fallbacks)
        result = await self._guarded(
            run, 'context_retrieval',
            lambda: retrieval.find_relevant_context(run.query, run.history, options),
            lambda fb: ContextResult(selection_strategy='fallback_empty', fallback_used=True,
                                     relevance_threshold=requirements.relevance_threshold),
        )
        if len(run.fallbacks) == failures_before:
            self.cache.set(CacheLayer.CONTEXT, context_key, result)
        return self.context_window.fit(result, requirements.estimated_tokens)

    # ========================================================================
    # DECISIONS
    # ========================================================================

    def determine_context_requirements(self, classification: QueryClassification,
                                       intent_analysis: IntentAnalysis,
                                       history: Sequence[ChatMessage] = ()) -> ContextRequirements:
        complexity = intent_analysis.complexity or ComplexityAnalysis(
            type=IntentLayerType.SOCIAL, confidence=0.3
        )
        contextual = intent_analysis.contextual
        deep = intent_analysis.deep

        level_rank = max(COMPLEXITY_ORDER.index(complexity.level),
                         COMPLEXITY_ORDER.index(classification.complexity))
        overall_complexity = COMPLEXITY_ORDER[level_rank]

        if overall_complexity == ComplexityLevel.MINIMAL:
            level = ContextLevel.MINIMAL
        elif overall_complexity == ComplexityLevel.EXPERT or complexity.multi_step:
            level = ContextLevel.COMPREHENSIVE
        else:
            level = ContextLevel.TECHNICAL

        requires_history = bool(getattr(contextual, 'requires_history', False)) \
            or level == ContextLevel.COMPREHENSIVE
        history_depth = getattr(contextual, 'history_depth', 0)
        if level == ContextLevel.MINIMAL:
            max_history = history_depth if requires_history else 0
        else:
            max_history = max(history_depth, self.config.max_context_messages)

        domains: List[str] = []
        for domain in list(getattr(deep, 'domain_expertise', [])) + list(complexity.required_expertise):
            if domain not in domains:
                domains.append(domain)
        if not domains:
            domains = ['social'] if classification.primary_intent == PrimaryIntent.SOCIAL else ['general']

        return ContextRequirements(
            level=level,
            domains=domains,
            estimated_tokens=max(complexity.recommended_tokens, LEVEL_TOKEN_FLOORS[level]),
            requires_history=requires_history,
            requires_files='multi_file_context' in complexity.factors,
            requires_project_context=level == ContextLevel.COMPREHENSIVE,
            max_history_messages=min(max_history, len(history)) if history else max_history,
            relevance_threshold=self.config.relevance_threshold,
        )

    @staticmethod
    def determine_processing_strategy(requirements: ContextRequirements,
                                      fallbacks: Sequence[FallbackResult] = ()) -> ProcessingStrategy:
        if any(fb.level >= 4 for fb in fallbacks):
            return ProcessingStrategy.EMERGENCY_FALLBACK
        if any(fb.level == 3 for fb in fallbacks):
            return ProcessingStrategy.COMPREHENSIVE_ANALYSIS
        return LEVEL_STRATEGIES[requirements.level]

    # ========================================================================
    # RESULT BUILDERS
    # ========================================================================

    def _pattern_result(self, run: QueryRun, pattern_result: PatternMatchResult,
                        pattern_time: float) -> AnalysisResult:
        pattern: PatternMatch = pattern_result.pattern
        category = self._pattern_category(pattern.pattern_id)
        social = category in SOCIAL_CATEGORIES

        classification = QueryClassification(
            query_type=pattern.query_type,
            complexity=ComplexityLevel.MINIMAL,
            primary_intent=PrimaryIntent.SOCIAL if social else PrimaryIntent.TECHNICAL,
            confidence=pattern.confidence,
            indicators=[ClassificationIndicator(
                IndicatorType.SURFACE, f"pattern_match:{pattern.pattern_id}", pattern.confidence, 1.0
            )],
        )
        intent_analysis = IntentAnalysis(
            surface=SurfaceAnalysis(type=IntentLayerType.SOCIAL, confidence=0.9,
                                    indicators=[pattern.pattern_type]),
            deep=DeepAnalysis(type=IntentLayerType.SOCIAL if social else IntentLayerType.TECHNICAL,
                              confidence=0.8),
            contextual=ContextualAnalysis(type=IntentLayerType.SOCIAL, confidence=0.5),
            overall_confidence=0.85,
        )

        logger.info(f"Pattern match {run.query_id}: {pattern.pattern_id} ({pattern.estimated_tokens} tokens)")
        return AnalysisResult(
            query_id=run.query_id,
            classification=classification,
            intent_analysis=intent_analysis,
            context_requirements=ContextRequirements(
                level=ContextLevel.MINIMAL,
                domains=[category],
                estimated_tokens=pattern.estimated_tokens,
            ),
            pattern_matches=[pattern],
            confidence_score=pattern.confidence,
            token_estimate=pattern.estimated_tokens,
            recommended_strategy=ProcessingStrategy.CACHED_RESPONSE,
            performance_metrics=PerformanceMetrics(
                pattern_matching_time=pattern_time,
                total_processing_time=_elapsed_ms(run.start),
            ),
        )

    def _pattern_category(self, pattern_id: str) -> str:
        registered = self.pattern_matcher.patterns.get(pattern_id)
        return registered.category if registered else 'social'

    def _emergency_result(self, run: QueryRun, reason: str) -> AnalysisResult:
        emergency = ErrorHandler.emergency_fallback(reason)
        return AnalysisResult(
            query_id=run.query_id,
            classification=QueryClassification(
                query_type=QueryType.SIMPLE,
                complexity=ComplexityLevel.MINIMAL,
                primary_intent=PrimaryIntent.SOCIAL,
                confidence=emergency.confidence,
                indicators=[ClassificationIndicator(
                    IndicatorType.SURFACE, 'emergency_fallback', emergency.confidence, 1.0
                )],
            ),
            intent_analysis=IntentAnalysis(
                surface=SurfaceAnalysis(type=IntentLayerType.SOCIAL, confidence=emergency.confidence),
                deep=DeepAnalysis(type=IntentLayerType.TECHNICAL, confidence=emergency.confidence),
                contextual=ContextualAnalysis(type=IntentLayerType.CONTINUATION, confidence=emergency.confidence),
                overall_confidence=emergency.confidence,
            ),
            context_requirements=ContextRequirements(
                level=ContextLevel.MINIMAL,
                domains=['social'],
                estimated_tokens=emergency.estimated_tokens,
            ),
            pattern_matches=[],
            confidence_score=emergency.confidence,
            token_estimate=emergency.estimated_tokens,
            recommended_strategy=ProcessingStrategy.EMERGENCY_FALLBACK,
            performance_metrics=PerformanceMetrics(total_processing_time=_elapsed_ms(run.start)),
            fallback_reason=reason,
        )

    @staticmethod
    def _fallback_classification(fb: FallbackResult) -> QueryClassification:
        complexity = {
            ContextLevel.MINIMAL: ComplexityLevel.MINIMAL,
            ContextLevel.TECHNICAL: ComplexityLevel.INTERMEDIATE,
            ContextLevel.COMPREHENSIVE: ComplexityLevel.ADVANCED,
        }[fb.context_level]
        return QueryClassification(
            query_type=fb.query_type,
            complexity=complexity,
            primary_intent=PrimaryIntent.SOCIAL if fb.kind == 'greeting' else PrimaryIntent.TECHNICAL,
            confidence=fb.confidence,
            indicators=[ClassificationIndicator(
                IndicatorType.SURFACE, f"fallback_{fb.kind}", fb.confidence, 1.0
            )],
        )

    @staticmethod
    def _fallback_complexity(fb: FallbackResult) -> ComplexityAnalysis:
        level = {
            ContextLevel.MINIMAL: ComplexityLevel.MINIMAL,
            ContextLevel.TECHNICAL: ComplexityLevel.INTERMEDIATE,
            ContextLevel.COMPREHENSIVE: ComplexityLevel.ADVANCED,
        }[fb.context_level]
        return ComplexityAnalysis(
            type=IntentLayerType.COMPLEX, confidence=fb.confidence,
            level=level, recommended_tokens=fb.estimated_tokens,
        )

    def _fallback_requirements(self, fb: FallbackResult) -> ContextRequirements:
        return ContextRequirements(
            level=fb.context_level,
            domains=[fb.kind],
            estimated_tokens=fb.estimated_tokens,
            relevance_threshold=self.config.relevance_threshold,
        )

    @staticmethod
    def _fallback_reason(run: QueryRun) -> Optional[str]:
        if not run.fallbacks:
            return None
        return '; '.join(f"L{fb.level} {fb.reason}" for fb in run.fallbacks)

    # ========================================================================
    # METRICS & FEEDBACK
    # ========================================================================

    def _record(self, run: QueryRun, result: AnalysisResult):
        try:
            perf = result.performance_metrics
            self.metrics.record_query(
                query_id=result.query_id,
                strategy=result.recommended_strategy.value,
                token_estimate=result.token_estimate,
                confidence_score=result.confidence_score,
                analysis_time=perf.analysis_time,
                context_retrieval_time=perf.context_retrieval_time,
                pattern_matching_time=perf.pattern_matching_time,
                total_processing_time=perf.total_processing_time,
            )
        except Exception as e:
            logger.warning(f"Failed to record metrics for {result.query_id}: {e}")

        pattern_id = result.pattern_matches[0].pattern_id if result.pattern_matches else None
        credited = [name for name in FEEDBACK_COMPONENTS if self._component_ran(name, run)]
        with self._feedback_lock:
            self._feedback[result.query_id] = (credited, pattern_id)
            while len(self._feedback) > 1000:
                self._feedback.popitem(last=False)

    @staticmethod
    def _component_ran(name: str, run: QueryRun) -> bool:
        if name == 'classification':
            return 'query_classification' in run.succeeded
        if name == 'intent_analysis':
            return all(stage in run.succeeded
                       for stage in ('surface_analysis', 'deep_analysis', 'contextual_analysis'))
        return name in run.succeeded

    def record_feedback(self, query_id: str, was_correct: bool) -> bool:
        """Credit or blame the components behind an earlier result"""
        with self._feedback_lock:
            entry = self._feedback.get(query_id)
        if entry is None:
            logger.warning(f"No analysis recorded for {query_id}")
            return False

        components, pattern_id = entry
        for component in components:
            self.confidence_scorer.record_outcome(component, was_correct)
        if pattern_id:
            self.confidence_scorer.record_outcome('pattern_matching', was_correct)
            self.pattern_matcher.update_pattern_effectiveness(pattern_id, 1.0 if was_correct else 0.0)
        return True

    # ========================================================================
    # OPERATIONS
    # ========================================================================

    def get_system_health(self) -> List[Dict[str, Any]]:
        """Health feed: one entry per component"""
        return self.error_handler.circuit_breaker.get_health_summary()

    def get_metrics(self) -> Dict[str, Any]:
        return {
            'queries': self.metrics.get_summary(),
            'savings': self.metrics.get_savings_analytics(),
            'cache': self.cache.get_stats(),
            'patterns': self.pattern_matcher.get_pattern_stats(),
            'classifier': self.registry.get('query_classifier').get_classification_stats(),
            'confidence': self.confidence_scorer.get_confidence_stats(),
            'errors': self.error_handler.get_system_health(),
            'stages': self.executor.get_stats(),
            'loaded_components': self.registry.loaded(),
        }

    def update_config(self, **changes: Any):
        """Apply runtime configuration changes to the engine and its components"""
        for name, value in changes.items():
            if name == 'classifier_weights':
                self.registry.get('query_classifier').update_weights(**value)
            elif name == 'confidence_thresholds':
                self.confidence_scorer.update_confidence_thresholds(**value)
            elif name in ('relevance_threshold', 'max_context_messages'):
                setattr(self.config, name, value)
                self.registry.get('context_retrieval').update_config(**{name: value})
                self.cache.clear(CacheLayer.CONTEXT)
            elif name == 'stage_timeout_seconds':
                self.config.stage_timeout_seconds = value
                self.executor.default_timeout = value
            elif name in ('enable_result_cache', 'context_scoring_strategy'):
                setattr(self.config, name, value)
            else:
                raise ValueError(f"Unknown configuration key: {name}")

        if changes.keys() - {'enable_result_cache'}:
            self.cache.clear(CacheLayer.RESULT)
            self.cache.clear(CacheLayer.ANALYSIS)
        logger.info(f"Engine configuration updated: {sorted(changes)}")

    def register_pattern(self, **definition: Any):
        """Register a pattern and drop cached pattern lookups"""
        registered = self.pattern_matcher.register_pattern(**definition)
        self.cache.clear(CacheLayer.PATTERN)
        self.cache.clear(CacheLayer.RESULT)
        return registered

    def warm_up(self) -> int:
        """Preload pattern ids for common queries"""
        return self.cache.warm_up(self.pattern_matcher.find_pattern_id)

    def shutdown(self):
        self.cache.stop()
