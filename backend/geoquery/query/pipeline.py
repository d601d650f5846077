"""
Query orchestration pipeline.

Structured path:
    validate -> normalize -> ground -> limit -> compile -> execute -> envelope
Chat path:
    assess -> parse (cached) -> same as structured from normalize on

Each request reads the registry snapshot once and uses it for every stage.
Validation stages report every issue; compile and execution fail fast.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, List, Optional

from geoquery.errors import ExecutionError, GroundingError, Issue, UngroundableRequestError
from geoquery.layers.registry import LayerRegistry, RegistryHolder
from geoquery.nl_processing.assessor import GroundingAssessor
from geoquery.nl_processing.intent_parser import IntentParser, ParseResult
from geoquery.query.compiler import QueryCompiler
from geoquery.query.envelope import array_fields, build_feature_collection, build_metadata, serialize_features
from geoquery.query.grounding import GroundingValidator
from geoquery.query.limits import LimitApplication, LimitPolicy
from geoquery.query.models import StructuredQuery
from geoquery.query.normalizer import QueryNormalizer
from geoquery.query.validator import extract_query_payload, validate_query
from geoquery.storage.cache import QueryCache, make_cache_key, result_cache_key
from geoquery.storage.executor import DuckDBExecutor

logger = logging.getLogger(__name__)


@dataclass
class CachedResult:
    """Serialized features for a limited query"""
    features_json: str
    count: int
    execution_time_ms: float


@dataclass
class ExecutionOutcome:
    """Everything the envelope needs after a query has run"""
    features_json: str
    count: int
    execution_time_ms: float
    application: LimitApplication
    normalization_notes: List[str]
    query_hit: bool


def validation_suggestions(registry: LayerRegistry, issues: List[Issue]) -> List[str]:
    """Hints returned alongside grounding and data errors."""
    suggestions = [
        f"Use only loaded layers: {', '.join(registry.loaded_layer_names) or '(none)'}",
        "Check field names from GET /api/layers",
    ]
    if any(issue.path == "temporal" for issue in issues):
        suggestions.append("Temporal queries are not supported yet")
    return suggestions


def explanation_for(count: int) -> str:
    return f"Found {count} result{'' if count == 1 else 's'} for your query."


class QueryPipeline:
    """
    Runs structured and natural-language requests end to end.
    """

    def __init__(
        self,
        registry_holder: RegistryHolder,
        executor: DuckDBExecutor,
        result_cache: QueryCache,
        parse_cache: Optional[QueryCache] = None,
        intent_parser: Optional[IntentParser] = None,
        assessor: Optional[GroundingAssessor] = None,
        normalizer: Optional[QueryNormalizer] = None,
        grounding: Optional[GroundingValidator] = None,
        limits: Optional[LimitPolicy] = None,
    ):
        self.registry_holder = registry_holder
        self.executor = executor
        self.result_cache = result_cache
        self.parse_cache = parse_cache
        self.intent_parser = intent_parser
        self.assessor = assessor or GroundingAssessor()
        self.normalizer = normalizer or QueryNormalizer()
        self.grounding = grounding or GroundingValidator()
        self.limits = limits or LimitPolicy()

    async def run_structured(self, body: Any) -> str:
        """
        Execute a StructuredQuery submitted directly or wrapped as {"query": ...}.

        Returns:
            FeatureCollection JSON text

        Raises:
            ShapeValidationError, NormalizationError, GroundingError,
            CompileError, ExecutionError
        """
        payload, request_format = extract_query_payload(body)
        query = validate_query(payload)
        registry = self.registry_holder.current()

        outcome = await self._execute(query, registry)
        metadata = build_metadata(
            outcome.count,
            outcome.execution_time_ms,
            outcome.application,
            outcome.normalization_notes,
            query_hit=outcome.query_hit,
            requestFormat=request_format,
        )
        return build_feature_collection(outcome.features_json, metadata)

    async def run_chat(self, message: str) -> str:
        """
        Answer a natural-language request.

        Returns:
            FeatureCollection JSON text with parse and grounding metadata

        Raises:
            UngroundableRequestError: Every requested data concept is missing
            IntentParseError, LLMUnavailableError, LLMResponseError: From parsing
            Plus everything run_structured raises after validation
        """
        if self.intent_parser is None or self.parse_cache is None:
            raise RuntimeError("Chat pipeline requires an intent parser and a parse cache")

        registry = self.registry_holder.current()

        assessment = self.assessor.assess(message, registry.loaded_layer_names)
        if assessment.is_unsupported:
            logger.warning(f"Rejecting ungroundable request; missing layers: {assessment.missing_layers}")
            raise UngroundableRequestError(assessment)

        parse_key = make_cache_key(message)
        parse_result: Optional[ParseResult] = self.parse_cache.get(parse_key)
        parse_hit = parse_result is not None
        parse_time_ms = 0.0

        if parse_result is None:
            start = time.perf_counter()
            parse_result = await self.intent_parser.parse(message, registry)
            parse_time_ms = (time.perf_counter() - start) * 1000
            self.parse_cache.set(parse_key, parse_result)
        else:
            logger.info(f"Parse cache hit for message key {parse_key}")

        outcome = await self._execute(parse_result.query, registry)
        metadata = build_metadata(
            outcome.count,
            outcome.execution_time_ms,
            outcome.application,
            outcome.normalization_notes,
            parse_hit=parse_hit,
            query_hit=outcome.query_hit,
            confidence=parse_result.confidence,
            explanation=explanation_for(outcome.count),
            parseTimeMs=round(parse_time_ms, 2),
            grounding=assessment.to_dict(),
        )
        return build_feature_collection(outcome.features_json, metadata)

    async def _execute(self, query: StructuredQuery, registry: LayerRegistry) -> ExecutionOutcome:
        normalized, notes = self.normalizer.normalize(query)

        issues = self.grounding.validate(normalized, registry)
        if issues:
            raise GroundingError(
                issues,
                suggestions=validation_suggestions(registry, issues),
                normalization_notes=notes,
            )

        application = self.limits.apply(normalized, registry)
        cache_key = result_cache_key(application.query, application.simplify_tolerance_deg)

        cached: Optional[CachedResult] = self.result_cache.get(cache_key)
        if cached is not None:
            logger.info(f"Result cache hit for query key {cache_key}")
            return ExecutionOutcome(
                features_json=cached.features_json,
                count=cached.count,
                execution_time_ms=cached.execution_time_ms,
                application=application,
                normalization_notes=notes,
                query_hit=True,
            )

        compiled = QueryCompiler(registry).compile(application.query, application.simplify_tolerance_deg)

        start = time.perf_counter()
        try:
            rows = await self.executor.execute(compiled.sql, compiled.params)
        except ExecutionError as e:
            if e.is_data_problem:
                e.suggestions = validation_suggestions(registry, [])
            raise
        execution_time_ms = (time.perf_counter() - start) * 1000

        features_json = serialize_features(rows, array_fields(registry.get(application.query.select_layer)))
        logger.info(
            f"Query on {application.query.select_layer} returned {len(rows)} rows "
            f"in {execution_time_ms:.1f}ms"
        )

        self.result_cache.set(cache_key, CachedResult(features_json, len(rows), execution_time_ms))

        return ExecutionOutcome(
            features_json=features_json,
            count=len(rows),
            execution_time_ms=execution_time_ms,
            application=application,
            normalization_notes=notes,
            query_hit=False,
        )
