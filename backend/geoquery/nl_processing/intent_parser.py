"""
Intent parser - converts natural language into a StructuredQuery.

Builds a prompt that lists only the layers and fields currently loaded,
sends it to the configured LLM client, extracts the first JSON object from
the reply and shape-validates it. The confidence score is advisory: it is
reported to the caller but never gates execution.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from geoquery.errors import IntentParseError
from geoquery.layers.catalog import LAYER_SCHEMAS
from geoquery.layers.registry import LayerRegistry
from geoquery.nl_processing.llm_client import LLMClient
from geoquery.query.models import StructuredQuery
from geoquery.query.validator import safe_validate_query

logger = logging.getLogger(__name__)

BASE_CONFIDENCE = 0.8
UNKNOWN_LAYER_PENALTY = 0.3
UNKNOWN_FIELD_PENALTY = 0.1
UNKNOWN_TARGET_LAYER_PENALTY = 0.2
HEDGE_PENALTY = 0.2

HEDGE_MARKERS = ("uncertain", "not sure", "might be", "possibly", "maybe")


@dataclass
class ParseResult:
    """Parsed query with its confidence score"""
    query: StructuredQuery
    confidence: float
    raw_response: str


# (user message, query) few-shot pairs
FEW_SHOT_EXAMPLES: List[tuple] = [
    ("Show residential parcels", {
        "selectLayer": "parcels",
        "attributeFilters": [{"field": "zoning", "op": "in", "value": ["R-1", "R-2", "R-3", "R-4"]}],
    }),
    ("Parcels within 500 meters of the Santa Fe River", {
        "selectLayer": "parcels",
        "spatialFilters": [{
            "op": "within_distance",
            "targetLayer": "hydrology",
            "targetFilter": [{"field": "name", "op": "like", "value": "%Santa Fe River%"}],
            "distance": 500,
        }],
    }),
    ("Census tracts with median income below 40000", {
        "selectLayer": "census_tracts",
        "attributeFilters": [{"field": "median_income", "op": "lt", "value": 40000}],
    }),
    ("Vacant parcels near transit stops", {
        "selectLayer": "parcels",
        "spatialFilters": [{"op": "within_distance", "targetLayer": "transit_access", "distance": 500}],
        "attributeFilters": [{"field": "land_use", "op": "like", "value": "%vacant%"}],
    }),
    ("Short-term rentals grouped by property type", {
        "selectLayer": "short_term_rentals",
        "aggregate": {
            "groupBy": ["property_type"],
            "metrics": [{"field": "*", "op": "count", "alias": "str_count"}],
        },
    }),
    ("Parcels within 500m of arroyos and inside flood zones", {
        "selectLayer": "parcels",
        "spatialFilters": [
            {
                "op": "within_distance",
                "targetLayer": "hydrology",
                "targetFilter": [{"field": "type", "op": "eq", "value": "arroyo"}],
                "distance": 500,
            },
            {"op": "intersects", "targetLayer": "flood_zones"},
        ],
        "spatialLogic": "and",
    }),
    ("The 5 transit stops closest to the Canyon Road historic district", {
        "selectLayer": "transit_access",
        "spatialFilters": [{
            "op": "nearest",
            "targetLayer": "historic_districts",
            "targetFilter": [{"field": "district_name", "op": "like", "value": "%Canyon Road%"}],
            "limit": 5,
        }],
    }),
    ("Affordable housing units near schools", {
        "selectLayer": "affordable_housing_units",
        "spatialFilters": [{"op": "within_distance", "targetLayer": "school_zones", "distance": 1000}],
    }),
]

OUTPUT_SCHEMA = """{
  "selectLayer": "string",
  "selectFields": ["string"] (optional),
  "attributeFilters": [{"field": "string", "op": "string", "value": "any"}] (optional),
  "attributeLogic": "and" | "or" (optional, default: "and"),
  "spatialFilters": [{"op": "string", "targetLayer": "string", "targetFilter": [...] (optional), "distance": number (for within_distance), "limit": number (for nearest)}] (optional),
  "spatialLogic": "and" | "or" (optional, default: "and"),
  "aggregate": {"groupBy": ["string"], "metrics": [{"field": "string", "op": "count|sum|avg|median|min|max", "alias": "string" (optional)}]} (optional),
  "limit": number (optional),
  "orderBy": {"field": "string", "direction": "asc" | "desc"} (optional)
}"""


def _example_layers(query: Dict[str, Any]) -> List[str]:
    layers = [query["selectLayer"]]
    layers.extend(f["targetLayer"] for f in query.get("spatialFilters", []))
    return layers


def extract_first_json_object(text: str) -> Optional[str]:
    """
    Find the first balanced {...} object in free-form text.

    Braces inside JSON strings are ignored, as are escaped quotes. An opening
    brace that never closes is skipped and the scan resumes after it.

    Returns:
        The object text, or None if no balanced object exists
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            char = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        start = text.find("{", start + 1)
    return None


class IntentParser:
    """
    Parses natural language requests into StructuredQuery objects.
    """

    def __init__(self, llm: LLMClient):
        """
        Initialize parser.

        Args:
            llm: Completion client (Claude or Ollama)
        """
        self.llm = llm

    async def parse(self, message: str, registry: LayerRegistry) -> ParseResult:
        """
        Parse a message.

        Args:
            message: User's natural language request
            registry: Registry snapshot; only its loaded layers are offered to the model

        Returns:
            ParseResult with the validated query

        Raises:
            IntentParseError: No JSON, undecodable JSON, or shape validation failure
            LLMUnavailableError: Propagated from the client
            LLMResponseError: Propagated from the client
        """
        logger.info(f"Parsing message: '{message}'")

        prompt = self.build_prompt(message, registry)
        raw_response = await self.llm.complete(prompt)

        json_text = extract_first_json_object(raw_response)
        if json_text is None:
            raise IntentParseError("LLM did not return valid JSON", raw_response=raw_response)

        try:
            parsed = json.loads(json_text)
        except json.JSONDecodeError as e:
            raise IntentParseError(
                f"Failed to parse JSON from LLM response: {e}", raw_response=raw_response
            ) from e

        query, issues = safe_validate_query(parsed)
        if query is None:
            summary = ", ".join(f"{i.path}: {i.message}" for i in issues)
            raise IntentParseError(
                f"Query validation failed: {summary}", issues=issues, raw_response=raw_response
            )

        confidence = self.calculate_confidence(query, raw_response, registry)
        logger.info(f"Intent parsed: layer={query.select_layer}, confidence={confidence:.2f}")

        return ParseResult(query=query, confidence=confidence, raw_response=raw_response)

    def build_prompt(self, message: str, registry: LayerRegistry) -> str:
        """
        Build the prompt with loaded layer schemas and examples.

        Args:
            message: User request, embedded as a JSON string literal
            registry: Registry snapshot

        Returns:
            Prompt string
        """
        loaded = registry.loaded_layer_names
        descriptions = []
        for name in loaded:
            layer = registry.get(name)
            fields = "\n".join(
                f"    - {field_name}: {layer.field_type(field_name) or 'unknown'}"
                for field_name in layer.queryable_fields
            )
            descriptions.append(
                f"  - {name} ({layer.geometry_type}): {layer.description or 'No description'}\n{fields}"
            )
        layer_text = "\n\n".join(descriptions) if descriptions else "  (no layers loaded)"

        examples = [
            (text, query) for text, query in FEW_SHOT_EXAMPLES
            if all(layer in loaded for layer in _example_layers(query))
        ]
        example_text = "\n\n".join(
            f'User: "{text}"\n{json.dumps(query, indent=2)}' for text, query in examples
        )

        return f"""You are a spatial query parser for Santa Fe, New Mexico. Convert natural language queries into structured JSON queries.

Available layers (use ONLY these layers and fields):
{layer_text}

Supported operations:
- Attribute filters: eq, neq, gt, gte, lt, lte, in, like
- Spatial filters: within_distance (meters), intersects, contains, within, nearest
- Logical operators: and, or (for combining multiple filters)

Output ONLY valid JSON matching this schema:
{OUTPUT_SCHEMA}

Examples:

{example_text}

Now parse this query:
User: {json.dumps(message)}

Output only the JSON object, no other text:"""

    def calculate_confidence(self, query: StructuredQuery, raw_response: str, registry: LayerRegistry) -> float:
        """
        Score how well the query fits the known data.

        Returns:
            Confidence in [0, 1]
        """
        confidence = BASE_CONFIDENCE

        layer = registry.get(query.select_layer)
        if query.select_layer not in LAYER_SCHEMAS or layer is None:
            confidence -= UNKNOWN_LAYER_PENALTY
        else:
            for attribute_filter in query.attribute_filters or []:
                if (attribute_filter.field not in layer.schema_fields
                        or attribute_filter.field not in layer.queryable_fields):
                    confidence -= UNKNOWN_FIELD_PENALTY

            for spatial_filter in query.spatial_filters or []:
                if spatial_filter.target_layer not in LAYER_SCHEMAS:
                    confidence -= UNKNOWN_TARGET_LAYER_PENALTY

        if self._has_hedge(raw_response):
            confidence -= HEDGE_PENALTY

        return max(0.0, min(1.0, confidence))

    @staticmethod
    def _has_hedge(raw_response: str) -> bool:
        lowered = raw_response.lower()
        if any(marker in lowered for marker in HEDGE_MARKERS):
            return True
        return lowered.rstrip().endswith("?")
