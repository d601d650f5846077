"""
GeoJSON response envelope.

Rows come back from DuckDB with a "geometry" column that already holds
GeoJSON text (ST_AsGeoJSON). That text is spliced into the response
verbatim instead of being parsed and re-serialized, which matters for
responses with thousands of polygons.
"""

import datetime
import decimal
import json
import math
from typing import Any, Dict, Iterable, List, Optional

from geoquery.layers.registry import RuntimeLayerInfo
from geoquery.query.limits import LimitApplication
from geoquery.query.models import StructuredQuery
from geoquery.storage.cache import canonical_query_json, make_cache_key

GEOMETRY_KEY = "geometry"


def _json_default(value: Any) -> Any:
    if isinstance(value, decimal.Decimal):
        return float(value) if value.is_finite() else None
    if isinstance(value, (datetime.date, datetime.datetime, datetime.time)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return value.hex()
    return str(value)


def query_hash(query: StructuredQuery) -> str:
    """Stable short hash of a query, used for client-side correlation."""
    return make_cache_key(canonical_query_json(query))


def array_fields(layer: Optional[RuntimeLayerInfo]) -> List[str]:
    """Fields declared as string arrays; some sources store them as JSON text."""
    if layer is None:
        return []
    return [name for name, field_type in layer.schema_fields.items() if field_type.endswith("[]")]


def _finite(value: Any) -> Any:
    """Replace NaN and infinities (e.g. AVG over no rows) with None, recursively."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, list):
        return [_finite(v) for v in value]
    if isinstance(value, dict):
        return {k: _finite(v) for k, v in value.items()}
    return value


def _dumps(value: Any) -> str:
    return json.dumps(_finite(value), default=_json_default, allow_nan=False)


def _decode_array(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        parsed = json.loads(value)
    except ValueError:
        return value
    return parsed if isinstance(parsed, list) else value


def serialize_feature(row: Dict[str, Any], json_array_fields: Iterable[str] = ()) -> str:
    """
    Serialize one result row as a GeoJSON Feature string.

    Args:
        row: Result row; the "geometry" value, when present, is GeoJSON text
        json_array_fields: Property names to decode from JSON text to lists

    Returns:
        Feature JSON text
    """
    properties = {key: value for key, value in row.items() if key != GEOMETRY_KEY}
    for name in json_array_fields:
        if name in properties:
            properties[name] = _decode_array(properties[name])

    geometry = row.get(GEOMETRY_KEY)
    geometry_text = geometry if isinstance(geometry, str) and geometry.strip() else "null"

    return (
        '{"type":"Feature","geometry":' + geometry_text
        + ',"properties":' + _dumps(properties) + "}"
    )


def serialize_features(rows: List[Dict[str, Any]], json_array_fields: Iterable[str] = ()) -> str:
    """Serialize rows as the body of a JSON array (without brackets)."""
    fields = list(json_array_fields)
    return ",".join(serialize_feature(row, fields) for row in rows)


def build_metadata(
    count: int,
    execution_time_ms: float,
    application: LimitApplication,
    normalization_notes: List[str],
    parse_hit: bool = False,
    query_hit: bool = False,
    **extra: Any,
) -> Dict[str, Any]:
    """Metadata shared by the structured and chat endpoints."""
    query = application.query
    metadata = {
        "count": count,
        "executionTimeMs": round(execution_time_ms, 2),
        "query": query.to_wire(),
        "queryHash": query_hash(query),
        "sourceLayers": query.source_layers(),
        "truncated": application.truncated,
        "maxFeaturesApplied": application.max_features_applied,
        "hardCap": application.hard_cap,
        "defaultLimitApplied": application.default_limit_applied,
        "simplifyToleranceDeg": application.simplify_tolerance_deg,
        "normalizationNotes": list(normalization_notes),
        "cache": {"parseHit": parse_hit, "queryHit": query_hit},
    }
    metadata.update(extra)
    return metadata


def build_feature_collection(features_json: str, metadata: Dict[str, Any]) -> str:
    """Assemble the final response body from pre-serialized features."""
    return (
        '{"type":"FeatureCollection","features":[' + features_json
        + '],"metadata":' + _dumps(metadata) + "}"
    )
