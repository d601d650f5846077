"""
Result-size policy.

Dense point layers tolerate far larger result sets than polygon layers, so
both the default limit and the hard cap depend on the geometry type of the
selected layer. Large polygon and line results also get a geometry
simplification tolerance to bound the payload size.
"""

from dataclasses import dataclass
from typing import Dict

from geoquery.layers.registry import LayerRegistry
from geoquery.query.models import SpatialOp, StructuredQuery

DEFAULT_LIMIT_BY_GEOMETRY: Dict[str, int] = {
    "Point": 4000,
    "LineString": 2500,
    "Polygon": 1500,
    "Polygon | Point": 2000,
}

HARD_CAP_BY_GEOMETRY: Dict[str, int] = {
    "Point": 10000,
    "LineString": 6000,
    "Polygon": 3000,
    "Polygon | Point": 5000,
}

FALLBACK_GEOMETRY_TYPE = "Polygon"
FALLBACK_DEFAULT_LIMIT = 1500
FALLBACK_HARD_CAP = 3000

# (max features threshold, tolerance in degrees)
POLYGON_SIMPLIFY = (1200, 0.00003)
LINESTRING_SIMPLIFY = (2000, 0.00002)


@dataclass
class LimitApplication:
    """Outcome of applying the limit policy"""
    query: StructuredQuery
    truncated: bool
    default_limit_applied: bool
    max_features_applied: int
    hard_cap: int
    simplify_tolerance_deg: float


def default_limit_for(geometry_type: str) -> int:
    return DEFAULT_LIMIT_BY_GEOMETRY.get(geometry_type, FALLBACK_DEFAULT_LIMIT)


def hard_cap_for(geometry_type: str) -> int:
    return HARD_CAP_BY_GEOMETRY.get(geometry_type, FALLBACK_HARD_CAP)


def simplify_tolerance_for(geometry_type: str, max_features: int) -> float:
    """Simplification tolerance in degrees; 0 means no simplification."""
    threshold, tolerance = POLYGON_SIMPLIFY
    if "Polygon" in geometry_type and max_features > threshold:
        return tolerance
    threshold, tolerance = LINESTRING_SIMPLIFY
    if "LineString" in geometry_type and max_features > threshold:
        return tolerance
    return 0.0


class LimitPolicy:
    """Applies default limits and hard caps per geometry type."""

    def apply(self, query: StructuredQuery, registry: LayerRegistry) -> LimitApplication:
        """
        Bound a query's result size.

        Args:
            query: Grounded query
            registry: Registry snapshot used to look up the geometry type

        Returns:
            LimitApplication with a new, limited query
        """
        layer = registry.get(query.select_layer)
        geometry_type = layer.geometry_type if layer else FALLBACK_GEOMETRY_TYPE
        hard_cap = hard_cap_for(geometry_type)

        truncated = False
        default_limit_applied = False
        limit = query.limit

        if limit is None:
            limit = default_limit_for(geometry_type)
            default_limit_applied = True
        elif limit > hard_cap:
            limit = hard_cap
            truncated = True

        updates = {"limit": limit}

        if query.spatial_filters:
            spatial_filters = []
            for spatial_filter in query.spatial_filters:
                if spatial_filter.op == SpatialOp.NEAREST and spatial_filter.limit is not None:
                    if spatial_filter.limit > hard_cap:
                        spatial_filter = spatial_filter.model_copy(update={"limit": hard_cap})
                        truncated = True
                spatial_filters.append(spatial_filter)
            updates["spatial_filters"] = spatial_filters

            # a defaulted outer limit must not cut an explicit nearest k
            if default_limit_applied:
                for spatial_filter in spatial_filters:
                    if spatial_filter.op == SpatialOp.NEAREST and spatial_filter.limit is not None:
                        limit = max(limit, spatial_filter.limit)
                updates["limit"] = limit

        return LimitApplication(
            query=query.model_copy(update=updates, deep=True),
            truncated=truncated,
            default_limit_applied=default_limit_applied,
            max_features_applied=limit,
            hard_cap=hard_cap,
            simplify_tolerance_deg=simplify_tolerance_for(geometry_type, limit),
        )
