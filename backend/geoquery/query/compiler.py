"""
Query compiler - StructuredQuery to parameterized DuckDB spatial SQL.

CRS rule: every layer table carries two geometry columns. Metric operators
(within_distance, nearest) use the projected UTM 13N column on both sides of
the predicate so distances are in meters; topological operators
(intersects, contains, within) use the WGS84 column on both sides. Output
geometry is always emitted from the WGS84 column.

Target geometry for a spatial filter is a scalar subquery that unions the
(optionally filtered) target rows, so one predicate covers any number of
target features.

Every filter value is bound as a $n positional parameter. Identifiers are
checked against the registry and quoted; they never come from free text.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from geoquery.errors import CompileError
from geoquery.layers.catalog import GEOGRAPHIC_COLUMN, PROJECTED_COLUMN
from geoquery.layers.registry import LayerRegistry, RuntimeLayerInfo
from geoquery.query.models import (
    METRIC_OPS,
    AttributeFilter,
    AttributeOp,
    LogicalOp,
    SpatialFilter,
    SpatialOp,
    StructuredQuery,
)

logger = logging.getLogger(__name__)

_COMPARISON_SQL = {
    AttributeOp.EQ: "=",
    AttributeOp.NEQ: "!=",
    AttributeOp.GT: ">",
    AttributeOp.GTE: ">=",
    AttributeOp.LT: "<",
    AttributeOp.LTE: "<=",
    AttributeOp.LIKE: "LIKE",
}

_PREDICATE_SQL = {
    SpatialOp.INTERSECTS: "ST_Intersects",
    SpatialOp.CONTAINS: "ST_Contains",
    SpatialOp.WITHIN: "ST_Within",
}

_EXCLUDE_GEOMETRY = f"* EXCLUDE ({GEOGRAPHIC_COLUMN}, {PROJECTED_COLUMN})"


@dataclass
class CompiledQuery:
    """SQL text plus its positional parameters"""
    sql: str
    params: List[Any] = field(default_factory=list)


def uses_projected_geometry(op: SpatialOp) -> bool:
    """Metric operators need the distance-preserving projected CRS."""
    return op in METRIC_OPS


def geometry_column_for(op: SpatialOp) -> str:
    return PROJECTED_COLUMN if uses_projected_geometry(op) else GEOGRAPHIC_COLUMN


def quote_identifier(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


class _Compilation:
    """Per-call state: the parameter list and its placeholder counter."""

    def __init__(self, registry: LayerRegistry, query: StructuredQuery, simplify_tolerance_deg: float):
        self.registry = registry
        self.query = query
        self.simplify_tolerance_deg = simplify_tolerance_deg
        self.params: List[Any] = []

    # Identifiers

    def layer(self, layer_name: str) -> RuntimeLayerInfo:
        layer = self.registry.get(layer_name)
        if layer is None:
            raise CompileError(
                f"Unknown layer: {layer_name}. Available layers: {', '.join(sorted(self.registry.layers))}"
            )
        return layer

    def column(self, layer: RuntimeLayerInfo, field_name: str) -> str:
        if field_name not in layer.schema_fields and field_name not in layer.loaded_fields:
            raise CompileError(f"Unknown field {field_name} on layer {layer.name}")
        return quote_identifier(field_name)

    def add_param(self, value: Any) -> str:
        self.params.append(value)
        return f"${len(self.params)}"

    # Clauses

    def attribute_condition(self, layer: RuntimeLayerInfo, attribute_filter: AttributeFilter) -> str:
        column = self.column(layer, attribute_filter.field)

        if attribute_filter.op == AttributeOp.IN:
            if not isinstance(attribute_filter.value, list) or not attribute_filter.value:
                raise CompileError(f"in filter on {attribute_filter.field} requires a non-empty list")
            placeholders = [self.add_param(v) for v in attribute_filter.value]
            return f"{column} IN ({', '.join(placeholders)})"

        operator = _COMPARISON_SQL.get(attribute_filter.op)
        if operator is None:
            raise CompileError(f"Unsupported attribute operation: {attribute_filter.op}")
        return f"{column} {operator} {self.add_param(attribute_filter.value)}"

    def target_subquery(self, spatial_filter: SpatialFilter) -> str:
        target = self.layer(spatial_filter.target_layer)
        geom = geometry_column_for(spatial_filter.op)
        suffix = "utm13" if uses_projected_geometry(spatial_filter.op) else "4326"

        subquery = f"SELECT ST_Union_Agg({geom}) AS target_geom_{suffix} FROM {quote_identifier(target.name)}"
        if spatial_filter.target_filter:
            conditions = [self.attribute_condition(target, f) for f in spatial_filter.target_filter]
            subquery += f" WHERE {' AND '.join(conditions)}"
        return subquery

    def spatial_condition(self, spatial_filter: SpatialFilter) -> str:
        if spatial_filter.op == SpatialOp.NEAREST:
            raise CompileError("nearest is an ordering, not a predicate")

        source_geom = geometry_column_for(spatial_filter.op)
        target = self.target_subquery(spatial_filter)

        if spatial_filter.op == SpatialOp.WITHIN_DISTANCE:
            if spatial_filter.distance is None:
                raise CompileError("within_distance requires distance parameter")
            return f"ST_DWithin({source_geom}, ({target}), {self.add_param(spatial_filter.distance)})"

        function = _PREDICATE_SQL.get(spatial_filter.op)
        if function is None:
            raise CompileError(f"Unsupported spatial operation: {spatial_filter.op}")
        return f"{function}({source_geom}, ({target}))"

    @staticmethod
    def combine(conditions: List[str], logic: Optional[LogicalOp]) -> Optional[str]:
        if not conditions:
            return None
        if len(conditions) == 1:
            return conditions[0]
        joiner = f" {(logic or LogicalOp.AND).value.upper()} "
        return f"({joiner.join(conditions)})"

    def where_clause(self, layer: RuntimeLayerInfo, spatial_filters: List[SpatialFilter]) -> Optional[str]:
        groups = []

        attribute_group = self.combine(
            [self.attribute_condition(layer, f) for f in self.query.attribute_filters or []],
            self.query.attribute_logic,
        )
        if attribute_group:
            groups.append(attribute_group)

        spatial_group = self.combine(
            [self.spatial_condition(f) for f in spatial_filters],
            self.query.spatial_logic,
        )
        if spatial_group:
            groups.append(spatial_group)

        return " AND ".join(groups) if groups else None

    def projection(self, layer: RuntimeLayerInfo) -> List[str]:
        if self.query.select_fields:
            return [self.column(layer, f) for f in self.query.select_fields]
        return [_EXCLUDE_GEOMETRY]

    def geometry_output(self) -> str:
        if self.simplify_tolerance_deg > 0:
            tolerance = repr(float(self.simplify_tolerance_deg))
            return f"ST_AsGeoJSON(ST_SimplifyPreserveTopology({GEOGRAPHIC_COLUMN}, {tolerance})) AS geometry"
        return f"ST_AsGeoJSON({GEOGRAPHIC_COLUMN}) AS geometry"

    def aggregate_projection(self, layer: RuntimeLayerInfo) -> List[str]:
        aggregate = self.query.aggregate
        fields = [self.column(layer, f) for f in aggregate.group_by]
        for metric in aggregate.metrics:
            alias = metric.alias or f"{metric.op.value}_{'all' if metric.field == '*' else metric.field}"
            if metric.field == "*":
                argument = "*" if metric.op.value == "count" else "1"
            else:
                argument = self.column(layer, metric.field)
            fields.append(f"{metric.op.value.upper()}({argument}) AS {quote_identifier(alias)}")
        return fields

    # Shapes

    def build(self) -> CompiledQuery:
        layer = self.layer(self.query.select_layer)
        nearest = self.query.nearest_filters()

        if nearest:
            return self.build_nearest(layer, nearest)

        if self.query.aggregate:
            fields = self.aggregate_projection(layer)
        else:
            fields = self.projection(layer) + [self.geometry_output()]

        parts = [f"SELECT {', '.join(fields)}", f"FROM {quote_identifier(layer.name)}"]

        where = self.where_clause(layer, list(self.query.spatial_filters or []))
        if where:
            parts.append(f"WHERE {where}")

        if self.query.aggregate:
            parts.append(f"GROUP BY {', '.join(self.column(layer, f) for f in self.query.aggregate.group_by)}")

        if self.query.order_by:
            order_by = self.query.order_by
            parts.append(f"ORDER BY {self.column(layer, order_by.field)} {order_by.direction.value.upper()}")

        if self.query.limit is not None:
            parts.append(f"LIMIT {int(self.query.limit)}")

        return CompiledQuery(sql="\n".join(parts), params=self.params)

    def build_nearest(self, layer: RuntimeLayerInfo, nearest: List[SpatialFilter]) -> CompiledQuery:
        """
        k-nearest-neighbor shape.

        Distance to the unioned target geometry is computed in the projected
        CRS as an extra column; rows are ordered by it and limited to
        min(k, outer limit). Other spatial filters stay as WHERE predicates.
        """
        if len(nearest) > 1:
            raise CompileError("Only one nearest filter is supported per query")
        if self.query.aggregate:
            raise CompileError("nearest cannot be combined with aggregate")

        nearest_filter = nearest[0]
        if nearest_filter.limit is None:
            raise CompileError("nearest operation requires limit parameter")

        target = self.target_subquery(nearest_filter)
        fields = self.projection(layer)
        fields.append(f"ST_Distance({PROJECTED_COLUMN}, ({target})) AS distance")
        fields.append(self.geometry_output())

        parts = [f"SELECT {', '.join(fields)}", f"FROM {quote_identifier(layer.name)}"]

        others = [f for f in self.query.spatial_filters or [] if f.op != SpatialOp.NEAREST]
        where = self.where_clause(layer, others)
        if where:
            parts.append(f"WHERE {where}")

        parts.append("ORDER BY distance ASC")

        limit = nearest_filter.limit
        if self.query.limit is not None and self.query.limit < limit:
            limit = self.query.limit
        parts.append(f"LIMIT {int(limit)}")

        return CompiledQuery(sql="\n".join(parts), params=self.params)


class QueryCompiler:
    """
    Compiles validated, normalized and limited queries.

    Holds no per-query state, so compiling the same query twice yields
    identical SQL and parameters.
    """

    def __init__(self, registry: LayerRegistry):
        self.registry = registry

    def compile(self, query: StructuredQuery, simplify_tolerance_deg: float = 0.0) -> CompiledQuery:
        """
        Compile a query to SQL.

        Args:
            query: Query that passed validation, normalization, grounding and limits
            simplify_tolerance_deg: Geometry simplification tolerance (0 disables)

        Returns:
            CompiledQuery with SQL text and positional parameters

        Raises:
            CompileError: If the query cannot be expressed (an upstream bug)
        """
        compiled = _Compilation(self.registry, query, simplify_tolerance_deg).build()
        logger.debug(f"Compiled query on {query.select_layer} with {len(compiled.params)} params")
        return compiled
