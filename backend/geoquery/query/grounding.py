"""
Grounding validation - checks a normalized query against loaded data.

A shape-valid query can still reference a layer that was never loaded, a
column that is missing from the loaded table, or compare a text field with
gt. This module reports every such problem with a path into the query.
"""

import logging
from typing import List, Optional

from geoquery.errors import Issue
from geoquery.layers.catalog import is_boolean_type, is_numeric_type
from geoquery.layers.registry import LayerRegistry, RuntimeLayerInfo
from geoquery.query.models import NUMERIC_OPS, AttributeFilter, AttributeOp, StructuredQuery
from geoquery.query.normalizer import to_boolean_like

logger = logging.getLogger(__name__)


class GroundingValidator:
    """Validates a query against a LayerRegistry snapshot."""

    def validate(self, query: StructuredQuery, registry: LayerRegistry) -> List[Issue]:
        """
        Collect every grounding issue in the query.

        Args:
            query: Normalized query
            registry: Registry snapshot for this request

        Returns:
            List of issues; empty when the query is answerable
        """
        issues: List[Issue] = []
        primary = registry.get(query.select_layer)

        # Nothing else can be checked without the primary layer
        if not registry.is_loaded(query.select_layer):
            return [Issue(path="selectLayer", message=f'Layer "{query.select_layer}" is not loaded')]

        if query.temporal is not None:
            issues.append(Issue(path="temporal", message="Temporal queries are not supported yet"))

        for field_name in query.select_fields or []:
            self._ensure_field(primary, field_name, f"selectFields.{field_name}", issues)

        for i, attribute_filter in enumerate(query.attribute_filters or []):
            path = f"attributeFilters.{i}.{attribute_filter.field}"
            self._ensure_field(primary, attribute_filter.field, path, issues)
            self._check_filter_types(primary, attribute_filter, path, issues)

        if query.order_by is not None:
            self._ensure_field(primary, query.order_by.field, f"orderBy.{query.order_by.field}", issues)

        if query.aggregate is not None:
            for field_name in query.aggregate.group_by:
                self._ensure_field(primary, field_name, f"aggregate.groupBy.{field_name}", issues)
            for i, metric in enumerate(query.aggregate.metrics):
                if metric.field == "*":
                    continue
                self._ensure_field(primary, metric.field, f"aggregate.metrics.{i}.{metric.field}", issues)

        for i, spatial_filter in enumerate(query.spatial_filters or []):
            target = registry.get(spatial_filter.target_layer)
            if not registry.is_loaded(spatial_filter.target_layer):
                issues.append(Issue(
                    path=f"spatialFilters.{i}.targetLayer",
                    message=f'Target layer "{spatial_filter.target_layer}" is not loaded',
                ))
                continue

            for j, target_filter in enumerate(spatial_filter.target_filter or []):
                path = f"spatialFilters.{i}.targetFilter.{j}.{target_filter.field}"
                self._ensure_field(target, target_filter.field, path, issues)
                self._check_filter_types(target, target_filter, path, issues)

        nearest = query.nearest_filters()
        if len(nearest) > 1:
            issues.append(Issue(path="spatialFilters", message="Only one nearest filter is supported per query"))
        if nearest and query.aggregate is not None:
            issues.append(Issue(path="aggregate", message="nearest cannot be combined with aggregate"))

        if issues:
            logger.warning(f"Grounding found {len(issues)} issue(s) for layer {query.select_layer}")
        return issues

    @staticmethod
    def _ensure_field(layer: RuntimeLayerInfo, field_name: str, path: str, issues: List[Issue]) -> None:
        if field_name not in layer.queryable_fields:
            issues.append(Issue(path=path, message=f'Field "{field_name}" is not queryable on "{layer.name}"'))

    @staticmethod
    def _check_filter_types(
        layer: RuntimeLayerInfo,
        attribute_filter: AttributeFilter,
        path: str,
        issues: List[Issue],
    ) -> None:
        field_type: Optional[str] = layer.field_type(attribute_filter.field)

        if attribute_filter.op in NUMERIC_OPS and not is_numeric_type(field_type):
            issues.append(Issue(path=path, message=f'Operator "{attribute_filter.op.value}" requires a numeric field'))

        if attribute_filter.op == AttributeOp.EQ and is_boolean_type(field_type):
            if to_boolean_like(attribute_filter.value) is None:
                issues.append(Issue(path=path, message="Boolean fields require true/false values"))
