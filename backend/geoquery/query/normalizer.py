"""
Query normalization - rewrites virtual fields into physical columns.

Some layers expose derived "concept" fields that do not exist as columns
(e.g. zoning_districts.allows_residential). Each such field has a rewrite
rule registered under (layer_name, field_name) with the @register_rewrite
decorator. A rule either returns a physical replacement filter plus a
human-readable note, or raises UnsupportedRewrite naming the combination it
cannot express.

The same rule table applies to top-level attribute filters (keyed by
selectLayer) and to spatial target filters (keyed by targetLayer).
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from geoquery.errors import Issue, NormalizationError
from geoquery.query.models import AttributeFilter, AttributeOp, StructuredQuery

logger = logging.getLogger(__name__)

RewriteResult = Tuple[AttributeFilter, Optional[str]]
RewriteRule = Callable[[AttributeFilter], RewriteResult]


class UnsupportedRewrite(Exception):
    """Raised by a rule for an operator/value combination it does not model."""


_REWRITE_RULES: Dict[Tuple[str, str], RewriteRule] = {}


def register_rewrite(layer_name: str, field_name: str) -> Callable[[RewriteRule], RewriteRule]:
    """
    Decorator for registering a virtual-field rewrite rule.

    Usage:
        @register_rewrite("zoning_districts", "allows_residential")
        def _allows_residential(f: AttributeFilter) -> RewriteResult:
            ...
    """
    def decorator(rule: RewriteRule) -> RewriteRule:
        key = (layer_name, field_name)
        if key in _REWRITE_RULES:
            logger.warning(f"Rewrite rule for {layer_name}.{field_name} already registered. Overwriting...")
        _REWRITE_RULES[key] = rule
        return rule
    return decorator


def get_rewrite_rules() -> Dict[Tuple[str, str], RewriteRule]:
    return dict(_REWRITE_RULES)


def to_boolean_like(value: Any) -> Optional[bool]:
    """
    Interpret true/false/1/0 as a boolean.

    Returns:
        The boolean, or None when the value is not boolean-like
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if value == 1:
            return True
        if value == 0:
            return False
    return None


def _zone_code_prefix_rule(layer_name: str, field_name: str, prefix: str) -> RewriteRule:
    """Build a rule mapping field=true to zone_code LIKE '<prefix>%'."""

    def rule(attribute_filter: AttributeFilter) -> RewriteResult:
        flag = to_boolean_like(attribute_filter.value)
        if attribute_filter.op != AttributeOp.EQ or flag is None:
            raise UnsupportedRewrite(f"{layer_name}.{field_name} only supports eq true/false")
        if not flag:
            # "not residential" is not the same set as zone_code NOT LIKE 'R%'
            raise UnsupportedRewrite(f"{layer_name}.{field_name}=false is not currently supported")
        rewritten = AttributeFilter(field="zone_code", op=AttributeOp.LIKE, value=f"{prefix}%")
        return rewritten, f"Mapped {field_name}=true to zone_code LIKE {prefix}%"

    return rule


register_rewrite("zoning_districts", "allows_residential")(
    _zone_code_prefix_rule("zoning_districts", "allows_residential", "R")
)
register_rewrite("zoning_districts", "allows_commercial")(
    _zone_code_prefix_rule("zoning_districts", "allows_commercial", "C")
)


@register_rewrite("zoning_districts", "description")
def _zoning_description(attribute_filter: AttributeFilter) -> RewriteResult:
    rewritten = attribute_filter.model_copy(update={"field": "zone_name"})
    return rewritten, "Mapped zoning description to zone_name"


class QueryNormalizer:
    """
    Applies registered rewrite rules to a StructuredQuery.

    Never mutates its input; returns a new query and the list of notes.
    """

    def __init__(self, rules: Optional[Dict[Tuple[str, str], RewriteRule]] = None):
        self.rules = rules if rules is not None else get_rewrite_rules()

    def normalize(self, query: StructuredQuery) -> Tuple[StructuredQuery, List[str]]:
        """
        Normalize a query.

        Args:
            query: Shape-validated query

        Returns:
            (normalized query, notes describing each applied rewrite)

        Raises:
            NormalizationError: With one issue per unsupported combination
        """
        notes: List[str] = []
        issues: List[Issue] = []
        updates: Dict[str, Any] = {}

        if query.attribute_filters:
            updates["attribute_filters"] = self._rewrite_filters(
                query.attribute_filters, query.select_layer, "attributeFilters", notes, issues
            )

        if query.spatial_filters:
            rewritten_spatial = []
            for i, spatial_filter in enumerate(query.spatial_filters):
                if spatial_filter.target_filter:
                    target_filters = self._rewrite_filters(
                        spatial_filter.target_filter,
                        spatial_filter.target_layer,
                        f"spatialFilters.{i}.targetFilter",
                        notes,
                        issues,
                    )
                    spatial_filter = spatial_filter.model_copy(update={"target_filter": target_filters})
                rewritten_spatial.append(spatial_filter)
            updates["spatial_filters"] = rewritten_spatial

        if issues:
            raise NormalizationError(issues)

        if notes:
            logger.info(f"Normalization applied {len(notes)} rewrite(s): {notes}")

        return query.model_copy(update=updates, deep=True), notes

    def _rewrite_filters(
        self,
        filters: List[AttributeFilter],
        layer_name: str,
        path_prefix: str,
        notes: List[str],
        issues: List[Issue],
    ) -> List[AttributeFilter]:
        rewritten = []
        for i, attribute_filter in enumerate(filters):
            rule = self.rules.get((layer_name, attribute_filter.field))
            if rule is None:
                rewritten.append(attribute_filter)
                continue
            try:
                replacement, note = rule(attribute_filter)
            except UnsupportedRewrite as e:
                issues.append(Issue(path=f"{path_prefix}.{i}.{attribute_filter.field}", message=str(e)))
                rewritten.append(attribute_filter)
                continue
            if note:
                notes.append(note)
            rewritten.append(replacement)
        return rewritten
