from conftest import make_registry

from geoquery.query.grounding import GroundingValidator
from geoquery.query.normalizer import QueryNormalizer
from geoquery.query.validator import validate_query

validator = GroundingValidator()


def test_valid_query_has_no_issues(registry):
    query = validate_query({
        "selectLayer": "parcels",
        "selectFields": ["parcel_id", "zoning"],
        "attributeFilters": [{"field": "acres", "op": "gt", "value": 1}],
        "spatialFilters": [{
            "op": "within_distance",
            "targetLayer": "hydrology",
            "targetFilter": [{"field": "type", "op": "eq", "value": "arroyo"}],
            "distance": 100,
        }],
        "orderBy": {"field": "acres", "direction": "desc"},
    })
    assert validator.validate(query, registry) == []


def test_unloaded_select_layer_returns_single_issue(registry):
    query = validate_query({
        "selectLayer": "eviction_filings",
        "attributeFilters": [{"field": "nope", "op": "gt", "value": 1}],
    })
    issues = validator.validate(query, registry)
    assert len(issues) == 1
    assert issues[0].path == "selectLayer"
    assert issues[0].message == 'Layer "eviction_filings" is not loaded'


def test_unknown_layer_is_reported_as_not_loaded(registry):
    issues = validator.validate(validate_query({"selectLayer": "neighborhoods"}), registry)
    assert [i.path for i in issues] == ["selectLayer"]


def test_missing_fields_are_reported_with_paths():
    registry = make_registry(missing_fields={"parcels": ["assessed_value"]})
    query = validate_query({
        "selectLayer": "parcels",
        "selectFields": ["parcel_id", "owner_name"],
        "attributeFilters": [{"field": "assessed_value", "op": "gt", "value": 500000}],
        "orderBy": {"field": "height", "direction": "asc"},
    })
    paths = [i.path for i in validator.validate(query, registry)]
    assert "selectFields.owner_name" in paths
    assert "attributeFilters.0.assessed_value" in paths
    assert "orderBy.height" in paths


def test_unloaded_target_layer(registry):
    query = validate_query({
        "selectLayer": "parcels",
        "spatialFilters": [
            {"op": "intersects", "targetLayer": "flood_zones"},
            {"op": "within_distance", "targetLayer": "school_zones", "distance": 1000},
        ],
    })
    issues = validator.validate(query, registry)
    assert len(issues) == 1
    assert issues[0].path == "spatialFilters.1.targetLayer"
    assert issues[0].message == 'Target layer "school_zones" is not loaded'


def test_target_filter_fields_checked_against_target_layer(registry):
    query = validate_query({
        "selectLayer": "parcels",
        "spatialFilters": [{
            "op": "within",
            "targetLayer": "census_tracts",
            "targetFilter": [{"field": "zoning", "op": "eq", "value": "R-1"}],
        }],
    })
    issues = validator.validate(query, registry)
    assert [i.path for i in issues] == ["spatialFilters.0.targetFilter.0.zoning"]


def test_numeric_operator_on_text_field(registry):
    query = validate_query({
        "selectLayer": "parcels",
        "attributeFilters": [{"field": "zoning", "op": "gte", "value": 3}],
    })
    issues = validator.validate(query, registry)
    assert issues[0].message == 'Operator "gte" requires a numeric field'


def test_boolean_field_requires_boolean_value(registry):
    query = validate_query({
        "selectLayer": "transit_access",
        "attributeFilters": [{"field": "wheelchair_accessible", "op": "eq", "value": "yes"}],
    })
    issues = validator.validate(query, registry)
    assert issues[0].message == "Boolean fields require true/false values"


def test_temporal_is_not_supported(registry):
    query = validate_query({
        "selectLayer": "census_tracts",
        "temporal": {"baseline": {"year": 2015}, "comparison": {"year": 2022}, "metric": "median_income"},
    })
    issues = validator.validate(query, registry)
    assert [i.path for i in issues] == ["temporal"]


def test_aggregate_fields_checked_and_star_allowed(registry):
    query = validate_query({
        "selectLayer": "short_term_rentals",
        "aggregate": {
            "groupBy": ["census_tract_geoid"],
            "metrics": [
                {"field": "*", "op": "count"},
                {"field": "price_per_night", "op": "avg"},
            ],
        },
    })
    paths = [i.path for i in validator.validate(query, registry)]
    assert paths == ["aggregate.groupBy.census_tract_geoid"]


def test_multiple_nearest_and_nearest_with_aggregate(registry):
    query = validate_query({
        "selectLayer": "parcels",
        "spatialFilters": [
            {"op": "nearest", "targetLayer": "transit_access", "limit": 5},
            {"op": "nearest", "targetLayer": "hydrology", "limit": 5},
        ],
        "aggregate": {"groupBy": ["zoning"], "metrics": [{"field": "*", "op": "count"}]},
    })
    paths = [i.path for i in validator.validate(query, registry)]
    assert "spatialFilters" in paths
    assert "aggregate" in paths


def test_virtual_field_queryable_after_normalization(registry):
    query = validate_query({
        "selectLayer": "zoning_districts",
        "attributeFilters": [{"field": "allows_residential", "op": "eq", "value": True}],
    })
    normalized, _ = QueryNormalizer().normalize(query)
    assert validator.validate(normalized, registry) == []
