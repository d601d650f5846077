import pytest

from geoquery.errors import ShapeValidationError
from geoquery.query.models import AttributeOp, SpatialOp, StructuredQuery
from geoquery.query.validator import extract_query_payload, safe_validate_query, validate_query


def test_minimal_query_is_valid():
    query = validate_query({"selectLayer": "parcels"})
    assert query.select_layer == "parcels"
    assert query.attribute_filters is None
    assert query.limit is None


def test_camel_case_fields_map_to_attributes():
    query = validate_query({
        "selectLayer": "parcels",
        "attributeFilters": [{"field": "zoning", "op": "in", "value": ["R-1", "R-2"]}],
        "spatialFilters": [{"op": "within_distance", "targetLayer": "hydrology", "distance": 500}],
        "orderBy": {"field": "acres", "direction": "desc"},
        "limit": 10,
    })
    assert query.attribute_filters[0].op == AttributeOp.IN
    assert query.spatial_filters[0].op == SpatialOp.WITHIN_DISTANCE
    assert query.spatial_filters[0].target_layer == "hydrology"
    assert query.order_by.field == "acres"


def test_unknown_keys_are_ignored():
    query = validate_query({"selectLayer": "parcels", "explanation": "because"})
    assert "explanation" not in query.to_wire()


def test_every_violation_is_reported():
    query, issues = safe_validate_query({
        "attributeFilters": [{"field": "zoning", "op": "between", "value": 1}],
        "limit": -5,
    })
    assert query is None
    paths = {issue.path for issue in issues}
    assert "selectLayer" in paths
    assert "attributeFilters.0.op" in paths
    assert "limit" in paths


def test_values_are_strict():
    _, issues = safe_validate_query({"selectLayer": "parcels", "limit": "10"})
    assert [i.path for i in issues] == ["limit"]


def test_in_requires_list():
    with pytest.raises(ShapeValidationError) as exc_info:
        validate_query({"selectLayer": "parcels", "attributeFilters": [{"field": "zoning", "op": "in", "value": "R-1"}]})
    assert "array" in str(exc_info.value)


def test_list_value_rejected_for_scalar_operator():
    _, issues = safe_validate_query({
        "selectLayer": "parcels",
        "attributeFilters": [{"field": "zoning", "op": "eq", "value": ["R-1"]}],
    })
    assert issues
    assert issues[0].path.startswith("attributeFilters.0")


def test_within_distance_requires_distance():
    _, issues = safe_validate_query({
        "selectLayer": "parcels",
        "spatialFilters": [{"op": "within_distance", "targetLayer": "hydrology"}],
    })
    assert any("distance" in issue.message for issue in issues)


def test_nearest_requires_limit():
    _, issues = safe_validate_query({
        "selectLayer": "parcels",
        "spatialFilters": [{"op": "nearest", "targetLayer": "transit_access"}],
    })
    assert any("limit" in issue.message for issue in issues)


def test_distance_must_be_positive():
    _, issues = safe_validate_query({
        "selectLayer": "parcels",
        "spatialFilters": [{"op": "within_distance", "targetLayer": "hydrology", "distance": 0}],
    })
    assert issues


def test_temporal_date_format_checked():
    _, issues = safe_validate_query({
        "selectLayer": "parcels",
        "temporal": {"baseline": {"date": "2020/01/01"}, "comparison": {"year": 2024}, "metric": "assessed_value"},
    })
    assert issues


def test_non_object_input_is_rejected():
    query, issues = safe_validate_query(["selectLayer"])
    assert query is None
    assert issues[0].path == "(root)"


def test_to_wire_round_trip_uses_camel_case():
    raw = {
        "selectLayer": "parcels",
        "spatialFilters": [{"op": "nearest", "targetLayer": "transit_access", "limit": 3}],
    }
    wire = validate_query(raw).to_wire()
    assert wire == raw
    assert StructuredQuery.model_validate(wire) == validate_query(raw)


def test_extract_payload_wrapped_and_direct():
    assert extract_query_payload({"query": {"selectLayer": "parcels"}}) == ({"selectLayer": "parcels"}, "wrapped")
    assert extract_query_payload({"selectLayer": "parcels"}) == ({"selectLayer": "parcels"}, "direct")
