import pytest

from geoquery.errors import NormalizationError
from geoquery.query.models import AttributeFilter, AttributeOp
from geoquery.query.normalizer import QueryNormalizer, get_rewrite_rules, to_boolean_like
from geoquery.query.validator import validate_query


@pytest.fixture
def normalizer():
    return QueryNormalizer()


def test_allows_residential_true_rewrites_to_zone_code_prefix(normalizer):
    query = validate_query({
        "selectLayer": "zoning_districts",
        "attributeFilters": [{"field": "allows_residential", "op": "eq", "value": True}],
    })

    normalized, notes = normalizer.normalize(query)

    assert normalized.attribute_filters == [AttributeFilter(field="zone_code", op=AttributeOp.LIKE, value="R%")]
    assert notes == ["Mapped allows_residential=true to zone_code LIKE R%"]


def test_numeric_one_counts_as_true(normalizer):
    query = validate_query({
        "selectLayer": "zoning_districts",
        "attributeFilters": [{"field": "allows_commercial", "op": "eq", "value": 1}],
    })
    normalized, _ = normalizer.normalize(query)
    assert normalized.attribute_filters[0].value == "C%"


def test_input_query_is_not_mutated(normalizer):
    query = validate_query({
        "selectLayer": "zoning_districts",
        "attributeFilters": [{"field": "allows_residential", "op": "eq", "value": True}],
    })
    before = query.to_wire()
    normalizer.normalize(query)
    assert query.to_wire() == before


def test_false_branch_is_rejected(normalizer):
    query = validate_query({
        "selectLayer": "zoning_districts",
        "attributeFilters": [{"field": "allows_residential", "op": "eq", "value": False}],
    })
    with pytest.raises(NormalizationError) as exc_info:
        normalizer.normalize(query)

    issue = exc_info.value.issues[0]
    assert issue.path == "attributeFilters.0.allows_residential"
    assert "false is not currently supported" in issue.message


def test_non_eq_operator_is_rejected(normalizer):
    query = validate_query({
        "selectLayer": "zoning_districts",
        "attributeFilters": [{"field": "allows_residential", "op": "neq", "value": True}],
    })
    with pytest.raises(NormalizationError) as exc_info:
        normalizer.normalize(query)
    assert "only supports eq true/false" in exc_info.value.issues[0].message


def test_all_issues_are_collected(normalizer):
    query = validate_query({
        "selectLayer": "zoning_districts",
        "attributeFilters": [
            {"field": "allows_residential", "op": "eq", "value": False},
            {"field": "allows_commercial", "op": "eq", "value": "yes"},
        ],
    })
    with pytest.raises(NormalizationError) as exc_info:
        normalizer.normalize(query)
    assert [i.path for i in exc_info.value.issues] == [
        "attributeFilters.0.allows_residential",
        "attributeFilters.1.allows_commercial",
    ]


def test_spatial_target_filters_use_target_layer_rules(normalizer):
    query = validate_query({
        "selectLayer": "parcels",
        "spatialFilters": [{
            "op": "within",
            "targetLayer": "zoning_districts",
            "targetFilter": [{"field": "allows_commercial", "op": "eq", "value": True}],
        }],
    })

    normalized, notes = normalizer.normalize(query)

    target_filter = normalized.spatial_filters[0].target_filter[0]
    assert (target_filter.field, target_filter.op, target_filter.value) == ("zone_code", AttributeOp.LIKE, "C%")
    assert len(notes) == 1


def test_rules_are_keyed_by_layer(normalizer):
    # parcels has no allows_residential rule; grounding rejects it later
    query = validate_query({
        "selectLayer": "parcels",
        "attributeFilters": [{"field": "allows_residential", "op": "eq", "value": True}],
    })
    normalized, notes = normalizer.normalize(query)
    assert normalized.attribute_filters[0].field == "allows_residential"
    assert notes == []


def test_zoning_description_maps_to_zone_name(normalizer):
    query = validate_query({
        "selectLayer": "zoning_districts",
        "attributeFilters": [{"field": "description", "op": "like", "value": "%mixed%"}],
    })
    normalized, notes = normalizer.normalize(query)
    assert normalized.attribute_filters[0].field == "zone_name"
    assert normalized.attribute_filters[0].value == "%mixed%"
    assert notes == ["Mapped zoning description to zone_name"]


def test_custom_rule_table():
    def upper_name(f):
        return f.model_copy(update={"value": str(f.value).upper()}), None

    normalizer = QueryNormalizer(rules={("hydrology", "name"): upper_name})
    query = validate_query({
        "selectLayer": "hydrology",
        "attributeFilters": [{"field": "name", "op": "eq", "value": "santa fe river"}],
    })
    normalized, notes = normalizer.normalize(query)
    assert normalized.attribute_filters[0].value == "SANTA FE RIVER"
    assert notes == []


def test_registered_rules_cover_virtual_fields():
    rules = get_rewrite_rules()
    assert ("zoning_districts", "allows_residential") in rules
    assert ("zoning_districts", "allows_commercial") in rules


@pytest.mark.parametrize("value,expected", [(True, True), (False, False), (1, True), (0, False), ("true", None), (2, None)])
def test_to_boolean_like(value, expected):
    assert to_boolean_like(value) is expected
