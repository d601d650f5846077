import pytest

from geoquery.query.compiler import QueryCompiler
from geoquery.query.limits import (
    LimitPolicy,
    default_limit_for,
    hard_cap_for,
    simplify_tolerance_for,
)
from geoquery.query.validator import validate_query

policy = LimitPolicy()


def test_limit_above_polygon_cap_is_truncated(registry):
    application = policy.apply(validate_query({"selectLayer": "parcels", "limit": 20000}), registry)

    assert application.truncated is True
    assert application.query.limit == 3000
    assert application.hard_cap == 3000
    assert application.max_features_applied == 3000
    assert application.default_limit_applied is False


def test_default_limit_applied_when_unset(registry):
    application = policy.apply(validate_query({"selectLayer": "short_term_rentals"}), registry)

    assert application.default_limit_applied is True
    assert application.truncated is False
    assert application.query.limit == 4000
    assert application.simplify_tolerance_deg == 0.0


def test_limit_within_cap_is_kept(registry):
    application = policy.apply(validate_query({"selectLayer": "hydrology", "limit": 50}), registry)
    assert application.query.limit == 50
    assert application.truncated is False
    assert application.simplify_tolerance_deg == 0.0


@pytest.mark.parametrize("layer,requested", [
    ("parcels", 1), ("parcels", 2999), ("parcels", 3001), ("short_term_rentals", 123456), ("hydrology", 6000),
])
def test_effective_limit_never_exceeds_cap_or_request(registry, layer, requested):
    application = policy.apply(validate_query({"selectLayer": layer, "limit": requested}), registry)
    assert application.query.limit <= application.hard_cap
    assert application.query.limit <= requested


def test_nearest_limit_clamped_to_cap(registry):
    query = validate_query({
        "selectLayer": "parcels",
        "spatialFilters": [{"op": "nearest", "targetLayer": "transit_access", "limit": 50000}],
    })
    application = policy.apply(query, registry)
    assert application.query.spatial_filters[0].limit == 3000
    assert application.truncated is True
    # original untouched
    assert query.spatial_filters[0].limit == 50000


def test_default_limit_does_not_cut_nearest_k(registry):
    query = validate_query({
        "selectLayer": "parcels",
        "spatialFilters": [{"op": "nearest", "targetLayer": "transit_access", "limit": 2000}],
    })
    application = policy.apply(query, registry)

    assert application.default_limit_applied is True
    assert application.truncated is False
    assert application.query.limit == 2000
    assert application.max_features_applied == 2000
    compiled = QueryCompiler(registry).compile(application.query, application.simplify_tolerance_deg)
    assert compiled.sql.endswith("LIMIT 2000")


def test_explicit_outer_limit_still_bounds_nearest(registry):
    query = validate_query({
        "selectLayer": "parcels",
        "limit": 10,
        "spatialFilters": [{"op": "nearest", "targetLayer": "transit_access", "limit": 2000}],
    })
    application = policy.apply(query, registry)
    assert application.query.limit == 10
    assert QueryCompiler(registry).compile(application.query).sql.endswith("LIMIT 10")


def test_polygon_default_triggers_simplification(registry):
    application = policy.apply(validate_query({"selectLayer": "census_tracts"}), registry)
    assert application.query.limit == 1500
    assert application.simplify_tolerance_deg == 0.00003


def test_linestring_simplification_threshold():
    assert simplify_tolerance_for("LineString", 2000) == 0.0
    assert simplify_tolerance_for("LineString", 2001) == 0.00002
    assert simplify_tolerance_for("Point", 10000) == 0.0


def test_lookup_tables_and_fallbacks():
    assert default_limit_for("Polygon | Point") == 2000
    assert hard_cap_for("Polygon | Point") == 5000
    assert default_limit_for("MultiSurface") == 1500
    assert hard_cap_for("MultiSurface") == 3000
