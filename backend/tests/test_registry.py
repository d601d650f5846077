import json

from conftest import make_registry

from geoquery.layers.catalog import LAYER_SCHEMAS
from geoquery.layers.registry import RegistryHolder, build_layer_registry


def write_manifest(tmp_path, layers):
    path = tmp_path / "manifest.json"
    path.write_text(json.dumps({"generatedAt": "2026-01-01T00:00:00Z", "layers": layers}))
    return path


def test_manifest_layers_are_loaded(tmp_path):
    path = write_manifest(tmp_path, {
        "parcels": {"featureCount": 42, "fields": {"parcel_id": "VARCHAR", "acres": "DOUBLE"}, "source": "assessor"},
    })
    registry = build_layer_registry(path)

    parcels = registry.get("parcels")
    assert parcels.is_loaded
    assert parcels.feature_count == 42
    assert parcels.loaded_fields == ("acres", "parcel_id")
    assert parcels.source == "assessor"
    assert registry.loaded_layer_names == ["parcels"]
    assert registry.generated_at == "2026-01-01T00:00:00Z"
    assert not registry.get("hydrology").is_loaded
    assert set(registry.layers) == set(LAYER_SCHEMAS)


def test_described_columns_are_merged_and_internal_columns_dropped(tmp_path):
    path = write_manifest(tmp_path, {"hydrology": {"fields": {"name": "VARCHAR"}}})
    described = {"hydrology": ["name", "type", "geom_4326", "geom_utm13", "geom"]}

    registry = build_layer_registry(path, describe=lambda table: described.get(table, []))

    assert registry.get("hydrology").loaded_fields == ("name", "type")


def test_virtual_fields_are_queryable_but_not_loaded(tmp_path):
    path = write_manifest(tmp_path, {"zoning_districts": {"fields": {"zone_code": "VARCHAR", "zone_name": "VARCHAR"}}})
    zoning = build_layer_registry(path).get("zoning_districts")

    assert "allows_residential" not in zoning.loaded_fields
    assert "allows_residential" in zoning.queryable_fields
    assert "allows_commercial" in zoning.queryable_fields


def test_missing_manifest_means_nothing_loaded(tmp_path):
    registry = build_layer_registry(tmp_path / "absent.json")
    assert registry.loaded_layer_names == []
    assert registry.generated_at


def test_corrupt_manifest_means_nothing_loaded(tmp_path):
    path = tmp_path / "manifest.json"
    path.write_text("{not json")
    assert build_layer_registry(path).loaded_layer_names == []


def test_describe_not_called_for_unloaded_layers(tmp_path):
    calls = []
    path = write_manifest(tmp_path, {"parcels": {}})
    build_layer_registry(path, describe=lambda table: calls.append(table) or [])
    assert calls == ["parcels"]


def test_summary_uses_camel_case(registry):
    summary = registry.get("parcels").to_summary()
    assert summary["name"] == "parcels"
    assert summary["geometryType"] == "Polygon"
    assert summary["isLoaded"] is True
    assert "acres" in summary["queryableFields"]
    assert [s["name"] for s in registry.summaries()] == sorted(LAYER_SCHEMAS)


def test_catalog_fields_named_like_schema_attributes():
    assert LAYER_SCHEMAS["census_tracts"].fields["name"] == "string"
    assert LAYER_SCHEMAS["hydrology"].fields["name"] == "string"
    assert LAYER_SCHEMAS["zoning_districts"].fields["description"] == "string | null"
    assert LAYER_SCHEMAS["zoning_districts"].description == "Zoning districts with development regulations"
    assert LAYER_SCHEMAS["census_tracts"].name == "census_tracts"


def test_layer_listed_in_manifest_without_table_is_not_loaded(tmp_path):
    path = write_manifest(tmp_path, {"parcels": {"fields": {"parcel_id": "VARCHAR"}}, "hydrology": {}})
    described = {"parcels": ["parcel_id", "acres", "geom_4326"]}

    registry = build_layer_registry(path, describe=lambda table: described.get(table, []))

    assert registry.is_loaded("parcels")
    assert not registry.is_loaded("hydrology")
    assert registry.get("hydrology").loaded_fields == ()
    assert registry.loaded_layer_names == ["parcels"]


def test_holder_swap_returns_previous_snapshot():
    first = make_registry(loaded=["parcels"])
    second = make_registry(loaded=["parcels", "hydrology"])
    holder = RegistryHolder(first)

    snapshot = holder.current()
    assert holder.swap(second) is first
    assert holder.current() is second
    assert snapshot.loaded_layer_names == ["parcels"]
