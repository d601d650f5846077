import duckdb
import pytest

from geoquery.errors import ExecutionError
from geoquery.storage.executor import DuckDBExecutor, classify_duckdb_error


@pytest.fixture
def executor():
    # plain connection; these tests do not need the spatial extension
    connection = duckdb.connect(":memory:")
    connection.execute("CREATE TABLE parcels (parcel_id VARCHAR, acres DOUBLE)")
    connection.execute("INSERT INTO parcels VALUES ('P-1', 0.25), ('P-2', 1.5)")
    executor = DuckDBExecutor(connection=connection)
    yield executor
    executor.close()


def test_rows_are_returned_as_dicts(executor):
    rows = executor.execute_sync('SELECT * FROM "parcels" WHERE "acres" > $1 ORDER BY parcel_id', [0.5])
    assert rows == [{"parcel_id": "P-2", "acres": 1.5}]


async def test_async_execute_runs_query(executor):
    rows = await executor.execute('SELECT COUNT(*) AS n FROM "parcels" WHERE "parcel_id" IN ($1, $2)', ["P-1", "P-9"])
    assert rows == [{"n": 1}]


def test_missing_column_is_a_data_problem(executor):
    with pytest.raises(ExecutionError) as exc_info:
        executor.execute_sync('SELECT "assessed_value" FROM "parcels"')
    assert exc_info.value.kind == ExecutionError.UNSUPPORTED_DATA
    assert exc_info.value.is_data_problem


def test_missing_table_is_a_data_problem(executor):
    with pytest.raises(ExecutionError) as exc_info:
        executor.execute_sync('SELECT * FROM "eviction_filings"')
    assert exc_info.value.is_data_problem


def test_other_failures_are_internal(executor):
    with pytest.raises(ExecutionError) as exc_info:
        executor.execute_sync("SELECT CAST('abc' AS INTEGER)")
    assert exc_info.value.kind == ExecutionError.INTERNAL


def test_classify_by_message():
    error = classify_duckdb_error(duckdb.Error('Referenced column "x" not found'))
    assert error.is_data_problem
    assert not classify_duckdb_error(duckdb.Error("out of memory")).is_data_problem


def test_describe(executor):
    assert executor.describe("parcels") == ["parcel_id", "acres"]
    assert executor.describe("hydrology") == []


def test_load_layer_rejects_unknown_layer_and_srid(executor, tmp_path):
    with pytest.raises(ValueError):
        executor.load_layer("neighborhoods", tmp_path / "n.parquet")
    with pytest.raises(ValueError) as exc_info:
        executor.load_layer("parcels", tmp_path / "parcels.parquet", source_srid=2258)
    assert "Allowed SRIDs: 4326, 32613, 3857" in str(exc_info.value)


def test_load_from_manifest_skips_missing_files(executor, tmp_path):
    manifest = {"layers": {"parcels": {"sourceSrid": 4326}, "hydrology": {}}}
    assert executor.load_from_manifest(manifest, tmp_path) == []
