"""
DuckDB executor with the spatial extension.

Each layer is a table holding its source attributes plus two geometry
columns: geom_4326 (WGS84, for topology and output) and geom_utm13
(UTM zone 13N, for distances in meters).

DuckDB calls are blocking; the async entry point runs them in a worker
thread. Each call uses its own cursor on the shared database connection.
"""

import asyncio
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import duckdb

from geoquery.errors import ExecutionError
from geoquery.layers.catalog import GEOGRAPHIC_COLUMN, LAYER_SCHEMAS, PROJECTED_COLUMN
from geoquery.query.compiler import quote_identifier

logger = logging.getLogger(__name__)

ALLOWED_SRIDS = (4326, 32613, 3857)  # WGS84, UTM 13N, Web Mercator
PROJECTED_SRID = 32613

_DATA_ERROR_MARKERS = ("Referenced column", "does not exist", "not found in FROM clause")


def classify_duckdb_error(error: duckdb.Error) -> ExecutionError:
    """
    Map a DuckDB error to an ExecutionError.

    Binder and catalog errors mean the SQL referenced something the database
    does not have, i.e. the loaded data drifted from the registry.
    """
    message = str(error)
    if isinstance(error, (duckdb.BinderException, duckdb.CatalogException)):
        return ExecutionError(message, kind=ExecutionError.UNSUPPORTED_DATA)
    if any(marker in message for marker in _DATA_ERROR_MARKERS):
        return ExecutionError(message, kind=ExecutionError.UNSUPPORTED_DATA)
    return ExecutionError(message, kind=ExecutionError.INTERNAL)


class DuckDBExecutor:
    """
    Runs compiled SQL against a DuckDB database.
    """

    def __init__(self, database_path: str = ":memory:", connection: Optional[duckdb.DuckDBPyConnection] = None):
        """
        Args:
            database_path: DuckDB file path, or ":memory:"
            connection: Existing connection; the spatial extension must be loaded
        """
        self.database_path = database_path
        self._connection = connection
        self._lock = threading.Lock()

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        with self._lock:
            if self._connection is None:
                logger.info(f"Opening DuckDB database: {self.database_path}")
                con = duckdb.connect(self.database_path)
                con.execute("INSTALL spatial; LOAD spatial;")
                self._connection = con
            return self._connection

    def connect(self) -> None:
        """Open the database and load the spatial extension."""
        self._get_connection()
        logger.info("DuckDB initialized with spatial extension")

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    def execute_sync(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        """
        Execute SQL and return rows as dicts.

        Raises:
            ExecutionError: kind unsupported_data or internal
        """
        try:
            cursor = self._get_connection().cursor()
        except duckdb.Error as e:
            raise ExecutionError(f"Database unavailable: {e}") from e
        try:
            result = cursor.execute(sql, list(params))
            columns = [column[0] for column in result.description or []]
            return [dict(zip(columns, row)) for row in result.fetchall()]
        except duckdb.Error as e:
            error = classify_duckdb_error(e)
            logger.warning(f"Query execution failed ({error.kind}): {e}")
            raise error from e
        finally:
            cursor.close()

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self.execute_sync, sql, params)

    def describe(self, table: str) -> List[str]:
        """Column names of a table; empty when the table does not exist or the database is unusable."""
        try:
            cursor = self._get_connection().cursor()
        except duckdb.Error as e:
            logger.error(f"Cannot describe {table}, database unavailable: {e}")
            return []
        try:
            rows = cursor.execute(f"DESCRIBE {quote_identifier(table)}").fetchall()
            return [row[0] for row in rows]
        except duckdb.CatalogException:
            logger.warning(f"Table {table} not found in database")
            return []
        finally:
            cursor.close()

    def load_layer(self, layer_name: str, path: Path, source_srid: int = 4326) -> int:
        """
        Create a layer table from a spatial file with both geometry columns.

        Args:
            layer_name: Declared layer name; becomes the table name
            path: GeoParquet, GeoJSON, Shapefile or any ST_Read format
            source_srid: SRID of the file's geometry

        Returns:
            Number of rows loaded

        Raises:
            ValueError: Unknown layer or disallowed SRID
            ExecutionError: DuckDB failed to read or transform the file
        """
        if layer_name not in LAYER_SCHEMAS:
            raise ValueError(f"Unknown layer: {layer_name}")
        if source_srid not in ALLOWED_SRIDS:
            raise ValueError(
                f"Invalid SRID: {source_srid}. Allowed SRIDs: {', '.join(str(s) for s in ALLOWED_SRIDS)}"
            )

        table = quote_identifier(layer_name)
        source_crs = f"'EPSG:{int(source_srid)}'"
        file_path = str(path).replace("'", "''")
        sql = f"""
            CREATE OR REPLACE TABLE {table} AS
            SELECT
                * EXCLUDE (geom),
                ST_Transform(geom, {source_crs}, 'EPSG:4326', always_xy := true) AS {GEOGRAPHIC_COLUMN},
                ST_Transform(geom, {source_crs}, 'EPSG:{PROJECTED_SRID}', always_xy := true) AS {PROJECTED_COLUMN}
            FROM ST_Read('{file_path}')
        """

        cursor = self._get_connection().cursor()
        try:
            cursor.execute(sql)
            count = cursor.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        except duckdb.Error as e:
            raise ExecutionError(f"Failed to load layer {layer_name}: {e}") from e
        finally:
            cursor.close()

        logger.info(f"Loaded layer: {layer_name} ({count} features from {path})")
        return count

    def load_from_manifest(self, manifest: Dict[str, Any], data_dir: Path) -> List[str]:
        """
        Load every manifest layer whose data file exists.

        Files are expected at <data_dir>/<layer>.parquet. A layer that fails
        to load is logged and skipped.

        Returns:
            Names of layers loaded
        """
        loaded = []
        for layer_name, entry in (manifest.get("layers") or {}).items():
            path = data_dir / f"{layer_name}.parquet"
            if not path.exists():
                logger.warning(f"Data file for {layer_name} not found at {path}")
                continue
            try:
                self.load_layer(layer_name, path, int(entry.get("sourceSrid", 4326)))
                loaded.append(layer_name)
            except (ValueError, ExecutionError) as e:
                logger.error(f"Failed to load layer {layer_name}: {e}")
        return loaded
