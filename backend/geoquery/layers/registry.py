"""
Runtime layer registry.

Combines the declared layer catalog with what was actually loaded into the
database (manifest.json written by the data preparation step, plus a
DESCRIBE of each table) to decide which layers and fields a query may use.

A registry is an immutable snapshot. Reloading builds a new snapshot and
swaps it into the RegistryHolder in one step, so a request that already
holds a snapshot keeps seeing a consistent view.
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from geoquery.layers.catalog import INTERNAL_FIELDS, LAYER_SCHEMAS, VIRTUAL_FIELDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuntimeLayerInfo:
    """Declared and physical facts about one layer"""
    name: str
    geometry_type: str
    schema_fields: Dict[str, str]
    loaded_fields: Tuple[str, ...] = ()
    queryable_fields: Tuple[str, ...] = ()
    is_loaded: bool = False
    feature_count: Optional[int] = None
    description: Optional[str] = None
    source: Optional[str] = None

    def field_type(self, field_name: str) -> Optional[str]:
        return self.schema_fields.get(field_name)

    def to_summary(self) -> Dict[str, Any]:
        """Public summary used by the layers endpoint."""
        return {
            "name": self.name,
            "geometryType": self.geometry_type,
            "schemaFields": list(self.schema_fields.keys()),
            "isLoaded": self.is_loaded,
            "loadedFields": list(self.loaded_fields),
            "queryableFields": list(self.queryable_fields),
            "featureCount": self.feature_count,
            "description": self.description,
        }


@dataclass(frozen=True)
class LayerRegistry:
    """Snapshot of every known layer at a point in time"""
    layers: Dict[str, RuntimeLayerInfo] = field(default_factory=dict)
    generated_at: str = ""

    @property
    def loaded_layer_names(self) -> List[str]:
        return sorted(name for name, layer in self.layers.items() if layer.is_loaded)

    def get(self, layer_name: str) -> Optional[RuntimeLayerInfo]:
        return self.layers.get(layer_name)

    def is_loaded(self, layer_name: str) -> bool:
        layer = self.layers.get(layer_name)
        return bool(layer and layer.is_loaded)

    def summaries(self) -> List[Dict[str, Any]]:
        return [self.layers[name].to_summary() for name in sorted(self.layers)]


def read_manifest(manifest_path: Path) -> Dict[str, Any]:
    """
    Read the data manifest.

    A missing or unreadable manifest means nothing is loaded; it is not fatal.
    """
    if not manifest_path.exists():
        logger.warning(f"Manifest not found at {manifest_path}, no layers will be marked loaded")
        return {}

    try:
        with open(manifest_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not parse manifest for layer registry: {e}")
        return {}


def _unique_sorted(values) -> Tuple[str, ...]:
    return tuple(sorted(set(values)))


def build_layer_registry(
    manifest_path: Path,
    describe: Optional[Callable[[str], List[str]]] = None,
) -> LayerRegistry:
    """
    Build a registry snapshot from the manifest and the live database.

    Args:
        manifest_path: Path to manifest.json
        describe: Callable returning the column names of a table; when None,
            only manifest fields are used. A manifest layer whose table
            describes to no columns is not loaded.

    Returns:
        LayerRegistry snapshot
    """
    manifest = read_manifest(manifest_path)
    manifest_layers = manifest.get("layers") or {}
    layers: Dict[str, RuntimeLayerInfo] = {}

    for layer_name, schema in LAYER_SCHEMAS.items():
        entry = manifest_layers.get(layer_name)
        is_loaded = entry is not None

        described: List[str] = []
        if is_loaded and describe is not None:
            described = describe(layer_name)
            if not described:
                # listed in the manifest but the table was never created
                logger.warning(f"Layer {layer_name} is in the manifest but has no table, marking not loaded")
                is_loaded = False
                entry = None

        manifest_fields = list((entry or {}).get("fields") or {})
        loaded_fields = _unique_sorted(
            name for name in manifest_fields + described if name not in INTERNAL_FIELDS
        )
        queryable_fields = _unique_sorted(list(loaded_fields) + VIRTUAL_FIELDS.get(layer_name, []))

        feature_count = (entry or {}).get("featureCount")
        layers[layer_name] = RuntimeLayerInfo(
            name=layer_name,
            geometry_type=schema.geometry_type,
            schema_fields=dict(schema.fields),
            loaded_fields=loaded_fields,
            queryable_fields=queryable_fields,
            is_loaded=is_loaded,
            feature_count=feature_count if isinstance(feature_count, int) else None,
            description=schema.description,
            source=(entry or {}).get("source"),
        )

    registry = LayerRegistry(
        layers=layers,
        generated_at=manifest.get("generatedAt") or datetime.now(timezone.utc).isoformat(),
    )
    logger.info(f"Layer registry built: {len(registry.loaded_layer_names)}/{len(layers)} layers loaded")
    return registry


class RegistryHolder:
    """
    Holds the current registry snapshot.

    Readers call current() once per request and use that snapshot for the
    whole pipeline; swap() replaces the reference atomically.
    """

    def __init__(self, registry: LayerRegistry):
        self._registry = registry
        self._lock = threading.Lock()

    def current(self) -> LayerRegistry:
        with self._lock:
            return self._registry

    def swap(self, registry: LayerRegistry) -> LayerRegistry:
        """Replace the snapshot and return the previous one."""
        with self._lock:
            previous = self._registry
            self._registry = registry
        logger.info(f"Layer registry swapped (generated at {registry.generated_at})")
        return previous
