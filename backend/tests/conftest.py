"""
Shared fixtures: a registry snapshot with a handful of loaded layers, a
scripted LLM client, a recording executor, and an app wired to both.
"""

from typing import Any, Dict, List, Optional, Sequence

import httpx
import pytest
import pytest_asyncio

from geoquery.config import Settings
from geoquery.layers.catalog import LAYER_SCHEMAS, VIRTUAL_FIELDS
from geoquery.layers.registry import LayerRegistry, RuntimeLayerInfo
from geoquery.services import build_services

LOADED_LAYERS = [
    "parcels",
    "census_tracts",
    "hydrology",
    "zoning_districts",
    "short_term_rentals",
    "transit_access",
    "flood_zones",
]


def make_registry(loaded: Sequence[str] = tuple(LOADED_LAYERS), missing_fields: Optional[Dict[str, List[str]]] = None) -> LayerRegistry:
    """Registry where each loaded layer has every declared field except those listed as missing."""
    missing_fields = missing_fields or {}
    layers = {}
    for name, schema in LAYER_SCHEMAS.items():
        is_loaded = name in loaded
        virtual = VIRTUAL_FIELDS.get(name, [])
        loaded_fields = ()
        queryable_fields = ()
        if is_loaded:
            loaded_fields = tuple(sorted(
                f for f in schema.fields
                if f not in virtual and f not in missing_fields.get(name, [])
            ))
            queryable_fields = tuple(sorted(set(loaded_fields) | set(virtual)))
        layers[name] = RuntimeLayerInfo(
            name=name,
            geometry_type=schema.geometry_type,
            schema_fields=dict(schema.fields),
            loaded_fields=loaded_fields,
            queryable_fields=queryable_fields,
            is_loaded=is_loaded,
            feature_count=100 if is_loaded else None,
            description=schema.description,
        )
    return LayerRegistry(layers=layers, generated_at="2026-01-01T00:00:00+00:00")


class FakeLLM:
    """LLM client returning scripted responses and recording prompts."""

    def __init__(self, responses: Optional[List[str]] = None, error: Optional[Exception] = None):
        self.responses = list(responses or [])
        self.error = error
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)

    async def health_check(self) -> bool:
        return self.error is None


class FakeExecutor:
    """Executor returning canned rows and recording every call."""

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None):
        self.rows = rows if rows is not None else []
        self.error = error
        self.calls: List[tuple] = []

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        self.calls.append((sql, list(params)))
        if self.error is not None:
            raise self.error
        return [dict(row) for row in self.rows]

    def describe(self, table: str) -> List[str]:
        return []

    def close(self) -> None:
        pass


SAMPLE_ROWS = [
    {
        "parcel_id": "P-1",
        "zoning": "R-1",
        "acres": 0.25,
        "geometry": '{"type":"Polygon","coordinates":[[[-105.94,35.68],[-105.93,35.68],[-105.93,35.69],[-105.94,35.68]]]}',
    },
    {
        "parcel_id": "P-2",
        "zoning": "R-2",
        "acres": 0.5,
        "geometry": '{"type":"Polygon","coordinates":[[[-105.95,35.67],[-105.94,35.67],[-105.94,35.68],[-105.95,35.67]]]}',
    },
]


@pytest.fixture
def registry() -> LayerRegistry:
    return make_registry()


@pytest.fixture
def settings() -> Settings:
    return Settings(manifest_path="/nonexistent/manifest.json", anthropic_api_key="", llm_provider="anthropic")


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor(rows=SAMPLE_ROWS)


@pytest.fixture
def services(settings, registry, fake_executor, fake_llm):
    return build_services(settings, executor=fake_executor, llm_client=fake_llm, registry=registry)


@pytest.fixture
def app(services):
    from geoquery.main import create_app

    application = create_app()
    application.state.services = services
    return application


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
